"""
commguard: community moderation core.

Rule evaluation, the moderation queue, automatic actions, automation rules
and community health scoring over a single SQLite database.
"""
