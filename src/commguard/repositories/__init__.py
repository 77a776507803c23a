"""
Repositories: one class of static coroutines per table group.

Each method takes an open ``aiosqlite.Connection``; transaction boundaries
belong to the caller (``ConnectionManager.transaction()``).
"""
