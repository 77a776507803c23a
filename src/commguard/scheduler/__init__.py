"""
Background schedulers.
"""
