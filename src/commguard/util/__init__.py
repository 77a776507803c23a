"""
Shared helpers for commguard.

- **logger.py**: per-module loggers writing to the console and a session log file.
- **record_utils.py**: UTC timestamps, ids and JSON column helpers.
"""
