"""
Configuration management for commguard.

- **app_configuration.py**: YAML configuration loader for global settings
  (database location, scoring oracle, health recompute cadence, queue paging,
  rule cache TTL). Falls back to defaults on missing or malformed files.

- **oracle_settings.py**: typed accessors for the scoring oracle section.
"""
