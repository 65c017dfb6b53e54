"""
Configuration management for Kirby.

- **app_configuration.py**: File-locked YAML loader for the database location
  and pool size, the asset directory and the welcome defaults. Falls back to
  built-in values on a missing or malformed file.
"""
