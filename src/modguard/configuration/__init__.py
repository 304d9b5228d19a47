"""
Application configuration for ModGuard.

- **app_configuration.py**: YAML configuration loader (command prefix, database
  path, expiry reason, default response message).
"""
