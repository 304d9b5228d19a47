"""
Database package for ModGuard.

- **db_connection.py**: single long-lived aiosqlite connection with WAL mode and
  serialised write transactions
- **db_schema.py**: table definitions and schema version
- **database.py**: startup/shutdown lifecycle
- **moderation_store.py**: action log, timeout store and warn escalation table
"""
