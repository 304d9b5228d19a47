"""
Timers for timed moderation actions.

- **timeout_scheduler.py**: heap-based scheduler that lifts mutes and bans when
  they expire and rebuilds its timers from the database on startup.
"""
