"""
ModGuard - Discord Moderation Bot

ModGuard checks guild messages against per-server banned words and gives
moderators text commands for manual moderation.

Core Components:

- **Message Pipeline**: Dispatches prefix/mention commands, persists the
  settings they change, and runs the banned word checker on everything else
- **Moderation Service**: Logs warns, mutes, kicks and bans with per-guild case
  numbers and escalates warns according to configurable rules
- **Timeout Scheduler**: Lifts timed mutes and bans on time, survives restarts
  by reconciling pending timeouts from SQLite once the bot is ready
- **Guild Settings**: Per-server banned words, reporting channel, response
  message and starboard configuration

Usage:
    from modguard.main import main
    main()
"""
