"""Text commands. Importing this package registers every command."""

from modguard.command import general_cmds, message_checker_cmds, moderation_cmds, starboard_cmds  # noqa: F401
