from pathlib import Path

import pytest

from modguard.configuration.app_configuration import (
    DEFAULT_COMMAND_PREFIX,
    DEFAULT_EXPIRY_REASON,
    DEFAULT_RESPONSE_MESSAGE,
    AppConfig,
)


@pytest.fixture()
def config_path(tmp_path: Path) -> Path:
    return tmp_path / "app_config.yml"


def test_app_config_reload_parses_yaml(config_path: Path, tmp_path: Path) -> None:
    config_path.write_text(
        "bot:\n"
        "  command_prefix: '?'\n"
        "database:\n"
        f"  path: {tmp_path / 'bot.db'}\n"
        "moderation:\n"
        "  expiry_reason: Time served.\n"
        "message_checker:\n"
        "  default_response_message: Mind your language.\n",
        encoding="utf-8",
    )

    config = AppConfig(config_path)

    assert config.command_prefix == "?"
    assert config.database_path == (tmp_path / "bot.db").resolve()
    assert config.expiry_reason == "Time served."
    assert config.default_response_message == "Mind your language."
    assert config.get("bot") == {"command_prefix": "?"}


def test_app_config_missing_file_returns_defaults(tmp_path: Path) -> None:
    config = AppConfig(tmp_path / "does_not_exist.yml")

    assert config.data == {}
    assert config.command_prefix == DEFAULT_COMMAND_PREFIX
    assert config.database_path.name == "modguard.db"
    assert config.expiry_reason == DEFAULT_EXPIRY_REASON
    assert config.default_response_message == DEFAULT_RESPONSE_MESSAGE


def test_app_config_ignores_malformed_sections(config_path: Path) -> None:
    config_path.write_text("bot: just a string\nmoderation: [1, 2]\n", encoding="utf-8")

    config = AppConfig(config_path)

    assert config.command_prefix == DEFAULT_COMMAND_PREFIX
    assert config.expiry_reason == DEFAULT_EXPIRY_REASON


def test_app_config_non_mapping_document_is_empty(config_path: Path) -> None:
    config_path.write_text("- just\n- a list\n", encoding="utf-8")

    assert AppConfig(config_path).data == {}


def test_app_config_reload_picks_up_changes(config_path: Path) -> None:
    config_path.write_text("bot:\n  command_prefix: '!'\n", encoding="utf-8")
    config = AppConfig(config_path)

    config_path.write_text("bot:\n  command_prefix: '$'\n", encoding="utf-8")
    config.reload()

    assert config.command_prefix == "$"
