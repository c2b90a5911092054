"""Tests for environment configuration."""

import pytest

from supremo_gateway.config import Config
from supremo_gateway.state_paths import (
    action_history_path,
    knowledge_db_path,
    resolve_state_dir,
    sessions_path,
)

ENV_VARS = [
    "TIMEZONE", "STATE_DIR", "SUPREMO_STATE_DIR", "RETRY_MAX_ATTEMPTS", "CONFIRMATION_TIMEOUT",
    "USER_PROFILES", "ALLOWED_CHAT_IDS", "LOG_LEVEL", "SUPREMO_PORT", "TRELLO_LIST_ID_INBOX",
]


@pytest.fixture
def env(monkeypatch, tmp_path):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("STATE_DIR", str(tmp_path))
    return monkeypatch


def load(tmp_path):
    return Config.from_env(env_file=tmp_path / "missing.env")


def test_defaults(env, tmp_path):
    config = load(tmp_path)
    assert config.timezone == "America/Sao_Paulo"
    assert config.state_dir == tmp_path
    assert config.retry_max_attempts == 3
    assert config.confirmation_timeout == 120.0
    assert config.port == 8090
    assert config.is_allowed("anyone")


def test_overrides(env, tmp_path):
    env.setenv("RETRY_MAX_ATTEMPTS", "5")
    env.setenv("CONFIRMATION_TIMEOUT", "60")
    env.setenv("USER_PROFILES", '{"123": "Advogada trabalhista"}')
    env.setenv("ALLOWED_CHAT_IDS", "123, 456")
    env.setenv("TRELLO_LIST_ID_INBOX", "list_inbox")
    env.setenv("LOG_LEVEL", "debug")

    config = load(tmp_path)
    assert config.retry_max_attempts == 5
    assert config.confirmation_timeout == 60.0
    assert config.user_profiles == {"123": "Advogada trabalhista"}
    assert config.is_allowed("456") and not config.is_allowed("789")
    assert config.trello_inbox_list_id == "list_inbox"
    assert config.log_level == "DEBUG"


def test_env_file(env, tmp_path):
    env_file = tmp_path / ".env"
    env_file.write_text("SUPREMO_PORT=9001\n", encoding="utf-8")
    env.delenv("SUPREMO_PORT", raising=False)
    config = Config.from_env(env_file=env_file)
    assert config.port == 9001
    env.delenv("SUPREMO_PORT", raising=False)


@pytest.mark.parametrize("name,value", [
    ("RETRY_MAX_ATTEMPTS", "muitas"),
    ("RETRY_MAX_ATTEMPTS", "0"),
    ("CONFIRMATION_TIMEOUT", "-1"),
    ("USER_PROFILES", "[1, 2]"),
    ("TIMEZONE", "Mars/Olympus"),
])
def test_invalid_values(env, tmp_path, name, value):
    env.setenv(name, value)
    with pytest.raises(ValueError):
        load(tmp_path)


def test_state_paths(env, tmp_path):
    assert resolve_state_dir() == tmp_path
    assert action_history_path().name == "action_history.json"
    assert sessions_path(tmp_path / "other").parent == tmp_path / "other"
    assert knowledge_db_path().parent == tmp_path


def test_state_dir_expands_user(monkeypatch):
    monkeypatch.setenv("HOME", "/home/tester")
    assert str(resolve_state_dir("~/estado")) == "/home/tester/estado"
