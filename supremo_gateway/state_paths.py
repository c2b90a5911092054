"""Shared helpers for resolving Supremo state paths.

Every persisted file (undo history, session flow state, memory database,
logs) lives under one state directory so the server, tests and scripts
never disagree about where state is.
"""
from __future__ import annotations

import os
from pathlib import Path
from typing import Optional

DEFAULT_STATE_DIR = Path.home() / ".local" / "state" / "supremo"

ACTION_HISTORY_FILE = "action_history.json"
SESSIONS_FILE = "sessions.json"
KNOWLEDGE_DB_FILE = "knowledge.sqlite3"


def resolve_state_dir(base_dir: Optional[Path] = None) -> Path:
    """Resolve the base state directory.

    Handles both ~ and $VAR expansion for compatibility with systemd
    EnvironmentFile and shell scripts.
    """
    if base_dir is not None:
        return Path(os.path.expandvars(str(base_dir))).expanduser()
    env_dir = os.getenv("STATE_DIR") or os.getenv("SUPREMO_STATE_DIR")
    if env_dir:
        return Path(os.path.expandvars(env_dir)).expanduser()
    return DEFAULT_STATE_DIR


def resolve_state_subdir(name: str, base_dir: Optional[Path] = None) -> Path:
    return resolve_state_dir(base_dir) / name


def action_history_path(base_dir: Optional[Path] = None) -> Path:
    return resolve_state_dir(base_dir) / ACTION_HISTORY_FILE


def sessions_path(base_dir: Optional[Path] = None) -> Path:
    return resolve_state_dir(base_dir) / SESSIONS_FILE


def knowledge_db_path(base_dir: Optional[Path] = None) -> Path:
    return resolve_state_dir(base_dir) / KNOWLEDGE_DB_FILE
