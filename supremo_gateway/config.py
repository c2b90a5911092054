"""Configuration management for the Supremo gateway"""

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Optional, Set

import pytz
from dotenv import load_dotenv

from .state_paths import resolve_state_dir


@dataclass
class Config:
    """Configuration for the gateway and its collaborators"""

    timezone: str
    state_dir: Path

    # LLM classifier
    llm_api_url: str
    llm_model: str
    llm_api_key: Optional[str]

    # Google Calendar
    google_client_id: str
    google_client_secret: str
    google_refresh_token: str
    google_calendar_id: str

    # Trello
    trello_api_key: str
    trello_token: str
    trello_board_id: str
    trello_inbox_list_id: str

    # Dispatcher behaviour
    retry_max_attempts: int = 3
    confirmation_timeout: float = 120.0
    user_profiles: Dict[str, str] = field(default_factory=dict)
    allowed_chat_ids: Set[str] = field(default_factory=set)

    # Server and logging
    log_level: str = "INFO"
    host: str = "127.0.0.1"
    port: int = 8090

    @classmethod
    def from_env(cls, env_file: Optional[Path] = None) -> "Config":
        """Load configuration from environment variables (and ``.env``)"""
        load_dotenv(dotenv_path=env_file)

        def parse_int(name: str, default: int, minimum: int = 0) -> int:
            raw = os.getenv(name)
            if raw is None or not raw.strip():
                return default
            try:
                value = int(raw)
            except ValueError:
                raise ValueError(f"{name} must be an integer, got {raw!r}")
            if value < minimum:
                raise ValueError(f"{name} must be >= {minimum}, got {value}")
            return value

        def parse_float(name: str, default: float) -> float:
            raw = os.getenv(name)
            if raw is None or not raw.strip():
                return default
            try:
                value = float(raw)
            except ValueError:
                raise ValueError(f"{name} must be a number, got {raw!r}")
            if value <= 0:
                raise ValueError(f"{name} must be positive, got {value}")
            return value

        def parse_profiles(raw: Optional[str]) -> Dict[str, str]:
            if not raw:
                return {}
            try:
                data = json.loads(raw)
            except json.JSONDecodeError as e:
                raise ValueError(f"USER_PROFILES must be a JSON object: {e}")
            if not isinstance(data, dict):
                raise ValueError("USER_PROFILES must be a JSON object")
            return {str(k): str(v) for k, v in data.items()}

        timezone = os.getenv("TIMEZONE", "America/Sao_Paulo")
        try:
            pytz.timezone(timezone)
        except pytz.UnknownTimeZoneError:
            raise ValueError(f"TIMEZONE is not a known time zone: {timezone}")

        allowed = os.getenv("ALLOWED_CHAT_IDS", "")

        return cls(
            timezone=timezone,
            state_dir=resolve_state_dir(),
            llm_api_url=os.getenv("LLM_API_URL", "http://localhost:8000"),
            llm_model=os.getenv("LLM_MODEL", "gemini-2.5-flash"),
            llm_api_key=os.getenv("LLM_API_KEY") or None,
            google_client_id=os.getenv("GOOGLE_CLIENT_ID", ""),
            google_client_secret=os.getenv("GOOGLE_CLIENT_SECRET", ""),
            google_refresh_token=os.getenv("GOOGLE_REFRESH_TOKEN", ""),
            google_calendar_id=os.getenv("GOOGLE_CALENDAR_ID", "primary"),
            trello_api_key=os.getenv("TRELLO_API_KEY", ""),
            trello_token=os.getenv("TRELLO_TOKEN", ""),
            trello_board_id=os.getenv("TRELLO_BOARD_ID", ""),
            trello_inbox_list_id=os.getenv("TRELLO_LIST_ID_INBOX", ""),
            retry_max_attempts=parse_int("RETRY_MAX_ATTEMPTS", 3, minimum=1),
            confirmation_timeout=parse_float("CONFIRMATION_TIMEOUT", 120.0),
            user_profiles=parse_profiles(os.getenv("USER_PROFILES")),
            allowed_chat_ids={c.strip() for c in allowed.split(",") if c.strip()},
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
            host=os.getenv("SUPREMO_HOST", "127.0.0.1"),
            port=parse_int("SUPREMO_PORT", 8090, minimum=1),
        )

    def is_allowed(self, user_id: str) -> bool:
        """Empty allow-list means every chat is allowed."""
        return not self.allowed_chat_ids or str(user_id) in self.allowed_chat_ids
