import os
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

import yaml

CONFIG_ENV_KEY = "CONFIG_PATH"
DEFAULT_CONFIG_PATH = "config.yml"
DEFAULT_PASSPHRASE = "w for whale"


@dataclass
class BotConfig:
    token: str
    log_level: str
    database_path: str
    command_prefix: str = "$"
    challenge_timeout_seconds: float = 120.0
    tictactoe_timeout_seconds: float = 180.0
    connect4_timeout_seconds: float = 300.0
    verify_channel_id: Optional[int] = None
    verified_role_id: Optional[int] = None
    welcome_channel_id: Optional[int] = None
    verification_passphrase: str = DEFAULT_PASSPHRASE
    level_roles: Dict[int, int] = field(default_factory=dict)
    xp_per_command: int = 10
    stats_refresh_minutes: float = 10.0

    @property
    def idle_timeouts(self) -> Dict[str, float]:
        return {
            "tictactoe": self.tictactoe_timeout_seconds,
            "connect4": self.connect4_timeout_seconds,
        }


def _positive_number(data: Dict[str, Any], key: str, default: float) -> float:
    raw = data.get(key)
    if raw is None:
        return default
    try:
        value = float(raw)
    except (TypeError, ValueError):
        raise ValueError(f"Invalid '{key}': {raw!r}") from None
    if value <= 0:
        raise ValueError(f"'{key}' must be positive")
    return value


def _optional_id(data: Dict[str, Any], key: str) -> Optional[int]:
    raw = data.get(key)
    if raw in (None, ""):
        return None
    try:
        return int(raw)
    except (TypeError, ValueError):
        raise ValueError(f"Invalid '{key}': {raw!r}") from None


def _level_roles(raw: Any) -> Dict[int, int]:
    if not raw:
        return {}
    if not isinstance(raw, dict):
        raise ValueError("'level_roles' must be a mapping of level -> role id")
    try:
        return {int(level): int(role_id) for level, role_id in raw.items()}
    except (TypeError, ValueError):
        raise ValueError("'level_roles' must map integers to integers") from None


def load_config(path: str | None = None) -> BotConfig:
    config_path = path or os.environ.get(CONFIG_ENV_KEY, DEFAULT_CONFIG_PATH)
    with open(config_path, "r", encoding="utf-8") as fh:
        data = yaml.safe_load(fh) or {}

    token = str(data.get("token") or "").strip()
    if not token:
        raise ValueError("Config missing 'token'")

    log_level = str(data.get("log_level") or "INFO").upper()
    valid_levels = {"CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"}
    if log_level not in valid_levels:
        raise ValueError(
            f"Invalid log_level '{log_level}'. Must be one of {sorted(valid_levels)}"
        )

    database_path = str(data.get("database_path") or "nebubot.db")

    command_prefix = str(data.get("command_prefix") or "$").strip()
    if not command_prefix:
        raise ValueError("Config 'command_prefix' must not be blank")

    passphrase = str(data.get("verification_passphrase") or DEFAULT_PASSPHRASE)

    raw_xp = data.get("xp_per_command")
    try:
        xp_per_command = 10 if raw_xp is None else int(raw_xp)
    except (TypeError, ValueError):
        raise ValueError(f"Invalid 'xp_per_command': {raw_xp!r}") from None
    if xp_per_command < 0:
        raise ValueError("'xp_per_command' must not be negative")

    return BotConfig(
        token=token,
        log_level=log_level,
        database_path=database_path,
        command_prefix=command_prefix,
        challenge_timeout_seconds=_positive_number(
            data, "challenge_timeout_seconds", 120.0
        ),
        tictactoe_timeout_seconds=_positive_number(
            data, "tictactoe_timeout_seconds", 180.0
        ),
        connect4_timeout_seconds=_positive_number(
            data, "connect4_timeout_seconds", 300.0
        ),
        verify_channel_id=_optional_id(data, "verify_channel_id"),
        verified_role_id=_optional_id(data, "verified_role_id"),
        welcome_channel_id=_optional_id(data, "welcome_channel_id"),
        verification_passphrase=passphrase.strip(),
        level_roles=_level_roles(data.get("level_roles")),
        xp_per_command=xp_per_command,
        stats_refresh_minutes=_positive_number(data, "stats_refresh_minutes", 10.0),
    )
