from __future__ import annotations

import json
import os
from dataclasses import dataclass
from pathlib import Path

CONFIG_PATH = "data/roleicon.json"

# Discord caps role names at 100 characters and snowflakes are at most 20 digits.
ROLE_NAME_LIMIT = 100
SNOWFLAKE_MAX_DIGITS = 20


class ConfigError(Exception):
    pass


@dataclass(frozen=True)
class RoleIconConfig:
    prefix: str

    def role_name(self, member_id: int | str) -> str:
        return f"{self.prefix}{member_id}"


def _validate_prefix(prefix) -> str:
    if not isinstance(prefix, str) or not prefix.strip():
        raise ConfigError("'prefix' must be a non-empty string")
    if len(prefix) + SNOWFLAKE_MAX_DIGITS > ROLE_NAME_LIMIT:
        raise ConfigError(
            f"'prefix' is too long ({len(prefix)} chars); role names are limited to {ROLE_NAME_LIMIT}"
        )
    return prefix


def load_config(path: str | Path | None = None) -> RoleIconConfig:
    """Read the role icon config once at startup.

    ``ROLEICON_CONFIG`` overrides the file location and ``ROLEICON_PREFIX``
    overrides the prefix stored in it.
    """
    path = Path(path or os.getenv("ROLEICON_CONFIG", CONFIG_PATH))
    try:
        with open(path, "r", encoding="utf-8") as f:
            raw = json.load(f)
    except FileNotFoundError as e:
        raise ConfigError(f"config file {path} not found") from e
    except json.JSONDecodeError as e:
        raise ConfigError(f"config file {path} is not valid JSON: {e}") from e

    if not isinstance(raw, dict):
        raise ConfigError(f"config file {path} must contain a JSON object")

    prefix = os.getenv("ROLEICON_PREFIX") or raw.get("prefix")
    return RoleIconConfig(prefix=_validate_prefix(prefix))
