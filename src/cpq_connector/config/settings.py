"""Configuration settings for the CPQ connector.

Values come from the process environment, with `.env` loaded first. Nothing
here talks to the network.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass

from dotenv import dotenv_values, load_dotenv

load_dotenv(override=False)

# Convenience: allow local runs with only `.env.example` filled.
# Blank placeholders in `.env.example` must not override real values.
if not os.environ.get("CPQ_ACCESS_KEY"):
    example_path = os.path.abspath(".env.example")
    if os.path.exists(example_path):
        for k, v in (dotenv_values(example_path) or {}).items():
            if not k or v is None or v == "":
                continue
            if not os.environ.get(k):
                os.environ[k] = v


DEFAULT_BASE_URL = "https://sellapi.quosalsell.com"

_TRUTHY = {"1", "true", "yes", "on"}


def _env_flag(name: str, default: bool = False) -> bool:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    return raw.strip().lower() in _TRUTHY


def _env_optional_int(name: str, minimum: int | None = None) -> int | None:
    raw = (os.environ.get(name) or "").strip()
    if not raw:
        return None
    try:
        value = int(raw)
    except ValueError as e:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from e
    if minimum is not None and value < minimum:
        raise ValueError(f"{name} must be at least {minimum}, got {value}")
    return value


def _env_float(name: str, default: float) -> float:
    raw = (os.environ.get(name) or "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError as e:
        raise ValueError(f"{name} must be a number, got {raw!r}") from e


def env_logging_level() -> int:
    """Resolve CPQ_LOGGING_LEVEL to a `logging` level, INFO when unset or unknown."""

    name = (os.environ.get("CPQ_LOGGING_LEVEL") or "INFO").strip().upper()
    level = logging.getLevelName(name)
    return level if isinstance(level, int) else logging.INFO


@dataclass(frozen=True, slots=True)
class CPQSettings:
    access_key: str
    public_key: str
    private_key: str
    base_url: str = DEFAULT_BASE_URL
    enable_debug: bool = False
    debug_show_auth_token: bool = False
    timeout_seconds: float = 30.0
    max_pages: int | None = None

    @classmethod
    def from_env(cls) -> "CPQSettings":
        load_dotenv(override=False)

        missing = [
            name
            for name in ("CPQ_ACCESS_KEY", "CPQ_PUBLIC_KEY", "CPQ_PRIVATE_KEY")
            if not os.environ.get(name)
        ]
        if missing:
            raise ValueError(f"Missing {', '.join(missing)}")

        return cls(
            access_key=os.environ["CPQ_ACCESS_KEY"],
            public_key=os.environ["CPQ_PUBLIC_KEY"],
            private_key=os.environ["CPQ_PRIVATE_KEY"],
            base_url=os.environ.get("CPQ_BASE_URL") or DEFAULT_BASE_URL,
            enable_debug=_env_flag("CPQ_DEBUG"),
            debug_show_auth_token=_env_flag("CPQ_DEBUG_SHOW_AUTH_TOKEN"),
            timeout_seconds=_env_float("CPQ_HTTP_TIMEOUT_SECONDS", 30.0),
            max_pages=_env_optional_int("CPQ_MAX_PAGES", minimum=1),
        )
