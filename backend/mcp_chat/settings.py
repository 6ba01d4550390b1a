"""Application-wide settings resolved from environment variables."""

from __future__ import annotations

import os
from dataclasses import dataclass


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    normalized = value.strip().lower()
    return normalized in {"1", "true", "yes", "on"}


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None:
        return default
    try:
        return float(value)
    except ValueError:
        return default


def _env_str(name: str, default: str | None = None) -> str | None:
    value = os.getenv(name)
    if value is None:
        return default
    normalized = value.strip()
    return normalized or default


def _env_list(name: str, default: list[str]) -> list[str]:
    value = _env_str(name)
    if value is None:
        return list(default)
    return [item.strip() for item in value.split(",") if item.strip()]


@dataclass(frozen=True)
class ProviderSettings:
    """Credentials and defaults for the model providers."""

    default_provider: str
    gemini_api_key: str | None
    gemini_model: str
    anthropic_api_key: str | None
    anthropic_model: str
    openai_api_key: str | None
    openai_base_url: str | None
    openai_model: str
    max_tokens: int

    @classmethod
    def from_env(cls) -> "ProviderSettings":
        return cls(
            default_provider=(_env_str("CHAT_DEFAULT_PROVIDER", "gemini") or "gemini").lower(),
            gemini_api_key=_env_str("GEMINI_API_KEY"),
            gemini_model=_env_str("GEMINI_MODEL", "gemini-2.5-flash") or "gemini-2.5-flash",
            anthropic_api_key=_env_str("ANTHROPIC_API_KEY"),
            anthropic_model=_env_str("ANTHROPIC_MODEL", "claude-sonnet-4-20250514")
            or "claude-sonnet-4-20250514",
            openai_api_key=_env_str("OPENAI_API_KEY"),
            openai_base_url=_env_str("OPENAI_BASE_URL"),
            openai_model=_env_str("OPENAI_MODEL", "gpt-4o-mini") or "gpt-4o-mini",
            max_tokens=max(256, _env_int("CHAT_MAX_TOKENS", 8192)),
        )


@dataclass(frozen=True)
class ChatSettings:
    """Conversation loop limits."""

    max_turns: int

    @classmethod
    def from_env(cls) -> "ChatSettings":
        return cls(max_turns=max(1, _env_int("CHAT_MAX_TURNS", 10)))


@dataclass(frozen=True)
class McpSettings:
    """Client identity and timeouts used when opening MCP channels."""

    client_name: str
    client_version: str
    connect_timeout_seconds: float

    @classmethod
    def from_env(cls) -> "McpSettings":
        return cls(
            client_name=_env_str("MCP_CLIENT_NAME", "mcp-chat") or "mcp-chat",
            client_version=_env_str("MCP_CLIENT_VERSION", "1.0.0") or "1.0.0",
            connect_timeout_seconds=max(1.0, _env_float("MCP_CONNECT_TIMEOUT_SECONDS", 30.0)),
        )


@dataclass(frozen=True)
class HttpSettings:
    """HTTP surface options."""

    cors_allow_origins: list[str]
    cors_allow_credentials: bool

    @classmethod
    def from_env(cls) -> "HttpSettings":
        return cls(
            cors_allow_origins=_env_list("CORS_ALLOW_ORIGINS", ["*"]),
            cors_allow_credentials=_env_bool("CORS_ALLOW_CREDENTIALS", True),
        )


class Settings:
    """Container for application settings."""

    def __init__(
        self,
        *,
        providers: ProviderSettings,
        chat: ChatSettings,
        mcp: McpSettings,
        http: HttpSettings,
    ) -> None:
        self.providers = providers
        self.chat = chat
        self.mcp = mcp
        self.http = http

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            providers=ProviderSettings.from_env(),
            chat=ChatSettings.from_env(),
            mcp=McpSettings.from_env(),
            http=HttpSettings.from_env(),
        )


_SETTINGS: Settings | None = None


def get_settings() -> Settings:
    """Return a cached Settings instance built from the current environment."""

    global _SETTINGS
    if _SETTINGS is None:
        _SETTINGS = Settings.from_env()
    return _SETTINGS


def reset_settings() -> None:
    """Drop the cached settings so the next lookup re-reads the environment."""

    global _SETTINGS
    _SETTINGS = None
