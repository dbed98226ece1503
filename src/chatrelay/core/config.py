"""
ChatRelay Configuration — single source of truth for all settings.

Reads from environment variables (and a local .env file) with sensible
defaults. Loaded once at startup, immutable thereafter.

The persona values (BOT_NAME, MODEL_NAME, MODEL_IDENTITY, COMPANY_NAME)
keep their historical unprefixed names so existing .env files still work.
Everything else is prefixed with CHATRELAY_.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field

from dotenv import load_dotenv

from chatrelay.core.errors import ConfigError

load_dotenv()


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class BotConfig:
    """Identity values interpolated into the persona prompt and greeting."""

    name: str = "Relay"
    model_identity: str = "Gemini"
    company_name: str = ""

    @classmethod
    def from_env(cls) -> BotConfig:
        return cls(
            name=os.getenv("BOT_NAME", "Relay"),
            model_identity=os.getenv("MODEL_IDENTITY", "Gemini"),
            company_name=os.getenv("COMPANY_NAME", ""),
        )


@dataclass(frozen=True)
class LLMConfig:
    """AI backend settings."""

    provider: str = "gemini"
    api_key: str = ""
    model: str = "gemini-2.0-flash"
    base_url: str = ""  # OpenAI-compatible endpoints only
    timeout: float = 60.0  # seconds per chat turn
    max_history_turns: int = 0  # 0 = send the whole stored history

    @classmethod
    def from_env(cls) -> LLMConfig:
        provider = os.getenv("CHATRELAY_LLM_PROVIDER", "gemini").lower()
        if provider == "openai":
            api_key = os.getenv("OPENAI_API_KEY", "")
        else:
            api_key = os.getenv("GOOGLE_API_KEY", "")
        return cls(
            provider=provider,
            api_key=api_key,
            model=os.getenv("MODEL_NAME", "gemini-2.0-flash"),
            base_url=os.getenv("CHATRELAY_LLM_BASE_URL", ""),
            timeout=float(os.getenv("CHATRELAY_LLM_TIMEOUT", "60")),
            max_history_turns=int(os.getenv("CHATRELAY_MAX_HISTORY_TURNS", "0")),
        )

    @property
    def credential_name(self) -> str:
        return "OPENAI_API_KEY" if self.provider == "openai" else "GOOGLE_API_KEY"


@dataclass(frozen=True)
class BridgeConfig:
    """WhatsApp bridge sidecar settings."""

    url: str = "http://localhost:3000"
    token: str = ""
    timeout: float = 15.0
    public_url: str = "http://localhost:8000"  # where the bridge posts webhooks

    @classmethod
    def from_env(cls) -> BridgeConfig:
        return cls(
            url=os.getenv("CHATRELAY_BRIDGE_URL", "http://localhost:3000").rstrip("/"),
            token=os.getenv("CHATRELAY_BRIDGE_TOKEN", ""),
            timeout=float(os.getenv("CHATRELAY_BRIDGE_TIMEOUT", "15")),
            public_url=os.getenv(
                "CHATRELAY_PUBLIC_URL", "http://localhost:8000"
            ).rstrip("/"),
        )


@dataclass(frozen=True)
class ServerConfig:
    """HTTP server settings."""

    host: str = "0.0.0.0"
    port: int = 8000

    @classmethod
    def from_env(cls) -> ServerConfig:
        return cls(
            host=os.getenv("CHATRELAY_HOST", "0.0.0.0"),
            port=int(os.getenv("CHATRELAY_PORT", "8000")),
        )


@dataclass(frozen=True)
class RelayConfig:
    """Exchange pipeline settings."""

    serialize_exchanges: bool = True

    @classmethod
    def from_env(cls) -> RelayConfig:
        return cls(
            serialize_exchanges=_env_bool("CHATRELAY_SERIALIZE_EXCHANGES", "true"),
        )


@dataclass(frozen=True)
class ChatRelayConfig:
    """Root configuration."""

    bot: BotConfig = field(default_factory=BotConfig)
    llm: LLMConfig = field(default_factory=LLMConfig)
    bridge: BridgeConfig = field(default_factory=BridgeConfig)
    server: ServerConfig = field(default_factory=ServerConfig)
    relay: RelayConfig = field(default_factory=RelayConfig)

    @classmethod
    def from_env(cls) -> ChatRelayConfig:
        return cls(
            bot=BotConfig.from_env(),
            llm=LLMConfig.from_env(),
            bridge=BridgeConfig.from_env(),
            server=ServerConfig.from_env(),
            relay=RelayConfig.from_env(),
        )

    def validate(self) -> None:
        """Raise ConfigError when the process must not start."""
        if not self.llm.api_key:
            raise ConfigError(f"{self.llm.credential_name} is not set")
        if self.llm.provider not in ("gemini", "openai"):
            raise ConfigError(f"Unknown LLM provider: {self.llm.provider}")


# Singleton — import the module and read config_module.config so reloads apply
config = ChatRelayConfig.from_env()


def reload_config() -> ChatRelayConfig:
    """Re-read the environment into the module singleton."""
    global config
    config = ChatRelayConfig.from_env()
    return config
