"""PostPolice cache server configuration - environment driven, loaded once at startup."""

import os
from dataclasses import dataclass, field
from typing import Optional

from dotenv import load_dotenv


PURGE_SCOPES = ("all", "namespace")


def _env_bool(name: str, default: bool) -> bool:
    return os.getenv(name, str(default)).lower() == "true"


@dataclass(frozen=True)
class Settings:
    """Runtime settings. Defaults match the extension's local setup (Valkey on 6379, server on 3000)."""

    redis_url: str = "redis://127.0.0.1:6379/0"
    ttl_seconds: int = 600
    key_namespace: str = "summary:"

    # Store connection policy
    store_timeout_sec: float = 2.0
    connect_attempts: int = 3
    backoff_step_ms: int = 200
    backoff_cap_ms: int = 2000
    reconnect_on_demand: bool = False
    purge_scope: str = "all"

    # /summarize proxy
    groq_api_key: Optional[str] = None
    groq_model: str = "llama-3.1-8b-instant"
    generator_timeout_sec: float = 30.0

    cors_origins: list[str] = field(default_factory=lambda: ["*"])
    host: str = "0.0.0.0"
    port: int = 3000
    log_level: str = "INFO"

    def __post_init__(self) -> None:
        if self.ttl_seconds <= 0:
            raise ValueError(f"CACHE_TTL_SECONDS must be positive, got {self.ttl_seconds}")
        if self.connect_attempts < 1:
            raise ValueError(f"STORE_CONNECT_ATTEMPTS must be >= 1, got {self.connect_attempts}")
        if self.store_timeout_sec <= 0:
            raise ValueError(f"STORE_TIMEOUT_SEC must be positive, got {self.store_timeout_sec}")
        if self.purge_scope not in PURGE_SCOPES:
            raise ValueError(f"PURGE_SCOPE must be one of {PURGE_SCOPES}, got {self.purge_scope!r}")


def load_settings() -> Settings:
    """Build Settings from the process environment (and .env, if present)."""
    load_dotenv()

    origins = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]

    return Settings(
        redis_url=os.getenv("REDIS_URL", "redis://127.0.0.1:6379/0"),
        ttl_seconds=int(os.getenv("CACHE_TTL_SECONDS", "600")),
        key_namespace=os.getenv("CACHE_KEY_NAMESPACE", "summary:"),
        store_timeout_sec=float(os.getenv("STORE_TIMEOUT_SEC", "2.0")),
        connect_attempts=int(os.getenv("STORE_CONNECT_ATTEMPTS", "3")),
        backoff_step_ms=int(os.getenv("STORE_BACKOFF_STEP_MS", "200")),
        backoff_cap_ms=int(os.getenv("STORE_BACKOFF_CAP_MS", "2000")),
        reconnect_on_demand=_env_bool("STORE_RECONNECT_ON_DEMAND", False),
        purge_scope=os.getenv("PURGE_SCOPE", "all").lower(),
        groq_api_key=os.getenv("GROQ_API_KEY") or None,
        groq_model=os.getenv("GROQ_MODEL", "llama-3.1-8b-instant"),
        generator_timeout_sec=float(os.getenv("GENERATOR_TIMEOUT_SEC", "30.0")),
        cors_origins=origins or ["*"],
        host=os.getenv("HOST", "0.0.0.0"),
        port=int(os.getenv("PORT", "3000")),
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
    )
