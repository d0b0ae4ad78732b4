"""
Configuration constants, environment getters and Pydantic models for aether.

Values come from the process environment (a `.env` file is loaded by the
CLI before anything here is read). Settings are read once and handed to
the provider registry; nothing mutates them afterwards.
"""

import os
from pathlib import Path
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict

from aether.errors import ConfigurationError


# ─────────────────────────────────────────────────────────────────────
# DEFAULTS
# ─────────────────────────────────────────────────────────────────────

DEFAULT_PROVIDER: str = "ollama"

DEFAULT_MODELS: dict[str, str] = {
    "ollama": "llama3",
    "openai": "gpt-4",
    "anthropic": "claude-3-5-sonnet-20241022",
    "gemini": "gemini-1.5-pro",
    "mock": "mock-provider",
}

SUPPORTED_PROVIDERS: tuple[str, ...] = tuple(DEFAULT_MODELS)
LOCAL_PROVIDERS: frozenset[str] = frozenset({"ollama", "mock"})

DEFAULT_OLLAMA_URL: str = "http://localhost:11434"
DEFAULT_OPENAI_BASE_URL: str = "https://api.openai.com/v1"

DEFAULT_CONNECT_TIMEOUT_SECONDS: float = 10.0
DEFAULT_HISTORY_LIMIT: int = 5
DEFAULT_MAX_CONTEXT_FILES: int = 10
DEFAULT_TMP_DIR: str = "/tmp/aether"


# ─────────────────────────────────────────────────────────────────────
# CREDENTIAL VARIABLES
# ─────────────────────────────────────────────────────────────────────

OPENAI_API_KEY_VAR = "AETHER_OPENAI_API_KEY"
ANTHROPIC_API_KEY_VAR = "AETHER_ANTHROPIC_API_KEY"
GEMINI_API_KEY_VAR = "AETHER_GEMINI_API_KEY"


def require_env(variable: str) -> str:
    """
    Return a non-empty environment variable or fail naming it.

    Raises:
        ConfigurationError: If the variable is unset or blank
    """
    value = os.environ.get(variable, "").strip()
    if not value:
        raise ConfigurationError(f"{variable} not set", variable=variable)
    return value


# ─────────────────────────────────────────────────────────────────────
# ENVIRONMENT GETTERS
# ─────────────────────────────────────────────────────────────────────

def _get_float(name: str, default: Optional[float]) -> Optional[float]:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _get_int(name: str, default: int) -> int:
    try:
        return int(os.environ.get(name, str(default)))
    except ValueError:
        return default


def _get_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def get_provider_name() -> str:
    """Provider from AETHER_PROVIDER (default: ollama)."""
    return os.environ.get("AETHER_PROVIDER", DEFAULT_PROVIDER).strip().lower()


def get_model(provider: str) -> str:
    """Model from AETHER_MODEL, else the provider's default."""
    model = os.environ.get("AETHER_MODEL", "").strip()
    return model or DEFAULT_MODELS.get(provider, DEFAULT_MODELS[DEFAULT_PROVIDER])


def get_tmp_dir() -> Path:
    """
    Directory shared with the shell hooks.

    Set AETHER_TMP_DIR to relocate it (default: /tmp/aether).
    """
    return Path(os.environ.get("AETHER_TMP_DIR", DEFAULT_TMP_DIR))


# ─────────────────────────────────────────────────────────────────────
# DATA MODELS
# ─────────────────────────────────────────────────────────────────────

class ModelType(BaseModel):
    """Cloud(identifier) | Local(identifier). Selection only, not streaming."""
    model_config = ConfigDict(frozen=True)

    kind: Literal["cloud", "local"]
    identifier: str

    @classmethod
    def cloud(cls, identifier: str) -> "ModelType":
        return cls(kind="cloud", identifier=identifier)

    @classmethod
    def local(cls, identifier: str) -> "ModelType":
        return cls(kind="local", identifier=identifier)

    @property
    def is_local(self) -> bool:
        return self.kind == "local"


class Settings(BaseModel):
    """Read-only inputs for building a provider and enriching requests."""
    model_config = ConfigDict(frozen=True)

    provider: str = DEFAULT_PROVIDER
    model: str = DEFAULT_MODELS[DEFAULT_PROVIDER]
    ollama_base_url: str = DEFAULT_OLLAMA_URL
    openai_base_url: str = DEFAULT_OPENAI_BASE_URL
    connect_timeout: float = DEFAULT_CONNECT_TIMEOUT_SECONDS
    read_timeout: Optional[float] = None  # None = wait for the provider indefinitely
    history_limit: int = DEFAULT_HISTORY_LIMIT
    max_context_files: int = DEFAULT_MAX_CONTEXT_FILES
    include_context: bool = True
    detect_destructive_commands: bool = True

    @property
    def model_type(self) -> ModelType:
        if self.provider in LOCAL_PROVIDERS:
            return ModelType.local(self.model)
        return ModelType.cloud(self.model)


def load_settings(
    provider: Optional[str] = None,
    model: Optional[str] = None,
) -> Settings:
    """
    Build Settings from the environment, with optional CLI overrides.

    Raises:
        ConfigurationError: If the provider name is not supported
    """
    provider = (provider or get_provider_name()).strip().lower()
    if provider not in SUPPORTED_PROVIDERS:
        raise ConfigurationError(
            f"Unknown provider '{provider}'. "
            f"Choose one of: {', '.join(SUPPORTED_PROVIDERS)} (AETHER_PROVIDER).",
            variable="AETHER_PROVIDER",
        )

    return Settings(
        provider=provider,
        model=model or get_model(provider),
        ollama_base_url=os.environ.get("AETHER_OLLAMA_URL", DEFAULT_OLLAMA_URL).rstrip("/"),
        openai_base_url=os.environ.get("AETHER_OPENAI_BASE_URL", DEFAULT_OPENAI_BASE_URL).rstrip("/"),
        connect_timeout=_get_float("AETHER_CONNECT_TIMEOUT", DEFAULT_CONNECT_TIMEOUT_SECONDS),
        read_timeout=_get_float("AETHER_READ_TIMEOUT", None),
        history_limit=_get_int("AETHER_HISTORY_LIMIT", DEFAULT_HISTORY_LIMIT),
        max_context_files=_get_int("AETHER_MAX_CONTEXT_FILES", DEFAULT_MAX_CONTEXT_FILES),
        include_context=_get_bool("AETHER_INCLUDE_CONTEXT", True),
        detect_destructive_commands=_get_bool("AETHER_DETECT_DESTRUCTIVE", True),
    )
