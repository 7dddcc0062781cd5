"""
config.py - Centralised configuration for endpoint model resolution.

Tunable knobs, the static default-model catalogue and the small helpers that
interpret raw configuration values (env indirection, user-supplied
placeholders, endpoint-name normalisation) live here.  Nothing deeper in the
stack reads os.environ directly.
"""

from __future__ import annotations

import json
import logging
import os
import re
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)


def _env_bool(key: str, default: bool) -> bool:
    val = os.getenv(key, "").lower()
    if val in ("1", "true", "yes"):
        return True
    if val in ("0", "false", "no"):
        return False
    return default


class Settings:
    """
    Simple settings object populated from environment variables.

    Call ``reload()`` after changing the environment (e.g. loading a .env
    file) to pick up new values.
    """

    def __init__(self) -> None:
        self.reload()

    def reload(self) -> None:
        # Server
        self.host: str = os.getenv("ROUTER_HOST", "0.0.0.0")
        self.port: int = int(os.getenv("ROUTER_PORT", "7544"))
        self.log_level: str = os.getenv("LOG_LEVEL", "INFO")
        self.debug: bool = _env_bool("DEBUG", False)

        # Application config (custom endpoints, azure)
        self.endpoints_config_path: str = os.getenv("ENDPOINTS_CONFIG_PATH", "endpoints.json")

        # Provider model listing
        self.fetch_timeout: int = int(os.getenv("FETCH_TIMEOUT", "10"))

        # Cache
        self.cache_backend: str = os.getenv("CACHE_BACKEND", "memory")
        self.cache_dir: str = os.getenv("CACHE_DIR", "/tmp/endpoint_models_cache")
        # 0 disables expiry; the resolved config then lives until overwritten or cleared
        self.models_config_cache_ttl: int = int(os.getenv("MODELS_CONFIG_CACHE_TTL", "0"))
        self.cache_max_entries: int = int(os.getenv("CACHE_MAX_ENTRIES", "64"))


settings = Settings()


class EndpointModelsError(Exception):
    """Base error for this package."""


class ConfigError(EndpointModelsError):
    """The application config exists but cannot be read."""


# ══════════════════════════════════════════════════════════════════════════════
# Well-known endpoint names and cache keys
# ══════════════════════════════════════════════════════════════════════════════

CUSTOM_ENDPOINT = "custom"
AZURE_OPENAI_ENDPOINT = "azureOpenAI"
AZURE_ASSISTANTS_ENDPOINT = "azureAssistants"

MODELS_CONFIG_CACHE_KEY = "MODELS_CONFIG"
DETAILS_CACHE_SUFFIX = "_details"

# Sentinel meaning "the end user supplies this value per request"
USER_PROVIDED = "user_provided"


# ── Static default model lists (baseline for every resolution) ───────────────
#
# Each list can be replaced at deploy time through <ENDPOINT>_MODELS, e.g.
# OPENAI_MODELS="gpt-4o,gpt-4o-mini".

DEFAULT_ENDPOINT_MODELS: dict[str, list[str]] = {
    "openAI": [
        "gpt-4o",
        "gpt-4o-mini",
        "gpt-4.1",
        "gpt-4.1-mini",
        "o3-mini",
    ],
    "anthropic": [
        "claude-3-5-sonnet-20241022",
        "claude-3-5-haiku-20241022",
        "claude-3-haiku-20240307",
    ],
    "google": [
        "gemini-2.0-flash",
        "gemini-1.5-pro",
        "gemini-1.5-flash",
    ],
    "bedrock": [
        "anthropic.claude-3-5-sonnet-20241022-v2:0",
        "meta.llama3-1-70b-instruct-v1:0",
    ],
    "assistants": [
        "gpt-4o",
        "gpt-4o-mini",
    ],
}

DEFAULT_MODELS_ENV: dict[str, str] = {
    "openAI": "OPENAI_MODELS",
    "anthropic": "ANTHROPIC_MODELS",
    "google": "GOOGLE_MODELS",
    "bedrock": "BEDROCK_AWS_MODELS",
    "assistants": "ASSISTANTS_MODELS",
}


# ══════════════════════════════════════════════════════════════════════════════
# Value helpers
# ══════════════════════════════════════════════════════════════════════════════

_ENV_REF = re.compile(r"\$\{([^}]+)\}")


def extract_env_variable(value: Any) -> Any:
    """Resolve ``${NAME}`` references in a configured value.

    Unknown variables are left untouched so a missing secret surfaces as an
    obviously wrong literal instead of an empty string.  Non-string values
    are returned as-is.
    """
    if not isinstance(value, str) or "${" not in value:
        return value

    def _sub(match: re.Match[str]) -> str:
        return os.environ.get(match.group(1).strip(), match.group(0))

    return _ENV_REF.sub(_sub, value)


def is_user_provided(value: Any) -> bool:
    return value == USER_PROVIDED


def normalize_endpoint_name(name: str) -> str:
    """Canonical display name for an endpoint (``Ollama`` -> ``ollama``)."""
    if name.lower() == "ollama":
        return "ollama"
    return name


def models_config_cache_key(include_details: bool) -> str:
    if include_details:
        return MODELS_CONFIG_CACHE_KEY + DETAILS_CACHE_SUFFIX
    return MODELS_CONFIG_CACHE_KEY


def load_app_config(path: str | os.PathLike[str] | None = None) -> dict[str, Any] | None:
    """Read the JSON application config.

    Returns None when no config is available (no path or no file).  A file
    that exists but is not a JSON object raises ConfigError.
    """
    if path is None:
        path = settings.endpoints_config_path
    if not path:
        return None

    cfg_path = Path(path)
    if not cfg_path.is_file():
        logger.debug("No application config at %s", cfg_path)
        return None

    try:
        data = json.loads(cfg_path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        raise ConfigError(f"Cannot read application config {cfg_path}: {exc}") from exc

    if not isinstance(data, dict):
        raise ConfigError(f"Application config {cfg_path} must be a JSON object")
    return data
