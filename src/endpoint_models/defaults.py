"""
defaults.py - Static default model lists for the built-in endpoints.
"""

from __future__ import annotations

import logging
import os

from endpoint_models.config import DEFAULT_ENDPOINT_MODELS, DEFAULT_MODELS_ENV
from endpoint_models.models import Caller, ModelsConfig

logger = logging.getLogger(__name__)


def _split_models(raw: str) -> list[str]:
    return [m.strip() for m in raw.split(",") if m.strip()]


async def load_default_models(caller: Caller) -> ModelsConfig:
    """Baseline models config for ``caller``.

    The result does not depend on the caller's role.  Each call returns a
    fresh mapping so callers may merge into it freely.
    """
    out: ModelsConfig = {}
    for endpoint, models in DEFAULT_ENDPOINT_MODELS.items():
        env_name = DEFAULT_MODELS_ENV.get(endpoint)
        override = os.getenv(env_name, "") if env_name else ""
        if override.strip():
            out[endpoint] = _split_models(override)
        else:
            out[endpoint] = list(models)
    logger.debug("Loaded default models for %d endpoints (user=%s)", len(out), caller.id)
    return out
