"""Public package surface for endpoint_models.

Expose the primary entry points used by consumers of the package.
"""

__version__ = "0.1.0"

from endpoint_models.cache import (
    DiskCacheStore,
    MemoryCacheStore,
    ModelsConfigService,
    create_cache_store,
)
from endpoint_models.config import settings
from endpoint_models.discovery import ModelFetcher
from endpoint_models.models import (
    Caller,
    DetailedModelsConfig,
    EndpointConfig,
    PlainModelsConfig,
    Verbosity,
)
from endpoint_models.pipeline import load_config_models

__all__ = [
    "Caller",
    "DetailedModelsConfig",
    "DiskCacheStore",
    "EndpointConfig",
    "MemoryCacheStore",
    "ModelFetcher",
    "ModelsConfigService",
    "PlainModelsConfig",
    "Verbosity",
    "__version__",
    "create_cache_store",
    "load_config_models",
    "settings",
]
