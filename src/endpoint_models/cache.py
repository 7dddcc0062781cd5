"""
cache.py - Cache-aside resolution of the full models config.

Two slots, one per Verbosity:
  MODELS_CONFIG          plain  {endpoint: [ids]}
  MODELS_CONFIG_details  detailed  {models, modelDetails}

On a hit a copy of the stored value is returned.  On a miss the static
defaults are loaded, the custom-endpoint pipeline runs, custom entries
overwrite same-named defaults, and the merged value is written back.
Callers always get their own copy, so mutating a result never touches
the cached slot.

There is no lock around the miss path: concurrent misses recompute and
overwrite the same slot with equal values.

Backends:
  memory  cachetools.TTLCache / LRUCache (per process)
  disk    diskcache.Cache (persistent across restarts)
"""

from __future__ import annotations

import copy
import logging
import os
from typing import Any, Awaitable, Callable, Dict, Optional, Protocol

import diskcache
from cachetools import LRUCache, TTLCache

from endpoint_models.config import load_app_config, settings
from endpoint_models.defaults import load_default_models
from endpoint_models.models import (
    Caller,
    DetailedModelsConfig,
    ModelsConfig,
    PlainModelsConfig,
    ResolvedModelsConfig,
    Verbosity,
)
from endpoint_models.pipeline import ModelsFetcher, load_config_models

logger = logging.getLogger(__name__)

DefaultsLoader = Callable[[Caller], Awaitable[ModelsConfig]]
AppConfigLoader = Callable[[], Optional[Dict[str, Any]]]


# ══════════════════════════════════════════════════════════════════════════════
# Cache stores
# ══════════════════════════════════════════════════════════════════════════════


class CacheStore(Protocol):
    async def get(self, key: str) -> Any: ...

    async def set(self, key: str, value: Any) -> None: ...

    async def delete(self, key: str) -> None: ...


class MemoryCacheStore:
    """Per-process store.  ``ttl`` of 0 keeps entries until evicted or cleared."""

    def __init__(self, maxsize: int = 64, ttl: float = 0) -> None:
        if ttl > 0:
            self._store: Any = TTLCache(maxsize=maxsize, ttl=ttl)
        else:
            self._store = LRUCache(maxsize=maxsize)

    async def get(self, key: str) -> Any:
        return self._store.get(key)

    async def set(self, key: str, value: Any) -> None:
        self._store[key] = value

    async def delete(self, key: str) -> None:
        self._store.pop(key, None)

    def __len__(self) -> int:
        return len(self._store)


class DiskCacheStore:
    """diskcache-backed store shared by every worker on the host."""

    def __init__(self, directory: str, ttl: float = 0) -> None:
        os.makedirs(directory, exist_ok=True)
        self._cache = diskcache.Cache(directory)
        self._expire = ttl if ttl > 0 else None
        logger.info("Models config cache: diskcache at %s", directory)

    async def get(self, key: str) -> Any:
        return self._cache.get(key)

    async def set(self, key: str, value: Any) -> None:
        self._cache.set(key, value, expire=self._expire)

    async def delete(self, key: str) -> None:
        self._cache.delete(key)

    def close(self) -> None:
        self._cache.close()


def create_cache_store() -> CacheStore:
    """Build the store selected by ``settings.cache_backend``."""
    ttl = float(settings.models_config_cache_ttl)
    backend = settings.cache_backend.lower()
    if backend == "disk":
        return DiskCacheStore(settings.cache_dir, ttl=ttl)
    if backend != "memory":
        logger.warning("Unknown CACHE_BACKEND %r - using memory", settings.cache_backend)
    return MemoryCacheStore(maxsize=settings.cache_max_entries, ttl=ttl)


# ══════════════════════════════════════════════════════════════════════════════
# ModelsConfigService
# ══════════════════════════════════════════════════════════════════════════════


class ModelsConfigService:
    """
    Resolves and caches the models config served to clients.

    Usage::

        service = ModelsConfigService(MemoryCacheStore(), ModelFetcher())
        plain = await service.load_models(caller)
        detailed = await service.load_models(caller, Verbosity.DETAILED)
    """

    def __init__(
        self,
        store: CacheStore,
        fetcher: ModelsFetcher,
        app_config_loader: AppConfigLoader = load_app_config,
        defaults_loader: DefaultsLoader = load_default_models,
    ) -> None:
        self.store = store
        self.fetcher = fetcher
        self._load_app_config = app_config_loader
        self._load_defaults = defaults_loader

    async def load_models(
        self, caller: Caller, verbosity: Verbosity = Verbosity.PLAIN
    ) -> ResolvedModelsConfig:
        key = verbosity.cache_key
        cached = await self.store.get(key)
        if cached is not None:
            logger.debug("Models config cache hit (%s)", key)
            return copy.deepcopy(cached)

        logger.debug("Models config cache miss (%s) - resolving", key)
        defaults = await self._load_defaults(caller)
        custom = await load_config_models(
            caller, self.fetcher, self._load_app_config(), verbosity
        )

        result: ResolvedModelsConfig
        if isinstance(custom, DetailedModelsConfig):
            result = DetailedModelsConfig(
                models={**defaults, **custom.models},
                model_details=custom.model_details,
            )
        else:
            result = PlainModelsConfig(models={**defaults, **custom.models})

        await self.store.set(key, result)
        return copy.deepcopy(result)

    async def invalidate(self) -> None:
        """Drop both slots so the next request recomputes."""
        for verbosity in Verbosity:
            await self.store.delete(verbosity.cache_key)
        logger.info("Models config cache cleared")
