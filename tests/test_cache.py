from __future__ import annotations

from unittest.mock import AsyncMock

import pytest

from conftest import FakeFetcher, endpoint
from endpoint_models.cache import (
    DiskCacheStore,
    MemoryCacheStore,
    ModelsConfigService,
    create_cache_store,
)
from endpoint_models.config import settings
from endpoint_models.models import DetailedModelsConfig, PlainModelsConfig, Verbosity

DEFAULTS = {"openAI": ["gpt-4o"], "shared": ["from-defaults"]}


def _service(app_config, fetcher=None, store=None):
    defaults = AsyncMock(side_effect=lambda caller: dict(DEFAULTS))
    service = ModelsConfigService(
        store if store is not None else MemoryCacheStore(),
        fetcher if fetcher is not None else FakeFetcher(),
        app_config_loader=lambda: app_config,
        defaults_loader=defaults,
    )
    return service, defaults


class TestStores:
    @pytest.mark.asyncio
    async def test_memory_store_roundtrip_and_delete(self):
        store = MemoryCacheStore(maxsize=4)
        assert await store.get("k") is None
        await store.set("k", {"a": ["b"]})
        assert await store.get("k") == {"a": ["b"]}
        await store.delete("k")
        await store.delete("k")
        assert await store.get("k") is None

    @pytest.mark.asyncio
    async def test_disk_store_persists_across_instances(self, tmp_path):
        first = DiskCacheStore(str(tmp_path))
        await first.set("k", PlainModelsConfig(models={"a": ["m"]}))
        first.close()

        second = DiskCacheStore(str(tmp_path))
        try:
            assert await second.get("k") == PlainModelsConfig(models={"a": ["m"]})
        finally:
            second.close()

    def test_create_cache_store_respects_backend(self, monkeypatch, tmp_path):
        monkeypatch.setattr(settings, "cache_backend", "disk")
        monkeypatch.setattr(settings, "cache_dir", str(tmp_path / "cache"))
        store = create_cache_store()
        assert isinstance(store, DiskCacheStore)
        store.close()

        monkeypatch.setattr(settings, "cache_backend", "bogus")
        assert isinstance(create_cache_store(), MemoryCacheStore)


@pytest.mark.asyncio
async def test_miss_merges_custom_over_defaults(caller):
    fetcher = FakeFetcher({"https://x": ["m1"]})
    cfg = {"endpoints": {"custom": [endpoint("shared", fetch=True), endpoint("B", fetch=True)]}}
    service, _ = _service(cfg, fetcher)

    result = await service.load_models(caller)

    assert isinstance(result, PlainModelsConfig)
    assert result.models == {"openAI": ["gpt-4o"], "shared": ["m1"], "B": ["m1"]}


@pytest.mark.asyncio
async def test_hit_skips_defaults_and_fetches(caller):
    fetcher = FakeFetcher({"https://x": ["m1"]})
    store = MemoryCacheStore()
    service, defaults = _service(
        {"endpoints": {"custom": [endpoint("A", fetch=True)]}}, fetcher, store
    )

    first = await service.load_models(caller)
    second = await service.load_models(caller)

    assert second == first
    assert second == await store.get(Verbosity.PLAIN.cache_key)
    assert defaults.await_count == 1
    assert len(fetcher.calls) == 1


@pytest.mark.asyncio
async def test_mutating_a_result_leaves_the_cached_slot_intact(caller):
    fetcher = FakeFetcher({"https://x": ["m1"]}, details={"https://x": {"m1": {"context_length": 8}}})
    service, _ = _service({"endpoints": {"custom": [endpoint("A", fetch=True)]}}, fetcher)

    first = await service.load_models(caller, Verbosity.DETAILED)
    first.models["A"].append("injected")
    first.models["rogue"] = ["x"]
    first.model_details["m1"]["context_length"] = 1

    second = await service.load_models(caller, Verbosity.DETAILED)
    second.models.clear()

    third = await service.load_models(caller, Verbosity.DETAILED)
    assert third.models["A"] == ["m1"]
    assert "rogue" not in third.models
    assert third.model_details == {"m1": {"context_length": 8}}
    assert len(fetcher.calls) == 1


@pytest.mark.asyncio
async def test_verbosity_slots_are_independent(caller):
    fetcher = FakeFetcher({"https://x": ["m1"]}, details={"https://x": {"m1": {"context_length": 8}}})
    store = MemoryCacheStore()
    service, _ = _service({"endpoints": {"custom": [endpoint("A", fetch=True)]}}, fetcher, store)

    plain = await service.load_models(caller, Verbosity.PLAIN)
    detailed = await service.load_models(caller, Verbosity.DETAILED)

    assert isinstance(plain, PlainModelsConfig)
    assert isinstance(detailed, DetailedModelsConfig)
    assert detailed.model_details == {"m1": {"context_length": 8}}
    assert Verbosity.PLAIN.cache_key == "MODELS_CONFIG"
    assert Verbosity.DETAILED.cache_key == "MODELS_CONFIG_details"
    assert len(store) == 2
    assert len(fetcher.calls) == 2


@pytest.mark.asyncio
async def test_malformed_custom_list_returns_defaults(caller):
    service, _ = _service({"endpoints": {"custom": "nope"}})
    result = await service.load_models(caller)
    assert result.models == DEFAULTS


@pytest.mark.asyncio
async def test_absent_config_returns_defaults(caller):
    service, _ = _service(None)
    detailed = await service.load_models(caller, Verbosity.DETAILED)
    assert detailed.models == DEFAULTS
    assert detailed.model_details == {}


@pytest.mark.asyncio
async def test_fetch_failure_propagates_and_nothing_is_cached(caller):
    fetcher = FakeFetcher({"https://x": RuntimeError("boom")})
    store = MemoryCacheStore()
    service, _ = _service({"endpoints": {"custom": [endpoint("A", fetch=True)]}}, fetcher, store)

    with pytest.raises(RuntimeError):
        await service.load_models(caller)
    assert await store.get(Verbosity.PLAIN.cache_key) is None


@pytest.mark.asyncio
async def test_invalidate_forces_recompute(caller):
    fetcher = FakeFetcher({"https://x": ["m1"]})
    service, defaults = _service({"endpoints": {"custom": [endpoint("A", fetch=True)]}}, fetcher)

    await service.load_models(caller)
    await service.load_models(caller, Verbosity.DETAILED)
    await service.invalidate()
    await service.load_models(caller)

    assert defaults.await_count == 3
    assert len(fetcher.calls) == 3
