"""
pipeline.py - Resolve model lists for the custom endpoints of the app config.

Stages, run once per resolution:
  1. filter_endpoints   keep well-formed, eligible endpoint declarations
  2. plan_fetches       group fetch-requiring endpoints by FetchKey, take
                        defaults directly for everything else
  3. run_fetches        one provider call per FetchKey, all concurrent, joined
  4. merge_results      scatter each result to its group, substituting
                        defaults for empty lists and merging model details

Nothing here keeps state between calls; caching happens in cache.py.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Protocol, Union

from pydantic import ValidationError

from endpoint_models.config import (
    AZURE_ASSISTANTS_ENDPOINT,
    AZURE_OPENAI_ENDPOINT,
    CUSTOM_ENDPOINT,
    extract_env_variable,
    is_user_provided,
    normalize_endpoint_name,
)
from endpoint_models.models import (
    Caller,
    DetailedModelsConfig,
    EndpointConfig,
    FetchedModels,
    FetchKey,
    FetchParams,
    ModelDetails,
    ModelList,
    ModelsConfig,
    PlainModelsConfig,
    ResolvedModelsConfig,
    Verbosity,
)

logger = logging.getLogger(__name__)


class ModelsFetcher(Protocol):
    async def fetch_models(self, params: FetchParams) -> ModelList: ...

    async def fetch_models_with_details(self, params: FetchParams) -> FetchedModels: ...


FetchResult = Union[ModelList, FetchedModels, None]


# ══════════════════════════════════════════════════════════════════════════════
# 1. Endpoint filter
# ══════════════════════════════════════════════════════════════════════════════


def _is_eligible(raw: Any) -> bool:
    if not isinstance(raw, dict):
        return False
    models = raw.get("models")
    return bool(
        raw.get("baseURL")
        and raw.get("apiKey")
        and raw.get("name")
        and isinstance(models, dict)
        and (models.get("fetch") or models.get("default"))
    )


def filter_endpoints(custom_endpoints: List[Any]) -> List[EndpointConfig]:
    """Return the eligible endpoints of ``endpoints.custom``, parsed."""
    eligible: List[EndpointConfig] = []
    for raw in custom_endpoints:
        if not _is_eligible(raw):
            continue
        try:
            eligible.append(EndpointConfig.model_validate(raw))
        except ValidationError as exc:
            logger.warning("Skipping malformed custom endpoint %r: %s", raw.get("name"), exc)
    return eligible


# ══════════════════════════════════════════════════════════════════════════════
# 2. Key deduplication
# ══════════════════════════════════════════════════════════════════════════════


@dataclass
class FetchPlan:
    """Request-local grouping of endpoints by the provider call they share."""
    models: ModelsConfig = field(default_factory=dict)
    endpoints: Dict[str, EndpointConfig] = field(default_factory=dict)
    # insertion order is the order each key was first seen
    groups: Dict[FetchKey, List[str]] = field(default_factory=dict)
    params: Dict[FetchKey, FetchParams] = field(default_factory=dict)


def _fetch_params(name: str, endpoint: EndpointConfig, key: FetchKey, caller: Caller) -> FetchParams:
    return FetchParams(
        name=name,
        api_key=key.api_key,
        base_url=key.base_url,
        caller=caller,
        headers=endpoint.headers,
        direct=endpoint.direct_endpoint,
        user_id_query=endpoint.models.user_id_query,
    )


def _forget(plan: FetchPlan, name: str, caller: Caller) -> None:
    """Drop an earlier declaration of ``name`` from every fetch group."""
    for key in list(plan.groups):
        group = plan.groups[key]
        if name not in group:
            continue
        group.remove(name)
        if not group:
            del plan.groups[key]
            del plan.params[key]
        elif plan.params[key].name == name:
            first = group[0]
            plan.params[key] = _fetch_params(first, plan.endpoints[first], key, caller)


def plan_fetches(endpoints: List[EndpointConfig], caller: Caller) -> FetchPlan:
    """Group endpoints by FetchKey.  A repeated name replaces its earlier declaration."""
    plan = FetchPlan()

    for endpoint in endpoints:
        name = normalize_endpoint_name(endpoint.name)
        if name in plan.endpoints:
            logger.debug("Endpoint %r declared again - later declaration wins", name)
            _forget(plan, name, caller)
        plan.endpoints[name] = endpoint
        plan.models[name] = []

        api_key = extract_env_variable(endpoint.api_key)
        base_url = extract_env_variable(endpoint.base_url)

        if endpoint.models.fetch and not is_user_provided(api_key) and not is_user_provided(base_url):
            key = FetchKey(base_url=base_url, api_key=api_key)
            if key not in plan.params:
                plan.params[key] = _fetch_params(name, endpoint, key, caller)
            plan.groups.setdefault(key, []).append(name)
            continue

        plan.models[name] = endpoint.models.default_names()

    logger.debug(
        "Planned %d fetch(es) for %d fetching endpoint(s)",
        len(plan.groups),
        sum(len(names) for names in plan.groups.values()),
    )
    return plan


# ══════════════════════════════════════════════════════════════════════════════
# 3. Fetch coordination
# ══════════════════════════════════════════════════════════════════════════════


async def run_fetches(
    plan: FetchPlan, fetcher: ModelsFetcher, verbosity: Verbosity
) -> Dict[FetchKey, FetchResult]:
    """Issue one fetch per key and wait for all of them.

    A failure escaping the fetcher propagates to the caller.
    """
    if not plan.params:
        return {}
    fetch_fn = (
        fetcher.fetch_models_with_details if verbosity.include_details else fetcher.fetch_models
    )
    keys = list(plan.params)
    results = await asyncio.gather(*(fetch_fn(plan.params[k]) for k in keys))
    return dict(zip(keys, results))


# ══════════════════════════════════════════════════════════════════════════════
# 4. Result merging
# ══════════════════════════════════════════════════════════════════════════════


def _with_fallback(endpoint: EndpointConfig, fetched: Optional[ModelList], name: str) -> ModelList:
    if fetched:
        return list(fetched)
    defaults = endpoint.models.default_names()
    logger.info("No models fetched for %s - using %d configured default(s)", name, len(defaults))
    return defaults


def merge_results(
    plan: FetchPlan,
    fetched: Dict[FetchKey, FetchResult],
    verbosity: Verbosity,
) -> ResolvedModelsConfig:
    models: ModelsConfig = dict(plan.models)
    all_details: Dict[str, ModelDetails] = {}
    detail_source: Dict[str, str] = {}

    for key, names in plan.groups.items():
        data = fetched.get(key)
        if isinstance(data, FetchedModels):
            model_list: Optional[ModelList] = data.models
        else:
            model_list = data

        for name in names:
            models[name] = _with_fallback(plan.endpoints[name], model_list, name)

        if verbosity.include_details and isinstance(data, FetchedModels):
            group_name = plan.params[key].name
            for mid, details in data.model_details.items():
                if mid in all_details and all_details[mid] != details:
                    logger.warning(
                        "Model details for %s from %s replace those from %s",
                        mid,
                        group_name,
                        detail_source[mid],
                    )
                all_details[mid] = details
                detail_source[mid] = group_name

    if verbosity.include_details:
        return DetailedModelsConfig(models=models, model_details=all_details)
    return PlainModelsConfig(models=models)


# ══════════════════════════════════════════════════════════════════════════════
# Entry point
# ══════════════════════════════════════════════════════════════════════════════


def _empty(verbosity: Verbosity, models: Optional[ModelsConfig] = None) -> ResolvedModelsConfig:
    if verbosity.include_details:
        return DetailedModelsConfig(models=models or {})
    return PlainModelsConfig(models=models or {})


def _azure_models(endpoints: Dict[str, Any]) -> ModelsConfig:
    out: ModelsConfig = {}
    azure = endpoints.get(AZURE_OPENAI_ENDPOINT)
    if not isinstance(azure, dict):
        return out
    if azure.get("modelNames"):
        out[AZURE_OPENAI_ENDPOINT] = list(azure["modelNames"])
    if azure.get("assistants") and azure.get("assistantModels"):
        out[AZURE_ASSISTANTS_ENDPOINT] = list(azure["assistantModels"])
    return out


async def load_config_models(
    caller: Caller,
    fetcher: ModelsFetcher,
    app_config: Optional[Dict[str, Any]],
    verbosity: Verbosity = Verbosity.PLAIN,
) -> ResolvedModelsConfig:
    """Models config for the endpoints declared in ``app_config``."""
    if not app_config:
        return _empty(verbosity)

    endpoints = app_config.get("endpoints")
    if not isinstance(endpoints, dict):
        endpoints = {}

    base = _azure_models(endpoints)
    custom = endpoints.get(CUSTOM_ENDPOINT)
    if not isinstance(custom, list):
        if custom is not None:
            logger.warning("endpoints.custom is not a list - ignoring custom endpoints")
        return _empty(verbosity, base)

    plan = plan_fetches(filter_endpoints(custom), caller)
    plan.models = {**base, **plan.models}
    fetched = await run_fetches(plan, fetcher, verbosity)
    return merge_results(plan, fetched, verbosity)
