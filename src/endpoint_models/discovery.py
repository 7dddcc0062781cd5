"""
discovery.py - Live model listing for configured endpoints.

Responsibilities:
  • Call a provider's model-listing REST endpoint for one (baseURL, apiKey) pair
  • Parse provider-specific response shapes into plain model ids
  • Optionally collect per-model metadata (parameters, context length)
  • Degrade to an empty list when the provider is unreachable or answers badly

Callers decide what an empty list means (usually: use configured defaults).

Dependencies: httpx (async HTTP)
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Tuple

import httpx

from endpoint_models.config import extract_env_variable, settings
from endpoint_models.models import FetchedModels, FetchParams, ModelDetails

logger = logging.getLogger(__name__)


# ══════════════════════════════════════════════════════════════════════════════
# Per-provider response parsers
# ══════════════════════════════════════════════════════════════════════════════


def _context_length(item: Dict[str, Any]) -> Optional[int]:
    ctx = item.get("context_length") or item.get("context_window")
    try:
        return int(ctx) if ctx else None
    except (TypeError, ValueError):
        return None


def _item_details(item: Dict[str, Any]) -> ModelDetails:
    details: ModelDetails = {}
    params = item.get("parameters")
    if isinstance(params, list):
        details["parameters"] = params
    elif isinstance(item.get("supported_parameters"), list):
        details["parameters"] = [{"name": p} for p in item["supported_parameters"]]
    ctx = _context_length(item)
    if ctx:
        details["context_length"] = ctx
    return details


def _parse_openai_style(data: Any) -> List[Tuple[str, ModelDetails]]:
    """OpenAI-compatible ``{"data": [{"id": ...}]}``; a bare list is accepted too."""
    if isinstance(data, dict):
        items = data.get("data") or []
    else:
        items = data

    out: List[Tuple[str, ModelDetails]] = []
    if not isinstance(items, list):
        return out
    for item in items:
        if isinstance(item, str):
            out.append((item, {}))
            continue
        if not isinstance(item, dict):
            continue
        mid = item.get("id")
        if mid and isinstance(mid, str):
            out.append((mid, _item_details(item)))
    return out


def _parse_ollama_tags(data: Any) -> List[Tuple[str, ModelDetails]]:
    """Ollama /api/tags - local model list."""
    out: List[Tuple[str, ModelDetails]] = []
    items = data.get("models") if isinstance(data, dict) else None
    if not isinstance(items, list):
        return out
    for item in items:
        if not isinstance(item, dict):
            continue
        mid = item.get("name") or item.get("model")
        if mid and isinstance(mid, str):
            out.append((mid, _item_details(item)))
    return out


# ══════════════════════════════════════════════════════════════════════════════
# ModelFetcher
# ══════════════════════════════════════════════════════════════════════════════


class ModelFetcher:
    """
    Fetch collaborator used by the resolution pipeline.

    Usage::

        fetcher = ModelFetcher()
        ids = await fetcher.fetch_models(params)
        fetched = await fetcher.fetch_models_with_details(params)
    """

    def __init__(
        self,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._timeout = float(timeout if timeout is not None else settings.fetch_timeout)
        self._transport = transport

    # ── Public interface ───────────────────────────────────────────────────────

    async def fetch_models(self, params: FetchParams) -> List[str]:
        records = await self._list_models(params)
        return [mid for mid, _ in records]

    async def fetch_models_with_details(self, params: FetchParams) -> FetchedModels:
        records = await self._list_models(params)
        result = FetchedModels()
        for mid, details in records:
            result.models.append(mid)
            if details:
                result.model_details[mid] = details
        return result

    # ── Internal ───────────────────────────────────────────────────────────────

    async def _list_models(self, params: FetchParams) -> List[Tuple[str, ModelDetails]]:
        is_ollama = params.name == "ollama"
        url = self._models_url(params.base_url, direct=params.direct, ollama=is_ollama)
        query = self._build_query(params)
        headers = self._build_headers(params)

        try:
            data = await self._fetch_json(url, headers, query)
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning("Failed to fetch models for %s from %s: %s", params.name, url, exc)
            return []

        records = _parse_ollama_tags(data) if is_ollama else _parse_openai_style(data)
        logger.debug("Fetched %d models for %s", len(records), params.name)
        return records

    async def _fetch_json(
        self, url: str, headers: Dict[str, str], query: Dict[str, str]
    ) -> Any:
        async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
            r = await client.get(url, headers=headers, params=query or None)
            r.raise_for_status()
            return r.json()

    @staticmethod
    def _models_url(base_url: str, direct: bool = False, ollama: bool = False) -> str:
        base = base_url.rstrip("/")
        if ollama:
            if base.endswith("/v1"):
                base = base[: -len("/v1")]
            return f"{base}/api/tags"
        if direct and base.endswith("/chat/completions"):
            base = base[: -len("/chat/completions")]
        return f"{base}/models"

    @staticmethod
    def _build_headers(params: FetchParams) -> Dict[str, str]:
        headers: Dict[str, str] = {}
        if params.api_key:
            headers["Authorization"] = f"Bearer {params.api_key}"
        for key, value in (params.headers or {}).items():
            headers[key] = str(extract_env_variable(value))
        return headers

    @staticmethod
    def _build_query(params: FetchParams) -> Dict[str, str]:
        if not params.user_id_query:
            return {}
        param_name = params.user_id_query if isinstance(params.user_id_query, str) else "user"
        return {param_name: params.user_id}
