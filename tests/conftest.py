from __future__ import annotations

import asyncio
from typing import Any

import pytest

from endpoint_models.models import Caller, FetchedModels, FetchParams


class FakeFetcher:
    """Fetch collaborator double keyed by resolved base URL.

    A response value that is an Exception instance is raised instead of
    returned.
    """

    def __init__(
        self,
        responses: dict[str, Any] | None = None,
        details: dict[str, dict[str, Any]] | None = None,
    ) -> None:
        self.responses = responses or {}
        self.details = details or {}
        self.calls: list[FetchParams] = []

    def _lookup(self, params: FetchParams) -> Any:
        self.calls.append(params)
        value = self.responses.get(params.base_url, [])
        if isinstance(value, Exception):
            raise value
        return value

    async def fetch_models(self, params: FetchParams) -> list[str]:
        await asyncio.sleep(0)
        value = self._lookup(params)
        return list(value) if value is not None else None

    async def fetch_models_with_details(self, params: FetchParams) -> FetchedModels:
        await asyncio.sleep(0)
        value = self._lookup(params)
        return FetchedModels(
            models=list(value or []),
            model_details=dict(self.details.get(params.base_url, {})),
        )


def endpoint(name: str, base_url: str = "https://x", api_key: str = "K", **models: Any) -> dict:
    return {"name": name, "baseURL": base_url, "apiKey": api_key, "models": models}


@pytest.fixture
def caller() -> Caller:
    return Caller(id="user-1", role="USER")
