"""
server.py - FastAPI application serving resolved models configs.

  GET  /api/models             models per endpoint (?includeDetails=true adds modelDetails)
  GET  /health                 liveness probe
  POST /admin/cache/clear      drop cached models configs
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from fastapi import Depends, FastAPI, Header, Query
from fastapi.responses import JSONResponse

from endpoint_models.cache import ModelsConfigService, create_cache_store
from endpoint_models.config import settings
from endpoint_models.discovery import ModelFetcher
from endpoint_models.models import Caller, Verbosity

logger = logging.getLogger(__name__)

# ── Singleton service instance ────────────────────────────────────────────────
_service: ModelsConfigService | None = None  # pylint: disable=invalid-name


def get_service() -> ModelsConfigService:
    """Return the ModelsConfigService created during lifespan startup."""
    if _service is None:
        raise RuntimeError("Service not initialised - check lifespan startup")
    return _service


def get_caller(
    x_user_id: str | None = Header(None),
    x_user_role: str | None = Header(None),
) -> Caller:
    return Caller(id=x_user_id or "anonymous", role=x_user_role)


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
    # pylint: disable=global-statement
    global _service
    _service = ModelsConfigService(create_cache_store(), ModelFetcher())
    logger.info("Models config service started (cache=%s)", settings.cache_backend)
    try:
        yield
    finally:
        close = getattr(_service.store, "close", None)
        if close is not None:
            close()
        _service = None


app = FastAPI(
    title="Endpoint Models",
    version="0.1.0",
    description="Resolves the models available per configured endpoint.",
    lifespan=lifespan,
)


# ══════════════════════════════════════════════════════════════════════════════
# Routes
# ══════════════════════════════════════════════════════════════════════════════


@app.get("/health", tags=["Observability"])
async def health() -> dict[str, str]:
    return {"status": "ok"}


@app.get("/api/models", tags=["Models"])
async def list_models(
    include_details: str | None = Query(None, alias="includeDetails"),
    caller: Caller = Depends(get_caller),
    service: ModelsConfigService = Depends(get_service),
) -> Any:
    try:
        # only the literal "true" selects the detailed shape
        verbosity = Verbosity.from_flag(include_details == "true")
        resolved = await service.load_models(caller, verbosity)
    except Exception as exc:  # pylint: disable=broad-except
        logger.exception("Error fetching models")
        return JSONResponse(status_code=500, content={"error": str(exc)})
    return resolved.to_payload()


@app.post("/admin/cache/clear", tags=["Admin"])
async def clear_cache(service: ModelsConfigService = Depends(get_service)) -> dict[str, str]:
    await service.invalidate()
    return {"status": "cleared"}


# ══════════════════════════════════════════════════════════════════════════════
# Entry point
# ══════════════════════════════════════════════════════════════════════════════


def main():
    import argparse

    import uvicorn
    from dotenv import load_dotenv

    load_dotenv(override=False)
    settings.reload()

    parser = argparse.ArgumentParser(description="Start the endpoint models server.")
    parser.add_argument("--host", default=settings.host, help="Host to bind to")
    parser.add_argument("--port", type=int, default=settings.port, help="Port to bind to")
    parser.add_argument(
        "--debug",
        action="store_true",
        default=settings.debug,
        help="Enable reload/debug mode",
    )
    args = parser.parse_args()

    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
    )
    uvicorn.run(
        "endpoint_models.server:app",
        host=args.host,
        port=args.port,
        reload=args.debug,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
