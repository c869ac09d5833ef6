#!/usr/bin/env python3
"""
Meta Search Service - HTTP API
Fan-out web search across many engines with deduplication, ranking and tiered fallback.
"""

import asyncio
import logging
import sys
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import uvicorn
from fastapi import Depends, FastAPI, Query as QueryParam, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from . import __version__
from .config.settings import settings
from .exceptions import AllProvidersUnreachable, MetaSearchError, ValidationError
from .search.aggregator import AggregationEngine

logger = logging.getLogger(__name__)

SERVICE_NAME = "Meta Search Service"


# Request models
class AdvancedSearchRequest(BaseModel):
    query: str = Field(..., min_length=1, max_length=500, description="Search query")
    engines: List[str] = Field(..., min_length=1, max_length=4, description="Engines or 'all'/'default'")
    page: int = Field(1, ge=1, description="Result page")
    safe: Optional[bool] = Field(None, description="Safe search")


class PreferencesUpdate(BaseModel):
    default_engine: Optional[str] = Field(None, description="Engine name, 'all' or 'default'")
    results_per_page: Optional[int] = Field(None, description="Results per page (5-50)")
    safe_search: Optional[bool] = Field(None, description="Safe search")


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


def client_id_from(request: Request) -> Optional[str]:
    """First X-Forwarded-For hop, else the socket peer."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    if request.client:
        return request.client.host
    return None


def get_engine(request: Request) -> AggregationEngine:
    return request.app.state.engine


def _search_payload(outcome) -> Dict[str, Any]:
    return {
        "results_count": len(outcome.results),
        "results": [result.to_dict() for result in outcome.results],
        "trace": outcome.trace(),
    }


def create_app(engine: Optional[AggregationEngine] = None) -> FastAPI:
    """Build the FastAPI application; the engine is created from settings when not given."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Lifespan event handler for FastAPI app"""
        # Startup
        search_engine = engine or AggregationEngine.from_settings(settings)
        await search_engine.initialize()
        app.state.engine = search_engine
        logger.info("HTTP API Server started")

        yield

        # Shutdown
        await search_engine.cleanup()
        logger.info("HTTP API Server stopped")

    app = FastAPI(
        title=SERVICE_NAME,
        description="Aggregated web search with deduplication, reliability ranking and tiered fallback",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        return JSONResponse(
            status_code=400,
            content={"error": "Validation failed", "details": jsonable_encoder(exc.errors())},
        )

    @app.exception_handler(ValidationError)
    async def validation_handler(request: Request, exc: ValidationError):
        return JSONResponse(
            status_code=400,
            content={"error": "Validation failed", "details": [exc.to_dict()]},
        )

    @app.exception_handler(AllProvidersUnreachable)
    async def unreachable_handler(request: Request, exc: AllProvidersUnreachable):
        logger.error(f"Search failed: {exc}")
        return JSONResponse(
            status_code=503,
            content={
                "error": "All search providers unreachable",
                "message": str(exc),
                "failed_engines": [error.to_dict() for _, error in exc.failures],
            },
        )

    @app.exception_handler(MetaSearchError)
    async def service_error_handler(request: Request, exc: MetaSearchError):
        logger.error(f"Search service error: {exc}", exc_info=True)
        return JSONResponse(status_code=500, content={"error": "Search failed", "message": str(exc)})

    @app.exception_handler(Exception)
    async def unexpected_error_handler(request: Request, exc: Exception):
        logger.error(f"Unexpected error on {request.url.path}: {exc}", exc_info=True)
        return JSONResponse(status_code=500, content={"error": "Search failed", "message": str(exc)})

    @app.get("/")
    async def root():
        """Service info"""
        return {
            "status": "ok",
            "service": SERVICE_NAME,
            "version": __version__,
            "endpoints": [
                "/health",
                "/api/search",
                "/api/search/history",
                "/api/search/preferences",
                "/api/search/engines",
                "/api/search/cache",
                "/api/search/advanced",
            ],
        }

    @app.get("/health")
    async def health(search_engine: AggregationEngine = Depends(get_engine)):
        """Health check with more details"""
        return {
            "status": "healthy",
            "service": SERVICE_NAME,
            "version": __version__,
            "timestamp": _timestamp(),
            "engines": len(search_engine.list_engines()),
            "cache": await search_engine.cache_stats(),
        }

    @app.get("/api/search")
    async def search_endpoint(
        request: Request,
        q: str = QueryParam(..., min_length=1, max_length=500, description="Search query"),
        engine: Optional[str] = QueryParam(None, description="Engine name, 'all' or 'default'"),
        page: int = QueryParam(1, ge=1, description="Result page"),
        safe: Optional[bool] = QueryParam(None, description="Safe search"),
        fallback: Optional[bool] = QueryParam(None, description="Escalate through tiers"),
        search_engine: AggregationEngine = Depends(get_engine),
    ):
        """Web search endpoint"""
        outcome = await search_engine.search_with_trace(
            q,
            engine=engine,
            page=page,
            safe=safe,
            client_id=client_id_from(request),
            fallback=fallback,
        )
        return {
            "query": outcome.query.text,
            "engine": outcome.selector,
            "page": outcome.query.page,
            "safe": outcome.query.safe_search,
            **_search_payload(outcome),
            "timestamp": _timestamp(),
        }

    @app.get("/api/search/history")
    async def history_endpoint(
        request: Request,
        limit: int = QueryParam(50, ge=1, le=100),
        search_engine: AggregationEngine = Depends(get_engine),
    ):
        """Recent searches for the calling client"""
        history = await search_engine.get_history(limit=limit, client_id=client_id_from(request))
        return {"history": history, "count": len(history)}

    @app.get("/api/search/preferences")
    async def get_preferences_endpoint(request: Request, search_engine: AggregationEngine = Depends(get_engine)):
        preferences = await search_engine.get_preferences(client_id_from(request))
        return {"preferences": preferences.to_dict()}

    @app.put("/api/search/preferences")
    async def update_preferences_endpoint(
        request: Request,
        update: PreferencesUpdate,
        search_engine: AggregationEngine = Depends(get_engine),
    ):
        client_id = client_id_from(request)
        if client_id is None:
            raise ValidationError("client", "Cannot identify client")
        preferences = await search_engine.update_preferences(client_id, update.model_dump(exclude_none=True))
        return {"message": "Preferences updated", "preferences": preferences.to_dict()}

    @app.get("/api/search/engines")
    async def engines_endpoint(search_engine: AggregationEngine = Depends(get_engine)):
        descriptors = search_engine.list_engines()
        return {
            "engines": search_engine.selectors(),
            "descriptors": [descriptor.to_dict() for descriptor in descriptors],
            "count": len(descriptors),
        }

    @app.delete("/api/search/cache")
    async def clear_cache_endpoint(search_engine: AggregationEngine = Depends(get_engine)):
        cleared = await search_engine.clear_cache()
        return {"message": "Cache cleared", "cleared": cleared}

    @app.post("/api/search/advanced")
    async def advanced_search_endpoint(
        request: Request,
        body: AdvancedSearchRequest,
        search_engine: AggregationEngine = Depends(get_engine),
    ):
        """One independent search per selector; a failing selector does not fail the others"""
        client_id = client_id_from(request)

        async def run_one(selector: str) -> Dict[str, Any]:
            try:
                outcome = await search_engine.search_with_trace(
                    body.query, engine=selector, page=body.page, safe=body.safe, client_id=client_id
                )
            except MetaSearchError as e:
                logger.warning(f"Advanced search failed for {selector}: {e}")
                return {"error": type(e).__name__, "message": str(e)}
            return _search_payload(outcome)

        selectors = list(dict.fromkeys(body.engines))
        payloads = await asyncio.gather(*(run_one(selector) for selector in selectors))
        return {
            "query": body.query,
            "page": body.page,
            "results": dict(zip(selectors, payloads)),
            "timestamp": _timestamp(),
        }

    return app


app = create_app()


def run_http_server():
    """Run HTTP server"""
    uvicorn.run(
        "metasearch.server:app",
        host=settings.config.host,
        port=settings.config.port,
        reload=settings.config.debug,
        log_level=settings.config.log_level.lower(),
    )


def main():
    """Point d'entrée principal du serveur HTTP"""
    settings.setup_logging()

    if not settings.validate_config():
        logger.error("Configuration invalide, arrêt du serveur")
        sys.exit(1)

    logger.info(f"Starting HTTP server on {settings.config.host}:{settings.config.port}")
    run_http_server()


if __name__ == "__main__":
    main()
