"""FastAPI application for booru_search.

Provides REST endpoints for image search, tag discovery, cache statistics
and cache management on top of ``QueryOrchestrator``.
"""

from __future__ import annotations

import logging
import time
from contextlib import asynccontextmanager
from typing import Any, Dict, List, Optional

from fastapi import Depends, FastAPI, HTTPException, Query, Request, status
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field

from booru_search import __version__
from booru_search.core.config import get_config
from booru_search.core.error_recovery import InvalidQueryError
from booru_search.core.logging_setup import configure_from_config
from booru_search.core.orchestrator import QueryOrchestrator

logger = logging.getLogger(__name__)

config = get_config()
_started_at = time.monotonic()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler for startup and shutdown events."""
    # === STARTUP ===
    query_logger = configure_from_config(config)

    if getattr(app.state, "orchestrator", None) is None:
        app.state.orchestrator = QueryOrchestrator(config, query_logger=query_logger)
    await app.state.orchestrator.__aenter__()
    logger.info(
        "booru_search API ready (%d sources, strategy=%s)",
        len(app.state.orchestrator.sources),
        app.state.orchestrator.strategy.name,
    )

    yield

    # === SHUTDOWN ===
    logger.info("booru_search API shutting down...")
    await app.state.orchestrator.close()


app = FastAPI(
    title="booru_search API",
    description="Multi-source booru image search with tag resolution and caching",
    version=__version__,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def get_orchestrator(request: Request) -> QueryOrchestrator:
    """Dependency returning the orchestrator created at startup."""
    return request.app.state.orchestrator


def _require_character(character: Optional[str]) -> str:
    if character is None or not character.strip():
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Character name required")
    return character


# Pydantic models
class SearchResponse(BaseModel):
    """Search response envelope."""

    success: bool = True
    character: str
    series: Optional[str] = None
    page: int
    limit: int
    totalImages: int
    totalPages: int
    images: List[Dict[str, Any]]
    sources: Dict[str, int]
    cached: bool
    timing: int = Field(..., description="Server-side handling time in milliseconds")


class TagsResponse(BaseModel):
    """Tag discovery response envelope."""

    success: bool = True
    tags: Dict[str, str]


class MessageResponse(BaseModel):
    success: bool = True
    message: str


@app.get("/health")
async def health() -> Dict[str, Any]:
    """Liveness check."""
    return {"status": "ok", "uptime": round(time.monotonic() - _started_at, 3)}


@app.get("/api/search", response_model=SearchResponse)
async def search(
    character: Optional[str] = Query(None, description="Character name"),
    series: Optional[str] = Query(None, description="Series the character is from"),
    page: int = Query(1, ge=1),
    limit: int = Query(100, ge=1, le=1000),
    orchestrator: QueryOrchestrator = Depends(get_orchestrator),
) -> SearchResponse:
    """Search every source for a character and return one page of images."""
    start_time = time.time()
    character = _require_character(character)

    try:
        result = await orchestrator.search(character, series, page=page, page_size=limit)
    except InvalidQueryError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    return SearchResponse(
        character=character,
        series=series or None,
        page=page,
        limit=limit,
        totalImages=result.total_images,
        totalPages=result.total_pages,
        images=[image.to_dict() for image in result.images],
        sources=result.source_counts,
        cached=result.cached,
        timing=int((time.time() - start_time) * 1000),
    )


@app.get("/api/tags", response_model=TagsResponse)
async def tags(
    character: Optional[str] = Query(None, description="Character name"),
    series: Optional[str] = Query(None, description="Series the character is from"),
    orchestrator: QueryOrchestrator = Depends(get_orchestrator),
) -> TagsResponse:
    """Show the tag each source would be searched with."""
    character = _require_character(character)
    try:
        resolved = await orchestrator.discover_tags(character, series)
    except InvalidQueryError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    return TagsResponse(tags=resolved.to_dict())


@app.get("/api/stats")
async def stats(orchestrator: QueryOrchestrator = Depends(get_orchestrator)) -> Dict[str, Any]:
    """Cache and per-source admission statistics."""
    details = orchestrator.stats()
    return {
        "cache": details["cache"],
        "sources": details["sources"],
        "uptime": round(time.monotonic() - _started_at, 3),
    }


@app.post("/api/cache/clear", response_model=MessageResponse)
async def clear_cache(orchestrator: QueryOrchestrator = Depends(get_orchestrator)) -> MessageResponse:
    """Drop every cached search result and resolved tag set."""
    orchestrator.clear_cache()
    return MessageResponse(message="Cache cleared")
