"""Read-only HTTP API over the local mirror."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware

from .db import DatabaseManager
from .errors import PersistenceError
from .models import PlayerResponse, RemoteVideo, record_to_remote

logger = logging.getLogger(__name__)

MAX_PAGE_SIZE = 20

router = APIRouter()


def get_store(request: Request) -> DatabaseManager:
    return request.app.state.store


@router.get("/videos", response_model=PlayerResponse)
def videos_index(
    limit: int = Query(MAX_PAGE_SIZE, ge=0),
    offset: int = Query(0, ge=0),
    store: DatabaseManager = Depends(get_store),
) -> PlayerResponse:
    limit = min(limit, MAX_PAGE_SIZE)
    try:
        count = store.count_videos()
        records = store.list_videos(limit=limit, offset=offset)
    except PersistenceError:
        logger.exception("Listing videos failed (limit=%d offset=%d)", limit, offset)
        raise HTTPException(status_code=503, detail="Video store unavailable")
    return PlayerResponse(count=count, videos=[record_to_remote(record) for record in records])


@router.get("/videos/{video_id}", response_model=RemoteVideo)
def video_show(video_id: str, store: DatabaseManager = Depends(get_store)) -> RemoteVideo:
    try:
        record = store.get_video(video_id)
    except PersistenceError:
        logger.exception("Loading video %s failed", video_id)
        raise HTTPException(status_code=503, detail="Video store unavailable")
    if record is None:
        raise HTTPException(status_code=404, detail="Video not found")
    return record_to_remote(record)


def create_app(store: DatabaseManager) -> FastAPI:
    """Build the API bound to ``store``; sync failures never reach callers."""
    app = FastAPI(
        title="Video Mirror",
        description="Read-only view of the mirrored video catalog",
        version="1.0.0",
    )
    app.state.store = store
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET"],
        allow_headers=["Content-Type", "Accept"],
    )
    app.include_router(router, prefix="/api/v1")
    return app


__all__ = ["MAX_PAGE_SIZE", "create_app", "router"]
