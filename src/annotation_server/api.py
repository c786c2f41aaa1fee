"""
FastAPI backend for the segment annotator.

Serves the annotation progress engine to the annotation UI:
- Next-track resolution and track lookup
- Annotation commits
- Progress reporting
- Signed media downloads for the local object store
"""

import logging
from dataclasses import dataclass
from typing import Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from . import db
from .audio_processing import FfmpegTranscoder, SegmentTranscoder
from .commit import AnnotationCommitCoordinator
from .config import AnnotatorConfig
from .errors import AnnotationError, MalformedRequestError
from .object_store import LocalObjectStore, ObjectStore
from .resolver import NextTrackResolver
from .storage import AnnotationRepository, SqliteAnnotationRepository

logger = logging.getLogger(__name__)

API_VERSION = "0.1.0"


@dataclass
class AppState:
    """Application state for the annotation server."""
    config: AnnotatorConfig
    repository: AnnotationRepository
    store: ObjectStore
    resolver: NextTrackResolver
    coordinator: AnnotationCommitCoordinator


# Global state
state: Optional[AppState] = None

app = FastAPI(
    title="Segment Annotator",
    description="Annotation progress engine for foldered audio corpora",
    version=API_VERSION,
)

# Enable CORS for frontend
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def get_state() -> AppState:
    """Get the application state."""
    if state is None:
        raise HTTPException(
            status_code=500,
            detail="Application not initialized. Start server with main.py."
        )
    return state


@app.exception_handler(AnnotationError)
async def annotation_error_handler(request: Request, exc: AnnotationError):
    """Render annotation failures as structured JSON errors."""
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    else:
        logger.info(f"{request.method} {request.url.path} rejected: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    """Render body validation failures in the same shape as annotation errors."""
    problems = "; ".join(
        f"{'.'.join(str(part) for part in err['loc'])}: {err['msg']}"
        for err in exc.errors()
    )
    return await annotation_error_handler(request, MalformedRequestError(problems))


@app.get("/api/health")
async def health():
    """Health check endpoint."""
    return {
        "status": "ok",
        "initialized": state is not None,
        "version": API_VERSION,
    }


def init_app(
    config: Optional[AnnotatorConfig] = None,
    repository: Optional[AnnotationRepository] = None,
    store: Optional[ObjectStore] = None,
    transcoder: Optional[SegmentTranscoder] = None
) -> AppState:
    """
    Initialize the application with its collaborators.

    Any collaborator not supplied is built from the config: a SQLite
    repository, a directory-backed object store and an ffmpeg transcoder.

    Args:
        config: Runtime settings (defaults to AnnotatorConfig.from_env())
        repository: Cursor/catalog store
        store: Object store gateway
        transcoder: Audio segment processor

    Returns:
        The initialized application state.
    """
    global state

    config = config or AnnotatorConfig.from_env()

    if repository is None:
        if config.db_path is not None:
            db.set_db_path(config.db_path)
        repository = SqliteAnnotationRepository(initial_folder=config.initial_folder)

    if store is None:
        store = LocalObjectStore(
            root=config.storage_dir,
            secret=config.url_secret,
            public_url=config.public_url,
        )

    if transcoder is None:
        transcoder = FfmpegTranscoder(
            binary=config.ffmpeg_binary,
            sample_rate=config.sample_rate,
            channels=config.channels,
            timeout=config.transcode_timeout,
            input_suffix=config.audio_extensions[0] if config.audio_extensions else ".mp3",
        )

    state = AppState(
        config=config,
        repository=repository,
        store=store,
        resolver=NextTrackResolver(repository, store, config),
        coordinator=AnnotationCommitCoordinator(repository, store, transcoder, config),
    )

    logger.info(
        f"Initialized annotator for {config.corpus_root}/"
        f"{config.initial_folder}..{config.max_folder:0{config.folder_width}d}"
    )
    return state


# ============================================================================
# Wire up routers
# ============================================================================

from .routers import (
    tracks_router,
    annotations_router,
    progress_router,
    media_router,
)

app.include_router(tracks_router)
app.include_router(annotations_router)
app.include_router(progress_router)
app.include_router(media_router)
