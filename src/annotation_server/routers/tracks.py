"""
Tracks router.

Endpoints:
- GET /api/tracks/next - Next track requiring annotation, or completion
- GET /api/tracks/{track_id} - A catalogued track with a fresh signed URL
"""

import logging
from typing import Union

from fastapi import APIRouter

from ..models import CorpusComplete
from ..schemas import CorpusCompleteResponse, TrackResponse

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/tracks", tags=["tracks"])


@router.get("/next", response_model=Union[TrackResponse, CorpusCompleteResponse])
def get_next_track():
    """
    Resolve the next track to annotate.

    Skips tracks that are already annotated and rolls over exhausted
    folders. Returns {"complete": true} once the corpus is exhausted.
    Concurrent callers may be handed the same track.
    """
    from ..api import get_state

    result = get_state().resolver.resolve()
    if isinstance(result, CorpusComplete):
        return CorpusCompleteResponse(complete=True, message=result.message)
    return TrackResponse.from_resolved(result)


@router.get("/{track_id}", response_model=TrackResponse)
def get_track(track_id: str):
    """Get a catalogued track by id."""
    from ..api import get_state

    return TrackResponse.from_resolved(get_state().resolver.get_track(track_id))
