"""
Annotations router.

Endpoints:
- POST /api/annotations - Commit an annotation for a track segment
"""

import logging

from fastapi import APIRouter

from ..errors import InvalidLabelError
from ..models import AnnotationLabel
from ..schemas import AnnotationRequest, AnnotationResponse, ProgressResponse, SegmentResponse

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/annotations", tags=["annotations"])


@router.post("", response_model=AnnotationResponse)
def create_annotation(request: AnnotationRequest):
    """
    Commit an annotation.

    The segment start is rounded to one decimal place and the end is
    fixed at start + 10s regardless of end_time. The processed WAV is
    stored before the track and progress counters are updated together.
    """
    from ..api import get_state

    if not request.description.strip():
        raise InvalidLabelError("Description cannot be empty")

    label = AnnotationLabel(
        description=request.description.strip(),
        instruments=request.instruments or [],
        aspects=request.aspect_list or [],
        tempo=request.tempo or "",
        genres=request.genres or [],
    )

    result = get_state().coordinator.commit(
        request.track_id,
        request.start_time,
        label,
        proposed_end=request.end_time,
    )

    return AnnotationResponse(
        success=True,
        track_id=result.track.track_id,
        segment=SegmentResponse.from_window(result.segment),
        processed_key=result.processed_key,
        reannotated=result.reannotated,
        progress=ProgressResponse.from_cursor(result.cursor),
    )
