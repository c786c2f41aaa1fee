"""
Progress router.

Endpoints:
- GET /api/progress - Current progress cursor (created with defaults if absent)
"""

from fastapi import APIRouter

from ..schemas import ProgressResponse

router = APIRouter(prefix="/api/progress", tags=["progress"])


@router.get("", response_model=ProgressResponse)
def get_progress():
    """Get the annotation progress cursor."""
    from ..api import get_state

    return ProgressResponse.from_cursor(get_state().repository.get_cursor())
