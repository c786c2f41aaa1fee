"""
Pydantic models for the annotation API.

All request/response schemas for track, progress and annotation endpoints.
"""
from __future__ import annotations

from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from .models import ProgressCursor, ResolvedTrack, SegmentWindow, Track


# ============================================================================
# Progress
# ============================================================================


class ProgressResponse(BaseModel):
    """Progress cursor state."""
    current_folder: str
    current_file_index: int
    completed_folders: List[str]
    total_annotated: int
    last_annotated_at: Optional[str] = None

    @classmethod
    def from_cursor(cls, cursor: ProgressCursor) -> ProgressResponse:
        return cls(**cursor.to_dict())


# ============================================================================
# Tracks
# ============================================================================


class SegmentResponse(BaseModel):
    """Normalized [start, end) window in seconds."""
    start: float
    end: float

    @classmethod
    def from_window(cls, window: SegmentWindow) -> SegmentResponse:
        return cls(start=window.start, end=window.end)


class TrackResponse(BaseModel):
    """A catalogued track, with its annotation payload if present."""
    id: str
    folder_path: str
    file_name: str
    storage_key: str
    annotated: bool
    title: Optional[str] = None
    artist: Optional[str] = None
    genre: Optional[str] = None
    description: Optional[str] = None
    instruments: List[str] = []
    aspect_list: List[str] = []
    tempo: Optional[str] = None
    genres: List[str] = []
    processed_key: Optional[str] = None
    annotated_at: Optional[str] = None
    segment: Optional[SegmentResponse] = None
    original_url: Optional[str] = None

    @classmethod
    def from_track(cls, track: Track, original_url: Optional[str] = None) -> TrackResponse:
        return cls(**track.to_dict(), original_url=original_url)

    @classmethod
    def from_resolved(cls, resolved: ResolvedTrack) -> TrackResponse:
        return cls.from_track(resolved.track, resolved.original_url)


class CorpusCompleteResponse(BaseModel):
    """Returned by /api/tracks/next once every folder is processed."""
    complete: bool = True
    message: str


# ============================================================================
# Annotations
# ============================================================================


class AnnotationRequest(BaseModel):
    """Submit an annotation for a segment of a track.

    end_time is accepted for compatibility with older clients and ignored:
    the stored window is always start_time (rounded) + 10 seconds.
    start_time is validated by SegmentWindow so that non-numeric input
    surfaces as invalid_segment rather than a body validation error.
    """
    model_config = ConfigDict(populate_by_name=True)

    track_id: str = Field(alias="trackId")
    start_time: Any = Field(alias="startTime")
    end_time: Any = Field(default=None, alias="endTime")
    description: str
    instruments: Optional[List[str]] = None
    aspect_list: Optional[List[str]] = None
    tempo: Optional[str] = None
    genres: Optional[List[str]] = None


class AnnotationResponse(BaseModel):
    """Result of a successful commit."""
    success: bool = True
    track_id: str
    segment: SegmentResponse
    processed_key: str
    reannotated: bool = False
    progress: ProgressResponse


class ErrorResponse(BaseModel):
    """Structured error body."""
    error: str
    detail: str
    retryable: bool = False
