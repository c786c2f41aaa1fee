"""
Segment Annotator Module

Annotation progress engine for labelling fixed-length segments of a
foldered audio corpus.

Key components:
- NextTrackResolver: Finds the next track that still needs annotation
- AnnotationCommitCoordinator: Processes and atomically records annotations
- SqliteAnnotationRepository / InMemoryAnnotationRepository: Cursor and catalog storage
- LocalObjectStore: Directory-backed object store with signed URLs
- FfmpegTranscoder: Trims and resamples segments with ffmpeg
"""

from .audio_processing import FfmpegTranscoder
from .commit import AnnotationCommitCoordinator
from .config import AnnotatorConfig
from .models import (
    AnnotationLabel,
    CommitResult,
    CorpusComplete,
    ProgressCursor,
    ResolvedTrack,
    SegmentWindow,
    Track,
)
from .object_store import LocalObjectStore
from .resolver import NextTrackResolver
from .storage import InMemoryAnnotationRepository, SqliteAnnotationRepository

__all__ = [
    'AnnotatorConfig',
    'AnnotationCommitCoordinator',
    'AnnotationLabel',
    'CommitResult',
    'CorpusComplete',
    'FfmpegTranscoder',
    'InMemoryAnnotationRepository',
    'LocalObjectStore',
    'NextTrackResolver',
    'ProgressCursor',
    'ResolvedTrack',
    'SegmentWindow',
    'SqliteAnnotationRepository',
    'Track',
]
