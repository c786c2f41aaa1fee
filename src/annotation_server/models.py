"""
Data models for the annotation progress engine.

Defines the progress cursor singleton, per-track catalog records, the
annotation label payload and the fixed-length segment window.
"""

import math
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from pathlib import PurePosixPath
from typing import Any, Dict, List, Optional

from .errors import InvalidSegmentError

# Segment length fixed at commit time
SEGMENT_DURATION = 10.0

_ONE_DECIMAL = Decimal("0.1")


def format_folder(number: int, width: int = 3) -> str:
    """Render a folder number with fixed zero padding (4 -> '004')."""
    return str(number).zfill(width)


def next_folder(folder: str, width: int = 3) -> str:
    """Numeric increment of a folder id, re-padded ('009' -> '010')."""
    return format_folder(int(folder, 10) + 1, width)


def track_id_from_key(key: str) -> str:
    """Derive the stable track id from a storage key (file name minus extension)."""
    return PurePosixPath(key).stem


def round_start(value: float) -> float:
    """Round a start time to one decimal place, halves away from zero."""
    return float(Decimal(repr(value)).quantize(_ONE_DECIMAL, rounding=ROUND_HALF_UP))


@dataclass(frozen=True)
class SegmentWindow:
    """
    Half-open [start, end) interval over a track's audio, in seconds.

    Windows built through from_start() always have end - start equal to
    the segment duration and a start rounded to one decimal place.
    """
    start: float
    end: float

    @classmethod
    def from_start(cls, proposed_start: Any, duration: float = SEGMENT_DURATION) -> 'SegmentWindow':
        """
        Normalize a caller-chosen start into a canonical window.

        Any caller-supplied end time is irrelevant: end is always
        recomputed as start + duration.

        Raises:
            InvalidSegmentError: If the start is non-numeric, non-finite or negative.
        """
        if isinstance(proposed_start, bool):
            raise InvalidSegmentError(f"Start time must be numeric, got {proposed_start!r}")
        try:
            start = float(proposed_start)
        except (TypeError, ValueError):
            raise InvalidSegmentError(f"Start time must be numeric, got {proposed_start!r}")
        if not math.isfinite(start):
            raise InvalidSegmentError(f"Start time must be finite, got {proposed_start!r}")
        if start < 0:
            raise InvalidSegmentError(f"Start time must not be negative, got {start}")

        try:
            start = round_start(start)
        except InvalidOperation:
            raise InvalidSegmentError(f"Start time out of range: {proposed_start!r}")
        end = round_start(start + duration)
        return cls(start=start, end=end)

    @property
    def duration(self) -> float:
        return round_start(self.end - self.start)

    def to_dict(self) -> Dict[str, float]:
        return {'start': self.start, 'end': self.end}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'SegmentWindow':
        return cls(start=float(data['start']), end=float(data['end']))


def artifact_key(track_id: str, window: SegmentWindow, prefix: str = "processed") -> str:
    """
    Storage key for the derived audio artifact of a segment.

    Deterministic in (track_id, start, end): committing the same window
    twice yields the same key, so the second upload overwrites the first.
    """
    return f"{prefix}/{track_id}_{window.start:.1f}_{window.end:.1f}.wav"


@dataclass
class AnnotationLabel:
    """Human-chosen labels for a segment."""
    description: str
    instruments: List[str] = field(default_factory=list)
    aspects: List[str] = field(default_factory=list)
    tempo: str = ""
    genres: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'description': self.description,
            'instruments': list(self.instruments),
            'aspects': list(self.aspects),
            'tempo': self.tempo,
            'genres': list(self.genres),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'AnnotationLabel':
        return cls(
            description=data.get('description', ''),
            instruments=list(data.get('instruments') or []),
            aspects=list(data.get('aspects') or []),
            tempo=data.get('tempo') or "",
            genres=list(data.get('genres') or []),
        )


@dataclass
class Track:
    """
    Catalog record for a single audio file.

    Created unannotated the first time the resolver encounters the file,
    then mutated once per annotation event. Never deleted.
    """
    track_id: str
    folder_path: str            # e.g. "000/000123"
    file_name: str              # e.g. "000123.mp3"
    storage_key: str            # Full object key
    annotated: bool = False
    # Optional catalogue metadata
    title: Optional[str] = None
    artist: Optional[str] = None
    genre: Optional[str] = None
    # Annotation payload
    label: Optional[AnnotationLabel] = None
    processed_key: Optional[str] = None
    annotated_at: Optional[datetime] = None
    segment: Optional[SegmentWindow] = None

    @classmethod
    def from_storage_key(cls, key: str, folder: str) -> 'Track':
        """Factory for a fresh, unannotated track found during resolution."""
        file_name = PurePosixPath(key).name
        track_id = track_id_from_key(key)
        return cls(
            track_id=track_id,
            folder_path=f"{folder}/{track_id}",
            file_name=file_name,
            storage_key=key,
        )

    def with_annotation(
        self,
        label: AnnotationLabel,
        segment: SegmentWindow,
        processed_key: str,
        annotated_at: Optional[datetime] = None
    ) -> 'Track':
        """Copy of this track carrying a complete annotation payload."""
        return replace(
            self,
            annotated=True,
            label=label,
            segment=segment,
            processed_key=processed_key,
            annotated_at=annotated_at or datetime.now(timezone.utc),
        )

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to dictionary for storage and API responses."""
        data = {
            'id': self.track_id,
            'folder_path': self.folder_path,
            'file_name': self.file_name,
            'storage_key': self.storage_key,
            'annotated': self.annotated,
            'title': self.title,
            'artist': self.artist,
            'genre': self.genre,
            'processed_key': self.processed_key,
            'annotated_at': self.annotated_at.isoformat() if self.annotated_at else None,
            'segment': self.segment.to_dict() if self.segment else None,
        }
        label = self.label.to_dict() if self.label else {}
        data['description'] = label.get('description')
        data['instruments'] = label.get('instruments', [])
        data['aspect_list'] = label.get('aspects', [])
        data['tempo'] = label.get('tempo')
        data['genres'] = label.get('genres', [])
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Track':
        """Deserialize from dictionary."""
        label = None
        if data.get('description') is not None:
            label = AnnotationLabel(
                description=data['description'],
                instruments=list(data.get('instruments') or []),
                aspects=list(data.get('aspect_list') or []),
                tempo=data.get('tempo') or "",
                genres=list(data.get('genres') or []),
            )
        annotated_at = data.get('annotated_at')
        segment = data.get('segment')
        return cls(
            track_id=data['id'],
            folder_path=data['folder_path'],
            file_name=data['file_name'],
            storage_key=data['storage_key'],
            annotated=bool(data.get('annotated', False)),
            title=data.get('title'),
            artist=data.get('artist'),
            genre=data.get('genre'),
            label=label,
            processed_key=data.get('processed_key'),
            annotated_at=datetime.fromisoformat(annotated_at) if annotated_at else None,
            segment=SegmentWindow.from_dict(segment) if segment else None,
        )


@dataclass
class ProgressCursor:
    """
    Singleton record describing what the resolver serves next.

    current_file_index only has meaning against the current listing of
    current_folder; it resets to 0 on every folder rollover.
    """
    current_folder: str = "000"
    current_file_index: int = 0
    completed_folders: List[str] = field(default_factory=list)
    total_annotated: int = 0
    last_annotated_at: Optional[datetime] = None

    def skip_entry(self) -> 'ProgressCursor':
        """Advance past one entry of the current folder."""
        return replace(self, current_file_index=self.current_file_index + 1)

    def roll_over(self, folder: str) -> 'ProgressCursor':
        """Move to folder, marking the current folder completed."""
        completed = list(self.completed_folders)
        if self.current_folder not in completed:
            completed.append(self.current_folder)
        return replace(
            self,
            current_folder=folder,
            current_file_index=0,
            completed_folders=completed,
        )

    def record_annotation(self, annotated_at: datetime) -> 'ProgressCursor':
        """Count one committed annotation and move past its entry."""
        return replace(
            self,
            current_file_index=self.current_file_index + 1,
            total_annotated=self.total_annotated + 1,
            last_annotated_at=annotated_at,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'current_folder': self.current_folder,
            'current_file_index': self.current_file_index,
            'completed_folders': list(self.completed_folders),
            'total_annotated': self.total_annotated,
            'last_annotated_at': self.last_annotated_at.isoformat() if self.last_annotated_at else None,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ProgressCursor':
        last = data.get('last_annotated_at')
        return cls(
            current_folder=data.get('current_folder', "000"),
            current_file_index=int(data.get('current_file_index', 0)),
            completed_folders=list(data.get('completed_folders') or []),
            total_annotated=int(data.get('total_annotated', 0)),
            last_annotated_at=datetime.fromisoformat(last) if last else None,
        )


@dataclass
class ResolvedTrack:
    """Next track to annotate plus a time-limited URL for its audio."""
    track: Track
    original_url: str


@dataclass
class CorpusComplete:
    """Terminal resolution result: no folder in the namespace remains."""
    message: str = "All tracks have been annotated"
    complete: bool = True


@dataclass
class CommitResult:
    """Outcome of a successful annotation commit."""
    track: Track
    segment: SegmentWindow
    processed_key: str
    cursor: ProgressCursor
    reannotated: bool = False
