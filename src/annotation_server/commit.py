"""
Annotation commit coordinator.

Turns a human-chosen segment start into a persisted annotation:

1. Normalize the window (start rounded to 0.1s, end = start + 10s)
2. Fetch the track
3. Sign a read URL for the source audio and read it
4. Transcode the window to mono 32 kHz WAV
5. Store the artifact under a key derived from (track, start, end)
6-7. Write the annotated track and advance the progress counters in a
     single repository transaction. Whether the commit counts is decided
     from the record read inside that transaction, so two annotators
     committing the same track advance the counters once.

Nothing is written to the catalog or the cursor before step 6, so any
failure earlier leaves the track unannotated and the counters untouched.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Optional

from .audio_processing import SegmentTranscoder
from .config import AnnotatorConfig
from .errors import TrackNotFoundError
from .models import AnnotationLabel, CommitResult, ProgressCursor, SegmentWindow, Track, artifact_key
from .object_store import ObjectStore
from .storage import AnnotationRepository

logger = logging.getLogger(__name__)


class AnnotationCommitCoordinator:
    """Validates, processes and atomically records annotations."""

    def __init__(
        self,
        repository: AnnotationRepository,
        store: ObjectStore,
        transcoder: SegmentTranscoder,
        config: Optional[AnnotatorConfig] = None
    ):
        self.repository = repository
        self.store = store
        self.transcoder = transcoder
        self.config = config or AnnotatorConfig()

    def commit(
        self,
        track_id: str,
        proposed_start: Any,
        label: AnnotationLabel,
        proposed_end: Any = None
    ) -> CommitResult:
        """
        Record an annotation for a segment of a track.

        Args:
            track_id: Catalog id of the track
            proposed_start: Caller-chosen start time in seconds
            label: Labels for the segment
            proposed_end: Ignored; the end is always start + segment duration

        Returns:
            CommitResult with the stored track and cursor.

        Raises:
            InvalidSegmentError: If the start is not a finite non-negative number.
            TrackNotFoundError: If the track is not catalogued.
            ObjectStoreError: If the source cannot be read or the artifact stored.
            TranscodeError: If audio processing fails.
            PersistenceConflictError: If the final transaction fails.
        """
        window = SegmentWindow.from_start(proposed_start, self.config.segment_duration)
        if proposed_end is not None:
            logger.debug(f"Discarding caller end time {proposed_end} for {track_id}; using {window.end}")

        track = self.repository.get_track(track_id)
        if track is None:
            raise TrackNotFoundError(track_id)

        source_url = self.store.sign(track.storage_key, self.config.signed_url_ttl)
        source = self.store.read_signed(source_url)
        processed = self.transcoder.transcode(source, window.start, window.end)

        processed_key = artifact_key(track_id, window, self.config.processed_prefix)
        self.store.put_object(processed_key, processed, content_type="audio/wav")

        committed_at = datetime.now(timezone.utc)
        annotated = track.with_annotation(label, window, processed_key, committed_at)

        def advance(stored: ProgressCursor, previous: Optional[Track]) -> Optional[ProgressCursor]:
            # Only the commit that flips the stored record counts
            if previous is not None and previous.annotated:
                return None
            return stored.record_annotation(committed_at)

        cursor, previous = self.repository.replace_track_transactionally(annotated, advance)
        reannotated = previous is not None and previous.annotated

        logger.info(
            f"{'Re-annotated' if reannotated else 'Annotated'} {track_id} "
            f"[{window.start:.1f}, {window.end:.1f}) -> {processed_key}; "
            f"total annotated {cursor.total_annotated}"
        )
        return CommitResult(
            track=annotated,
            segment=window,
            processed_key=processed_key,
            cursor=cursor,
            reannotated=reannotated,
        )
