"""
Next-track resolver.

Walks the foldered corpus in a deterministic order to find the next track
that still needs annotation:

1. List the current folder and keep audio keys, sorted byte-wise.
2. If the cursor index is past the end, roll over to the next folder
   (or report the corpus complete once the namespace is exhausted).
3. Catalog the candidate if it is new.
4. If the candidate is already annotated, advance the index and retry.
5. Otherwise return it with a signed URL.

The retry is an explicit loop. Consecutive skips are capped; hitting the
cap raises ResolutionDivergenceError rather than stopping silently.

There is no reservation of served tracks: two concurrent callers that
observe the same cursor are handed the same track.
"""

import logging
from typing import List, Optional, Union

from .config import AnnotatorConfig
from .errors import ObjectStoreError, ResolutionDivergenceError, TrackNotFoundError
from .models import CorpusComplete, ProgressCursor, ResolvedTrack, Track, format_folder
from .object_store import ObjectStore
from .storage import AnnotationRepository

logger = logging.getLogger(__name__)


class NextTrackResolver:
    """
    Produces the next unannotated track or CorpusComplete.

    Cursor mutations (index skips, folder rollovers) are applied through
    the repository's transactional update so concurrent resolutions never
    lose an advance.
    """

    def __init__(
        self,
        repository: AnnotationRepository,
        store: ObjectStore,
        config: Optional[AnnotatorConfig] = None
    ):
        self.repository = repository
        self.store = store
        self.config = config or AnnotatorConfig()

    def folder_prefix(self, folder: str) -> str:
        return f"{self.config.corpus_root}/{folder}/"

    def list_audio_keys(self, folder: str) -> List[str]:
        """
        Canonical enumeration of a folder: audio keys in byte-wise order.

        Raises:
            ObjectStoreError: If listing fails and skip_unlistable_folders is off.
        """
        prefix = self.folder_prefix(folder)
        try:
            objects = self.store.list_objects(prefix, max_keys=self.config.list_page_size)
        except ObjectStoreError:
            if not self.config.skip_unlistable_folders:
                raise
            logger.warning(f"Listing {prefix} failed; treating folder {folder} as exhausted")
            return []

        extensions = tuple(ext.lower() for ext in self.config.audio_extensions)
        keys = [o.key for o in objects if o.key.lower().endswith(extensions)]
        return sorted(keys, key=lambda k: k.encode("utf-8"))

    def resolve(self) -> Union[ResolvedTrack, CorpusComplete]:
        """
        Find the next track requiring annotation.

        Returns:
            ResolvedTrack with a signed URL, or CorpusComplete when every
            folder in the namespace has been processed.

        Raises:
            ResolutionDivergenceError: If more than max_skip_iterations
                consecutive annotated entries are skipped.
            ObjectStoreError: On a listing or signing fault.
            PersistenceConflictError: If a cursor transaction fails.
        """
        max_skips = self.config.max_skip_iterations
        # Rollovers strictly increase the folder, so the namespace bounds them
        max_rollovers = self.config.max_folder + 2
        skips = 0
        rollovers = 0

        cursor = self.repository.get_cursor()
        while True:
            keys = self.list_audio_keys(cursor.current_folder)

            if cursor.current_file_index >= len(keys):
                if self._is_last_folder(cursor.current_folder):
                    logger.info(f"Folder {cursor.current_folder} exhausted; corpus complete")
                    return CorpusComplete()
                rollovers += 1
                if rollovers > max_rollovers:
                    raise ResolutionDivergenceError(
                        f"Exceeded {max_rollovers} folder rollovers in one resolution"
                    )
                cursor = self._roll_over(cursor)
                skips = 0
                continue

            key = keys[cursor.current_file_index]
            track = self.repository.create_track_if_missing(
                Track.from_storage_key(key, cursor.current_folder)
            )

            if not track.annotated:
                url = self.store.sign(track.storage_key, self.config.signed_url_ttl)
                return ResolvedTrack(track=track, original_url=url)

            skips += 1
            if skips > max_skips:
                logger.error(
                    f"Skipped {max_skips} annotated entries at folder "
                    f"{cursor.current_folder} index {cursor.current_file_index}"
                )
                raise ResolutionDivergenceError(
                    f"Maximum skip depth ({max_skips}) reached while resolving next track"
                )
            cursor = self._skip(cursor)
            logger.debug(
                f"Skipped annotated track {track.track_id}; cursor now "
                f"{cursor.current_folder}/{cursor.current_file_index}"
            )

    def get_track(self, track_id: str) -> ResolvedTrack:
        """
        Look up any catalogued track with a fresh signed URL.

        Raises:
            TrackNotFoundError: If the id is not in the catalog.
        """
        track = self.repository.get_track(track_id)
        if track is None:
            raise TrackNotFoundError(track_id)
        url = self.store.sign(track.storage_key, self.config.signed_url_ttl)
        return ResolvedTrack(track=track, original_url=url)

    def _is_last_folder(self, folder: str) -> bool:
        return int(folder, 10) + 1 > self.config.max_folder

    def _skip(self, observed: ProgressCursor) -> ProgressCursor:
        """
        Advance the stored index by one, relative to its current value.

        Concurrent skips within a folder each count; a skip whose folder
        was rolled over in the meantime is dropped.
        """
        folder = observed.current_folder

        def advance(stored: ProgressCursor) -> Optional[ProgressCursor]:
            if stored.current_folder != folder:
                return None
            return stored.skip_entry()

        return self.repository.update_cursor_transactionally(advance)

    def _roll_over(self, observed: ProgressCursor) -> ProgressCursor:
        """
        Move the stored cursor from observed's folder to the next one.

        Only applies when the stored folder still equals the folder seen
        exhausted; otherwise another caller already rolled over and the
        stored cursor is returned as is.
        """
        exhausted = observed.current_folder
        target = format_folder(int(exhausted, 10) + 1, self.config.folder_width)

        def advance(stored: ProgressCursor) -> Optional[ProgressCursor]:
            if stored.current_folder != exhausted:
                return None
            return stored.roll_over(target)

        cursor = self.repository.update_cursor_transactionally(advance)
        logger.info(f"Folder {exhausted} exhausted; cursor now at folder {cursor.current_folder}")
        return cursor
