"""
Repository layer for the progress cursor and track catalog.

AnnotationRepository is the capability set the resolver and the commit
coordinator depend on. Two implementations are provided:

- SqliteAnnotationRepository: durable store backed by db.py
- InMemoryAnnotationRepository: process-local store for tests and demos

Every cursor mutation goes through update_cursor_transactionally(), which
re-reads the stored cursor inside the transaction and applies the mutation
to that fresh value, so concurrent writers never lose updates.
"""

import copy
import json
import logging
import sqlite3
import threading
from contextlib import contextmanager
from typing import Callable, Dict, Iterator, Optional, Protocol, Tuple

from . import db
from .errors import PersistenceConflictError
from .models import ProgressCursor, Track

logger = logging.getLogger(__name__)

# Mutation applied to the freshly read cursor; None leaves it unchanged
CursorMutation = Callable[[ProgressCursor], Optional[ProgressCursor]]

# Mutation that also sees the record a track write is about to replace
TrackMutation = Callable[[ProgressCursor, Optional[Track]], Optional[ProgressCursor]]


class AnnotationRepository(Protocol):
    """Storage capabilities required by the progress engine."""

    def get_cursor(self) -> ProgressCursor:
        """Read the cursor, creating it with defaults if absent."""
        ...

    def update_cursor_transactionally(
        self,
        mutate: CursorMutation,
        track: Optional[Track] = None
    ) -> ProgressCursor:
        """Apply mutate to the stored cursor (and write track) atomically."""
        ...

    def replace_track_transactionally(
        self,
        track: Track,
        mutate: TrackMutation
    ) -> Tuple[ProgressCursor, Optional[Track]]:
        """Write track and apply mutate(cursor, previous) atomically; return (cursor, previous)."""
        ...

    def get_track(self, track_id: str) -> Optional[Track]:
        ...

    def put_track(self, track: Track) -> None:
        ...

    def create_track_if_missing(self, track: Track) -> Track:
        """Insert track unless its id exists; return the stored record."""
        ...


class SqliteAnnotationRepository:
    """
    SQLite-backed repository.

    Opens a connection per operation (as db.get_db() does everywhere) and
    serializes writers with BEGIN IMMEDIATE, which takes the database write
    lock before the cursor is read.
    """

    def __init__(self, initial_folder: str = "000"):
        self.initial_folder = initial_folder
        db.init_db()

    @contextmanager
    def _connection(self, action: str) -> Iterator[sqlite3.Connection]:
        """Yield a connection, translating SQLite failures into PersistenceConflictError."""
        try:
            conn = db.get_db()
        except sqlite3.Error as e:
            logger.error(f"Failed to {action}: {e}")
            raise PersistenceConflictError(f"Failed to {action}: {e}") from e
        try:
            yield conn
        except sqlite3.Error as e:
            logger.error(f"Failed to {action}: {e}")
            raise PersistenceConflictError(f"Failed to {action}: {e}") from e
        finally:
            conn.close()

    def get_cursor(self) -> ProgressCursor:
        with self._connection("read progress") as conn:
            self._ensure_cursor(conn)
            return self._read_cursor(conn)

    def update_cursor_transactionally(
        self,
        mutate: CursorMutation,
        track: Optional[Track] = None
    ) -> ProgressCursor:
        """
        Read-modify-write the cursor under one transaction.

        Args:
            mutate: Function from the stored cursor to the new cursor (or None)
            track: Optional track record written in the same transaction

        Returns:
            The cursor as stored after the transaction.

        Raises:
            PersistenceConflictError: If the transaction cannot be committed.
        """
        cursor, _ = self._transact(lambda current, _previous: mutate(current), track)
        return cursor

    def replace_track_transactionally(
        self,
        track: Track,
        mutate: TrackMutation
    ) -> Tuple[ProgressCursor, Optional[Track]]:
        """
        Replace a track record and update the cursor in one transaction.

        mutate receives the stored cursor and the track record being
        replaced (None if absent), both read after the write lock is taken.

        Returns:
            (cursor as stored after the transaction, replaced record)
        """
        return self._transact(mutate, track)

    def _transact(
        self,
        mutate: TrackMutation,
        track: Optional[Track]
    ) -> Tuple[ProgressCursor, Optional[Track]]:
        with self._connection("update progress") as conn:
            conn.execute("BEGIN IMMEDIATE")
            try:
                self._ensure_cursor(conn)
                current = self._read_cursor(conn)
                previous = self._read_track(conn, track.track_id) if track is not None else None
                updated = mutate(copy.deepcopy(current), previous)
                if updated is not None:
                    self._write_cursor(conn, updated)
                    current = updated
                if track is not None:
                    self._write_track(conn, track)
                conn.execute("COMMIT")
            except BaseException:
                conn.execute("ROLLBACK")
                raise
            return current, previous

    def get_track(self, track_id: str) -> Optional[Track]:
        with self._connection(f"read track {track_id}") as conn:
            return self._read_track(conn, track_id)

    def put_track(self, track: Track) -> None:
        with self._connection(f"write track {track.track_id}") as conn:
            self._write_track(conn, track)

    def create_track_if_missing(self, track: Track) -> Track:
        with self._connection(f"create track {track.track_id}") as conn:
            cursor = conn.execute(
                """
                INSERT OR IGNORE INTO tracks
                    (id, folder_path, file_name, storage_key, annotated, payload)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                self._track_params(track)
            )
            if cursor.rowcount:
                logger.info(f"Catalogued new track {track.track_id} ({track.storage_key})")
            return self._read_track(conn, track.track_id)

    def _ensure_cursor(self, conn: sqlite3.Connection) -> None:
        conn.execute(
            "INSERT OR IGNORE INTO progress (id, current_folder) VALUES (1, ?)",
            (self.initial_folder,)
        )

    def _read_track(self, conn: sqlite3.Connection, track_id: str) -> Optional[Track]:
        row = conn.execute(
            "SELECT payload FROM tracks WHERE id = ?", (track_id,)
        ).fetchone()
        return Track.from_dict(json.loads(row["payload"])) if row else None

    def _read_cursor(self, conn: sqlite3.Connection) -> ProgressCursor:
        row = conn.execute(
            """
            SELECT current_folder, current_file_index, completed_folders,
                   total_annotated, last_annotated_at
            FROM progress WHERE id = 1
            """
        ).fetchone()
        return ProgressCursor.from_dict({
            "current_folder": row["current_folder"],
            "current_file_index": row["current_file_index"],
            "completed_folders": json.loads(row["completed_folders"]),
            "total_annotated": row["total_annotated"],
            "last_annotated_at": row["last_annotated_at"],
        })

    def _write_cursor(self, conn: sqlite3.Connection, cursor: ProgressCursor) -> None:
        data = cursor.to_dict()
        conn.execute(
            """
            UPDATE progress
            SET current_folder = ?, current_file_index = ?, completed_folders = ?,
                total_annotated = ?, last_annotated_at = ?
            WHERE id = 1
            """,
            (
                data["current_folder"],
                data["current_file_index"],
                json.dumps(data["completed_folders"]),
                data["total_annotated"],
                data["last_annotated_at"],
            )
        )

    def _write_track(self, conn: sqlite3.Connection, track: Track) -> None:
        conn.execute(
            """
            INSERT INTO tracks
                (id, folder_path, file_name, storage_key, annotated, payload)
            VALUES (?, ?, ?, ?, ?, ?)
            ON CONFLICT(id) DO UPDATE SET
                folder_path = excluded.folder_path,
                file_name = excluded.file_name,
                storage_key = excluded.storage_key,
                annotated = excluded.annotated,
                payload = excluded.payload,
                updated_at = CURRENT_TIMESTAMP
            """,
            self._track_params(track)
        )

    @staticmethod
    def _track_params(track: Track) -> tuple:
        return (
            track.track_id,
            track.folder_path,
            track.file_name,
            track.storage_key,
            int(track.annotated),
            json.dumps(track.to_dict()),
        )


class InMemoryAnnotationRepository:
    """
    Process-local repository guarded by a single lock.

    Records are deep-copied on the way in and out so callers never share
    mutable state with the store.
    """

    def __init__(self, initial_folder: str = "000"):
        self.initial_folder = initial_folder
        self._lock = threading.Lock()
        self._cursor: Optional[ProgressCursor] = None
        self._tracks: Dict[str, Track] = {}

    def get_cursor(self) -> ProgressCursor:
        with self._lock:
            return copy.deepcopy(self._ensure_cursor())

    def update_cursor_transactionally(
        self,
        mutate: CursorMutation,
        track: Optional[Track] = None
    ) -> ProgressCursor:
        cursor, _ = self._transact(lambda current, _previous: mutate(current), track)
        return cursor

    def replace_track_transactionally(
        self,
        track: Track,
        mutate: TrackMutation
    ) -> Tuple[ProgressCursor, Optional[Track]]:
        return self._transact(mutate, track)

    def _transact(
        self,
        mutate: TrackMutation,
        track: Optional[Track]
    ) -> Tuple[ProgressCursor, Optional[Track]]:
        with self._lock:
            previous = None
            if track is not None:
                previous = copy.deepcopy(self._tracks.get(track.track_id))
            updated = mutate(copy.deepcopy(self._ensure_cursor()), previous)
            if updated is not None:
                self._cursor = copy.deepcopy(updated)
            if track is not None:
                self._tracks[track.track_id] = copy.deepcopy(track)
            return copy.deepcopy(self._cursor), previous

    def get_track(self, track_id: str) -> Optional[Track]:
        with self._lock:
            track = self._tracks.get(track_id)
            return copy.deepcopy(track) if track else None

    def put_track(self, track: Track) -> None:
        with self._lock:
            self._tracks[track.track_id] = copy.deepcopy(track)

    def create_track_if_missing(self, track: Track) -> Track:
        with self._lock:
            if track.track_id not in self._tracks:
                self._tracks[track.track_id] = copy.deepcopy(track)
                logger.info(f"Catalogued new track {track.track_id} ({track.storage_key})")
            return copy.deepcopy(self._tracks[track.track_id])

    def _ensure_cursor(self) -> ProgressCursor:
        if self._cursor is None:
            self._cursor = ProgressCursor(current_folder=self.initial_folder)
        return self._cursor
