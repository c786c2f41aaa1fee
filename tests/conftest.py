"""
Shared fixtures and helpers for annotation server tests.
"""

import pytest

from src.annotation_server import db
from src.annotation_server.config import AnnotatorConfig
from src.annotation_server.errors import TranscodeError
from src.annotation_server.models import (
    AnnotationLabel,
    ProgressCursor,
    SegmentWindow,
    Track,
)
from src.annotation_server.object_store import LocalObjectStore
from src.annotation_server.storage import InMemoryAnnotationRepository

SOURCE_AUDIO = b"ID3\x03\x00fake-mp3-payload"


class FakeTranscoder:
    """Records calls and returns a recognizable WAV-ish payload."""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.calls = []

    def transcode(self, data: bytes, start: float, end: float) -> bytes:
        self.calls.append((data, start, end))
        if self.fail:
            raise TranscodeError("Failed to process audio: simulated")
        return b"RIFF" + f"{start:.1f}-{end:.1f}".encode()


def add_audio(store: LocalObjectStore, folder: str, names, corpus_root: str = "fma_small"):
    """Write fake audio objects into a corpus folder; returns their keys."""
    keys = []
    for name in names:
        key = f"{corpus_root}/{folder}/{name}"
        store.put_object(key, SOURCE_AUDIO)
        keys.append(key)
    return keys


def mark_annotated(repository, key: str, folder: str) -> Track:
    """Catalog the track for key as already annotated."""
    track = Track.from_storage_key(key, folder).with_annotation(
        AnnotationLabel(description="done earlier"),
        SegmentWindow.from_start(0),
        "processed/earlier.wav",
    )
    repository.put_track(track)
    return track


def set_cursor(repository, folder: str, index: int = 0, **kwargs) -> ProgressCursor:
    """Force the stored cursor to a given position."""
    return repository.update_cursor_transactionally(
        lambda _: ProgressCursor(current_folder=folder, current_file_index=index, **kwargs)
    )


@pytest.fixture
def config(tmp_path):
    return AnnotatorConfig(
        storage_dir=tmp_path / "objects",
        url_secret="test-secret",
        public_url="",
    )


@pytest.fixture
def store(config):
    return LocalObjectStore(config.storage_dir, secret=config.url_secret, public_url=config.public_url)


@pytest.fixture
def repository():
    return InMemoryAnnotationRepository()


@pytest.fixture
def transcoder():
    return FakeTranscoder()


@pytest.fixture
def temp_db(tmp_path):
    """Point db.py at a temporary SQLite file."""
    db_path = tmp_path / "test_annotations.db"
    db.set_db_path(db_path)
    db.init_db()
    yield db_path
    db._db_path = None
