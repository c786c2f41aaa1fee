"""
Tests for the next-track resolver.

Covers deterministic ordering, skipping annotated tracks, folder rollover,
the terminal folder boundary and the skip-loop divergence guard.
"""

from unittest.mock import MagicMock

import pytest

from src.annotation_server.errors import (
    ObjectStoreError,
    ResolutionDivergenceError,
    TrackNotFoundError,
)
from src.annotation_server.models import CorpusComplete, ResolvedTrack
from src.annotation_server.resolver import NextTrackResolver
from src.annotation_server.storage import InMemoryAnnotationRepository

from conftest import SOURCE_AUDIO, add_audio, mark_annotated, set_cursor


@pytest.fixture
def resolver(repository, store, config):
    return NextTrackResolver(repository, store, config)


class StuckRepository(InMemoryAnnotationRepository):
    """Ignores every cursor mutation, simulating a corrupted cursor store."""

    def __init__(self):
        super().__init__()
        self.update_calls = 0

    def update_cursor_transactionally(self, mutate, track=None):
        self.update_calls += 1
        return self.get_cursor()


class TestDeterministicOrdering:
    def test_returns_first_key_in_byte_order(self, resolver, store):
        add_audio(store, "000", ["000300.mp3", "000010.mp3", "000200.mp3"])

        result = resolver.resolve()

        assert isinstance(result, ResolvedTrack)
        assert result.track.track_id == "000010"

    def test_byte_order_not_case_folded(self, resolver, store):
        add_audio(store, "000", ["b.mp3", "B.mp3", "a.mp3"])
        assert resolver.list_audio_keys("000") == [
            "fma_small/000/B.mp3",
            "fma_small/000/a.mp3",
            "fma_small/000/b.mp3",
        ]

    def test_order_independent_of_listing_order(self, repository, config):
        store = MagicMock()
        store.list_objects.return_value = [
            MagicMock(key="fma_small/000/c.mp3"),
            MagicMock(key="fma_small/000/a.mp3"),
            MagicMock(key="fma_small/000/b.mp3"),
        ]
        store.sign.return_value = "signed"
        resolver = NextTrackResolver(repository, store, config)

        for index, expected in enumerate(["a", "b", "c"]):
            set_cursor(repository, "000", index)
            assert resolver.resolve().track.track_id == expected

    def test_repeated_resolution_is_idempotent(self, resolver, store, repository):
        add_audio(store, "000", ["000002.mp3", "000001.mp3"])

        first = resolver.resolve()
        second = resolver.resolve()

        assert first.track == second.track
        assert repository.get_cursor().current_file_index == 0

    def test_non_audio_keys_ignored(self, resolver, store):
        add_audio(store, "000", ["000001.txt", "000002.mp3", "cover.jpg"])
        assert resolver.resolve().track.track_id == "000002"

    def test_page_size_passed_to_listing(self, repository, config):
        store = MagicMock()
        store.list_objects.return_value = []
        config.max_folder = 0
        NextTrackResolver(repository, store, config).resolve()

        store.list_objects.assert_called_once_with("fma_small/000/", max_keys=1000)


class TestCatalog:
    def test_new_track_catalogued(self, resolver, store, repository):
        add_audio(store, "000", ["000001.mp3"])
        resolver.resolve()

        track = repository.get_track("000001")
        assert track is not None
        assert track.annotated is False
        assert track.folder_path == "000/000001"
        assert track.storage_key == "fma_small/000/000001.mp3"

    def test_signed_url_reads_track_audio(self, resolver, store):
        add_audio(store, "000", ["000001.mp3"])
        result = resolver.resolve()
        assert store.read_signed(result.original_url) == SOURCE_AUDIO


class TestSkipAnnotated:
    def test_never_returns_annotated_track(self, resolver, store, repository):
        keys = add_audio(store, "000", ["000001.mp3", "000002.mp3", "000003.mp3"])
        mark_annotated(repository, keys[0], "000")
        mark_annotated(repository, keys[1], "000")

        result = resolver.resolve()

        assert result.track.track_id == "000003"
        assert repository.get_cursor().current_file_index == 2

    def test_all_annotated_advances_past_folder(self, resolver, store, repository):
        keys = add_audio(store, "000", [f"{i:06d}.mp3" for i in range(5)])
        for key in keys:
            mark_annotated(repository, key, "000")
        add_audio(store, "001", ["001000.mp3"])

        result = resolver.resolve()

        assert result.track.track_id == "001000"
        cursor = repository.get_cursor()
        assert cursor.current_folder == "001"
        assert cursor.current_file_index == 0
        assert cursor.completed_folders == ["000"]

    def test_skips_up_to_cap(self, resolver, store, repository, config):
        config.max_skip_iterations = 5
        keys = add_audio(store, "000", [f"{i:06d}.mp3" for i in range(6)])
        for key in keys[:5]:
            mark_annotated(repository, key, "000")

        assert resolver.resolve().track.track_id == "000005"


class TestDivergenceGuard:
    def test_stuck_cursor_trips_cap(self, store, config):
        repository = StuckRepository()
        key = add_audio(store, "000", ["000001.mp3"])[0]
        mark_annotated(repository, key, "000")
        resolver = NextTrackResolver(repository, store, config)

        with pytest.raises(ResolutionDivergenceError):
            resolver.resolve()

        assert repository.update_calls == config.max_skip_iterations

    def test_too_many_consecutive_annotated(self, resolver, store, repository, config):
        config.max_skip_iterations = 3
        keys = add_audio(store, "000", [f"{i:06d}.mp3" for i in range(6)])
        for key in keys:
            mark_annotated(repository, key, "000")

        with pytest.raises(ResolutionDivergenceError):
            resolver.resolve()

    def test_skip_counter_resets_on_rollover(self, resolver, store, repository, config):
        config.max_skip_iterations = 3
        for folder in ("000", "001"):
            for key in add_audio(store, folder, [f"{folder}{i:03d}.mp3" for i in range(3)]):
                mark_annotated(repository, key, folder)
        add_audio(store, "002", ["002000.mp3"])

        assert resolver.resolve().track.track_id == "002000"


class TestRollover:
    def test_exhausted_folder_rolls_to_next(self, resolver, store, repository):
        add_audio(store, "003", ["003001.mp3", "003002.mp3"])
        add_audio(store, "004", ["004001.mp3"])
        set_cursor(repository, "003", 2, completed_folders=["000", "001", "002"])

        result = resolver.resolve()

        assert result.track.track_id == "004001"
        cursor = repository.get_cursor()
        assert cursor.current_folder == "004"
        assert cursor.current_file_index == 0
        assert cursor.completed_folders == ["000", "001", "002", "003"]

    def test_empty_folders_skipped(self, resolver, store, repository):
        add_audio(store, "003", ["003001.mp3"])

        result = resolver.resolve()

        assert result.track.track_id == "003001"
        assert repository.get_cursor().completed_folders == ["000", "001", "002"]

    def test_folder_without_audio_is_empty(self, resolver, store, repository):
        store.put_object("fma_small/000/readme.txt", b"notes")
        add_audio(store, "001", ["001001.mp3"])

        assert resolver.resolve().track.track_id == "001001"

    def test_padding_after_increment(self, resolver, store, repository):
        add_audio(store, "010", ["010001.mp3"])
        set_cursor(repository, "009")

        resolver.resolve()

        assert repository.get_cursor().current_folder == "010"

    def test_rollover_skipped_if_already_moved(self, resolver, repository):
        set_cursor(repository, "005", 3)
        observed = repository.get_cursor()
        set_cursor(repository, "006", 1)

        cursor = resolver._roll_over(observed)

        assert cursor.current_folder == "006"
        assert cursor.current_file_index == 1


class TestTerminalBoundary:
    def test_last_folder_exhausted_is_complete(self, resolver, repository):
        set_cursor(repository, "155")

        result = resolver.resolve()

        assert isinstance(result, CorpusComplete)
        assert result.complete is True
        assert repository.get_cursor().current_folder == "155"

    def test_whole_empty_corpus_completes(self, resolver, repository):
        result = resolver.resolve()

        assert isinstance(result, CorpusComplete)
        cursor = repository.get_cursor()
        assert cursor.current_folder == "155"
        assert len(cursor.completed_folders) == 155

    def test_folder_past_max_never_stored(self, resolver, store, repository):
        key = add_audio(store, "155", ["155001.mp3"])[0]
        mark_annotated(repository, key, "155")
        set_cursor(repository, "155")

        assert isinstance(resolver.resolve(), CorpusComplete)
        assert repository.get_cursor().current_folder == "155"

    def test_custom_namespace_bound(self, resolver, repository, config):
        config.max_folder = 2
        assert isinstance(resolver.resolve(), CorpusComplete)
        assert repository.get_cursor().current_folder == "002"


class TestListingFailures:
    def test_listing_error_surfaces_by_default(self, repository, config):
        store = MagicMock()
        store.list_objects.side_effect = ObjectStoreError("network down")
        resolver = NextTrackResolver(repository, store, config)

        with pytest.raises(ObjectStoreError):
            resolver.resolve()
        assert repository.get_cursor().current_folder == "000"

    def test_listing_error_treated_as_empty_when_configured(self, repository, config):
        config.skip_unlistable_folders = True
        config.max_folder = 1
        store = MagicMock()
        store.list_objects.side_effect = ObjectStoreError("network down")
        resolver = NextTrackResolver(repository, store, config)

        assert isinstance(resolver.resolve(), CorpusComplete)
        assert repository.get_cursor().completed_folders == ["000"]


class TestGetTrack:
    def test_known_track(self, resolver, store, repository):
        add_audio(store, "000", ["000001.mp3"])
        resolver.resolve()

        result = resolver.get_track("000001")
        assert result.track.track_id == "000001"
        assert store.read_signed(result.original_url) == SOURCE_AUDIO

    def test_unknown_track(self, resolver):
        with pytest.raises(TrackNotFoundError):
            resolver.get_track("missing")
