"""
Unit tests for the storage module.

Tests cover loading with soft failure, legacy documents and atomic saves.
"""

import json
from pathlib import Path
from unittest.mock import patch

import pytest

from release_watcher.errors import PersistError
from release_watcher.models import WatermarkState
from release_watcher.storage import WatermarkStore


class TestWatermarkStoreLoad:
    """Tests for loading state."""

    def test_missing_file_gives_default(self, store: WatermarkStore) -> None:
        """Test that an absent file yields an empty state."""
        state = store.load()

        assert state == WatermarkState()
        assert state.timestamp_for("routeros") == 0
        assert state.last_seen_version == ""

    def test_malformed_file_gives_default(
        self, store: WatermarkStore, state_path: Path, caplog: pytest.LogCaptureFixture
    ) -> None:
        """Test that invalid JSON fails soft."""
        state_path.parent.mkdir(parents=True)
        state_path.write_text("{not json")

        assert store.load() == WatermarkState()
        assert "unreadable state file" in caplog.text

    def test_wrong_shape_gives_default(self, store: WatermarkStore, state_path: Path) -> None:
        """Test that a JSON document of the wrong shape fails soft."""
        state_path.parent.mkdir(parents=True)
        state_path.write_text('{"lastSeenTimestamp": [1, 2]}')

        assert store.load() == WatermarkState()

    def test_empty_file_gives_default(self, store: WatermarkStore, state_path: Path) -> None:
        """Test that an empty file yields an empty state."""
        state_path.parent.mkdir(parents=True)
        state_path.write_text("")

        assert store.load() == WatermarkState()

    def test_loads_current_format(self, store: WatermarkStore, state_path: Path) -> None:
        """Test loading the current document format."""
        state_path.parent.mkdir(parents=True)
        state_path.write_text(
            json.dumps({"lastSeenTimestamp": {"routeros": 1644314400000}, "lastSeenVersion": "3.35"})
        )

        state = store.load()

        assert state.timestamp_for("routeros") == 1644314400000
        assert state.last_seen_version == "3.35"

    def test_loads_legacy_format(self, state_path: Path) -> None:
        """Test that single-feed documents are migrated."""
        state_path.parent.mkdir(parents=True)
        state_path.write_text(json.dumps({"lastRouterOSDate": 1644314400000, "lastWinBoxVersion": "3.34"}))

        state = WatermarkStore(state_path, legacy_feed_key="changelog").load()

        assert state.last_seen_timestamp == {"changelog": 1644314400000}
        assert state.last_seen_version == "3.34"


class TestWatermarkStoreSave:
    """Tests for saving state."""

    def test_round_trip(self, store: WatermarkStore) -> None:
        """Test that a saved state loads back unchanged."""
        state = WatermarkState({"routeros": 100, "testing": 200}, "3.35")

        store.save(state)

        assert store.load() == state

    def test_creates_parent_directories(self, tmp_path: Path) -> None:
        """Test that save creates missing directories."""
        path = tmp_path / "nested" / "deep" / "data.json"

        WatermarkStore(path).save(WatermarkState())

        assert path.exists()

    def test_document_shape(self, store: WatermarkStore, state_path: Path) -> None:
        """Test the persisted JSON keys."""
        store.save(WatermarkState({"routeros": 5}, "3.35"))

        data = json.loads(state_path.read_text())

        assert data == {"lastSeenTimestamp": {"routeros": 5}, "lastSeenVersion": "3.35"}

    def test_no_temporary_files_left(self, store: WatermarkStore, state_path: Path) -> None:
        """Test that the atomic write cleans up after itself."""
        store.save(WatermarkState({"routeros": 5}))
        store.save(WatermarkState({"routeros": 6}))

        assert [p.name for p in state_path.parent.iterdir()] == ["data.json"]

    def test_write_failure_raises_persist_error(
        self, store: WatermarkStore, state_path: Path
    ) -> None:
        """Test that an OS error becomes PersistError and keeps the old file."""
        store.save(WatermarkState({"routeros": 5}))

        with patch("release_watcher.storage.os.replace", side_effect=OSError("disk full")):
            with pytest.raises(PersistError, match="disk full"):
                store.save(WatermarkState({"routeros": 9}))

        assert store.load().timestamp_for("routeros") == 5
        assert [p.name for p in state_path.parent.iterdir()] == ["data.json"]


class TestWatermarkState:
    """Tests for state value semantics."""

    def test_with_timestamp_returns_copy(self) -> None:
        """Test that advancing a watermark leaves the receiver unchanged."""
        state = WatermarkState({"routeros": 100})

        updated = state.with_timestamp("routeros", 200)

        assert state.timestamp_for("routeros") == 100
        assert updated.timestamp_for("routeros") == 200

    def test_with_timestamp_never_decreases(self) -> None:
        """Test that a lower timestamp is ignored."""
        state = WatermarkState({"routeros": 100})

        assert state.with_timestamp("routeros", 50).timestamp_for("routeros") == 100

    def test_with_version(self) -> None:
        """Test replacing the version."""
        state = WatermarkState({"routeros": 1}, "3.34")

        updated = state.with_version("3.35")

        assert updated.last_seen_version == "3.35"
        assert updated.last_seen_timestamp == {"routeros": 1}
        assert state.last_seen_version == "3.34"
