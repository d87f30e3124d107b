"""Unit tests for the `CheckpointStore`."""

from pathlib import Path

from bucket_sync.checkpoint import CheckpointStore


def test_read_missing_checkpoint_returns_start(tmp_path: Path) -> None:
    """Tests that a missing checkpoint means "start from the beginning"."""
    assert CheckpointStore(tmp_path / "lastMarker").read() == ""


def test_write_then_read(tmp_path: Path) -> None:
    """Tests that the cursor is stored as the raw content of the file."""
    store: CheckpointStore = CheckpointStore(tmp_path / "lastMarker")
    store.write("photos/2021/j.jpg")

    assert store.read() == "photos/2021/j.jpg"
    assert (tmp_path / "lastMarker").read_text() == "photos/2021/j.jpg"


def test_write_overwrites_previous_cursor(tmp_path: Path) -> None:
    """Tests that each write replaces the previous cursor."""
    store: CheckpointStore = CheckpointStore(tmp_path / "lastMarker")
    store.write("first")
    store.write("second")
    assert store.read() == "second"


def test_write_empty_cursor_is_noop(tmp_path: Path) -> None:
    """
    Tests that the empty cursor is never persisted.

    Arrange:
        - Write a cursor so the file exists.
    Act:
        - Write the empty cursor.
    Assert:
        - The earlier cursor is still there; a fresh store creates no file.
    """
    store: CheckpointStore = CheckpointStore(tmp_path / "lastMarker")
    store.write("kept")
    store.write("")
    assert store.read() == "kept"

    fresh: CheckpointStore = CheckpointStore(tmp_path / "other")
    fresh.write("")
    assert not (tmp_path / "other").exists()


def test_clear(tmp_path: Path) -> None:
    """Tests that clearing removes the file and tolerates a missing one."""
    store: CheckpointStore = CheckpointStore(tmp_path / "lastMarker")
    store.write("cursor")
    store.clear()
    assert not store.path.exists()
    store.clear()
    assert store.read() == ""


def test_unreadable_checkpoint_is_not_fatal(tmp_path: Path) -> None:
    """Tests that a read error falls back to the start of the listing."""
    directory: Path = tmp_path / "lastMarker"
    directory.mkdir()
    assert CheckpointStore(directory).read() == ""
