"""
Persistence of the listing cursor between runs.

The checkpoint file holds exactly one raw cursor value and nothing else. It
records how far enumeration got, not which objects were transferred.
"""

import logging
from pathlib import Path

logger: logging.Logger = logging.getLogger(__name__)


class CheckpointStore:
    """Reads, writes and clears the cursor file at a fixed path."""

    def __init__(self, path: Path) -> None:
        """
        Args:
            path (Path): The checkpoint file.
        """
        self.path: Path = path

    def read(self) -> str:
        """
        Returns the persisted cursor.

        A missing or unreadable file yields "", the start of the listing.

        Returns:
            str: The cursor to resume from.
        """
        try:
            return self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return ""
        except OSError as e:
            logger.warning(f"Could not read checkpoint '{self.path}': {e}")
            return ""

    def write(self, cursor: str) -> None:
        """
        Overwrites the checkpoint with `cursor`. The empty cursor is not written.

        Args:
            cursor (str): The cursor to persist.
        """
        if not cursor:
            return
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(cursor, encoding="utf-8")
        logger.info(f"Checkpoint saved at '{cursor}'.")

    def clear(self) -> None:
        """Removes the checkpoint file if it exists."""
        self.path.unlink(missing_ok=True)
