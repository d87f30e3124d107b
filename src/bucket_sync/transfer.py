"""
Defines the single-object transfer.

One transfer reads an object from the source bucket, optionally writes a
copy below the local mirror directory, and puts the same bytes into the
destination bucket. Any failing step aborts only that object.
"""

import asyncio
import functools
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import Awaitable, Callable, Optional

from bucket_sync.exceptions import TransferError
from bucket_sync.store import ObjectRecord, ObjectStore

Transfer = Callable[[ObjectRecord], Awaitable[None]]


@dataclass(frozen=True)
class TransferFailure:
    """
    A failed transfer, as reported to the error aggregator.

    Attributes:
        record (ObjectRecord): The object that could not be transferred.
        reason (str): A description of the failure.
    """

    record: ObjectRecord
    reason: str


def mirror_path(mirror_dir: Path, key: str) -> Path:
    """
    Computes where the local copy of `key` is written.

    A key ending in '/' is a folder marker; its path is the directory itself.

    Args:
        mirror_dir (Path): The root of the local mirror.
        key (str): The object key; its '/' separators become directories.

    Returns:
        Path: The local file or directory path.

    Raises:
        ValueError: If the key would escape `mirror_dir`.
    """
    key_path: PurePosixPath = PurePosixPath(key)
    if key_path.is_absolute() or ".." in key_path.parts:
        raise ValueError(f"Refusing to mirror unsafe key '{key}'")
    return Path(f"{mirror_dir}/{key}")


def _write_mirror(path: Path, data: bytes, is_folder: bool) -> None:
    if is_folder:
        # The directory itself is the local copy of a folder marker
        path.mkdir(parents=True, exist_ok=True)
        return
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(data)


async def transfer_object(
    record: ObjectRecord,
    source: ObjectStore,
    destination: ObjectStore,
    mirror_dir: Optional[Path] = None,
) -> None:
    """
    Copies one object from `source` to `destination`.

    Nothing is rolled back on failure: the local copy may exist even when
    the destination put fails. Repeating the transfer overwrites both.

    Args:
        record (ObjectRecord): The object to copy. It is never modified.
        source (ObjectStore): The bucket to read from.
        destination (ObjectStore): The bucket to write to.
        mirror_dir (Path, optional): When set, the object is also written
            below this directory.

    Raises:
        TransferError: If reading, mirroring or writing fails.
    """
    step: str = "fetch"
    try:
        data: bytes = await source.get_object(record.key)

        if mirror_dir is not None:
            step = "mirror"
            path: Path = mirror_path(mirror_dir, record.key)
            loop: asyncio.AbstractEventLoop = asyncio.get_running_loop()
            await loop.run_in_executor(
                None, _write_mirror, path, data, record.key.endswith("/")
            )

        step = "put"
        await destination.put_object(record.key, data)
    except Exception as e:
        raise TransferError(
            record, f"Failed to {step} '{record.key}': {type(e).__name__} - {e}"
        ) from e


def make_transfer(
    source: ObjectStore,
    destination: ObjectStore,
    mirror_dir: Optional[Path] = None,
) -> Transfer:
    """
    Binds the stores and mirror directory into a one-argument transfer.

    Args:
        source (ObjectStore): The bucket to read from.
        destination (ObjectStore): The bucket to write to.
        mirror_dir (Path, optional): The local mirror root, if any.

    Returns:
        Transfer: A coroutine function taking only the record.
    """
    return functools.partial(
        transfer_object,
        source=source,
        destination=destination,
        mirror_dir=mirror_dir,
    )
