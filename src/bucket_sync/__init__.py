"""
bucket-sync: A resumable, bounded-concurrency bucket replicator.

This package copies every object under a prefix of a source S3-compatible
bucket into a destination bucket, optionally mirroring each object to local
disk, retrying failures once and checkpointing the listing position so an
aborted run can resume.

The primary entry point for programmatic use is the `SyncSession` class.
"""

from typing import List

from bucket_sync.pipeline import SessionReport, SyncSession, run_sync

__all__: List[str] = ["SessionReport", "SyncSession", "run_sync"]
