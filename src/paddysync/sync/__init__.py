"""Batch synchronization of survey records.

Architecture:
    SubmissionQueue → Database (pending) → BatchSyncEngine → RemoteFolders

Components:
- **SubmissionQueue**: Saves submissions in the background, inline fallback
- **BatchSyncEngine**: Prepares records concurrently, writes one spreadsheet
  per location and day, then marks records synced or failed
- **RemoteFolders**: Folder-path resolution and file transfer on top of a
  DocumentStore, with a TTL folder cache and retry with backoff
- **spreadsheet**: Export row layout and xlsx append
"""

from paddysync.sync.engine import BatchSyncEngine, RecordOutcome, SpreadsheetTarget, SyncSummary
from paddysync.sync.queue import QueueStats, SubmissionQueue
from paddysync.sync.remote import RemoteFolders
from paddysync.sync.spreadsheet import EXPORT_HEADERS, append_rows, build_export_row

__all__ = [
    # Engine
    "BatchSyncEngine",
    "RecordOutcome",
    "SpreadsheetTarget",
    "SyncSummary",
    # Queue
    "QueueStats",
    "SubmissionQueue",
    # Remote
    "RemoteFolders",
    # Spreadsheet
    "EXPORT_HEADERS",
    "append_rows",
    "build_export_row",
]
