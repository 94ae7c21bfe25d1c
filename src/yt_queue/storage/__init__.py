"""Storage feature - debounced snapshot persistence."""

from yt_queue.storage.debounce import DeferredTask
from yt_queue.storage.persistence import (
    SAVE_DELAY,
    PersistenceManager,
    Snapshot,
    decode_snapshot,
    encode_snapshot,
    restore_snapshot,
)

__all__ = [
    "SAVE_DELAY",
    "DeferredTask",
    "PersistenceManager",
    "Snapshot",
    "decode_snapshot",
    "encode_snapshot",
    "restore_snapshot",
]
