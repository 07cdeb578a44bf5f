"""Local persistence package."""

from sentinel.infrastructure.storage.json_store import (
    CRISIS_HISTORY_KEY,
    CRISIS_START_KEY,
    LONGITUDINAL_STATE_KEY,
    JsonDocumentStore,
    StorageError,
)
from sentinel.infrastructure.storage.schemas import (
    CrisisHistoryRecord,
    CrisisStartRecord,
    LongitudinalStateRecord,
    PatternRecord,
)

__all__ = [
    # Store
    "JsonDocumentStore",
    "StorageError",
    "CRISIS_HISTORY_KEY",
    "CRISIS_START_KEY",
    "LONGITUDINAL_STATE_KEY",
    # Schemas
    "CrisisHistoryRecord",
    "CrisisStartRecord",
    "LongitudinalStateRecord",
    "PatternRecord",
]
