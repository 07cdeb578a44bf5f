"""
JSON Document Store

Local keyed persistence for longitudinal state and crisis bookkeeping.
One JSON file per key under the data directory.

ARCHITECTURE:
- Writes are atomic: temp file in the same directory, fsync, os.replace
- Transient OSErrors on write are retried with exponential backoff
- An unreadable or corrupt document is reported as absent, never raised

PRIVACY: Documents contain clinical narrative. Contents are never logged.
"""

import json
import os
import tempfile
from pathlib import Path
from typing import Any, Optional

from tenacity import (
    RetryError,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from sentinel.config.logging_config import get_logger

logger = get_logger(__name__)


# Document keys
LONGITUDINAL_STATE_KEY = "longitudinal_state"
CRISIS_HISTORY_KEY = "crisis_history"
CRISIS_START_KEY = "crisis_start"


class StorageError(Exception):
    """Raised when a document cannot be written after retries."""

    def __init__(self, message: str, key: str = "", original_error: Optional[Exception] = None):
        self.key = key
        self.original_error = original_error
        super().__init__(message)


class JsonDocumentStore:
    """
    Keyed JSON documents on the local filesystem.

    Usage:
        store = JsonDocumentStore(settings.storage.data_dir)
        store.write(LONGITUDINAL_STATE_KEY, {"check_in_count": 1})
        data = store.read(LONGITUDINAL_STATE_KEY)
    """

    def __init__(self, data_dir: Path) -> None:
        self._data_dir = Path(data_dir)

    @property
    def data_dir(self) -> Path:
        return self._data_dir

    def path_for(self, key: str) -> Path:
        return self._data_dir / f"{key}.json"

    def read(self, key: str) -> Optional[Any]:
        """
        Read a document.

        Returns:
            Decoded JSON, or None when absent or unreadable
        """
        path = self.path_for(key)
        try:
            with open(path, encoding="utf-8") as f:
                return json.load(f)
        except FileNotFoundError:
            return None
        except (OSError, json.JSONDecodeError) as e:
            logger.error("Stored document unreadable", key=key, error=type(e).__name__)
            return None

    def write(self, key: str, data: Any) -> None:
        """
        Atomically replace a document.

        Raises:
            StorageError: If the write still fails after retries
        """
        try:
            self._write_atomic(key, data)
        except RetryError as e:
            original = e.last_attempt.exception()
            logger.error("Document write failed", key=key, error=str(original))
            raise StorageError(f"Failed to write '{key}'", key=key, original_error=original) from original

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=0.05, min=0.05, max=0.5),
        retry=retry_if_exception_type(OSError),
    )
    def _write_atomic(self, key: str, data: Any) -> None:
        self._data_dir.mkdir(parents=True, exist_ok=True)
        path = self.path_for(key)

        fd, tmp_name = tempfile.mkstemp(prefix=f".{key}.", suffix=".tmp", dir=self._data_dir)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_name, path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

        logger.debug("Document written", key=key)

    def delete(self, key: str) -> None:
        """Remove a document; absent documents are ignored."""
        self.path_for(key).unlink(missing_ok=True)
        logger.debug("Document deleted", key=key)

    def exists(self, key: str) -> bool:
        return self.path_for(key).exists()
