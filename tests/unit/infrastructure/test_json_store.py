"""
Unit Tests for JSON Document Store

Tests atomic writes, retries and corrupt-document handling.
"""

import os

import pytest

from sentinel.infrastructure.storage import (
    LONGITUDINAL_STATE_KEY,
    StorageError,
)
from sentinel.infrastructure.storage import json_store


class TestReadWrite:
    """Basic persistence."""

    def test_round_trip(self, documents):
        documents.write(LONGITUDINAL_STATE_KEY, {"check_in_count": 3})

        assert documents.read(LONGITUDINAL_STATE_KEY) == {"check_in_count": 3}
        assert documents.exists(LONGITUDINAL_STATE_KEY)

    def test_absent_document_is_none(self, documents):
        assert documents.read("missing") is None

    def test_corrupt_document_is_none(self, documents):
        """Corrupt JSON is reported as absent, not raised."""
        documents.data_dir.mkdir(parents=True, exist_ok=True)
        documents.path_for("broken").write_text("{truncated", encoding="utf-8")

        assert documents.read("broken") is None

    def test_delete(self, documents):
        documents.write("k", [1, 2])

        documents.delete("k")
        documents.delete("k")

        assert not documents.exists("k")

    def test_no_temp_files_left(self, documents):
        """Atomic replace leaves only the target document."""
        documents.write("k", {"a": 1})
        documents.write("k", {"a": 2})

        assert sorted(p.name for p in documents.data_dir.iterdir()) == ["k.json"]
        assert documents.read("k") == {"a": 2}


class TestRetries:
    """Transient write failures."""

    def test_transient_failure_retried(self, documents, monkeypatch):
        """Two failed replaces are retried to success."""
        real_replace = os.replace
        calls = {"count": 0}

        def flaky_replace(src, dst):
            calls["count"] += 1
            if calls["count"] < 3:
                raise OSError("disk busy")
            real_replace(src, dst)

        monkeypatch.setattr(json_store.os, "replace", flaky_replace)

        documents.write("k", {"ok": True})

        assert calls["count"] == 3
        assert documents.read("k") == {"ok": True}

    def test_persistent_failure_raises_storage_error(self, documents, monkeypatch):
        """After the final attempt a StorageError carries the cause."""
        def failing_replace(src, dst):
            raise OSError("read-only filesystem")

        monkeypatch.setattr(json_store.os, "replace", failing_replace)

        with pytest.raises(StorageError) as exc_info:
            documents.write("k", {"ok": False})

        assert exc_info.value.key == "k"
        assert isinstance(exc_info.value.original_error, OSError)
        assert list(documents.data_dir.glob("*.tmp")) == []
