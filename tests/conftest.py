"""Tests configuration and fixtures."""

from datetime import datetime, timezone
from pathlib import Path

import pytest

from sentinel.config import Settings
from sentinel.config.settings import (
    CrisisSettings,
    InferenceSettings,
    LongitudinalSettings,
    StorageSettings,
)
from sentinel.infrastructure.storage import JsonDocumentStore

from fakes import FakeBackend


@pytest.fixture
def fixed_now() -> datetime:
    """A fixed, timezone-aware check-in time."""
    return datetime(2025, 3, 14, 9, 30, tzinfo=timezone.utc)


@pytest.fixture
def test_settings(tmp_path: Path) -> Settings:
    """Create test settings with short budgets and a temporary data dir."""
    return Settings(
        env="development",
        debug=True,
        health_fetch_timeout=0.2,
        inference=InferenceSettings(
            risk_assessment_timeout=0.3,
            compression_timeout=0.3,
            rerank_timeout=0.3,
            report_first_token_timeout=0.3,
            context_ingestion_timeout=0.3,
            explain_risk_timeout=0.3,
        ),
        longitudinal=LongitudinalSettings(),
        crisis=CrisisSettings(tick_interval_seconds=0.01),
        storage=StorageSettings(data_dir=tmp_path / "data"),
    )


@pytest.fixture
def documents(tmp_path: Path) -> JsonDocumentStore:
    """Document store in a temporary directory."""
    return JsonDocumentStore(tmp_path / "data")


@pytest.fixture
def fake_backend() -> FakeBackend:
    return FakeBackend()
