"""Shared fixtures for the treatment effects test suite."""

from __future__ import annotations

from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from typing import Any

import pytest

from treatment_effects.domain.models import Treatment

NOW = datetime(2026, 1, 1, 12, 0, tzinfo=UTC)

TreatmentFactory = Callable[..., Treatment]


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
def make_treatment() -> TreatmentFactory:
    """Build a treatment started ``minutes_ago`` before NOW (defaults: 5/15/60)."""

    def _make(minutes_ago: float = 10.0, **overrides: Any) -> Treatment:
        fields: dict[str, Any] = {
            "id": 1,
            "treatment_item": "Test treatment",
            "started_at": NOW - timedelta(minutes=minutes_ago),
        }
        fields.update(overrides)
        return Treatment(**fields)

    return _make
