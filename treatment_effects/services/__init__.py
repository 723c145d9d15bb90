"""
Core services for the treatment effects engine.

This package contains the effect curve, aggregation and vitals composition,
the per-session engine, the treatment source clients and the polling
controller that ties them together.
"""

from .engine import TreatmentEffectsEngine
from .polling import PollingState, TreatmentEffectsController
from .scheduler import PeriodicTask
from .treatment_source import (
    HttpTreatmentSource,
    Result,
    TreatmentSource,
    TreatmentSourceError,
)

__all__ = [
    "TreatmentEffectsEngine",
    "TreatmentEffectsController",
    "PollingState",
    "PeriodicTask",
    "TreatmentSource",
    "HttpTreatmentSource",
    "TreatmentSourceError",
    "Result",
]
