"""
Treatment effects engine.

One engine instance holds the treatment snapshot for one session. The
snapshot is replaced wholesale by each successful poll; every calculation is
a pure function of that snapshot and the current time.

Net effect = sum(peak_effect x strength x dose_multiplier) over non-expired
treatments, rounded per treatment on the discrete channels.
"""

from collections.abc import Callable, Iterable
from datetime import UTC, datetime

import structlog

from treatment_effects.domain.models import (
    AggregateEffects,
    EffectsSummary,
    Treatment,
    TreatmentEffect,
    VitalsSnapshot,
)
from treatment_effects.services.aggregator import (
    aggregate_effects,
    has_significant_effects,
    summarize,
)
from treatment_effects.services.effect_model import calculate_treatment_effect
from treatment_effects.services.vitals import apply_effects_to_vitals

logger = structlog.get_logger(__name__)

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(UTC)


class TreatmentEffectsEngine:
    """
    Calculates real-time treatment effects from the latest known snapshot.

    Construct one per session and pass it to whoever needs it. There is no
    module-level instance.
    """

    def __init__(self, clock: Clock = utc_now) -> None:
        self._clock = clock
        self._treatments: tuple[Treatment, ...] = ()
        self.last_update: datetime | None = None
        self.logger = logger.bind(component="treatment_effects_engine")

    @property
    def active_treatments(self) -> tuple[Treatment, ...]:
        return self._treatments

    def set_active_treatments(self, treatments: Iterable[Treatment] | None) -> None:
        """Replace the snapshot. A single assignment, so readers never see a partial list."""
        self._treatments = tuple(treatments or ())
        self.last_update = self._clock()
        self.logger.debug("active_treatments_replaced", count=len(self._treatments))

    def clear(self) -> None:
        self._treatments = ()
        self.last_update = None

    def calculate_treatment_effect(
        self, treatment: Treatment, now: datetime | None = None
    ) -> TreatmentEffect:
        return calculate_treatment_effect(treatment, now or self._clock())

    def calculate_aggregate_effects(self, now: datetime | None = None) -> AggregateEffects:
        moment = now or self._clock()
        snapshot = self._treatments
        return aggregate_effects(
            (calculate_treatment_effect(treatment, moment) for treatment in snapshot),
            computed_at=moment,
        )

    def apply_effects_to_vitals(
        self, baseline: VitalsSnapshot, now: datetime | None = None
    ) -> VitalsSnapshot:
        return apply_effects_to_vitals(baseline, self.calculate_aggregate_effects(now).aggregate)

    def get_summary(self, now: datetime | None = None) -> EffectsSummary:
        return summarize(self.calculate_aggregate_effects(now))

    def has_significant_effects(self, threshold: float = 5, now: datetime | None = None) -> bool:
        return has_significant_effects(self.calculate_aggregate_effects(now).aggregate, threshold)
