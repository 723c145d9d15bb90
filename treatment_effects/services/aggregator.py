"""
Aggregation of per-treatment effects into one vector.

Contributions are independent and additive: there is no interaction model
between concurrent treatments, and the aggregate is the exact sum of the
already-rounded per-treatment vectors.
"""

from collections.abc import Iterable
from datetime import UTC, datetime

from treatment_effects.domain.models import (
    AggregateEffects,
    EffectPhase,
    EffectsSummary,
    EffectVector,
    TreatmentEffect,
    TreatmentType,
)

# Summary keys used by the monitor display
_TYPE_KEYS: dict[TreatmentType, str] = {
    TreatmentType.MEDICATION: "medications",
    TreatmentType.IV_FLUID: "iv_fluids",
    TreatmentType.OXYGEN: "oxygen",
    TreatmentType.NURSING: "nursing",
}

# Channels considered by has_significant_effects
SIGNIFICANCE_CHANNELS: tuple[str, ...] = ("hr", "bp_sys", "spo2", "rr")


def aggregate_effects(
    effects: Iterable[TreatmentEffect], computed_at: datetime | None = None
) -> AggregateEffects:
    """Sum every non-expired effect; expired treatments are dropped entirely."""
    active = [effect for effect in effects if effect.phase != EffectPhase.EXPIRED]

    aggregate = EffectVector()
    for effect in active:
        aggregate = aggregate + effect.effects

    return AggregateEffects(
        treatments=active,
        aggregate=aggregate,
        count=len(active),
        computed_at=computed_at or datetime.now(UTC),
    )


def summarize(result: AggregateEffects) -> EffectsSummary:
    by_type = dict.fromkeys(_TYPE_KEYS.values(), 0)
    by_phase = {
        phase.value: 0 for phase in (EffectPhase.ONSET, EffectPhase.PEAK, EffectPhase.DECLINE)
    }

    for effect in result.treatments:
        if effect.treatment_type is not None:
            by_type[_TYPE_KEYS[effect.treatment_type]] += 1
        if effect.phase.value in by_phase:
            by_phase[effect.phase.value] += 1

    return EffectsSummary(
        count=result.count,
        by_type=by_type,
        by_phase=by_phase,
        aggregate=result.aggregate,
        treatments=result.treatments,
    )


def has_significant_effects(aggregate: EffectVector, threshold: float = 5) -> bool:
    """True when any monitored channel moves by at least ``threshold``."""
    return any(abs(getattr(aggregate, channel)) >= threshold for channel in SIGNIFICANCE_CHANNELS)
