"""
Pharmacodynamic effect curve for a single treatment.

Effect phases:
1. Onset (0 -> onset_minutes): linear ramp from 0 to 1
2. Peak (onset -> peak_minutes): sustained at 1.0
3. Decline (peak -> duration): exponential decay, e^(-3x) leaves ~5% at x=1
4. Expired (>= duration): no effect

Continuous treatments stop at peak and stay there until the source stops
reporting them.

Everything here is pure: the same treatment and instant always produce the
same result, and malformed timing never raises.
"""

import math
from datetime import UTC, datetime

from treatment_effects.domain.models import (
    DISCRETE_CHANNELS,
    VITAL_CHANNELS,
    EffectPhase,
    EffectVector,
    Treatment,
    TreatmentEffect,
)

DECLINE_RATE = 3.0

# Cap on one treatment's contribution to a channel. Far outside every vital range,
# so display values are unaffected after clamping.
MAX_CHANNEL_EFFECT = 1_000_000.0


def round_half_up(value: float) -> int:
    """Round to the nearest integer, halves toward +infinity."""
    return math.floor(value + 0.5)


def _as_utc(moment: datetime) -> datetime:
    return moment if moment.tzinfo is not None else moment.replace(tzinfo=UTC)


def elapsed_minutes(treatment: Treatment, now: datetime) -> float:
    if treatment.started_at is None:
        return 0.0
    return (_as_utc(now) - treatment.started_at).total_seconds() / 60.0


def saturate_effect(value: float) -> float:
    if math.isnan(value):
        return 0.0
    return max(-MAX_CHANNEL_EFFECT, min(MAX_CHANNEL_EFFECT, value))


def clamp_strength(strength: float) -> float:
    if math.isnan(strength):
        return 0.0
    return max(0.0, min(1.0, strength))


def calculate_phase_strength(
    treatment: Treatment, now: datetime
) -> tuple[EffectPhase, float, float]:
    """
    Compute the phase and strength of a treatment at ``now``.

    Returns:
        (phase, strength, elapsed_minutes), strength always within [0, 1].

    Malformed windows are normalised first: peak is at least onset and, for
    discrete treatments, duration is at least peak. A zero onset is an
    immediate peak and a zero-length decline window goes straight to expired.
    """
    if treatment.started_at is None:
        return EffectPhase.ONSET, 0.0, 0.0

    elapsed = elapsed_minutes(treatment, now)
    if elapsed < 0:
        # Scheduled in the future
        return EffectPhase.ONSET, 0.0, elapsed

    onset = max(treatment.onset_minutes, 0.0)

    if treatment.continuous:
        if elapsed < onset:
            return EffectPhase.ONSET, clamp_strength(min(1.0, elapsed / onset)), elapsed
        return EffectPhase.PEAK, 1.0, elapsed

    peak = max(treatment.peak_minutes, onset)
    duration = max(treatment.duration_minutes, peak)

    if elapsed < onset:
        phase, strength = EffectPhase.ONSET, elapsed / onset
    elif elapsed < peak:
        phase, strength = EffectPhase.PEAK, 1.0
    elif elapsed < duration:
        decline_progress = (elapsed - peak) / (duration - peak)
        phase, strength = EffectPhase.DECLINE, math.exp(-DECLINE_RATE * decline_progress)
    else:
        phase, strength = EffectPhase.EXPIRED, 0.0

    return phase, clamp_strength(strength), elapsed


def calculate_effect_vector(treatment: Treatment, strength: float) -> EffectVector:
    """Scale the treatment's peak effects by strength and dose multiplier.

    Discrete channels are rounded here, per treatment, before any summation.
    Each channel is capped at +/-MAX_CHANNEL_EFFECT, so oversized records
    cannot overflow.
    """
    scale = strength * treatment.dose_multiplier
    values: dict[str, float | int] = {}
    for channel in VITAL_CHANNELS:
        raw = saturate_effect(treatment.peak_effect(channel) * scale)
        values[channel] = round_half_up(raw) if channel in DISCRETE_CHANNELS else raw
    return EffectVector(**values)


def calculate_treatment_effect(treatment: Treatment, now: datetime) -> TreatmentEffect:
    phase, strength, elapsed = calculate_phase_strength(treatment, now)
    return TreatmentEffect(
        id=treatment.id,
        treatment_order_id=treatment.treatment_order_id,
        treatment_name=treatment.display_name,
        treatment_type=treatment.treatment_type,
        phase=phase,
        strength=strength,
        elapsed_minutes=elapsed,
        is_continuous=treatment.continuous,
        effects=calculate_effect_vector(treatment, strength),
    )
