"""Composition of baseline vitals with the aggregate treatment effect."""

from treatment_effects.domain.models import VITAL_CHANNELS, EffectVector, VitalsSnapshot

# Hard physiological floor/ceiling per channel (temp in degrees Celsius)
VITAL_BOUNDS: dict[str, tuple[float, float]] = {
    "hr": (20, 250),
    "bp_sys": (40, 300),
    "bp_dia": (20, 200),
    "rr": (4, 60),
    "spo2": (50, 100),
    "temp": (30, 45),
}


def clamp_vital(channel: str, value: float) -> float:
    low, high = VITAL_BOUNDS[channel]
    return max(low, min(high, value))


def apply_effects_to_vitals(baseline: VitalsSnapshot, aggregate: EffectVector) -> VitalsSnapshot:
    """
    Add the aggregate onto a baseline reading and clamp every channel.

    Values beyond a bound are truncated exactly to it, so the monitor never
    displays a physiologically impossible number however many treatments
    stack. The baseline is not modified.
    """
    return VitalsSnapshot(
        **{
            channel: clamp_vital(channel, getattr(baseline, channel) + getattr(aggregate, channel))
            for channel in VITAL_CHANNELS
        }
    )
