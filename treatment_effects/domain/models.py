"""
Domain models for treatment effects on patient vital signs.

These models represent the core clinical concepts and are framework-agnostic.
They use Pydantic for validation so that records coming from the treatment
source degrade to documented defaults instead of failing.
"""

from datetime import UTC, datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator

# Effect channels, in display order
VITAL_CHANNELS: tuple[str, ...] = ("hr", "bp_sys", "bp_dia", "rr", "spo2", "temp")

# Channels rounded to whole units per treatment; temp keeps sub-degree resolution
DISCRETE_CHANNELS: tuple[str, ...] = ("hr", "bp_sys", "bp_dia", "rr", "spo2")


class TreatmentType(str, Enum):
    """Kinds of clinical interventions that can affect vitals."""

    MEDICATION = "medication"
    IV_FLUID = "iv_fluid"
    OXYGEN = "oxygen"
    NURSING = "nursing"


class EffectPhase(str, Enum):
    """Pharmacodynamic phase of a single treatment."""

    ONSET = "onset"
    PEAK = "peak"
    DECLINE = "decline"
    EXPIRED = "expired"


_TREATMENT_DEFAULTS: dict[str, Any] = {
    "onset_minutes": 5.0,
    "peak_minutes": 15.0,
    "duration_minutes": 60.0,
    "is_continuous": False,
    "dose_multiplier": 1.0,
    "peak_hr_effect": 0.0,
    "peak_bp_sys_effect": 0.0,
    "peak_bp_dia_effect": 0.0,
    "peak_rr_effect": 0.0,
    "peak_spo2_effect": 0.0,
    "peak_temp_effect": 0.0,
}


class Treatment(BaseModel):
    """
    An active intervention as reported by the treatment source.

    Only ``started_at`` drives timing; every numeric field has a default so a
    sparse record still yields a well-defined (possibly zero) effect.
    """

    model_config = ConfigDict(frozen=True, extra="ignore", allow_inf_nan=False)

    id: int | str | None = None
    treatment_order_id: int | str | None = None
    treatment_name: str | None = None
    treatment_item: str | None = None
    treatment_type: TreatmentType | None = None

    started_at: datetime | None = None
    onset_minutes: float = 5.0
    peak_minutes: float = 15.0
    duration_minutes: float = Field(default=60.0, description="-1 marks a continuous treatment")
    is_continuous: bool = False

    dose_multiplier: float = 1.0
    peak_hr_effect: float = 0.0
    peak_bp_sys_effect: float = 0.0
    peak_bp_dia_effect: float = 0.0
    peak_rr_effect: float = 0.0
    peak_spo2_effect: float = 0.0
    peak_temp_effect: float = 0.0

    @field_validator(*_TREATMENT_DEFAULTS, mode="before")
    @classmethod
    def null_to_default(cls, v: Any, info: ValidationInfo) -> Any:
        if v is None:
            return _TREATMENT_DEFAULTS[info.field_name]
        return v

    @field_validator("treatment_type", mode="before")
    @classmethod
    def unknown_type_to_none(cls, v: Any) -> Any:
        if v is None or isinstance(v, TreatmentType):
            return v
        try:
            return TreatmentType(str(v).lower())
        except ValueError:
            return None

    @field_validator("started_at", mode="after")
    @classmethod
    def assume_utc(cls, v: datetime | None) -> datetime | None:
        # SQLite CURRENT_TIMESTAMP values arrive without an offset and are UTC
        if v is not None and v.tzinfo is None:
            return v.replace(tzinfo=UTC)
        return v

    @property
    def display_name(self) -> str | None:
        return self.treatment_item or self.treatment_name

    @property
    def continuous(self) -> bool:
        return self.is_continuous or self.duration_minutes == -1

    def peak_effect(self, channel: str) -> float:
        return getattr(self, f"peak_{channel}_effect")


class EffectVector(BaseModel):
    """Per-channel delta applied to vital signs."""

    model_config = ConfigDict(frozen=True)

    hr: int = 0
    bp_sys: int = 0
    bp_dia: int = 0
    rr: int = 0
    spo2: int = 0
    temp: float = 0.0

    def __add__(self, other: "EffectVector") -> "EffectVector":
        summed = {ch: getattr(self, ch) + getattr(other, ch) for ch in VITAL_CHANNELS}
        return EffectVector(**summed)


class VitalsSnapshot(BaseModel):
    """A six-channel vitals reading. Missing channels read as zero."""

    model_config = ConfigDict(frozen=True)

    hr: float = 0
    bp_sys: float = 0
    bp_dia: float = 0
    rr: float = 0
    spo2: float = 0
    temp: float = 0

    @field_validator(*VITAL_CHANNELS, mode="before")
    @classmethod
    def null_to_zero(cls, v: Any) -> Any:
        return 0 if v is None else v


class TreatmentEffect(BaseModel):
    """Effect of one treatment at a given instant."""

    model_config = ConfigDict(frozen=True)

    id: int | str | None = None
    treatment_order_id: int | str | None = None
    treatment_name: str | None = None
    treatment_type: TreatmentType | None = None
    phase: EffectPhase
    strength: float = Field(ge=0.0, le=1.0)
    elapsed_minutes: float
    is_continuous: bool
    effects: EffectVector


class AggregateEffects(BaseModel):
    """Summed effect of every non-expired treatment."""

    treatments: list[TreatmentEffect] = Field(default_factory=list)
    aggregate: EffectVector = Field(default_factory=EffectVector)
    count: int = 0
    computed_at: datetime = Field(default_factory=lambda: datetime.now(UTC))


class EffectsSummary(BaseModel):
    """Counts by type and phase for summary display."""

    count: int
    by_type: dict[str, int]
    by_phase: dict[str, int]
    aggregate: EffectVector
    treatments: list[TreatmentEffect]
