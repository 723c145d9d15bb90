"""
Tests for the single-treatment effect curve.

Covers:
- The onset/peak/decline/expired table for discrete treatments
- Continuous treatments holding peak indefinitely
- Malformed timing windows (no exceptions, no NaN)
- Effect vector scaling and half-up rounding of discrete channels
"""

import math
from datetime import UTC, datetime, timedelta

import pytest
from hypothesis import given
from hypothesis import strategies as st

from treatment_effects.domain.models import EffectPhase, Treatment
from treatment_effects.services.effect_model import (
    MAX_CHANNEL_EFFECT,
    calculate_effect_vector,
    calculate_phase_strength,
    calculate_treatment_effect,
    round_half_up,
)

NOW = datetime(2026, 1, 1, 12, 0, tzinfo=UTC)


class TestDiscreteScenarios:
    """Seed scenarios for a 5/15/60 treatment with +20 peak HR."""

    def test_peak_phase_at_ten_minutes(self, make_treatment) -> None:
        effect = calculate_treatment_effect(make_treatment(10, peak_hr_effect=20), NOW)

        assert effect.phase == EffectPhase.PEAK
        assert effect.strength == 1.0
        assert effect.effects.hr == 20

    def test_decline_phase_at_forty_minutes(self, make_treatment) -> None:
        effect = calculate_treatment_effect(make_treatment(40, peak_hr_effect=20), NOW)

        assert effect.phase == EffectPhase.DECLINE
        assert effect.strength == pytest.approx(math.exp(-3 * 25 / 45))
        assert effect.strength == pytest.approx(0.189, abs=1e-3)
        assert effect.effects.hr == 4

    def test_expired_at_duration(self, make_treatment) -> None:
        effect = calculate_treatment_effect(make_treatment(60, peak_hr_effect=20), NOW)

        assert effect.phase == EffectPhase.EXPIRED
        assert effect.strength == 0.0
        assert effect.effects.hr == 0

    def test_onset_ramp_is_linear(self, make_treatment) -> None:
        phase, strength, elapsed = calculate_phase_strength(make_treatment(2), NOW)

        assert phase == EffectPhase.ONSET
        assert elapsed == pytest.approx(2.0)
        assert strength == pytest.approx(0.4)

    def test_peak_starts_exactly_at_onset(self, make_treatment) -> None:
        phase, strength, _ = calculate_phase_strength(make_treatment(5), NOW)
        assert phase == EffectPhase.PEAK
        assert strength == 1.0

    def test_decline_starts_at_full_strength(self, make_treatment) -> None:
        """At elapsed == peak the decline progress is zero, so e^0 == 1."""
        phase, strength, _ = calculate_phase_strength(make_treatment(15), NOW)

        assert phase == EffectPhase.DECLINE
        assert strength == 1.0

    def test_decline_leaves_about_five_percent_just_before_expiry(self, make_treatment) -> None:
        phase, strength, _ = calculate_phase_strength(make_treatment(59.999), NOW)

        assert phase == EffectPhase.DECLINE
        assert strength == pytest.approx(math.exp(-3), abs=1e-3)


class TestContinuousTreatments:
    def test_onset_strength_for_flag(self, make_treatment) -> None:
        phase, strength, _ = calculate_phase_strength(
            make_treatment(2, is_continuous=True, onset_minutes=5), NOW
        )
        assert phase == EffectPhase.ONSET
        assert strength == pytest.approx(0.4)

    def test_negative_duration_marks_continuous(self, make_treatment) -> None:
        treatment = make_treatment(500, duration_minutes=-1)
        effect = calculate_treatment_effect(treatment, NOW)

        assert effect.is_continuous is True
        assert effect.phase == EffectPhase.PEAK
        assert effect.strength == 1.0

    def test_strength_rises_then_holds_at_peak(self, make_treatment) -> None:
        ramp = [
            calculate_phase_strength(make_treatment(m, is_continuous=True), NOW)[1]
            for m in (0, 1, 2, 3, 4)
        ]
        assert ramp == sorted(ramp)
        assert len(set(ramp)) == len(ramp)

        for minutes in (5, 15, 60, 600, 100_000):
            phase, strength, _ = calculate_phase_strength(
                make_treatment(minutes, is_continuous=True), NOW
            )
            assert phase == EffectPhase.PEAK
            assert strength == 1.0


class TestMalformedTiming:
    """Degenerate windows must produce a defined phase, never raise."""

    def test_zero_onset_is_immediate_peak(self, make_treatment) -> None:
        phase, strength, _ = calculate_phase_strength(make_treatment(0, onset_minutes=0), NOW)
        assert phase == EffectPhase.PEAK
        assert strength == 1.0

    def test_zero_onset_continuous_is_immediate_peak(self, make_treatment) -> None:
        phase, strength, _ = calculate_phase_strength(
            make_treatment(0, onset_minutes=0, is_continuous=True), NOW
        )
        assert phase == EffectPhase.PEAK
        assert strength == 1.0

    def test_peak_before_onset_is_clamped_to_onset(self, make_treatment) -> None:
        treatment = make_treatment(7, onset_minutes=10, peak_minutes=5)
        phase, strength, _ = calculate_phase_strength(treatment, NOW)
        assert phase == EffectPhase.ONSET
        assert strength == pytest.approx(0.7)

        phase, strength, _ = calculate_phase_strength(
            make_treatment(10, onset_minutes=10, peak_minutes=5), NOW
        )
        assert phase == EffectPhase.DECLINE
        assert strength == 1.0

    def test_duration_before_peak_expires_at_peak(self, make_treatment) -> None:
        phase, _, _ = calculate_phase_strength(make_treatment(12, duration_minutes=10), NOW)
        assert phase == EffectPhase.PEAK

        phase, strength, _ = calculate_phase_strength(make_treatment(15, duration_minutes=10), NOW)
        assert phase == EffectPhase.EXPIRED
        assert strength == 0.0

    def test_missing_start_is_not_started(self) -> None:
        phase, strength, elapsed = calculate_phase_strength(Treatment(peak_hr_effect=10), NOW)
        assert phase == EffectPhase.ONSET
        assert strength == 0.0
        assert elapsed == 0.0

    def test_future_start_has_no_effect(self, make_treatment) -> None:
        effect = calculate_treatment_effect(make_treatment(-3, peak_hr_effect=50), NOW)
        assert effect.phase == EffectPhase.ONSET
        assert effect.strength == 0.0
        assert effect.effects.hr == 0

    def test_naive_now_is_treated_as_utc(self, make_treatment) -> None:
        naive_now = NOW.replace(tzinfo=None)
        _, strength, elapsed = calculate_phase_strength(make_treatment(2), naive_now)
        assert elapsed == pytest.approx(2.0)
        assert strength == pytest.approx(0.4)


class TestEffectVector:
    def test_scales_all_channels_by_strength_and_dose(self) -> None:
        treatment = Treatment(
            dose_multiplier=2.0,
            peak_hr_effect=10,
            peak_bp_sys_effect=-15,
            peak_bp_dia_effect=4,
            peak_rr_effect=-3,
            peak_spo2_effect=6,
            peak_temp_effect=0.3,
        )
        vector = calculate_effect_vector(treatment, 0.5)

        assert vector.hr == 10
        assert vector.bp_sys == -15
        assert vector.bp_dia == 4
        assert vector.rr == -3
        assert vector.spo2 == 6
        assert vector.temp == pytest.approx(0.3)

    def test_temperature_is_not_rounded(self) -> None:
        vector = calculate_effect_vector(Treatment(peak_temp_effect=0.5), 0.37)
        assert vector.temp == pytest.approx(0.185)

    def test_discrete_channels_round_half_up(self) -> None:
        assert calculate_effect_vector(Treatment(peak_hr_effect=5), 0.5).hr == 3
        assert calculate_effect_vector(Treatment(peak_hr_effect=-5), 0.5).hr == -2

    @pytest.mark.parametrize(
        "value,expected", [(2.5, 3), (-2.5, -2), (3.49, 3), (-0.5, 0), (0.5, 1), (-3.51, -4)]
    )
    def test_round_half_up(self, value: float, expected: int) -> None:
        assert round_half_up(value) == expected

    def test_oversized_effects_saturate_instead_of_overflowing(self, make_treatment) -> None:
        treatment = make_treatment(10, peak_hr_effect=1e308, dose_multiplier=10)
        effect = calculate_treatment_effect(treatment, NOW)

        assert effect.phase == EffectPhase.PEAK
        assert effect.effects.hr == MAX_CHANNEL_EFFECT

        vector = calculate_effect_vector(
            Treatment(peak_bp_sys_effect=-1e308, peak_temp_effect=1e308, dose_multiplier=10), 1.0
        )
        assert vector.bp_sys == -MAX_CHANNEL_EFFECT
        assert vector.temp == MAX_CHANNEL_EFFECT

    def test_missing_effects_contribute_nothing(self) -> None:
        vector = calculate_effect_vector(Treatment(peak_hr_effect=12), 1.0)
        assert vector.model_dump() == {
            "hr": 12,
            "bp_sys": 0,
            "bp_dia": 0,
            "rr": 0,
            "spo2": 0,
            "temp": 0.0,
        }

    @given(
        strength=st.floats(min_value=0.0, max_value=1.0),
        peak=st.integers(min_value=-200, max_value=200),
        dose=st.floats(min_value=0.0, max_value=5.0),
    )
    def test_vector_is_deterministic(self, strength: float, peak: int, dose: float) -> None:
        treatment = Treatment(peak_hr_effect=peak, dose_multiplier=dose)
        first = calculate_effect_vector(treatment, strength)
        second = calculate_effect_vector(treatment, strength)

        assert first == second
        assert abs(first.hr - peak * strength * dose) <= 0.5 + 1e-9


class TestStrengthBounds:
    @given(
        elapsed=st.floats(min_value=-120.0, max_value=2000.0),
        onset=st.floats(min_value=0.0, max_value=240.0),
        peak=st.floats(min_value=0.0, max_value=480.0),
        duration=st.one_of(st.just(-1.0), st.floats(min_value=0.0, max_value=960.0)),
        continuous=st.booleans(),
    )
    def test_strength_always_within_unit_interval(
        self, elapsed: float, onset: float, peak: float, duration: float, continuous: bool
    ) -> None:
        treatment = Treatment(
            started_at=NOW - timedelta(minutes=elapsed),
            onset_minutes=onset,
            peak_minutes=peak,
            duration_minutes=duration,
            is_continuous=continuous,
        )
        phase, strength, _ = calculate_phase_strength(treatment, NOW)

        assert 0.0 <= strength <= 1.0
        assert not math.isnan(strength)
        if phase == EffectPhase.EXPIRED:
            assert strength == 0.0
        if treatment.continuous:
            assert phase in (EffectPhase.ONSET, EffectPhase.PEAK)
