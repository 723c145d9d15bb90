"""
Live patient monitor driven by the treatment effects controller.

Run with: python -m treatment_effects --session 42
      or: python -m treatment_effects --demo
"""

import argparse
import asyncio
from datetime import datetime, timedelta

from rich.console import Console, Group
from rich.live import Live
from rich.panel import Panel
from rich.table import Table

from treatment_effects.config import AppConfig, configure_logging, get_config
from treatment_effects.domain.models import (
    VITAL_CHANNELS,
    AggregateEffects,
    Treatment,
    TreatmentType,
    VitalsSnapshot,
)
from treatment_effects.services.engine import utc_now
from treatment_effects.services.polling import TreatmentEffectsController
from treatment_effects.services.treatment_source import (
    HttpTreatmentSource,
    Result,
    TreatmentSource,
    TreatmentSourceError,
)
from treatment_effects.services.vitals import VITAL_BOUNDS

console = Console()

_CHANNEL_LABELS = {
    "hr": "HR (bpm)",
    "bp_sys": "BP sys (mmHg)",
    "bp_dia": "BP dia (mmHg)",
    "rr": "RR (/min)",
    "spo2": "SpO2 (%)",
    "temp": "Temp (C)",
}

_PHASE_STYLES = {"onset": "yellow", "peak": "green", "decline": "cyan"}


class ScriptedTreatmentSource:
    """Demo source: a fixed set of treatments started relative to launch time."""

    def __init__(self, started: datetime | None = None) -> None:
        started = started or utc_now()
        self._treatments = [
            Treatment(
                id=1,
                treatment_item="Adrenaline 0.5 mg IM",
                treatment_type=TreatmentType.MEDICATION,
                started_at=started - timedelta(minutes=3),
                onset_minutes=2,
                peak_minutes=10,
                duration_minutes=30,
                peak_hr_effect=25,
                peak_bp_sys_effect=20,
                peak_bp_dia_effect=10,
            ),
            Treatment(
                id=2,
                treatment_item="Normal saline 500 mL bolus",
                treatment_type=TreatmentType.IV_FLUID,
                started_at=started - timedelta(minutes=12),
                peak_bp_sys_effect=12,
                peak_bp_dia_effect=6,
                peak_hr_effect=-8,
            ),
            Treatment(
                id=3,
                treatment_item="Oxygen 15 L/min non-rebreather",
                treatment_type=TreatmentType.OXYGEN,
                started_at=started - timedelta(minutes=1),
                onset_minutes=3,
                duration_minutes=-1,
                peak_spo2_effect=8,
                peak_rr_effect=-4,
            ),
        ]

    async def fetch_active_treatments(
        self, session_id: str
    ) -> Result[list[Treatment], TreatmentSourceError]:
        return Result.ok(list(self._treatments))


def _format_value(channel: str, value: float) -> str:
    return f"{value:.1f}" if channel == "temp" else f"{value:.0f}"


def _format_delta(channel: str, value: float) -> str:
    return f"{value:+.2f}" if channel == "temp" else f"{value:+d}"


def render_monitor(
    controller: TreatmentEffectsController, baseline: VitalsSnapshot, effects: AggregateEffects
) -> Group:
    """Build the renderable for one screen refresh."""
    composed = controller.apply_to_vitals(baseline)

    vitals_table = Table(title="Vital signs")
    vitals_table.add_column("Channel", style="cyan")
    vitals_table.add_column("Baseline", justify="right")
    vitals_table.add_column("Effect", justify="right")
    vitals_table.add_column("Displayed", justify="right", style="bold")
    vitals_table.add_column("Range", justify="right", style="dim")
    for channel in VITAL_CHANNELS:
        low, high = VITAL_BOUNDS[channel]
        vitals_table.add_row(
            _CHANNEL_LABELS[channel],
            _format_value(channel, getattr(baseline, channel)),
            _format_delta(channel, getattr(effects.aggregate, channel)),
            _format_value(channel, getattr(composed, channel)),
            f"{low}-{high}",
        )

    treatments_table = Table(title=f"Active treatments ({effects.count})")
    treatments_table.add_column("Treatment", style="white")
    treatments_table.add_column("Type")
    treatments_table.add_column("Phase")
    treatments_table.add_column("Strength", justify="right")
    treatments_table.add_column("Elapsed", justify="right")
    for effect in effects.treatments:
        phase = effect.phase.value
        treatments_table.add_row(
            effect.treatment_name or "-",
            effect.treatment_type.value if effect.treatment_type else "-",
            f"[{_PHASE_STYLES.get(phase, 'white')}]{phase}[/]",
            f"{effect.strength:.0%}",
            f"{effect.elapsed_minutes:.1f} min",
        )

    status = f"Session {controller.session_id}  state={controller.state.value}"
    if controller.loading:
        status += "  loading..."
    if controller.error:
        status += f"  [red]error: {controller.error}[/]"
    return Group(Panel(status, style="bold blue"), vitals_table, treatments_table)


async def run_monitor(
    source: TreatmentSource,
    session_id: str,
    baseline: VitalsSnapshot,
    config: AppConfig,
    duration_seconds: float | None = None,
) -> None:
    async with TreatmentEffectsController(source, config.polling) as controller:
        await controller.set_session(session_id)
        with Live(
            render_monitor(controller, baseline, controller.effects),
            console=console,
            refresh_per_second=4,
        ) as live:
            unsubscribe = controller.subscribe(
                lambda effects: live.update(render_monitor(controller, baseline, effects))
            )
            try:
                if duration_seconds is None:
                    await asyncio.Event().wait()
                else:
                    await asyncio.sleep(duration_seconds)
            finally:
                # No updates once the display has stopped
                unsubscribe()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Live treatment effects patient monitor")
    target = parser.add_mutually_exclusive_group(required=True)
    target.add_argument("--session", help="Session id to poll from the session API")
    target.add_argument("--demo", action="store_true", help="Use a built-in scripted scenario")
    parser.add_argument("--hr", type=float, default=110, help="Baseline heart rate")
    parser.add_argument("--bp-sys", type=float, default=85, help="Baseline systolic BP")
    parser.add_argument("--bp-dia", type=float, default=50, help="Baseline diastolic BP")
    parser.add_argument("--rr", type=float, default=24, help="Baseline respiratory rate")
    parser.add_argument("--spo2", type=float, default=89, help="Baseline SpO2")
    parser.add_argument("--temp", type=float, default=37.2, help="Baseline temperature (C)")
    parser.add_argument(
        "--duration", type=float, default=None, help="Stop after this many seconds"
    )
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    config = get_config()
    configure_logging(config.logging)

    baseline = VitalsSnapshot(
        hr=args.hr,
        bp_sys=args.bp_sys,
        bp_dia=args.bp_dia,
        rr=args.rr,
        spo2=args.spo2,
        temp=args.temp,
    )

    async def _run() -> None:
        if args.demo:
            await run_monitor(ScriptedTreatmentSource(), "demo", baseline, config, args.duration)
            return
        async with HttpTreatmentSource(config.source) as source:
            await run_monitor(source, args.session, baseline, config, args.duration)

    try:
        asyncio.run(_run())
    except KeyboardInterrupt:
        console.print("\nMonitor stopped", style="yellow")
    return 0
