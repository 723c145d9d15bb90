"""
Polling controller that keeps a session's treatment effects current.

Two independent periodic tasks share one engine snapshot:
- a slow poll (network bound) is the only writer: it replaces the snapshot
- a fast recompute (CPU bound) is a pure reader: it turns the snapshot and
  the current time into an aggregate for the monitor

This keeps the displayed numbers moving smoothly between polls without
issuing a request per screen update.

States: idle (no session) -> polling (both tasks running) -> idle.
"""

import asyncio
from collections.abc import Callable, Mapping
from datetime import datetime
from enum import Enum
from typing import Any

import structlog

from treatment_effects.config import PollingConfig
from treatment_effects.domain.models import AggregateEffects, EffectsSummary, VitalsSnapshot
from treatment_effects.services.engine import Clock, TreatmentEffectsEngine, utc_now
from treatment_effects.services.scheduler import PeriodicTask
from treatment_effects.services.treatment_source import (
    DEFAULT_ERROR_MESSAGE,
    Result,
    TreatmentSource,
    TreatmentSourceError,
)

logger = structlog.get_logger(__name__)

EffectsListener = Callable[[AggregateEffects], None]


class PollingState(str, Enum):
    IDLE = "idle"
    POLLING = "polling"


class TreatmentEffectsController:
    """
    Owns the polling lifecycle for one engine.

    Error policy: a failed poll sets ``error`` and keeps the last good
    snapshot (stale but available). It never stops the loop.

    Every fetch is tagged with a sequence number. A response that is not the
    latest issued request, or that lands after a session change or
    teardown, is discarded.
    """

    def __init__(
        self,
        source: TreatmentSource,
        config: PollingConfig | None = None,
        *,
        engine: TreatmentEffectsEngine | None = None,
        clock: Clock = utc_now,
    ) -> None:
        self.source = source
        self.config = config or PollingConfig()
        self.engine = engine or TreatmentEffectsEngine(clock=clock)
        self._clock = clock

        self._state = PollingState.IDLE
        self._session_id: str | None = None
        self._effects = AggregateEffects(computed_at=clock())
        self._error: str | None = None
        self._loading = False
        self._last_fetch_at: datetime | None = None
        self._request_seq = 0
        self._listeners: list[EffectsListener] = []
        self._lifecycle_lock = asyncio.Lock()

        self._poll_task: PeriodicTask | None = None
        self._update_task: PeriodicTask | None = None
        self.logger = logger.bind(component="treatment_effects_controller")

    @property
    def state(self) -> PollingState:
        return self._state

    @property
    def session_id(self) -> str | None:
        return self._session_id

    @property
    def effects(self) -> AggregateEffects:
        return self._effects

    @property
    def error(self) -> str | None:
        return self._error

    @property
    def loading(self) -> bool:
        return self._loading

    @property
    def last_fetch_at(self) -> datetime | None:
        return self._last_fetch_at

    def subscribe(self, listener: EffectsListener) -> Callable[[], None]:
        """Register a listener for every published aggregate. Returns an unsubscribe callable."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    async def set_session(self, session_id: str | int | None) -> None:
        """
        Attach to a session, or detach with ``None``.

        Any change tears both tasks down and zeroes the snapshot before polling
        the new session, so nothing leaks from one session into the next.
        Concurrent calls are applied one at a time, in call order.
        """
        session = str(session_id) if session_id not in (None, "") else None
        should_poll = session is not None and self.config.enabled

        async with self._lifecycle_lock:
            if session == self._session_id and (self._state is PollingState.POLLING) == should_poll:
                return

            await self._teardown()
            self._session_id = session

            if not should_poll:
                self.logger.info(
                    "polling_idle", session_id=session, enabled=self.config.enabled
                )
                return

            self._start()

    async def refresh(self) -> None:
        """Fetch immediately instead of waiting for the next slow tick."""
        if self._state is not PollingState.POLLING:
            return
        self._loading = True
        await self._poll_once()

    def recompute(self) -> AggregateEffects:
        """Recalculate from the cached snapshot and the current time. No network."""
        effects = self.engine.calculate_aggregate_effects()
        self._publish(effects)
        return effects

    def apply_to_vitals(self, baseline: VitalsSnapshot | Mapping[str, Any]) -> VitalsSnapshot:
        if not isinstance(baseline, VitalsSnapshot):
            baseline = VitalsSnapshot.model_validate(dict(baseline))
        return self.engine.apply_effects_to_vitals(baseline)

    def get_summary(self) -> EffectsSummary:
        return self.engine.get_summary()

    def has_significant_effects(self, threshold: float = 5) -> bool:
        return self.engine.has_significant_effects(threshold)

    async def close(self) -> None:
        await self.set_session(None)

    async def __aenter__(self) -> "TreatmentEffectsController":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    def _start(self) -> None:
        self._state = PollingState.POLLING
        self._loading = True
        self._poll_task = PeriodicTask(
            "treatment-poll", self.config.poll_interval_seconds, self._poll_once
        )
        self._update_task = PeriodicTask(
            "effects-recompute", self.config.update_interval_seconds, self.recompute
        )
        self._poll_task.start()
        self._update_task.start()
        self.logger.info(
            "polling_started",
            session_id=self._session_id,
            poll_interval_ms=self.config.poll_interval_ms,
            update_interval_ms=self.config.update_interval_ms,
        )

    async def _teardown(self) -> None:
        # Invalidate any request still in flight
        self._request_seq += 1

        for task in (self._poll_task, self._update_task):
            if task is not None:
                await task.stop()
        self._poll_task = None
        self._update_task = None

        if self._state is PollingState.POLLING:
            self.logger.info("polling_stopped", session_id=self._session_id)

        self._state = PollingState.IDLE
        self._loading = False
        self._error = None
        self._last_fetch_at = None
        self.engine.clear()
        self._publish(AggregateEffects(computed_at=self._clock()))

    async def _poll_once(self) -> None:
        session_id = self._session_id
        if session_id is None:
            return

        self._request_seq += 1
        request_seq = self._request_seq

        try:
            result = await self.source.fetch_active_treatments(session_id)
        except Exception as e:
            self.logger.exception("treatment_source_raised", session_id=session_id, error=str(e))
            result = Result.err(TreatmentSourceError(str(e) or DEFAULT_ERROR_MESSAGE))

        if (
            request_seq != self._request_seq
            or session_id != self._session_id
            or self._state is not PollingState.POLLING
        ):
            self.logger.info(
                "stale_poll_response_discarded",
                session_id=session_id,
                request_seq=request_seq,
                latest_seq=self._request_seq,
            )
            return

        self._loading = False

        if result.is_err():
            error = result.unwrap_err()
            self._error = str(error) or DEFAULT_ERROR_MESSAGE
            self.logger.warning(
                "poll_failed",
                session_id=session_id,
                error=self._error,
                retained_treatments=len(self.engine.active_treatments),
            )
            return

        treatments = result.unwrap()
        self.engine.set_active_treatments(treatments)
        self._last_fetch_at = self._clock()
        self._error = None
        self.logger.info("treatments_polled", session_id=session_id, count=len(treatments))
        self.recompute()

    def _publish(self, effects: AggregateEffects) -> None:
        self._effects = effects
        for listener in list(self._listeners):
            try:
                listener(effects)
            except Exception as e:
                self.logger.error("effects_listener_failed", error=str(e))
