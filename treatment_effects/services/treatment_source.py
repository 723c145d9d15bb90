"""
Treatment source clients.

The treatment source is the external service that knows which interventions
are active for a session. The engine only consumes its data shape:

    GET {base_url}/sessions/{session_id}/active-effects
    -> {"active_treatments": [Treatment, ...]}

Key patterns:
- Protocol-based dependency injection (tests and the demo plug in fakes)
- Result type for expected failures instead of exceptions
- One bad record is skipped, never the whole poll
"""

from typing import Any, Generic, Protocol, TypeVar

import httpx
import structlog
from pydantic import ValidationError

from treatment_effects.config import TreatmentSourceConfig
from treatment_effects.domain.models import Treatment

logger = structlog.get_logger(__name__)

DEFAULT_ERROR_MESSAGE = "Failed to fetch treatment effects"

ValueT = TypeVar("ValueT")
ErrorT = TypeVar("ErrorT", bound=BaseException)


class Result(Generic[ValueT, ErrorT]):
    """
    Outcome of one fetch: either a value or an error, never both.

    A failed poll is normal operation for a network client, so it is returned
    rather than raised. Callers branch on ``is_err()`` and then take the side
    they need.
    """

    __slots__ = ("_value", "_error")

    def __init__(self, value: ValueT | None = None, error: ErrorT | None = None) -> None:
        if (value is None) == (error is None):
            raise ValueError("Result needs exactly one of value or error")
        self._value = value
        self._error = error

    @classmethod
    def ok(cls, value: ValueT) -> "Result[ValueT, ErrorT]":
        return cls(value=value)

    @classmethod
    def err(cls, error: ErrorT) -> "Result[ValueT, ErrorT]":
        return cls(error=error)

    def is_ok(self) -> bool:
        return self._error is None

    def is_err(self) -> bool:
        return self._error is not None

    def unwrap(self) -> ValueT:
        """Return the value, re-raising the error if there is one."""
        if self._error is not None:
            raise self._error
        return self._value  # type: ignore[return-value]

    def unwrap_err(self) -> ErrorT:
        if self._error is None:
            raise ValueError("unwrap_err() called on an ok Result")
        return self._error


class TreatmentSourceError(Exception):
    """Transport, HTTP status or payload failure talking to the treatment source."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class TreatmentSource(Protocol):
    """Anything that can report the active treatments of a session."""

    async def fetch_active_treatments(
        self, session_id: str
    ) -> Result[list[Treatment], TreatmentSourceError]:
        ...


def parse_active_treatments(payload: Any, session_id: str | None = None) -> list[Treatment]:
    """
    Parse an ``active-effects`` response body.

    Raises:
        TreatmentSourceError: if the body is not an object.
    """
    if not isinstance(payload, dict):
        raise TreatmentSourceError("Malformed active-effects response")

    records = payload.get("active_treatments") or []
    if not isinstance(records, list):
        raise TreatmentSourceError("active_treatments must be a list")

    treatments: list[Treatment] = []
    for record in records:
        try:
            treatments.append(Treatment.model_validate(record))
        except ValidationError as e:
            logger.warning(
                "treatment_record_skipped",
                session_id=session_id,
                record_id=record.get("id") if isinstance(record, dict) else None,
                error=str(e),
            )
    return treatments


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return DEFAULT_ERROR_MESSAGE
    if isinstance(body, dict) and body.get("error"):
        return str(body["error"])
    return DEFAULT_ERROR_MESSAGE


class HttpTreatmentSource:
    """
    Treatment source backed by the session API.

    Design: one shared ``httpx.AsyncClient`` per source, closed with
    ``aclose()`` or the async context manager. A custom client (for example
    one using ``httpx.MockTransport``) may be injected.
    """

    def __init__(
        self, config: TreatmentSourceConfig, client: httpx.AsyncClient | None = None
    ) -> None:
        self.config = config
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=config.timeout_seconds)
        self.logger = logger.bind(component="http_treatment_source", base_url=config.base_url)

    def _headers(self) -> dict[str, str]:
        headers = {"Accept": "application/json"}
        if self.config.api_token:
            headers["Authorization"] = f"Bearer {self.config.api_token}"
        return headers

    def active_effects_url(self, session_id: str) -> str:
        return f"{self.config.base_url.rstrip('/')}/sessions/{session_id}/active-effects"

    async def fetch_active_treatments(
        self, session_id: str
    ) -> Result[list[Treatment], TreatmentSourceError]:
        url = self.active_effects_url(session_id)
        try:
            response = await self._client.get(url, headers=self._headers())
        except httpx.HTTPError as e:
            self.logger.warning(
                "active_effects_request_failed", session_id=session_id, error=str(e)
            )
            return Result.err(TreatmentSourceError(str(e) or DEFAULT_ERROR_MESSAGE))

        if not response.is_success:
            message = _error_message(response)
            self.logger.warning(
                "active_effects_http_error",
                session_id=session_id,
                status_code=response.status_code,
                error=message,
            )
            return Result.err(TreatmentSourceError(message, status_code=response.status_code))

        try:
            treatments = parse_active_treatments(response.json(), session_id=session_id)
        except (ValueError, TreatmentSourceError) as e:
            self.logger.warning(
                "active_effects_payload_invalid", session_id=session_id, error=str(e)
            )
            return Result.err(TreatmentSourceError(str(e), status_code=response.status_code))

        self.logger.debug("active_effects_fetched", session_id=session_id, count=len(treatments))
        return Result.ok(treatments)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> "HttpTreatmentSource":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()
