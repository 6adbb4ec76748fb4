"""Reverse-geocode client with bounded retries, backoff and rate-limit penalties."""

from __future__ import annotations

import logging
import threading
import time
from types import TracebackType
from typing import Any, Callable

import requests
from tenacity import RetryCallState, Retrying, retry_if_exception_type, stop_after_attempt

from geoenrich.common.config_loader import GeocoderSettings
from geoenrich.common.errors import PipelineError
from geoenrich.common.logging import log_event
from geoenrich.common.models import CoordinatePair, ResolvedLocation
from geoenrich.pipeline.address import AddressBreakdown, build_location

logger = logging.getLogger(__name__)

MAX_ERROR_BODY_CHARS = 200


class GeocodeError(PipelineError):
    error_code = "GEOCODE_ERROR"


class RateLimitedError(GeocodeError):
    error_code = "RATE_LIMITED"


class UpstreamError(GeocodeError):
    error_code = "UPSTREAM_ERROR"

    def __init__(self, status: int, body: str = "") -> None:
        super().__init__(f"API returned status {status}: {body}")
        self.status = status
        self.body = body


class UpstreamServerError(UpstreamError):
    pass


class NetworkError(GeocodeError):
    error_code = "NETWORK_ERROR"


class NoResultError(GeocodeError):
    error_code = "NO_RESULT"


class MalformedResponseError(GeocodeError):
    error_code = "MALFORMED_RESPONSE"


RETRYABLE_ERRORS = (RateLimitedError, UpstreamServerError, NetworkError, MalformedResponseError)


def retry_delay(
    attempt_number: int,
    error: BaseException | None,
    *,
    backoff_base: float,
    rate_limit_penalty: float,
) -> float:
    """Seconds to wait after failed attempt ``attempt_number`` (1-based).

    Exponential backoff ``base * 2**(n-1)``; a 429 adds ``penalty * n`` on top.
    """
    delay = backoff_base * 2 ** (attempt_number - 1)
    if isinstance(error, RateLimitedError):
        delay += rate_limit_penalty * attempt_number
    return delay


def location_from_payload(payload: Any) -> ResolvedLocation:
    if not isinstance(payload, dict):
        raise MalformedResponseError(f"Expected a JSON object, got {type(payload).__name__}")

    display_name = payload.get("display_name") or ""
    address = payload.get("address") or {}
    if not isinstance(display_name, str) or not isinstance(address, dict):
        raise MalformedResponseError("Unexpected display_name or address type")
    try:
        breakdown = AddressBreakdown.from_payload(address)
    except TypeError as exc:
        raise MalformedResponseError(str(exc)) from exc

    if not display_name:
        raise NoResultError("no address found for coordinates")
    return build_location(display_name, breakdown)


class GeocodeClient:
    def __init__(
        self,
        settings: GeocoderSettings | None = None,
        *,
        session: requests.Session | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.settings = settings or GeocoderSettings()
        self.session = session or requests.Session()
        self.sleep = sleep
        self.request_count = 0
        self._count_lock = threading.Lock()

    def close(self) -> None:
        self.session.close()

    def __enter__(self) -> "GeocodeClient":
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()

    def _headers(self) -> dict[str, str]:
        return {
            "User-Agent": self.settings.user_agent,
            "Accept": "application/json",
            "Accept-Language": self.settings.language,
        }

    def _params(self, pair: CoordinatePair) -> dict[str, str]:
        return {
            "lat": f"{pair.latitude:.6f}",
            "lon": f"{pair.longitude:.6f}",
            "format": "json",
            "addressdetails": "1",
            "accept-language": self.settings.language,
        }

    def _wait(self, retry_state: RetryCallState) -> float:
        return retry_delay(
            retry_state.attempt_number,
            retry_state.outcome.exception() if retry_state.outcome else None,
            backoff_base=self.settings.backoff_base_seconds,
            rate_limit_penalty=self.settings.rate_limit_penalty_seconds,
        )

    def _before_sleep(self, retry_state: RetryCallState) -> None:
        exc = retry_state.outcome.exception() if retry_state.outcome else None
        log_event(
            logger,
            f"geocode attempt failed, retrying in {retry_state.next_action.sleep:.1f}s: {exc}",
            level=logging.DEBUG,
            event="GEOCODE_RETRY",
            status="retry",
            attempt=retry_state.attempt_number,
            error_code=getattr(exc, "error_code", None),
        )

    def _request_once(self, pair: CoordinatePair) -> ResolvedLocation:
        with self._count_lock:
            self.request_count += 1

        try:
            response = self.session.request(
                method="GET",
                url=self.settings.endpoint,
                params=self._params(pair),
                headers=self._headers(),
                timeout=self.settings.timeout_seconds,
            )
        except requests.RequestException as exc:
            raise NetworkError(str(exc)) from exc

        status = response.status_code
        if status == 429:
            raise RateLimitedError("API rate limit exceeded (HTTP 429)")
        if status >= 500:
            raise UpstreamServerError(status, response.text[:MAX_ERROR_BODY_CHARS])
        if not 200 <= status < 300:
            raise UpstreamError(status, response.text[:MAX_ERROR_BODY_CHARS])

        try:
            payload = response.json()
        except ValueError as exc:
            raise MalformedResponseError(f"Invalid JSON payload from {self.settings.endpoint}") from exc

        return location_from_payload(payload)

    def resolve(self, pair: CoordinatePair) -> ResolvedLocation:
        """Resolve one coordinate pair, raising a ``GeocodeError`` subclass on failure."""
        retrying = Retrying(
            stop=stop_after_attempt(self.settings.max_attempts),
            wait=self._wait,
            retry=retry_if_exception_type(RETRYABLE_ERRORS),
            before_sleep=self._before_sleep,
            sleep=self.sleep,
            reraise=True,
        )
        return retrying(self._request_once, pair)
