"""Retrying PostgREST client for a single Supabase table.

Transport errors and 429/5xx responses share one retry budget. Once it is
spent, 429 surfaces as :class:`RateLimitedError` and everything else as
:class:`UpstreamError`. PostgREST answers other failures with a JSON body
(``code``, ``message``, ``details``, ``hint``); its ``message`` and ``code``
are carried on :class:`RequestRejectedError`.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping, Optional

import requests
from tenacity import (
    RetryCallState,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_random_exponential,
)

from reference_engine.exceptions import ReferenceNotFoundError

logger = logging.getLogger(__name__)

RETRYABLE_STATUS_CODES = frozenset({429, 500, 502, 503, 504})
RETRY_ATTEMPTS = 3
MAX_RETRY_WAIT_S = 8.0

_backoff = wait_random_exponential(multiplier=0.5, max=MAX_RETRY_WAIT_S)


class ClientError(Exception):
    """Base exception for PostgREST request failures."""


class RateLimitedError(ClientError):
    def __init__(self, message: str, retry_after: Optional[float] = None) -> None:
        super().__init__(message)
        self.retry_after = retry_after


class RequestRejectedError(ClientError):
    """A 4xx answer other than 429."""

    def __init__(self, status: int, message: str, code: Optional[str] = None) -> None:
        super().__init__(message)
        self.status = status
        self.code = code


class UnauthorizedError(RequestRejectedError):
    """Missing, expired or wrong API key."""


class ForbiddenError(RequestRejectedError):
    """Row-level security denied the operation."""


class UpstreamError(ClientError):
    """Supabase failed after retries or could not be reached."""


class _RetryableResponse(Exception):
    def __init__(self, response: requests.Response) -> None:
        super().__init__(f"Retryable response ({response.status_code})")
        self.response = response


def _retry_after(response: requests.Response) -> Optional[float]:
    value = response.headers.get("Retry-After", "").strip()
    try:
        return max(float(value), 0.0)
    except ValueError:
        return None


def _retry_wait(retry_state: RetryCallState) -> float:
    outcome = retry_state.outcome
    if outcome is not None and outcome.failed:
        exception = outcome.exception()
        if isinstance(exception, _RetryableResponse):
            hinted = _retry_after(exception.response)
            if hinted is not None:
                return min(hinted, MAX_RETRY_WAIT_S)
    return _backoff(retry_state)


def _log_retry(retry_state: RetryCallState) -> None:
    exception = retry_state.outcome.exception() if retry_state.outcome else None
    logger.debug("Retrying Supabase request (attempt %s): %s", retry_state.attempt_number, exception)


def _error_detail(response: requests.Response) -> tuple[str, Optional[str]]:
    try:
        body = response.json()
    except ValueError:
        text = " ".join(response.text.split())[:200]
        return text, None
    if isinstance(body, Mapping):
        return str(body.get("message") or body.get("msg") or ""), body.get("code")
    return "", None


def _first_row(response: requests.Response) -> Dict[str, Any]:
    rows = response.json()
    if isinstance(rows, list):
        if not rows:
            raise ReferenceNotFoundError("Store returned no rows")
        return rows[0]
    return rows


class PostgrestClient:
    """Blocking client for ``/rest/v1/<table>``."""

    def __init__(
        self,
        url: str,
        key: str,
        *,
        table: str = "references",
        session: Optional[requests.Session] = None,
        timeout: float = 10.0,
    ) -> None:
        self.session = session or requests.Session()
        self.session.headers.update(
            {
                "apikey": key,
                "Authorization": f"Bearer {key}",
                "Accept": "application/json",
                "User-Agent": "thesis-reference-engine",
            }
        )
        self.table_url = f"{url.rstrip('/')}/rest/v1/{table}"
        self.timeout = timeout

    def insert(self, row: Mapping[str, Any]) -> Dict[str, Any]:
        return _first_row(self._request("POST", json=dict(row), returning=True))

    def update(self, row_id: str, patch: Mapping[str, Any]) -> Dict[str, Any]:
        response = self._request("PATCH", params={"id": f"eq.{row_id}"}, json=dict(patch), returning=True)
        return _first_row(response)

    def select(self, **filters: str) -> List[Dict[str, Any]]:
        rows = self._request("GET", params={"select": "*", **filters}).json()
        return rows if isinstance(rows, list) else []

    @retry(
        reraise=True,
        stop=stop_after_attempt(RETRY_ATTEMPTS),
        wait=_retry_wait,
        retry=retry_if_exception_type((requests.RequestException, _RetryableResponse)),
        before_sleep=_log_retry,
    )
    def _send(self, method: str, **kwargs: Any) -> requests.Response:
        response = self.session.request(method, self.table_url, timeout=self.timeout, **kwargs)
        if response.status_code in RETRYABLE_STATUS_CODES:
            raise _RetryableResponse(response)
        return response

    def _request(
        self,
        method: str,
        *,
        params: Optional[Dict[str, Any]] = None,
        json: Any = None,
        returning: bool = False,
    ) -> requests.Response:
        headers = {"Prefer": "return=representation"} if returning else None
        logger.debug("PostgREST %s %s", method, self.table_url)
        try:
            response = self._send(method, params=params, json=json, headers=headers)
        except _RetryableResponse as exc:
            response = exc.response
        except requests.RequestException as exc:
            raise UpstreamError(f"Request failed: {exc}") from exc

        status = response.status_code
        if status < 400:
            return response
        if status == 429:
            raise RateLimitedError("Rate limit exceeded", retry_after=_retry_after(response))
        message, code = _error_detail(response)
        detail = f": {message}" if message else ""
        if status >= 500:
            raise UpstreamError(f"Supabase error{detail} ({status})")
        if status == 401:
            raise UnauthorizedError(status, f"Unauthorized{detail} ({status})", code)
        if status == 403:
            raise ForbiddenError(status, f"Forbidden{detail} ({status})", code)
        raise RequestRejectedError(status, f"Request rejected{detail} ({status})", code)
