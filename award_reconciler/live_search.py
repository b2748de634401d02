"""
Live-search HTTP client.

Each loyalty program has its own endpoint on the live-search backend,
``{base_url}/live-search-{program}``, which accepts a JSON body
``{"from": "SEA", "to": "NRT", "depart": "2024-05-01", "ADT": 2}`` and
answers with a list of itinerary options and their award prices.

Example:
    >>> from award_reconciler.live_search import LiveSearchClient
    >>> client = LiveSearchClient()
    >>> response = client.search("AS", "SEA", "NRT", "2024-05-01", 2)
    >>> print(len(response.itinerary))
"""

from __future__ import annotations

import json
import logging
import time
from typing import Any, Callable, Dict, Optional

from primp import Client
from pydantic import ValidationError

from .config import get_config
from .errors import (
    LiveSearchNetworkError,
    LiveSearchParseError,
    http_status_error,
)
from .live_schema import LiveSearchRequest, LiveSearchResponse
from .retry import RetryPolicy, policy_for, retry_call
from .types import ResponseProtocol, Transport

logger = logging.getLogger(__name__)


def primp_transport(timeout: Optional[float] = None) -> Transport:
    """
    Build a transport that POSTs JSON with a primp client.

    Args:
        timeout: Client timeout in seconds (default: from config)
    """
    if timeout is None:
        timeout = get_config().request_timeout_seconds
    client = Client(timeout=timeout)

    def post(url: str, payload: dict) -> ResponseProtocol:
        return client.post(url, json=payload, headers={"Content-Type": "application/json"})

    return post


class LiveSearchClient:
    """
    Client for the per-program live-search endpoints.

    Args:
        base_url: Backend base URL (default: from config)
        transport: Callable posting a payload to a URL (default: primp)
        sleep: Sleep function used between retries
        retry: Enable per-program transport retries
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        transport: Optional[Transport] = None,
        sleep: Callable[[float], None] = time.sleep,
        retry: bool = True,
    ):
        self.base_url = (base_url or get_config().live_search_base_url).rstrip("/")
        self._transport = transport
        self._sleep = sleep
        self.retry = retry

    @property
    def transport(self) -> Transport:
        if self._transport is None:
            self._transport = primp_transport()
        return self._transport

    def endpoint(self, program: str) -> str:
        return f"{self.base_url}/live-search-{program.lower()}"

    def fetch_once(self, program: str, request: LiveSearchRequest) -> Dict[str, Any]:
        """
        Make one POST and return the decoded JSON body.

        Raises:
            LiveSearchNetworkError: If the transport raised
            LiveSearchHTTPError: If the status is not 2xx
            LiveSearchParseError: If the body is not a JSON object
        """
        url = self.endpoint(program)
        span = f"{request.from_iata}-{request.to_iata}"
        try:
            res = self.transport(url, request.to_payload())
        except Exception as e:
            raise LiveSearchNetworkError.from_code(
                message=f"Network error when connecting to {url}: {e}",
                details={"program": program, "span": span},
            ) from e

        if not 200 <= res.status_code < 300:
            raise http_status_error(program, span, request.depart, res.status_code)

        try:
            payload = json.loads(res.text)
        except ValueError as e:
            raise LiveSearchParseError.from_code(
                message=f"Malformed JSON from {url}: {e}",
                details={"program": program, "span": span},
            ) from e

        if not isinstance(payload, dict):
            raise LiveSearchParseError.from_code(
                message=f"Unexpected response type from {url}: {type(payload).__name__}",
                details={"program": program, "span": span},
            )
        return payload

    def fetch(
        self,
        program: str,
        from_iata: str,
        to_iata: str,
        depart: str,
        seats: int,
        policy: Optional[RetryPolicy] = None,
        retry: Optional[bool] = None,
    ) -> Dict[str, Any]:
        """
        Fetch the raw response body, retrying transient failures.

        ``retry`` overrides the client default for this call.
        """
        request = LiveSearchRequest(
            from_iata=from_iata.upper(),
            to_iata=to_iata.upper(),
            depart=depart,
            adults=seats,
        )
        logger.info(f"Live search {program.upper()} {request.from_iata}-{request.to_iata} {depart} x{seats}")

        if not (self.retry if retry is None else retry):
            return self.fetch_once(program, request)

        return retry_call(
            lambda: self.fetch_once(program, request),
            policy or policy_for(program),
            sleep=self._sleep,
        )

    def search(
        self,
        program: str,
        from_iata: str,
        to_iata: str,
        depart: str,
        seats: int,
    ) -> LiveSearchResponse:
        return parse_response(self.fetch(program, from_iata, to_iata, depart, seats))


def parse_response(payload: Dict[str, Any]) -> LiveSearchResponse:
    """
    Validate a raw live-search body.

    Raises:
        LiveSearchParseError: If the body does not match the wire schema
    """
    try:
        return LiveSearchResponse.model_validate(payload)
    except ValidationError as e:
        raise LiveSearchParseError.from_code(
            message=f"Failed to parse live-search response: {e.error_count()} validation error(s)",
            details={"errors": e.errors(include_url=False)},
        ) from e


__all__ = [
    "primp_transport",
    "LiveSearchClient",
    "parse_response",
]
