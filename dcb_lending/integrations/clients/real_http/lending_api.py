"""
Lending API HTTP executor.

Every call to the DCB lending gateway (and to Confluence) goes through
RequestExecutor.execute, which never raises: HTTP error statuses come back
as-is and transport failures are folded into a NETWORK_ERROR response.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import httpx

from dcb_lending.error_handler import ErrorLog
from dcb_lending.integrations.contracts.interfaces import NETWORK_ERROR_CODE, NormalizedResponse


def lending_headers(routing: Dict[str, str], request_id: str, trace_parent: str) -> Dict[str, str]:
    """Correlation headers plus the institution's routing headers (x-channel-id, x-devops-*)."""
    headers: Dict[str, str] = dict(routing)
    headers["x-request-id"] = request_id
    headers["x-traceparent"] = trace_parent
    headers["Content-Type"] = "application/json"
    return headers


def _decode_body(response: httpx.Response) -> Any:
    if not response.content:
        return {}
    try:
        return response.json()
    except ValueError:
        return response.text


class RequestExecutor:
    def __init__(
        self,
        timeout_seconds: float = 30.0,
        verify_tls: bool = False,
        error_log: Optional[ErrorLog] = None,
        client: Optional[httpx.Client] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.error_log = error_log or ErrorLog()
        self.logger = logger or logging.getLogger(__name__)
        self._owns_client = client is None
        self._client = client or httpx.Client(timeout=timeout_seconds, verify=verify_tls)

    def execute(
        self,
        method: str,
        url: str,
        headers: Optional[Dict[str, str]] = None,
        body: Any = None,
        params: Optional[Dict[str, Any]] = None,
    ) -> NormalizedResponse:
        try:
            response = self._client.request(method.upper(), url, headers=headers, json=body, params=params)
        except httpx.RequestError as exc:
            message = str(exc) or exc.__class__.__name__
            self.logger.error("Network error: %s", message)
            self.error_log.record_network_error(message)
            return NormalizedResponse(
                status_code=None,
                body={"code": NETWORK_ERROR_CODE, "message": message},
            )

        self.logger.debug("%s %s -> %s", method.upper(), url, response.status_code)
        return NormalizedResponse(
            status_code=response.status_code,
            body=_decode_body(response),
            headers=dict(response.headers),
        )

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    def __enter__(self) -> "RequestExecutor":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()
