"""
TaskPanel Backend Transport — One JSON request/response round trip per call.

Pipeline (per call):
    1. Build URL under the configured base_url, merge session auth headers
    2. Execute via httpx.AsyncClient (one pooled client per transport)
    3. Classify the outcome: network error / non-2xx / malformed body / success
    4. Log the call to the "requests" event-log category

No batching and no retries: a failed call is reported once and the user
re-triggers the action. All failures surface as TaskPanelRequestError with
the backend's `error` string when the body carries one.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Dict, Optional

import httpx

from taskpanel.engine.config import BackendConfig
from taskpanel.engine.context import SessionContext
from taskpanel.engine.errors import TaskPanelRequestError
from taskpanel.engine.logging import EventLog, log_request

logger = logging.getLogger("taskpanel.engine.transport")

_NO_BODY = object()


class BackendTransport:
    """
    Async JSON transport for the task backend.

    A caller-supplied httpx.AsyncClient (e.g. one built on httpx.MockTransport)
    is used as-is and not closed by this transport; otherwise one is created
    lazily and closed by aclose().
    """

    def __init__(
        self,
        config: BackendConfig,
        session: SessionContext,
        client: Optional[httpx.AsyncClient] = None,
        event_log: Optional[EventLog] = None,
    ):
        self._config = config
        self._session = session
        self._client = client
        self._owns_client = client is None
        self._event_log = event_log

    @property
    def session(self) -> SessionContext:
        return self._session

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            kwargs: Dict[str, Any] = {
                "base_url": self._config.base_url,
                "headers": dict(self._config.headers),
                "follow_redirects": True,
            }
            if self._config.timeout is not None:
                kwargs["timeout"] = httpx.Timeout(self._config.timeout)
            self._client = httpx.AsyncClient(**kwargs)
            logger.debug("Created httpx client for %s", self._config.base_url)
        return self._client

    async def request(
        self,
        method: str,
        path: str,
        *,
        params: Optional[Dict[str, Any]] = None,
        json: Optional[Any] = None,
        failure_message: str = "Request failed",
        operation: Optional[str] = None,
    ) -> Any:
        """
        Execute one round trip and return the decoded JSON body.

        Raises:
            TaskPanelRequestError on network failure, non-2xx status, or a
            success response whose body is not valid JSON.
        """
        client = self._get_client()
        headers = self._session.auth_headers()
        query = {k: v for k, v in (params or {}).items() if v is not None}
        url = self._display_url(path)
        start = time.monotonic()

        try:
            response = await client.request(
                method,
                path,
                params=query or None,
                json=json,
                headers=headers or None,
            )
        except httpx.HTTPError as e:
            self._log(method, url, None, start, False, operation, error=str(e))
            raise TaskPanelRequestError(
                f"{failure_message}: network error",
                method=method,
                url=url,
                operation=operation,
                session_id=self._session.session_id,
                cause=str(e),
            ) from e

        body = self._decode(response)

        if not response.is_success:
            message = failure_message
            if isinstance(body, dict) and isinstance(body.get("error"), str) and body["error"]:
                message = body["error"]
            self._log(method, url, response.status_code, start, False, operation, error=message)
            raise TaskPanelRequestError(
                message,
                status_code=response.status_code,
                method=method,
                url=url,
                operation=operation,
                session_id=self._session.session_id,
                response_body=None if body is _NO_BODY else body,
            )

        if body is _NO_BODY:
            self._log(method, url, response.status_code, start, False, operation,
                      error="malformed response body")
            raise TaskPanelRequestError(
                f"{failure_message}: malformed response body",
                status_code=response.status_code,
                method=method,
                url=url,
                operation=operation,
                session_id=self._session.session_id,
            )

        self._log(method, url, response.status_code, start, True, operation)
        return body

    @staticmethod
    def _decode(response: httpx.Response) -> Any:
        try:
            return response.json()
        except ValueError:
            return _NO_BODY

    def _display_url(self, path: str) -> str:
        return f"{self._config.base_url}/{path.lstrip('/')}"

    def _log(
        self,
        method: str,
        url: str,
        status_code: Optional[int],
        start: float,
        success: bool,
        operation: Optional[str],
        error: Optional[str] = None,
    ) -> None:
        duration_ms = (time.monotonic() - start) * 1000
        if success:
            logger.debug("%s %s -> %s (%.1fms)", method, url, status_code, duration_ms)
        else:
            logger.warning("%s %s failed: %s", method, url, error)
        if self._event_log is not None:
            self._event_log.write(log_request(
                method=method,
                url=url,
                status_code=status_code,
                duration_ms=duration_ms,
                success=success,
                session_id=self._session.session_id,
                operation=operation,
                error=error,
            ))

    async def aclose(self) -> None:
        """Close the httpx client if this transport created it."""
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "BackendTransport":
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.aclose()
