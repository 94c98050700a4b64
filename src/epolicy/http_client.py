"""Bearer-authenticated httpx wrapper shared by the admin and ARM clients."""

from __future__ import annotations

import logging
import time
import uuid
from collections.abc import Callable
from typing import Any

import httpx

from .errors import HttpError

logger = logging.getLogger(__name__)

RETRY_STATUSES = frozenset({429, 500, 502, 503, 504})
CLIENT_REQUEST_ID_HEADER = "x-ms-client-request-id"


class HttpClient:
    """Send requests relative to ``base_url`` with a fresh bearer token each time.

    Transport failures and ``RETRY_STATUSES`` are retried ``max_retries`` times
    with exponential backoff (``Retry-After`` wins when present). Every request
    carries its own ``x-ms-client-request-id`` so server-side logs can be
    correlated. ``raise_for_status=False`` hands 4xx/5xx responses back to the
    caller instead of raising :class:`HttpError`; transport failures always
    raise with status ``0``.
    """

    def __init__(
        self,
        base_url: str,
        token_getter: Callable[[], str] | None = None,
        timeout: float = 60.0,
        max_retries: int = 2,
        backoff_factor: float = 0.5,
        raise_for_status: bool = True,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self._token_getter = token_getter
        self._client = httpx.Client(timeout=timeout)
        self._max_retries = max_retries
        self._backoff_factor = backoff_factor
        self._raise_for_status = raise_for_status

    def url_for(self, path: str) -> str:
        if path.startswith(("http://", "https://")):
            return path
        return f"{self.base_url}/{path.lstrip('/')}"

    def _headers(self, extra: dict[str, str] | None) -> dict[str, str]:
        headers = {
            CLIENT_REQUEST_ID_HEADER: str(uuid.uuid4()),
            **(extra or {}),
        }
        if self._token_getter:
            token = self._token_getter()
            if token:
                headers["Authorization"] = f"Bearer {token}"
        return headers

    def _retry_delay(self, attempt: int, resp: httpx.Response | None = None) -> float:
        retry_after = resp.headers.get("Retry-After") if resp is not None else None
        if retry_after:
            try:
                return max(float(retry_after), 0.0)
            except ValueError:
                logger.debug("Ignoring non-numeric Retry-After %r", retry_after)
        return self._backoff_factor * (2**attempt)

    @staticmethod
    def _error(resp: httpx.Response) -> HttpError:
        try:
            detail: Any = resp.json()
        except ValueError:
            detail = resp.text
        return HttpError(resp.status_code, resp.reason_phrase, details=detail)

    def request(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        json: Any | None = None,
        headers: dict[str, str] | None = None,
    ) -> httpx.Response:
        url = self.url_for(path)
        request_kwargs: dict[str, Any] = {"params": params, "headers": self._headers(headers)}
        if json is not None:
            request_kwargs["json"] = json
        attempt = 0
        while True:
            logger.debug("%s %s params=%s", method, url, params)
            try:
                resp = self._client.request(method, url, **request_kwargs)
            except httpx.TransportError as exc:
                if attempt >= self._max_retries:
                    raise HttpError(0, f"Transport error: {exc}") from exc
                delay = self._retry_delay(attempt)
                logger.warning("%s %s failed (%s); retrying in %.1fs", method, url, exc, delay)
                time.sleep(delay)
                attempt += 1
                continue

            if resp.status_code in RETRY_STATUSES and attempt < self._max_retries:
                delay = self._retry_delay(attempt, resp)
                logger.warning(
                    "%s %s returned HTTP %s; retrying in %.1fs",
                    method,
                    url,
                    resp.status_code,
                    delay,
                )
                time.sleep(delay)
                attempt += 1
                continue

            if resp.status_code >= 400 and self._raise_for_status:
                raise self._error(resp)
            return resp

    def get(self, path: str, **kwargs: Any) -> httpx.Response:
        return self.request("GET", path, **kwargs)

    def delete(self, path: str, **kwargs: Any) -> httpx.Response:
        return self.request("DELETE", path, **kwargs)

    def close(self) -> None:
        """Close the underlying :class:`httpx.Client`."""

        self._client.close()


__all__ = ["CLIENT_REQUEST_ID_HEADER", "RETRY_STATUSES", "HttpClient"]
