"""HTTP transport for the package REST API and the bulk sync endpoint."""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from typing import Any, Protocol

import aiohttp

from pydelivery._constants import USER_AGENT
from pydelivery._redact import redact_for_log
from pydelivery.exceptions import HttpStatusError, InvalidResponseError, NetworkError, NetworkTimeoutError

_logger = logging.getLogger(__name__)


class Transport(Protocol):
    """Structural transport interface used by the stores and the sync client.

    Tests pass small fakes implementing ``request``; production code uses
    :class:`HttpTransport`.
    """

    async def request(
        self,
        method: str,
        path: str,
        *,
        json_body: Any = None,
        params: Mapping[str, str] | None = None,
    ) -> Any:
        ...


def unwrap_data(body: Any) -> Any:
    """Return ``body["data"]`` for enveloped responses, *body* otherwise."""
    if isinstance(body, dict) and body.get("data") is not None:
        return body["data"]
    return body


class HttpTransport:
    """JSON-over-HTTP transport on a shared :class:`aiohttp.ClientSession`.

    Every failure leaves as a classified :class:`~pydelivery.exceptions.DeliveryError`:
    non-2xx statuses become :class:`HttpStatusError`, timeouts
    :class:`NetworkTimeoutError`, other client errors :class:`NetworkError`
    and undecodable bodies :class:`InvalidResponseError`.
    """

    def __init__(
        self,
        http_session: aiohttp.ClientSession,
        *,
        base_url: str = "",
        api_key: str | None = None,
        timeout: float = 10.0,
        unwrap: bool = True,
    ) -> None:
        self._http = http_session
        self._base_url = base_url.rstrip("/")
        self._api_key = api_key
        self._timeout = aiohttp.ClientTimeout(total=timeout)
        self._unwrap = unwrap

    def _url(self, path: str) -> str:
        if path.startswith(("http://", "https://")):
            return path
        return f"{self._base_url}{path}"

    def _headers(self) -> dict[str, str]:
        headers = {
            "accept": "application/json",
            "content-type": "application/json",
            "user-agent": USER_AGENT,
        }
        if self._api_key:
            headers["authorization"] = f"Bearer {self._api_key}"
        return headers

    async def request(
        self,
        method: str,
        path: str,
        *,
        json_body: Any = None,
        params: Mapping[str, str] | None = None,
    ) -> Any:
        url = self._url(path)
        data = json.dumps(json_body, separators=(",", ":")) if json_body is not None else None

        _logger.debug("%s %s params=%s body=%s", method, url, params or {}, redact_for_log(json_body))

        try:
            async with self._http.request(
                method,
                url,
                data=data,
                params=params,
                headers=self._headers(),
                timeout=self._timeout,
            ) as resp:
                text = await resp.text()
                if not 200 <= resp.status < 300:
                    raise HttpStatusError(
                        f"HTTP {resp.status} from {path}: {text[:200]}",
                        status_code=resp.status,
                        endpoint=path,
                    )
        except HttpStatusError:
            raise
        except TimeoutError as exc:
            raise NetworkTimeoutError(f"Request to {path} timed out", endpoint=path) from exc
        except aiohttp.ClientError as exc:
            raise NetworkError(f"Request to {path} failed: {exc}", endpoint=path) from exc

        if not text.strip():
            return None

        try:
            body = json.loads(text)
        except json.JSONDecodeError as exc:
            raise InvalidResponseError(f"Invalid JSON from {path}: {text[:200]}", endpoint=path) from exc

        _logger.debug("%s %s -> %s", method, url, redact_for_log(body))
        return unwrap_data(body) if self._unwrap else body
