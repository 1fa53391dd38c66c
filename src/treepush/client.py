"""Authenticated JSON access to one repository's REST endpoints."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Collection
from dataclasses import dataclass
from typing import Any

import httpx

from .exceptions import AuthMissingError, RemoteRequestFailedError, UnexpectedContentTypeError
from .stats import RunStats

__all__ = ["GitHubClient", "PollState", "DEFAULT_API_URL"]

logger = logging.getLogger(__name__)

DEFAULT_API_URL = "https://api.github.com"
USER_AGENT = "treepush"


@dataclass
class PollState:
    """Last answer of a conditionally fetched resource.

    *etag* is sent back as ``If-None-Match`` on the next poll; a 304
    answer keeps *data* and only updates *status*.
    """

    data: Any
    etag: str | None
    status: int

    def get(self, key: str, default: Any = None) -> Any:
        return (self.data or {}).get(key, default)


class GitHubClient:
    """Thin wrapper over :class:`httpx.Client` bound to ``/repos/{owner}/{repo}``.

    Transport errors and 5xx answers are retried *retries* times with a
    fixed *retry_delay*.  Rate-limit headers of every answer are copied
    into :attr:`stats`.
    """

    def __init__(
        self,
        token: str | None,
        owner: str,
        repo: str,
        *,
        api_url: str = DEFAULT_API_URL,
        transport: httpx.BaseTransport | None = None,
        timeout: float = 30.0,
        retries: int = 3,
        retry_delay: float = 2.0,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self._token = token
        self.owner = owner
        self.repo = repo
        self.base_url = f"{api_url.rstrip('/')}/repos/{owner}/{repo}"
        self._http = httpx.Client(transport=transport, timeout=timeout)
        self._retries = retries
        self._retry_delay = retry_delay
        self._sleep = sleep
        self.stats = RunStats()
        self.last_response: httpx.Response | None = None

    def __repr__(self) -> str:
        return f"GitHubClient({self.owner!r}, {self.repo!r})"

    def _auth_headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self._token}" if self._token else "",
            "Content-Type": "application/json",
            "User-Agent": USER_AGENT,
            "Accept": "application/vnd.github.v3+json",
        }

    def _record_rate_limit(self, response: httpx.Response) -> None:
        remaining = response.headers.get("x-ratelimit-remaining")
        if remaining is not None:
            self.stats.rate_limit_remaining = int(remaining)
        retry_after = response.headers.get("retry-after")
        if retry_after and retry_after.isdigit():
            self.stats.rate_limit_retry_after = int(retry_after)

    def _send(self, method: str, url: str, headers: dict, body: Any) -> httpx.Response:
        attempt = 0
        while True:
            try:
                response = self._http.request(method, url, headers=headers, json=body)
            except httpx.TransportError as exc:
                if attempt >= self._retries:
                    raise
                logger.debug("%s %s failed (%s), retrying", method, url, exc)
            else:
                if response.status_code < 500 or attempt >= self._retries:
                    return response
                logger.debug("%s %s -> %d, retrying", method, url, response.status_code)
            attempt += 1
            self._sleep(self._retry_delay)

    def request(
        self,
        method: str,
        path: str,
        *,
        json: Any = None,
        headers: dict[str, str] | None = None,
        ok_statuses: Collection[int] = (),
    ) -> httpx.Response:
        """Send a request to *path* (relative to the repository URL).

        Raises:
            AuthMissingError: No token is configured.
            RemoteRequestFailedError: The answer is not 2xx and its
                status is not in *ok_statuses*.
        """
        all_headers = {**self._auth_headers(), **(headers or {})}
        if not all_headers.get("Authorization"):
            raise AuthMissingError("Authorization Header Required")

        url = f"{self.base_url}{path}"
        response = self._send(method, url, all_headers, json)
        self.last_response = response
        self._record_rate_limit(response)
        logger.debug("%s %s -> %d", method, url, response.status_code)

        if not response.is_success and response.status_code not in ok_statuses:
            raise RemoteRequestFailedError(
                response.status_code, str(response.url), response.text, response.reason_phrase,
            )
        return response

    def request_json(self, method: str, path: str, **kwargs) -> Any:
        """Like :meth:`request` but decode the JSON answer.

        Returns None for an empty answer (e.g. 204 or 304).
        """
        response = self.request(method, path, **kwargs)
        if not response.content:
            return None
        content_type = response.headers.get("content-type")
        if not content_type or "application/json" not in content_type:
            raise UnexpectedContentTypeError(content_type, response.text)
        return response.json()

    def get(self, path: str, **kwargs) -> Any:
        return self.request_json("GET", path, **kwargs)

    def post(self, path: str, body: Any, **kwargs) -> Any:
        return self.request_json("POST", path, json=body, **kwargs)

    def patch(self, path: str, body: Any, **kwargs) -> Any:
        return self.request_json("PATCH", path, json=body, **kwargs)

    def put(self, path: str, body: Any, **kwargs) -> Any:
        return self.request_json("PUT", path, json=body, **kwargs)

    def exists(self, path: str) -> bool:
        """HEAD *path*; True unless the remote answers 404."""
        return self.request("HEAD", path, ok_statuses=(404,)).status_code != 404

    def get_conditional(self, path: str, previous: PollState | None = None) -> PollState:
        """GET *path*, revalidating *previous* with its etag when present."""
        headers = {"If-None-Match": previous.etag} if previous and previous.etag else None
        data = self.get(path, headers=headers, ok_statuses=(304,))
        response = self.last_response
        if response.status_code == 304 and previous is not None:
            return PollState(previous.data, previous.etag, 304)
        return PollState(data, response.headers.get("etag"), response.status_code)

    def close(self) -> None:
        self._http.close()

    def __enter__(self):
        return self

    def __exit__(self, *args):
        self.close()
