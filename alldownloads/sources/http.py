from __future__ import annotations

import logging
from typing import Any
from urllib.parse import urlsplit

import httpx

from alldownloads.sources.base import FetchContext, FetchError

logger = logging.getLogger(__name__)


def extract_filename(url: str) -> str:
    path = urlsplit(url).path
    name = path.rsplit("/", 1)[-1]
    return name or "download"


def response_size(response: httpx.Response) -> int:
    raw = response.headers.get("Content-Length", "")
    return int(raw) if raw.isdigit() else 0


class SourceHttpClient:
    """Thin httpx wrapper shared by the site-specific capabilities."""

    def __init__(
        self,
        *,
        user_agent: str,
        timeout_seconds: float,
        transport: httpx.BaseTransport | None = None,
    ):
        self._timeout_seconds = timeout_seconds
        self._client = httpx.Client(
            headers={"User-Agent": user_agent},
            follow_redirects=True,
            transport=transport,
            limits=httpx.Limits(max_connections=10, max_keepalive_connections=10, keepalive_expiry=90.0),
        )

    def close(self) -> None:
        self._client.close()

    def _request(self, ctx: FetchContext, method: str, url: str, *, accept: str | None = None) -> httpx.Response:
        timeout = ctx.request_timeout(self._timeout_seconds)
        headers = {"Accept": accept} if accept else None
        try:
            response = self._client.request(method, url, headers=headers, timeout=timeout)
        except httpx.HTTPError as exc:
            raise FetchError(f"{method} {url} failed: {exc}") from exc
        if response.status_code >= 400:
            raise FetchError(f"{method} {url} returned HTTP {response.status_code}")
        return response

    def get_text(self, ctx: FetchContext, url: str) -> str:
        response = self._request(
            ctx,
            "GET",
            url,
            accept="text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
        )
        return response.text

    def get_json(self, ctx: FetchContext, url: str) -> Any:
        response = self._request(ctx, "GET", url, accept="application/json")
        try:
            return response.json()
        except ValueError as exc:
            raise FetchError(f"GET {url} returned invalid JSON") from exc

    def head(self, ctx: FetchContext, url: str) -> httpx.Response:
        return self._request(ctx, "HEAD", url)

    def content_length(self, ctx: FetchContext, url: str) -> int:
        try:
            response = self.head(ctx, url)
        except FetchError as exc:
            if ctx.cancelled or ctx.expired:
                raise
            logger.debug("size lookup failed for %s: %s", url, exc)
            return 0
        return response_size(response)
