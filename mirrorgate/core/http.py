"""Async JSON API client base with rate-limit handling and retries."""

from __future__ import annotations

import asyncio
import time
from typing import Any

import httpx
import structlog

log = structlog.get_logger("mirrorgate.http")

_MAX_RETRIES = 3
_RETRY_BASE_DELAY = 1.0  # seconds


class RateLimitError(Exception):
    """Every attempt was refused by the upstream rate limiter."""

    def __init__(self, retry_after: int) -> None:
        self.retry_after = retry_after
        super().__init__(f"rate limited; next window opens in {retry_after}s")


class ApiClient:
    """Thin async wrapper around an ``httpx.AsyncClient``.

    Subclasses supply the base URL and default headers.  Requests are retried
    with exponential backoff on 5xx, timeouts and 403 rate-limit responses;
    4xx responses raise ``httpx.HTTPStatusError`` immediately.
    """

    #: Short name used in log events, e.g. ``github.rate_limit``.
    log_prefix = "http"

    def __init__(
        self,
        base_url: str,
        headers: dict[str, str] | None = None,
        *,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._client = httpx.AsyncClient(
            base_url=base_url,
            headers=headers or {},
            timeout=timeout,
            transport=transport,
        )

    # ── lifecycle ──────────────────────────────────────────────────────────

    async def close(self) -> None:
        await self._client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.close()

    # ── public ─────────────────────────────────────────────────────────────

    async def get_json(self, path: str, params: dict[str, Any] | None = None) -> Any:
        """Single GET, returns parsed JSON."""
        response = await self._request_with_retry("GET", path, params=params)
        await self._check_rate_limit(response)
        return response.json()

    async def post_json(self, path: str, payload: dict[str, Any]) -> httpx.Response:
        """Single POST with a JSON body; the raw response is returned.

        POSTs are not idempotent, so they are sent exactly once.
        """
        response = await self._request_with_retry("POST", path, json=payload, attempts=1)
        await self._check_rate_limit(response)
        return response

    # ── internal ───────────────────────────────────────────────────────────

    async def _request_with_retry(
        self,
        method: str,
        url: str,
        *,
        params: dict[str, Any] | None = None,
        json: dict[str, Any] | None = None,
        attempts: int = _MAX_RETRIES,
    ) -> httpx.Response:
        """Request with exponential backoff on 5xx, 403 rate-limit, and timeout errors."""
        last_exc: Exception | None = None
        prefix = self.log_prefix
        for attempt in range(attempts):
            try:
                resp = await self._client.request(method, url, params=params, json=json)

                # rate-limited 403: wait out the window, then retry
                if resp.status_code == 403 and is_rate_limited(resp):
                    wait = rate_limit_wait(resp)
                    log.warning(
                        f"{prefix}.rate_limit",
                        url=url,
                        wait_seconds=wait,
                        attempt=attempt + 1,
                        max_retries=attempts,
                    )
                    last_exc = RateLimitError(wait)
                    if attempt < attempts - 1:
                        await asyncio.sleep(wait)
                    continue

                if resp.status_code < 500:
                    resp.raise_for_status()
                    return resp

                # 5xx: retry
                log.warning(
                    f"{prefix}.server_error",
                    url=url,
                    status=resp.status_code,
                    attempt=attempt + 1,
                    max_retries=attempts,
                )
                last_exc = httpx.HTTPStatusError(
                    f"{resp.status_code}", request=resp.request, response=resp
                )
            except httpx.TimeoutException as exc:
                log.warning(
                    f"{prefix}.timeout",
                    url=url,
                    attempt=attempt + 1,
                    max_retries=attempts,
                )
                last_exc = exc

            if attempt < attempts - 1:
                delay = _RETRY_BASE_DELAY * (2**attempt)
                await asyncio.sleep(delay)

        raise last_exc  # type: ignore[misc]

    async def _check_rate_limit(self, response: httpx.Response) -> None:
        """Pause before the next call once the quota window is used up."""
        if header_int(response, "X-RateLimit-Remaining") == 0:
            wait = rate_limit_wait(response)
            log.warning(f"{self.log_prefix}.rate_limit_wait", wait_seconds=wait)
            await asyncio.sleep(wait)


# ── rate-limit headers ──────────────────────────────────────────────────


def header_int(response: httpx.Response, name: str) -> int | None:
    """Integer value of header *name*, or None when absent or not a number."""
    raw = response.headers.get(name)
    if raw is None:
        return None
    try:
        return int(raw)
    except (ValueError, TypeError):
        return None


def is_rate_limited(response: httpx.Response) -> bool:
    """True if a 403 is a primary or secondary rate-limit refusal."""
    remaining = header_int(response, "X-RateLimit-Remaining")
    if remaining is not None:
        return remaining == 0
    # secondary limits send Retry-After only
    return "Retry-After" in response.headers


def rate_limit_wait(response: httpx.Response, default: int = 60) -> int:
    """Seconds to wait: Retry-After first, then X-RateLimit-Reset, else *default*."""
    retry_after = header_int(response, "Retry-After")
    if retry_after is not None:
        return max(retry_after, 1)
    reset_at = header_int(response, "X-RateLimit-Reset")
    if reset_at is not None:
        return max(reset_at - int(time.time()), 1)
    return default
