"""
Async HTTP helpers shared by the provider clients (geocoder, places store, IP services).

Both helpers raise on non-2xx so each caller decides how to degrade: the resolver moves
to its next tier and the search aggregator drops that source for the request.
"""

from __future__ import annotations

from typing import Any

import httpx


DEFAULT_USER_AGENT = "wayfinder/0.1.0 (+https://local)"


def _headers(extra: dict[str, str] | None) -> dict[str, str]:
    merged = {"User-Agent": DEFAULT_USER_AGENT, "Accept": "application/json"}
    merged.update(extra or {})
    return merged


async def _request_json(method: str, url: str, *, timeout_seconds: float, **kwargs: Any) -> Any:
    async with httpx.AsyncClient(timeout=timeout_seconds) as client:
        resp = await client.request(method, url, **kwargs)
        resp.raise_for_status()
        return resp.json()


async def get_json(
    url: str,
    *,
    params: dict[str, Any] | None = None,
    headers: dict[str, str] | None = None,
    timeout_seconds: float = 10,
) -> Any:
    """GET `url` and return the decoded JSON response.

    Raises:
        httpx.HTTPError: On transport errors or non-2xx status codes.
        ValueError: If the response body is not valid JSON.
    """
    return await _request_json(
        "GET", url, params=params, headers=_headers(headers), timeout_seconds=timeout_seconds
    )


async def post_json(
    url: str,
    *,
    payload: dict[str, Any],
    headers: dict[str, str] | None = None,
    timeout_seconds: float = 10,
) -> Any:
    """POST `payload` as a JSON body (places-store RPC) and return the decoded response."""
    return await _request_json(
        "POST", url, json=payload, headers=_headers(headers), timeout_seconds=timeout_seconds
    )
