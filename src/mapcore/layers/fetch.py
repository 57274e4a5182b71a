"""HTTP fetch helpers for layer data and style documents (httpx)."""

from __future__ import annotations

from typing import Any

import httpx
from loguru import logger

from mapcore.config import Settings, settings as default_settings
from mapcore.layers.errors import FetchError
from mapcore.layers.parsers.geojson import decode_json


def make_client(settings: Settings | None = None, **kwargs: Any) -> httpx.AsyncClient:
    """AsyncClient configured from settings; callers own its lifetime."""
    settings = settings or default_settings
    kwargs.setdefault("timeout", settings.http_timeout)
    kwargs.setdefault("follow_redirects", True)
    if settings.data_base_url:
        kwargs.setdefault("base_url", settings.data_base_url)
    return httpx.AsyncClient(**kwargs)


async def fetch_text(client: httpx.AsyncClient, url: str, layer_id: str | None = None) -> str:
    """GET ``url`` and return the body as text.

    Raises:
        FetchError: network failure or non-2xx status (``status`` is set
            for HTTP errors).
    """
    try:
        response = await client.get(url)
    except httpx.HTTPError as e:
        raise FetchError(f"Request to {url} failed: {e}", layer_id=layer_id, url=url) from e

    if not response.is_success:
        raise FetchError(
            f"HTTP {response.status_code} for {url}",
            layer_id=layer_id,
            status=response.status_code,
            url=url,
        )
    logger.debug(f"Fetched {url} ({len(response.content)} bytes)")
    return response.text


async def fetch_json(client: httpx.AsyncClient, url: str, layer_id: str | None = None) -> Any:
    """GET ``url`` and decode the body as JSON.

    Raises:
        FetchError: network failure or non-2xx status.
        ParseError: the body is not valid JSON.
    """
    text = await fetch_text(client, url, layer_id)
    return decode_json(text)
