import logging
import os
from contextlib import asynccontextmanager
from typing import Optional

import httpx

from .errors import NetworkError, ProviderError, ProviderTimeout

logger = logging.getLogger(__name__)

PROVIDER_TIMEOUT = float(os.getenv("PROVIDER_TIMEOUT", "30"))


@asynccontextmanager
async def provider_client(client: Optional[httpx.AsyncClient] = None):
    """
    Yields the caller's client when one is injected, otherwise a short-lived
    client bounded by PROVIDER_TIMEOUT that is closed on exit.
    """
    if client is not None:
        yield client
        return
    async with httpx.AsyncClient(timeout=PROVIDER_TIMEOUT) as owned:
        yield owned


async def send_get(client: httpx.AsyncClient, url: str, **kwargs) -> httpx.Response:
    """GET that maps transport failures onto the provider error kinds."""
    try:
        return await client.get(url, **kwargs)
    except httpx.TimeoutException as e:
        logger.error(f"Timed out requesting {url}: {e}")
        raise ProviderTimeout(f"Request to {httpx.URL(url).host} timed out.") from e
    except httpx.TransportError as e:
        logger.error(f"Transport error requesting {url}: {e}")
        raise NetworkError(f"Could not reach {httpx.URL(url).host}: {e}") from e


def error_message(response: httpx.Response, fallback: str) -> str:
    """Provider-supplied 'message' field when the body carries one."""
    try:
        body = response.json()
    except ValueError:
        return fallback
    if isinstance(body, dict) and body.get("message"):
        return str(body["message"])
    return fallback


def json_body(response: httpx.Response, fallback: str) -> dict:
    """Decoded JSON object of a success response; anything else is a ProviderError."""
    try:
        body = response.json()
    except ValueError:
        logger.warning(f"Non-JSON body ({response.headers.get('content-type')}) from {response.request.url}")
        raise ProviderError(fallback)
    if not isinstance(body, dict):
        logger.warning(f"Unexpected JSON shape from {response.request.url}")
        raise ProviderError(fallback)
    return body
