"""HTTP calls to the chat server outside the realtime channel."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, List

import aiohttp

from .config import ChatConfig
from .models import Message

logger = logging.getLogger(__name__)


class ChatApiError(Exception):
    """The server could not be reached or answered with an unusable body."""


async def _request_json(
    http: aiohttp.ClientSession,
    config: ChatConfig,
    method: str,
    path: str,
    *,
    check_status: bool = True,
    **kwargs: Any,
) -> Any:
    url = config.api_url(path)
    timeout = aiohttp.ClientTimeout(total=config.request_timeout_s)
    try:
        async with http.request(method, url, timeout=timeout, **kwargs) as response:
            if check_status:
                response.raise_for_status()
            return await response.json(content_type=None)
    except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
        raise ChatApiError(f"{method} {path} failed: {exc}") from exc
    except ValueError as exc:
        raise ChatApiError(f"{method} {path} returned malformed json") from exc


async def verify_admin(http: aiohttp.ClientSession, config: ChatConfig, password: str) -> bool:
    # A rejected password may come back with a 4xx status and {"success": false}.
    payload = await _request_json(
        http, config, "POST", "/verify-admin", check_status=False, json={"password": password}
    )
    if not isinstance(payload, dict):
        raise ChatApiError("POST /verify-admin returned a non-object body")
    return payload.get("success") is True


async def fetch_messages(http: aiohttp.ClientSession, config: ChatConfig) -> List[Message]:
    payload = await _request_json(http, config, "GET", "/messages")
    if not isinstance(payload, list):
        raise ChatApiError("GET /messages returned a non-list body")
    messages: List[Message] = []
    for item in payload:
        message = Message.from_payload(item)
        if message is None:
            logger.warning("skipping malformed history entry: %r", item)
            continue
        messages.append(message)
    return messages
