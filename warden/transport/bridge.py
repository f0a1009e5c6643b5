"""
Group Warden - Session Bridge Transport
=======================================

Transport implementation talking to a messaging session bridge over HTTP
and a WebSocket event stream.

DESIGN:
    The bridge owns the actual platform session (cookie login, MQTT
    listener). This client maps each capability to one JSON endpoint:

        POST /login                  {"appState": [...]} -> {"userID": "..."}
        GET  /threads/{id}           raw thread info
        POST /threads/{id}/nickname  {"userID": "...", "nickname": "..."}
        POST /threads/{id}/title     {"title": "..."}
        POST /threads/{id}/typing
        GET  /appstate               current cookie array
        WS   /events                 one JSON event per text frame

    Non-2xx responses and bodies carrying ``{"error": ...}`` raise
    TransportError; connection failures and "not logged in" style errors
    raise DisconnectedError so the session loop can log in again.
"""

import asyncio
import json
from typing import Any, AsyncIterator, Dict, List, Optional

import aiohttp

from warden.core.logger import logger
from warden.transport.base import (
    DisconnectedError,
    ThreadSnapshot,
    Transport,
    TransportError,
    is_disconnect_message,
)


REQUEST_TIMEOUT = 30
"""Seconds before a bridge call is abandoned."""


class BridgeTransport(Transport):
    """
    aiohttp client for the session bridge.

    Attributes:
        base_url: Bridge root URL without trailing slash.
        user_id: Logged-in account id, set by login().
    """

    def __init__(self, base_url: str, timeout: float = REQUEST_TIMEOUT) -> None:
        self.base_url = base_url.rstrip("/")
        self.user_id: Optional[str] = None
        self._timeout = aiohttp.ClientTimeout(total=timeout)
        self._session: Optional[aiohttp.ClientSession] = None

    # =========================================================================
    # HTTP Helpers
    # =========================================================================

    def _ensure_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self._timeout)
        return self._session

    async def _request(self, method: str, path: str, payload: Optional[Dict[str, Any]] = None) -> Any:
        """
        Call a bridge endpoint and decode its JSON body.

        Raises:
            DisconnectedError: Connection failure or session-gone error.
            TransportError: Any other failure.
        """
        session = self._ensure_session()
        url = f"{self.base_url}{path}"

        try:
            async with session.request(method, url, json=payload) as resp:
                status = resp.status
                text = await resp.text()
        except aiohttp.ClientConnectionError as e:
            raise DisconnectedError(f"Bridge unreachable: {e}") from e
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise TransportError(f"{method} {path} failed: {type(e).__name__}") from e

        data: Any = None
        if text:
            try:
                data = json.loads(text)
            except ValueError:
                if status < 400:
                    raise TransportError(f"{method} {path} returned invalid JSON", status)
                data = {"error": text[:200]}

        error = data.get("error") if isinstance(data, dict) else None
        if status >= 400 or error:
            message = str(error or f"HTTP {status}")
            if status == 401 or is_disconnect_message(message):
                raise DisconnectedError(message, status)
            raise TransportError(message, status)

        return data

    # =========================================================================
    # Capabilities
    # =========================================================================

    async def login(self, credential_state: List[Any]) -> str:
        data = await self._request("POST", "/login", {"appState": credential_state})
        user_id = data.get("userID") if isinstance(data, dict) else None
        if not user_id:
            raise TransportError("Login response did not include a user id")
        self.user_id = str(user_id)
        return self.user_id

    async def get_thread_snapshot(self, thread_id: str) -> Optional[ThreadSnapshot]:
        try:
            data = await self._request("GET", f"/threads/{thread_id}")
        except TransportError as e:
            logger.debug("Thread snapshot unavailable", [
                ("Thread", thread_id),
                ("Error", str(e)[:100]),
            ])
            return None
        return ThreadSnapshot.from_raw(data)

    async def set_nickname(self, thread_id: str, user_id: str, nickname: str) -> None:
        await self._request("POST", f"/threads/{thread_id}/nickname", {
            "userID": user_id,
            "nickname": nickname,
        })

    async def set_title(self, thread_id: str, title: str) -> None:
        await self._request("POST", f"/threads/{thread_id}/title", {"title": title})

    async def send_typing(self, thread_id: str) -> None:
        await self._request("POST", f"/threads/{thread_id}/typing")

    async def export_credential_state(self) -> Optional[List[Any]]:
        data = await self._request("GET", "/appstate")
        return data if isinstance(data, list) else None

    async def events(self) -> AsyncIterator[Dict[str, Any]]:
        """
        Stream events from the bridge WebSocket.

        Ends when the socket closes; raises DisconnectedError on socket
        errors or an error frame reporting a dropped session.
        """
        session = self._ensure_session()
        url = f"{self.base_url}/events"

        try:
            async with session.ws_connect(url, heartbeat=30) as ws:
                logger.info("Event stream connected", [("URL", url)])
                async for msg in ws:
                    if msg.type == aiohttp.WSMsgType.TEXT:
                        try:
                            payload = json.loads(msg.data)
                        except ValueError:
                            logger.debug("Dropped non-JSON event frame")
                            continue
                        if isinstance(payload, dict) and payload.get("error"):
                            message = str(payload["error"])
                            if is_disconnect_message(message):
                                raise DisconnectedError(message)
                            logger.warning("Event stream error", [("Error", message[:100])])
                            continue
                        yield payload
                    elif msg.type == aiohttp.WSMsgType.ERROR:
                        raise DisconnectedError(f"Event stream error: {ws.exception()}")
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise DisconnectedError(f"Event stream failed: {type(e).__name__} {e}") from e

    async def close(self) -> None:
        if self._session and not self._session.closed:
            await self._session.close()
        self._session = None


__all__ = ["BridgeTransport"]
