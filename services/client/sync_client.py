"""Reconnecting websocket client for the watch-party sync protocol."""

from __future__ import annotations

import asyncio
import contextlib
import enum
import json
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional
from urllib.parse import urlencode

from websockets.asyncio.client import connect as ws_connect
from websockets.exceptions import ConnectionClosed, WebSocketException

LOGGER = logging.getLogger(__name__)

Connector = Callable[[str], Awaitable[Any]]
Scheduler = Callable[[float, Callable[[], Any]], Any]


class ConnectionStatus(str, enum.Enum):
    CONNECTING = "connecting"
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"
    ERROR = "error"


@dataclass(frozen=True)
class ReconnectPolicy:
    """Bounded exponential backoff: min(base * 2**attempt, cap) for up to max_attempts retries."""

    base_delay_ms: int = 1000
    max_delay_ms: int = 10000
    max_attempts: int = 5

    def delay_ms(self, attempt: int) -> int:
        return min(self.base_delay_ms * 2 ** attempt, self.max_delay_ms)


def build_url(base_url: str, session_id: str, viewer_id: str) -> str:
    """Append the sessionId/viewerId query parameters the server requires."""
    separator = "&" if "?" in base_url else "?"
    return f"{base_url}{separator}{urlencode({'sessionId': session_id, 'viewerId': viewer_id})}"


class SyncClient:
    """Keep one viewer connected to a session, retrying with backoff after losses.

    Status moves connecting -> connected -> disconnected, then back to
    connecting while retries remain, or to error once they are exhausted. An
    error status only clears on an explicit `connect()`. Messages sent while
    not connected are dropped; after a reconnect the server's join snapshot
    brings the viewer back in sync.
    """

    def __init__(
        self,
        base_url: str,
        session_id: str,
        viewer_id: str,
        on_message: Optional[Callable[[Dict[str, Any]], None]] = None,
        on_status: Optional[Callable[[ConnectionStatus], None]] = None,
        policy: Optional[ReconnectPolicy] = None,
        connector: Optional[Connector] = None,
        scheduler: Optional[Scheduler] = None,
    ) -> None:
        """Initialize the client.

        Args:
            base_url: Websocket endpoint, e.g. ``ws://localhost:8000/ws``.
            session_id: Session to join.
            viewer_id: Identity of this viewer within the session.
            on_message: Called with every decoded inbound envelope.
            on_status: Called on every status transition.
            policy: Backoff policy; defaults to 1s doubling up to 10s, 5 retries.
            connector: Coroutine opening a connection for a URL; defaults to
                ``websockets.asyncio.client.connect``.
            scheduler: ``call_later``-style timer; defaults to the running loop's.
        """
        self.url = build_url(base_url, session_id, viewer_id)
        self.session_id = session_id
        self.viewer_id = viewer_id
        self.policy = policy or ReconnectPolicy()
        self.status = ConnectionStatus.DISCONNECTED
        self.retry_count = 0
        self._on_message = on_message
        self._on_status = on_status
        self._connector = connector or ws_connect
        self._scheduler = scheduler
        self._ws = None
        self._task: Optional[asyncio.Task] = None
        self._retry_handle = None
        self._stopped = False

    @property
    def is_connected(self) -> bool:
        return self.status is ConnectionStatus.CONNECTED and self._ws is not None

    def connect(self) -> asyncio.Task:
        """Open the connection; also the only way out of the error status."""
        self._cancel_retry()
        self._stopped = False
        if self._task is not None and not self._task.done():
            return self._task
        self._set_status(ConnectionStatus.CONNECTING)
        self._task = asyncio.get_running_loop().create_task(self._run())
        return self._task

    async def disconnect(self) -> None:
        """Close the connection and cancel any pending retry."""
        self._stopped = True
        self._cancel_retry()
        ws, self._ws = self._ws, None
        if ws is not None:
            with contextlib.suppress(ConnectionClosed):
                await ws.close()
        task = self._task
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
        self._set_status(ConnectionStatus.DISCONNECTED)

    async def send(self, message: Dict[str, Any]) -> bool:
        """Send an envelope; returns False when it was dropped."""
        ws = self._ws
        if self.status is not ConnectionStatus.CONNECTED or ws is None:
            return False
        payload = {"sessionId": self.session_id, **message}
        try:
            await ws.send(json.dumps(payload))
        except ConnectionClosed:
            return False
        return True

    async def _run(self) -> None:
        try:
            ws = await self._connector(self.url)
        except (OSError, asyncio.TimeoutError, WebSocketException) as exc:
            LOGGER.warning("Connection to %s failed: %s", self.url, exc)
            self._handle_loss()
            return

        if self._stopped:
            await ws.close()
            return

        self._ws = ws
        self.retry_count = 0
        self._set_status(ConnectionStatus.CONNECTED)
        try:
            async for raw in ws:
                self._dispatch(raw)
        except ConnectionClosed as exc:
            LOGGER.info("Connection to %s lost: %s", self.url, exc)
        finally:
            self._ws = None

        if not self._stopped:
            self._handle_loss()

    def _dispatch(self, raw: Any) -> None:
        try:
            message = json.loads(raw)
        except (TypeError, ValueError) as exc:
            LOGGER.error("Failed to parse sync message: %s", exc)
            return
        if self._on_message is None:
            return
        try:
            self._on_message(message)
        except Exception:
            LOGGER.exception("on_message callback failed for %s", self.url)

    def _handle_loss(self) -> None:
        self._set_status(ConnectionStatus.DISCONNECTED)
        if self.retry_count >= self.policy.max_attempts:
            LOGGER.error("Giving up on %s after %d retries", self.url, self.retry_count)
            self._set_status(ConnectionStatus.ERROR)
            return
        delay_ms = self.policy.delay_ms(self.retry_count)
        LOGGER.info("Reconnecting to %s in %d ms", self.url, delay_ms)
        schedule = self._scheduler or asyncio.get_running_loop().call_later
        self._retry_handle = schedule(delay_ms / 1000, self._retry)

    def _retry(self) -> Optional[asyncio.Task]:
        self._retry_handle = None
        if self._stopped:
            return None
        self.retry_count += 1
        return self.connect()

    def _cancel_retry(self) -> None:
        if self._retry_handle is not None:
            self._retry_handle.cancel()
            self._retry_handle = None

    def _set_status(self, status: ConnectionStatus) -> None:
        if status is self.status:
            return
        self.status = status
        if self._on_status is not None:
            self._on_status(status)
