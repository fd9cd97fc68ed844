"""Map live websocket connections to sessions and fan messages out to them."""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Dict, List, Optional, Protocol

from fastapi import WebSocket
from starlette.websockets import WebSocketState

LOGGER = logging.getLogger(__name__)


class Transport(Protocol):
	"""Minimal surface the multiplexer needs from a socket."""

	@property
	def is_open(self) -> bool: ...

	async def send_text(self, data: str) -> None: ...


class WebSocketTransport:
	"""Adapt a Starlette websocket to the Transport protocol."""

	def __init__(self, websocket: WebSocket) -> None:
		self.websocket = websocket

	@property
	def is_open(self) -> bool:
		return (
			self.websocket.client_state == WebSocketState.CONNECTED
			and self.websocket.application_state == WebSocketState.CONNECTED
		)

	async def send_text(self, data: str) -> None:
		await self.websocket.send_text(data)


class Connection:
	"""One registered transport bound to a (session, viewer) pair.

	Outbound frames are queued and written by a dedicated task so callers never
	wait on a slow peer.
	"""

	def __init__(self, connection_id: str, transport: Transport, session_id: str, viewer_id: str) -> None:
		self.connection_id = connection_id
		self.transport = transport
		self.session_id = session_id
		self.viewer_id = viewer_id
		self._queue: asyncio.Queue[str] = asyncio.Queue()
		self._writer: Optional[asyncio.Task] = None

	@property
	def is_open(self) -> bool:
		return self.transport.is_open

	def start(self) -> None:
		if self._writer is None:
			self._writer = asyncio.get_running_loop().create_task(self._write_loop())

	def stop(self) -> None:
		if self._writer is not None and not self._writer.done():
			self._writer.cancel()
		self._writer = None

	def deliver(self, text: str) -> bool:
		"""Queue a frame without waiting; closed transports are skipped."""
		if not self.transport.is_open:
			return False
		self._queue.put_nowait(text)
		return True

	async def flush(self) -> None:
		"""Wait until every queued frame has been handed to the transport."""
		if self._writer is not None:
			await self._queue.join()

	async def _write_loop(self) -> None:
		while True:
			text = await self._queue.get()
			try:
				if self.transport.is_open:
					await self.transport.send_text(text)
			except Exception as exc:
				# Delivery is fire-and-forget: a failed send is never retried.
				LOGGER.debug("Send to connection %s failed: %s", self.connection_id, exc)
			finally:
				self._queue.task_done()


class ConnectionMultiplexer:
	"""Own the set of live connections; the only component that writes to sockets."""

	def __init__(self) -> None:
		self._connections: Dict[str, Connection] = {}

	def register(self, connection_id: str, transport: Transport, session_id: str, viewer_id: str) -> Connection:
		"""Insert the mapping for a connection, replacing any previous entry for the id."""
		previous = self._connections.pop(connection_id, None)
		if previous is not None:
			previous.stop()
		connection = Connection(connection_id, transport, session_id, viewer_id)
		connection.start()
		self._connections[connection_id] = connection
		LOGGER.debug("Registered connection %s (%s/%s)", connection_id, session_id, viewer_id)
		return connection

	def unregister(self, connection_id: str) -> Optional[Connection]:
		"""Remove a connection; unknown ids are ignored."""
		connection = self._connections.pop(connection_id, None)
		if connection is not None:
			connection.stop()
			LOGGER.debug("Unregistered connection %s", connection_id)
		return connection

	def get(self, connection_id: str) -> Optional[Connection]:
		return self._connections.get(connection_id)

	def send(self, connection_id: str, message: Dict[str, Any]) -> bool:
		"""Deliver a message to a single connection."""
		connection = self._connections.get(connection_id)
		if connection is None:
			return False
		return connection.deliver(json.dumps(message))

	def broadcast(self, session_id: str, message: Dict[str, Any], exclude_viewer_id: Optional[str] = None) -> int:
		"""Fan a message out to every open connection of a session except the excluded viewer.

		Returns the number of connections the message was queued for.
		"""
		text = json.dumps(message)
		delivered = 0
		for connection in list(self._connections.values()):
			if connection.session_id != session_id:
				continue
			if exclude_viewer_id is not None and connection.viewer_id == exclude_viewer_id:
				continue
			if connection.deliver(text):
				delivered += 1
		return delivered

	def count_open(self, session_id: str) -> int:
		return sum(1 for c in self._connections.values() if c.session_id == session_id and c.is_open)

	def viewer_ids(self, session_id: str) -> List[str]:
		return [c.viewer_id for c in self._connections.values() if c.session_id == session_id and c.is_open]

	async def flush(self) -> None:
		for connection in list(self._connections.values()):
			await connection.flush()

	async def close(self) -> None:
		"""Stop every writer task; used on application shutdown."""
		for connection_id in list(self._connections):
			self.unregister(connection_id)
