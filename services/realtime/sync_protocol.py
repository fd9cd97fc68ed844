"""Interpret inbound sync messages, mutate session state and fan results out."""

from __future__ import annotations

import json
import logging
import math
from typing import Any, Callable, Dict, List, Optional

from pydantic import ValidationError

from models.session_models import VideoSource
from models.sync_message import PLAYBACK_TYPES, SERVER_ONLY_TYPES, SyncMessage
from services.realtime.connection_multiplexer import Connection, ConnectionMultiplexer, Transport
from services.realtime.session_store import SessionStore, new_id
from services.realtime.viewer_registry import ViewerRegistry

LOGGER = logging.getLogger(__name__)


class ProtocolError(ValueError):
	"""Raised for inbound messages that are well-formed JSON but unusable."""


def _finite_float(text: str) -> float:
	value = float(text)
	if not math.isfinite(value):
		raise ValueError(f"Non-finite number {text}")
	return value


def _reject_constant(name: str) -> float:
	raise ValueError(f"Non-finite number {name}")


class SyncProtocolEngine:
	"""Decide which messages mutate the session store and who receives what.

	Playback messages (`sync`, `play`, `pause`, `seek`) and `video-change` update
	the store and are relayed to every other connection of the session.
	`source-add`/`source-remove` edit the source list and send the full updated
	list to every connection, sender included. `reaction` is relayed without
	touching state. `viewer-source-change` is a per-viewer choice and stays on
	the server. Any other type is relayed as-is without touching state, except
	client copies of `viewer-join`/`viewer-leave`. Anything unusable is logged
	and dropped; the sender gets no reply and keeps its connection.
	"""

	def __init__(
		self,
		store: SessionStore,
		viewers: ViewerRegistry,
		multiplexer: ConnectionMultiplexer,
		id_factory: Callable[[], str] = new_id,
	) -> None:
		self.store = store
		self.viewers = viewers
		self.multiplexer = multiplexer
		self._id_factory = id_factory

	def join(self, connection_id: str, transport: Transport, session_id: str, viewer_id: str) -> Connection:
		"""Register a new connection, announce it and send it the current snapshot."""
		self.viewers.add(session_id, viewer_id)
		connection = self.multiplexer.register(connection_id, transport, session_id, viewer_id)
		self.multiplexer.broadcast(
			session_id,
			{"type": "viewer-join", "sessionId": session_id, "data": {"viewerId": viewer_id}},
			exclude_viewer_id=viewer_id,
		)
		snapshot = self.snapshot(session_id)
		if snapshot is not None:
			self.multiplexer.send(connection_id, snapshot)
		else:
			LOGGER.info("Viewer %s joined unknown session %s; no snapshot sent", viewer_id, session_id)
		return connection

	def leave(self, connection_id: str) -> None:
		"""Drop a closed connection and tell the rest of the session."""
		connection = self.multiplexer.unregister(connection_id)
		if connection is None:
			return
		self.viewers.remove(connection.session_id, connection.viewer_id)
		self.multiplexer.broadcast(
			connection.session_id,
			{"type": "viewer-leave", "sessionId": connection.session_id, "data": {"viewerId": connection.viewer_id}},
		)

	def snapshot(self, session_id: str) -> Optional[Dict[str, Any]]:
		"""Return the `sync` message describing the full current session state."""
		state = self.store.get(session_id)
		if state is None:
			return None
		return {
			"type": "sync",
			"sessionId": session_id,
			"data": {
				"currentTime": state.current_time,
				"isPlaying": state.is_playing,
				"videoUrl": state.video_url or "",
				"videoSources": [source.to_dict() for source in state.video_sources],
				"selectedSourceId": state.selected_source_id,
			},
		}

	def handle_text(self, connection_id: str, raw: str) -> bool:
		"""Parse a raw websocket frame and process it. Returns False if it was dropped."""
		try:
			payload = json.loads(raw, parse_float=_finite_float, parse_constant=_reject_constant)
		except ValueError as exc:
			LOGGER.warning("Dropping unparseable frame on connection %s: %s", connection_id, exc)
			return False
		if not isinstance(payload, dict):
			LOGGER.warning("Dropping non-object frame on connection %s", connection_id)
			return False
		return self.handle(connection_id, payload)

	def handle(self, connection_id: str, payload: Dict[str, Any]) -> bool:
		"""Process a single inbound payload. Returns False if it was dropped."""
		connection = self.multiplexer.get(connection_id)
		if connection is None:
			LOGGER.warning("Dropping message for unregistered connection %s", connection_id)
			return False
		self.viewers.touch(connection.session_id, connection.viewer_id)
		try:
			message = SyncMessage.model_validate(payload)
			self._dispatch(connection, message)
		except ValidationError as exc:
			LOGGER.warning(
				"Dropping invalid message from %s/%s: %s",
				connection.session_id,
				connection.viewer_id,
				exc.errors(include_url=False),
			)
			return False
		except ValueError as exc:
			LOGGER.warning("Dropping message from %s/%s: %s", connection.session_id, connection.viewer_id, exc)
			return False
		return True

	def _dispatch(self, connection: Connection, message: SyncMessage) -> None:
		# The connection's session is authoritative over whatever the client wrote.
		message.session_id = connection.session_id
		if message.type in PLAYBACK_TYPES:
			self._apply_playback(connection, message)
		elif message.type == "video-change":
			self._apply_video_change(connection, message)
		elif message.type == "source-add":
			self._apply_source_add(connection, message)
		elif message.type == "source-remove":
			self._apply_source_remove(connection, message)
		elif message.type == "reaction":
			if message.data is None or message.data.reaction is None:
				raise ProtocolError("reaction requires data.reaction")
			self._relay(connection, message.to_wire())
		elif message.type == "viewer-source-change":
			self._apply_viewer_source(connection, message)
		elif message.type in SERVER_ONLY_TYPES:
			raise ProtocolError(f"{message.type} is server-originated only")
		else:
			# Types without a server-side meaning pass through untouched.
			self._relay(connection, message.to_wire())

	def _apply_playback(self, connection: Connection, message: SyncMessage) -> None:
		data = message.data
		changes: Dict[str, Any] = {}
		if data is not None and data.current_time is not None:
			changes["current_time"] = data.current_time
		if data is not None and data.is_playing is not None:
			changes["is_playing"] = data.is_playing
		if not changes:
			raise ProtocolError(f"{message.type} requires data.currentTime or data.isPlaying")
		if self.store.update(connection.session_id, **changes) is None:
			LOGGER.debug("Session %s not found; relaying %s without state", connection.session_id, message.type)
		self._relay(connection, message.to_wire())

	def _apply_video_change(self, connection: Connection, message: SyncMessage) -> None:
		data = message.data
		if data is None or not data.video_url:
			raise ProtocolError("video-change requires data.videoUrl")
		changes: Dict[str, Any] = {"video_url": data.video_url, "current_time": 0, "is_playing": False}
		if data.video_sources is not None:
			changes["video_sources"] = [payload.to_source(self._id_factory) for payload in data.video_sources]
		if data.selected_source_id is not None:
			changes["selected_source_id"] = data.selected_source_id
		state = self.store.update(connection.session_id, **changes)
		outbound = message.to_wire()
		if state is None:
			LOGGER.debug("Session %s not found; relaying video-change without state", connection.session_id)
		elif data.video_sources is not None:
			outbound["data"]["videoSources"] = [source.to_dict() for source in state.video_sources]
		self._relay(connection, outbound)

	def _apply_source_add(self, connection: Connection, message: SyncMessage) -> None:
		data = message.data
		if data is None or data.video_source is None:
			raise ProtocolError("source-add requires data.videoSource")
		source = data.video_source.to_source(self._id_factory)
		if source.added_by is None:
			source.added_by = connection.viewer_id
		sources = self.store.add_source(connection.session_id, source)
		if sources is None:
			raise ProtocolError(f"Session {connection.session_id} not found")
		self._publish_sources(connection.session_id, "source-add", sources)

	def _apply_source_remove(self, connection: Connection, message: SyncMessage) -> None:
		data = message.data
		source_id = None if data is None else (data.source_id or data.selected_source_id)
		if not source_id:
			raise ProtocolError("source-remove requires data.selectedSourceId")
		sources = self.store.remove_source(connection.session_id, source_id)
		if sources is None:
			raise ProtocolError(f"Session {connection.session_id} not found")
		self._publish_sources(connection.session_id, "source-remove", sources)

	def _apply_viewer_source(self, connection: Connection, message: SyncMessage) -> None:
		data = message.data
		source_id = None if data is None else data.selected_source_id
		if not source_id:
			raise ProtocolError("viewer-source-change requires data.selectedSourceId")
		state = self.store.get(connection.session_id)
		if state is None or not state.has_source(source_id):
			raise ProtocolError(f"Unknown source {source_id}")
		self.viewers.select_source(connection.session_id, connection.viewer_id, source_id)

	def _publish_sources(self, session_id: str, message_type: str, sources: List[VideoSource]) -> None:
		self.multiplexer.broadcast(
			session_id,
			{
				"type": message_type,
				"sessionId": session_id,
				"data": {"videoSources": [source.to_dict() for source in sources]},
			},
		)

	def _relay(self, connection: Connection, outbound: Dict[str, Any]) -> None:
		self.multiplexer.broadcast(connection.session_id, outbound, exclude_viewer_id=connection.viewer_id)
