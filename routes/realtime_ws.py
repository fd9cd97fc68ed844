"""WebSocket endpoint for watch-party synchronization."""

from __future__ import annotations

import logging
from uuid import uuid4

from fastapi import APIRouter, Depends, HTTPException, WebSocket, status

from services.realtime.connection_multiplexer import WebSocketTransport
from services.realtime.sync_protocol import SyncProtocolEngine

LOGGER = logging.getLogger(__name__)

router = APIRouter()


def _require_engine(websocket: WebSocket) -> SyncProtocolEngine:
	engine = getattr(websocket.app.state, "sync_engine", None)
	if engine is None:
		raise HTTPException(status_code=500, detail="Sync engine unavailable")
	return engine


@router.websocket("/ws")
async def sync_socket(websocket: WebSocket, engine: SyncProtocolEngine = Depends(_require_engine)):
	"""Join `sessionId` as `viewerId` and exchange sync envelopes until the socket closes."""
	session_id = websocket.query_params.get("sessionId")
	viewer_id = websocket.query_params.get("viewerId")
	await websocket.accept()
	if not session_id or not viewer_id:
		await websocket.close(code=status.WS_1008_POLICY_VIOLATION, reason="Missing sessionId or viewerId")
		return

	connection_id = uuid4().hex
	engine.join(connection_id, WebSocketTransport(websocket), session_id, viewer_id)
	LOGGER.info("Viewer %s connected to session %s", viewer_id, session_id)
	try:
		while True:
			message = await websocket.receive()
			if message["type"] == "websocket.disconnect":
				break
			text = message.get("text")
			if text is None:
				LOGGER.warning("Dropping binary frame from %s/%s", session_id, viewer_id)
				continue
			engine.handle_text(connection_id, text)
	finally:
		engine.leave(connection_id)
		LOGGER.info("Viewer %s disconnected from session %s", viewer_id, session_id)
