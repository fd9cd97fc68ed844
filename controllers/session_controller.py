"""Session lifecycle helpers behind the HTTP façade."""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from fastapi import HTTPException, Request

from models.session_models import DEFAULT_SOURCE_TITLE, VideoSource
from services.realtime.connection_multiplexer import ConnectionMultiplexer
from services.realtime.session_store import SessionStore, new_id


def _store(request: Request) -> SessionStore:
	return request.app.state.session_store


def _multiplexer(request: Request) -> ConnectionMultiplexer:
	return request.app.state.connection_multiplexer


def _require(store: SessionStore, session_id: str):
	try:
		return store.require(session_id)
	except KeyError as exc:
		raise HTTPException(status_code=404, detail="Session not found") from exc


async def create_or_get_session(request: Request, session_id: Optional[str], video_url: Optional[str]) -> Dict[str, Any]:
	"""Return the session for `session_id`, creating it when unknown."""
	state = _store(request).create(session_id or new_id(), video_url=video_url or None)
	return state.to_dict()


async def get_session(request: Request, session_id: str) -> Dict[str, Any]:
	"""Return a session along with the number of open connections watching it."""
	state = _require(_store(request), session_id)
	return {**state.to_dict(), "viewerCount": _multiplexer(request).count_open(session_id)}


async def update_session(request: Request, session_id: str, changes: Dict[str, Any]) -> Dict[str, Any]:
	"""Apply a partial update to a session."""
	store = _store(request)
	try:
		state = store.update(session_id, **changes)
	except ValueError as exc:
		raise HTTPException(status_code=400, detail=str(exc)) from exc
	if state is None:
		raise HTTPException(status_code=404, detail="Session not found")
	return state.to_dict()


async def list_viewers(request: Request, session_id: str) -> List[Dict[str, str]]:
	"""List viewers with an open connection; the presence registry may hold stale entries."""
	return [{"viewerId": viewer_id} for viewer_id in _multiplexer(request).viewer_ids(session_id)]


async def list_sources(request: Request, session_id: str) -> List[Dict[str, Any]]:
	sources = _store(request).sources(session_id)
	if sources is None:
		raise HTTPException(status_code=404, detail="Session not found")
	return [source.to_dict() for source in sources]


async def add_source(
	request: Request,
	session_id: str,
	url: str,
	title: Optional[str] = None,
	language: Optional[str] = None,
	delay: Optional[float] = None,
	added_by: Optional[str] = None,
) -> List[Dict[str, Any]]:
	"""Append a video source and return the full list."""
	source = VideoSource(
		id=new_id(),
		url=url,
		title=title or DEFAULT_SOURCE_TITLE,
		language=language,
		delay=delay,
		added_by=added_by,
	)
	sources = _store(request).add_source(session_id, source)
	if sources is None:
		raise HTTPException(status_code=404, detail="Session not found")
	return [item.to_dict() for item in sources]


async def remove_source(request: Request, session_id: str, source_id: str) -> List[Dict[str, Any]]:
	"""Remove a video source by id and return the remaining list."""
	sources = _store(request).remove_source(session_id, source_id)
	if sources is None:
		raise HTTPException(status_code=404, detail="Session not found")
	return [item.to_dict() for item in sources]
