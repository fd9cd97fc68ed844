"""Simple in-memory store for watch-party sessions."""

from __future__ import annotations

import math
import time
from typing import Any, Dict, List, Optional
from uuid import uuid4

from models.session_models import Session, VideoSource

_MUTABLE_FIELDS = frozenset(
	{"video_url", "video_sources", "selected_source_id", "is_playing", "current_time"}
)


def new_id() -> str:
	return uuid4().hex


class SessionStore:
	"""Manage session playback state and video source lists.

	Updates are last-write-wins: there is no read-modify-write transaction, so
	two writers racing on the same field resolve to whichever update is applied
	last.
	"""

	def __init__(self) -> None:
		self._sessions: Dict[str, Session] = {}

	def get(self, session_id: str) -> Optional[Session]:
		"""Return a session or None if missing."""
		return self._sessions.get(session_id)

	def require(self, session_id: str) -> Session:
		"""Return a session or raise KeyError if missing."""
		state = self._sessions.get(session_id)
		if state is None:
			raise KeyError(f"Session {session_id} not found")
		return state

	def create(self, session_id: Optional[str] = None, **initial: Any) -> Session:
		"""Create a session, or return the existing one untouched if the id is taken."""
		session_id = session_id or new_id()
		existing = self._sessions.get(session_id)
		if existing is not None:
			return existing
		state = Session(id=session_id)
		self._apply(state, initial)
		self._sessions[session_id] = state
		return state

	def update(self, session_id: str, **changes: Any) -> Optional[Session]:
		"""Shallow-merge the provided fields into a session and stamp updated_at."""
		state = self._sessions.get(session_id)
		if state is None:
			return None
		self._apply(state, changes)
		state.updated_at = time.time()
		return state

	def sources(self, session_id: str) -> Optional[List[VideoSource]]:
		state = self._sessions.get(session_id)
		if state is None:
			return None
		return list(state.video_sources)

	def add_source(self, session_id: str, source: VideoSource) -> Optional[List[VideoSource]]:
		"""Append a video source and return the updated list."""
		state = self._sessions.get(session_id)
		if state is None:
			return None
		if not source.id:
			source.id = new_id()
		return self._replace_sources(state, state.video_sources + [source])

	def remove_source(self, session_id: str, source_id: str) -> Optional[List[VideoSource]]:
		"""Remove a source by id; removing an unknown id leaves the list unchanged."""
		state = self._sessions.get(session_id)
		if state is None:
			return None
		remaining = [source for source in state.video_sources if source.id != source_id]
		if len(remaining) == len(state.video_sources):
			return list(state.video_sources)
		return self._replace_sources(state, remaining)

	def _replace_sources(self, state: Session, sources: List[VideoSource]) -> List[VideoSource]:
		changes: Dict[str, Any] = {"video_sources": sources}
		if state.selected_source_id and not any(s.id == state.selected_source_id for s in sources):
			changes["selected_source_id"] = None
		self.update(state.id, **changes)
		return list(state.video_sources)

	@staticmethod
	def _apply(state: Session, changes: Dict[str, Any]) -> None:
		unknown = set(changes) - _MUTABLE_FIELDS
		if unknown:
			raise ValueError(f"Unknown session fields: {', '.join(sorted(unknown))}")

		sources = changes.get("video_sources", state.video_sources)
		selected = changes.get("selected_source_id", state.selected_source_id)
		if "selected_source_id" in changes and selected is not None:
			if not any(source.id == selected for source in sources):
				raise ValueError(f"Selected source {selected} is not in the session source list")
		elif "video_sources" in changes and selected is not None:
			if not any(source.id == selected for source in sources):
				changes = {**changes, "selected_source_id": None}
		if "current_time" in changes and not math.isfinite(float(changes["current_time"] or 0)):
			raise ValueError(f"currentTime must be finite, got {changes['current_time']}")

		for name, value in changes.items():
			if name == "current_time":
				value = max(0.0, float(value or 0))
			elif name == "video_sources":
				value = list(value)
			elif name == "is_playing":
				value = bool(value)
			setattr(state, name, value)
