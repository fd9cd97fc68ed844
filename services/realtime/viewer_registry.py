"""Presence tracking for viewers, independent of transport connections."""

from __future__ import annotations

import time
from typing import Dict, List, Optional, Tuple

from models.session_models import Viewer


class ViewerRegistry:
	"""Track which viewer ids are associated with each session.

	Entries are only dropped by an explicit remove on connection close. A viewer
	whose transport dies without a close frame stays listed until the transport
	layer reports the closure.
	"""

	def __init__(self) -> None:
		self._viewers: Dict[Tuple[str, str], Viewer] = {}

	def add(self, session_id: str, viewer_id: str) -> Viewer:
		viewer = Viewer(session_id=session_id, viewer_id=viewer_id)
		self._viewers[(session_id, viewer_id)] = viewer
		return viewer

	def remove(self, session_id: str, viewer_id: str) -> bool:
		return self._viewers.pop((session_id, viewer_id), None) is not None

	def get(self, session_id: str, viewer_id: str) -> Optional[Viewer]:
		return self._viewers.get((session_id, viewer_id))

	def touch(self, session_id: str, viewer_id: str) -> None:
		"""Refresh last_seen for a registered viewer; unknown viewers are ignored."""
		viewer = self._viewers.get((session_id, viewer_id))
		if viewer is not None:
			viewer.last_seen = time.time()

	def select_source(self, session_id: str, viewer_id: str, source_id: Optional[str]) -> bool:
		"""Record a viewer's local source choice. Returns False for unknown viewers."""
		viewer = self._viewers.get((session_id, viewer_id))
		if viewer is None:
			return False
		viewer.selected_source_id = source_id
		return True

	def list_for_session(self, session_id: str) -> List[Viewer]:
		return [viewer for (sid, _), viewer in self._viewers.items() if sid == session_id]
