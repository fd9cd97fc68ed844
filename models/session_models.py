"""Session domain models for watch-party synchronization."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

DEFAULT_SOURCE_TITLE = "Untitled Video"


@dataclass
class VideoSource:
	"""One playable variant offered within a session."""

	id: str
	url: str
	title: str = DEFAULT_SOURCE_TITLE
	language: Optional[str] = None
	delay: Optional[float] = None
	added_by: Optional[str] = None

	def to_dict(self) -> Dict[str, Any]:
		payload: Dict[str, Any] = {"id": self.id, "url": self.url, "title": self.title}
		if self.language is not None:
			payload["language"] = self.language
		if self.delay is not None:
			payload["delay"] = self.delay
		if self.added_by is not None:
			payload["addedBy"] = self.added_by
		return payload


@dataclass
class Session:
	"""Shared playback state for one named session."""

	id: str
	video_url: Optional[str] = None
	video_sources: List[VideoSource] = field(default_factory=list)
	selected_source_id: Optional[str] = None
	is_playing: bool = False
	current_time: float = 0.0
	created_at: float = field(default_factory=lambda: time.time())
	updated_at: float = field(default_factory=lambda: time.time())

	def has_source(self, source_id: str) -> bool:
		return any(source.id == source_id for source in self.video_sources)

	def to_dict(self) -> Dict[str, Any]:
		"""Return the camelCase JSON view used by the HTTP façade."""
		return {
			"id": self.id,
			"videoUrl": self.video_url,
			"videoSources": [source.to_dict() for source in self.video_sources],
			"selectedSourceId": self.selected_source_id,
			"isPlaying": self.is_playing,
			"currentTime": self.current_time,
			"createdAt": self.created_at,
			"updatedAt": self.updated_at,
		}


@dataclass
class Viewer:
	"""Presence record for a viewer inside one session."""

	session_id: str
	viewer_id: str
	last_seen: float = field(default_factory=lambda: time.time())
	selected_source_id: Optional[str] = None
