"""Pydantic schema for the JSON envelopes exchanged over the sync websocket."""

from __future__ import annotations

from typing import Any, Callable, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from models.session_models import DEFAULT_SOURCE_TITLE, VideoSource

PLAYBACK_TYPES = frozenset({"sync", "play", "pause", "seek"})
SERVER_ONLY_TYPES = frozenset({"viewer-join", "viewer-leave"})


class WireModel(BaseModel):
	model_config = ConfigDict(populate_by_name=True, allow_inf_nan=False)


class VideoSourcePayload(WireModel):
	id: Optional[str] = None
	url: str
	title: Optional[str] = None
	language: Optional[str] = None
	delay: Optional[float] = None
	added_by: Optional[str] = Field(default=None, alias="addedBy")

	def to_source(self, id_factory: Callable[[], str]) -> VideoSource:
		"""Build a domain VideoSource, generating an id when the client sent none."""
		return VideoSource(
			id=self.id or id_factory(),
			url=self.url,
			title=self.title or DEFAULT_SOURCE_TITLE,
			language=self.language,
			delay=self.delay,
			added_by=self.added_by,
		)


class Reaction(WireModel):
	emoji: str
	viewer_id: str = Field(alias="viewerId")
	timestamp: float


class SyncData(WireModel):
	# Unknown keys are kept so relayed messages reach peers unchanged.
	model_config = ConfigDict(populate_by_name=True, extra="allow", allow_inf_nan=False)

	current_time: Optional[float] = Field(default=None, alias="currentTime")
	is_playing: Optional[bool] = Field(default=None, alias="isPlaying")
	video_url: Optional[str] = Field(default=None, alias="videoUrl")
	video_sources: Optional[List[VideoSourcePayload]] = Field(default=None, alias="videoSources")
	video_source: Optional[VideoSourcePayload] = Field(default=None, alias="videoSource")
	selected_source_id: Optional[str] = Field(default=None, alias="selectedSourceId")
	source_id: Optional[str] = Field(default=None, alias="sourceId")
	viewer_id: Optional[str] = Field(default=None, alias="viewerId")
	reaction: Optional[Reaction] = None


class SyncMessage(WireModel):
	"""Envelope `{type, sessionId, data?}` for every websocket frame."""

	# Types outside the known set are relayed verbatim.
	type: str = Field(min_length=1)
	session_id: Optional[str] = Field(default=None, alias="sessionId")
	data: Optional[SyncData] = None

	def to_wire(self) -> Dict[str, Any]:
		return self.model_dump(by_alias=True, exclude_none=True)
