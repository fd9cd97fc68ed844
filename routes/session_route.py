"""FastAPI routes for creating, inspecting and editing watch-party sessions."""

from typing import List, Optional

from fastapi import APIRouter, HTTPException, Request
from pydantic import BaseModel, ConfigDict, Field

from controllers.session_controller import (
	add_source,
	create_or_get_session,
	get_session,
	list_sources,
	list_viewers,
	remove_source,
	update_session,
)
from models.sync_message import VideoSourcePayload
from services.realtime.session_store import new_id

router = APIRouter(prefix="/api/sessions")


class CamelModel(BaseModel):
	model_config = ConfigDict(populate_by_name=True, allow_inf_nan=False)


class CreatePayload(CamelModel):
	session_id: Optional[str] = Field(default=None, alias="sessionId")
	video_url: Optional[str] = Field(default=None, alias="videoUrl")


class UpdatePayload(CamelModel):
	video_url: Optional[str] = Field(default=None, alias="videoUrl")
	video_sources: Optional[List[VideoSourcePayload]] = Field(default=None, alias="videoSources")
	selected_source_id: Optional[str] = Field(default=None, alias="selectedSourceId")
	is_playing: Optional[bool] = Field(default=None, alias="isPlaying")
	current_time: Optional[float] = Field(default=None, alias="currentTime")


class SourcePayload(CamelModel):
	url: str
	title: Optional[str] = None
	language: Optional[str] = None
	delay: Optional[float] = None
	added_by: Optional[str] = Field(default=None, alias="addedBy")


@router.post("")
async def create_session_route(request: Request, payload: Optional[CreatePayload] = None):
	payload = payload or CreatePayload()
	try:
		return await create_or_get_session(request, payload.session_id, payload.video_url)
	except HTTPException:
		raise
	except Exception as exc:
		raise HTTPException(status_code=500, detail=str(exc))


@router.get("/{session_id}")
async def get_session_route(request: Request, session_id: str):
	try:
		return await get_session(request, session_id)
	except HTTPException:
		raise
	except Exception as exc:
		raise HTTPException(status_code=500, detail=str(exc))


@router.patch("/{session_id}")
async def update_session_route(request: Request, session_id: str, payload: UpdatePayload):
	"""Apply only the fields present in the request body."""
	changes = payload.model_dump(exclude_unset=True)
	# Only the nullable fields may be cleared explicitly.
	changes = {
		name: value
		for name, value in changes.items()
		if value is not None or name in ("video_url", "selected_source_id")
	}
	if "video_sources" in changes:
		changes["video_sources"] = [item.to_source(new_id) for item in payload.video_sources or []]
	try:
		return await update_session(request, session_id, changes)
	except HTTPException:
		raise
	except Exception as exc:
		raise HTTPException(status_code=500, detail=str(exc))


@router.get("/{session_id}/viewers")
async def list_viewers_route(request: Request, session_id: str):
	try:
		return await list_viewers(request, session_id)
	except HTTPException:
		raise
	except Exception as exc:
		raise HTTPException(status_code=500, detail=str(exc))


@router.get("/{session_id}/sources")
async def list_sources_route(request: Request, session_id: str):
	try:
		return await list_sources(request, session_id)
	except HTTPException:
		raise
	except Exception as exc:
		raise HTTPException(status_code=500, detail=str(exc))


@router.post("/{session_id}/sources")
async def add_source_route(request: Request, session_id: str, payload: SourcePayload):
	try:
		return await add_source(
			request,
			session_id,
			payload.url,
			title=payload.title,
			language=payload.language,
			delay=payload.delay,
			added_by=payload.added_by,
		)
	except HTTPException:
		raise
	except Exception as exc:
		raise HTTPException(status_code=500, detail=str(exc))


@router.delete("/{session_id}/sources/{source_id}")
async def remove_source_route(request: Request, session_id: str, source_id: str):
	try:
		return await remove_source(request, session_id, source_id)
	except HTTPException:
		raise
	except Exception as exc:
		raise HTTPException(status_code=500, detail=str(exc))
