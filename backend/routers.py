"""
Session, recording and playback routes.

Domain errors raised by the service are mapped to HTTP status codes by the
exception handlers registered in `backend.api`.
"""

import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, WebSocket

from replay_use.recording.views import calculate_stats

from .service_factory import get_service
from .views import (
	PlaybackControlRequest,
	PlaybackResponse,
	PlaybackSeekRequest,
	PlaybackStartRequest,
	RecordingExportRequest,
	RecordingExportResponse,
	RecordingIdRequest,
	RecordingListResponse,
	RecordingPauseResponse,
	RecordingResponse,
	RecordingStartRequest,
	RecordingStartResponse,
	RecordingStatusResponse,
	RecordingStopResponse,
	RecordingSummary,
	SessionCreateRequest,
	SessionListResponse,
	SessionResponse,
)
from .websocket_manager import websocket_manager

logger = logging.getLogger(__name__)

session_router = APIRouter(prefix="/api/session")
recording_router = APIRouter(prefix="/api")
broadcast_router = APIRouter()


# ─── Sessions ────────

@session_router.post("/create", response_model=SessionResponse)
async def create_session(request: Optional[SessionCreateRequest] = None):
	service = get_service()
	endpoint = request.browser_ws_endpoint if request else None
	session = await service.sessions.create_session(endpoint)
	return SessionResponse(session_id=session.session_id, message="Session created")


@recording_router.get("/sessions", response_model=SessionListResponse)
async def list_sessions():
	stats = get_service().sessions.get_stats()
	return SessionListResponse(sessions=stats["sessions"], total=stats["activeSessions"])


@session_router.delete("/{session_id}", response_model=SessionResponse)
async def close_session(session_id: str):
	service = get_service()
	service.sessions.get(session_id)
	await service.sessions.close_session(session_id)
	return SessionResponse(session_id=session_id, message="Session closed")


# ─── Recording ────────

@recording_router.post("/recording/start", response_model=RecordingStartResponse)
async def start_recording(request: RecordingStartRequest):
	recording = await get_service().start_recording(request.session_id, request.config)
	return RecordingStartResponse(
		recording_id=recording.id,
		session_id=recording.session_id,
		message="Recording started",
		config=recording.config,
	)


@recording_router.post("/recording/stop", response_model=RecordingStopResponse)
async def stop_recording(request: RecordingIdRequest):
	recording, stats = await get_service().stop_recording(request.recording_id)
	return RecordingStopResponse(
		recording_id=recording.id,
		message="Recording stopped",
		stats=stats,
		recording=recording,
	)


@recording_router.post("/recording/pause", response_model=RecordingPauseResponse)
async def pause_recording(request: RecordingIdRequest):
	status = await get_service().toggle_pause(request.recording_id)
	message = "Recording paused" if status == "paused" else "Recording resumed"
	return RecordingPauseResponse(recording_id=request.recording_id, message=message, status=status)


@recording_router.get("/recording/status/{session_id}", response_model=RecordingStatusResponse)
async def recording_status(session_id: str):
	recording, stats, is_active = get_service().recording_status(session_id)
	if recording is None:
		return RecordingStatusResponse()
	return RecordingStatusResponse(
		recording_id=recording.id,
		status=recording.status,
		stats=stats,
		current_event=recording.events[-1] if recording.events else None,
		is_active=is_active,
	)


@recording_router.get("/recordings", response_model=RecordingListResponse)
async def list_recordings():
	recordings = [
		RecordingSummary(
			id=r.id,
			session_id=r.session_id,
			created_at=r.start_time,
			duration=r.duration,
			event_count=len(r.events),
			status=r.status,
			initial_url=r.metadata.initial_url,
		)
		for r in get_service().list_recordings()
	]
	return RecordingListResponse(recordings=recordings, total=len(recordings))


@recording_router.post("/recording/export", response_model=RecordingExportResponse)
async def export_recording(request: RecordingExportRequest):
	result = await get_service().export(request.recording_id, request.options)
	return RecordingExportResponse(**result.model_dump())


@recording_router.post("/recording/import", response_model=RecordingResponse)
async def import_recording(document: Dict[str, Any] = Body(...)):
	recording = get_service().import_document(document)
	return RecordingResponse(recording=recording)


# ─── Playback ────────

@recording_router.post("/recording/playback/start", response_model=PlaybackResponse)
async def start_playback(request: PlaybackStartRequest):
	player = await get_service().start_playback(request.recording_id, request.session_id, request.config)
	return PlaybackResponse(
		message="Playback started",
		recording_id=request.recording_id,
		action="start",
		status=player.get_status(),
	)


@recording_router.post("/recording/playback/control", response_model=PlaybackResponse)
async def control_playback(request: PlaybackControlRequest):
	state = await get_service().control_playback(request.recording_id, request.action)
	return PlaybackResponse(
		message=f"Playback {request.action} applied",
		recording_id=request.recording_id,
		action=request.action,
		status=state,
	)


@recording_router.post("/recording/playback/seek", response_model=PlaybackResponse)
async def seek_playback(request: PlaybackSeekRequest):
	state = await get_service().seek_playback(request.recording_id, request.event_index)
	return PlaybackResponse(
		message=f"Seeked to event {request.event_index}",
		recording_id=request.recording_id,
		action="seek",
		status=state,
	)


@recording_router.get("/recording/playback/status/{recording_id}", response_model=PlaybackResponse)
async def playback_status(recording_id: str):
	return PlaybackResponse(
		message="Playback status",
		recording_id=recording_id,
		status=get_service().playback_status(recording_id),
	)


# Declared after the fixed /recording/* paths so they take precedence
@recording_router.get("/recording/{recording_id}", response_model=RecordingResponse)
async def get_recording(recording_id: str):
	return RecordingResponse(recording=get_service().get_recording(recording_id))


@recording_router.get("/recording/{recording_id}/stats")
async def get_recording_stats(recording_id: str):
	recording = get_service().get_recording(recording_id)
	return {"success": True, "stats": calculate_stats(recording).to_wire()}


# ─── Broadcast stream ────────

@broadcast_router.websocket("/ws")
async def broadcast_websocket(websocket: WebSocket):
	"""Live feed of recording and playback broadcasts (optionally filtered by ?sessionId=)"""
	session_id = websocket.query_params.get("sessionId")
	client_id = await websocket_manager.connect(websocket, session_id)
	await websocket_manager.handle_websocket_loop(client_id)
