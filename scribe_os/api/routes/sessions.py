"""Session endpoints: create, upload audio, read, revise, archive."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, UploadFile
from pydantic import BaseModel, Field

from scribe_os.api.dependencies import get_current_practitioner, get_service
from scribe_os.models.clinical import CodingSuggestion, MedicalSpecialty, StructuredNote
from scribe_os.models.export import PractitionerInfo, SessionFilter
from scribe_os.models.session import SessionStatus, SessionSummary, SessionView
from scribe_os.service import ScribeService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/sessions", tags=["sessions"])

MAX_AUDIO_BYTES = 100 * 1024 * 1024


class SessionCreate(BaseModel):
    title: str = Field(min_length=1, max_length=255)
    patient_id: Optional[str] = None
    specialty: Optional[MedicalSpecialty] = None


class NotesUpdate(BaseModel):
    notes: StructuredNote
    coding: Optional[CodingSuggestion] = None


class PipelineResponse(BaseModel):
    outcome: str
    degraded_reason: Optional[str] = None
    transcription_ran: bool
    session: SessionSummary


@router.post("", response_model=SessionSummary, status_code=201)
async def create_session(
    body: SessionCreate,
    practitioner: PractitionerInfo = Depends(get_current_practitioner),
    service: ScribeService = Depends(get_service),
):
    specialty = body.specialty
    if specialty is None and practitioner.specialty in MedicalSpecialty.__members__:
        specialty = MedicalSpecialty(practitioner.specialty)
    record = await service.create_session(
        practitioner.id, body.title, patient_id=body.patient_id, specialty=specialty
    )
    return SessionSummary.from_record(record)


@router.get("", response_model=list[SessionSummary])
async def list_sessions(
    status: Optional[SessionStatus] = Query(None),
    patient_id: Optional[str] = Query(None),
    date_from: Optional[datetime] = Query(None),
    date_to: Optional[datetime] = Query(None),
    limit: int = Query(100, ge=1, le=500),
    practitioner: PractitionerInfo = Depends(get_current_practitioner),
    service: ScribeService = Depends(get_service),
):
    filters = SessionFilter(
        status=status, patient_id=patient_id, date_from=date_from, date_to=date_to, limit=limit
    )
    records = await service.list_sessions(practitioner.id, filters)
    return [SessionSummary.from_record(r) for r in records]


@router.get("/stats")
async def session_stats(
    practitioner: PractitionerInfo = Depends(get_current_practitioner),
    service: ScribeService = Depends(get_service),
) -> dict:
    return await service.session_stats(practitioner.id)


@router.get("/{session_id}", response_model=SessionView)
async def get_session(
    session_id: str,
    practitioner: PractitionerInfo = Depends(get_current_practitioner),
    service: ScribeService = Depends(get_service),
):
    return await service.get_session(session_id, practitioner.id)


@router.post("/{session_id}/audio", response_model=SessionSummary, status_code=202)
async def upload_audio(
    session_id: str,
    file: UploadFile = File(...),
    duration_seconds: Optional[float] = Form(None, ge=0),
    practitioner: PractitionerInfo = Depends(get_current_practitioner),
    service: ScribeService = Depends(get_service),
):
    """Attach audio and schedule the pipeline. Poll the session for the result."""
    data = await file.read()
    if not data:
        raise HTTPException(status_code=422, detail="Audio file is empty")
    if len(data) > MAX_AUDIO_BYTES:
        raise HTTPException(status_code=413, detail="Audio file too large")

    record = await service.submit_audio(
        session_id,
        practitioner.id,
        data,
        filename=file.filename or "audio.webm",
        duration_seconds=duration_seconds,
    )
    return SessionSummary.from_record(record)


@router.post("/{session_id}/resume", response_model=PipelineResponse)
async def resume_session(
    session_id: str,
    practitioner: PractitionerInfo = Depends(get_current_practitioner),
    service: ScribeService = Depends(get_service),
):
    result = await service.resume(session_id, practitioner.id)
    return PipelineResponse(
        outcome=result.outcome.value,
        degraded_reason=result.degraded_reason,
        transcription_ran=result.transcription_ran,
        session=SessionSummary.from_record(result.session),
    )


@router.put("/{session_id}/notes", response_model=SessionView)
async def update_notes(
    session_id: str,
    body: NotesUpdate,
    practitioner: PractitionerInfo = Depends(get_current_practitioner),
    service: ScribeService = Depends(get_service),
):
    return await service.update_notes(session_id, practitioner.id, body.notes, body.coding)


@router.post("/{session_id}/archive", response_model=SessionSummary)
async def archive_session(
    session_id: str,
    practitioner: PractitionerInfo = Depends(get_current_practitioner),
    service: ScribeService = Depends(get_service),
):
    return SessionSummary.from_record(await service.archive(session_id, practitioner.id))


@router.post("/{session_id}/reset", response_model=SessionSummary)
async def reset_session(
    session_id: str,
    practitioner: PractitionerInfo = Depends(get_current_practitioner),
    service: ScribeService = Depends(get_service),
):
    """Back to DRAFT, discarding transcript, notes and coding."""
    return SessionSummary.from_record(await service.reset_to_draft(session_id, practitioner.id))
