"""Export endpoints: create, history and download."""

from __future__ import annotations

import base64
import logging
import re
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends
from fastapi.responses import Response
from pydantic import BaseModel

from scribe_os.api.dependencies import get_current_practitioner, get_service
from scribe_os.models.export import ExportOptions, ExportSummary, PractitionerInfo, SessionFilter
from scribe_os.models.session import SessionStatus
from scribe_os.service import ScribeService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/exports", tags=["exports"])


class ExportRequest(BaseModel):
    format: str
    include_transcription: bool = True
    include_notes: bool = True
    session_ids: Optional[list[str]] = None
    status: Optional[SessionStatus] = None
    patient_id: Optional[str] = None
    date_from: Optional[datetime] = None
    date_to: Optional[datetime] = None


class ExportResponse(BaseModel):
    id: str
    format: str
    file_name: str
    media_type: str
    size_bytes: int
    source_session_ids: list[str]
    placeholder_session_ids: list[str]
    created_at: datetime
    content_base64: str


def _safe_filename(raw: str) -> str:
    """Sanitize a string for use in Content-Disposition filename."""
    return re.sub(r"[^a-zA-Z0-9_\-.]", "_", raw)


@router.post("", response_model=ExportResponse, status_code=201)
async def create_export(
    body: ExportRequest,
    practitioner: PractitionerInfo = Depends(get_current_practitioner),
    service: ScribeService = Depends(get_service),
):
    filters = SessionFilter(
        status=body.status,
        patient_id=body.patient_id,
        date_from=body.date_from,
        date_to=body.date_to,
        session_ids=body.session_ids,
    )
    options = ExportOptions(
        include_transcription=body.include_transcription,
        include_notes=body.include_notes,
    )
    artifact = await service.request_export(practitioner, filters, body.format, options)
    return ExportResponse(
        id=artifact.id,
        format=artifact.format.value,
        file_name=artifact.file_name,
        media_type=artifact.media_type,
        size_bytes=artifact.size_bytes,
        source_session_ids=list(artifact.source_session_ids),
        placeholder_session_ids=list(artifact.placeholder_session_ids),
        created_at=artifact.created_at,
        content_base64=base64.b64encode(artifact.content).decode("ascii"),
    )


@router.get("", response_model=list[ExportSummary])
async def list_exports(
    practitioner: PractitionerInfo = Depends(get_current_practitioner),
    service: ScribeService = Depends(get_service),
):
    return await service.list_exports(practitioner.id)


@router.get("/{export_id}/download")
async def download_export(
    export_id: str,
    practitioner: PractitionerInfo = Depends(get_current_practitioner),
    service: ScribeService = Depends(get_service),
):
    summary, content = await service.get_export(export_id, practitioner.id)
    return Response(
        content=content,
        media_type=summary.media_type,
        headers={"Content-Disposition": f'attachment; filename="{_safe_filename(summary.file_name)}"'},
    )
