"""Draft document generation and saved documents."""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from scribe_os.api.dependencies import get_current_practitioner, get_service
from scribe_os.models.clinical import DRAFT_MARKER, DocumentKind, MedicalSpecialty
from scribe_os.models.document import DocumentPage, DocumentSummary, DocumentView
from scribe_os.models.export import PractitionerInfo
from scribe_os.service import ScribeService

router = APIRouter(prefix="/documents", tags=["documents"])


class DocumentRequest(BaseModel):
    session_id: str
    kind: DocumentKind
    specialty: Optional[MedicalSpecialty] = None


class DocumentResponse(BaseModel):
    session_id: str
    kind: DocumentKind
    content: str
    review_status: str = DRAFT_MARKER


class DocumentCreate(BaseModel):
    kind: DocumentKind
    title: str = Field(min_length=1, max_length=255)
    content: str = Field(min_length=1)
    session_id: Optional[str] = None
    template: Optional[str] = Field(default=None, max_length=100)


@router.post("/generate", response_model=DocumentResponse)
async def generate_document(
    body: DocumentRequest,
    practitioner: PractitionerInfo = Depends(get_current_practitioner),
    service: ScribeService = Depends(get_service),
):
    """Draft a document from the session's notes. Nothing is stored."""
    content = await service.generate_document(
        body.session_id, practitioner.id, body.kind, specialty=body.specialty
    )
    return DocumentResponse(session_id=body.session_id, kind=body.kind, content=content)


@router.post("", response_model=DocumentSummary, status_code=201)
async def save_document(
    body: DocumentCreate,
    practitioner: PractitionerInfo = Depends(get_current_practitioner),
    service: ScribeService = Depends(get_service),
):
    return await service.save_document(
        practitioner.id,
        body.kind,
        body.title,
        body.content,
        session_id=body.session_id,
        template=body.template,
    )


@router.get("", response_model=DocumentPage)
async def list_documents(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    kind: Optional[DocumentKind] = Query(None),
    session_id: Optional[str] = Query(None),
    practitioner: PractitionerInfo = Depends(get_current_practitioner),
    service: ScribeService = Depends(get_service),
):
    return await service.list_documents(
        practitioner.id, kind=kind, session_id=session_id, page=page, limit=limit
    )


@router.get("/{document_id}", response_model=DocumentView)
async def get_document(
    document_id: str,
    practitioner: PractitionerInfo = Depends(get_current_practitioner),
    service: ScribeService = Depends(get_service),
):
    return await service.get_document(document_id, practitioner.id)
