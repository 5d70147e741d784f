"""Saved document models."""

from __future__ import annotations

import math
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, computed_field

from scribe_os.models.clinical import DocumentKind


class DocumentSummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    kind: DocumentKind
    title: str
    session_id: Optional[str] = None
    template: Optional[str] = None
    created_at: datetime


class DocumentView(DocumentSummary):
    """Decrypted document, returned to its owner only."""

    content: str


class DocumentPage(BaseModel):
    items: list[DocumentSummary] = Field(default_factory=list)
    total: int
    page: int
    limit: int

    @computed_field
    @property
    def total_pages(self) -> int:
        return math.ceil(self.total / self.limit) if self.limit else 0
