"""Clinical content models produced by the structuring service.

These shapes are the validation boundary for loosely-typed JSON coming back
from the language model: anything that does not fit is rejected instead of
being coerced into empty sections.
"""

from __future__ import annotations

from datetime import date
from enum import Enum
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

DRAFT_MARKER = "draft_requires_clinician_validation"

AI_DISCLAIMER = (
    "This document was generated with AI assistance and must be reviewed "
    "and validated by the practitioner."
)


class MedicalSpecialty(str, Enum):
    GENERAL_PRACTICE = "GENERAL_PRACTICE"
    CARDIOLOGY = "CARDIOLOGY"
    DERMATOLOGY = "DERMATOLOGY"
    NEUROLOGY = "NEUROLOGY"
    PSYCHIATRY = "PSYCHIATRY"
    PEDIATRICS = "PEDIATRICS"
    GYNECOLOGY = "GYNECOLOGY"
    ORTHOPEDICS = "ORTHOPEDICS"
    RADIOLOGY = "RADIOLOGY"
    ANESTHESIOLOGY = "ANESTHESIOLOGY"
    EMERGENCY_MEDICINE = "EMERGENCY_MEDICINE"
    INTERNAL_MEDICINE = "INTERNAL_MEDICINE"
    SURGERY = "SURGERY"
    ONCOLOGY = "ONCOLOGY"
    ENDOCRINOLOGY = "ENDOCRINOLOGY"

    @property
    def label(self) -> str:
        return self.value.replace("_", " ").title()


class DocumentKind(str, Enum):
    PRESCRIPTION = "PRESCRIPTION"
    LETTER = "LETTER"
    REPORT = "REPORT"
    REFERRAL = "REFERRAL"
    CERTIFICATE = "CERTIFICATE"


class StructuredNote(BaseModel):
    """SOAP note. Lives in plaintext only in memory."""

    model_config = ConfigDict(extra="ignore")

    subjective: str
    objective: str
    assessment: str
    plan: str

    def flatten(self) -> str:
        """Single-line ``S: … | O: … | A: … | P: …`` rendering."""
        return (
            f"S: {self.subjective} | O: {self.objective} | "
            f"A: {self.assessment} | P: {self.plan}"
        )

    def is_blank(self) -> bool:
        return not any(
            s.strip() for s in (self.subjective, self.objective, self.assessment, self.plan)
        )


class CodingSuggestion(BaseModel):
    """Advisory procedure / diagnosis codes. Never applied to billing."""

    model_config = ConfigDict(extra="ignore")

    ngap: Optional[str] = None
    ccam: Optional[str] = None
    icd10: Optional[str] = None
    dsm5: Optional[str] = None
    explanation: str = Field(min_length=1)
    review_status: Literal["draft_requires_clinician_validation"] = DRAFT_MARKER

    @field_validator("ngap", "ccam", "icd10", "dsm5", mode="before")
    @classmethod
    def _blank_to_none(cls, v):
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @field_validator("explanation")
    @classmethod
    def _explanation_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("explanation must not be blank")
        return v

    @property
    def codes(self) -> dict[str, str]:
        """Only the code systems that carry a value."""
        return {
            name: value
            for name, value in (
                ("ngap", self.ngap),
                ("ccam", self.ccam),
                ("icd10", self.icd10),
                ("dsm5", self.dsm5),
            )
            if value
        }


class PatientContext(BaseModel):
    """Patient details passed to document drafting and exports."""

    id: Optional[str] = None
    first_name: str = ""
    last_name: str = ""
    date_of_birth: Optional[date] = None
    gender: Optional[str] = None

    @property
    def display_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()
