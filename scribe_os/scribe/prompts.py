"""Prompt templates for note structuring, coding and document drafting."""

import json
from typing import Optional

from scribe_os.llm.base import Message
from scribe_os.models.clinical import (
    AI_DISCLAIMER,
    DocumentKind,
    MedicalSpecialty,
    PatientContext,
    StructuredNote,
)

DRAFT_RULES = """IMPORTANT:
- Your output is a draft that the practitioner must review and validate.
- The practitioner alone is responsible for medical decisions.
- Respect medical confidentiality and professional ethics.
- Write in the language used in the consultation."""

SOAP_SYSTEM = """You are a medical AI assistant specialised in {specialty}.
Analyse the transcript of a medical consultation and organise its content in SOAP form.

{rules}

Respond ONLY with a JSON object with exactly these string fields:
{{
  "subjective": "symptoms reported by the patient, history, complaints",
  "objective": "clinical observations, examinations, vital signs",
  "assessment": "differential diagnosis, diagnostic hypotheses",
  "plan": "proposed treatment, further tests, follow-up"
}}
Use an empty string for a section the consultation does not cover."""

CODING_SYSTEM = """You are an expert in French medical coding specialised in {specialty}.
Suggest the medical codes that fit the SOAP note below.

Code systems:
- NGAP (Nomenclature Generale des Actes Professionnels)
- CCAM (Classification Commune des Actes Medicaux)
- ICD-10 (International Classification of Diseases)
- DSM-5 (only for psychiatric presentations)

{rules}

Respond ONLY with a JSON object:
{{
  "ngap": "NGAP code or empty string",
  "ccam": "CCAM code or empty string",
  "icd10": "ICD-10 code or empty string",
  "dsm5": "DSM-5 code or empty string",
  "explanation": "why these codes were chosen (required)"
}}"""

DOCUMENT_SYSTEM = """You are a medical AI assistant specialised in {specialty}.
Write a medical document of type "{kind}" from the SOAP note and patient details provided.

{rules}
- The document must be professional and follow French medical standards.
- Adapt the layout to the document type.
- End with this disclaimer: "{disclaimer}"

Produce the complete document as plain text."""

DOCUMENT_GUIDANCE = {
    DocumentKind.PRESCRIPTION: "List each medication with dosage, route, frequency and duration.",
    DocumentKind.LETTER: "Address the letter to a colleague and summarise the consultation.",
    DocumentKind.REPORT: "Write a structured consultation report with headings.",
    DocumentKind.REFERRAL: "State the reason for referral and the question asked of the specialist.",
    DocumentKind.CERTIFICATE: "Write a short medical certificate stating only what the note supports.",
}


def _specialty_label(specialty: Optional[MedicalSpecialty]) -> str:
    return (specialty or MedicalSpecialty.GENERAL_PRACTICE).label.lower()


def soap_messages(transcript: str, specialty: Optional[MedicalSpecialty]) -> list[Message]:
    return [
        Message.system(SOAP_SYSTEM.format(specialty=_specialty_label(specialty), rules=DRAFT_RULES)),
        Message.user(f"Consultation transcript:\n\n{transcript}"),
    ]


def coding_messages(note: StructuredNote, specialty: Optional[MedicalSpecialty]) -> list[Message]:
    body = (
        f"SOAP note:\n\nSubjective: {note.subjective}\nObjective: {note.objective}\n"
        f"Assessment: {note.assessment}\nPlan: {note.plan}"
    )
    return [
        Message.system(CODING_SYSTEM.format(specialty=_specialty_label(specialty), rules=DRAFT_RULES)),
        Message.user(body),
    ]


def document_messages(
    kind: DocumentKind,
    note: StructuredNote,
    patient: Optional[PatientContext],
    specialty: Optional[MedicalSpecialty],
) -> list[Message]:
    system = DOCUMENT_SYSTEM.format(
        specialty=_specialty_label(specialty),
        kind=kind.value.lower(),
        rules=DRAFT_RULES,
        disclaimer=AI_DISCLAIMER,
    )
    patient_json = patient.model_dump(mode="json", exclude_none=True) if patient else {}
    body = (
        f"Document type: {kind.value}\n{DOCUMENT_GUIDANCE[kind]}\n\n"
        f"SOAP note:\n{json.dumps(note.model_dump(), indent=2, ensure_ascii=False)}\n\n"
        f"Patient details:\n{json.dumps(patient_json, indent=2, ensure_ascii=False)}"
    )
    return [Message.system(system), Message.user(body)]
