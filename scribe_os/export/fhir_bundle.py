"""FHIR R4 document bundle export.

Resources are registered in a small graph keyed by ``(resourceType, id)``
before the bundle is serialized. Ids derive from the session id only
(encounter ``<session id>``, notes ``<session id>-transcription`` and
``<session id>-notes``), so exporting the same session twice links to the
same resource ids while each bundle still gets a fresh identifier.
"""

from __future__ import annotations

import json
import uuid
from datetime import datetime, timezone
from typing import Any, Optional, Sequence

from scribe_os.export.common import PLACEHOLDER, ExportEntry
from scribe_os.models.export import ExportOptions, PractitionerInfo

ACT_CODE_SYSTEM = "http://terminology.hl7.org/CodeSystem/v3-ActCode"
LOINC_SYSTEM = "http://loinc.org"
DATA_ABSENT_SYSTEM = "http://terminology.hl7.org/CodeSystem/data-absent-reason"


def encounter_id(session_id: str) -> str:
    return session_id


def transcription_id(session_id: str) -> str:
    return f"{session_id}-transcription"


def notes_id(session_id: str) -> str:
    return f"{session_id}-notes"


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


class ResourceGraph:
    """Ordered set of resources; re-adding an existing key is a no-op."""

    def __init__(self):
        self._resources: dict[tuple[str, str], dict[str, Any]] = {}

    def add(self, resource_type: str, resource_id: str, body: dict[str, Any]) -> str:
        key = (resource_type, resource_id)
        if key not in self._resources:
            self._resources[key] = {"resourceType": resource_type, "id": resource_id, **body}
        return f"{resource_type}/{resource_id}"

    def __len__(self) -> int:
        return len(self._resources)

    def entries(self) -> list[dict[str, Any]]:
        return [{"fullUrl": f"{rt}/{rid}", "resource": res} for (rt, rid), res in self._resources.items()]


def _practitioner(practitioner: PractitionerInfo) -> dict[str, Any]:
    body: dict[str, Any] = {
        "name": [{"use": "official", "family": practitioner.last_name, "given": [practitioner.first_name]}],
    }
    if practitioner.specialty:
        body["qualification"] = [{"code": {"text": practitioner.specialty}}]
    return body


def _clinical_note(
    *,
    code: str,
    display: str,
    text: Optional[str],
    failed: bool,
    encounter_ref: str,
    patient_ref: Optional[str],
    issued: Optional[str],
) -> dict[str, Any]:
    body: dict[str, Any] = {
        "status": "final",
        "code": {"coding": [{"system": LOINC_SYSTEM, "code": code, "display": display}]},
        "encounter": {"reference": encounter_ref},
    }
    if patient_ref:
        body["subject"] = {"reference": patient_ref}
    if issued:
        body["issued"] = issued
    if failed:
        body["dataAbsentReason"] = {
            "coding": [{"system": DATA_ABSENT_SYSTEM, "code": "error", "display": "Error"}],
            "text": PLACEHOLDER,
        }
    else:
        body["valueString"] = text
    return body


def build_bundle(
    entries: Sequence[ExportEntry],
    options: ExportOptions,
    practitioner: PractitionerInfo,
    *,
    bundle_id: Optional[str] = None,
    identifier_system: str = "https://scribe-os.example/exports",
    timestamp: Optional[datetime] = None,
) -> dict[str, Any]:
    graph = ResourceGraph()
    practitioner_ref = graph.add("Practitioner", practitioner.id, _practitioner(practitioner))

    for entry in entries:
        patient_ref = f"Patient/{entry.patient.id}" if entry.patient and entry.patient.id else None
        start = _iso(entry.created_at)
        encounter: dict[str, Any] = {
            "status": "finished",
            "class": {"system": ACT_CODE_SYSTEM, "code": "AMB", "display": "ambulatory"},
            "period": {"start": start, "end": _iso(entry.completed_at) or start},
            "reasonCode": [{"text": entry.title}],
            "participant": [{"individual": {"reference": practitioner_ref}}],
        }
        if patient_ref:
            encounter["subject"] = {"reference": patient_ref}
        encounter_ref = graph.add("Encounter", encounter_id(entry.session_id), encounter)

        issued = _iso(entry.completed_at)
        if options.include_transcription and (entry.transcript is not None or entry.transcript_failed):
            graph.add(
                "Observation",
                transcription_id(entry.session_id),
                _clinical_note(
                    code="11488-4",
                    display="Consult note",
                    text=entry.transcript,
                    failed=entry.transcript_failed,
                    encounter_ref=encounter_ref,
                    patient_ref=patient_ref,
                    issued=issued,
                ),
            )
        if options.include_notes and (entry.note is not None or entry.notes_failed):
            graph.add(
                "Observation",
                notes_id(entry.session_id),
                _clinical_note(
                    code="34109-9",
                    display="Note",
                    text=entry.soap_line,
                    failed=entry.notes_failed,
                    encounter_ref=encounter_ref,
                    patient_ref=patient_ref,
                    issued=issued,
                ),
            )

    bundle_id = bundle_id or str(uuid.uuid4())
    return {
        "resourceType": "Bundle",
        "id": bundle_id,
        "type": "document",
        "timestamp": _iso(timestamp or datetime.now(timezone.utc)),
        "meta": {"profile": ["http://hl7.org/fhir/StructureDefinition/Bundle"]},
        "identifier": {"system": identifier_system, "value": f"export-{bundle_id}"},
        "entry": graph.entries(),
    }


def generate_bundle(
    entries: Sequence[ExportEntry],
    options: ExportOptions,
    practitioner: PractitionerInfo,
    **kwargs,
) -> bytes:
    bundle = build_bundle(entries, options, practitioner, **kwargs)
    return json.dumps(bundle, indent=2, ensure_ascii=False).encode("utf-8")
