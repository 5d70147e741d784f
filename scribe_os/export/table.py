"""Tabular CSV export. One row per session, every cell quoted."""

from __future__ import annotations

import csv
import io
import re
from typing import Sequence

from scribe_os.export.common import ExportEntry, format_date
from scribe_os.models.export import ExportOptions

BASE_HEADERS = ["Date", "Title", "Patient", "Duration (min)"]

_LINE_BREAKS = re.compile(r"\r\n|\r|\n")


def _one_line(value: str) -> str:
    return _LINE_BREAKS.sub(" ", value)


def generate_table(entries: Sequence[ExportEntry], options: ExportOptions) -> bytes:
    headers = list(BASE_HEADERS)
    if options.include_transcription:
        headers.append("Transcription")
    if options.include_notes:
        headers.append("SOAP Notes")

    buffer = io.StringIO()
    writer = csv.writer(buffer, quoting=csv.QUOTE_ALL, lineterminator="\n")
    writer.writerow(headers)

    for entry in entries:
        row = [
            format_date(entry.created_at),
            entry.title,
            entry.patient_name,
            "" if entry.duration_minutes is None else str(entry.duration_minutes),
        ]
        # Columns stay aligned: a missing section is an empty cell.
        if options.include_transcription:
            row.append(entry.transcript_text or "")
        if options.include_notes:
            row.append(entry.soap_line or "")
        writer.writerow([_one_line(cell) for cell in row])

    return buffer.getvalue().encode("utf-8")
