"""fpdf2-based session report renderer.

Builds the report in memory and returns bytes via ``FPDF.output()``.
Automatic page breaks are off: the renderer keeps its own vertical cursor,
starts a new page before an entry once the cursor has passed
``page_break_y``, and wraps long sections line by line so no text runs
past the bottom margin.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional, Sequence

from fpdf import FPDF
from fpdf.enums import MethodReturnValue

from scribe_os.export.common import ExportEntry, format_date
from scribe_os.models.export import ExportOptions, PractitionerInfo

LEFT = 15.0
TOP = 28.0
BOTTOM_MARGIN = 20.0
LINE_H = 5.0


class SessionReportPDF(FPDF):
    """PDF subclass with confidential header and page footer."""

    def __init__(self, clinic_name: str = "ScribeOS"):
        super().__init__(format="A4")
        self.clinic_name = clinic_name
        self.set_auto_page_break(auto=False)
        self.set_margins(LEFT, TOP, LEFT)

    def header(self):
        self.set_xy(LEFT, 10)
        self.set_font("Helvetica", "B", 12)
        self.cell(0, 6, _sanitize(self.clinic_name), new_x="LMARGIN", new_y="NEXT")
        self.set_font("Helvetica", "", 7)
        self.set_text_color(180, 0, 0)
        self.cell(0, 4, "CONFIDENTIAL - PROTECTED HEALTH INFORMATION", new_x="LMARGIN", new_y="NEXT")
        self.set_text_color(0, 0, 0)
        self.line(LEFT, self.get_y() + 1, self.w - LEFT, self.get_y() + 1)

    def footer(self):
        self.set_y(-15)
        self.set_font("Helvetica", "I", 7)
        self.set_text_color(128, 128, 128)
        self.cell(0, 10, f"Page {self.page_no()}/{{nb}}", align="C")
        self.set_text_color(0, 0, 0)


class _Cursor:
    """Explicit vertical position on the current page."""

    def __init__(self, pdf: SessionReportPDF):
        self.pdf = pdf
        self.y = TOP

    @property
    def bottom(self) -> float:
        return self.pdf.h - BOTTOM_MARGIN

    def new_page(self) -> None:
        self.pdf.add_page()
        self.y = TOP

    def text(self, text: str, *, size: float = 9, style: str = "", height: float = LINE_H) -> None:
        self.pdf.set_font("Helvetica", style, size)
        width = self.pdf.w - 2 * LEFT
        lines = self.pdf.multi_cell(
            width, height, _sanitize(text), dry_run=True, output=MethodReturnValue.LINES
        )
        for line in lines or [""]:
            if self.y + height > self.bottom:
                self.new_page()
                self.pdf.set_font("Helvetica", style, size)
            self.pdf.set_xy(LEFT, self.y)
            self.pdf.cell(width, height, line)
            self.y += height

    def skip(self, amount: float) -> None:
        self.y += amount


def generate_report_pdf(
    entries: Sequence[ExportEntry],
    options: ExportOptions,
    *,
    practitioner: Optional[PractitionerInfo] = None,
    clinic_name: str = "ScribeOS",
    page_break_y: float = 250.0,
    transcript_cap: int = 500,
    generated_at: Optional[datetime] = None,
) -> bytes:
    """Render a multi-session report and return raw PDF bytes.

    Parameters
    ----------
    entries : projected sessions, in report order
    options : inclusion flags; sections whose flag is off are not rendered
    practitioner : exporting practitioner, shown in the title block
    page_break_y : cursor position (mm) past which the next entry starts a page
    transcript_cap : characters of transcript shown before the ellipsis
    """
    generated_at = generated_at or datetime.now(timezone.utc)
    pdf = SessionReportPDF(clinic_name=clinic_name)
    pdf.alias_nb_pages()
    cursor = _Cursor(pdf)
    cursor.new_page()

    cursor.text("Session Export", size=18, style="B", height=9)
    cursor.skip(2)
    cursor.text(f"Generated: {format_date(generated_at)}", size=10)
    if practitioner:
        cursor.text(f"Practitioner: {practitioner.display_name}", size=10)
        if practitioner.specialty:
            cursor.text(f"Specialty: {practitioner.specialty}", size=10)
    cursor.text(f"Sessions: {len(entries)}", size=10)
    cursor.skip(6)

    for index, entry in enumerate(entries, start=1):
        if cursor.y > page_break_y:
            cursor.new_page()

        cursor.text(f"{index}. {entry.title}", size=13, style="B", height=7)
        meta = [f"Date: {format_date(entry.created_at)}"]
        if entry.patient_name:
            meta.append(f"Patient: {entry.patient_name}")
        if entry.duration_minutes is not None:
            meta.append(f"Duration: {entry.duration_minutes} min")
        cursor.text("  |  ".join(meta), size=9)
        if entry.degraded:
            pdf.set_text_color(180, 120, 0)
            cursor.text("Notes incomplete: automatic structuring did not finish.", size=8, style="I")
            pdf.set_text_color(0, 0, 0)

        transcript = entry.transcript_text
        if options.include_transcription and transcript:
            cursor.skip(2)
            cursor.text("Transcription:", size=10, style="B")
            if not entry.transcript_failed and len(transcript) > transcript_cap:
                transcript = transcript[:transcript_cap] + "..."
            cursor.text(transcript, size=9)

        soap = entry.soap_line
        if options.include_notes and soap:
            cursor.skip(2)
            cursor.text("SOAP Notes:", size=10, style="B")
            cursor.text(soap, size=9)

        cursor.skip(8)

    return bytes(pdf.output())


def _sanitize(text: str) -> str:
    """Map text onto latin-1, which the built-in Helvetica can render."""
    text = (
        text
        .replace("\u2014", "-")
        .replace("\u2013", "-")
        .replace("\u2018", "'")
        .replace("\u2019", "'")
        .replace("\u201c", '"')
        .replace("\u201d", '"')
        .replace("\u0153", "oe")
        .replace("\u2026", "...")
    )
    return text.encode("latin-1", "replace").decode("latin-1")
