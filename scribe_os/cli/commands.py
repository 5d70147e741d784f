"""CLI commands for ScribeOS."""

import asyncio
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.panel import Panel
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.table import Table

from scribe_os.config import get_settings

app = typer.Typer(
    name="scribe-os",
    help="Clinical encounter transcription, structuring and export",
    add_completion=False,
)
console = Console()


def _fail(message: str) -> None:
    console.print(f"[red]{message}[/red]")
    raise typer.Exit(1)


@app.command()
def generate_key():
    """Print a fresh field-encryption key for ENCRYPTION_KEY."""
    from scribe_os.crypto.cipher import generate_key as new_key

    console.print(new_key())


@app.command()
def init_db():
    """Create database tables (development; production uses migrations)."""
    from scribe_os.core.database import init_db as create_tables

    asyncio.run(create_tables())
    console.print(f"[green]Database ready:[/green] {get_settings().database_url}")


@app.command()
def process(
    audio_file: Path = typer.Argument(..., help="Recorded consultation audio"),
    owner: str = typer.Option(..., "--owner", "-o", help="Practitioner id owning the session"),
    title: str = typer.Option("Consultation", "--title", "-t", help="Session title"),
    specialty: Optional[str] = typer.Option(None, "--specialty", "-s", help="Medical specialty"),
    show_transcript: bool = typer.Option(False, "--show-transcript", help="Print the transcript"),
):
    """Create a session from an audio file and run the pipeline to completion."""
    from scribe_os.core.errors import ScribeError, TranscriptionError
    from scribe_os.models.clinical import MedicalSpecialty
    from scribe_os.service import create_service_from_settings

    if not audio_file.exists():
        _fail(f"Audio file not found: {audio_file}")

    specialty_enum = None
    if specialty:
        try:
            specialty_enum = MedicalSpecialty(specialty.upper())
        except ValueError:
            _fail(f"Invalid specialty: {specialty}")

    async def _run():
        from scribe_os.core.database import init_db as create_tables

        await create_tables()
        service = create_service_from_settings()
        record = await service.create_session(owner, title, specialty=specialty_enum)
        result = await service.submit_audio(
            record.id, owner, audio_file.read_bytes(), filename=audio_file.name, wait=True
        )
        view = await service.get_session(record.id, owner)
        return result, view

    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        console=console,
    ) as progress:
        task = progress.add_task("Transcribing and structuring...", total=None)
        try:
            result, view = asyncio.run(_run())
        except TranscriptionError as e:
            progress.stop()
            _fail(f"Transcription failed, nothing saved: {e.reason}")
        except ScribeError as e:
            progress.stop()
            _fail(str(e))
        progress.update(task, completed=True)

    _display_session(view, result.outcome.value, show_transcript)


def _display_session(view, outcome: str, show_transcript: bool) -> None:
    style = "green" if outcome == "COMPLETED" else "yellow"
    console.print(
        Panel(
            f"Session: {view.id}\nStatus: {view.status.value}\nOutcome: [{style}]{outcome}[/{style}]"
            + (f"\nReason: {view.degraded_reason}" if view.degraded_reason else ""),
            title=view.title,
        )
    )
    if show_transcript and view.transcript:
        console.print(Panel(view.transcript, title="Transcript"))
    if view.notes:
        table = Table(title="SOAP Notes (draft)", show_header=False)
        table.add_column("Section", style="cyan")
        table.add_column("Content")
        table.add_row("Subjective", view.notes.subjective)
        table.add_row("Objective", view.notes.objective)
        table.add_row("Assessment", view.notes.assessment)
        table.add_row("Plan", view.notes.plan)
        console.print(table)
    if view.coding:
        codes = ", ".join(f"{k.upper()} {v}" for k, v in view.coding.codes.items()) or "none"
        console.print(f"[bold]Suggested codes:[/bold] {codes}  [dim](requires clinician validation)[/dim]")


@app.command()
def export(
    owner: str = typer.Option(..., "--owner", "-o", help="Practitioner id"),
    format: str = typer.Option("pdf", "--format", "-f", help="pdf, csv or fhir"),
    output: Optional[Path] = typer.Option(None, "--output", help="Output file (default: generated name)"),
    first_name: str = typer.Option("", "--first-name", help="Practitioner first name"),
    last_name: str = typer.Option("", "--last-name", help="Practitioner last name"),
    no_transcription: bool = typer.Option(False, "--no-transcription", help="Leave transcripts out"),
    no_notes: bool = typer.Option(False, "--no-notes", help="Leave SOAP notes out"),
):
    """Export the owner's completed sessions."""
    from scribe_os.core.errors import ExportFormatError
    from scribe_os.models.export import ExportFormat, ExportOptions, PractitionerInfo
    from scribe_os.service import create_service_from_settings

    try:
        fmt = ExportFormat.parse(format)
    except ExportFormatError as e:
        _fail(str(e))

    async def _run():
        service = create_service_from_settings()
        practitioner = PractitionerInfo(id=owner, first_name=first_name, last_name=last_name)
        options = ExportOptions(include_transcription=not no_transcription, include_notes=not no_notes)
        return await service.request_export(practitioner, None, fmt, options)

    artifact = asyncio.run(_run())
    target = output or Path(artifact.file_name)
    target.write_bytes(artifact.content)

    console.print(
        f"[green]Exported {len(artifact.source_session_ids)} session(s)[/green] "
        f"to {target} ({artifact.size_bytes} bytes)"
    )
    if artifact.placeholder_session_ids:
        console.print(
            f"[yellow]{len(artifact.placeholder_session_ids)} session(s) had unreadable content "
            "and were exported with placeholders[/yellow]"
        )


@app.command()
def stats(owner: str = typer.Option(..., "--owner", "-o", help="Practitioner id")):
    """Show session statistics for a practitioner."""
    from scribe_os.service import create_service_from_settings

    async def _run():
        return await create_service_from_settings().session_stats(owner)

    data = asyncio.run(_run())
    table = Table(title=f"Sessions for {owner}")
    table.add_column("Status", style="cyan")
    table.add_column("Count", justify="right")
    for status, count in data["by_status"].items():
        table.add_row(status, str(count))
    console.print(table)
    console.print(
        f"Total: {data['total']}  Degraded: {data['degraded']}  Exports: {data['exports']}  "
        f"Documents: {data['documents']}  "
        f"Avg duration: {data['average_duration_seconds'] or '-'}s"
    )


@app.command()
def serve(
    host: Optional[str] = typer.Option(None, "--host", "-h", help="Host to bind"),
    port: Optional[int] = typer.Option(None, "--port", "-p", help="Port to bind"),
    reload: bool = typer.Option(False, "--reload", help="Enable auto-reload"),
):
    """Start the REST API server."""
    import uvicorn

    settings = get_settings()
    host = host or settings.api_host
    port = port or settings.api_port
    console.print(f"Starting ScribeOS API server on {host}:{port}")
    uvicorn.run(
        "scribe_os.api.app:create_app",
        host=host,
        port=port,
        reload=reload,
        factory=True,
    )


@app.command()
def version():
    """Show version information."""
    from scribe_os import __version__

    console.print(f"ScribeOS version {__version__}")
