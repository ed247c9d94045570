"""Command-line interface for the evidence pipeline using Typer and Rich."""

import asyncio
import mimetypes
from datetime import datetime
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from proof_pipeline import __version__
from proof_pipeline.config.logging import get_logger
from proof_pipeline.config.settings import Settings
from proof_pipeline.data_management.schemas import (
    Enrichment,
    Origin,
    ProofRecord,
    Submission,
    VerificationReport,
)
from proof_pipeline.errors import (
    PolicyViolationError,
    QueuePersistenceError,
    SubmissionDeferredError,
)
from proof_pipeline.pipeline.connectivity import ConnectivityMonitor
from proof_pipeline.pipeline.evidence_pipeline import EvidencePipeline

app = typer.Typer(
    help="Evidence verification pipeline: screen, hash, analyse, store and anchor evidence.",
    add_completion=False,
)

console = Console()

logger = get_logger("cli")

STATUS_STYLES = {
    "verified": "bold green",
    "pending": "yellow",
    "disputed": "bold yellow",
    "flagged": "bold red",
}


def _pipeline(online: bool = True) -> EvidencePipeline:
    # Read settings at call time so environment overrides apply.
    return EvidencePipeline(
        config=Settings(),
        connectivity=ConnectivityMonitor(initially_online=online),
    )


def _origin_label(origin: Origin) -> str:
    return "[green]real[/green]" if origin == Origin.REAL else "[yellow]mocked[/yellow]"


def _print_result(proof: ProofRecord, report: VerificationReport) -> None:
    table = Table(title="Proof Record", show_header=True, header_style="bold magenta")
    table.add_column("Field", style="cyan", width=20)
    table.add_column("Value", style="white")
    table.add_column("Origin", width=10)

    table.add_row("Proof ID", proof.id, "")
    table.add_row("Content hash", proof.content_hash, _origin_label(proof.hash_origin))
    table.add_row("Storage", proof.storage_reference.value, _origin_label(proof.storage_reference.origin))
    table.add_row("Anchor", proof.anchor_reference.value, _origin_label(proof.anchor_reference.origin))
    console.print(table)

    style = STATUS_STYLES.get(report.verification_status.value, "white")
    body = (
        f"Status: [{style}]{report.verification_status.value}[/{style}]\n"
        f"Trust score: {report.trust_score}/100\n"
        f"Moderation: {report.moderation_action.value}"
    )
    if report.caveats:
        body += "\n\n[bold]Caveats[/bold]\n" + "\n".join(f"- {c}" for c in report.caveats)
    console.print(Panel(body, title="Verification Report", border_style="green"))


@app.command()
def status() -> None:
    """Display gateway configuration, queue and proof store status."""
    logger.info("Displaying pipeline status")
    pipeline = _pipeline()
    info = asyncio.run(pipeline.get_status())

    table = Table(title="Capability Gateways", show_header=True, header_style="bold magenta")
    table.add_column("Capability", style="cyan", width=20)
    table.add_column("Status", width=15)
    table.add_column("Endpoint", style="yellow")

    for gateway in info["gateways"]:
        if gateway["quota_exceeded"]:
            state = "[red]⚠ Quota[/red]"
        elif gateway["configured"]:
            state = "[green]✓ Configured[/green]"
        else:
            state = "[yellow]○ Mock mode[/yellow]"
        table.add_row(gateway["capability"], state, gateway["endpoint"] or "-")
    console.print(table)

    queue = info["queue"]
    proofs = info["proofs"]
    console.print(f"Offline queue: {queue['pending']} pending ({queue['path']})")
    console.print(f"Proof store: {proofs['total']} records {proofs['by_status']}")


@app.command()
def submit(
    path: Path = typer.Argument(..., exists=True, dir_okay=False, readable=True, help="Evidence file"),
    description: Optional[str] = typer.Option(None, "--description", "-d", help="What the evidence shows"),
    location: Optional[str] = typer.Option(None, "--location", "-l", help="Where it was captured"),
    captured_at: Optional[datetime] = typer.Option(None, "--captured-at", help="When it was captured"),
    submitter: Optional[str] = typer.Option(None, "--submitter", "-s", help="Submitter account"),
    submission_id: Optional[str] = typer.Option(None, "--id", help="Reuse a submission id"),
    offline: bool = typer.Option(False, "--offline", help="Queue instead of running now"),
) -> None:
    """Submit an evidence file to the pipeline."""
    mime_type, _ = mimetypes.guess_type(path.name)
    fields = {
        "reference_path": str(path.resolve()),
        "file_name": path.name,
        "mime_type": mime_type,
        "submitter": submitter,
        "enrichment": Enrichment(
            description=description,
            location=location,
            captured_at=captured_at,
            capture_method="upload",
        ),
    }
    if submission_id:
        fields["id"] = submission_id
    submission = Submission(**fields)

    pipeline = _pipeline(online=not offline)
    logger.info(f"Submitting {path.name} as {submission.id}")

    try:
        result = asyncio.run(pipeline.accept(submission))
    except PolicyViolationError as e:
        console.print(f"\n[red]✗[/red] Rejected: {e}")
        raise typer.Exit(2)
    except SubmissionDeferredError as e:
        console.print(f"\n[yellow]⏸[/yellow] {e}")
        return
    except QueuePersistenceError as e:
        console.print(f"\n[red]✗[/red] Could not queue submission: {e}")
        raise typer.Exit(1)

    if isinstance(result, tuple):
        _print_result(*result)
    else:
        console.print(
            f"[yellow]Queued[/yellow] {result.submission_id} "
            f"at position {result.position} (sequence {result.sequence})"
        )


@app.command()
def queue() -> None:
    """List submissions waiting in the offline queue."""
    pipeline = _pipeline()
    entries = pipeline.offline_queue.entries()
    if not entries:
        console.print("[green]Offline queue is empty[/green]")
        return

    table = Table(title="Offline Queue", show_header=True, header_style="bold magenta")
    table.add_column("#", width=4)
    table.add_column("Submission", style="cyan")
    table.add_column("File")
    table.add_column("Enqueued", style="yellow")
    table.add_column("Attempts", width=8)
    table.add_column("Last error", style="red")

    for entry in entries:
        table.add_row(
            str(entry.sequence),
            entry.submission.id,
            entry.submission.file_name,
            entry.enqueued_at.strftime("%Y-%m-%d %H:%M:%S"),
            str(entry.attempts),
            entry.last_error or "",
        )
    console.print(table)


@app.command()
def drain() -> None:
    """Process queued submissions in order."""
    pipeline = _pipeline()
    pending = pipeline.offline_queue.pending()
    if pending == 0:
        console.print("[green]Nothing to drain[/green]")
        return

    try:
        outcomes = asyncio.run(pipeline.drain())
    except QueuePersistenceError as e:
        console.print(f"[red]✗[/red] Queue unavailable: {e}")
        raise typer.Exit(1)

    for outcome in outcomes:
        marker = "[green]✓[/green]" if outcome.status.value == "completed" else "[red]✗[/red]"
        detail = outcome.report.verification_status.value if outcome.report else outcome.error
        console.print(f"{marker} {outcome.submission_id}: {outcome.status.value} ({detail})")

    remaining = pipeline.offline_queue.pending()
    console.print(f"\nDrained {len(outcomes)} of {pending}; {remaining} remaining")


@app.command()
def version() -> None:
    """Display version information."""
    console.print("[bold]Evidence Verification Pipeline[/bold]")
    console.print(f"Version: {__version__}")


if __name__ == "__main__":
    app()
