"""
Discovery CLI Commands
======================

CLI commands for running and inspecting the resource discovery pipeline.
"""

from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import Any, Optional

import typer
from rich import print as rprint
from rich.console import Console
from rich.table import Table

from resource_discovery.core.enums import TombstoneKind
from resource_discovery.core.errors import DiscoveryError
from resource_discovery.core.geo import make_area_key
from resource_discovery.core.schema import CandidateResource, TriggerRequest
from resource_discovery.db.engine import get_session, init_db
from resource_discovery.db.repositories import ResourceRepository, TombstoneRepository
from resource_discovery.discovery.circuit_breaker import EligibilityGate
from resource_discovery.discovery.detector import DuplicateDetector
from resource_discovery.discovery.geocoder import get_geocoder
from resource_discovery.discovery.jobs import enqueue_discovery, get_job_status
from resource_discovery.discovery.orchestrator import DiscoveryOrchestrator, encode_event
from resource_discovery.discovery.providers import provider_from_settings
from resource_discovery.discovery.settings import get_default_settings

console = Console()
discover_app = typer.Typer(help="Discovery pipeline commands")


async def _run_scan(
    request: TriggerRequest,
    provider: str | None,
    overrides: dict[str, Any],
    initiator_id: str | None,
    timeout: float | None,
    as_json: bool,
) -> dict[str, Any] | None:
    settings = get_default_settings()
    search_provider = provider_from_settings(settings, provider, overrides)
    terminal: dict[str, Any] | None = None

    with get_session() as session:
        orchestrator = DiscoveryOrchestrator(
            session,
            search_provider,
            settings=settings,
            geocoder=get_geocoder(settings),
            timeout_seconds=timeout,
        )
        async for event in orchestrator.run(
            request,
            initiator_id=initiator_id,
            force_authorized=settings.is_admin(initiator_id),
        ):
            if as_json:
                typer.echo(encode_event(event), nl=False)
            elif event.get("type") == "progress":
                _display_progress(event)

            if event.get("type") != "progress":
                terminal = event

    return terminal


@discover_app.command("scan")
def scan(
    city: str = typer.Option(..., "--city", "-c", help="City to scan"),
    state: str = typer.Option(..., "--state", "-s", help="State to scan"),
    force: bool = typer.Option(False, "--force", help="Bypass the cooldown (admins only)"),
    as_user: Optional[str] = typer.Option(None, "--as-user", "-u", help="Initiator user id"),
    test: bool = typer.Option(False, "--test", help="Tag inserted resources as a test run"),
    provider: Optional[str] = typer.Option(None, "--provider", "-p", help="Search provider name"),
    input_path: Optional[Path] = typer.Option(
        None, "--input", "-i", help="JSON file of raw candidates (uses the file provider)"
    ),
    timeout: Optional[float] = typer.Option(None, "--timeout", help="Scan timeout in seconds"),
    as_json: bool = typer.Option(False, "--json", help="Stream NDJSON events to stdout"),
) -> None:
    """
    Run a discovery scan in-process and stream its progress.

    Examples:
        resource-discovery discover scan --city Sacramento --state CA
        resource-discovery discover scan -c Sacramento -s CA --input results.json --json
    """
    try:
        request = TriggerRequest(city=city, state=state, force=force, is_test=test)
    except ValueError as e:
        rprint(f"[red]Error:[/red] Invalid request: {e}")
        raise typer.Exit(1)

    overrides: dict[str, Any] = {}
    if input_path is not None:
        provider = provider or "file"
        overrides["path"] = str(input_path)

    init_db()
    try:
        terminal = asyncio.run(_run_scan(request, provider, overrides, as_user, timeout, as_json))
    except DiscoveryError as e:
        rprint(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)

    if terminal is None:
        raise typer.Exit(1)
    if not as_json:
        _display_terminal(terminal)
    if terminal.get("type") == "error":
        raise typer.Exit(1)


@discover_app.command("check")
def check(
    city: str = typer.Option(..., "--city", "-c", help="City"),
    state: str = typer.Option(..., "--state", "-s", help="State"),
) -> None:
    """
    Check whether an area is eligible for a new scan.

    Examples:
        resource-discovery discover check -c Sacramento -s CA
    """
    settings = get_default_settings()
    area_key = make_area_key(city, state)

    init_db()
    with get_session() as session:
        gate = EligibilityGate(
            session,
            cooldown=settings.eligibility.cooldown,
            release_on_failure=settings.eligibility.release_on_failure,
        )
        result = gate.check_eligibility(area_key)

    if result.should_search:
        rprint(f"[green]Eligible:[/green] '{area_key}' can be searched")
    else:
        rprint(f"[yellow]In cooldown:[/yellow] {result.reason}")
    if result.last_scan_at:
        rprint(f"  Last scan: {result.last_scan_at.isoformat()}")


@discover_app.command("events")
def events(
    city: Optional[str] = typer.Option(None, "--city", "-c", help="Filter by city"),
    state: Optional[str] = typer.Option(None, "--state", "-s", help="Filter by state"),
    limit: int = typer.Option(20, "--limit", "-n", help="Maximum number of events"),
) -> None:
    """
    List recent discovery scan events.

    Examples:
        resource-discovery discover events
        resource-discovery discover events -c Sacramento -s CA
    """
    area_key = make_area_key(city, state) if city and state else None

    init_db()
    with get_session() as session:
        gate = EligibilityGate(session)
        entries = gate.recent_events(area_key, limit)

    if not entries:
        rprint("[yellow]No discovery events recorded[/yellow]")
        return

    table = Table(title="Discovery Events")
    table.add_column("Area", style="bold")
    table.add_column("Status")
    table.add_column("Found", justify="right")
    table.add_column("Provider")
    table.add_column("Initiator")
    table.add_column("Searched At")

    for entry in entries:
        table.add_row(
            entry["area_key"],
            _status_markup(entry["status"]),
            str(entry["resources_found"]),
            entry["provider"] or "",
            entry["initiator_id"] or "",
            entry["searched_at"].strftime("%Y-%m-%d %H:%M"),
        )

    console.print(table)


@discover_app.command("block-address")
def block_address(
    address: str = typer.Argument(..., help="Street address to block"),
    reason: str = typer.Option("", "--reason", "-r", help="Why the address is blocked"),
) -> None:
    """
    Tombstone an address so discovery never re-inserts it.

    Examples:
        resource-discovery discover block-address "1500 Q St" -r "Closed permanently"
    """
    _add_tombstone(TombstoneKind.ADDRESS, address, reason)


@discover_app.command("block-source")
def block_source(
    domain: str = typer.Argument(..., help="Source domain to block"),
    reason: str = typer.Option("", "--reason", "-r", help="Why the source is blocked"),
) -> None:
    """
    Block a source domain; candidates from it or its subdomains are skipped.

    Examples:
        resource-discovery discover block-source spam-directory.com -r "Scraped listings"
    """
    _add_tombstone(TombstoneKind.SOURCE, domain, reason)


def _add_tombstone(kind: TombstoneKind, value: str, reason: str) -> None:
    if not value.strip():
        rprint("[red]Error:[/red] Value must not be empty")
        raise typer.Exit(1)

    init_db()
    with get_session() as session:
        TombstoneRepository(session).add(kind, value, reason)
        session.commit()

    rprint(f"[green]Blocked {kind.value}:[/green] {value.strip().lower()}")


@discover_app.command("duplicates")
def duplicates(
    city: str = typer.Option(..., "--city", "-c", help="City"),
    state: str = typer.Option(..., "--state", "-s", help="State"),
) -> None:
    """
    List discovered resources flagged as potential duplicates.

    Examples:
        resource-discovery discover duplicates -c Sacramento -s CA
    """
    init_db()
    with get_session() as session:
        repo = ResourceRepository(session)
        flagged = [r for r in repo.find_in_area(city, state) if r.potential_duplicate_ids]
        rows = []
        for resource in flagged:
            names = []
            for dup_id in resource.potential_duplicate_ids:
                match = repo.get_by_id(dup_id)
                names.append(match.name if match else dup_id)
            rows.append((resource, names))

    if not rows:
        rprint("[green]No flagged duplicates[/green]")
        return

    table = Table(title=f"Potential Duplicates in {city}, {state}")
    table.add_column("Resource", style="bold")
    table.add_column("Address")
    table.add_column("Status")
    table.add_column("Confidence", justify="right")
    table.add_column("May Duplicate")

    for resource, names in rows:
        table.add_row(
            resource.name,
            resource.address,
            resource.verification_status.value,
            str(resource.confidence_score) if resource.confidence_score is not None else "-",
            ", ".join(names),
        )

    console.print(table)


@discover_app.command("matches")
def matches(
    resource_id: str = typer.Argument(..., help="Resource ID to check"),
) -> None:
    """
    Re-run duplicate detection for a stored resource.

    Examples:
        resource-discovery discover matches 3f2b9c1e-...
    """
    settings = get_default_settings()

    init_db()
    with get_session() as session:
        resource = ResourceRepository(session).get_by_id(resource_id)
        if resource is None:
            rprint(f"[red]Error:[/red] Resource '{resource_id}' not found")
            raise typer.Exit(1)

        candidate = CandidateResource.model_validate(
            resource.model_dump(include=set(CandidateResource.model_fields))
        )
        detector = DuplicateDetector.from_config(session, settings.duplicates)
        found = detector.detect_duplicates(candidate, exclude_id=resource.id)

    if not found:
        rprint(f"[green]No duplicates found for {resource.name}[/green]")
        return

    table = Table(title=f"Possible Duplicates of {resource.name}")
    table.add_column("Score", justify="right")
    table.add_column("Confidence")
    table.add_column("Name", style="bold")
    table.add_column("Address")
    table.add_column("Distance", justify="right")

    for match in found:
        matched = match.matched_resource
        table.add_row(
            f"{match.score:.1f}",
            match.confidence.value,
            matched.name if matched else "-",
            matched.address if matched else "-",
            f"{match.factors.distance_meters:.0f} m",
        )

    console.print(table)


@discover_app.command("enqueue")
def enqueue(
    city: str = typer.Option(..., "--city", "-c", help="City to scan"),
    state: str = typer.Option(..., "--state", "-s", help="State to scan"),
    force: bool = typer.Option(False, "--force", help="Bypass the cooldown (admins only)"),
    as_user: Optional[str] = typer.Option(None, "--as-user", "-u", help="Initiator user id"),
    test: bool = typer.Option(False, "--test", help="Tag inserted resources as a test run"),
    provider: Optional[str] = typer.Option(None, "--provider", "-p", help="Search provider name"),
) -> None:
    """
    Enqueue a discovery scan for the background worker.

    Examples:
        resource-discovery discover enqueue -c Sacramento -s CA
    """
    try:
        job_id = asyncio.run(enqueue_discovery(city, state, force, as_user, test, provider))
    except OSError as e:
        rprint(f"\n[red]Error:[/red] Failed to enqueue job: {e}")
        rprint("\nMake sure Redis is running")
        raise typer.Exit(1)

    rprint("\n[green]Job enqueued successfully![/green]")
    rprint(f"Job ID: [bold]{job_id}[/bold]")
    rprint("\nCheck status with:")
    rprint(f"  resource-discovery discover status {job_id}")


@discover_app.command("status")
def status(
    job_id: str = typer.Argument(..., help="Job ID to check"),
) -> None:
    """
    Check the status of a queued discovery job.

    Examples:
        resource-discovery discover status abc123
    """
    try:
        result = asyncio.run(get_job_status(job_id))
    except OSError as e:
        rprint(f"[red]Error:[/red] Failed to get job status: {e}")
        rprint("\nMake sure Redis is running")
        raise typer.Exit(1)

    if result is None:
        rprint(f"[yellow]Job '{job_id}' not found[/yellow]")
        raise typer.Exit(1)

    rprint(f"\n[bold]Job: {job_id}[/bold]")
    rprint(f"  Status: {result['status']}")
    if isinstance(result.get("result"), dict):
        _display_job_result(result["result"])


@discover_app.command("worker")
def start_worker(
    burst: bool = typer.Option(False, "--burst", help="Run in burst mode (exit when queue empty)"),
) -> None:
    """
    Start the discovery worker.

    Examples:
        resource-discovery discover worker
        resource-discovery discover worker --burst
    """
    from arq import run_worker

    from resource_discovery.discovery.jobs import WorkerSettings

    rprint("[bold]Starting discovery worker...[/bold]")
    rprint("Press Ctrl+C to stop\n")
    init_db()
    run_worker(WorkerSettings, burst=burst)


def _status_markup(status: str) -> str:
    color = {
        "completed": "green",
        "no_results": "cyan",
        "in_progress": "blue",
        "cached": "yellow",
        "failed": "red",
    }.get(status, "white")
    return f"[{color}]{status}[/{color}]"


def _display_progress(event: dict[str, Any]) -> None:
    counter = ""
    if event.get("total"):
        counter = f" [dim]({event.get('current', 0)}/{event['total']})[/dim]"
    rprint(f"[blue]{event['stage']:>13}[/blue] {event['message']}{counter}")


def _display_terminal(event: dict[str, Any]) -> None:
    """Display the terminal event of a scan."""
    if event.get("status") == "cached":
        rprint(f"\n[yellow]{event['message']}[/yellow]")
        rprint(f"  {event['reason']}")
        return

    if event.get("type") == "error":
        rprint(f"\n[red]Error:[/red] {event['message']}")
        return

    rprint(f"\n[green]{event['message']}[/green]")
    summary = event.get("summary") or {}
    if summary:
        rprint("\n[bold]Statistics:[/bold]")
        rprint(f"  Search results: {summary.get('search_results', 0)}")
        rprint(f"  Inserted: {summary.get('inserted', 0)}")
        rprint(f"  Auto-approved: {summary.get('auto_approved', 0)}")
        rprint(f"  Flagged as possible duplicates: {summary.get('flagged_duplicates', 0)}")
        rprint(f"  Skipped duplicates: {summary.get('duplicate', 0)}")
        rprint(f"  Blocked: {summary.get('blocked', 0)}")
        rprint(f"  Invalid: {summary.get('invalid', 0)}")
        rprint(f"  Failed: {summary.get('failed', 0)}")

    samples = event.get("samples") or []
    if samples:
        table = Table(title="Recent Discoveries")
        table.add_column("Name", style="bold")
        table.add_column("Address")
        table.add_column("Status")
        table.add_column("Confidence", justify="right")
        for sample in samples:
            table.add_row(
                sample["name"],
                sample["address"],
                sample["verificationStatus"],
                str(sample.get("confidenceScore") or "-"),
            )
        console.print(table)


def _display_job_result(result: dict[str, Any]) -> None:
    """Display a job result dictionary."""
    rprint("\n[bold]Results:[/bold]")
    rprint(f"  Status: {_status_markup(result.get('status', 'unknown'))}")
    rprint(f"  Area: {result.get('area_key', 'N/A')}")
    if result.get("duration_seconds"):
        rprint(f"  Duration: {result['duration_seconds']:.1f}s")
    rprint(f"  Resources found: {result.get('resources_found', 0)}")
    if result.get("message"):
        rprint(f"  Message: {result['message']}")
    if result.get("summary"):
        rprint(f"  Summary: {json.dumps(result['summary'])}")
