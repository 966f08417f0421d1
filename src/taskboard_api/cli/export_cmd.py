"""Export CLI commands for bulk task export and export retention."""

import asyncio
from pathlib import Path

import typer

from taskboard_api.services.export_cleanup_service import format_bytes

export_app = typer.Typer()


def _build_filters(
    status_filter: str | None,
    priority: str | None,
    search: str | None,
    date_from: str | None,
    date_to: str | None,
) -> dict:
    candidates = {
        "status": status_filter,
        "priority": priority,
        "search": search,
        "dateFrom": date_from,
        "dateTo": date_to,
    }
    return {key: value for key, value in candidates.items() if value}


@export_app.command("run")
def export_run(
    output_format: str = typer.Option("csv", "--format", help="Output format (csv, json)"),
    status_filter: str | None = typer.Option(None, "--status", help="Filter by task status"),
    priority: str | None = typer.Option(None, "--priority", help="Filter by task priority"),
    search: str | None = typer.Option(None, "--search", help="Search title and description"),
    date_from: str | None = typer.Option(None, "--date-from", help="Created on or after (ISO date)"),
    date_to: str | None = typer.Option(None, "--date-to", help="Created on or before (ISO date)"),
    output: Path | None = typer.Option(None, "--output", help="Output directory"),
) -> None:
    """Export tasks to a file and wait for the export to finish."""
    filters = _build_filters(status_filter, priority, search, date_from, date_to)
    asyncio.run(_export_run(output_format, filters, output))


async def _export_run(output_format: str, filters: dict, output_dir: Path | None) -> None:
    """Async implementation of export."""
    from taskboard_api.core.config import get_settings
    from taskboard_api.core.database import dispose_engine, get_session_factory, init_engine
    from taskboard_api.services.export_service import create_export_service

    settings = get_settings()
    if output_dir is not None:
        settings.export_dir = str(output_dir)
    init_engine(settings.database_url, schema=settings.database_schema)
    service = create_export_service(settings, get_session_factory())

    try:
        try:
            result = await service.request_export(output_format, filters)
        except ValueError as exc:
            typer.echo(f"Error: {exc}", err=True)
            raise typer.Exit(code=1) from exc

        job = result.job
        typer.echo(f"Export job {'reused' if result.cached else 'created'}: {job.id}")
        typer.echo(f"Format: {output_format}")
        if not result.cached:
            typer.echo("Processing...")
            job = await service.wait_for(job.id)

        if job is None:
            typer.echo("Export job disappeared while processing", err=True)
            raise typer.Exit(code=1)

        typer.echo(f"\nExport {job.status}:")
        typer.echo(f"  Records:    {job.record_count}")
        typer.echo(f"  File size:  {format_bytes(job.file_size_bytes or 0)}")
        typer.echo(f"  File path:  {job.file_path or 'N/A'}")
        if job.error:
            typer.echo(f"  Error:      {job.error}")
            raise typer.Exit(code=1)
    finally:
        await service.aclose()
        await dispose_engine()


@export_app.command("cleanup")
def export_cleanup(
    retention_days: int | None = typer.Option(None, "--retention-days", min=0, help="Days to retain exports"),
    dry_run: bool = typer.Option(False, "--dry-run", help="Report what would be deleted without deleting"),
) -> None:
    """Delete finished exports older than the retention window."""
    asyncio.run(_export_cleanup(retention_days, dry_run))


async def _export_cleanup(retention_days: int | None, dry_run: bool) -> None:
    from taskboard_api.core.config import get_settings
    from taskboard_api.core.database import dispose_engine, get_session_factory, init_engine
    from taskboard_api.services.export_cleanup_service import run_export_cleanup

    settings = get_settings()
    days = settings.export_retention_days if retention_days is None else retention_days
    init_engine(settings.database_url, schema=settings.database_schema)

    try:
        async with get_session_factory()() as session:
            report = await run_export_cleanup(
                session,
                export_dir=Path(settings.export_dir),
                retention_days=days,
                dry_run=dry_run,
            )
    finally:
        await dispose_engine()

    typer.echo(f"\nExport cleanup {'(dry run) ' if dry_run else ''}complete:")
    typer.echo(f"  Records processed:  {report.records_processed}")
    typer.echo(f"  Files deleted:      {report.files_deleted}")
    typer.echo(f"  Space reclaimed:    {format_bytes(report.bytes_reclaimed)}")
    typer.echo(f"  Empty dirs removed: {report.directories_removed}")
    typer.echo(f"  Errors:             {len(report.errors)}")
    for error in report.errors:
        typer.echo(f"    - {error}")


@export_app.command("stats")
def export_stats(
    retention_days: int | None = typer.Option(None, "--retention-days", min=0, help="Days to retain exports"),
) -> None:
    """Show how many exports a cleanup would remove."""
    asyncio.run(_export_stats(retention_days))


async def _export_stats(retention_days: int | None) -> None:
    from taskboard_api.core.config import get_settings
    from taskboard_api.core.database import dispose_engine, get_session_factory, init_engine
    from taskboard_api.services.export_cleanup_service import get_cleanup_stats

    settings = get_settings()
    days = settings.export_retention_days if retention_days is None else retention_days
    init_engine(settings.database_url, schema=settings.database_schema)

    try:
        async with get_session_factory()() as session:
            stats = await get_cleanup_stats(session, retention_days=days)
    finally:
        await dispose_engine()

    typer.echo(f"Total exports:        {stats.total_exports}")
    typer.echo(f"Older than {days} days:  {stats.eligible_exports}")
    typer.echo(f"Reclaimable space:    {format_bytes(stats.estimated_bytes_reclaimable)}")
    typer.echo(f"Oldest export:        {stats.oldest_export or 'N/A'}")
    typer.echo(f"Newest export:        {stats.newest_export or 'N/A'}")


@export_app.command("list")
def export_list(
    limit: int = typer.Option(20, "--limit", min=1, help="Maximum number of jobs to show"),
) -> None:
    """List recent export jobs, newest first."""
    asyncio.run(_export_list(limit))


async def _export_list(limit: int) -> None:
    from taskboard_api.core.config import get_settings
    from taskboard_api.core.database import dispose_engine, get_session_factory, init_engine
    from taskboard_api.services.export_service import create_export_service, iter_job_pages

    settings = get_settings()
    init_engine(settings.database_url, schema=settings.database_schema)
    service = create_export_service(settings, get_session_factory())

    try:
        shown = 0
        async for job in iter_job_pages(service):
            typer.echo(f"{job.id}  {job.created_at:%Y-%m-%d %H:%M}  {job.format:<4}  {job.status:<10}  {job.record_count}")
            shown += 1
            if shown >= limit:
                break
        if shown == 0:
            typer.echo("No export jobs found")
    finally:
        await service.aclose()
        await dispose_engine()
