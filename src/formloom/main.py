from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Optional

import typer
import uvicorn

from formloom.config import settings
from formloom.data.detector import FieldDetector
from formloom.data.parser import TabularParser
from formloom.exceptions import DataSourceError

cli = typer.Typer(help="Formloom CLI (spreadsheet import pipeline)")


def _configure_logging() -> None:
    logging.basicConfig(level=getattr(logging, settings.logging.level.upper(), logging.INFO))


@cli.command()
def version() -> None:
    """Print runtime version."""
    typer.echo(f"Formloom {settings.app.version}")


@cli.command()
def serve(
    host: str = typer.Option("127.0.0.1", help="Host to bind"),
    port: int = typer.Option(8000, help="Port to bind"),
    reload: bool = typer.Option(False, help="Enable autoreload for local development"),
) -> None:
    """Run the Formloom API server."""
    uvicorn.run(
        "formloom.api.main:app",
        host=host,
        port=port,
        reload=reload,
        app_dir="src",
    )


@cli.command()
def analyze(
    file: Path = typer.Argument(..., exists=True, dir_okay=False, help="Excel or CSV file to inspect"),
    sample_size: Optional[int] = typer.Option(None, help="Rows inspected for type detection"),
) -> None:
    """Parse a spreadsheet and print the detected form fields as JSON."""
    _configure_logging()
    try:
        table = TabularParser.parse(file.read_bytes(), file.name)
    except DataSourceError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1)

    detection = FieldDetector.detect(
        table.columns,
        table.rows,
        sample_size=sample_size or settings.imports.detection_sample_size,
    )
    report = {
        "suggested_name": FieldDetector.suggest_form_name(file.name, table.columns),
        **table.to_dict(),
        "sample_size": detection.sample_size,
        "fields": [f.to_dict() for f in detection.fields],
        "warnings": detection.warnings,
    }
    typer.echo(json.dumps(report, ensure_ascii=False, indent=2))


@cli.command("prune-jobs")
def prune_jobs(
    older_than_days: Optional[int] = typer.Option(None, help="Retention window; defaults to imports.job_retention_days"),
) -> None:
    """Delete finished import jobs older than the retention window."""
    _configure_logging()
    from formloom.api.deps import get_record_store
    from formloom.store.repositories import ImportJobRepository

    days = settings.imports.job_retention_days if older_than_days is None else older_than_days
    deleted = ImportJobRepository(get_record_store()).delete_old_jobs(older_than_days=days)
    typer.echo(f"Deleted {deleted} import jobs older than {days} days")


if __name__ == "__main__":
    cli()
