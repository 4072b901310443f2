#!/usr/bin/env python3
"""
Run Import CLI

Parse run workbooks, preview their audio pick sequence, and import them
into the database.

Usage:
    # Parse only, print a summary (add --json for the full parse result)
    python scripts/run_import_cli.py parse --file run.xlsx

    # Announcement sequence for a workbook or an imported run
    python scripts/run_import_cli.py audio --file run.xlsx
    python scripts/run_import_cli.py audio --run-id 12

    # Import for a company, then show expiring items
    python scripts/run_import_cli.py import --file run.xlsx --company-id 1 --timezone America/New_York
    python scripts/run_import_cli.py expiring --company-id 1 --run-id 12
"""

import json
import sys
from pathlib import Path

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

import logging
from typing import Optional

import click
from dotenv import load_dotenv

# Load environment variables before settings are read
load_dotenv()

from api.config import settings
from backend.database import SessionLocal, engine
from backend.models.schema import Base
from services.persistence_service import (
    RunImportError, RunImportService, build_run_expiring_items, load_pending_pick_entries
)
from services.pick_sequencer import PickSequencer, pending_entries_from_parsed_run
from services.run_import_service import parse_run_workbook
from services.workbook_grid import OpenpyxlWorkbookGrid

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL),
    format=settings.LOG_FORMAT,
    handlers=[
        logging.FileHandler(settings.LOG_FILE),
        logging.StreamHandler(sys.stdout)
    ]
)

logger = logging.getLogger('run_import_cli')


def load_workbook(file_path: str):
    """Validate and parse a workbook file."""
    path = Path(file_path)
    if path.suffix.lower() not in settings.ALLOWED_EXTENSIONS:
        raise click.BadParameter(
            f"Unsupported file type '{path.suffix}', expected one of {', '.join(settings.ALLOWED_EXTENSIONS)}"
        )
    size_mb = path.stat().st_size / (1024 * 1024)
    if size_mb > settings.MAX_FILE_SIZE_MB:
        raise click.BadParameter(f"File is {size_mb:.1f} MB, limit is {settings.MAX_FILE_SIZE_MB} MB")

    grid = OpenpyxlWorkbookGrid.from_path(str(path))
    return parse_run_workbook(grid, filename=path.name)


@click.group()
def cli():
    """Run workbook import tools"""


@cli.command('parse')
@click.option('--file', '-f', required=True, type=click.Path(exists=True),
              help='Path to run workbook')
@click.option('--json', 'as_json', is_flag=True, help='Print the full parse result as JSON')
def parse_cmd(file: str, as_json: bool):
    """Parse a run workbook without touching the database."""
    try:
        workbook = load_workbook(file)
    except Exception as e:
        logger.error(f"Parse failed: {e}", exc_info=True)
        click.echo(f"\n✗ Parse failed: {e}", err=True)
        sys.exit(1)

    if as_json:
        click.echo(workbook.model_dump_json(indent=2))
        return

    run = workbook.run
    click.echo(f"\n📁 {file}")
    click.echo(f"Run date: {run.run_date if run and run.run_date else 'unknown'}")
    click.echo(f"Pick entries: {len(run.pick_entries) if run else 0}")
    click.echo(f"Machines: {len(workbook.machines)}")
    click.echo(f"Coils: {len(workbook.coils)}")
    click.echo(f"SKUs: {len(workbook.skus)}")

    if workbook.skipped_sheets:
        click.echo(f"\n⚠️  Skipped:")
        for issue in workbook.skipped_sheets:
            row = f" row {issue.row}" if issue.row else ''
            click.echo(f"  {issue.sheet_name}{row}: {issue.reason}")


@cli.command('audio')
@click.option('--file', '-f', type=click.Path(exists=True), help='Path to run workbook')
@click.option('--run-id', '-r', type=int, help='Imported run ID')
@click.option('--json', 'as_json', is_flag=True, help='Print commands as JSON')
def audio_cmd(file: Optional[str], run_id: Optional[int], as_json: bool):
    """Print the audio pick sequence for a workbook or an imported run."""
    if bool(file) == bool(run_id):
        raise click.UsageError("Pass exactly one of --file or --run-id")

    try:
        if file:
            workbook = load_workbook(file)
            entries = pending_entries_from_parsed_run(workbook.run) if workbook.run else []
        else:
            session = SessionLocal()
            try:
                entries = load_pending_pick_entries(session, run_id)
            finally:
                session.close()
    except click.ClickException:
        raise
    except Exception as e:
        logger.error(f"Audio sequence failed: {e}", exc_info=True)
        click.echo(f"\n✗ Audio sequence failed: {e}", err=True)
        sys.exit(1)

    commands = PickSequencer().build_audio_commands(entries)
    if as_json:
        click.echo(json.dumps([command.model_dump(by_alias=True) for command in commands], indent=2))
        return

    for command in commands:
        indent = {'location': '', 'machine': '  '}.get(command.type.value, '    ')
        click.echo(f"{indent}{command.audio_command}")


@cli.command('import')
@click.option('--file', '-f', required=True, type=click.Path(exists=True),
              help='Path to run workbook')
@click.option('--company-id', '-c', required=True, type=int, help='Owning company ID')
@click.option('--timezone', '-t', 'time_zone', help="Scheduling timezone (defaults to the company's)")
def import_cmd(file: str, company_id: int, time_zone: Optional[str]):
    """Import a run workbook for a company."""
    click.echo(f"\n📁 Importing: {file}")

    session = SessionLocal()
    try:
        Base.metadata.create_all(engine)
        workbook = load_workbook(file)
        run = RunImportService(session).import_workbook(workbook, company_id, time_zone)
        session.commit()

        click.echo(f"\n✓ Import successful!")
        click.echo(f"Run ID: {run.id}")
        click.echo(f"Scheduled for: {run.scheduled_for} UTC")
        click.echo(f"Pick entries: {len(run.pick_entries)}")
        if workbook.skipped_sheets:
            click.echo(f"Skipped sheets/rows: {len(workbook.skipped_sheets)}")

    except RunImportError as e:
        session.rollback()
        click.echo(f"\n✗ Import failed: {e}", err=True)
        sys.exit(1)
    except Exception as e:
        session.rollback()
        logger.error(f"Import failed: {e}", exc_info=True)
        click.echo(f"\n✗ Import failed: {e}", err=True)
        sys.exit(1)
    finally:
        session.close()


@cli.command('expiring')
@click.option('--company-id', '-c', required=True, type=int, help='Owning company ID')
@click.option('--run-id', '-r', required=True, type=int, help='Imported run ID')
def expiring_cmd(company_id: int, run_id: int):
    """Show items expiring around an imported run."""
    session = SessionLocal()
    try:
        report = build_run_expiring_items(session, company_id, run_id)
    finally:
        session.close()

    if report is None:
        click.echo(f"\n✗ Run {run_id} not found for company {company_id}", err=True)
        sys.exit(1)

    click.echo(f"\nExpiring items for run #{run_id}: {report.warning_count}")
    for section in report.sections:
        click.echo(f"\n{section.expiry_date} (day {section.day_offset:+d})")
        for item in section.items:
            click.echo(f"  {item.quantity} x {item.sku_name} - machine {item.machine_code}, coil {item.coil_code}")


if __name__ == '__main__':
    cli()
