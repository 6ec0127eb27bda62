# Overview: Flask CLI command groups for bootstrap, schedule inspection, and ledger maintenance.

# backend/ontrack/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init-db
#   Create all tables that do not exist yet (idempotent).
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Shift schedules:
# - python -m flask shifts show [--supervisor-id 1] [--date 2026-03-02]
#   Print the effective schedule for a day and the layer each field came from.
# - python -m flask shifts set-global --am 08:00-12:00 --pm 13:00-17:00 [--ot 17:00-18:00]
#   Replace the institution-wide schedule (overtime cleared when omitted).
#
# Ledger maintenance:
# - python -m flask ledger rebuild [--student 2024-0001] [--since 2026-03-01] [--until 2026-03-31] [--all]
#   Re-freeze sessions whose ledger row is missing (--all recomputes every session).

import click
from flask.cli import with_appcontext

from .errors import AttendanceError
from .extensions import db
from .services import ledger_service, punch_service, shift_config_service
from .services.schedule_service import build_day_schedule
from .time_utils import civil_date, parse_iso_date, utcnow


def _parse_window(value: str | None, label: str):
    if not value:
        return None, None
    parts = value.split("-")
    if len(parts) != 2:
        raise click.BadParameter(f"{label} must look like HH:MM-HH:MM")
    return parts[0].strip(), parts[1].strip()


def _parse_date_option(value: str | None, label: str):
    try:
        return parse_iso_date(value)
    except ValueError:
        raise click.BadParameter(f"{label} must be YYYY-MM-DD")


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables (existing tables are left alone)."""
    db.create_all()
    click.echo("PASS Database tables created")


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def reset_db(yes):
    """
    DANGER: Drop all tables and recreate schema.

    This will DELETE ALL DATA!
    """
    if not yes:
        click.confirm("WARN This will DELETE ALL DATA. Are you sure?", abort=True)

    click.echo("DELETE  Dropping all tables...")
    db.drop_all()
    click.echo("BUILD Creating all tables...")
    db.create_all()
    click.echo("PASS Database reset complete")


@click.group('shifts')
def shifts_group():
    """Shift schedule inspection and configuration."""


@shifts_group.command('show')
@click.option('--supervisor-id', type=int, default=None, help='Supervisor whose schedule to resolve')
@click.option('--date', 'date_str', default=None, help='Civil date (YYYY-MM-DD), defaults to today')
@with_appcontext
def show_shifts(supervisor_id, date_str):
    """Print the effective schedule for a day."""
    offset = shift_config_service.utc_offset_minutes()
    day = _parse_date_option(date_str, "--date") or civil_date(utcnow(), offset)

    try:
        resolved = shift_config_service.resolve_shift_config(supervisor_id, day)
        schedule = build_day_schedule(day, resolved.config, utc_offset_minutes=offset)
    except AttendanceError as e:
        raise click.ClickException(str(e))

    click.echo(f"Effective schedule for {day.isoformat()} (supervisor: {supervisor_id or 'global'})")
    config = resolved.config.to_dict()
    for name, value in config.items():
        click.echo(f"  {name:<7} {value:<6} [{resolved.sources.get(name)}]")
    for slot in ("am", "pm", "ot"):
        start, end = schedule.window(slot)
        click.echo(f"  {slot}: {start.isoformat()}Z -> {end.isoformat()}Z")


@shifts_group.command('set-global')
@click.option('--am', required=True, help='Morning window HH:MM-HH:MM')
@click.option('--pm', required=True, help='Afternoon window HH:MM-HH:MM')
@click.option('--ot', default=None, help='Overtime window HH:MM-HH:MM')
@with_appcontext
def set_global_shifts(am, pm, ot):
    """Replace the institution-wide shift schedule."""
    am_in, am_out = _parse_window(am, "--am")
    pm_in, pm_out = _parse_window(pm, "--pm")
    ot_in, ot_out = _parse_window(ot, "--ot")

    try:
        rows = shift_config_service.set_shift_schedule(
            supervisor_id=None,
            am_in=am_in, am_out=am_out,
            pm_in=pm_in, pm_out=pm_out,
            ot_in=ot_in, ot_out=ot_out,
        )
    except AttendanceError as e:
        raise click.ClickException(str(e))

    for row in rows:
        click.echo(f"PASS {row.slot}: {row.official_start or '-'} -> {row.official_end or '-'}")


@click.group('ledger')
def ledger_group():
    """Hours ledger maintenance."""


@ledger_group.command('rebuild')
@click.option('--student', 'subject', default=None, help='Student idnumber or id')
@click.option('--since', default=None, help='First attendance date (YYYY-MM-DD)')
@click.option('--until', default=None, help='Last attendance date (YYYY-MM-DD)')
@click.option('--all', 'recompute_all', is_flag=True, help='Recompute rows that already exist')
@with_appcontext
def rebuild_ledger(subject, since, until, recompute_all):
    """Re-freeze ledger rows from stored punches."""
    student_id = None
    if subject:
        try:
            student_id = punch_service.resolve_student(subject).id
        except AttendanceError as e:
            raise click.ClickException(str(e))

    result = ledger_service.rebuild_ledger(
        student_id=student_id,
        since=_parse_date_option(since, "--since"),
        until=_parse_date_option(until, "--until"),
        only_missing=not recompute_all,
    )

    click.echo(
        f"PASS Processed {result['processed']} out punches: {result['frozen']} frozen, "
        f"{result['skipped']} already frozen, {result['unmatched']} without an in"
    )
    if result["failed"]:
        click.echo(f"FAIL {result['failed']} sessions failed (see log)")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(shifts_group)
    app.cli.add_command(ledger_group)
