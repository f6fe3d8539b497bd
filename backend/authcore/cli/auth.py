"""Flask CLI commands for auth maintenance: seeding, sweeps and statistics."""

from __future__ import annotations

import json
import logging

import click
from flask.cli import with_appcontext

from authcore.container import get_container
from authcore.core.extensions import db
from authcore.schemas.stats import (
    LockoutStatsSchema,
    SessionStatsSchema,
    TokenStatisticsSchema,
)
from authcore.seeds import roles as role_seeds

LOGGER = logging.getLogger(__name__)


def _configure_logging(verbose: bool) -> None:
    """Raise logging verbosity for the auth commands when requested."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.getLogger(role_seeds.__name__).setLevel(level)
    LOGGER.setLevel(level)


def _echo_summary(summary: dict[str, dict[str, int]]) -> None:
    """Pretty-print a tabular summary of seed results."""
    click.echo("Seed summary:")
    if not summary:
        click.echo("  (no changes)")
        return
    width = max(len(name) for name in summary)
    for table, counters in sorted(summary.items()):
        created = counters.get("created", 0)
        existing = counters.get("existing", 0)
        click.echo(f"  {table.ljust(width)}  created={created:>2}  existing={existing:>2}")


@click.group("auth")
@click.option("--verbose", is_flag=True, help="Enable verbose logging.")
@click.pass_context
def auth_cli(ctx: click.Context, verbose: bool) -> None:
    """Authentication maintenance commands."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    _configure_logging(verbose)


@auth_cli.command("seed-roles")
@click.pass_context
@with_appcontext
def seed_roles_command(ctx: click.Context) -> None:
    """Create the default roles and permissions (idempotent)."""
    verbose = bool(ctx.obj.get("verbose", False))
    try:
        summary = role_seeds.seed_roles(db, verbose=verbose)
    except Exception as exc:  # pragma: no cover - CLI safeguard
        raise click.ClickException(f"Seeding failed: {exc}") from exc
    _echo_summary(summary)


@auth_cli.command("cleanup")
@with_appcontext
def cleanup_command() -> None:
    """Run the session, lockout and verification-token sweeps once."""
    container = get_container()
    sessions = container.session_store.cleanup_expired_sessions()
    lockouts = container.lockout.cleanup_expired()
    tokens = container.verification.cleanup_expired_tokens()
    LOGGER.info(
        "Cleanup removed %d sessions, %d lockouts, %d tokens", sessions, lockouts, tokens
    )
    click.echo(f"sessions={sessions} lockouts={lockouts} tokens={tokens}")


@auth_cli.command("stats")
@with_appcontext
def stats_command() -> None:
    """Print session, lockout and verification-token statistics as JSON."""
    container = get_container()
    payload = {
        "sessions": SessionStatsSchema().dump(container.sessions.get_stats()),
        "lockout": LockoutStatsSchema().dump(container.lockout.get_stats()),
        "tokens": TokenStatisticsSchema().dump(container.verification.get_token_statistics()),
    }
    click.echo(json.dumps(payload, indent=2, sort_keys=True))


@auth_cli.command("audit-recent")
@click.option("--limit", default=20, show_default=True, type=click.IntRange(1, 500))
@click.option("--action", default=None, help="Only show events with this action.")
@with_appcontext
def audit_recent_command(limit: int, action: str | None) -> None:
    """List the newest audit events."""
    filters = {"action": action} if action else {}
    events = get_container().audit.recent(limit=limit, **filters)
    if not events:
        click.echo("(no audit events)")
        return
    for event in events:
        status = "ok" if event.success else "fail"
        who = event.user_id if event.user_id is not None else "-"
        line = f"{event.created_at.isoformat()}  {event.action:<14} {status:<4} user={who}"
        if event.error_message:
            line += f"  {event.error_message}"
        click.echo(line)
