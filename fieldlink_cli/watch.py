"""
Watch CLI command.

Follows the signed-in user's notifications in real time.
"""

import sys
from typing import Set

import click

from fieldlink.config import PortalConfig
from fieldlink.main import run_watcher
from fieldlink.notifications import NotificationSnapshot, time_ago


def _snapshot_printer():
    """Build a snapshot callback that prints only newly seen notifications."""
    seen: Set[str] = set()

    def on_snapshot(snapshot: NotificationSnapshot) -> None:
        for notification in reversed(snapshot.notifications):
            if notification.id in seen:
                continue
            seen.add(notification.id)
            when = time_ago(notification.created_at) if notification.created_at else ""
            click.echo(
                click.style(f"[{notification.type or 'notification'}] ", fg="cyan")
                + f"{notification.subject}: {notification.message}"
                + (click.style(f"  ({when})", fg="bright_black") if when else "")
            )
        click.echo(click.style(f"Unread: {snapshot.unread_count}", bold=True))

    return on_snapshot


@click.command()
@click.pass_context
def watch(ctx: click.Context) -> None:
    """
    Follow notifications in real time.

    Pulls the latest notifications, then prints every notification pushed
    by the server until stopped with Ctrl+C or SIGTERM.

    Example:

        fieldlink watch
    """
    config = PortalConfig()

    if not config.is_authenticated:
        click.echo(
            click.style("Error: ", fg="red", bold=True)
            + "No access token configured."
        )
        click.echo("Run 'fieldlink config set access_token TOKEN' first.")
        ctx.exit(1)

    click.echo(f"Watching notifications on {config.api_base_url}")
    click.echo("Press Ctrl+C to stop")
    click.echo()

    exit_code = run_watcher(on_snapshot=_snapshot_printer())
    sys.exit(exit_code)
