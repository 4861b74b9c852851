"""
Notifications CLI commands.

One-shot, pull-based access to the signed-in user's notifications:
list them, open (consume) one, or mark all read.
"""

import asyncio
import json
import sys
from typing import Any, Awaitable, Callable, Optional, Tuple

import click

from fieldlink.api_client import (
    ApiError,
    AuthenticationError,
    ConnectionError as PortalConnectionError,
    PortalApiClient,
)
from fieldlink.config import PortalConfig
from fieldlink.notifications import NotificationEngine, NotificationSnapshot, time_ago
from fieldlink.session import Principal


EngineAction = Callable[[NotificationEngine], Awaitable[Any]]


async def _with_engine(config: PortalConfig, action: EngineAction) -> Tuple[bool, Any]:
    """
    Sign in, pull the snapshot and run ``action`` against the engine.

    Returns:
        (initial pull succeeded, action result)
    """
    async with PortalApiClient(
        api_base_url=config.api_base_url,
        access_token=config.access_token,
    ) as api_client:
        user = await api_client.get_current_user()
        principal = Principal.from_user_payload(user)
        engine = NotificationEngine(api_client, limit=config.notification_limit)
        loaded = await engine.start(principal)
        result = await action(engine)
        engine.reset()
        return loaded, result


def _run(ctx: click.Context, action: EngineAction) -> Tuple[bool, Any]:
    """Run an engine action, mapping failures to error output and exit codes."""
    config = PortalConfig()
    if not config.is_authenticated:
        click.echo(
            click.style("Error: ", fg="red", bold=True)
            + "No access token configured."
        )
        ctx.exit(1)

    try:
        return asyncio.run(_with_engine(config, action))
    except PortalConnectionError as e:
        click.echo(
            click.style("Error: ", fg="red", bold=True)
            + f"Connection failed: {e}"
        )
        sys.exit(2)
    except AuthenticationError as e:
        click.echo(
            click.style("Error: ", fg="red", bold=True)
            + f"Authentication failed: {e}"
        )
        sys.exit(2)
    except ApiError as e:
        click.echo(click.style("Error: ", fg="red", bold=True) + f"{e}")
        sys.exit(2)
    except ValueError as e:
        click.echo(
            click.style("Error: ", fg="red", bold=True)
            + f"Unexpected user record: {e}"
        )
        sys.exit(2)


def _print_snapshot(snapshot: NotificationSnapshot) -> None:
    if not snapshot.notifications:
        click.echo("No notifications.")
        return

    click.echo(f"Notifications ({snapshot.unread_count} unread):")
    for n in snapshot.notifications:
        when = time_ago(n.created_at) if n.created_at else "-"
        click.echo(f"  {n.id}  [{n.type or 'notification'}] {n.subject}  ({when})")
        if n.message:
            click.echo(f"      {n.message}")


# ============================================================================
# Notifications Command Group
# ============================================================================


@click.group()
@click.pass_context
def notifications(ctx: click.Context) -> None:
    """List, open and mark notifications read."""
    ctx.ensure_object(dict)


@notifications.command("list")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def list_notifications(ctx: click.Context, as_json: bool) -> None:
    """
    List the most recent notifications.

    Example:

        fieldlink notifications list
    """
    async def action(engine: NotificationEngine) -> NotificationSnapshot:
        return engine.snapshot()

    loaded, snapshot = _run(ctx, action)
    if not loaded:
        click.echo(
            click.style("Warning: ", fg="yellow")
            + "Could not fetch notifications, try again shortly."
        )
        ctx.exit(2)

    if as_json:
        data = {
            "unread_count": snapshot.unread_count,
            "notifications": [
                n.model_dump(mode="json") for n in snapshot.notifications
            ],
        }
        click.echo(json.dumps(data, indent=2))
        return

    _print_snapshot(snapshot)


@notifications.command("open")
@click.argument("notification_id")
@click.pass_context
def open_notification(ctx: click.Context, notification_id: str) -> None:
    """
    Open a notification.

    Opening consumes the notification: it is deleted on the server. The
    page the notification points to is printed.

    Example:

        fieldlink notifications open 65f0c2e4a1b2c3d4e5f60718
    """
    async def action(engine: NotificationEngine) -> Tuple[Optional[str], bool, bool]:
        held = engine.get(notification_id) is not None
        route = await engine.open(notification_id)
        return route, held, engine.get(notification_id) is None

    _, (route, held, removed) = _run(ctx, action)

    if not held:
        click.echo(
            click.style("Note: ", fg="yellow")
            + f"Notification {notification_id} is not among the recent notifications."
        )
    elif removed:
        click.echo(click.style("Notification opened.", fg="green"))
    else:
        click.echo(
            click.style("Warning: ", fg="yellow")
            + "The notification could not be deleted on the server."
        )
    if route:
        click.echo(f"  Go to: {route}")


@notifications.command("read-all")
@click.pass_context
def read_all(ctx: click.Context) -> None:
    """
    Mark all notifications as read.

    Example:

        fieldlink notifications read-all
    """
    async def action(engine: NotificationEngine) -> Tuple[bool, NotificationSnapshot]:
        ok = await engine.mark_all_read()
        return ok, engine.snapshot()

    _, (ok, snapshot) = _run(ctx, action)

    if not ok:
        click.echo(
            click.style("Error: ", fg="red", bold=True)
            + "Failed to mark all notifications as read."
        )
        ctx.exit(2)

    click.echo(click.style("All notifications marked as read.", fg="green"))
    _print_snapshot(snapshot)
