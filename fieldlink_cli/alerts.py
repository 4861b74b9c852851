"""
Payment alerts CLI command.

Lists sites whose payment is overdue or coming due.
"""

import asyncio
import json
import sys
from datetime import datetime, timezone
from typing import Optional

import click

from fieldlink.api_client import (
    ApiError,
    AuthenticationError,
    ConnectionError as PortalConnectionError,
    PortalApiClient,
)
from fieldlink.config import PortalConfig
from fieldlink.payments import PaymentAlert, cycle_label, partition_alerts


async def _fetch_sites(api_base_url: str, access_token: str) -> list:
    """Async helper to fetch sites via API client."""
    async with PortalApiClient(
        api_base_url=api_base_url,
        access_token=access_token,
    ) as api_client:
        return await api_client.get_sites()


def _alert_dict(alert: PaymentAlert, key: str) -> dict:
    return {
        "site_id": alert.site_id,
        "name": alert.name,
        "client": alert.client_name,
        "payment_cycle": alert.cycle,
        key: alert.days,
    }


@click.command("alerts")
@click.option(
    "--window",
    type=int,
    default=None,
    help="Upcoming window in days (defaults to the configured window)",
)
@click.option(
    "--now",
    "now_str",
    default=None,
    help="Reference time as ISO-8601 (defaults to the current time)",
)
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def alerts(
    ctx: click.Context,
    window: Optional[int],
    now_str: Optional[str],
    as_json: bool,
) -> None:
    """
    Show overdue and upcoming site payments.

    Example:

        fieldlink alerts --window 14
    """
    config = PortalConfig()

    if window is None:
        window = config.upcoming_window_days
    if window < 0:
        raise click.BadParameter("must be non-negative", param_hint="--window")

    now = datetime.now(timezone.utc)
    if now_str:
        try:
            now = datetime.fromisoformat(now_str.replace("Z", "+00:00"))
        except ValueError:
            raise click.BadParameter(f"not an ISO-8601 timestamp: {now_str}", param_hint="--now")

    try:
        sites = asyncio.run(_fetch_sites(config.api_base_url, config.access_token))
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

    result = partition_alerts(sites, upcoming_window_days=window, now=now)

    if as_json:
        data = {
            "overdue": [_alert_dict(a, "days_overdue") for a in result.overdue],
            "upcoming": [_alert_dict(a, "days_until_due") for a in result.upcoming],
        }
        click.echo(json.dumps(data, indent=2))
        return

    if not result.has_alerts:
        click.echo(click.style("All payments are up to date.", fg="green"))
        return

    if result.overdue:
        click.echo(click.style(f"Overdue ({len(result.overdue)})", fg="red", bold=True))
        for alert in result.overdue:
            client = alert.client_name or "unknown client"
            click.echo(
                f"  {alert.name} ({client}) - {alert.days}d overdue"
                f"  [cycle: {cycle_label(alert.cycle)}]"
            )

    if result.upcoming:
        if result.overdue:
            click.echo()
        click.echo(click.style(f"Due soon ({len(result.upcoming)})", fg="yellow", bold=True))
        for alert in result.upcoming:
            client = alert.client_name or "unknown client"
            click.echo(
                f"  {alert.name} ({client}) - due in {alert.days}d"
                f"  [cycle: {cycle_label(alert.cycle)}]"
            )
