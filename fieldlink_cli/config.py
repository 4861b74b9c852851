"""
Config CLI commands.

Shows and changes the client configuration file.
"""

import json

import click

from fieldlink.config import SETTABLE_KEYS, ConfigError, PortalConfig


# ============================================================================
# Config Command Group
# ============================================================================


@click.group()
@click.pass_context
def config(ctx: click.Context) -> None:
    """
    Manage client configuration.

    Settings are stored in a YAML file in the platform config directory.
    FIELDLINK_API_BASE_URL, FIELDLINK_ACCESS_TOKEN and FIELDLINK_LOG_LEVEL
    override the file.
    """
    ctx.ensure_object(dict)


@config.command("show")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def show(ctx: click.Context, as_json: bool) -> None:
    """
    Display the effective configuration.

    The access token is masked.

    Example:

        fieldlink config show
    """
    portal_config = PortalConfig()
    values = portal_config.as_dict()

    if as_json:
        click.echo(json.dumps(values, indent=2))
        return

    click.echo(f"Config file: {portal_config.config_path}")
    for key, value in values.items():
        click.echo(f"  {key}: {value if value != '' else '(not set)'}")


@config.command("set")
@click.argument("key", type=click.Choice(SETTABLE_KEYS))
@click.argument("value")
@click.pass_context
def set_value(ctx: click.Context, key: str, value: str) -> None:
    """
    Set a configuration value.

    Example:

        fieldlink config set api_base_url https://portal.example.com/api/v1
    """
    portal_config = PortalConfig()

    try:
        portal_config.set_value(key, value)
        portal_config.validate()
    except ConfigError as e:
        click.echo(click.style("Error: ", fg="red", bold=True) + str(e))
        ctx.exit(1)

    portal_config.save()

    shown = "***" if key == "access_token" else value
    click.echo(click.style("Updated: ", fg="green") + f"{key} = {shown}")
