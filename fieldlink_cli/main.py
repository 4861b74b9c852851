"""
FieldLink CLI entry point.

Main command group for the FieldLink notification client.
"""

import click

from fieldlink import __version__


@click.group()
@click.version_option(version=__version__, prog_name="fieldlink")
@click.pass_context
def cli(ctx: click.Context) -> None:
    """
    FieldLink - Real-time notifications and payment alerts.

    Follows the signed-in user's portal notifications and reports site
    payments that are overdue or coming due.

    Use 'fieldlink COMMAND --help' for more information on a command.
    """
    ctx.ensure_object(dict)


# Import and register subcommands
from fieldlink_cli.watch import watch  # noqa: E402
from fieldlink_cli.notifications import notifications  # noqa: E402
from fieldlink_cli.alerts import alerts  # noqa: E402
from fieldlink_cli.config import config  # noqa: E402

cli.add_command(watch)
cli.add_command(notifications)
cli.add_command(alerts)
cli.add_command(config)


def main() -> None:
    """Main entry point for CLI."""
    cli()


if __name__ == "__main__":
    main()
