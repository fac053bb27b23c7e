"""CLI entry point for samlrp."""

import click

from samlrp import __version__
from samlrp.cli import config as config_commands
from samlrp.cli import replay as replay_commands
from samlrp.cli import validate as validate_commands


@click.group()
@click.version_option(version=__version__, prog_name="samlrp")
@click.option(
    "--log-level",
    type=click.Choice(["ERROR", "INFO", "DEBUG", "TRACE"], case_sensitive=False),
    help="Emit validation logs at this level to stderr.",
)
@click.option(
    "--trace",
    "trace_enabled",
    is_flag=True,
    help="Allow TRACE logs to include subject identifiers unredacted.",
)
@click.pass_context
def cli(ctx: click.Context, log_level: str | None, trace_enabled: bool) -> None:
    """samlrp - SAML 2.0 Web SSO Response Validator."""
    ctx.ensure_object(dict)
    if log_level:
        from samlrp.core.logging import configure_logging

        configure_logging(level=log_level, trace_enabled=trace_enabled)


cli.add_command(config_commands.config)
cli.add_command(replay_commands.replay)
cli.add_command(validate_commands.validate)
