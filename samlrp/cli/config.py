"""Configuration management CLI commands."""

from __future__ import annotations

import json
import sys
from pathlib import Path
from typing import Any, NoReturn

import click
import yaml

# Common option for JSON output
json_option = click.option(
    "--json",
    "output_json",
    is_flag=True,
    help="Output results as JSON for scripting",
)

# Common option for the config file location
config_option = click.option(
    "--config",
    "config_path",
    type=click.Path(path_type=Path),  # type: ignore[type-var]
    help="Path to config file. Defaults to ~/.samlrp/config.yaml",
)


def output_result(data: dict[str, Any], as_json: bool = False) -> None:
    """Output result as JSON or formatted text.

    Args:
        data: Data to output
        as_json: If True, output as JSON
    """
    if as_json:
        click.echo(json.dumps(data, indent=2, default=str))


def error_result(message: str, as_json: bool = False) -> NoReturn:
    """Output error message and exit.

    This function never returns - it either raises ClickException or calls sys.exit.

    Args:
        message: Error message
        as_json: If True, output as JSON
    """
    if as_json:
        click.echo(json.dumps({"error": message}, indent=2), err=True)
        sys.exit(1)
    raise click.ClickException(message)


@click.group()
def config() -> None:
    """Manage samlrp configuration."""
    pass


@config.command("init")
@click.option(
    "--path",
    "config_path",
    type=click.Path(path_type=Path),  # type: ignore[type-var]
    help="Where to write the config file. Defaults to ~/.samlrp/config.yaml",
)
@click.option(
    "--force",
    is_flag=True,
    help="Overwrite an existing config file.",
)
@json_option
def config_init(config_path: Path | None, force: bool, output_json: bool) -> None:
    """Write an example configuration file.

    Examples:

        # Write to the default location
        samlrp config init

        # Write somewhere else, replacing any existing file
        samlrp config init --path ./samlrp.yaml --force
    """
    from samlrp.core.config import DEFAULT_CONFIG_FILE, get_default_config_yaml

    path = config_path or DEFAULT_CONFIG_FILE

    if path.exists() and not force:
        if output_json:
            output_result({
                "status": "already_exists",
                "config_file": str(path),
                "message": "Config file already exists. Use --force to overwrite.",
            }, as_json=True)
            return
        click.echo(f"Config file already exists: {path}")
        click.echo("Use --force to overwrite")
        return

    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(get_default_config_yaml())

    if output_json:
        output_result({"status": "created", "config_file": str(path)}, as_json=True)
    else:
        click.echo(f"Config file written to: {path}")
        click.echo("")
        click.echo("Next steps:")
        click.echo("  1. Set service_provider.entity_id and acs_url")
        click.echo("  2. List your identity providers and their signing certificates")
        click.echo("  3. Run 'samlrp validate <response-file>' to check a response")


@config.command("show")
@config_option
@json_option
def config_show(config_path: Path | None, output_json: bool) -> None:
    """Show the effective configuration.

    Environment variable overrides (SAMLRP_*) are applied.
    """
    from samlrp.core.config import ConfigError, load_config

    try:
        app_config = load_config(config_path)
    except ConfigError as e:
        error_result(str(e), output_json)

    data = app_config.to_dict()
    if output_json:
        output_result(data, as_json=True)
        return

    source = app_config.config_path or "(defaults)"
    click.echo(f"# Loaded from: {source}")
    click.echo(yaml.safe_dump(data, default_flow_style=False).rstrip())


@config.command("check")
@config_option
@json_option
def config_check(config_path: Path | None, output_json: bool) -> None:
    """Check the configuration and IdP certificates.

    Fails if the settings are inconsistent or a configured signing
    certificate cannot be loaded.
    """
    from samlrp.core.config import ConfigError, load_config

    try:
        app_config = load_config(config_path)
        for idp in app_config.identity_providers:
            idp.load_certificate()
    except ConfigError as e:
        error_result(str(e), output_json)

    problems = []
    if not app_config.service_provider.entity_id:
        problems.append("service_provider.entity_id is not set")
    if not app_config.service_provider.acs_url:
        problems.append("service_provider.acs_url is not set")
    if not app_config.identity_providers:
        problems.append("no identity_providers configured")

    if problems:
        error_result("; ".join(problems), output_json)

    if output_json:
        output_result({
            "status": "ok",
            "identity_providers": [idp.entity_id for idp in app_config.identity_providers],
        }, as_json=True)
    else:
        click.echo("Configuration OK")
        for idp in app_config.identity_providers:
            signed = "certificate" if idp.certificate_path else "no certificate"
            click.echo(f"  {idp.entity_id} ({signed})")
