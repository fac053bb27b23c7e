"""Replay cache management CLI commands."""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

import click

from samlrp.cli.config import config_option, error_result, json_option, output_result

if TYPE_CHECKING:
    from samlrp.core.saml.replay import SQLReplayCache
    from samlrp.storage import Database


@click.group()
def replay() -> None:
    """Manage the persistent replay cache."""
    pass


def _open_cache(config_path: Path | None, output_json: bool) -> tuple[Database, SQLReplayCache]:
    from samlrp.core.config import ConfigError, ReplayBackend, load_config
    from samlrp.core.saml.replay import SQLReplayCache
    from samlrp.storage import Database, DatabaseError

    try:
        app_config = load_config(config_path)
    except ConfigError as e:
        error_result(str(e), output_json)

    if app_config.replay.backend != ReplayBackend.DATABASE:
        error_result(
            f"replay.backend is '{app_config.replay.backend}', only the 'database' "
            "backend keeps state between runs",
            output_json,
        )

    database = Database(db_path=app_config.replay.db_path)
    try:
        database.init_db()
    except DatabaseError as e:
        database.close()
        error_result(str(e), output_json)
    return database, SQLReplayCache(database)


@replay.command("purge")
@config_option
@json_option
def replay_purge(config_path: Path | None, output_json: bool) -> None:
    """Remove expired identifiers from the replay database."""
    database, cache = _open_cache(config_path, output_json)
    try:
        removed = cache.purge_expired()
        remaining = len(cache)
    finally:
        database.close()

    if output_json:
        output_result({
            "status": "purged",
            "database": str(database.db_path),
            "removed": removed,
            "remaining": remaining,
        }, as_json=True)
    else:
        click.echo(f"Removed {removed} expired identifier(s) from {database.db_path}")
        click.echo(f"{remaining} identifier(s) still remembered")


@replay.command("stats")
@config_option
@json_option
def replay_stats(config_path: Path | None, output_json: bool) -> None:
    """Show how many identifiers the replay database holds."""
    database, cache = _open_cache(config_path, output_json)
    try:
        count = len(cache)
    finally:
        database.close()

    if output_json:
        output_result({"database": str(database.db_path), "identifiers": count}, as_json=True)
    else:
        click.echo(f"Database: {database.db_path}")
        click.echo(f"Identifiers: {count}")
