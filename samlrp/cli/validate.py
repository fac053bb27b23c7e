"""Response validation CLI command."""

from __future__ import annotations

import sys
from datetime import UTC, datetime
from pathlib import Path

import click

from samlrp.cli.config import config_option, error_result, json_option, output_result


@click.command()
@click.argument(
    "response_file",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),  # type: ignore[type-var]
)
@config_option
@click.option("--in-response-to", help="ID of the AuthnRequest this response answers")
@click.option("--relay-state", help="RelayState received with the response")
@click.option(
    "--at",
    "at_time",
    type=click.DateTime(),
    help="Validate as of this UTC instant instead of now (for captured responses)",
)
@click.option(
    "--allow-unsigned",
    is_flag=True,
    help="Do not require verified assertion signatures (testing only).",
)
@json_option
def validate(
    response_file: Path,
    config_path: Path | None,
    in_response_to: str | None,
    relay_state: str | None,
    at_time: datetime | None,
    allow_unsigned: bool,
    output_json: bool,
) -> None:
    """Validate a SAML Response file.

    RESPONSE_FILE may hold the Response XML or the base64 SAMLResponse
    form value. Exits with status 1 if the response is rejected.

    Examples:

        # Validate an SP-initiated login response
        samlrp validate response.xml --in-response-to _a1b2c3

        # Validate a captured response as of the time it was received
        samlrp validate response.b64 --at 2024-01-01T12:00:00 --json
    """
    from samlrp.core.config import ConfigError, ReplayBackend, load_config
    from samlrp.core.saml import (
        MessageContext,
        MessageParseError,
        SAMLValidationError,
        TrustedIssuerEngine,
        WebSSOConsumer,
        parse_response,
        utcnow,
    )
    from samlrp.storage import Database, DatabaseError

    try:
        app_config = load_config(config_path)
        certificates = {
            idp.entity_id: pem
            for idp in app_config.identity_providers
            if (pem := idp.load_certificate()) is not None
        }
    except ConfigError as e:
        error_result(str(e), output_json)

    sp = app_config.service_provider
    if not sp.entity_id or not sp.acs_url:
        error_result(
            "service_provider.entity_id and service_provider.acs_url must be configured",
            output_json,
        )

    try:
        message = parse_response(response_file.read_bytes(), certificates)
    except MessageParseError as e:
        error_result(str(e), output_json)

    trust_engine = TrustedIssuerEngine(
        [idp.entity_id for idp in app_config.identity_providers],
        require_signed_assertions=not allow_unsigned,
    )

    clock = utcnow
    if at_time is not None:
        fixed_now = at_time.replace(tzinfo=UTC) if at_time.tzinfo is None else at_time

        def clock() -> datetime:
            return fixed_now

    database: Database | None = None
    if app_config.replay.backend == ReplayBackend.DATABASE:
        database = Database(db_path=app_config.replay.db_path)

    context = MessageContext(
        inbound_message=message,
        local_entity_id=sp.entity_id,
        local_endpoint=sp.acs_url,
        expected_in_response_to=in_response_to,
        relay_state=relay_state,
    )

    try:
        try:
            consumer = WebSSOConsumer.from_config(
                app_config, trust_engine, clock=clock, database=database
            )
        except (ConfigError, DatabaseError) as e:
            error_result(str(e), output_json)

        try:
            principal = consumer.process_response(context)
        except DatabaseError as e:
            error_result(str(e), output_json)
        except SAMLValidationError as e:
            if output_json:
                output_result({
                    "status": "rejected",
                    "error_kind": str(e.kind),
                    "message": e.message,
                    "security_incident": e.is_security_incident,
                    "requires_reauthentication": e.requires_reauthentication,
                }, as_json=True)
                sys.exit(1)
            raise click.ClickException(f"Response rejected ({e.kind}): {e.message}") from None
    finally:
        if database is not None:
            database.close()

    if output_json:
        output_result({"status": "accepted", "principal": principal.to_dict()}, as_json=True)
        return

    click.echo("Response accepted")
    click.echo(f"  Subject:    {principal.name_id}")
    click.echo(f"  Issuer:     {principal.issuer}")
    click.echo(f"  Assertion:  {principal.assertion_id}")
    click.echo(f"  Authn time: {principal.authn_instant.isoformat()}")
    if principal.session_not_on_or_after:
        click.echo(f"  Session until: {principal.session_not_on_or_after.isoformat()}")
    for name, values in principal.attributes.items():
        click.echo(f"  {name}: {', '.join(values)}")
