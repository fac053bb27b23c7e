"""Tests for the CLI commands."""

import json
from pathlib import Path

import pytest
import yaml
from click.testing import CliRunner

from factories import (
    ACS_URL,
    IDP_ENTITY_ID,
    NAME_ID,
    REQUEST_ID,
    SP_ENTITY_ID,
    response_xml,
    sign_response,
)
from samlrp.cli.main import cli

AT_NOW = ["--at", "2024-06-01T12:00:00"]


def test_cli_version() -> None:
    """Test CLI version command."""
    runner = CliRunner()
    result = runner.invoke(cli, ["--version"])
    assert result.exit_code == 0
    assert "0.1.0" in result.output


def test_cli_help() -> None:
    """Test CLI help command."""
    runner = CliRunner()
    result = runner.invoke(cli, ["--help"])
    assert result.exit_code == 0
    assert "SAML 2.0 Web SSO Response Validator" in result.output


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Remove SAMLRP_* overrides from the environment."""
    import os

    for key in list(os.environ):
        if key.startswith("SAMLRP_"):
            monkeypatch.delenv(key)


def write_config(tmp_path: Path, **sections) -> Path:
    data = {
        "service_provider": {"entity_id": SP_ENTITY_ID, "acs_url": ACS_URL},
        "identity_providers": [{"entity_id": IDP_ENTITY_ID}],
    }
    data.update(sections)
    path = tmp_path / "config.yaml"
    path.write_text(yaml.safe_dump(data))
    return path


class TestValidateCommand:
    """Tests for samlrp validate."""

    def setup_method(self) -> None:
        """Set up test fixtures."""
        self.runner = CliRunner()

    def _validate(self, tmp_path: Path, xml: str | bytes, *args: str):
        response_file = tmp_path / "response.xml"
        if isinstance(xml, str):
            xml = xml.encode()
        response_file.write_bytes(xml)
        config_path = write_config(tmp_path)
        return self.runner.invoke(
            cli,
            ["validate", str(response_file), "--config", str(config_path), *AT_NOW, *args],
        )

    def test_accepts_valid_response(self, tmp_path: Path):
        result = self._validate(
            tmp_path, response_xml(), "--allow-unsigned", "--in-response-to", REQUEST_ID
        )
        assert result.exit_code == 0, result.output
        assert "Response accepted" in result.output
        assert NAME_ID in result.output

    def test_json_output(self, tmp_path: Path):
        result = self._validate(
            tmp_path, response_xml(), "--allow-unsigned", "--in-response-to", REQUEST_ID, "--json"
        )
        assert result.exit_code == 0, result.output
        data = json.loads(result.output)
        assert data["status"] == "accepted"
        assert data["principal"]["name_id"] == NAME_ID
        assert data["principal"]["attributes"]["groups"] == ["staff", "admins"]

    def test_unsigned_rejected_by_default(self, tmp_path: Path):
        result = self._validate(tmp_path, response_xml(), "--json")
        assert result.exit_code == 1
        data = json.loads(result.output)
        assert data["status"] == "rejected"
        assert data["error_kind"] == "UntrustedIssuer"
        assert data["security_incident"] is True

    def test_audience_mismatch(self, tmp_path: Path):
        xml = response_xml(audience="https://other-sp.example.com")
        result = self._validate(tmp_path, xml, "--allow-unsigned", "--json")
        assert result.exit_code == 1
        assert json.loads(result.output)["error_kind"] == "AudienceMismatch"

    def test_expired_response(self, tmp_path: Path):
        result = self._validate(
            tmp_path, response_xml(), "--allow-unsigned", "--at", "2024-06-02T12:00:00"
        )
        assert result.exit_code == 1
        assert "AssertionTooOld" in result.output

    def test_malformed_response(self, tmp_path: Path):
        result = self._validate(tmp_path, "<samlp:Response", "--allow-unsigned")
        assert result.exit_code == 1
        assert "Failed to parse XML" in result.output

    def test_signed_response(self, tmp_path: Path, idp_credentials):
        key_pem, cert_pem = idp_credentials
        cert_path = tmp_path / "idp.crt"
        cert_path.write_text(cert_pem)
        response_file = tmp_path / "response.xml"
        response_file.write_bytes(sign_response(response_xml(), key_pem, cert_pem))
        config_path = write_config(
            tmp_path,
            identity_providers=[{"entity_id": IDP_ENTITY_ID, "certificate_path": str(cert_path)}],
        )

        result = self.runner.invoke(
            cli,
            ["validate", str(response_file), "--config", str(config_path), *AT_NOW, "--json"],
        )

        assert result.exit_code == 0, result.output
        assert json.loads(result.output)["principal"]["issuer"] == IDP_ENTITY_ID

    def test_missing_service_provider(self, tmp_path: Path):
        response_file = tmp_path / "response.xml"
        response_file.write_text(response_xml())
        config_path = tmp_path / "empty.yaml"
        config_path.write_text("identity_providers: []\n")
        result = self.runner.invoke(
            cli, ["validate", str(response_file), "--config", str(config_path)]
        )
        assert result.exit_code == 1
        assert "service_provider.entity_id" in result.output

    def test_replay_detected_with_database(self, tmp_path: Path):
        """The database backend remembers assertions across invocations."""
        response_file = tmp_path / "response.xml"
        response_file.write_text(response_xml())
        config_path = write_config(
            tmp_path, replay={"backend": "database", "db_path": str(tmp_path / "replay.db")}
        )
        args = ["validate", str(response_file), "--config", str(config_path), *AT_NOW]
        args += ["--allow-unsigned", "--json"]

        first = self.runner.invoke(cli, args)
        second = self.runner.invoke(cli, args)

        assert first.exit_code == 0, first.output
        assert second.exit_code == 1
        assert json.loads(second.output)["error_kind"] == "ReplayDetected"

    def test_database_closed_after_validation(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ):
        """The replay database is closed whether the response is accepted or not."""
        from samlrp.storage import Database

        closed: list[Path] = []
        original_close = Database.close

        def recording_close(database: Database) -> None:
            closed.append(database.db_path)
            original_close(database)

        monkeypatch.setattr(Database, "close", recording_close)

        db_path = tmp_path / "replay.db"
        response_file = tmp_path / "response.xml"
        response_file.write_text(response_xml())
        config_path = write_config(tmp_path, replay={"backend": "database", "db_path": str(db_path)})
        args = ["validate", str(response_file), "--config", str(config_path), *AT_NOW]
        args += ["--allow-unsigned", "--json"]

        accepted = self.runner.invoke(cli, args)
        rejected = self.runner.invoke(cli, args)

        assert accepted.exit_code == 0, accepted.output
        assert rejected.exit_code == 1
        assert closed == [db_path, db_path]


class TestConfigCommands:
    """Tests for config CLI commands."""

    def setup_method(self) -> None:
        """Set up test fixtures."""
        self.runner = CliRunner()

    def test_config_help(self):
        result = self.runner.invoke(cli, ["config", "--help"])
        assert result.exit_code == 0
        assert "Manage samlrp configuration" in result.output

    def test_config_init(self, tmp_path: Path):
        path = tmp_path / "config.yaml"
        result = self.runner.invoke(cli, ["config", "init", "--path", str(path)])
        assert result.exit_code == 0
        assert path.exists()
        assert "service_provider" in path.read_text()

    def test_config_init_already_exists(self, tmp_path: Path):
        path = tmp_path / "config.yaml"
        path.write_text("existing: true\n")
        result = self.runner.invoke(cli, ["config", "init", "--path", str(path), "--json"])
        assert result.exit_code == 0
        assert json.loads(result.output)["status"] == "already_exists"
        assert path.read_text() == "existing: true\n"

    def test_config_init_force(self, tmp_path: Path):
        path = tmp_path / "config.yaml"
        path.write_text("existing: true\n")
        result = self.runner.invoke(cli, ["config", "init", "--path", str(path), "--force"])
        assert result.exit_code == 0
        assert "service_provider" in path.read_text()

    def test_config_show_json(self, tmp_path: Path):
        config_path = write_config(tmp_path)
        result = self.runner.invoke(cli, ["config", "show", "--config", str(config_path), "--json"])
        assert result.exit_code == 0
        data = json.loads(result.output)
        assert data["service_provider"]["entity_id"] == SP_ENTITY_ID
        assert data["validation"]["clock_skew_seconds"] == 60

    def test_config_show_yaml(self, tmp_path: Path):
        config_path = write_config(tmp_path)
        result = self.runner.invoke(cli, ["config", "show", "--config", str(config_path)])
        assert result.exit_code == 0
        assert f"Loaded from: {config_path}" in result.output

    def test_config_show_invalid(self, tmp_path: Path):
        config_path = write_config(tmp_path, replay={"backend": "disabled"})
        result = self.runner.invoke(cli, ["config", "show", "--config", str(config_path)])
        assert result.exit_code == 1
        assert "allow_insecure" in result.output

    def test_config_check(self, tmp_path: Path):
        config_path = write_config(tmp_path)
        result = self.runner.invoke(cli, ["config", "check", "--config", str(config_path)])
        assert result.exit_code == 0
        assert "Configuration OK" in result.output

    def test_config_check_missing_certificate(self, tmp_path: Path):
        config_path = write_config(
            tmp_path,
            identity_providers=[
                {"entity_id": IDP_ENTITY_ID, "certificate_path": str(tmp_path / "missing.crt")}
            ],
        )
        result = self.runner.invoke(cli, ["config", "check", "--config", str(config_path)])
        assert result.exit_code == 1


class TestReplayCommands:
    """Tests for replay CLI commands."""

    def setup_method(self) -> None:
        """Set up test fixtures."""
        self.runner = CliRunner()

    def test_purge_requires_database_backend(self, tmp_path: Path):
        config_path = write_config(tmp_path)
        result = self.runner.invoke(cli, ["replay", "purge", "--config", str(config_path)])
        assert result.exit_code == 1
        assert "database" in result.output

    def test_purge_and_stats(self, tmp_path: Path):
        from datetime import UTC, datetime, timedelta

        from samlrp.core.saml.replay import SQLReplayCache
        from samlrp.storage import Database

        db_path = tmp_path / "replay.db"
        database = Database(db_path=db_path)
        database.init_db()
        cache = SQLReplayCache(database)
        now = datetime.now(UTC)
        cache.check_and_consume("_expired", now - timedelta(minutes=5))
        cache.check_and_consume("_live", now + timedelta(minutes=50))
        database.close()

        config_path = write_config(tmp_path, replay={"backend": "database", "db_path": str(db_path)})

        result = self.runner.invoke(
            cli, ["replay", "purge", "--config", str(config_path), "--json"]
        )
        assert result.exit_code == 0, result.output
        data = json.loads(result.output)
        assert data["removed"] == 1
        assert data["remaining"] == 1

        result = self.runner.invoke(cli, ["replay", "stats", "--config", str(config_path)])
        assert result.exit_code == 0
        assert "Identifiers: 1" in result.output
