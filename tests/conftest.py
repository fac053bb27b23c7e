"""Pytest configuration and fixtures."""

from collections.abc import Generator
from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.x509.oid import NameOID

from factories import FixedClock, RecordingReplayCache, StaticTrustEngine
from samlrp.core.config import ValidationSettings
from samlrp.core.logging import LogLevel, ValidationLogger
from samlrp.core.saml.consumer import WebSSOConsumer
from samlrp.storage import Database


@pytest.fixture
def clock() -> FixedClock:
    """Clock fixed at the instant the test responses are built around."""
    return FixedClock()


@pytest.fixture
def replay_cache() -> RecordingReplayCache:
    """Replay cache fake recording its calls."""
    return RecordingReplayCache()


@pytest.fixture
def trust_engine() -> StaticTrustEngine:
    """Trust engine that trusts everything."""
    return StaticTrustEngine()


@pytest.fixture
def validation_logger() -> ValidationLogger:
    """Validation logger recording every check."""
    return ValidationLogger(level=LogLevel.DEBUG)


@pytest.fixture
def consumer(
    trust_engine: StaticTrustEngine,
    replay_cache: RecordingReplayCache,
    clock: FixedClock,
    validation_logger: ValidationLogger,
) -> WebSSOConsumer:
    """Consumer with default settings and injected fakes."""
    return WebSSOConsumer(
        trust_engine=trust_engine,
        replay_cache=replay_cache,
        settings=ValidationSettings(),
        clock=clock,
        validation_logger=validation_logger,
    )


@pytest.fixture
def database(tmp_path: Path) -> Generator[Database, None, None]:
    """Initialized replay database in a temporary directory."""
    db = Database(db_path=tmp_path / "replay.db")
    db.init_db()
    yield db
    db.close()


@pytest.fixture(scope="session")
def idp_credentials() -> tuple[str, str]:
    """Self-signed IdP signing key and certificate as PEM text."""
    key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    name = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, "idp.example.com")])
    now = datetime.now(UTC)
    cert = (
        x509.CertificateBuilder()
        .subject_name(name)
        .issuer_name(name)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now - timedelta(days=1))
        .not_valid_after(now + timedelta(days=365))
        .sign(key, hashes.SHA256())
    )
    key_pem = key.private_bytes(
        serialization.Encoding.PEM,
        serialization.PrivateFormat.PKCS8,
        serialization.NoEncryption(),
    ).decode()
    cert_pem = cert.public_bytes(serialization.Encoding.PEM).decode()
    return key_pem, cert_pem
