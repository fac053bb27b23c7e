"""Application configuration management.

Loads configuration from config.yaml files and environment variables.
Environment variables take precedence over config file settings.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from enum import StrEnum
from pathlib import Path
from typing import Any

import yaml
from cryptography import x509

logger = logging.getLogger("samlrp.config")

# Default config locations
DEFAULT_CONFIG_DIR = Path.home() / ".samlrp"
DEFAULT_CONFIG_FILE = DEFAULT_CONFIG_DIR / "config.yaml"

# Environment variable prefix
ENV_PREFIX = "SAMLRP_"


class ConfigError(Exception):
    """Raised when configuration is invalid or unsafe."""


class ReplayGranularity(StrEnum):
    """Which identifiers are recorded in the replay cache."""

    ASSERTION = "assertion"
    MESSAGE = "message"
    BOTH = "both"


class ReplayBackend(StrEnum):
    """Replay cache implementations selectable from configuration."""

    MEMORY = "memory"
    DATABASE = "database"
    DISABLED = "disabled"


def _config_int(data: dict[str, Any], key: str, default: int, section: str) -> int:
    """Read an integer setting, accepting numeric strings."""
    value = data.get(key, default)
    if isinstance(value, bool):
        raise ConfigError(f"{section}.{key} must be an integer, got {value!r}")
    try:
        return int(value)
    except (TypeError, ValueError) as e:
        raise ConfigError(f"{section}.{key} must be an integer, got {value!r}") from e


def _config_bool(data: dict[str, Any], key: str, default: bool, section: str) -> bool:
    """Read a boolean setting, accepting the same strings as the environment."""
    value = data.get(key, default)
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in ("true", "1", "yes", "on"):
            return True
        if lowered in ("false", "0", "no", "off"):
            return False
    raise ConfigError(f"{section}.{key} must be true or false, got {value!r}")


@dataclass
class ServiceProviderSettings:
    """Identity of this service provider."""

    entity_id: str = ""
    acs_url: str = ""

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ServiceProviderSettings:
        """Create ServiceProviderSettings from a dictionary."""
        return cls(
            entity_id=data.get("entity_id", ""),
            acs_url=data.get("acs_url", ""),
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "entity_id": self.entity_id,
            "acs_url": self.acs_url,
        }


@dataclass
class ValidationSettings:
    """Tolerances and policies applied while validating responses."""

    clock_skew_seconds: int = 60
    assertion_validity_seconds: int = 3000
    max_assertion_age_seconds: int = 3000
    max_authentication_age_seconds: int = 7200
    require_conditions: bool = False
    allow_unsolicited: bool = True
    replay_granularity: ReplayGranularity = ReplayGranularity.ASSERTION

    @property
    def clock_skew(self) -> timedelta:
        return timedelta(seconds=self.clock_skew_seconds)

    @property
    def assertion_validity(self) -> timedelta:
        return timedelta(seconds=self.assertion_validity_seconds)

    @property
    def max_assertion_age(self) -> timedelta:
        return timedelta(seconds=self.max_assertion_age_seconds)

    @property
    def max_authentication_age(self) -> timedelta | None:
        if self.max_authentication_age_seconds <= 0:
            return None
        return timedelta(seconds=self.max_authentication_age_seconds)

    def validate(self) -> None:
        """Check the settings are consistent.

        Raises:
            ConfigError: If a value is out of range.
        """
        if self.clock_skew_seconds < 0:
            raise ConfigError("validation.clock_skew_seconds must not be negative")
        if self.max_assertion_age_seconds <= 0:
            raise ConfigError("validation.max_assertion_age_seconds must be positive")
        # Replay entries must outlive every assertion still accepted by the age check
        if self.assertion_validity_seconds < self.max_assertion_age_seconds:
            raise ConfigError(
                "validation.assertion_validity_seconds must be at least "
                "validation.max_assertion_age_seconds"
            )

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ValidationSettings:
        """Create ValidationSettings from a dictionary."""
        try:
            granularity = ReplayGranularity(data.get("replay_granularity", "assertion"))
        except ValueError as e:
            raise ConfigError(f"Invalid validation.replay_granularity: {e}") from e
        section = "validation"
        return cls(
            clock_skew_seconds=_config_int(data, "clock_skew_seconds", 60, section),
            assertion_validity_seconds=_config_int(
                data, "assertion_validity_seconds", 3000, section
            ),
            max_assertion_age_seconds=_config_int(
                data, "max_assertion_age_seconds", 3000, section
            ),
            max_authentication_age_seconds=_config_int(
                data, "max_authentication_age_seconds", 7200, section
            ),
            require_conditions=_config_bool(data, "require_conditions", False, section),
            allow_unsolicited=_config_bool(data, "allow_unsolicited", True, section),
            replay_granularity=granularity,
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "clock_skew_seconds": self.clock_skew_seconds,
            "assertion_validity_seconds": self.assertion_validity_seconds,
            "max_assertion_age_seconds": self.max_assertion_age_seconds,
            "max_authentication_age_seconds": self.max_authentication_age_seconds,
            "require_conditions": self.require_conditions,
            "allow_unsolicited": self.allow_unsolicited,
            "replay_granularity": self.replay_granularity.value,
        }


@dataclass
class ReplaySettings:
    """Replay cache selection."""

    backend: ReplayBackend = ReplayBackend.MEMORY
    db_path: Path | None = None
    allow_insecure: bool = False

    def validate(self) -> None:
        """Refuse to silently disable replay protection.

        Raises:
            ConfigError: If the cache is disabled without explicit opt-in.
        """
        if self.backend == ReplayBackend.DISABLED and not self.allow_insecure:
            raise ConfigError(
                "replay.backend is 'disabled' but replay.allow_insecure is not set. "
                "Disabling replay protection is only permitted for test configurations."
            )

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ReplaySettings:
        """Create ReplaySettings from a dictionary."""
        try:
            backend = ReplayBackend(data.get("backend", "memory"))
        except ValueError as e:
            raise ConfigError(f"Invalid replay.backend: {e}") from e
        return cls(
            backend=backend,
            db_path=Path(data["db_path"]).expanduser() if data.get("db_path") else None,
            allow_insecure=_config_bool(data, "allow_insecure", False, "replay"),
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "backend": self.backend.value,
            "db_path": str(self.db_path) if self.db_path else None,
            "allow_insecure": self.allow_insecure,
        }


@dataclass
class IdentityProviderSettings:
    """A trusted identity provider."""

    entity_id: str
    certificate_path: Path | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> IdentityProviderSettings:
        """Create IdentityProviderSettings from a dictionary."""
        if not data.get("entity_id"):
            raise ConfigError("Every identity_providers entry needs an entity_id")
        return cls(
            entity_id=data["entity_id"],
            certificate_path=(
                Path(data["certificate_path"]).expanduser()
                if data.get("certificate_path")
                else None
            ),
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "entity_id": self.entity_id,
            "certificate_path": str(self.certificate_path) if self.certificate_path else None,
        }

    def load_certificate(self) -> str | None:
        """Load and check the IdP signing certificate.

        Returns:
            PEM text, or None if no certificate is configured.

        Raises:
            ConfigError: If the certificate cannot be read or parsed.
        """
        if self.certificate_path is None:
            return None
        try:
            pem_data = self.certificate_path.read_bytes()
            cert = x509.load_pem_x509_certificate(pem_data)
        except (OSError, ValueError) as e:
            raise ConfigError(
                f"Failed to load certificate for {self.entity_id} from {self.certificate_path}: {e}"
            ) from e

        if cert.not_valid_after_utc < datetime.now(UTC):
            logger.warning(
                f"Signing certificate for {self.entity_id} expired on "
                f"{cert.not_valid_after_utc.isoformat()}"
            )
        return pem_data.decode("utf-8")


@dataclass
class AppConfig:
    """Main application configuration."""

    service_provider: ServiceProviderSettings = field(default_factory=ServiceProviderSettings)
    validation: ValidationSettings = field(default_factory=ValidationSettings)
    replay: ReplaySettings = field(default_factory=ReplaySettings)
    identity_providers: list[IdentityProviderSettings] = field(default_factory=list)
    config_path: Path | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any], config_path: Path | None = None) -> AppConfig:
        """Create AppConfig from a dictionary."""
        sp_data = data.get("service_provider", {})
        validation_data = data.get("validation", {})
        replay_data = data.get("replay", {})
        for name, section in (
            ("service_provider", sp_data),
            ("validation", validation_data),
            ("replay", replay_data),
        ):
            if section and not isinstance(section, dict):
                raise ConfigError(f"Config section '{name}' must be a mapping")
        return cls(
            service_provider=(
                ServiceProviderSettings.from_dict(sp_data) if sp_data else ServiceProviderSettings()
            ),
            validation=(
                ValidationSettings.from_dict(validation_data)
                if validation_data
                else ValidationSettings()
            ),
            replay=ReplaySettings.from_dict(replay_data) if replay_data else ReplaySettings(),
            identity_providers=[
                IdentityProviderSettings.from_dict(idp)
                for idp in data.get("identity_providers", []) or []
            ],
            config_path=config_path,
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "service_provider": self.service_provider.to_dict(),
            "validation": self.validation.to_dict(),
            "replay": self.replay.to_dict(),
            "identity_providers": [idp.to_dict() for idp in self.identity_providers],
        }

    def validate(self) -> None:
        """Check the whole configuration.

        Raises:
            ConfigError: If any section is invalid.
        """
        self.validation.validate()
        self.replay.validate()

    def get_identity_provider(self, entity_id: str) -> IdentityProviderSettings | None:
        """Find a configured IdP by entity ID."""
        for idp in self.identity_providers:
            if idp.entity_id == entity_id:
                return idp
        return None

    def save(self, path: Path | None = None) -> None:
        """Save configuration to a YAML file.

        Args:
            path: Path to save to. Uses config_path or default if not specified.
        """
        save_path = path or self.config_path or DEFAULT_CONFIG_FILE
        save_path.parent.mkdir(parents=True, exist_ok=True)

        with open(save_path, "w") as f:
            yaml.safe_dump(self.to_dict(), f, default_flow_style=False)


def _get_env_bool(key: str, default: bool) -> bool:
    """Get a boolean from environment variable."""
    value = os.environ.get(key)
    if value is None:
        return default
    return value.lower() in ("true", "1", "yes", "on")


def _get_env_int(key: str, default: int) -> int:
    """Get an integer from environment variable."""
    value = os.environ.get(key)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        return default


def load_config(config_path: Path | None = None) -> AppConfig:
    """Load application configuration.

    Configuration is loaded in this order (later values override earlier):
    1. Default values
    2. config.yaml file (if exists)
    3. Environment variables

    Args:
        config_path: Path to config file. Uses default if not specified.

    Returns:
        AppConfig with merged settings.

    Raises:
        ConfigError: If the file cannot be parsed or the result is invalid.
    """
    # Start with defaults
    config = AppConfig()

    file_path = config_path or DEFAULT_CONFIG_FILE
    if file_path.exists():
        try:
            with open(file_path) as f:
                data = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            raise ConfigError(f"Failed to read config file {file_path}: {e}") from e
        if not isinstance(data, dict):
            raise ConfigError(f"Config file {file_path} must contain a mapping")
        config = AppConfig.from_dict(data, config_path=file_path)

    # Service provider settings
    sp = config.service_provider
    if os.environ.get(f"{ENV_PREFIX}SP_ENTITY_ID"):
        sp.entity_id = os.environ[f"{ENV_PREFIX}SP_ENTITY_ID"]

    if os.environ.get(f"{ENV_PREFIX}ACS_URL"):
        sp.acs_url = os.environ[f"{ENV_PREFIX}ACS_URL"]

    # Validation settings
    validation = config.validation
    validation.clock_skew_seconds = _get_env_int(
        f"{ENV_PREFIX}CLOCK_SKEW_SECONDS", validation.clock_skew_seconds
    )
    validation.require_conditions = _get_env_bool(
        f"{ENV_PREFIX}REQUIRE_CONDITIONS", validation.require_conditions
    )
    validation.allow_unsolicited = _get_env_bool(
        f"{ENV_PREFIX}ALLOW_UNSOLICITED", validation.allow_unsolicited
    )

    # Replay settings
    replay = config.replay
    if os.environ.get(f"{ENV_PREFIX}REPLAY_BACKEND"):
        try:
            replay.backend = ReplayBackend(os.environ[f"{ENV_PREFIX}REPLAY_BACKEND"])
        except ValueError as e:
            raise ConfigError(f"Invalid {ENV_PREFIX}REPLAY_BACKEND: {e}") from e

    if os.environ.get(f"{ENV_PREFIX}REPLAY_DB_PATH"):
        replay.db_path = Path(os.environ[f"{ENV_PREFIX}REPLAY_DB_PATH"])

    replay.allow_insecure = _get_env_bool(
        f"{ENV_PREFIX}REPLAY_ALLOW_INSECURE", replay.allow_insecure
    )

    config.validate()
    return config


def get_default_config_yaml() -> str:
    """Get the default config.yaml content as a string.

    Useful for generating example configuration files.
    """
    return """\
# samlrp Configuration File
# Environment variables override these settings (prefix: SAMLRP_)

service_provider:
  # This service provider's entity ID (expected Audience)
  entity_id: "https://sp.example.com/saml/metadata"

  # Assertion Consumer Service URL (expected Recipient and Destination)
  acs_url: "https://sp.example.com/saml/acs"

validation:
  # Tolerance for clock differences between IdP and SP
  clock_skew_seconds: 60

  # How long consumed assertion IDs are remembered after their IssueInstant
  assertion_validity_seconds: 3000

  # Reject assertions issued longer ago than this
  max_assertion_age_seconds: 3000

  # Reject logins where the user authenticated at the IdP longer ago than this
  # (0 disables the check)
  max_authentication_age_seconds: 7200

  # Reject assertions without a Conditions element
  require_conditions: false

  # Accept IdP-initiated responses without InResponseTo
  allow_unsolicited: true

  # Identifiers recorded for replay protection: assertion, message or both
  replay_granularity: assertion

replay:
  # memory, database or disabled
  backend: memory

  # SQLite file used by the database backend
  # db_path: ~/.samlrp/replay.db

  # Must be true for backend 'disabled' (never in production)
  allow_insecure: false

identity_providers:
  - entity_id: "https://idp.example.com/saml/metadata"
    # PEM-encoded signing certificate
    # certificate_path: ~/.samlrp/idp.crt
"""
