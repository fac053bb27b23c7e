"""Core validation support: configuration and validation logging."""

from samlrp.core.config import (
    AppConfig,
    ConfigError,
    IdentityProviderSettings,
    ReplayBackend,
    ReplayGranularity,
    ReplaySettings,
    ServiceProviderSettings,
    ValidationSettings,
    load_config,
)
from samlrp.core.logging import (
    CheckOutcome,
    LogLevel,
    ValidationEvent,
    ValidationLog,
    ValidationLogger,
    configure_logging,
    get_validation_logger,
    redact_sensitive,
    set_validation_logger,
)

__all__ = [
    # Configuration
    "AppConfig",
    "ConfigError",
    "IdentityProviderSettings",
    "ReplayBackend",
    "ReplayGranularity",
    "ReplaySettings",
    "ServiceProviderSettings",
    "ValidationSettings",
    "load_config",
    # Logging
    "CheckOutcome",
    "LogLevel",
    "ValidationEvent",
    "ValidationLog",
    "ValidationLogger",
    "configure_logging",
    "get_validation_logger",
    "redact_sensitive",
    "set_validation_logger",
]
