"""samlrp - SAML 2.0 Web SSO response validation for service providers."""

__version__ = "0.1.0"
