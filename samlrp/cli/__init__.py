"""Command-line interface for samlrp."""
