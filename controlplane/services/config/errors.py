from __future__ import annotations


class ConfigurationError(ValueError):
    """A required connection setting is missing or malformed."""
