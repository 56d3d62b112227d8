from __future__ import annotations


class ConfigurationError(ValueError):
    """Invalid experiment setup (divisor, BER, lengths). Raised before any trial runs."""
