"""
Error taxonomy shared by adapters, the aggregator and the lens overlay.

Adapters raise these from inside the fragment sequence; callers decide
the disposition (CLI exits non-zero, overlay returns to Input).
"""

from typing import Optional


class AetherError(Exception):
    """Base class for every error aether reports to the user."""
    pass


class ProviderConnectionError(AetherError):
    """Transport-level failure: DNS, TCP, TLS, or a dropped stream."""
    pass


class ProviderError(AetherError):
    """Provider answered with a non-success status (or an error event)."""

    def __init__(
        self,
        provider: str,
        status_code: Optional[int],
        body: str,
        hint: Optional[str] = None,
    ):
        self.provider = provider
        self.status_code = status_code
        self.body = body
        self.hint = hint
        status = f"status {status_code}" if status_code is not None else "stream error"
        message = f"{provider} API error ({status}): {body}"
        if hint:
            message += f". {hint}"
        super().__init__(message)


class DecodeError(AetherError):
    """A complete frame was assembled but could not be decoded."""
    pass


class ConfigurationError(AetherError):
    """Missing or invalid configuration, e.g. an unset API key variable."""

    def __init__(self, message: str, variable: Optional[str] = None):
        self.variable = variable
        super().__init__(message)
