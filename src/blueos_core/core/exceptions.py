"""Custom exceptions for the BlueOS core supervisor."""

from typing import Optional


class SupervisorError(Exception):
    """Base exception for all supervisor errors."""

    def __init__(self, message: str, code: Optional[str] = None):
        super().__init__(message)
        self.code = code


class ConfigurationError(SupervisorError):
    """Service table or settings are malformed."""
    pass


class BootstrapError(SupervisorError):
    """A bootstrap step failed in a way that must stop the boot."""
    pass


class SessionError(SupervisorError):
    """The session backend refused or failed a request."""
    pass
