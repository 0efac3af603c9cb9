"""
Geoshutoff Custom Exceptions

Simple exception hierarchy for error handling.

Every error carries ``attempted`` so callers can tell "nothing was sent"
apart from "a command was sent and failed".
"""

from typing import Optional


class GeoshutoffError(Exception):
    """Base exception for Geoshutoff."""

    attempted = False


class ConfigurationError(GeoshutoffError):
    """Configuration is missing or invalid."""

    def __init__(self, message: str, missing: Optional[list[str]] = None):
        super().__init__(message)
        self.missing = missing or []


class InvalidInputError(GeoshutoffError):
    """Request parameters are invalid."""

    pass


class InvalidCoordinateError(InvalidInputError):
    """Latitude/longitude is out of range or not finite."""

    pass


class ComputationAnomalyError(GeoshutoffError):
    """Distance computation produced an impossible value."""

    pass


class VendorConnectionError(GeoshutoffError):
    """Cannot reach the SwitchBot API (network error or timeout)."""

    def __init__(self, message: str, timed_out: bool = False):
        super().__init__(message)
        self.timed_out = timed_out


class DispatchFailure(GeoshutoffError):
    """A command was sent but the vendor did not accept it."""

    attempted = True

    def __init__(
        self,
        message: str,
        http_status: Optional[int] = None,
        vendor_message: Optional[str] = None,
        timed_out: bool = False,
    ):
        super().__init__(message)
        self.http_status = http_status
        self.vendor_message = vendor_message
        self.timed_out = timed_out
