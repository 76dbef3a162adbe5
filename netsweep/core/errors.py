"""Errors raised by the scan engine before or instead of producing results.

Per-address probe failures are never raised; they are encoded in the
``status`` field of the corresponding ``ScanResult``.
"""


class ScanError(Exception):
    """Base class for scan engine errors."""


class InvalidRangeError(ScanError):
    """The target range or CIDR literal cannot be expanded."""


class RangeTooLargeError(InvalidRangeError):
    """The target range holds more addresses than a single scan may probe."""


class UnauthorizedScanError(ScanError):
    """The caller did not confirm they are allowed to scan the target."""


class ScanFailedError(ScanError):
    """An unexpected fault stopped a running scan."""


class ScanInProgressError(ScanError):
    """A scan is already running and only one may run at a time."""
