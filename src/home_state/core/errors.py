"""
Error types raised by the hub core.

All errors derive from ValueError so callers that only know about bad input
keep working.
"""


class DeviceConfigError(ValueError):
    """A device or device class configuration cannot be used."""


class DuplicateDeviceError(DeviceConfigError):
    """A device with the same id is already registered or configured."""


class InvalidAttributeError(ValueError):
    """An attribute descriptor failed validation."""


class PredicateParseError(ValueError):
    """A predicate provider was asked to evaluate text it cannot decide."""
