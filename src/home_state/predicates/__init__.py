"""
Predicate evaluation for home-state.

Turns short condition strings into comparisons against live device state.

Grammars:
- Presence: "<device> is [not] present"
- Device property: "<property> of <device> [is] <comparator> <reference>"

A rule engine either asks once (is_true) or subscribes (notify_when) and is
called back only when the predicate's truth value flips.
"""

from .base import PredicateCallback, PredicateMatch, PredicateProvider
from .device_property import (
    COMPARATORS,
    DEVICE_PROPERTY_PATTERN,
    DevicePropertyPredicateProvider,
    normalize_comparator,
)
from .engine import PredicateEngine
from .presence import PRESENCE_PATTERN, PresencePredicateProvider

__all__ = [
    # Base
    "PredicateCallback",
    "PredicateMatch",
    "PredicateProvider",
    # Providers
    "PresencePredicateProvider",
    "DevicePropertyPredicateProvider",
    "PredicateEngine",
    # Grammar
    "PRESENCE_PATTERN",
    "DEVICE_PROPERTY_PATTERN",
    "COMPARATORS",
    "normalize_comparator",
]
