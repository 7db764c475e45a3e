"""
home-state: live device state and predicates for a home-automation hub.

This library provides:
- Devices with typed, observable attributes and bounded history
- Capability-based device classes with schema-driven configuration
- A DeviceManager owning device lifecycle and change notifications
- Predicate evaluation ("frontdoor is present", "temperature of x is greater than 20")
"""

from home_state.core.bus import Event, EventBus, EventFilter
from home_state.core.context import HubContext
from home_state.core.device import Device
from home_state.core.manager import DeviceManager
from home_state.devices import register_builtin_device_classes
from home_state.predicates import PredicateEngine

__version__ = "0.1.0"

__all__ = [
    "Event",
    "EventBus",
    "EventFilter",
    "HubContext",
    "Device",
    "DeviceManager",
    "PredicateEngine",
    "register_builtin_device_classes",
]
