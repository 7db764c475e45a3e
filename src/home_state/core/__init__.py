"""
Core components of the home-state hub.

This package contains:
- bus: Event Bus implementation
- attributes: Attribute descriptors and runtime state
- device: Device entity
- capabilities: Switchable, Dimmable, PresenceSensing, ... behaviors
- extensions: Optional config extensions
- manager: DeviceManager for device classes, devices and config
"""

from home_state.core.attributes import (
    HISTORY_SIZE,
    AttributeDescriptor,
    AttributeStore,
    AttributeType,
    HistoryEntry,
    validate_attribute_descriptor,
)
from home_state.core.bus import Event, EventBus, EventFilter
from home_state.core.capabilities import (
    Capability,
    ContactSensing,
    Dimmable,
    ExpressionBacked,
    PositionControllable,
    PresenceSensing,
    Switchable,
    TemperatureSensing,
    Thermostatic,
    Timing,
)
from home_state.core.context import HubContext
from home_state.core.device import ActionDescriptor, Device
from home_state.core.errors import (
    DeviceConfigError,
    DuplicateDeviceError,
    InvalidAttributeError,
    PredicateParseError,
)
from home_state.core.extensions import (
    DEFAULT_CONFIG_EXTENSIONS,
    AttributeOptionsExtension,
    ConfigExtension,
    LabelExtension,
    LinkExtension,
)
from home_state.core.manager import DeviceClass, DeviceManager
from home_state.core.persistence import DevicePersistence, InMemoryDevicePersistence
from home_state.core.variables import MockVariableAdapter, ParsedExpression, VariableAdapter

__all__ = [
    "HISTORY_SIZE",
    "AttributeDescriptor",
    "AttributeStore",
    "AttributeType",
    "HistoryEntry",
    "validate_attribute_descriptor",
    "Event",
    "EventBus",
    "EventFilter",
    "Capability",
    "ContactSensing",
    "Dimmable",
    "ExpressionBacked",
    "PositionControllable",
    "PresenceSensing",
    "Switchable",
    "TemperatureSensing",
    "Thermostatic",
    "Timing",
    "HubContext",
    "ActionDescriptor",
    "Device",
    "DeviceConfigError",
    "DuplicateDeviceError",
    "InvalidAttributeError",
    "PredicateParseError",
    "DEFAULT_CONFIG_EXTENSIONS",
    "AttributeOptionsExtension",
    "ConfigExtension",
    "LabelExtension",
    "LinkExtension",
    "DeviceClass",
    "DeviceManager",
    "DevicePersistence",
    "InMemoryDevicePersistence",
    "MockVariableAdapter",
    "ParsedExpression",
    "VariableAdapter",
]
