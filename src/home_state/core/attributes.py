"""
Attribute descriptors and per-attribute runtime state.

An attribute is a named, typed, observable property of a device. Its static
metadata lives in an AttributeDescriptor; its last value, last update time and
bounded history live in an AttributeStore.
"""

from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Any, Deque, Dict, Iterable, List, Optional, Tuple
import logging

from home_state.core.bus import Event
from home_state.core.errors import InvalidAttributeError

if TYPE_CHECKING:
    from home_state.core.device import Device

logger = logging.getLogger(__name__)

HISTORY_SIZE = 30


class AttributeType(Enum):
    """Closed set of attribute value types."""

    BOOLEAN = "boolean"
    NUMBER = "number"
    INTEGER = "integer"
    STRING = "string"
    ARRAY = "array"
    OBJECT = "object"

    @property
    def is_numeric(self) -> bool:
        return self in (AttributeType.NUMBER, AttributeType.INTEGER)


@dataclass(frozen=True)
class AttributeDescriptor:
    """
    Static metadata for one attribute of a device.

    Descriptors are frozen: overlays (labels, display options) replace the
    descriptor with dataclasses.replace instead of mutating it.

    Attributes:
        name: Attribute name (e.g., "temperature")
        description: Human readable description
        type: Value type
        unit: Display unit ("" for numeric types without one)
        label: Display label (defaults to the capitalized name)
        labels: Display pair for True/False (boolean attributes only)
        discrete: Whether values are discrete (False for numeric types)
        enum: Allowed values, if restricted
        acronym: Short display name
        display_sparkline: Whether a UI should draw a sparkline
        hidden: Whether a UI should hide the attribute
    """

    name: str
    description: str
    type: AttributeType
    unit: Optional[str] = None
    label: str = ""
    labels: Optional[Tuple[str, str]] = None
    discrete: bool = True
    enum: Optional[Tuple[Any, ...]] = None
    acronym: Optional[str] = None
    display_sparkline: Optional[bool] = None
    hidden: Optional[bool] = None

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to the public attribute shape (without runtime state)."""
        data: Dict[str, Any] = {
            "name": self.name,
            "description": self.description,
            "type": self.type.value,
        }
        if self.unit is not None:
            data["unit"] = self.unit
        data["label"] = self.label
        if self.labels is not None:
            data["labels"] = list(self.labels)
        data["discrete"] = self.discrete
        if self.enum is not None:
            data["enum"] = list(self.enum)
        if self.acronym is not None:
            data["acronym"] = self.acronym
        if self.display_sparkline is not None:
            data["displaySparkline"] = self.display_sparkline
        if self.hidden is not None:
            data["hidden"] = self.hidden
        return data


def validate_attribute_descriptor(name: str, spec: Dict[str, Any]) -> AttributeDescriptor:
    """
    Validate a raw attribute declaration and fill its defaults.

    Args:
        name: The attribute name
        spec: Raw declaration, e.g. {"description": "...", "type": "number"}

    Returns:
        The validated descriptor

    Raises:
        InvalidAttributeError: If description or type is missing, or the type
            is not one of the known attribute types
    """
    if not spec.get("description"):
        raise InvalidAttributeError(f"No description for attribute '{name}'")
    if not spec.get("type"):
        raise InvalidAttributeError(f"No type for attribute '{name}'")
    try:
        attr_type = AttributeType(spec["type"])
    except ValueError:
        valid = ", ".join(t.value for t in AttributeType)
        raise InvalidAttributeError(
            f"Attribute '{name}' has invalid type '{spec['type']}', expected one of: {valid}"
        ) from None

    unit = spec.get("unit")
    if unit is None and attr_type.is_numeric:
        unit = ""

    labels = spec.get("labels")
    if labels is None and attr_type == AttributeType.BOOLEAN:
        labels = ("true", "false")
    if labels is not None:
        if len(labels) != 2:
            raise InvalidAttributeError(f"Labels of attribute '{name}' must be a pair")
        labels = tuple(labels)

    discrete = spec.get("discrete")
    if discrete is None:
        discrete = not attr_type.is_numeric

    enum = spec.get("enum")

    return AttributeDescriptor(
        name=name,
        description=spec["description"],
        type=attr_type,
        unit=unit,
        label=spec.get("label") or name[:1].upper() + name[1:],
        labels=labels,
        discrete=discrete,
        enum=tuple(enum) if enum is not None else None,
        acronym=spec.get("acronym"),
        display_sparkline=spec.get("displaySparkline"),
        hidden=spec.get("hidden"),
    )


def matches_type(attr_type: AttributeType, value: Any) -> bool:
    """Check whether a value fits an attribute type (None always fits)."""
    if value is None:
        return True
    if attr_type == AttributeType.BOOLEAN:
        return isinstance(value, bool)
    if attr_type == AttributeType.NUMBER:
        return isinstance(value, (int, float)) and not isinstance(value, bool)
    if attr_type == AttributeType.INTEGER:
        return isinstance(value, int) and not isinstance(value, bool)
    if attr_type == AttributeType.STRING:
        return isinstance(value, str)
    if attr_type == AttributeType.ARRAY:
        return isinstance(value, (list, tuple))
    return isinstance(value, dict)


@dataclass(frozen=True)
class HistoryEntry:
    """One recorded (time, value) pair."""

    time: datetime
    value: Any


@dataclass
class AttributeStore:
    """
    Runtime state of one device attribute.

    The store subscribes to its device's attribute event when created, so the
    device only ever emits and the store observes. Being the first subscriber,
    it has recorded the new value before any other listener runs.

    Attributes:
        device: Owning device
        name: Attribute name
        value: Last known value (None until first update)
        last_update: Time of the last update
        history: Last HISTORY_SIZE (time, value) pairs, oldest first
    """

    device: "Device"
    name: str
    value: Any = None
    last_update: Optional[datetime] = None
    history: Deque[HistoryEntry] = field(default_factory=lambda: deque(maxlen=HISTORY_SIZE))

    def __post_init__(self) -> None:
        self.device.on(self.name, self._on_attribute_event)

    def update(self, value: Any) -> None:
        """Record a new value and emit the attribute event."""
        self.device.emit(self.name, value)

    def get_last_value(self) -> Any:
        """Return the cached value (None if never updated)."""
        return self.value

    def replay_history(self, entries: Iterable[HistoryEntry]) -> None:
        """Replace the history with persisted entries (keeps the newest HISTORY_SIZE)."""
        self.history.clear()
        self.history.extend(entries)

    def history_as_list(self) -> List[HistoryEntry]:
        return list(self.history)

    def _on_attribute_event(self, event: Event) -> None:
        value = event.payload.get("value")
        descriptor = self.device.attributes.get(self.name)
        if descriptor is not None and not matches_type(descriptor.type, value):
            logger.warning(
                f"Value {value!r} of attribute '{self.name}' on device '{self.device.id}' "
                f"does not match type '{descriptor.type.value}'"
            )
        self.value = value
        self.last_update = event.timestamp
        self.history.append(HistoryEntry(time=event.timestamp, value=value))
        logger.debug(f"{self.device.id}.{self.name} = {value!r}")
