"""
Device entity.

A Device owns a set of named attributes (each backed by an AttributeStore),
a set of named actions, and an EventBus carrying one event type per attribute.
Behavior comes from the capabilities it is built with rather than from
subclassing.
"""

import asyncio
import re
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Dict, List, Optional, Type, TypeVar
import logging

from home_state.core.attributes import (
    AttributeDescriptor,
    AttributeStore,
    validate_attribute_descriptor,
)
from home_state.core.bus import Event, EventBus, EventFilter, EventHandler
from home_state.core.errors import DeviceConfigError

if TYPE_CHECKING:
    from home_state.core.capabilities import Capability
    from home_state.core.context import HubContext

logger = logging.getLogger(__name__)

Accessor = Callable[[], Awaitable[Any]]
ActionHandler = Callable[..., Awaitable[Any]]
C = TypeVar("C", bound="Capability")

ID_PATTERN = re.compile(r"^[a-z0-9\-_]+$", re.IGNORECASE)
# Words the rule grammar splits on
NAME_KEYWORDS = (" and ", " or ")


@dataclass(frozen=True)
class ActionDescriptor:
    """
    Static metadata for one device action.

    Attributes:
        name: Action name (e.g., "turnOn")
        description: Human readable description
        params: Parameter name -> {"type": ...} declarations
    """

    name: str
    description: str
    params: Dict[str, Dict[str, Any]] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"name": self.name, "description": self.description}
        if self.params:
            data["params"] = dict(self.params)
        return data


def _epoch_ms(dt: Optional[datetime]) -> Optional[int]:
    return int(dt.timestamp() * 1000) if dt is not None else None


class Device:
    """
    An entity with observable attributes and invokable actions.

    The factory that builds a device must pass the exact config dict it was
    given; the DeviceManager checks identity after construction.
    """

    def __init__(
        self,
        config: Dict[str, Any],
        context: Optional["HubContext"] = None,
        capabilities: Optional[List["Capability"]] = None,
        attributes: Optional[Dict[str, Dict[str, Any]]] = None,
        actions: Optional[Dict[str, ActionDescriptor]] = None,
        accessors: Optional[Dict[str, Accessor]] = None,
        action_handlers: Optional[Dict[str, ActionHandler]] = None,
    ) -> None:
        """
        Build a device and validate its attribute declarations.

        Args:
            config: Device config; must contain "id" and "name"
            context: Hub context the device lives in
            capabilities: Capabilities contributing attributes, actions and accessors
            attributes: Extra raw attribute declarations
            actions: Extra action descriptors
            accessors: Extra attribute name -> async getter
            action_handlers: Extra action name -> async handler

        Raises:
            DeviceConfigError: If id or name is missing
            InvalidAttributeError: If an attribute declaration is invalid
        """
        if not config.get("id"):
            raise DeviceConfigError("Device has no id")
        if not config.get("name"):
            raise DeviceConfigError(f"Device '{config['id']}' has no name")

        self.config = config
        self.context = context
        self.id: str = config["id"]
        self.name: str = config["name"]

        if not ID_PATTERN.match(self.id):
            logger.warning(
                f"The id of device '{self.id}' contains characters other than "
                f"letters, digits, '-' and '_'"
            )
        lowered = f" {self.name.lower()} "
        for keyword in NAME_KEYWORDS:
            if keyword in lowered:
                logger.warning(
                    f"The name of device '{self.id}' contains '{keyword.strip()}', "
                    f"which may confuse rule parsing"
                )

        self._events = EventBus()
        self._alive = True
        self._generation = 0
        self._refresh_task: Optional[asyncio.Task] = None

        self.capabilities: Dict[str, "Capability"] = {}
        raw_attributes: Dict[str, Dict[str, Any]] = {}
        self.actions: Dict[str, ActionDescriptor] = {}
        self._accessors: Dict[str, Accessor] = {}
        self._action_handlers: Dict[str, ActionHandler] = {}

        bound: List["Capability"] = []
        try:
            for capability in capabilities or []:
                capability.bind(self)
                bound.append(capability)
                self.capabilities[capability.name] = capability
                raw_attributes.update(capability.attributes())
                self.actions.update(capability.actions())
                self._accessors.update(capability.accessors())
                self._action_handlers.update(capability.action_handlers())

            raw_attributes.update(attributes or {})
            self.actions.update(actions or {})
            self._accessors.update(accessors or {})
            self._action_handlers.update(action_handlers or {})

            self.attributes: Dict[str, AttributeDescriptor] = {
                name: validate_attribute_descriptor(name, spec)
                for name, spec in raw_attributes.items()
            }
        except Exception:
            # A half-built device never runs; release what bound capabilities registered
            self._alive = False
            for capability in reversed(bound):
                capability.destroy()
            raise
        self._attributes_meta: Dict[str, AttributeStore] = {
            name: AttributeStore(device=self, name=name) for name in self.attributes
        }

    def __repr__(self) -> str:
        return f"Device(id={self.id!r}, name={self.name!r})"

    # =========================================================================
    # Events
    # =========================================================================

    def on(self, event_name: str, handler: EventHandler) -> None:
        """Listen for an attribute event (or "destroy")."""
        self._events.subscribe(handler, EventFilter(event_type=event_name))

    def remove_listener(self, event_name: str, handler: EventHandler) -> None:
        """Stop a listener previously added with on()."""
        self._events.unsubscribe(handler)

    def listener_count(self, event_name: str) -> int:
        return self._events.handler_count(event_name)

    def emit(self, event_name: str, value: Any) -> None:
        """Emit a named event carrying a value."""
        self._events.publish(
            Event(
                type=event_name,
                source=self.id,
                device_id=self.id,
                payload={"value": value},
            )
        )

    # =========================================================================
    # Attributes
    # =========================================================================

    def has_attribute(self, name: str) -> bool:
        return name in self.attributes

    def get_attribute_meta(self, name: str) -> AttributeStore:
        """
        Get the runtime state of an attribute.

        Raises:
            ValueError: If the device has no such attribute
        """
        meta = self._attributes_meta.get(name)
        if meta is None:
            raise ValueError(f"Device '{self.id}' has no attribute '{name}'")
        return meta

    def get_last_attribute_value(self, name: str) -> Any:
        return self.get_attribute_meta(name).get_last_value()

    async def get_updated_attribute_value(self, name: str) -> Any:
        """
        Fetch the live value of an attribute through its accessor.

        Attributes without an accessor answer with their cached value.
        """
        self.get_attribute_meta(name)
        accessor = self._accessors.get(name)
        if accessor is None:
            return self.get_last_attribute_value(name)
        return await accessor()

    def set_attribute(self, name: str, value: Any) -> None:
        """
        Typed setters of capabilities end here: record and emit a new value.

        Writes on a destroyed device are dropped.
        """
        if not self._alive:
            logger.debug(f"Ignoring update of '{name}' on destroyed device '{self.id}'")
            return
        self.get_attribute_meta(name).update(value)

    def override_attribute(self, name: str, **changes: Any) -> AttributeDescriptor:
        """
        Replace an attribute descriptor with a modified copy.

        The attributes map is copied before the write so maps shared with
        other devices are never touched.
        """
        descriptor = self.attributes.get(name)
        if descriptor is None:
            raise ValueError(f"Device '{self.id}' has no attribute '{name}'")
        updated = replace(descriptor, **changes)
        self.attributes = dict(self.attributes)
        self.attributes[name] = updated
        return updated

    # =========================================================================
    # Actions & capabilities
    # =========================================================================

    def has_action(self, name: str) -> bool:
        return name in self._action_handlers

    async def call_action(self, name: str, **params: Any) -> Any:
        """
        Invoke an action by name.

        Raises:
            ValueError: If the device has no such action
        """
        handler = self._action_handlers.get(name)
        if handler is None:
            raise ValueError(f"Device '{self.id}' has no action '{name}'")
        logger.debug(f"Calling action {name}{params} on device '{self.id}'")
        return await handler(**params)

    def has_capability(self, name: str) -> bool:
        return name in self.capabilities

    def get_capability(self, capability_type: Type[C]) -> C:
        """
        Get a capability by its class.

        Raises:
            ValueError: If the device does not have the capability
        """
        capability = self.capabilities.get(capability_type.name)
        if not isinstance(capability, capability_type):
            raise ValueError(f"Device '{self.id}' is not {capability_type.name}")
        return capability

    # =========================================================================
    # Lifecycle
    # =========================================================================

    @property
    def is_alive(self) -> bool:
        return self._alive

    def after_register(self) -> None:
        """
        Schedule a refresh of every attribute that has no value yet.

        Without a running event loop (e.g., synchronous setup code) the
        refresh is skipped; values then arrive with the first update.
        """
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug(f"No running loop, skipping initial refresh of '{self.id}'")
            return
        self._refresh_task = loop.create_task(self.refresh_unset_attributes())

    async def refresh_unset_attributes(self) -> None:
        """Fill attributes whose value is still None from their accessors."""
        generation = self._generation
        for name in list(self.attributes):
            if self._attributes_meta[name].value is not None:
                continue
            try:
                value = await self.get_updated_attribute_value(name)
            except Exception as e:
                logger.error(
                    f"Error getting attribute value '{name}' of device '{self.id}': {e}",
                    exc_info=True,
                )
                continue
            if not self._alive or generation != self._generation:
                return
            if value is not None and self._attributes_meta[name].value is None:
                self.set_attribute(name, value)

    def destroy(self) -> None:
        """
        Emit "destroy" and detach every listener this device holds.

        Capabilities are destroyed first so scheduled work (timers, change
        notifications) stops before the device goes quiet.
        """
        if not self._alive:
            return
        self._alive = False
        self._generation += 1
        if self._refresh_task is not None and not self._refresh_task.done():
            self._refresh_task.cancel()
        for capability in reversed(list(self.capabilities.values())):
            capability.destroy()
        self.emit("destroy", None)
        self._events.clear()
        logger.debug(f"Destroyed device '{self.id}'")

    # =========================================================================
    # Serialization
    # =========================================================================

    def to_json(self) -> Dict[str, Any]:
        """Serialize to the public device shape."""
        attributes = []
        for name, descriptor in self.attributes.items():
            meta = self._attributes_meta[name]
            data = descriptor.to_dict()
            data["value"] = meta.value
            data["history"] = [
                {"t": _epoch_ms(entry.time), "v": entry.value} for entry in meta.history
            ]
            data["lastUpdate"] = _epoch_ms(meta.last_update)
            attributes.append(data)
        return {
            "id": self.id,
            "name": self.name,
            "config": self.config,
            "attributes": attributes,
            "actions": [action.to_dict() for action in self.actions.values()],
        }
