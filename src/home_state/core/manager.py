"""
DeviceManager for device classes and device instances.

The DeviceManager owns the device registry and the device configuration list,
not device behavior.
"""

from dataclasses import dataclass
from datetime import datetime, UTC
from typing import Any, Callable, Dict, List, Optional
import copy
import logging

from home_state.core.attributes import HistoryEntry
from home_state.core.bus import Event
from home_state.core.context import HubContext
from home_state.core.device import Device
from home_state.core.errors import DeviceConfigError, DuplicateDeviceError
from home_state.core.extensions import (
    DEFAULT_CONFIG_EXTENSIONS,
    ConfigExtension,
    applicable_extensions,
)
from home_state.core.persistence import DeviceState
from home_state.core.schema import enhance_config_with_defaults, validate_config

logger = logging.getLogger(__name__)

DeviceFactory = Callable[[Dict[str, Any], Optional[DeviceState], HubContext], Device]
PrepareConfig = Callable[[Dict[str, Any]], None]


@dataclass
class DeviceClass:
    """
    A registered device class.

    Attributes:
        class_name: Name devices use in their "class" config field
        config_schema: Augmented config schema (id/name/class and extensions merged)
        factory: Builds a device from (config, last_state, context)
        prepare_config: Optional hook run on the raw config before validation
    """

    class_name: str
    config_schema: Dict[str, Any]
    factory: DeviceFactory
    prepare_config: Optional[PrepareConfig] = None


def _to_datetime(value: Any) -> datetime:
    if isinstance(value, datetime):
        return value
    # Epoch milliseconds
    return datetime.fromtimestamp(float(value) / 1000, UTC)


def _history_entries(state: Dict[str, Any]) -> List[HistoryEntry]:
    raw = state.get("history")
    if raw is None:
        if state.get("time") is None:
            return []
        raw = [(state["time"], state.get("value"))]

    entries = []
    for item in raw:
        if isinstance(item, HistoryEntry):
            entries.append(item)
        elif isinstance(item, dict):
            time = item.get("time", item.get("t"))
            value = item.get("value", item.get("v"))
            entries.append(HistoryEntry(time=_to_datetime(time), value=value))
        else:
            time, value = item
            entries.append(HistoryEntry(time=_to_datetime(time), value=value))
    return entries


class DeviceManager:
    """
    Manages device classes, live devices and the device configuration list.

    Responsibilities:
    - Store device classes (schema + factory)
    - Build devices from config and register them
    - Republish attribute events as device.attribute_changed on the hub bus
    - Keep the configuration list in sync on add/remove/recreate/reorder

    Does NOT implement device behavior or rule evaluation.
    """

    def __init__(
        self,
        context: Optional[HubContext] = None,
        devices_config: Optional[List[Dict[str, Any]]] = None,
        config_extensions: Optional[List[ConfigExtension]] = None,
    ) -> None:
        """
        Initialize a device manager.

        Args:
            context: Hub context (a fresh one is created if omitted)
            devices_config: Backing device configuration list (mutated in place)
            config_extensions: Ordered config extensions (defaults to the built-ins)
        """
        self.context = context or HubContext()
        self.devices_config: List[Dict[str, Any]] = (
            devices_config if devices_config is not None else []
        )
        self.config_extensions: List[ConfigExtension] = list(
            config_extensions if config_extensions is not None else DEFAULT_CONFIG_EXTENSIONS
        )
        self._device_classes: Dict[str, DeviceClass] = {}
        # Insertion order is registration order
        self._devices: Dict[str, Device] = {}

    # =========================================================================
    # Device classes
    # =========================================================================

    def register_device_class(
        self,
        class_name: str,
        config_schema: Dict[str, Any],
        factory: DeviceFactory,
        prepare_config: Optional[PrepareConfig] = None,
    ) -> DeviceClass:
        """
        Register (or replace) a device class.

        The schema is copied and augmented with id/name/class properties and
        the properties of every config extension it opts into.

        Args:
            class_name: Name devices use in their "class" config field
            config_schema: JSON-schema object with a "properties" map
            factory: Builds a device from (config, last_state, context)
            prepare_config: Optional hook run on the raw config before validation

        Returns:
            The registered DeviceClass

        Raises:
            DeviceConfigError: If the schema has no properties
        """
        if config_schema.get("properties") is None:
            raise DeviceConfigError(f"Config schema of device class '{class_name}' has no properties")

        if class_name in self._device_classes:
            logger.debug(f"Replacing device class '{class_name}'")

        schema = copy.deepcopy(config_schema)
        schema.setdefault("type", "object")
        properties = schema["properties"]
        properties["id"] = {"description": "The ID of the device", "type": "string"}
        properties["name"] = {"description": "The name of the device", "type": "string"}
        properties["class"] = {"description": "The class to use for the device", "type": "string"}
        required = schema.setdefault("required", [])
        for key in ("id", "name", "class"):
            if key not in required:
                required.append(key)

        for extension in self.config_extensions:
            extension.extend_config_schema(schema)

        device_class = DeviceClass(
            class_name=class_name,
            config_schema=schema,
            factory=factory,
            prepare_config=prepare_config,
        )
        self._device_classes[class_name] = device_class
        logger.info(f"Registered device class: {class_name}")
        return device_class

    def get_device_class(self, class_name: str) -> Optional[DeviceClass]:
        return self._device_classes.get(class_name)

    def get_device_classes(self) -> List[str]:
        return list(self._device_classes)

    # =========================================================================
    # Loading
    # =========================================================================

    async def load_devices(self) -> List[Device]:
        """
        Build and register every configured device.

        A device that fails to load is logged and skipped; the others still load.

        Returns:
            The devices that loaded
        """
        loaded = []
        for config in list(self.devices_config):
            device_id = config.get("id")
            try:
                if device_id in self._devices:
                    raise DuplicateDeviceError(f"Duplicate device id '{device_id}'")
                last_state = await self._get_last_device_state(device_id)
                loaded.append(self._load_device(config, last_state))
            except Exception as e:
                logger.error(f"Error loading device '{device_id}': {e}", exc_info=True)

        logger.info(f"Loaded {len(loaded)} of {len(self.devices_config)} devices")
        return loaded

    async def _get_last_device_state(self, device_id: Optional[str]) -> Optional[DeviceState]:
        persistence = self.context.persistence
        if persistence is None or device_id is None:
            return None
        return await persistence.get_last_device_state(device_id)

    def _load_device(
        self,
        config: Dict[str, Any],
        last_state: Optional[DeviceState] = None,
        is_new: bool = False,
    ) -> Device:
        """
        Build one device from its config and register it.

        Steps: prepare_config, validation, defaults, factory, persisted history
        replay, config extensions, registration.

        Raises:
            DeviceConfigError: Unknown class, invalid config, or a factory
                that did not assign the given config object to the device
            DuplicateDeviceError: If is_new and the id is already registered
        """
        class_name = config.get("class")
        device_class = self._device_classes.get(class_name)
        if device_class is None:
            raise DeviceConfigError(
                f"Unknown device class '{class_name}' for device '{config.get('id')}'"
            )

        if device_class.prepare_config is not None:
            device_class.prepare_config(config)

        schema = device_class.config_schema
        validate_config(config, schema, f"device '{config.get('id')}'")
        enhance_config_with_defaults(schema, config)

        device = device_class.factory(config, last_state, self.context)
        try:
            if device.config is not config:
                raise DeviceConfigError(
                    f"The factory of device class '{class_name}' must assign the given config "
                    f"to the device"
                )

            # History only: the live value always comes from the device itself
            for name, state in (last_state or {}).items():
                if device.has_attribute(name) and state:
                    device.get_attribute_meta(name).replay_history(_history_entries(state))

            for extension in applicable_extensions(schema, self.config_extensions):
                extension.apply(config, device)

            self.register_device(device, is_new)
        except Exception:
            device.destroy()
            raise

        return device

    # =========================================================================
    # Registry
    # =========================================================================

    def register_device(self, device: Device, is_new: bool = False) -> Device:
        """
        Publish a device in the registry.

        Wires every attribute event to a device.attribute_changed notification,
        schedules the initial refresh of unset attributes and, for new devices,
        publishes device.added.

        Args:
            device: The device
            is_new: True for devices that were not in the registry before

        Raises:
            DuplicateDeviceError: If is_new and the id is already registered
        """
        if is_new and device.id in self._devices:
            raise DuplicateDeviceError(f"Duplicate device id '{device.id}'")

        self._devices[device.id] = device
        for attr_name in device.attributes:
            device.on(attr_name, self._make_attribute_forwarder(device, attr_name))

        device.after_register()
        logger.info(f"Registered device: {device.id} ({device.name})")

        if is_new:
            self._publish("device.added", device.id, {"device": device})
        return device

    def _make_attribute_forwarder(self, device: Device, attr_name: str):
        def forward_attribute_change(event: Event) -> None:
            self.context.bus.publish(
                Event(
                    type="device.attribute_changed",
                    source="devices",
                    device_id=device.id,
                    payload={
                        "device": device,
                        "attribute_name": attr_name,
                        "attribute": device.attributes[attr_name],
                        "time": event.timestamp,
                        "value": event.payload.get("value"),
                    },
                    timestamp=event.timestamp,
                )
            )

        return forward_attribute_change

    def get_device_by_id(self, device_id: str) -> Optional[Device]:
        return self._devices.get(device_id)

    def get_devices(self) -> List[Device]:
        """All devices in registration order."""
        return list(self._devices.values())

    # =========================================================================
    # Configuration CRUD
    # =========================================================================

    def is_device_in_config(self, device_id: str) -> bool:
        return any(config.get("id") == device_id for config in self.devices_config)

    def get_device_config(self, device_id: str) -> Optional[Dict[str, Any]]:
        for config in self.devices_config:
            if config.get("id") == device_id:
                return config
        return None

    def add_device_by_config(self, config: Dict[str, Any]) -> Device:
        """
        Create a new device and add its config to the configuration list.

        Raises:
            DeviceConfigError: If the config has no id or fails to load
            DuplicateDeviceError: If the id is already configured or registered
        """
        device_id = config.get("id")
        if not device_id:
            raise DeviceConfigError("Device config has no id")
        if self.is_device_in_config(device_id):
            raise DuplicateDeviceError(f"A device with the id '{device_id}' is already configured")

        device = self._load_device(config, None, is_new=True)
        self.devices_config.append(config)
        self._save_config()
        return device

    def update_device_by_config(self, config: Dict[str, Any]) -> Device:
        """
        Replace a device with one built from a changed config.

        Raises:
            ValueError: If no device with the config's id exists
        """
        device = self.get_device_by_id(config.get("id"))
        if device is None:
            raise ValueError(f"Device '{config.get('id')}' does not exist")
        return self.recreate_device(device, config)

    def recreate_device(self, old_device: Device, new_config: Dict[str, Any]) -> Device:
        """
        Rebuild a device from a new config under the same id.

        The new device is built and registered before the old one is
        destroyed, so the id never disappears from the registry. The old
        device's values and history carry over as the new device's last state.

        Raises:
            DeviceConfigError: If the id changes or the new config fails to load;
                the old device then stays in place
        """
        if new_config.get("id") != old_device.id:
            raise DeviceConfigError(
                f"Cannot recreate device '{old_device.id}' with id '{new_config.get('id')}'"
            )

        last_state: DeviceState = {}
        for name in old_device.attributes:
            meta = old_device.get_attribute_meta(name)
            last_state[name] = {
                "time": meta.last_update,
                "value": meta.value,
                "history": meta.history_as_list(),
            }

        new_device = self._load_device(new_config, last_state)
        old_device.destroy()

        for index, config in enumerate(self.devices_config):
            if config.get("id") == new_device.id:
                self.devices_config[index] = new_config
                break
        else:
            self.devices_config.append(new_config)

        logger.info(f"Recreated device: {new_device.id}")
        self._publish("device.changed", new_device.id, {"device": new_device})
        self._save_config()
        return new_device

    def remove_device(self, device_id: str) -> Device:
        """
        Destroy a device and drop its config.

        Raises:
            ValueError: If the device doesn't exist
        """
        device = self._devices.pop(device_id, None)
        if device is None:
            raise ValueError(f"Device '{device_id}' does not exist")

        device.destroy()
        self.devices_config[:] = [c for c in self.devices_config if c.get("id") != device_id]

        logger.info(f"Removed device: {device_id}")
        self._publish("device.removed", device_id, {"device": device})
        self._save_config()
        return device

    def update_device_order(self, device_order: List[str]) -> List[Dict[str, Any]]:
        """
        Reorder the configuration list.

        Devices not named in device_order keep their relative order after the
        named ones. The registry's resolution order is not affected.

        Returns:
            The reordered configuration list
        """
        position = {device_id: index for index, device_id in enumerate(device_order)}
        self.devices_config.sort(key=lambda c: position.get(c.get("id"), len(position)))

        self._publish("device.order_changed", None, {"order": list(device_order)})
        self._save_config()
        return self.devices_config

    def _save_config(self) -> None:
        if self.context.persistence is not None:
            self.context.persistence.save_config(self.devices_config)

    def _publish(self, event_type: str, device_id: Optional[str], payload: Dict[str, Any]) -> None:
        self.context.bus.publish(
            Event(type=event_type, source="devices", device_id=device_id, payload=payload)
        )
