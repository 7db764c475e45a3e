"""
Persistence interface for device state and configuration.

Storage is the host's job. The core asks for the last known attribute state of
a device when loading it and asks for the device configuration list to be
saved after changes.
"""

from abc import ABC, abstractmethod
from collections import deque
from datetime import datetime
from typing import Any, Deque, Dict, List, Optional
import copy
import logging

from home_state.core.attributes import HISTORY_SIZE
from home_state.core.bus import Event, EventBus, EventFilter

logger = logging.getLogger(__name__)

# device_id -> attribute name -> {"time": datetime, "value": Any, "history": [...]}
DeviceState = Dict[str, Dict[str, Any]]


class DevicePersistence(ABC):
    """Abstract interface to the host's storage."""

    @abstractmethod
    async def get_last_device_state(self, device_id: str) -> Optional[DeviceState]:
        """
        Get the last known attribute state of a device.

        Returns:
            Attribute name -> {"time", "value", optional "history"} or None
            if nothing is known about the device
        """
        pass

    @abstractmethod
    def save_config(self, devices_config: List[Dict[str, Any]]) -> None:
        """Persist the device configuration list (fire and forget)."""
        pass


class InMemoryDevicePersistence(DevicePersistence):
    """
    Keeps device state in memory.

    Once attached to the hub bus it records every attribute change, so a
    manager loaded later with the same persistence sees the last state.
    """

    def __init__(self, states: Optional[Dict[str, DeviceState]] = None) -> None:
        self._states: Dict[str, DeviceState] = states or {}
        self._histories: Dict[str, Dict[str, Deque[tuple[datetime, Any]]]] = {}
        self.saved_configs: List[List[Dict[str, Any]]] = []

    def attach(self, bus: EventBus) -> None:
        """Record attribute changes published on the hub bus."""
        bus.subscribe(
            handler=self._on_attribute_changed,
            event_filter=EventFilter(event_type="device.attribute_changed"),
        )

    async def get_last_device_state(self, device_id: str) -> Optional[DeviceState]:
        return self._states.get(device_id)

    def save_config(self, devices_config: List[Dict[str, Any]]) -> None:
        self.saved_configs.append(copy.deepcopy(devices_config))
        logger.debug(f"Saved config with {len(devices_config)} devices")

    def set_attribute_state(self, device_id: str, name: str, time: datetime, value: Any) -> None:
        history = self._histories.setdefault(device_id, {}).setdefault(
            name, deque(maxlen=HISTORY_SIZE)
        )
        history.append((time, value))
        self._states.setdefault(device_id, {})[name] = {
            "time": time,
            "value": value,
            "history": list(history),
        }

    def _on_attribute_changed(self, event: Event) -> None:
        payload = event.payload
        self.set_attribute_state(
            event.device_id, payload["attribute_name"], payload["time"], payload["value"]
        )
