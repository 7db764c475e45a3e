"""
Device capabilities.

A capability is a unit of device behavior: it declares the attributes and
actions it adds to a device, provides accessors for those attributes, keeps
whatever internal state the behavior needs and pushes changes through the
device's attribute setter. A device class picks the capabilities it needs
instead of inheriting from a chain of base classes.
"""

import asyncio
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Set
import logging

from home_state.core.device import Accessor, ActionDescriptor, ActionHandler

if TYPE_CHECKING:
    from home_state.core.device import Device
    from home_state.core.variables import ParsedExpression, VariableAdapter

logger = logging.getLogger(__name__)


class Capability:
    """
    Base class for capabilities.

    Subclasses set `name`, `ATTRIBUTES` and `ACTIONS` and override accessors()
    and action_handlers().
    """

    name = "capability"
    ATTRIBUTES: Dict[str, Dict[str, Any]] = {}
    ACTIONS: Dict[str, ActionDescriptor] = {}

    def __init__(self) -> None:
        self._device: Optional["Device"] = None

    @property
    def device(self) -> "Device":
        if self._device is None:
            raise RuntimeError(f"Capability '{self.name}' is not bound to a device")
        return self._device

    def bind(self, device: "Device") -> None:
        """Attach to the device being constructed."""
        self._device = device

    def attributes(self) -> Dict[str, Dict[str, Any]]:
        return dict(self.ATTRIBUTES)

    def actions(self) -> Dict[str, ActionDescriptor]:
        return dict(self.ACTIONS)

    def accessors(self) -> Dict[str, Accessor]:
        return {}

    def action_handlers(self) -> Dict[str, ActionHandler]:
        return {}

    def destroy(self) -> None:
        """Stop any scheduled work. Called once when the device is destroyed."""
        pass


def _action(name: str, description: str, **params: str) -> ActionDescriptor:
    return ActionDescriptor(
        name=name,
        description=description,
        params={param: {"type": param_type} for param, param_type in params.items()},
    )


# =============================================================================
# Actuators
# =============================================================================


class Switchable(Capability):
    """On/off switching."""

    name = "switchable"
    ATTRIBUTES = {
        "state": {
            "description": "The current state of the switch",
            "type": "boolean",
            "labels": ["on", "off"],
        },
    }
    ACTIONS = {
        "turnOn": _action("turnOn", "Turns the switch on"),
        "turnOff": _action("turnOff", "Turns the switch off"),
        "toggle": _action("toggle", "Toggles the switch"),
        "changeStateTo": _action("changeStateTo", "Changes the switch to on or off", state="boolean"),
    }

    def __init__(self, state: bool = False) -> None:
        super().__init__()
        self._state = state

    @property
    def state(self) -> bool:
        return self._state

    async def get_state(self) -> bool:
        return self._state

    async def turn_on(self) -> None:
        await self.change_state_to(True)

    async def turn_off(self) -> None:
        await self.change_state_to(False)

    async def toggle(self) -> None:
        await self.change_state_to(not self._state)

    async def change_state_to(self, state: bool) -> None:
        self._set_state(bool(state))

    def _set_state(self, state: bool) -> None:
        if state == self._state:
            return
        self._state = state
        self.device.set_attribute("state", state)

    def accessors(self) -> Dict[str, Accessor]:
        return {"state": self.get_state}

    def action_handlers(self) -> Dict[str, ActionHandler]:
        return {
            "turnOn": self.turn_on,
            "turnOff": self.turn_off,
            "toggle": self.toggle,
            "changeStateTo": self.change_state_to,
        }


class Dimmable(Capability):
    """Dimming; the on/off state follows the dim level."""

    name = "dimmable"
    ATTRIBUTES = {
        "state": {
            "description": "The current state of the switch",
            "type": "boolean",
            "labels": ["on", "off"],
        },
        "dimlevel": {
            "description": "The current dim level",
            "type": "number",
            "unit": "%",
        },
    }
    ACTIONS = {
        "turnOn": _action("turnOn", "Turns the dimmer on"),
        "turnOff": _action("turnOff", "Turns the dimmer off"),
        "toggle": _action("toggle", "Toggles the dimmer"),
        "changeStateTo": _action("changeStateTo", "Changes the dimmer to on or off", state="boolean"),
        "changeDimlevelTo": _action("changeDimlevelTo", "Sets the dim level", dimlevel="number"),
    }

    def __init__(self, dimlevel: float = 0) -> None:
        super().__init__()
        self._dimlevel = dimlevel
        self._state = dimlevel > 0
        self._last_dimlevel = dimlevel if dimlevel > 0 else 100

    @property
    def dimlevel(self) -> float:
        return self._dimlevel

    async def get_state(self) -> bool:
        return self._state

    async def get_dimlevel(self) -> float:
        return self._dimlevel

    async def turn_on(self) -> None:
        await self.change_dimlevel_to(self._last_dimlevel)

    async def turn_off(self) -> None:
        await self.change_dimlevel_to(0)

    async def toggle(self) -> None:
        await self.change_state_to(not self._state)

    async def change_state_to(self, state: bool) -> None:
        if state:
            await self.turn_on()
        else:
            await self.turn_off()

    async def change_dimlevel_to(self, dimlevel: float) -> None:
        dimlevel = min(max(float(dimlevel), 0), 100)
        if dimlevel > 0:
            self._last_dimlevel = dimlevel
        if dimlevel != self._dimlevel:
            self._dimlevel = dimlevel
            self.device.set_attribute("dimlevel", dimlevel)
        state = dimlevel > 0
        if state != self._state:
            self._state = state
            self.device.set_attribute("state", state)

    def accessors(self) -> Dict[str, Accessor]:
        return {"state": self.get_state, "dimlevel": self.get_dimlevel}

    def action_handlers(self) -> Dict[str, ActionHandler]:
        return {
            "turnOn": self.turn_on,
            "turnOff": self.turn_off,
            "toggle": self.toggle,
            "changeStateTo": self.change_state_to,
            "changeDimlevelTo": self.change_dimlevel_to,
        }


class PositionControllable(Capability):
    """Shutters and blinds moving up or down."""

    name = "position_controllable"
    POSITIONS = ("up", "down", "stopped")
    ATTRIBUTES = {
        "position": {
            "description": "State of the shutter",
            "type": "string",
            "enum": list(POSITIONS),
        },
    }
    ACTIONS = {
        "moveUp": _action("moveUp", "Raise the shutter"),
        "moveDown": _action("moveDown", "Lower the shutter"),
        "stop": _action("stop", "Stops the shutter"),
        "moveToPosition": _action("moveToPosition", "Moves the shutter", position="string"),
    }

    def __init__(self, position: str = "stopped") -> None:
        super().__init__()
        self._position = position

    @property
    def position(self) -> str:
        return self._position

    async def get_position(self) -> str:
        return self._position

    async def move_up(self) -> None:
        await self.move_to_position("up")

    async def move_down(self) -> None:
        await self.move_to_position("down")

    async def stop(self) -> None:
        await self.move_to_position("stopped")

    async def move_to_position(self, position: str) -> None:
        if position not in self.POSITIONS:
            raise ValueError(f"Invalid position '{position}', expected one of {self.POSITIONS}")
        if position == self._position:
            return
        self._position = position
        self.device.set_attribute("position", position)

    def accessors(self) -> Dict[str, Accessor]:
        return {"position": self.get_position}

    def action_handlers(self) -> Dict[str, ActionHandler]:
        return {
            "moveUp": self.move_up,
            "moveDown": self.move_down,
            "stop": self.stop,
            "moveToPosition": self.move_to_position,
        }


class Thermostatic(Capability):
    """Heating thermostat with a mode, a setpoint and comfort/eco presets."""

    name = "thermostatic"
    MODES = ("auto", "manual", "boost")
    ATTRIBUTES = {
        "mode": {
            "description": "The current mode",
            "type": "string",
            "enum": list(MODES),
        },
        "temperatureSetpoint": {
            "description": "The temperature setpoint",
            "type": "number",
            "unit": "°C",
            "label": "Temperature Setpoint",
        },
    }
    ACTIONS = {
        "changeModeTo": _action("changeModeTo", "Sets the mode", mode="string"),
        "changeTemperatureTo": _action(
            "changeTemperatureTo", "Sets the temperature setpoint", temperatureSetpoint="number"
        ),
        "changeToComfortTemperature": _action(
            "changeToComfortTemperature", "Sets the setpoint to the comfort temperature"
        ),
        "changeToEcoTemperature": _action(
            "changeToEcoTemperature", "Sets the setpoint to the eco temperature"
        ),
    }

    def __init__(
        self,
        mode: str = "auto",
        temperature_setpoint: float = 20,
        comfort_temperature: float = 21,
        eco_temperature: float = 17,
    ) -> None:
        super().__init__()
        self._mode = mode
        self._setpoint = temperature_setpoint
        self.comfort_temperature = float(comfort_temperature)
        self.eco_temperature = float(eco_temperature)

    async def get_mode(self) -> str:
        return self._mode

    async def get_temperature_setpoint(self) -> float:
        return self._setpoint

    async def change_mode_to(self, mode: str) -> None:
        if mode not in self.MODES:
            raise ValueError(f"Invalid mode '{mode}', expected one of {self.MODES}")
        if mode == self._mode:
            return
        self._mode = mode
        self.device.set_attribute("mode", mode)

    async def change_temperature_to(self, temperatureSetpoint: float) -> None:
        setpoint = float(temperatureSetpoint)
        if setpoint == self._setpoint:
            return
        self._setpoint = setpoint
        self.device.set_attribute("temperatureSetpoint", setpoint)

    async def change_to_comfort_temperature(self) -> None:
        await self.change_temperature_to(self.comfort_temperature)

    async def change_to_eco_temperature(self) -> None:
        await self.change_temperature_to(self.eco_temperature)

    def accessors(self) -> Dict[str, Accessor]:
        return {"mode": self.get_mode, "temperatureSetpoint": self.get_temperature_setpoint}

    def action_handlers(self) -> Dict[str, ActionHandler]:
        return {
            "changeModeTo": self.change_mode_to,
            "changeTemperatureTo": self.change_temperature_to,
            "changeToComfortTemperature": self.change_to_comfort_temperature,
            "changeToEcoTemperature": self.change_to_eco_temperature,
        }


# =============================================================================
# Sensors
# =============================================================================


class PresenceSensing(Capability):
    """Reports whether something is present."""

    name = "presence_sensing"
    ATTRIBUTES = {
        "presence": {
            "description": "Presence of the human/device",
            "type": "boolean",
            "labels": ["present", "absent"],
        },
    }
    ACTIONS = {
        "changePresenceTo": _action("changePresenceTo", "Sets the presence", presence="boolean"),
    }

    def __init__(self, presence: bool = False) -> None:
        super().__init__()
        self._presence = presence

    @property
    def presence(self) -> bool:
        return self._presence

    async def get_presence(self) -> bool:
        return self._presence

    async def change_presence_to(self, presence: bool) -> None:
        presence = bool(presence)
        if presence == self._presence:
            return
        self._presence = presence
        self.device.set_attribute("presence", presence)

    def accessors(self) -> Dict[str, Accessor]:
        return {"presence": self.get_presence}

    def action_handlers(self) -> Dict[str, ActionHandler]:
        return {"changePresenceTo": self.change_presence_to}


class ContactSensing(Capability):
    """Door and window contacts; True means closed."""

    name = "contact_sensing"
    ATTRIBUTES = {
        "contact": {
            "description": "State of the contact",
            "type": "boolean",
            "labels": ["closed", "opened"],
        },
    }
    ACTIONS = {
        "changeContactTo": _action("changeContactTo", "Sets the contact state", contact="boolean"),
    }

    def __init__(self, contact: bool = True) -> None:
        super().__init__()
        self._contact = contact

    async def get_contact(self) -> bool:
        return self._contact

    async def change_contact_to(self, contact: bool) -> None:
        contact = bool(contact)
        if contact == self._contact:
            return
        self._contact = contact
        self.device.set_attribute("contact", contact)

    def accessors(self) -> Dict[str, Accessor]:
        return {"contact": self.get_contact}

    def action_handlers(self) -> Dict[str, ActionHandler]:
        return {"changeContactTo": self.change_contact_to}


class TemperatureSensing(Capability):
    """
    Temperature (and optionally humidity) readings.

    Every reading is recorded, including repeats of the previous value.
    """

    name = "temperature_sensing"

    def __init__(
        self,
        temperature: Optional[float] = None,
        humidity: Optional[float] = None,
        with_humidity: bool = False,
    ) -> None:
        super().__init__()
        self._temperature = temperature
        self._humidity = humidity
        self._with_humidity = with_humidity or humidity is not None

    def attributes(self) -> Dict[str, Dict[str, Any]]:
        attributes: Dict[str, Dict[str, Any]] = {
            "temperature": {
                "description": "The measured temperature",
                "type": "number",
                "unit": "°C",
                "acronym": "T",
            },
        }
        if self._with_humidity:
            attributes["humidity"] = {
                "description": "The measured humidity",
                "type": "number",
                "unit": "%",
                "acronym": "RH",
            }
        return attributes

    async def get_temperature(self) -> Optional[float]:
        return self._temperature

    async def get_humidity(self) -> Optional[float]:
        return self._humidity

    def set_temperature(self, temperature: float) -> None:
        self._temperature = temperature
        self.device.set_attribute("temperature", temperature)

    def set_humidity(self, humidity: float) -> None:
        if not self._with_humidity:
            raise ValueError(f"Device '{self.device.id}' does not measure humidity")
        self._humidity = humidity
        self.device.set_attribute("humidity", humidity)

    def accessors(self) -> Dict[str, Accessor]:
        accessors: Dict[str, Accessor] = {"temperature": self.get_temperature}
        if self._with_humidity:
            accessors["humidity"] = self.get_humidity
        return accessors


# =============================================================================
# Scheduled and derived values
# =============================================================================


class Timing(Capability):
    """
    A stopwatch counting seconds while running.

    The tick task is the only scheduled work a device carries; it is cancelled
    by stopTimer and by device destruction.
    """

    name = "timing"
    ATTRIBUTES = {
        "time": {
            "description": "The elapsed time",
            "type": "number",
            "unit": "s",
            "displaySparkline": False,
        },
        "running": {
            "description": "Is the timer running?",
            "type": "boolean",
            "labels": ["running", "stopped"],
        },
    }
    ACTIONS = {
        "startTimer": _action("startTimer", "Starts the timer"),
        "stopTimer": _action("stopTimer", "Stops the timer"),
        "resetTimer": _action("resetTimer", "Resets the timer to zero"),
    }

    def __init__(self, resolution: float = 1.0, time: float = 0) -> None:
        super().__init__()
        if resolution <= 0:
            raise ValueError("Timer resolution must be positive")
        self.resolution = resolution
        self._time = time
        self._running = False
        self._task: Optional[asyncio.Task] = None

    @property
    def time(self) -> float:
        return self._time

    @property
    def running(self) -> bool:
        return self._running

    async def get_time(self) -> float:
        return self._time

    async def get_running(self) -> bool:
        return self._running

    async def start_timer(self) -> None:
        if self._task is not None:
            return
        self._task = asyncio.get_running_loop().create_task(self._tick())
        self._set_running(True)

    async def stop_timer(self) -> None:
        self._cancel_tick()
        self._set_running(False)

    async def reset_timer(self) -> None:
        self._set_time(0)

    async def _tick(self) -> None:
        while True:
            await asyncio.sleep(self.resolution)
            self._set_time(round(self._time + self.resolution, 6))

    def _cancel_tick(self) -> None:
        if self._task is not None:
            self._task.cancel()
            self._task = None

    def _set_time(self, time: float) -> None:
        self._time = time
        self.device.set_attribute("time", time)

    def _set_running(self, running: bool) -> None:
        if running == self._running:
            return
        self._running = running
        self.device.set_attribute("running", running)

    def accessors(self) -> Dict[str, Accessor]:
        return {"time": self.get_time, "running": self.get_running}

    def action_handlers(self) -> Dict[str, ActionHandler]:
        return {
            "startTimer": self.start_timer,
            "stopTimer": self.stop_timer,
            "resetTimer": self.reset_timer,
        }

    def destroy(self) -> None:
        self._cancel_tick()
        self._running = False


class ExpressionBacked(Capability):
    """
    Attributes computed from variable expressions.

    Each configured variable becomes one attribute whose type follows the
    parsed expression's datatype. When a referenced variable changes, the
    expression is re-evaluated and the attribute updated.
    """

    name = "expression_backed"

    def __init__(self, variables: List[Dict[str, Any]], adapter: "VariableAdapter") -> None:
        super().__init__()
        self._adapter = adapter
        self._variables = variables
        self._parsed: Dict[str, "ParsedExpression"] = {}
        self._callbacks: Dict[str, Any] = {}
        self._pending: Set[asyncio.Task] = set()
        for variable in variables:
            name = variable["name"]
            if name in self._parsed:
                raise ValueError(f"Duplicate variable attribute '{name}'")
            self._parsed[name] = adapter.parse_expression(variable["expression"])

    def bind(self, device: "Device") -> None:
        super().bind(device)
        for name, parsed in self._parsed.items():
            callback = self._make_change_callback(name)
            self._callbacks[name] = callback
            self._adapter.notify_on_change(parsed.tokens, callback)

    def attributes(self) -> Dict[str, Dict[str, Any]]:
        attributes: Dict[str, Dict[str, Any]] = {}
        for variable in self._variables:
            name = variable["name"]
            parsed = self._parsed[name]
            attr_type = "number" if parsed.datatype == "numeric" else "string"
            spec: Dict[str, Any] = {
                "description": variable["expression"],
                "type": variable.get("type") or attr_type,
            }
            for key in ("unit", "label", "acronym", "discrete"):
                if variable.get(key) is not None:
                    spec[key] = variable[key]
            attributes[name] = spec
        return attributes

    async def evaluate(self, name: str) -> Any:
        parsed = self._parsed[name]
        if parsed.datatype == "numeric":
            return await self._adapter.evaluate_numeric_expression(parsed.tokens)
        return await self._adapter.evaluate_string_expression(parsed.tokens)

    def accessors(self) -> Dict[str, Accessor]:
        return {name: self._make_accessor(name) for name in self._parsed}

    def _make_accessor(self, name: str) -> Accessor:
        async def accessor() -> Any:
            return await self.evaluate(name)

        return accessor

    def _make_change_callback(self, name: str):
        def on_change(*_: Any) -> None:
            try:
                loop = asyncio.get_running_loop()
            except RuntimeError:
                logger.warning(f"Cannot re-evaluate '{name}' without a running loop")
                return
            task = loop.create_task(self._refresh(name))
            self._pending.add(task)
            task.add_done_callback(self._pending.discard)

        return on_change

    async def _refresh(self, name: str) -> None:
        try:
            value = await self.evaluate(name)
        except Exception as e:
            logger.error(f"Error evaluating variable '{name}': {e}", exc_info=True)
            return
        self.device.set_attribute(name, value)

    def destroy(self) -> None:
        for callback in self._callbacks.values():
            self._adapter.cancel_notify_on_change(callback)
        self._callbacks.clear()
        for task in list(self._pending):
            task.cancel()
