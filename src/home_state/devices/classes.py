"""
Built-in device classes.

Each class is a config schema plus a factory that picks capabilities. Factories
seed capability state from the persisted last value; the AttributeStore is
filled later by the post-registration refresh.
"""

from typing import TYPE_CHECKING, Any, Dict, Optional

from home_state.core.capabilities import (
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
from home_state.core.device import Device
from home_state.core.errors import DeviceConfigError
from home_state.core.persistence import DeviceState

if TYPE_CHECKING:
    from home_state.core.manager import DeviceManager


def last_value(last_state: Optional[DeviceState], name: str, default: Any = None) -> Any:
    """Persisted value of an attribute, or default."""
    if not last_state:
        return default
    value = (last_state.get(name) or {}).get("value")
    return default if value is None else value


# =============================================================================
# Schemas
# =============================================================================

DUMMY_SWITCH_SCHEMA: Dict[str, Any] = {
    "title": "DummySwitch config options",
    "type": "object",
    "extensions": ["xLink", "xOnLabel", "xOffLabel", "xAttributeOptions"],
    "properties": {},
}

DUMMY_DIMMER_SCHEMA: Dict[str, Any] = {
    "title": "DummyDimmer config options",
    "type": "object",
    "extensions": ["xLink", "xOnLabel", "xOffLabel", "xAttributeOptions"],
    "properties": {},
}

DUMMY_SHUTTER_SCHEMA: Dict[str, Any] = {
    "title": "DummyShutter config options",
    "type": "object",
    "extensions": ["xLink", "xAttributeOptions"],
    "properties": {},
}

DUMMY_THERMOSTAT_SCHEMA: Dict[str, Any] = {
    "title": "DummyHeatingThermostat config options",
    "type": "object",
    "extensions": ["xLink", "xAttributeOptions"],
    "properties": {
        "comfyTemp": {
            "description": "The default comfort mode temperature",
            "type": "number",
            "default": 21,
        },
        "ecoTemp": {
            "description": "The default eco mode temperature",
            "type": "number",
            "default": 17,
        },
    },
}

DUMMY_PRESENCE_SENSOR_SCHEMA: Dict[str, Any] = {
    "title": "DummyPresenceSensor config options",
    "type": "object",
    "extensions": ["xLink", "xPresentLabel", "xAbsentLabel", "xAttributeOptions"],
    "properties": {},
}

DUMMY_CONTACT_SENSOR_SCHEMA: Dict[str, Any] = {
    "title": "DummyContactSensor config options",
    "type": "object",
    "extensions": ["xLink", "xClosedLabel", "xOpenedLabel", "xAttributeOptions"],
    "properties": {},
}

DUMMY_TEMPERATURE_SENSOR_SCHEMA: Dict[str, Any] = {
    "title": "DummyTemperatureSensor config options",
    "type": "object",
    "extensions": ["xLink", "xAttributeOptions"],
    "properties": {
        "humidity": {
            "description": "Also report humidity",
            "type": "boolean",
            "default": False,
        },
    },
}

TIMER_SCHEMA: Dict[str, Any] = {
    "title": "Timer config options",
    "type": "object",
    "extensions": ["xLink", "xAttributeOptions"],
    "properties": {
        "resolution": {
            "description": "Seconds between two updates of the elapsed time",
            "type": "number",
            "exclusiveMinimum": 0,
            "default": 1,
        },
    },
}

VARIABLES_DEVICE_SCHEMA: Dict[str, Any] = {
    "title": "VariablesDevice config options",
    "type": "object",
    "extensions": ["xLink", "xAttributeOptions"],
    "required": ["variables"],
    "properties": {
        "variables": {
            "description": "Variables to display",
            "type": "array",
            "default": [],
            "items": {
                "type": "object",
                "required": ["name", "expression"],
                "properties": {
                    "name": {"description": "Name for the corresponding attribute", "type": "string"},
                    "expression": {"description": "The expression to use", "type": "string"},
                    "type": {"description": "The type of the attribute", "type": "string"},
                    "unit": {"description": "The unit of the attribute", "type": "string"},
                    "label": {"description": "A custom label for the attribute", "type": "string"},
                    "acronym": {"description": "Acronym to show", "type": "string"},
                    "discrete": {"description": "Whether values are discrete", "type": "boolean"},
                },
            },
        },
    },
}


# =============================================================================
# Factories
# =============================================================================


def create_dummy_switch(config, last_state, context: HubContext) -> Device:
    switch = Switchable(state=bool(last_value(last_state, "state", False)))
    return Device(config, context, capabilities=[switch])


def create_dummy_dimmer(config, last_state, context: HubContext) -> Device:
    dimmer = Dimmable(dimlevel=float(last_value(last_state, "dimlevel", 0)))
    return Device(config, context, capabilities=[dimmer])


def create_dummy_shutter(config, last_state, context: HubContext) -> Device:
    shutter = PositionControllable(position=last_value(last_state, "position", "stopped"))
    return Device(config, context, capabilities=[shutter])


def create_dummy_thermostat(config, last_state, context: HubContext) -> Device:
    thermostat = Thermostatic(
        mode=last_value(last_state, "mode", "auto"),
        temperature_setpoint=float(
            last_value(last_state, "temperatureSetpoint", config["comfyTemp"])
        ),
        comfort_temperature=config["comfyTemp"],
        eco_temperature=config["ecoTemp"],
    )
    return Device(config, context, capabilities=[thermostat])


def create_dummy_presence_sensor(config, last_state, context: HubContext) -> Device:
    sensor = PresenceSensing(presence=bool(last_value(last_state, "presence", False)))
    return Device(config, context, capabilities=[sensor])


def create_dummy_contact_sensor(config, last_state, context: HubContext) -> Device:
    sensor = ContactSensing(contact=bool(last_value(last_state, "contact", True)))
    return Device(config, context, capabilities=[sensor])


def create_dummy_temperature_sensor(config, last_state, context: HubContext) -> Device:
    sensor = TemperatureSensing(
        temperature=last_value(last_state, "temperature"),
        humidity=last_value(last_state, "humidity"),
        with_humidity=config["humidity"],
    )
    return Device(config, context, capabilities=[sensor])


def create_timer(config, last_state, context: HubContext) -> Device:
    timer = Timing(resolution=config["resolution"], time=last_value(last_state, "time", 0))
    return Device(config, context, capabilities=[timer])


def create_variables_device(config, last_state, context: HubContext) -> Device:
    if context.variables is None:
        raise DeviceConfigError(f"Device '{config['id']}' needs variables, but none are available")
    backed = ExpressionBacked(variables=config["variables"], adapter=context.variables)
    return Device(config, context, capabilities=[backed])


def prepare_variables_config(config: Dict[str, Any]) -> None:
    """Accept a single "expression" shorthand for one variable named "value"."""
    expression = config.pop("expression", None)
    if expression is not None and "variables" not in config:
        config["variables"] = [{"name": "value", "expression": expression}]


BUILTIN_DEVICE_CLASSES = (
    ("DummySwitch", DUMMY_SWITCH_SCHEMA, create_dummy_switch, None),
    ("DummyDimmer", DUMMY_DIMMER_SCHEMA, create_dummy_dimmer, None),
    ("DummyShutter", DUMMY_SHUTTER_SCHEMA, create_dummy_shutter, None),
    ("DummyHeatingThermostat", DUMMY_THERMOSTAT_SCHEMA, create_dummy_thermostat, None),
    ("DummyPresenceSensor", DUMMY_PRESENCE_SENSOR_SCHEMA, create_dummy_presence_sensor, None),
    ("DummyContactSensor", DUMMY_CONTACT_SENSOR_SCHEMA, create_dummy_contact_sensor, None),
    ("DummyTemperatureSensor", DUMMY_TEMPERATURE_SENSOR_SCHEMA, create_dummy_temperature_sensor, None),
    ("Timer", TIMER_SCHEMA, create_timer, None),
    ("VariablesDevice", VARIABLES_DEVICE_SCHEMA, create_variables_device, prepare_variables_config),
)


def register_builtin_device_classes(manager: "DeviceManager") -> None:
    """Register every built-in device class with a manager."""
    for class_name, schema, factory, prepare_config in BUILTIN_DEVICE_CLASSES:
        manager.register_device_class(
            class_name,
            config_schema=schema,
            factory=factory,
            prepare_config=prepare_config,
        )
