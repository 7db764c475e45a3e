"""
Config extensions.

An extension is an optional piece of configuration any device class can opt
into by listing the extension name in its schema's "extensions" list. The
extension contributes schema properties and, once the device is built,
applies the configured values to it (e.g., custom on/off labels).
"""

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any, Dict, Iterable, List, Tuple
import copy
import logging

if TYPE_CHECKING:
    from home_state.core.device import Device

logger = logging.getLogger(__name__)


class ConfigExtension(ABC):
    """
    Base class for config extensions.

    apply() must be idempotent and must change descriptors only through
    Device.override_attribute, which copies the attributes map first.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Name a schema lists in "extensions" to opt in."""
        pass

    @abstractmethod
    def schema_properties(self) -> Dict[str, Dict[str, Any]]:
        """Schema properties this extension adds."""
        pass

    @abstractmethod
    def apply(self, config: Dict[str, Any], device: "Device") -> None:
        """Apply the configured values to a constructed device."""
        pass

    def applicable(self, schema: Dict[str, Any]) -> bool:
        """Check whether a class schema opted into this extension."""
        return self.name in schema.get("extensions", [])

    def extend_config_schema(self, schema: Dict[str, Any]) -> None:
        """Merge this extension's properties into an opted-in schema."""
        if not self.applicable(schema):
            return
        properties = schema.setdefault("properties", {})
        for prop_name, prop in self.schema_properties().items():
            properties[prop_name] = copy.deepcopy(prop)


class LabelExtension(ConfigExtension):
    """Overrides one of the two display labels of a boolean attribute."""

    def __init__(self, name: str, attribute: str, index: int, description: str) -> None:
        self._name = name
        self.attribute = attribute
        self.index = index
        self.description = description

    @property
    def name(self) -> str:
        return self._name

    def schema_properties(self) -> Dict[str, Dict[str, Any]]:
        return {self._name: {"description": self.description, "type": "string"}}

    def apply(self, config: Dict[str, Any], device: "Device") -> None:
        label = config.get(self._name)
        if not label or not device.has_attribute(self.attribute):
            return
        labels = list(device.attributes[self.attribute].labels or ("true", "false"))
        labels[self.index] = label
        device.override_attribute(self.attribute, labels=tuple(labels))


class AttributeOptionsExtension(ConfigExtension):
    """Per-attribute display options."""

    OPTIONS = {"displaySparkline": "display_sparkline", "hidden": "hidden", "label": "label"}

    @property
    def name(self) -> str:
        return "xAttributeOptions"

    def schema_properties(self) -> Dict[str, Dict[str, Any]]:
        return {
            "xAttributeOptions": {
                "description": "Extra attribute options for one or more attributes",
                "type": "array",
                "default": [],
                "items": {
                    "type": "object",
                    "required": ["name"],
                    "properties": {
                        "name": {"description": "Name of the attribute", "type": "string"},
                        "displaySparkline": {
                            "description": "Show a sparkline behind the numeric attribute",
                            "type": "boolean",
                        },
                        "hidden": {"description": "Hide the attribute in the gui", "type": "boolean"},
                        "label": {"description": "Label of the attribute", "type": "string"},
                    },
                },
            },
        }

    def apply(self, config: Dict[str, Any], device: "Device") -> None:
        for option in config.get("xAttributeOptions") or []:
            name = option.get("name")
            if not device.has_attribute(name):
                logger.warning(
                    f"xAttributeOptions of device '{device.id}' names unknown attribute '{name}'"
                )
                continue
            changes = {
                field: option[key] for key, field in self.OPTIONS.items() if key in option
            }
            if changes:
                device.override_attribute(name, **changes)


class LinkExtension(ConfigExtension):
    """A link shown next to the device; stays in the config, the device is untouched."""

    @property
    def name(self) -> str:
        return "xLink"

    def schema_properties(self) -> Dict[str, Dict[str, Any]]:
        return {"xLink": {"description": "Link to add to the device", "type": "string"}}

    def apply(self, config: Dict[str, Any], device: "Device") -> None:
        pass


DEFAULT_CONFIG_EXTENSIONS: Tuple[ConfigExtension, ...] = (
    LinkExtension(),
    LabelExtension("xOnLabel", "state", 0, "The label for the on state"),
    LabelExtension("xOffLabel", "state", 1, "The label for the off state"),
    LabelExtension("xPresentLabel", "presence", 0, "The label for the present state"),
    LabelExtension("xAbsentLabel", "presence", 1, "The label for the absent state"),
    LabelExtension("xClosedLabel", "contact", 0, "The label for the closed state"),
    LabelExtension("xOpenedLabel", "contact", 1, "The label for the opened state"),
    AttributeOptionsExtension(),
)


def applicable_extensions(
    schema: Dict[str, Any], extensions: Iterable[ConfigExtension]
) -> List[ConfigExtension]:
    """Extensions a schema opted into, in extension order."""
    return [extension for extension in extensions if extension.applicable(schema)]
