"""Tests for config extensions and schema helpers."""

import pytest

from home_state.core import (
    DEFAULT_CONFIG_EXTENSIONS,
    AttributeOptionsExtension,
    Device,
    DeviceConfigError,
    LabelExtension,
    PresenceSensing,
    Switchable,
)
from home_state.core.schema import enhance_config_with_defaults, validate_config


class TestApplicability:
    """Test opt-in by name."""

    def test_applicable_only_when_listed(self):
        extension = LabelExtension("xOnLabel", "state", 0, "On label")

        assert extension.applicable({"extensions": ["xOnLabel"]})
        assert not extension.applicable({"extensions": ["xOffLabel"]})
        assert not extension.applicable({})

    def test_extend_config_schema(self):
        extension = LabelExtension("xOnLabel", "state", 0, "On label")
        schema = {"extensions": ["xOnLabel"], "properties": {}}
        other = {"properties": {}}

        extension.extend_config_schema(schema)
        extension.extend_config_schema(other)

        assert schema["properties"]["xOnLabel"]["type"] == "string"
        assert other["properties"] == {}

    def test_default_order(self):
        names = [extension.name for extension in DEFAULT_CONFIG_EXTENSIONS]
        assert names[0] == "xLink"
        assert names[-1] == "xAttributeOptions"
        assert names.index("xOnLabel") < names.index("xOffLabel")


class TestApply:
    """Test applying extensions to devices."""

    def test_label_extensions(self):
        config = {"id": "lamp", "name": "Lamp", "xOnLabel": "an", "xOffLabel": "aus"}
        device = Device(config, capabilities=[Switchable()])

        for extension in DEFAULT_CONFIG_EXTENSIONS:
            extension.apply(config, device)

        assert device.attributes["state"].labels == ("an", "aus")

    def test_apply_is_idempotent(self):
        config = {"id": "p", "name": "P", "xPresentLabel": "home"}
        device = Device(config, capabilities=[PresenceSensing()])
        extension = LabelExtension("xPresentLabel", "presence", 0, "Present label")

        extension.apply(config, device)
        extension.apply(config, device)

        assert device.attributes["presence"].labels == ("home", "absent")

    def test_label_for_missing_attribute_ignored(self):
        config = {"id": "p", "name": "P", "xOnLabel": "an"}
        device = Device(config, capabilities=[PresenceSensing()])

        LabelExtension("xOnLabel", "state", 0, "On label").apply(config, device)

        assert "state" not in device.attributes

    def test_attribute_options(self):
        config = {
            "id": "lamp",
            "name": "Lamp",
            "xAttributeOptions": [
                {"name": "state", "hidden": True, "displaySparkline": False},
                {"name": "nope", "hidden": True},
            ],
        }
        device = Device(config, capabilities=[Switchable()])

        AttributeOptionsExtension().apply(config, device)

        assert device.attributes["state"].hidden is True
        assert device.attributes["state"].display_sparkline is False

    def test_shared_defaults_untouched(self):
        config = {"id": "lamp", "name": "Lamp", "xOnLabel": "an"}
        device = Device(config, capabilities=[Switchable()])
        sibling = Device({"id": "other", "name": "Other"}, capabilities=[Switchable()])

        LabelExtension("xOnLabel", "state", 0, "On label").apply(config, device)

        assert sibling.attributes["state"].labels == ("on", "off")
        assert Switchable.ATTRIBUTES["state"]["labels"] == ["on", "off"]


class TestSchemaHelpers:
    """Test validation and defaulting."""

    SCHEMA = {
        "type": "object",
        "required": ["id"],
        "properties": {
            "id": {"type": "string"},
            "interval": {"type": "number", "default": 5},
            "options": {
                "type": "object",
                "properties": {"retries": {"type": "integer", "default": 3}},
            },
            "tags": {"type": "array", "default": []},
        },
    }

    def test_valid_config(self):
        validate_config({"id": "x", "interval": 2}, self.SCHEMA, "device 'x'")

    def test_all_errors_reported(self):
        with pytest.raises(DeviceConfigError) as exc_info:
            validate_config({"interval": "often"}, self.SCHEMA, "device 'x'")

        message = str(exc_info.value)
        assert "device 'x'" in message
        assert "'id' is a required property" in message
        assert "interval" in message

    def test_malformed_schema(self):
        with pytest.raises(DeviceConfigError, match="Invalid schema"):
            validate_config({}, {"type": "no-such-type"}, "device 'x'")

    def test_defaults_filled_in_place(self):
        config = {"id": "x", "options": {}}

        result = enhance_config_with_defaults(self.SCHEMA, config)

        assert result is config
        assert config["interval"] == 5
        assert config["options"] == {"retries": 3}
        assert config["tags"] == []

    def test_defaults_are_copies(self):
        first = enhance_config_with_defaults(self.SCHEMA, {"id": "a"})
        second = enhance_config_with_defaults(self.SCHEMA, {"id": "b"})

        first["tags"].append("x")

        assert second["tags"] == []
        assert self.SCHEMA["properties"]["tags"]["default"] == []

    def test_existing_values_kept(self):
        config = enhance_config_with_defaults(self.SCHEMA, {"id": "x", "interval": 1})
        assert config["interval"] == 1
