"""Tests for attribute descriptors and attribute runtime state."""

import logging

import pytest

from home_state.core import (
    HISTORY_SIZE,
    AttributeType,
    Device,
    InvalidAttributeError,
    validate_attribute_descriptor,
)


def make_device(**attributes):
    return Device({"id": "dev", "name": "Dev"}, attributes=attributes)


class TestDescriptorValidation:
    """Test attribute declaration checks and defaults."""

    def test_missing_description(self):
        with pytest.raises(InvalidAttributeError, match="No description"):
            validate_attribute_descriptor("state", {"type": "boolean"})

    def test_missing_type(self):
        with pytest.raises(InvalidAttributeError, match="No type"):
            validate_attribute_descriptor("state", {"description": "State"})

    def test_invalid_type(self):
        with pytest.raises(InvalidAttributeError, match="invalid type 'float'"):
            validate_attribute_descriptor("temp", {"description": "Temp", "type": "float"})

    def test_numeric_defaults(self):
        descriptor = validate_attribute_descriptor(
            "temperature", {"description": "Temperature", "type": "number"}
        )
        assert descriptor.type == AttributeType.NUMBER
        assert descriptor.unit == ""
        assert descriptor.discrete is False
        assert descriptor.label == "Temperature"
        assert descriptor.labels is None

    def test_boolean_defaults(self):
        descriptor = validate_attribute_descriptor("state", {"description": "State", "type": "boolean"})
        assert descriptor.labels == ("true", "false")
        assert descriptor.discrete is True
        assert descriptor.unit is None

    def test_explicit_values_kept(self):
        descriptor = validate_attribute_descriptor(
            "dimlevel",
            {
                "description": "Level",
                "type": "integer",
                "unit": "%",
                "label": "Dim Level",
                "discrete": True,
                "acronym": "DL",
                "displaySparkline": False,
            },
        )
        assert descriptor.unit == "%"
        assert descriptor.label == "Dim Level"
        assert descriptor.discrete is True
        assert descriptor.acronym == "DL"
        assert descriptor.display_sparkline is False

    def test_to_dict_shape(self):
        descriptor = validate_attribute_descriptor(
            "position",
            {"description": "Position", "type": "string", "enum": ["up", "down"]},
        )
        assert descriptor.to_dict() == {
            "name": "position",
            "description": "Position",
            "type": "string",
            "label": "Position",
            "discrete": True,
            "enum": ["up", "down"],
        }

    def test_device_construction_validates(self):
        with pytest.raises(InvalidAttributeError):
            make_device(broken={"type": "number"})


class TestAttributeStore:
    """Test value, timestamp and history tracking."""

    def test_initially_unset(self):
        device = make_device(temperature={"description": "T", "type": "number"})
        meta = device.get_attribute_meta("temperature")

        assert meta.get_last_value() is None
        assert meta.last_update is None
        assert len(meta.history) == 0

    def test_update_records_and_emits(self):
        device = make_device(temperature={"description": "T", "type": "number"})
        meta = device.get_attribute_meta("temperature")
        seen = []
        device.on("temperature", lambda event: seen.append(event.payload["value"]))

        meta.update(21.0)

        assert meta.get_last_value() == 21.0
        assert meta.last_update is not None
        assert [entry.value for entry in meta.history] == [21.0]
        assert seen == [21.0]

    def test_store_updated_before_other_listeners(self):
        device = make_device(temperature={"description": "T", "type": "number"})
        observed = []
        device.on(
            "temperature",
            lambda event: observed.append(device.get_last_attribute_value("temperature")),
        )

        device.set_attribute("temperature", 19.5)

        assert observed == [19.5]

    def test_history_is_bounded(self):
        device = make_device(counter={"description": "Counter", "type": "integer"})

        for value in range(1, 32):
            device.set_attribute("counter", value)

        history = device.get_attribute_meta("counter").history
        assert len(history) == HISTORY_SIZE == 30
        assert [entry.value for entry in history] == list(range(2, 32))
        assert device.get_last_attribute_value("counter") == 31

    def test_type_mismatch_is_logged_not_fatal(self, caplog):
        device = make_device(temperature={"description": "T", "type": "number"})

        with caplog.at_level(logging.WARNING):
            device.set_attribute("temperature", "warm")

        assert device.get_last_attribute_value("temperature") == "warm"
        assert "does not match type 'number'" in caplog.text

    def test_unknown_attribute(self):
        device = make_device()
        with pytest.raises(ValueError, match="has no attribute"):
            device.get_attribute_meta("missing")
