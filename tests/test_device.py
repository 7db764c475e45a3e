"""Tests for the Device entity and its lifecycle."""

import asyncio
import logging

import pytest

from home_state.core import (
    DeviceConfigError,
    Device,
    PresenceSensing,
    Switchable,
)


class TestDeviceConstruction:
    """Test id/name checks."""

    def test_missing_id(self):
        with pytest.raises(DeviceConfigError, match="no id"):
            Device({"name": "Lamp"})

    def test_missing_name(self):
        with pytest.raises(DeviceConfigError, match="no name"):
            Device({"id": "lamp", "name": ""})

    def test_suspicious_id_warns(self, caplog):
        with caplog.at_level(logging.WARNING):
            Device({"id": "living room.lamp", "name": "Lamp"})
        assert "contains characters other than" in caplog.text

    def test_grammar_keyword_in_name_warns(self, caplog):
        with caplog.at_level(logging.WARNING):
            Device({"id": "lamp", "name": "Lamp and Fan"})
        assert "contains 'and'" in caplog.text

    def test_plain_name_does_not_warn(self, caplog):
        with caplog.at_level(logging.WARNING):
            Device({"id": "lamp_1", "name": "Orange Lamp"})
        assert caplog.text == ""

    def test_capabilities_contribute(self):
        device = Device({"id": "lamp", "name": "Lamp"}, capabilities=[Switchable()])

        assert device.has_attribute("state")
        assert device.attributes["state"].labels == ("on", "off")
        assert set(device.actions) == {"turnOn", "turnOff", "toggle", "changeStateTo"}
        assert device.has_capability("switchable")
        assert isinstance(device.get_capability(Switchable), Switchable)

    def test_missing_capability(self):
        device = Device({"id": "lamp", "name": "Lamp"}, capabilities=[Switchable()])
        with pytest.raises(ValueError, match="is not presence_sensing"):
            device.get_capability(PresenceSensing)


class TestDeviceActions:
    """Test action dispatch."""

    @pytest.mark.asyncio
    async def test_call_action(self):
        device = Device({"id": "lamp", "name": "Lamp"}, capabilities=[Switchable()])

        await device.call_action("turnOn")

        assert device.get_last_attribute_value("state") is True
        assert await device.get_updated_attribute_value("state") is True

    @pytest.mark.asyncio
    async def test_unknown_action(self):
        device = Device({"id": "lamp", "name": "Lamp"})
        with pytest.raises(ValueError, match="has no action"):
            await device.call_action("explode")


class TestAttributeOverride:
    """Test copy-on-write descriptor overrides."""

    def test_override_does_not_touch_other_devices(self):
        first = Device({"id": "a", "name": "A"}, capabilities=[Switchable()])
        second = Device({"id": "b", "name": "B"}, capabilities=[Switchable()])
        original_map = first.attributes

        first.override_attribute("state", labels=("an", "aus"))

        assert first.attributes["state"].labels == ("an", "aus")
        assert second.attributes["state"].labels == ("on", "off")
        assert original_map["state"].labels == ("on", "off")
        assert Switchable.ATTRIBUTES["state"]["labels"] == ["on", "off"]


class TestDeviceLifecycle:
    """Test refresh and destroy."""

    @pytest.mark.asyncio
    async def test_after_register_fills_unset_values(self):
        device = Device({"id": "lamp", "name": "Lamp"}, capabilities=[Switchable(state=True)])

        device.after_register()
        await asyncio.sleep(0)

        assert device.get_last_attribute_value("state") is True

    @pytest.mark.asyncio
    async def test_refresh_error_is_logged(self, caplog):
        async def failing():
            raise RuntimeError("sensor offline")

        device = Device(
            {"id": "sensor", "name": "Sensor"},
            attributes={"temperature": {"description": "T", "type": "number"}},
            accessors={"temperature": failing},
        )

        with caplog.at_level(logging.ERROR):
            await device.refresh_unset_attributes()

        assert device.get_last_attribute_value("temperature") is None
        assert "sensor offline" in caplog.text

    @pytest.mark.asyncio
    async def test_refresh_after_destroy_is_noop(self):
        release = asyncio.Event()

        async def slow():
            await release.wait()
            return 20.0

        device = Device(
            {"id": "sensor", "name": "Sensor"},
            attributes={"temperature": {"description": "T", "type": "number"}},
            accessors={"temperature": slow},
        )
        refresh = asyncio.ensure_future(device.refresh_unset_attributes())
        await asyncio.sleep(0)

        device.destroy()
        release.set()
        await refresh

        assert device.get_last_attribute_value("temperature") is None

    def test_destroy_emits_and_detaches(self):
        device = Device({"id": "lamp", "name": "Lamp"}, capabilities=[Switchable()])
        destroyed = []
        changes = []
        device.on("destroy", destroyed.append)
        device.on("state", changes.append)

        device.destroy()
        device.emit("state", True)

        assert len(destroyed) == 1
        assert changes == []
        assert device.listener_count("state") == 0
        assert device.is_alive is False

    def test_writes_after_destroy_are_dropped(self):
        device = Device({"id": "lamp", "name": "Lamp"}, capabilities=[Switchable()])
        device.destroy()

        device.set_attribute("state", True)

        assert device.get_last_attribute_value("state") is None


class TestSerialization:
    """Test the public JSON shape."""

    def test_to_json(self):
        device = Device(
            {"id": "sensor", "name": "Sensor"},
            attributes={"temperature": {"description": "T", "type": "number", "unit": "°C"}},
        )
        device.set_attribute("temperature", 21.0)

        data = device.to_json()

        assert data["id"] == "sensor"
        attribute = data["attributes"][0]
        assert attribute["name"] == "temperature"
        assert attribute["unit"] == "°C"
        assert attribute["value"] == 21.0
        assert attribute["history"][0]["v"] == 21.0
        assert isinstance(attribute["lastUpdate"], int)
        assert data["actions"] == []
