"""Tests for presence predicates."""

import pytest

from home_state.core import PredicateParseError
from home_state.predicates import PRESENCE_PATTERN, PresencePredicateProvider


def add_presence_sensor(manager, device_id, name=None):
    return manager.add_device_by_config(
        {"id": device_id, "name": name or device_id, "class": "DummyPresenceSensor"}
    )


@pytest.fixture
def provider(manager):
    return PresencePredicateProvider(manager)


class TestPresenceGrammar:
    """Test the phrase pattern."""

    @pytest.mark.parametrize(
        "text,negated",
        [
            ("frontdoor is present", False),
            ("Frontdoor IS PRESENT", False),
            ("frontdoor is not present", True),
            ("my  phone   is not   present", True),
        ],
    )
    def test_pattern(self, text, negated):
        match = PRESENCE_PATTERN.match(text)

        assert match is not None
        assert (match.group(2) is not None) == negated

    @pytest.mark.parametrize(
        "text",
        ["is present", "frontdoor is presently open", "frontdoor present", "frontdoor is absent"],
    )
    def test_pattern_rejects(self, text):
        assert PRESENCE_PATTERN.match(text) is None


class TestPresencePredicates:
    """Test deciding and evaluating presence."""

    def test_can_decide(self, manager, provider):
        add_presence_sensor(manager, "frontdoor")

        assert provider.can_decide("frontdoor is present") == "state"
        assert provider.can_decide("frontdoor is not present") == "state"
        assert provider.can_decide("backdoor is present") is False
        assert provider.can_decide("state of frontdoor is on") is False

    def test_device_without_presence_not_decided(self, manager, provider):
        manager.add_device_by_config({"id": "lamp", "name": "Lamp", "class": "DummySwitch"})

        assert provider.can_decide("lamp is present") is False

    @pytest.mark.asyncio
    async def test_frontdoor_end_to_end(self, manager, provider):
        frontdoor = add_presence_sensor(manager, "frontdoor")

        assert await provider.is_true("p1", "frontdoor is present") is False

        await frontdoor.call_action("changePresenceTo", presence=True)

        assert await provider.is_true("p1", "frontdoor is present") is True
        assert await provider.is_true("p2", "frontdoor is not present") is False

    @pytest.mark.asyncio
    async def test_matches_display_name_case_insensitive(self, manager, provider):
        add_presence_sensor(manager, "phone-1", name="My Phone")

        assert await provider.is_true("p", "my phone is not present") is True

    def test_repeated_whitespace(self, manager, provider):
        add_presence_sensor(manager, "phone-1", name="My Phone")

        match = provider.parse("my  phone is  not  present")

        assert match is not None
        assert match.negated is True

    def test_first_registered_device_wins(self, manager, provider):
        first = add_presence_sensor(manager, "hall-1", name="Hall")
        add_presence_sensor(manager, "hall-2", name="Hall")

        assert provider.parse("hall is present").device is first

    def test_devices_without_presence_are_skipped(self, manager, provider):
        manager.add_device_by_config({"id": "hall-lamp", "name": "Hall", "class": "DummySwitch"})
        sensor = add_presence_sensor(manager, "hall-sensor", name="Hall")

        assert provider.parse("hall is present").device is sensor

    def test_unknown_value_satisfies_neither_phrase(self, manager, provider):
        sensor = add_presence_sensor(manager, "frontdoor")
        assert sensor.get_last_attribute_value("presence") is None

        assert provider.parse("frontdoor is present").evaluate(None) is False
        assert provider.parse("frontdoor is not present").evaluate(None) is False

    @pytest.mark.asyncio
    async def test_undecidable_raises(self, provider):
        with pytest.raises(PredicateParseError, match="Cannot decide"):
            await provider.is_true("p", "nobody is present")


class TestPresenceNotifications:
    """Test change notifications."""

    def test_notify_on_flips_only(self, manager, provider):
        sensor = add_presence_sensor(manager, "frontdoor")
        calls = []

        provider.notify_when("n1", "frontdoor is present", calls.append)
        for value in (False, True, True, False):
            sensor.set_attribute("presence", value)

        assert calls == [True, False]

    def test_negated_notifications(self, manager, provider):
        sensor = add_presence_sensor(manager, "frontdoor")
        calls = []

        provider.notify_when("n1", "frontdoor is not present", calls.append)
        sensor.set_attribute("presence", False)
        sensor.set_attribute("presence", True)

        assert calls == [True, False]

    def test_reregistering_replaces(self, manager, provider):
        sensor = add_presence_sensor(manager, "frontdoor")
        first, second = [], []

        provider.notify_when("n1", "frontdoor is present", first.append)
        provider.notify_when("n1", "frontdoor is present", second.append)
        sensor.set_attribute("presence", True)

        assert first == []
        assert second == [True]
        # attribute store, manager forwarder, one predicate
        assert sensor.listener_count("presence") == 3

    def test_cancel(self, manager, provider):
        sensor = add_presence_sensor(manager, "frontdoor")
        calls = []

        provider.notify_when("n1", "frontdoor is present", calls.append)
        provider.cancel_notify("n1")
        provider.cancel_notify("never-registered")
        sensor.set_attribute("presence", True)

        assert calls == []
        assert not provider.has_notify("n1")
