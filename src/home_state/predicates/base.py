"""
Predicate provider base class.

A predicate is a short condition string ("kitchen light is on") evaluated
against live device state. A provider understands one grammar: it parses text
into a PredicateMatch bound to a device attribute, evaluates it once on
request, or calls back whenever its truth value flips.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Dict, Literal, Optional, Union
import logging

from home_state.core.bus import Event, EventFilter
from home_state.core.device import Device
from home_state.core.errors import PredicateParseError

if TYPE_CHECKING:
    from home_state.core.manager import DeviceManager

logger = logging.getLogger(__name__)

PredicateCallback = Callable[[bool], None]
Decision = Union[Literal["state"], Literal[False]]


@dataclass
class PredicateMatch:
    """
    A predicate resolved to one device attribute.

    Attributes:
        device: The device the predicate is about
        event_name: Attribute event to listen on
        get_value: Fetches the live attribute value
        evaluate: Reduces a raw attribute value to the predicate's truth value
        comparator: Canonical operator ("==", "!=", "<", ">"), if any
        negated: Whether the phrase was negated ("is not present")
        reference: The value compared against, if any
    """

    device: Device
    event_name: str
    get_value: Callable[[], Awaitable[Any]]
    evaluate: Callable[[Any], bool]
    comparator: Optional[str] = None
    negated: bool = False
    reference: Any = None

    async def is_true(self) -> bool:
        return self.evaluate(await self.get_value())

    def cached_result(self) -> bool:
        """Truth value of the device's cached attribute value."""
        return self.evaluate(self.device.get_last_attribute_value(self.event_name))


@dataclass
class NotifyRegistration:
    """
    A notify_when registration.

    The text is kept so the registration can be parsed again when its device
    is recreated. last_result is the truth value last reported (or the
    starting point), so repeated values and non-flipping changes are silent.
    """

    text: str
    callback: PredicateCallback
    match: PredicateMatch
    last_result: bool

    def on_attribute_changed(self, event: Event) -> None:
        result = self.match.evaluate(event.payload.get("value"))
        if result == self.last_result:
            return
        self.last_result = result
        self.callback(result)

    def bind(self) -> None:
        self.match.device.on(self.match.event_name, self.on_attribute_changed)

    def unbind(self) -> None:
        self.match.device.remove_listener(self.match.event_name, self.on_attribute_changed)


class PredicateProvider(ABC):
    """
    Base class for predicate providers.

    Subclasses implement parse(); the decide/evaluate/notify operations are
    built on it. Devices are searched in registration order and the first
    device matching the name with the required attribute wins.
    """

    def __init__(self, device_manager: "DeviceManager") -> None:
        self._device_manager = device_manager
        self._registrations: Dict[str, NotifyRegistration] = {}

        bus = device_manager.context.bus
        bus.subscribe(self._on_device_changed, EventFilter(event_type="device.changed"))
        bus.subscribe(self._on_device_removed, EventFilter(event_type="device.removed"))

    @abstractmethod
    def parse(self, text: str) -> Optional[PredicateMatch]:
        """
        Parse text into a match, without side effects.

        Returns:
            The match, or None if the text is not in this provider's grammar
            or names no suitable device
        """
        pass

    def can_decide(self, text: str) -> Decision:
        """Report "state" if the text parses to a device attribute, else False."""
        return "state" if self.parse(text) is not None else False

    async def is_true(self, id: str, text: str) -> bool:
        """
        Evaluate the predicate against the live attribute value.

        Raises:
            PredicateParseError: If the text cannot be decided
        """
        return await self._parse_or_raise(text).is_true()

    def notify_when(self, id: str, text: str, callback: PredicateCallback) -> None:
        """
        Call callback(bool) whenever the predicate's truth value changes.

        A previous registration under the same id is replaced.

        Raises:
            PredicateParseError: If the text cannot be decided
        """
        match = self._parse_or_raise(text)
        self.cancel_notify(id)
        registration = NotifyRegistration(
            text=text, callback=callback, match=match, last_result=match.cached_result()
        )
        registration.bind()
        self._registrations[id] = registration
        logger.debug(f"Notifying '{id}' when '{text}' changes")

    def cancel_notify(self, id: str) -> None:
        """Stop notifications registered under id; unknown ids are ignored."""
        registration = self._registrations.pop(id, None)
        if registration is None:
            return
        registration.unbind()
        logger.debug(f"Cancelled notifications for '{id}'")

    def has_notify(self, id: str) -> bool:
        return id in self._registrations

    def _on_device_changed(self, event: Event) -> None:
        """Move registrations on a recreated device over to its replacement."""
        for id, registration in list(self._registrations.items()):
            if registration.match.device.id != event.device_id:
                continue
            registration.unbind()
            match = self.parse(registration.text)
            if match is None:
                del self._registrations[id]
                logger.warning(
                    f"Dropped notifications for '{id}': "
                    f"'{registration.text}' no longer decidable after '{event.device_id}' changed"
                )
                continue
            # last_result carries over; only a flip from it calls back
            registration.match = match
            registration.bind()
            logger.debug(f"Rebound notifications for '{id}' to '{match.device.id}'")

    def _on_device_removed(self, event: Event) -> None:
        for id, registration in list(self._registrations.items()):
            if registration.match.device.id != event.device_id:
                continue
            registration.unbind()
            del self._registrations[id]
            logger.debug(f"Dropped notifications for '{id}': '{event.device_id}' was removed")

    def _parse_or_raise(self, text: str) -> PredicateMatch:
        match = self.parse(text)
        if match is None:
            raise PredicateParseError(f"Cannot decide predicate '{text}'")
        return match

    def _find_device(self, name: str, attribute: Callable[[Device], Optional[str]]):
        """
        Find the first device called name (id or display name, case-insensitive).

        Args:
            name: Name from the predicate text
            attribute: Resolves the attribute the predicate needs on a
                candidate device, or None if the device lacks it

        Returns:
            (device, attribute name) or (None, None)
        """
        wanted = name.strip().lower()
        for device in self._device_manager.get_devices():
            if wanted not in (device.id.lower(), device.name.strip().lower()):
                continue
            attr_name = attribute(device)
            if attr_name is not None:
                return device, attr_name
        return None, None
