"""Presence predicates: "<device> is [not] present"."""

import re
from typing import Any, Optional

from home_state.core.device import Device

from .base import PredicateMatch, PredicateProvider

PRESENCE_PATTERN = re.compile(r"^(.+)\s+is\s+(not\s+)?present$", re.IGNORECASE)


class PresencePredicateProvider(PredicateProvider):
    """Decides presence of devices exposing a "presence" attribute."""

    def parse(self, text: str) -> Optional[PredicateMatch]:
        match = PRESENCE_PATTERN.match(" ".join(text.split()))
        if match is None:
            return None

        negated = match.group(2) is not None
        device, _ = self._find_device(match.group(1), _presence_attribute)
        if device is None:
            return None

        async def get_presence() -> Any:
            return await device.get_updated_attribute_value("presence")

        def evaluate(value: Any) -> bool:
            # Unknown presence satisfies neither phrasing
            if value is None:
                return False
            return bool(value) != negated

        return PredicateMatch(
            device=device,
            event_name="presence",
            get_value=get_presence,
            evaluate=evaluate,
            comparator="!=" if negated else "==",
            negated=negated,
            reference=True,
        )


def _presence_attribute(device: Device) -> Optional[str]:
    return "presence" if device.has_attribute("presence") else None
