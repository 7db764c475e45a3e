"""
Device property predicates.

Grammar: "<property> of <device> [is] <comparator> [equal|than|as] <reference>",
e.g. "temperature of living room is greater than 21" or "state of lamp is on".
"""

import math
import operator
import re
from typing import Any, Callable, Dict, Optional
import logging

from home_state.core.attributes import AttributeDescriptor, AttributeType
from home_state.core.device import Device

from .base import PredicateMatch, PredicateProvider

logger = logging.getLogger(__name__)

DEVICE_PROPERTY_PATTERN = re.compile(
    r"^(.+)\s+of\s+(.+?)\s+(?:is\s+)?(equal\s+to|equals*|lower|less|greater|is not|is)"
    r"(?:|\s+equal|\s+than|\s+as)?\s+(.+)$",
    re.IGNORECASE,
)

# "for" introduces durations ("... is on for 5 minutes"), handled elsewhere
DURATION_PATTERN = re.compile(r"\bfor\b", re.IGNORECASE)

# Connector words the pattern leaves in front of the reference ("than 20")
CONNECTOR_PATTERN = re.compile(r"^(?:than|as|equal)\s+(.+)$", re.IGNORECASE)

COMPARATORS: Dict[str, str] = {
    "is": "==",
    "equal": "==",
    "equals": "==",
    "equal to": "==",
    "equals to": "==",
    "is not": "!=",
    "greater": ">",
    "lower": "<",
    "less": "<",
}

OPERATORS: Dict[str, Callable[[Any, Any], bool]] = {
    "==": operator.eq,
    "!=": operator.ne,
    "<": operator.lt,
    ">": operator.gt,
}

_NOT_NUMERIC = object()


def normalize_comparator(token: str) -> Optional[str]:
    """Map a comparator phrase to its canonical operator (None if unknown)."""
    token = " ".join(token.lower().split())
    token = re.sub(r"^equals+", "equals", token)
    return COMPARATORS.get(token)


def _as_number(value: Any) -> Any:
    if isinstance(value, bool):
        return _NOT_NUMERIC
    if isinstance(value, (int, float)):
        number = value
    else:
        try:
            number = float(value)
        except (TypeError, ValueError):
            return _NOT_NUMERIC
    # Non-finite values ("nan", "inf") are not numbers here
    return number if math.isfinite(number) else _NOT_NUMERIC


def parse_reference(text: str, descriptor: AttributeDescriptor) -> Any:
    """
    Coerce a reference value for comparison with an attribute.

    Numbers become numeric; for boolean attributes "true"/"false" and the
    attribute's display labels become booleans; anything else stays a string.
    """
    number = _as_number(text)
    if number is not _NOT_NUMERIC:
        return number
    if descriptor.type == AttributeType.BOOLEAN:
        lowered = text.lower()
        true_words = {"true", (descriptor.labels or ("true", "false"))[0].lower()}
        false_words = {"false", (descriptor.labels or ("true", "false"))[1].lower()}
        if lowered in true_words:
            return True
        if lowered in false_words:
            return False
    return text


def _resolve_attribute(property_name: str) -> Callable[[Device], Optional[str]]:
    wanted = property_name.strip().lower()

    def resolve(device: Device) -> Optional[str]:
        if device.has_attribute(property_name.strip()):
            return property_name.strip()
        for name, descriptor in device.attributes.items():
            if wanted in (name.lower(), descriptor.label.lower()):
                return name
        return None

    return resolve


class DevicePropertyPredicateProvider(PredicateProvider):
    """Compares a device attribute with a reference value."""

    def parse(self, text: str) -> Optional[PredicateMatch]:
        match = DEVICE_PROPERTY_PATTERN.match(" ".join(text.split()))
        if match is None:
            return None

        property_name, device_name, token, reference = (g.strip() for g in match.groups())
        if DURATION_PATTERN.search(reference):
            return None

        # "equals to 5" leaves "to" in the reference
        if token.lower().startswith("equal") and reference.lower().startswith("to "):
            token = f"{token} to"
            reference = reference[3:].strip()
        else:
            connector = CONNECTOR_PATTERN.match(reference)
            if connector is not None:
                reference = connector.group(1)

        comparator = normalize_comparator(token)
        if comparator is None:
            logger.warning(f"Illegal comparator '{token}' in predicate '{text}'")
            return None

        device, attr_name = self._find_device(device_name, _resolve_attribute(property_name))
        if device is None:
            return None

        descriptor = device.attributes[attr_name]
        ref_value = parse_reference(reference, descriptor)
        numeric = _as_number(ref_value) is not _NOT_NUMERIC and not isinstance(ref_value, bool)
        if comparator in ("<", ">") and not numeric:
            logger.warning(
                f"Comparator '{token}' needs a numeric reference, got '{reference}' in '{text}'"
            )
            return None

        compare = OPERATORS[comparator]

        async def get_attribute_value() -> Any:
            return await device.get_updated_attribute_value(attr_name)

        def evaluate(value: Any) -> bool:
            if value is None:
                return False
            if numeric:
                number = _as_number(value)
                if number is _NOT_NUMERIC:
                    return comparator == "!="
                return compare(number, ref_value)
            return compare(value, ref_value)

        return PredicateMatch(
            device=device,
            event_name=attr_name,
            get_value=get_attribute_value,
            evaluate=evaluate,
            comparator=comparator,
            negated=comparator == "!=",
            reference=ref_value,
        )
