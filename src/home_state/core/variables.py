"""
Variable expression adapter interface.

Expression parsing and evaluation belong to the host (the variables
subsystem). Devices that derive attributes from expressions only talk to this
interface. A mock implementation is provided for tests and demos.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Tuple

ChangeCallback = Callable[..., None]


@dataclass(frozen=True)
class ParsedExpression:
    """
    Result of parsing an expression.

    Attributes:
        tokens: Opaque token sequence handed back to the evaluators
        datatype: "numeric" or "string"
    """

    tokens: Tuple[Any, ...]
    datatype: str


class VariableAdapter(ABC):
    """Abstract interface to the host's variable expressions."""

    @abstractmethod
    def parse_expression(self, text: str) -> ParsedExpression:
        """
        Parse an expression.

        Raises:
            ValueError: If the expression cannot be parsed
        """
        pass

    @abstractmethod
    async def evaluate_numeric_expression(self, tokens: Tuple[Any, ...]) -> float:
        pass

    @abstractmethod
    async def evaluate_string_expression(self, tokens: Tuple[Any, ...]) -> str:
        pass

    @abstractmethod
    def notify_on_change(self, tokens: Tuple[Any, ...], callback: ChangeCallback) -> None:
        """Call callback whenever a variable referenced by tokens changes."""
        pass

    @abstractmethod
    def cancel_notify_on_change(self, callback: ChangeCallback) -> None:
        pass


class MockVariableAdapter(VariableAdapter):
    """
    Mock adapter for testing.

    Understands whitespace separated tokens: "$name" references a variable,
    anything else is a literal. Numeric expressions sum their tokens, string
    expressions concatenate them.
    """

    def __init__(self) -> None:
        self._variables: Dict[str, Any] = {}
        self._listeners: List[Tuple[Tuple[Any, ...], ChangeCallback]] = []

    def set_variable(self, name: str, value: Any) -> None:
        """Set a variable and notify expressions referencing it."""
        self._variables[name] = value
        for tokens, callback in list(self._listeners):
            if f"${name}" in tokens:
                callback(name, value)

    def get_variable(self, name: str) -> Any:
        return self._variables.get(name)

    def listener_count(self) -> int:
        return len(self._listeners)

    def parse_expression(self, text: str) -> ParsedExpression:
        tokens = tuple(text.split())
        if not tokens:
            raise ValueError("Empty expression")
        datatype = "numeric"
        for token in tokens:
            value = self._resolve(token)
            if not isinstance(value, (int, float)) or isinstance(value, bool):
                datatype = "string"
                break
        return ParsedExpression(tokens=tokens, datatype=datatype)

    async def evaluate_numeric_expression(self, tokens: Tuple[Any, ...]) -> float:
        total = 0.0
        for token in tokens:
            value = self._resolve(token)
            if value is None:
                raise ValueError(f"Unknown variable {token}")
            total += float(value)
        return total

    async def evaluate_string_expression(self, tokens: Tuple[Any, ...]) -> str:
        parts = []
        for token in tokens:
            value = self._resolve(token)
            if isinstance(value, float) and value.is_integer():
                value = int(value)
            parts.append("" if value is None else str(value))
        return "".join(parts)

    def notify_on_change(self, tokens: Tuple[Any, ...], callback: ChangeCallback) -> None:
        self._listeners.append((tokens, callback))

    def cancel_notify_on_change(self, callback: ChangeCallback) -> None:
        self._listeners = [(t, c) for t, c in self._listeners if c is not callback]

    def _resolve(self, token: str) -> Any:
        if token.startswith("$"):
            return self._variables.get(token[1:])
        try:
            return float(token)
        except ValueError:
            return token
