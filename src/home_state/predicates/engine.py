"""
Ordered dispatch over predicate providers.

Providers are tried in list order and the first one that can decide a text
handles it, so more specific grammars must come first.
"""

from typing import TYPE_CHECKING, Dict, List, Optional, Sequence
import logging

from home_state.core.errors import PredicateParseError

from .base import Decision, PredicateCallback, PredicateProvider
from .device_property import DevicePropertyPredicateProvider
from .presence import PresencePredicateProvider

if TYPE_CHECKING:
    from home_state.core.manager import DeviceManager

logger = logging.getLogger(__name__)


class PredicateEngine:
    """
    Front door for rule engines: decide, evaluate and watch predicates.

    Responsibilities:
    - Pick the provider for a predicate text (first match wins)
    - Remember which provider holds each notification id
    """

    def __init__(
        self,
        device_manager: "DeviceManager",
        providers: Optional[Sequence[PredicateProvider]] = None,
    ) -> None:
        if providers is None:
            providers = [
                PresencePredicateProvider(device_manager),
                DevicePropertyPredicateProvider(device_manager),
            ]
        self.providers: List[PredicateProvider] = list(providers)
        self._notify_providers: Dict[str, PredicateProvider] = {}

    def find_provider(self, text: str) -> Optional[PredicateProvider]:
        for provider in self.providers:
            if provider.can_decide(text):
                return provider
        return None

    def can_decide(self, text: str) -> Decision:
        provider = self.find_provider(text)
        if provider is None:
            logger.debug(f"No provider can decide '{text}'")
            return False
        return provider.can_decide(text)

    async def is_true(self, id: str, text: str) -> bool:
        """
        Evaluate a predicate once.

        Raises:
            PredicateParseError: If no provider can decide the text
        """
        return await self._provider_or_raise(text).is_true(id, text)

    def notify_when(self, id: str, text: str, callback: PredicateCallback) -> None:
        """
        Watch a predicate; callback gets the new truth value on every flip.

        Raises:
            PredicateParseError: If no provider can decide the text
        """
        provider = self._provider_or_raise(text)
        self.cancel_notify(id)
        provider.notify_when(id, text, callback)
        self._notify_providers[id] = provider

    def cancel_notify(self, id: str) -> None:
        provider = self._notify_providers.pop(id, None)
        if provider is not None:
            provider.cancel_notify(id)

    def _provider_or_raise(self, text: str) -> PredicateProvider:
        provider = self.find_provider(text)
        if provider is None:
            raise PredicateParseError(f"Cannot decide predicate '{text}'")
        return provider
