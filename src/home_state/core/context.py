"""
Hub context handed to the manager, device factories and devices.
"""

from dataclasses import dataclass, field
from typing import Optional

from home_state.core.bus import EventBus
from home_state.core.persistence import DevicePersistence
from home_state.core.variables import VariableAdapter


@dataclass
class HubContext:
    """
    Shared collaborators of one hub.

    Attributes:
        bus: Hub-wide bus for device notifications
        persistence: Storage for device state and config (optional)
        variables: Variable expressions for expression-backed devices (optional)
    """

    bus: EventBus = field(default_factory=EventBus)
    persistence: Optional[DevicePersistence] = None
    variables: Optional[VariableAdapter] = None
