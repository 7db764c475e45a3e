"""
Built-in device classes for home-state.

Each class combines capabilities (switchable, dimmable, presence sensing, ...)
with a config schema. Hosts register them with:

    register_builtin_device_classes(manager)
"""

from .classes import (
    BUILTIN_DEVICE_CLASSES,
    last_value,
    register_builtin_device_classes,
)

__all__ = [
    "BUILTIN_DEVICE_CLASSES",
    "last_value",
    "register_builtin_device_classes",
]
