"""Shared fixtures for home-state tests."""

import logging

import pytest

from home_state import DeviceManager, HubContext, register_builtin_device_classes
from home_state.core import InMemoryDevicePersistence, MockVariableAdapter

# Configure logging for verbose test output
logging.basicConfig(
    level=logging.DEBUG, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)


@pytest.fixture
def persistence():
    """In-memory device state and config storage."""
    return InMemoryDevicePersistence()


@pytest.fixture
def variables():
    """Mock variable expressions."""
    return MockVariableAdapter()


@pytest.fixture
def context(persistence, variables):
    """Hub context wired to the in-memory collaborators."""
    return HubContext(persistence=persistence, variables=variables)


@pytest.fixture
def manager(context):
    """DeviceManager with the built-in device classes registered."""
    mgr = DeviceManager(context)
    register_builtin_device_classes(mgr)
    return mgr
