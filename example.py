#!/usr/bin/env python3
"""
Quick example demonstrating home-state basic usage.

Run with: PYTHONPATH=src python3 example.py
"""

import asyncio

from home_state import DeviceManager, HubContext, PredicateEngine, register_builtin_device_classes
from home_state.core import EventFilter, InMemoryDevicePersistence, TemperatureSensing


async def main() -> None:
    print("=" * 60)
    print("home-state Example")
    print("=" * 60)

    # 1. Hub components
    print("\n1. Creating hub components...")
    persistence = InMemoryDevicePersistence()
    context = HubContext(persistence=persistence)
    persistence.attach(context.bus)
    manager = DeviceManager(
        context,
        [
            {"id": "frontdoor", "name": "Front Door", "class": "DummyPresenceSensor"},
            {"id": "sensor1", "name": "Living Room", "class": "DummyTemperatureSensor"},
        ],
    )
    register_builtin_device_classes(manager)
    print(f"   ✓ Device classes: {', '.join(manager.get_device_classes())}")

    # 2. Load the configured devices
    print("\n2. Loading devices...")
    for device in await manager.load_devices():
        print(f"   ✓ Loaded: {device.name} (id={device.id})")

    lamp = manager.add_device_by_config(
        {"id": "lamp", "name": "Desk Lamp", "class": "DummySwitch", "xOnLabel": "lit"}
    )
    print(f"   ✓ Added: {lamp.name} with labels {lamp.attributes['state'].labels}")

    # 3. Watch attribute changes on the hub bus
    print("\n3. Subscribing to attribute changes...")
    context.bus.subscribe(
        lambda event: print(
            f"   → {event.device_id}.{event.payload['attribute_name']} = {event.payload['value']}"
        ),
        EventFilter(event_type="device.attribute_changed"),
    )
    await lamp.call_action("turnOn")

    # 4. Predicates
    print("\n4. Evaluating predicates...")
    engine = PredicateEngine(manager)
    frontdoor = manager.get_device_by_id("frontdoor")
    print(f"   ✓ 'frontdoor is present': {await engine.is_true('p1', 'frontdoor is present')}")
    await frontdoor.call_action("changePresenceTo", presence=True)
    print(f"   ✓ 'frontdoor is present': {await engine.is_true('p1', 'frontdoor is present')}")
    print(f"   ✓ 'state of lamp is lit': {await engine.is_true('p2', 'state of lamp is lit')}")

    # 5. Change notifications
    print("\n5. Watching 'temperature of sensor1 is greater than 20'...")
    engine.notify_when(
        "heating",
        "temperature of sensor1 is greater than 20",
        lambda result: print(f"   ✓ Predicate is now {result}"),
    )
    sensing = manager.get_device_by_id("sensor1").get_capability(TemperatureSensing)
    for reading in (18, 22, 22, 19):
        sensing.set_temperature(reading)
    engine.cancel_notify("heating")

    print("\n" + "=" * 60)
    print("Example complete!")
    print("=" * 60)


if __name__ == "__main__":
    asyncio.run(main())
