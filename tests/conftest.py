"""Shared fixtures and fakes for the scan service tests."""

import asyncio
import sys
from collections import Counter
from pathlib import Path

import pytest
import pytest_asyncio

BACKEND_DIR = Path(__file__).parent.parent / "backend"
if str(BACKEND_DIR) not in sys.path:
    sys.path.insert(0, str(BACKEND_DIR))

from config import CAPABILITY_PROFILES, LEVEL_GATED_CAPABILITIES, LOCATION_CAPABILITIES  # noqa: E402
from discovery.capabilities import CapabilityGate, build_profiles  # noqa: E402
from discovery.controller import DiscoveryController  # noqa: E402
from discovery.models import PlatformLevel  # noqa: E402

MODERN_CAPABILITIES = set(CAPABILITY_PROFILES["modern"]["capabilities"])


async def settle(rounds: int = 50) -> None:
    """Let queued callbacks and worker messages run."""
    for _ in range(rounds):
        await asyncio.sleep(0)


class FakeRadio:
    """Scriptable RadioSessionPort."""

    def __init__(self, supported=True, enabled=True, start_results=(True,), needs_location=False):
        self.supported = supported
        self.enabled = enabled
        self.start_results = list(start_results)
        self.needs_location = needs_location
        self.enable_future: asyncio.Future | None = None
        self.on_reject = None
        self.calls = Counter()
        self._events: asyncio.Queue | None = None

    def is_supported(self) -> bool:
        self.calls["is_supported"] += 1
        return self.supported

    async def is_enabled(self) -> bool:
        self.calls["is_enabled"] += 1
        return self.enabled

    async def request_enable(self) -> bool:
        self.calls["request_enable"] += 1
        self.enable_future = asyncio.get_running_loop().create_future()
        return await self.enable_future

    async def start_discovery(self) -> bool:
        self.calls["start_discovery"] += 1
        accepted = self.start_results.pop(0) if self.start_results else True
        if not accepted and self.on_reject:
            self.on_reject()
        return accepted

    async def stop_discovery(self) -> None:
        self.calls["stop_discovery"] += 1

    def location_required(self) -> bool:
        return self.needs_location

    def subscribe_events(self):
        self.calls["subscribe_events"] += 1
        self._events = asyncio.Queue()
        return self._iterate(self._events)

    async def unsubscribe(self) -> None:
        self.calls["unsubscribe"] += 1
        if self._events is not None:
            self._events.put_nowait(None)
            self._events = None

    async def _iterate(self, events):
        while True:
            event = await events.get()
            if event is None:
                return
            yield event

    def emit(self, event) -> None:
        self._events.put_nowait(event)


class FakeBroker:
    """Permission subsystem whose batched requests the test answers."""

    def __init__(self, granted=()):
        self.granted = set(granted)
        self.requests: list[list[str]] = []
        self.future: asyncio.Future | None = None

    def check(self, name: str) -> bool:
        return name in self.granted

    async def request(self, names: list[str]) -> set[str]:
        self.requests.append(sorted(names))
        self.future = asyncio.get_running_loop().create_future()
        return await self.future

    def answer(self, granted) -> None:
        granted = set(granted)
        self.granted |= granted
        self.future.set_result(granted)


@pytest.fixture
def profiles():
    return build_profiles(CAPABILITY_PROFILES, LEVEL_GATED_CAPABILITIES, LOCATION_CAPABILITIES)


@pytest.fixture
def radio():
    return FakeRadio()


@pytest.fixture
def broker():
    return FakeBroker(granted=MODERN_CAPABILITIES)


@pytest.fixture
def gate(profiles, broker):
    return CapabilityGate(profiles, broker)


@pytest.fixture
def events():
    """Notifications recorded from the controller, in order."""
    return []


@pytest_asyncio.fixture
async def controller(gate, radio, events):
    ctrl = DiscoveryController(gate, radio, PlatformLevel.MODERN)

    async def record(event_type, data):
        events.append((event_type, data))

    ctrl.on_event(record)
    await ctrl.start()
    yield ctrl
    await ctrl.stop()


def states(events) -> list[str]:
    return [data["state"] for event_type, data in events if event_type == "state_changed"]
