"""
Radio session port backed by bleak.

Runs a BLE scan for a fixed inquiry window, then reports discovery as
finished. Switching the adapter on is left to the user and is asked for
through the prompt broker.
"""

import asyncio
import logging

from bleak import BleakScanner
from bleak.backends.device import BLEDevice
from bleak.backends.scanner import AdvertisementData
from bleak.exc import (
    BleakBluetoothNotAvailableError,
    BleakBluetoothNotAvailableReason,
    BleakError,
)

from config import DISCOVERY_DURATION
from discovery.models import DeviceFound, DiscoveryFinished, DiscoveryStarted
from discovery.prompts import PromptBroker, PromptKind

logger = logging.getLogger(__name__)

_UNSUPPORTED_REASONS = {
    BleakBluetoothNotAvailableReason.NO_BLUETOOTH,
    BleakBluetoothNotAvailableReason.NO_BLE_CENTRAL_ROLE,
}
_ACCESS_REASONS = {
    BleakBluetoothNotAvailableReason.DENIED_BY_USER,
    BleakBluetoothNotAvailableReason.DENIED_BY_SYSTEM,
    BleakBluetoothNotAvailableReason.DENIED_BY_UNKNOWN,
}

# Plain BleakErrors carry no reason; some backends still raise them.
_NO_ADAPTER_HINTS = ("no bluetooth adapter", "adapter not found", "no adapter")
_POWERED_OFF_HINTS = ("powered off", "turned off", "not powered", "no powered", "not turned on")
_ACCESS_HINTS = ("denied", "not authorized", "unauthorized", "permission", "location")


class BleakRadio:
    """RadioSessionPort implementation over BleakScanner."""

    def __init__(
        self,
        prompts: PromptBroker,
        discovery_duration: float = DISCOVERY_DURATION,
        scanner_factory=BleakScanner,
    ) -> None:
        self._prompts = prompts
        self._duration = discovery_duration
        self._scanner_factory = scanner_factory
        self._scanner = None
        self._timer: asyncio.Task | None = None
        self._events: asyncio.Queue | None = None
        self._supported = True
        self._enabled = True  # until the stack reports otherwise
        self._location_required = False

    def is_supported(self) -> bool:
        """Whether the last refused scan found an adapter.

        Reading it clears the verdict, so the next session tries the
        scanner again in case an adapter was plugged in since.
        """
        supported, self._supported = self._supported, True
        return supported

    async def is_enabled(self) -> bool:
        return self._enabled

    async def request_enable(self) -> bool:
        answer = await self._prompts.ask(PromptKind.RADIO_ENABLE)
        self._enabled = bool(answer)
        return self._enabled

    async def start_discovery(self) -> bool:
        self._supported = True
        self._location_required = False
        scanner = self._scanner_factory(detection_callback=self._on_detection)
        try:
            await scanner.start()
        except BleakError as e:
            self._classify_failure(e)
            return False

        self._scanner = scanner
        self._publish(DiscoveryStarted())
        self._timer = asyncio.create_task(self._finish_after(self._duration))
        logger.info(f"BLE scan running for {self._duration:.0f}s")
        return True

    async def stop_discovery(self) -> None:
        timer, self._timer = self._timer, None
        if timer and not timer.done():
            timer.cancel()
        await self._stop_scanner()

    def location_required(self) -> bool:
        return self._location_required

    def subscribe_events(self):
        self._events = asyncio.Queue()
        return self._iterate(self._events)

    async def unsubscribe(self) -> None:
        events, self._events = self._events, None
        if events is not None:
            events.put_nowait(None)

    async def _iterate(self, events: asyncio.Queue):
        while True:
            event = await events.get()
            if event is None:
                return
            yield event

    def _publish(self, event) -> None:
        if self._events is not None:
            self._events.put_nowait(event)

    def _on_detection(self, device: BLEDevice, advertisement: AdvertisementData) -> None:
        name = advertisement.local_name or device.name
        self._publish(DeviceFound(address=device.address, display_name=name))

    async def _finish_after(self, seconds: float) -> None:
        await asyncio.sleep(seconds)
        self._timer = None
        await self._stop_scanner()
        self._publish(DiscoveryFinished())

    async def _stop_scanner(self) -> None:
        scanner, self._scanner = self._scanner, None
        if scanner is None:
            return
        try:
            await scanner.stop()
        except BleakError as e:
            logger.warning(f"Stopping BLE scan failed: {e}")

    def _classify_failure(self, error: BleakError) -> None:
        logger.warning(f"BLE scan refused: {error}")
        if isinstance(error, BleakBluetoothNotAvailableError):
            reason = error.reason
            if reason in _UNSUPPORTED_REASONS:
                self._supported = False
            elif reason is BleakBluetoothNotAvailableReason.POWERED_OFF:
                self._enabled = False
            elif reason in _ACCESS_REASONS:
                self._location_required = True
            return

        message = str(error).lower()
        if any(hint in message for hint in _NO_ADAPTER_HINTS):
            self._supported = False
        elif any(hint in message for hint in _POWERED_OFF_HINTS):
            self._enabled = False
        elif any(hint in message for hint in _ACCESS_HINTS):
            self._location_required = True
