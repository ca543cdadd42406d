"""
Discovery session controller.

Sequences capability checks, permission requests, radio enablement and
discovery into one session, and fills the device registry from the radio
event stream. Commands and async results go through one queue drained by
a single worker task, so no two transitions ever interleave.
"""

import asyncio
import logging
from typing import Any, NamedTuple

from discovery.capabilities import CapabilityGate
from discovery.errors import (
    CapabilityDenied,
    DiscoveryStartRejected,
    LocationRequired,
    RadioDisabled,
    RadioUnsupported,
    ScanError,
    StaleCallback,
)
from discovery.models import (
    CapabilityRequirement,
    DeviceFound,
    DiscoveryFinished,
    FailureStage,
    GrantResult,
    PeerDevice,
    PlatformLevel,
    ScanFailure,
    SessionState,
)
from discovery.radio import RadioSessionPort
from discovery.registry import DeviceRegistry

logger = logging.getLogger(__name__)

# Message kinds
START = "start_scan"
CANCEL = "cancel_scan"
GRANT_RESULT = "grant_result"
ENABLE_RESULT = "enable_result"
RADIO_EVENT = "radio_event"

_STAGE_BY_STATE = {
    SessionState.CHECKING_CAPABILITIES: FailureStage.CAPABILITY,
    SessionState.AWAITING_GRANT: FailureStage.CAPABILITY,
    SessionState.AWAITING_RADIO_ENABLE: FailureStage.RADIO,
}


class _Message(NamedTuple):
    kind: str
    generation: int = 0
    payload: Any = None
    done: asyncio.Future | None = None


class DiscoveryController:
    """Owns one discovery session at a time and the registry it fills."""

    def __init__(
        self,
        gate: CapabilityGate,
        radio: RadioSessionPort,
        level: PlatformLevel,
        registry: DeviceRegistry | None = None,
    ) -> None:
        self._gate = gate
        self._radio = radio
        self._level = level
        self._registry = registry or DeviceRegistry()
        self._state = SessionState.IDLE
        self._generation = 0  # session token, bumped on start/cancel/failure
        self._subscription = 0  # bumped per radio subscription
        self._queue: asyncio.Queue[_Message] = asyncio.Queue()
        self._worker: asyncio.Task | None = None
        self._pending: set[asyncio.Task] = set()  # grant/enable requests in flight
        self._pump: asyncio.Task | None = None
        self._subscribed = False
        self._discovering = False
        self._location_retry_used = False
        self._enable_retry_used = False
        self._last_failure: ScanFailure | None = None
        self._event_callbacks: list = []  # async fn(event_type, data)

    # --- Notifications ---

    def on_event(self, callback) -> None:
        """Register callback: async fn(event_type: str, data: dict).

        Callbacks run on the worker and must not await controller commands.
        """
        self._event_callbacks.append(callback)

    async def _emit(self, event_type: str, data: dict) -> None:
        for cb in self._event_callbacks:
            try:
                await cb(event_type, data)
            except Exception as e:
                logger.error(f"Event callback error: {e}")

    # --- Lifecycle ---

    async def start(self) -> None:
        """Start the worker that applies commands and async results."""
        if self._worker is None:
            self._worker = asyncio.create_task(self._run())
            logger.info("Discovery controller started")

    async def stop(self) -> None:
        """Cancel any running session and stop the worker."""
        if self._worker is None:
            return
        if self._state.is_active:
            await self.cancel_scan()

        tasks = [*self._pending, self._worker]
        if self._pump:
            tasks.append(self._pump)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._pending.clear()
        self._pump = None
        self._worker = None

        # Commands that raced with shutdown would otherwise wait forever.
        while not self._queue.empty():
            msg = self._queue.get_nowait()
            self._queue.task_done()
            if msg.done is not None and not msg.done.done():
                msg.done.set_exception(RuntimeError("Discovery controller stopped"))
        logger.info("Discovery controller stopped")

    # --- Public API ---

    async def start_scan(self) -> None:
        """Begin a session. No-op while one is in progress."""
        await self._command(START)

    async def cancel_scan(self) -> None:
        """Abort the running session. No-op when none is running."""
        await self._command(CANCEL)

    def current_state(self) -> SessionState:
        return self._state

    def devices(self) -> tuple[PeerDevice, ...]:
        return self._registry.snapshot()

    def last_failure(self) -> ScanFailure | None:
        return self._last_failure

    async def _command(self, kind: str) -> None:
        if self._worker is None:
            raise RuntimeError("Discovery controller is not running")
        done = asyncio.get_running_loop().create_future()
        await self._queue.put(_Message(kind, done=done))
        await done

    # --- Worker ---

    async def _run(self) -> None:
        while True:
            msg = await self._queue.get()
            try:
                await self._dispatch(msg)
            except ScanError as e:
                await self._fail(e)
            except Exception as e:
                logger.exception(f"Unexpected error handling {msg.kind}")
                if self._state.is_active:
                    stage = _STAGE_BY_STATE.get(self._state, FailureStage.DISCOVERY)
                    await self._fail(ScanError(str(e), stage=stage))
            finally:
                if msg.done is not None and not msg.done.done():
                    msg.done.set_result(None)
                self._queue.task_done()

    async def _dispatch(self, msg: _Message) -> None:
        if msg.kind == START:
            await self._handle_start()
            return
        if msg.kind == CANCEL:
            await self._handle_cancel()
            return

        if msg.generation != self._generation:
            stale = StaleCallback(msg.kind, msg.generation, self._generation)
            logger.debug(f"Discarding {stale}")
            return

        if msg.kind == GRANT_RESULT:
            await self._on_grant_result(msg.payload)
        elif msg.kind == ENABLE_RESULT:
            await self._on_enable_result(msg.payload)
        elif msg.kind == RADIO_EVENT:
            await self._on_radio_event(*msg.payload)

    async def _set_state(self, state: SessionState) -> None:
        if state is self._state:
            return
        logger.info(f"Session {self._generation}: {self._state.value} -> {state.value}")
        self._state = state
        await self._emit("state_changed", {"state": state.value})

    def _spawn(self, coro) -> None:
        task = asyncio.create_task(coro)
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    # --- Commands ---

    async def _handle_start(self) -> None:
        if self._state.is_active:
            logger.debug(f"Scan already in progress ({self._state.value}), ignoring start")
            return

        self._generation += 1
        self._registry.clear()
        self._location_retry_used = False
        self._enable_retry_used = False
        self._last_failure = None
        await self._set_state(SessionState.CHECKING_CAPABILITIES)
        await self._acquire(self._gate.required_capabilities(self._level))

    async def _handle_cancel(self) -> None:
        if not self._state.is_active:
            logger.debug(f"Nothing to cancel ({self._state.value})")
            return

        self._generation += 1
        was_discovering = self._state is SessionState.DISCOVERING
        await self._teardown()
        if was_discovering:
            await self._set_state(SessionState.FINISHED)
        else:
            self._registry.clear()
            await self._set_state(SessionState.IDLE)

    # --- Capability flow ---

    async def _acquire(self, requirements: frozenset[CapabilityRequirement]) -> None:
        await self._set_state(SessionState.CHECKING_CAPABILITIES)
        missing = self._gate.missing(requirements)
        if not missing:
            await self._enable_radio()
            return

        logger.info(f"Requesting capabilities: {', '.join(sorted(r.name for r in missing))}")
        await self._set_state(SessionState.AWAITING_GRANT)
        self._spawn(self._request_grants(missing, self._generation))

    async def _request_grants(
        self, missing: frozenset[CapabilityRequirement], generation: int
    ) -> None:
        result = await self._gate.request_grants(missing)
        await self._queue.put(_Message(GRANT_RESULT, generation, result))

    async def _on_grant_result(self, result: GrantResult) -> None:
        if self._state is not SessionState.AWAITING_GRANT:
            logger.debug(f"Ignoring grant result in {self._state.value}")
            return
        if not result.all_granted:
            raise CapabilityDenied(result.denied)
        await self._enable_radio()

    # --- Radio enablement ---

    async def _enable_radio(self) -> None:
        # AWAITING_RADIO_ENABLE is only entered when an enable request is needed.
        if not self._radio.is_supported():
            raise RadioUnsupported("No radio adapter on this host")

        if await self._radio_enabled():
            await self._start_discovery()
            return
        await self._request_radio_enable()

    async def _radio_enabled(self) -> bool:
        try:
            return await self._radio.is_enabled()
        except Exception as e:
            logger.warning(f"Radio state query failed: {e}")
            return False

    async def _request_radio_enable(self) -> None:
        logger.info("Radio is off, requesting enable")
        await self._set_state(SessionState.AWAITING_RADIO_ENABLE)
        self._spawn(self._request_enable(self._generation))

    async def _request_enable(self, generation: int) -> None:
        try:
            enabled = await self._radio.request_enable()
        except Exception as e:
            logger.warning(f"Radio enable request failed: {e}")
            enabled = False
        await self._queue.put(_Message(ENABLE_RESULT, generation, enabled))

    async def _on_enable_result(self, enabled: bool) -> None:
        if self._state is not SessionState.AWAITING_RADIO_ENABLE:
            logger.debug(f"Ignoring enable result in {self._state.value}")
            return
        if not enabled:
            raise RadioDisabled("Radio enable request was declined")
        await self._start_discovery()

    # --- Discovery ---

    async def _start_discovery(self) -> None:
        await self._set_state(SessionState.STARTING_DISCOVERY)
        # Subscribed before starting; events wait in the queue until DISCOVERING.
        self._subscribe()
        try:
            accepted = await self._radio.start_discovery()
        except Exception as e:
            logger.warning(f"Discovery start raised: {e}")
            accepted = False

        if accepted:
            self._discovering = True
            await self._set_state(SessionState.DISCOVERING)
            return

        await self._unsubscribe()
        if not self._radio.is_supported():
            raise RadioUnsupported("Radio adapter not available for discovery")
        if not await self._radio_enabled():
            if self._enable_retry_used:
                raise RadioDisabled("Radio is still off")
            self._enable_retry_used = True
            await self._request_radio_enable()
            return
        if not self._radio.location_required():
            raise DiscoveryStartRejected("Radio refused to start discovery")
        if self._location_retry_used:
            raise LocationRequired("Discovery still needs location access")

        self._location_retry_used = True
        logger.info("Discovery needs location access, re-entering capability flow")
        await self._acquire(self._gate.location_requirements(self._level))

    def _subscribe(self) -> None:
        self._subscription += 1
        self._subscribed = True
        stream = self._radio.subscribe_events()
        self._pump = asyncio.create_task(
            self._pump_events(stream, self._generation, self._subscription)
        )

    async def _pump_events(self, stream, generation: int, subscription: int) -> None:
        try:
            async for event in stream:
                await self._queue.put(_Message(RADIO_EVENT, generation, (subscription, event)))
        except Exception as e:
            logger.warning(f"Radio event stream failed: {e}")

    async def _unsubscribe(self) -> None:
        if not self._subscribed:
            return
        self._subscribed = False
        try:
            await self._radio.unsubscribe()
        except Exception as e:
            logger.warning(f"Radio unsubscribe failed: {e}")
        pump, self._pump = self._pump, None
        if pump and not pump.done():
            pump.cancel()

    async def _on_radio_event(self, subscription: int, event) -> None:
        if subscription != self._subscription or self._state is not SessionState.DISCOVERING:
            logger.debug(f"Ignoring {event.kind} in {self._state.value}")
            return

        if isinstance(event, DeviceFound):
            device = PeerDevice(address=event.address, display_name=event.display_name)
            if self._registry.upsert(device):
                logger.debug(f"Found device: {device.display_name or '?'} ({device.address})")
                await self._emit("device_found", device.model_dump())
            else:
                logger.debug(f"Dropping repeat sighting of {device.address}")
        elif isinstance(event, DiscoveryFinished):
            logger.info(f"Discovery finished with {len(self._registry)} device(s)")
            self._discovering = False
            await self._unsubscribe()
            await self._set_state(SessionState.FINISHED)
        else:
            logger.debug("Radio reports discovery started")

    # --- Teardown ---

    async def _teardown(self) -> None:
        if self._discovering:
            self._discovering = False
            try:
                await self._radio.stop_discovery()
            except Exception as e:
                logger.warning(f"Stopping discovery failed: {e}")
        await self._unsubscribe()

    async def _fail(self, error: ScanError) -> None:
        self._generation += 1
        await self._teardown()
        self._last_failure = error.to_failure()
        logger.warning(f"Discovery session failed at {error.stage.value}: {error}")
        await self._set_state(SessionState.FAILED)
        await self._emit("scan_failed", self._last_failure.model_dump(mode="json"))
