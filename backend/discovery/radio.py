"""The radio stack as seen by the discovery controller."""

from typing import AsyncIterator, Protocol

from discovery.models import RadioEvent


class RadioSessionPort(Protocol):
    """
    Boundary to the platform radio stack.

    The controller serializes its own calls; implementations need not be
    safe for concurrent use.
    """

    def is_supported(self) -> bool:
        """Whether the host has a radio adapter at all."""
        ...

    async def is_enabled(self) -> bool:
        ...

    async def request_enable(self) -> bool:
        """Ask for the radio to be switched on. Resolves once with the outcome."""
        ...

    async def start_discovery(self) -> bool:
        """Accept or reject a discovery start."""
        ...

    async def stop_discovery(self) -> None:
        ...

    def location_required(self) -> bool:
        """After a rejected start: whether the platform blamed missing location access."""
        ...

    def subscribe_events(self) -> AsyncIterator[RadioEvent]:
        """Stream of discovery events, ending when unsubscribed."""
        ...

    async def unsubscribe(self) -> None:
        ...
