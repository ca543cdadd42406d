"""Ordered, de-duplicated collection of discovered peers."""

from discovery.models import PeerDevice


class DeviceRegistry:
    """
    Keeps peers in first-discovery order with O(1) lookup by address.

    Only the controller mutates it. Readers get the current snapshot tuple,
    which is replaced as a whole on every mutation, so a reader never sees
    a half-applied insert.
    """

    def __init__(self) -> None:
        self._by_address: dict[str, PeerDevice] = {}
        self._snapshot: tuple[PeerDevice, ...] = ()

    def clear(self) -> None:
        """Drop every device."""
        self._by_address = {}
        self._snapshot = ()

    def upsert(self, device: PeerDevice) -> bool:
        """Insert the device if its address is unseen. Returns whether it was inserted."""
        if device.address in self._by_address:
            return False
        self._by_address[device.address] = device
        self._snapshot = self._snapshot + (device,)
        return True

    def snapshot(self) -> tuple[PeerDevice, ...]:
        return self._snapshot

    def get(self, address: str) -> PeerDevice | None:
        return self._by_address.get(address)

    def __contains__(self, address: object) -> bool:
        return address in self._by_address

    def __len__(self) -> int:
        return len(self._snapshot)
