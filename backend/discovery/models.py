"""Pydantic models for peer discovery sessions."""

from enum import Enum, IntEnum
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


class PlatformLevel(IntEnum):
    """Ordered platform capability levels."""
    LEGACY = 1
    LEGACY_BACKGROUND = 2  # background location exists from here on
    MODERN = 3

    @classmethod
    def parse(cls, value: str) -> "PlatformLevel":
        try:
            return cls[value.strip().upper()]
        except KeyError:
            raise ValueError(f"Unknown platform level: {value!r}") from None


class SessionState(str, Enum):
    """All possible states of a discovery session."""
    IDLE = "idle"
    CHECKING_CAPABILITIES = "checking_capabilities"
    AWAITING_GRANT = "awaiting_grant"
    AWAITING_RADIO_ENABLE = "awaiting_radio_enable"
    STARTING_DISCOVERY = "starting_discovery"
    DISCOVERING = "discovering"
    FINISHED = "finished"
    FAILED = "failed"

    @property
    def is_active(self) -> bool:
        return self not in (SessionState.IDLE, SessionState.FINISHED, SessionState.FAILED)


class FailureStage(str, Enum):
    CAPABILITY = "capability"
    RADIO = "radio"
    DISCOVERY = "discovery"


class PeerDevice(BaseModel):
    """A discovered radio peer. Immutable for the life of a session."""
    model_config = ConfigDict(frozen=True)

    address: str
    display_name: Optional[str] = None


class CapabilityRequirement(BaseModel):
    """A named capability and the platform level from which it applies."""
    model_config = ConfigDict(frozen=True)

    name: str
    min_level: PlatformLevel = PlatformLevel.LEGACY
    location: bool = False

    def applies_to(self, level: PlatformLevel) -> bool:
        return level >= self.min_level


class CapabilityProfile(BaseModel):
    """The requirements of one platform generation."""
    model_config = ConfigDict(frozen=True)

    name: str
    min_level: PlatformLevel
    max_level: Optional[PlatformLevel] = None
    requirements: frozenset[CapabilityRequirement]

    def covers(self, level: PlatformLevel) -> bool:
        if level < self.min_level:
            return False
        return self.max_level is None or level <= self.max_level


class GrantResult(BaseModel):
    """Partition of a batched capability request."""
    granted: frozenset[CapabilityRequirement] = frozenset()
    denied: frozenset[CapabilityRequirement] = frozenset()

    @property
    def all_granted(self) -> bool:
        return not self.denied


class ScanFailure(BaseModel):
    """Structured failure reported to the presentation layer."""
    stage: FailureStage
    detail: str
    denied: list[str] = []


# --- Radio events ---

class DeviceFound(BaseModel):
    kind: Literal["device_found"] = "device_found"
    address: str
    display_name: Optional[str] = None


class DiscoveryStarted(BaseModel):
    kind: Literal["discovery_started"] = "discovery_started"


class DiscoveryFinished(BaseModel):
    kind: Literal["discovery_finished"] = "discovery_finished"


RadioEvent = Annotated[
    Union[DeviceFound, DiscoveryStarted, DiscoveryFinished],
    Field(discriminator="kind"),
]
