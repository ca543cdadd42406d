"""
Capability gate.

Decides which capabilities a discovery session needs on the current
platform level and talks to the host's permission subsystem to check
and request them.
"""

import logging
from typing import Iterable, Mapping, Protocol

from discovery.models import (
    CapabilityProfile,
    CapabilityRequirement,
    GrantResult,
    PlatformLevel,
)

logger = logging.getLogger(__name__)


class PermissionBroker(Protocol):
    """The host permission subsystem."""

    def check(self, name: str) -> bool:
        """Whether the named capability is granted right now."""
        ...

    async def request(self, names: list[str]) -> set[str]:
        """Ask for all names in one batch; returns the names that were granted."""
        ...


def build_profiles(
    table: Mapping[str, dict],
    level_gated: Mapping[str, str] | None = None,
    location: Iterable[str] = (),
) -> dict[str, CapabilityProfile]:
    """Turn the configuration table into profiles."""
    level_gated = level_gated or {}
    location = set(location)
    profiles = {}
    for name, entry in table.items():
        low, high = entry["levels"]
        requirements = frozenset(
            CapabilityRequirement(
                name=cap,
                min_level=PlatformLevel.parse(level_gated.get(cap, low)),
                location=cap in location,
            )
            for cap in entry["capabilities"]
        )
        profiles[name] = CapabilityProfile(
            name=name,
            min_level=PlatformLevel.parse(low),
            max_level=PlatformLevel.parse(high) if high else None,
            requirements=requirements,
        )
    return profiles


def resolve_profile(
    profiles: Mapping[str, CapabilityProfile], level: PlatformLevel
) -> CapabilityProfile:
    for profile in profiles.values():
        if profile.covers(level):
            return profile
    raise LookupError(f"No capability profile covers level {level.name}")


class CapabilityGate:
    """Resolves requirements per level and checks/requests them through the broker."""

    def __init__(
        self,
        profiles: Mapping[str, CapabilityProfile],
        broker: PermissionBroker,
    ) -> None:
        self._profiles = dict(profiles)
        self._broker = broker

    def required_capabilities(self, level: PlatformLevel) -> frozenset[CapabilityRequirement]:
        """The exact set of requirements for a level. Pure and deterministic."""
        profile = resolve_profile(self._profiles, level)
        return frozenset(req for req in profile.requirements if req.applies_to(level))

    def location_requirements(self, level: PlatformLevel) -> frozenset[CapabilityRequirement]:
        return frozenset(req for req in self.required_capabilities(level) if req.location)

    def check_granted(self, requirement: CapabilityRequirement) -> bool:
        # Never cached: the host may revoke at any time.
        return self._broker.check(requirement.name)

    def missing(
        self, requirements: Iterable[CapabilityRequirement]
    ) -> frozenset[CapabilityRequirement]:
        return frozenset(req for req in requirements if not self.check_granted(req))

    async def request_grants(
        self, requirements: Iterable[CapabilityRequirement]
    ) -> GrantResult:
        """
        Issue one batched request and partition the requirements.

        Never retries. A broker failure counts as denial of the whole batch.
        """
        requirements = frozenset(requirements)
        names = sorted(req.name for req in requirements)
        try:
            granted_names = await self._broker.request(names)
        except Exception as e:
            logger.warning(f"Capability request failed: {e}")
            granted_names = set()

        granted = frozenset(req for req in requirements if req.name in granted_names)
        return GrantResult(granted=granted, denied=requirements - granted)
