"""Failures a discovery session can end with."""

from discovery.models import CapabilityRequirement, FailureStage, ScanFailure


class ScanError(Exception):
    """Base class for session-terminating failures."""

    stage = FailureStage.DISCOVERY
    detail = "failed"

    def __init__(self, message: str | None = None, stage: FailureStage | None = None) -> None:
        super().__init__(message or self.detail)
        if stage is not None:
            self.stage = stage

    def to_failure(self) -> ScanFailure:
        return ScanFailure(stage=self.stage, detail=self.detail)


class CapabilityDenied(ScanError):
    """One or more required capabilities were refused."""

    stage = FailureStage.CAPABILITY
    detail = "permission_denied"

    def __init__(self, denied: frozenset[CapabilityRequirement]) -> None:
        self.denied = sorted(req.name for req in denied)
        super().__init__(f"Capabilities denied: {', '.join(self.denied)}")

    def to_failure(self) -> ScanFailure:
        return ScanFailure(stage=self.stage, detail=self.detail, denied=self.denied)


class RadioUnsupported(ScanError):
    """The host has no radio adapter at all."""

    stage = FailureStage.RADIO
    detail = "unsupported"


class RadioDisabled(ScanError):
    """The enable request was declined or failed."""

    stage = FailureStage.RADIO
    detail = "not_enabled"


class DiscoveryStartRejected(ScanError):
    """The radio refused to start discovery."""

    stage = FailureStage.DISCOVERY
    detail = "start_rejected"


class LocationRequired(DiscoveryStartRejected):
    """Discovery was refused for want of location after the retry was spent."""

    detail = "location_required"


class StaleCallback(Exception):
    """An async result outlived the session it was issued for. Never raised out of the core."""

    def __init__(self, kind: str, generation: int, current: int) -> None:
        super().__init__(f"Stale {kind} for session {generation} (current {current})")
        self.kind = kind
        self.generation = generation
        self.current = current
