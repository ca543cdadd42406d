"""Application-wide configuration constants."""

import os


def _env(name: str, default, cast=str):
    """Read an environment override, falling back to the default on bad input."""
    raw = os.environ.get(name)
    if raw is None or raw == "":
        return default
    try:
        return cast(raw)
    except (TypeError, ValueError):
        return default


def _csv(raw: str) -> frozenset[str]:
    return frozenset(part.strip().upper() for part in raw.split(",") if part.strip())


# --- Networking ---
API_HOST = _env("SCAN_API_HOST", "0.0.0.0")
API_PORT = _env("SCAN_API_PORT", 8765, int)

# --- Logging ---
LOG_LEVEL = _env("SCAN_LOG_LEVEL", "INFO").upper()

# --- Platform ---
# One of "legacy" | "legacy_background" | "modern"
PLATFORM_LEVEL = _env("SCAN_PLATFORM_LEVEL", "modern").lower()

# Capabilities the host already holds when the service starts
PREGRANTED_CAPABILITIES = _env("SCAN_PREGRANTED", frozenset(), _csv)

# --- Capability policy ---
# Each profile applies to an inclusive range of platform levels (None = open ended).
CAPABILITY_PROFILES = {
    "modern": {
        "levels": ("modern", None),
        "capabilities": [
            "BLUETOOTH",
            "BLUETOOTH_ADMIN",
            "BLUETOOTH_SCAN",
            "BLUETOOTH_ADVERTISE",
            "BLUETOOTH_CONNECT",
            "ACCESS_COARSE_LOCATION",
            "ACCESS_FINE_LOCATION",
        ],
    },
    "legacy": {
        "levels": ("legacy", "legacy_background"),
        "capabilities": [
            "ACCESS_BACKGROUND_LOCATION",
            "BLUETOOTH",
            "BLUETOOTH_ADMIN",
            "ACCESS_COARSE_LOCATION",
            "ACCESS_FINE_LOCATION",
        ],
    },
}

# Capabilities that only exist from a given level onwards
BACKGROUND_LOCATION_MIN_LEVEL = "legacy_background"
LEVEL_GATED_CAPABILITIES = {
    "ACCESS_BACKGROUND_LOCATION": BACKGROUND_LOCATION_MIN_LEVEL,
}

LOCATION_CAPABILITIES = frozenset({
    "ACCESS_COARSE_LOCATION",
    "ACCESS_FINE_LOCATION",
    "ACCESS_BACKGROUND_LOCATION",
})

# --- Discovery ---
DISCOVERY_DURATION = _env("SCAN_DISCOVERY_DURATION", 12.0, float)  # seconds per inquiry window
