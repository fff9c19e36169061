"""Matching of discovered devices, services, and characteristics against a target."""

from __future__ import annotations

import re

from blesensor.core.model import DiscoveredDevice, TargetDescriptor

BLUETOOTH_BASE_UUID_SUFFIX = "-0000-1000-8000-00805f9b34fb"

_SHORT_UUID_RE = re.compile(r"^[0-9a-f]{4}$|^[0-9a-f]{8}$")
_FULL_UUID_RE = re.compile(r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$")


def normalize_uuid(value: str) -> str:
    """Return the lowercase 128-bit form of a 16-, 32-, or 128-bit UUID string.

    Short forms are expanded against the Bluetooth base UUID, so ``fff1`` and
    ``0000fff1-0000-1000-8000-00805f9b34fb`` normalize to the same string.
    """
    normalized = value.strip().lower()
    if _FULL_UUID_RE.match(normalized):
        return normalized
    if _SHORT_UUID_RE.match(normalized):
        return normalized.rjust(8, "0") + BLUETOOTH_BASE_UUID_SUFFIX
    raise ValueError(f"'{value}' is not a 16-bit, 32-bit, or 128-bit UUID string")


def uuid_matches(candidate: str, expected: str) -> bool:
    try:
        return normalize_uuid(candidate) == normalize_uuid(expected)
    except ValueError:
        return False


def matches_target(device: DiscoveredDevice, target: TargetDescriptor) -> bool:
    return device.identifier == target.address
