import pytest

from blesensor.core.model import DiscoveredDevice, TargetDescriptor
from blesensor.core.target_match import matches_target, normalize_uuid, uuid_matches

FFF1 = "0000fff1-0000-1000-8000-00805f9b34fb"


def test_short_uuids_expand_to_base_uuid() -> None:
    assert normalize_uuid("FFF1") == FFF1
    assert normalize_uuid("0000fff1") == FFF1
    assert normalize_uuid(" 0000FFF1-0000-1000-8000-00805F9B34FB ") == FFF1


def test_invalid_uuid_rejected() -> None:
    with pytest.raises(ValueError):
        normalize_uuid("fff")


def test_uuid_matches_across_forms() -> None:
    assert uuid_matches("fff1", FFF1)
    assert not uuid_matches("fff0", FFF1)
    assert not uuid_matches("not-a-uuid", FFF1)


def test_target_match_is_exact_string_equality() -> None:
    target = TargetDescriptor(address="AA:BB:CC:DD:EE:FF", characteristic_uuid=FFF1)
    assert matches_target(DiscoveredDevice(identifier="AA:BB:CC:DD:EE:FF"), target)
    assert not matches_target(DiscoveredDevice(identifier="aa:bb:cc:dd:ee:ff"), target)
    assert not matches_target(DiscoveredDevice(identifier="AA:BB:CC:DD:EE"), target)
