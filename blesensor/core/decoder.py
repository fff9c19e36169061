"""Temperature payload decoding.

The sensor frame is addressed by offsets into its lowercase hex rendering,
not into the byte buffer. Hex characters ``[10, 12)`` carry the integer part
and ``[12, 14)`` the hundredths, e.g. ``233b`` decodes to ``35 + 59 * 0.01``.
"""

from __future__ import annotations

import re

from blesensor.core.errors import InvalidHexError, PayloadOutOfRangeError, PayloadTooShortError
from blesensor.core.model import SensorReading

_HEX_PAIR_RE = re.compile(r"^[0-9a-fA-F]{2}$")
_MIN_FRAME_HEX_CHARS = 8
_FIELD_START = 10
_FIELD_END = 14


def _parse_hex_pair(pair: str, *, context: str) -> int:
    if not _HEX_PAIR_RE.match(pair):
        raise InvalidHexError(f"{context} '{pair}' is not a hex byte")
    return int(pair, 16)


def decode_hex(hex_string: str) -> float:
    if len(hex_string) < _MIN_FRAME_HEX_CHARS:
        raise PayloadTooShortError(
            f"Payload '{hex_string}' is shorter than the {_MIN_FRAME_HEX_CHARS}-character minimum frame"
        )
    if len(hex_string) < _FIELD_END:
        raise PayloadOutOfRangeError(
            f"Payload '{hex_string}' ends before the temperature field at [{_FIELD_START}, {_FIELD_END})"
        )

    field = hex_string[_FIELD_START:_FIELD_END]
    integer_part = _parse_hex_pair(field[:2], context="Integer part")
    fraction_part = _parse_hex_pair(field[2:], context="Fraction part")
    return integer_part + fraction_part * 0.01


def decode_payload(raw: bytes) -> SensorReading:
    """Decode a characteristic value into a reading that keeps its source bytes."""
    payload = bytes(raw)
    return SensorReading(value=decode_hex(payload.hex()), raw=payload)
