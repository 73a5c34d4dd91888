"""Binary tracking message encoder.

Message layout (all integers big-endian):

    header  protocol_version u16 = 5
            command_type     u8  = 2
            message_type     u8  = 16
            mask_marker      u8  = 4   (byte length of the mask that follows)
            field_mask       u32
    body    one entry per set mask bit, in ascending bit order

The receiving server parses strictly by the mask; there is no length field.
Coordinates use a degree/minute hybrid: whole degrees times 1e6 plus the
fractional part expressed in minutes times 1e4.
"""

import math
import struct
from dataclasses import dataclass
from datetime import date, datetime, time, timezone
from enum import IntEnum

from gpsbridge.interfaces.fix_source import MIN_USABLE_MODE, Fix

PROTOCOL_VERSION = 5
COMMAND_TYPE = 2
MESSAGE_TYPE = 16
MASK_MARKER = 4

DEVICE_ID_LENGTH = 22
DEVICE_ID_PAD = b"\x00"
YEAR_BASE = 2000

HEADER = struct.Struct(">HBBBI")

U8_MAX = 0xFF
U16_MAX = 0xFFFF


class FieldBit(IntEnum):
    """Bit positions in the field mask, in emission order."""

    REQUIRED = 0
    DEVICE_ID = 2
    DATE = 8
    FIX_STATUS = 9
    LATITUDE = 10
    LONGITUDE = 11
    SPEED = 12
    COURSE = 13
    TIME = 14
    SATELLITES = 16


# struct format of each body field (without byte order prefix)
FIELD_FORMATS: dict[FieldBit, str] = {
    FieldBit.REQUIRED: "",
    FieldBit.DEVICE_ID: f"{DEVICE_ID_LENGTH}s",
    FieldBit.DATE: "3B",
    FieldBit.FIX_STATUS: "B",
    FieldBit.LATITUDE: "i",
    FieldBit.LONGITUDE: "i",
    FieldBit.SPEED: "H",
    FieldBit.COURSE: "H",
    FieldBit.TIME: "3B",
    FieldBit.SATELLITES: "B",
}

KNOWN_MASK = sum(1 << bit for bit in FieldBit)


@dataclass(frozen=True)
class DecodedMessage:
    """A tracking message parsed back from its wire form.

    Absent fields are None.
    """

    protocol_version: int
    command_type: int
    message_type: int
    field_mask: int
    device_id: str | None = None
    fix_date: date | None = None
    fix_valid: bool | None = None
    latitude: float | None = None
    longitude: float | None = None
    speed_knots: float | None = None
    track_degrees: float | None = None
    fix_time: time | None = None
    satellites: int | None = None

    @property
    def fields_present(self) -> list[FieldBit]:
        """Get the fields flagged in the mask, in ascending bit order."""
        return [bit for bit in FieldBit if self.field_mask & (1 << bit)]


def encode_coordinate(degrees: float) -> int:
    """Scale decimal degrees to the wire's degree/minute integer.

    Args:
        degrees: Signed decimal degrees

    Returns:
        whole degrees * 1_000_000 + fractional minutes * 10_000, truncated
        toward zero
    """
    whole = math.trunc(degrees)
    return math.trunc(whole * 1_000_000 + (degrees - whole) * 600_000)


def decode_coordinate(value: int) -> float:
    """Reverse encode_coordinate, up to its truncation."""
    sign = -1 if value < 0 else 1
    whole, minutes = divmod(abs(value), 1_000_000)
    return sign * (whole + minutes / 600_000)


def encode_device_id(device_id: str) -> bytes:
    """Encode a device id into its fixed-width field.

    Args:
        device_id: Device identifier, at most 22 bytes in UTF-8

    Returns:
        22 bytes, NUL padded

    Raises:
        ValueError: If the id is longer than the field
    """
    raw = device_id.encode("utf-8")
    if len(raw) > DEVICE_ID_LENGTH:
        raise ValueError(
            f"device_id must be at most {DEVICE_ID_LENGTH} bytes, got {len(raw)}"
        )
    return raw.ljust(DEVICE_ID_LENGTH, DEVICE_ID_PAD)


def _scaled_u16(value: float) -> int:
    return max(0, min(U16_MAX, round(value * 10)))


def _utc(timestamp: datetime) -> datetime:
    if timestamp.tzinfo is None:
        return timestamp
    return timestamp.astimezone(timezone.utc)


def encode(fix: Fix, satellites_used: int, device_id: str) -> bytes:
    """Encode an accepted fix into a tracking message.

    Args:
        fix: The fix to report; must be actionable
        satellites_used: Satellites used in the current solution
        device_id: Device identifier, at most 22 bytes in UTF-8

    Returns:
        The encoded message

    Raises:
        ValueError: If the fix is not usable or a field is out of range
    """
    if not fix.is_actionable:
        raise ValueError(
            f"Refusing to encode unusable fix (mode={fix.mode}, "
            f"lat={fix.latitude}, lon={fix.longitude})"
        )

    fields: list[tuple[FieldBit, tuple]] = [
        (FieldBit.REQUIRED, ()),
        (FieldBit.DEVICE_ID, (encode_device_id(device_id),)),
    ]

    timestamp = _utc(fix.timestamp) if fix.timestamp is not None else None
    if timestamp is not None:
        if not 0 <= timestamp.year - YEAR_BASE <= U8_MAX:
            raise ValueError(f"Fix year out of range: {timestamp.year}")
        fields.append(
            (FieldBit.DATE, (timestamp.day, timestamp.month, timestamp.year - YEAR_BASE))
        )

    fields.append((FieldBit.FIX_STATUS, (1 if fix.mode >= MIN_USABLE_MODE else 0,)))
    fields.append((FieldBit.LATITUDE, (encode_coordinate(fix.latitude),)))
    fields.append((FieldBit.LONGITUDE, (encode_coordinate(fix.longitude),)))

    if fix.speed_knots is not None:
        fields.append((FieldBit.SPEED, (_scaled_u16(fix.speed_knots),)))
    if fix.track_degrees is not None:
        fields.append((FieldBit.COURSE, (_scaled_u16(fix.track_degrees),)))
    if timestamp is not None:
        fields.append(
            (FieldBit.TIME, (timestamp.hour, timestamp.minute, timestamp.second))
        )

    fields.append((FieldBit.SATELLITES, (max(0, min(U8_MAX, satellites_used)),)))

    # Each bit appears once, so adding is the same as OR-ing
    field_mask = 0
    body = bytearray()
    for bit, values in fields:
        field_mask += 1 << bit
        body += struct.pack(">" + FIELD_FORMATS[bit], *values)

    header = HEADER.pack(
        PROTOCOL_VERSION, COMMAND_TYPE, MESSAGE_TYPE, MASK_MARKER, field_mask
    )
    return header + bytes(body)


def decode(data: bytes) -> DecodedMessage:
    """Parse a tracking message strictly by its field mask.

    Args:
        data: Raw message bytes

    Returns:
        DecodedMessage with the fields present in the message

    Raises:
        ValueError: If the header is wrong, the mask has unknown bits, the
            body is truncated or bytes are left over
    """
    if len(data) < HEADER.size:
        raise ValueError(f"Message too short for header: {len(data)} bytes")

    version, command, message_type, marker, field_mask = HEADER.unpack_from(data)
    if (version, command, message_type, marker) != (
        PROTOCOL_VERSION,
        COMMAND_TYPE,
        MESSAGE_TYPE,
        MASK_MARKER,
    ):
        raise ValueError(
            f"Unexpected header: version={version} command={command} "
            f"type={message_type} marker={marker}"
        )
    if field_mask & ~KNOWN_MASK:
        raise ValueError(f"Unknown bits in field mask: {field_mask & ~KNOWN_MASK:#x}")

    values: dict[str, object] = {}
    offset = HEADER.size
    for bit in FieldBit:
        if not field_mask & (1 << bit):
            continue
        field_struct = struct.Struct(">" + FIELD_FORMATS[bit])
        if offset + field_struct.size > len(data):
            raise ValueError(f"Message truncated in field {bit.name}")
        raw = field_struct.unpack_from(data, offset)
        offset += field_struct.size

        if bit == FieldBit.DEVICE_ID:
            values["device_id"] = raw[0].rstrip(DEVICE_ID_PAD).decode("utf-8")
        elif bit == FieldBit.DATE:
            day, month, year = raw
            values["fix_date"] = date(year + YEAR_BASE, month, day)
        elif bit == FieldBit.FIX_STATUS:
            values["fix_valid"] = raw[0] == 1
        elif bit == FieldBit.LATITUDE:
            values["latitude"] = decode_coordinate(raw[0])
        elif bit == FieldBit.LONGITUDE:
            values["longitude"] = decode_coordinate(raw[0])
        elif bit == FieldBit.SPEED:
            values["speed_knots"] = raw[0] / 10
        elif bit == FieldBit.COURSE:
            values["track_degrees"] = raw[0] / 10
        elif bit == FieldBit.TIME:
            values["fix_time"] = time(*raw)
        elif bit == FieldBit.SATELLITES:
            values["satellites"] = raw[0]

    if offset != len(data):
        raise ValueError(f"{len(data) - offset} trailing bytes after body")

    return DecodedMessage(
        protocol_version=version,
        command_type=command,
        message_type=message_type,
        field_mask=field_mask,
        **values,
    )
