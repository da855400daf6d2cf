from typing import Dict, Optional, Tuple


WHEEL_REVOLUTION_DATA_PRESENT = 0x01
CRANK_REVOLUTION_DATA_PRESENT = 0x02

FLAGS = "flags"
CUMULATIVE_WHEEL_REVOLUTIONS = "cumulative_wheel_revolutions"
LAST_WHEEL_EVENT_TIME = "last_wheel_event_time"
CUMULATIVE_CRANK_REVOLUTIONS = "cumulative_crank_revolutions"
LAST_CRANK_EVENT_TIME = "last_crank_event_time"

# (field, size in bytes, presence bit), in wire order.
FIELD_LAYOUT: Tuple[Tuple[str, int, int], ...] = (
    (CUMULATIVE_WHEEL_REVOLUTIONS, 4, WHEEL_REVOLUTION_DATA_PRESENT),
    (LAST_WHEEL_EVENT_TIME, 2, WHEEL_REVOLUTION_DATA_PRESENT),
    (CUMULATIVE_CRANK_REVOLUTIONS, 2, CRANK_REVOLUTION_DATA_PRESENT),
    (LAST_CRANK_EVENT_TIME, 2, CRANK_REVOLUTION_DATA_PRESENT),
)

FIELD_SIZES: Dict[str, int] = {FLAGS: 1, **{name: size for name, size, _ in FIELD_LAYOUT}}


class MalformedPayload(ValueError):
    """The payload is shorter than its own flags byte claims."""


def wheel_data_present(flags: int) -> bool:
    return bool(flags & WHEEL_REVOLUTION_DATA_PRESENT)


def crank_data_present(flags: int) -> bool:
    return bool(flags & CRANK_REVOLUTION_DATA_PRESENT)


def read_flags(payload: bytes) -> int:
    if not payload:
        raise MalformedPayload("empty CSC measurement payload")
    return payload[0]


def field_offset(flags: int, field: str) -> Optional[int]:
    """Byte offset of ``field`` inside a payload carrying ``flags``.

    Returns None when the field's presence bit is not set. Offsets only
    depend on the flags: absent fields take no room, present ones are packed
    left to right after the flags byte.
    """

    if field == FLAGS:
        return 0

    offset = FIELD_SIZES[FLAGS]
    for name, size, bit in FIELD_LAYOUT:
        present = bool(flags & bit)
        if name == field:
            return offset if present else None
        if present:
            offset += size

    raise KeyError(field)


def payload_length(flags: int) -> int:
    """Minimum number of bytes a payload with these flags must carry."""
    length = FIELD_SIZES[FLAGS]
    for _, size, bit in FIELD_LAYOUT:
        if flags & bit:
            length += size
    return length


def read_field(payload: bytes, flags: int, field: str) -> Optional[int]:
    index = field_offset(flags, field)
    if index is None:
        return None

    size = FIELD_SIZES[field]
    if len(payload) < index + size:
        raise MalformedPayload(
            f"{field} needs bytes {index}..{index + size - 1}, payload has {len(payload)}"
        )
    return int.from_bytes(payload[index : index + size], byteorder="little", signed=False)
