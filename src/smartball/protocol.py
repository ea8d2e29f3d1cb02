"""Smart ball GATT protocol constants and command payload builders.

Every attribute the ball exposes is addressed by a 16-bit code substituted
into the Bluetooth base UUID:

    0000XXXX-0000-1000-8000-00805F9B34FB

The proprietary ball service lives at 0xAD04. Its COMMAND_FIELD
characteristic accepts short opcode writes; samples come back as 20-byte
notifications on DATA_CALLBACK, framed by a start packet (8A 0A 00 00 ...)
and a trailing packet whose first byte is 0x9A.
"""

from __future__ import annotations

import uuid
from enum import Enum, IntEnum

# ---------------------------------------------------------------------------
# Attribute identity
# ---------------------------------------------------------------------------

UUID_TEMPLATE = "0000{code}-0000-1000-8000-00805F9B34FB"

# Client characteristic configuration descriptor
CCCD_CODE = "2902"
NOTIFY_ON = bytes([1, 0])


def derive_id(code: str) -> uuid.UUID:
    """Build the full 128-bit identifier for a 4-hex-digit attribute code."""
    if len(code) != 4:
        raise ValueError(f"Attribute code must be 4 hex digits, got {code!r}")
    int(code, 16)  # raises ValueError on non-hex input
    return uuid.UUID(UUID_TEMPLATE.format(code=code.upper()))


class Service(Enum):
    GENERIC_ACCESS = "1800"
    GENERIC_ATTRIBUTE = "1801"
    DEVICE_INFORMATION = "180A"
    BATTERY_SERVICE = "180F"
    SMART_BALL_SERVICE = "AD04"

    @property
    def uuid(self) -> uuid.UUID:
        return derive_id(self.value)


class Characteristic(Enum):
    """Every characteristic the session expects to discover.

    Values are (service, code) pairs; the registry is complete once all of
    them have been resolved.
    """

    # Generic access
    DEVICE_NAME = (Service.GENERIC_ACCESS, "2A00")
    APPEARANCE = (Service.GENERIC_ACCESS, "2A01")
    PPCP = (Service.GENERIC_ACCESS, "2A04")

    # Device information
    SYSTEM_ID = (Service.DEVICE_INFORMATION, "2A23")
    MODEL_NUMBER = (Service.DEVICE_INFORMATION, "2A24")
    SERIAL_NUMBER = (Service.DEVICE_INFORMATION, "2A25")
    FIRMWARE_VERSION = (Service.DEVICE_INFORMATION, "2A26")
    SOFTWARE_REVISION = (Service.DEVICE_INFORMATION, "2A28")
    MANUFACTURER_NAME = (Service.DEVICE_INFORMATION, "2A29")

    # Battery
    BATTERY = (Service.BATTERY_SERVICE, "2A19")

    # Smart ball service
    KICK_EVENT = (Service.SMART_BALL_SERVICE, "AD12")
    KICK_BIT = (Service.SMART_BALL_SERVICE, "AD14")
    COMMAND_FIELD = (Service.SMART_BALL_SERVICE, "AD15")
    FIRMWARE_WRITE_FIELD = (Service.SMART_BALL_SERVICE, "AD16")
    DATA_CALLBACK = (Service.SMART_BALL_SERVICE, "AD17")
    CHARGING_STATE = (Service.SMART_BALL_SERVICE, "AD1F")
    SAMPLE_RATE = (Service.SMART_BALL_SERVICE, "AD20")
    TIMEOUT_COUNTER = (Service.SMART_BALL_SERVICE, "AD33")
    COMMAND_CALLBACK = (Service.SMART_BALL_SERVICE, "ADFE")

    @property
    def service(self) -> Service:
        return self.value[0]

    @property
    def code(self) -> str:
        return self.value[1]

    @property
    def uuid(self) -> uuid.UUID:
        return derive_id(self.code)

    @classmethod
    def from_uuid(cls, value: str | uuid.UUID) -> Characteristic | None:
        """Look up a characteristic by its full UUID, or None if unknown."""
        if not isinstance(value, uuid.UUID):
            try:
                value = uuid.UUID(str(value))
            except ValueError:
                return None
        return _BY_UUID.get(value)


_BY_UUID = {c.uuid: c for c in Characteristic}


# ---------------------------------------------------------------------------
# Data types and sequence names
# ---------------------------------------------------------------------------


class DataType(IntEnum):
    """Sample stream encodings the ball can transmit."""

    TYPE_ONE = 1
    TYPE_TWO = 2


KICK_SEQUENCE = "Kick Sequence"
DATA_TRANSMIT_SEQUENCE_1 = "Data Transmit Sequence 1"
DATA_TRANSMIT_SEQUENCE_2 = "Data Transmit Sequence 2"
END_DATA_TRANSMIT_SEQUENCE = "End Data Transmit Sequence"
DISCONNECT_SEQUENCE = "Disconnect"

TRANSMIT_SEQUENCES = {
    DATA_TRANSMIT_SEQUENCE_1: DataType.TYPE_ONE,
    DATA_TRANSMIT_SEQUENCE_2: DataType.TYPE_TWO,
}


def transmit_sequence_name(data_type: int) -> str:
    return DATA_TRANSMIT_SEQUENCE_1 if data_type == DataType.TYPE_ONE else DATA_TRANSMIT_SEQUENCE_2


# ---------------------------------------------------------------------------
# Command payloads (written to COMMAND_FIELD)
# ---------------------------------------------------------------------------

MAX_SAMPLES = 1096
PACKET_SIZE = 20

# Opcodes
OP_KICK_RESET = 0x06  # also ends an in-flight transmission
OP_KICK_ARM = 0x03
OP_REQUEST_SAMPLES = 0x0A
OP_DISCONNECT = 0x15

END_TRANSMISSION = bytes([OP_KICK_RESET])
DISCONNECT = bytes([OP_DISCONNECT])
ARM_KICK = (bytes([OP_KICK_RESET]), bytes([OP_KICK_ARM]))

# Framing sentinels seen on DATA_CALLBACK
START_MARKER = bytes([0x8A, 0x0A, 0x00, 0x00])
END_MARKER_BYTE = 0x9A
END_GUARD_BYTE = 0x9B


def build_request_samples(num_samples: int, data_type: int) -> bytes:
    """Build the 10-byte sample request, clamping the count to MAX_SAMPLES.

    Layout: [0x0A, 0, 0, 0, 0, lo(N), hi(N), 0, 0, type]
    """
    if data_type not in (DataType.TYPE_ONE, DataType.TYPE_TWO):
        raise ValueError(f"Unknown data type: {data_type}")
    if num_samples < 0:
        raise ValueError(f"Sample count must be non-negative, got {num_samples}")
    n = min(num_samples, MAX_SAMPLES)
    return bytes([OP_REQUEST_SAMPLES, 0, 0, 0, 0, n & 0xFF, (n >> 8) & 0xFF, 0, 0, int(data_type)])


def is_start_marker(packet: bytes) -> bool:
    return len(packet) > 3 and packet[:4] == START_MARKER


def is_end_marker(packet: bytes, previous: bytes | None) -> bool:
    """Trailing frame: 0x9A leads, unless the prior line led with 0x9B."""
    return (
        previous is not None
        and len(packet) > 0
        and packet[0] == END_MARKER_BYTE
        and previous[0] != END_GUARD_BYTE
    )


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def bytes_to_hex(data: bytes) -> str:
    """Format bytes as a hex string with spaces."""
    return " ".join(f"{b:02x}" for b in data)


def hex_to_bytes(hex_str: str) -> bytes:
    """Parse a hex string (with or without spaces) into bytes."""
    return bytes.fromhex(hex_str.replace(" ", "").replace("\n", ""))
