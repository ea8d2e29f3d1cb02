"""Type-2 sample stream decoder.

Line layout (20 bytes):

    [0:2]   sequence word, uint16 LE
              bits 0-12  line sequence number, counts up from 0
              bit 15     slot 0 is delta coded
              bit 14     slot 1 is delta coded
              bit 13     slot 2 is delta coded
    [2:8]   slot 0
    [8:14]  slot 1
    [14:20] slot 2

An absolute slot is one sample, 3x int16 LE. A delta slot is two samples,
six signed bytes relative to the running position. The stream opens with
one or more framing lines starting 8A 0A and closes with a line whose first
byte is 0x9A and whose bytes 9-19 are all zero.

The bit layout comes from the vendor firmware and is treated as a fixed
contract.
"""

from __future__ import annotations

import logging
import struct

from smartball.decoders.sample import SAMPLE_PERIOD, Sample, wrap_int16
from smartball.protocol import END_GUARD_BYTE, END_MARKER_BYTE, PACKET_SIZE

logger = logging.getLogger(__name__)

SLOT_OFFSETS = (2, 8, 14)
SLOT_FLAGS = (0x8000, 0x4000, 0x2000)
SEQUENCE_MASK = 0x1FFF


class MalformedPacket(ValueError):
    """A type-2 line was not exactly 20 bytes long."""


def is_opening_frame(packet: bytes) -> bool:
    return packet[0] == 0x8A and packet[1] == 0x0A


def is_trailing_frame(packet: bytes) -> bool:
    return packet[0] == END_MARKER_BYTE and not any(packet[9:20])


class TypeTwoDecoder:
    """Stateful decoder for one transmission of ``requested`` samples.

    ``requested`` of None means no limit.
    """

    def __init__(self, requested: int | None) -> None:
        self.requested = requested
        self.expected_sequence = 0
        self.desync_count = 0
        self.done = False
        self.samples_created = 0
        self._in_body = False
        self._previous_first: int | None = None
        self._position: tuple[int, int, int] | None = None

    @property
    def full(self) -> bool:
        return self.requested is not None and self.samples_created >= self.requested

    def add_packet(self, packet: bytes) -> list[Sample]:
        """Decode one line, returning the samples it yielded.

        Raises MalformedPacket if the line is not 20 bytes. Out-of-sequence
        lines are logged and dropped; the expected counter stays put.
        """
        if len(packet) != PACKET_SIZE:
            raise MalformedPacket(f"Wrong packet size: {len(packet)}")
        if self.done:
            return []

        previous_first, self._previous_first = self._previous_first, packet[0]

        if not self._in_body:
            if is_opening_frame(packet):
                return []
            self._in_body = True

        if is_trailing_frame(packet) and previous_first != END_GUARD_BYTE:
            logger.debug("Trailing frame after %d samples", self.samples_created)
            self.done = True
            return []

        word = packet[0] | (packet[1] << 8)
        sequence = word & SEQUENCE_MASK
        if sequence != self.expected_sequence:
            self.desync_count += 1
            logger.warning("Unexpected sequence number: %d, expected %d", sequence, self.expected_sequence)
            return []
        self.expected_sequence += 1

        samples: list[Sample] = []
        for offset, flag in zip(SLOT_OFFSETS, SLOT_FLAGS):
            if not self._extract_slot(packet, offset, bool(word & flag), samples):
                break
        return samples

    def _extract_slot(self, packet: bytes, offset: int, delta: bool, out: list[Sample]) -> bool:
        """Append the slot's samples to ``out``; False once the request is met."""
        slot = packet[offset:offset + 6]

        if not delta:
            return self._append(struct.unpack("<3h", slot), out)

        if self._position is None:
            logger.warning("Delta-coded slot at offset %d with no absolute sample before it, skipped", offset)
            return True

        d = struct.unpack("<6b", slot)
        for dx, dy, dz in (d[:3], d[3:]):
            x, y, z = self._position
            if not self._append((wrap_int16(x + dx), wrap_int16(y + dy), wrap_int16(z + dz)), out):
                return False
        return True

    def _append(self, position: tuple[int, ...], out: list[Sample]) -> bool:
        if self.full:
            return False
        self._position = (position[0], position[1], position[2])
        out.append(Sample(self.samples_created * SAMPLE_PERIOD, *self._position))
        self.samples_created += 1
        return True
