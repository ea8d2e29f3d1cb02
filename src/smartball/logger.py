"""Drive one kick capture over BLE and log the raw packets to JSONL.

Every notification from KICK_BIT and DATA_CALLBACK is written as one JSON
line. A ``request`` record is written when a data transmission begins so the
log can be replayed without knowing how it was captured.
"""

from __future__ import annotations

import asyncio
import base64
import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import IO, Any

from bleak import BleakClient

from smartball.ble import BleakTransport, discover_attributes
from smartball.commands import CommandSequence, SequenceEvent
from smartball.decoders.capture import Capture
from smartball.protocol import Characteristic, DataType
from smartball.session import BallEvent, BallSession, DataEvent, DataMessage

logger = logging.getLogger(__name__)

LOGS_DIR = Path.cwd() / "logs"

# Without these the ball cannot be armed or read
REQUIRED = (Characteristic.KICK_BIT, Characteristic.DATA_CALLBACK, Characteristic.COMMAND_FIELD)


def packet_record(characteristic: Characteristic, data: bytes) -> dict[str, Any]:
    return {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "uuid": str(characteristic.uuid),
        "characteristic": characteristic.name,
        "hex_data": data.hex(),
        "raw_bytes_b64": base64.b64encode(data).decode("ascii"),
        "length": len(data),
    }


def request_record(data_type: int, requested: int | None) -> dict[str, Any]:
    return {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "event": "request",
        "data_type": int(data_type),
        "requested": requested,
    }


class PacketLog:
    """Append-only JSONL writer attached to a session's notifications."""

    def __init__(self, fh: IO[str]) -> None:
        self.fh = fh
        self.count = 0

    def write(self, record: dict[str, Any]) -> None:
        self.fh.write(json.dumps(record) + "\n")
        self.fh.flush()
        self.count += 1

    def attach(self, session: BallSession) -> None:
        for characteristic in (Characteristic.KICK_BIT, Characteristic.DATA_CALLBACK):
            session.add_characteristic_listener(
                characteristic,
                lambda value, c=characteristic: self.write(packet_record(c, value)),
            )
        session.add_data_listener(self._on_data)

    def _on_data(self, message: DataMessage) -> None:
        if message.event == DataEvent.TRANSMISSION_BEGUN and message.data_type is not None:
            self.write(request_record(message.data_type, message.requested))


def default_output() -> Path:
    LOGS_DIR.mkdir(parents=True, exist_ok=True)
    ts = datetime.now().strftime("%Y%m%d_%H%M%S")
    return LOGS_DIR / f"kick_{ts}.jsonl"


async def capture_kick(
    address: str,
    num_samples: int = 1096,
    data_type: DataType = DataType.TYPE_TWO,
    timeout: float = 30.0,
    output: str | None = None,
) -> Capture | None:
    """Connect, arm kick detection, wait for a kick and download its samples.

    Args:
        address: BLE address of the ball.
        num_samples: Samples to request (clamped to 1096 by the session).
        data_type: Stream encoding to request.
        timeout: Seconds to wait for the kick, and again for the transfer.
        output: JSONL log path. If None, auto-generates in logs/.

    Returns:
        The sealed capture, or None if the ball lacks required attributes.

    Raises:
        asyncio.TimeoutError: no kick, or the transfer did not finish in time.
    """
    outpath = Path(output) if output else default_output()
    outpath.parent.mkdir(parents=True, exist_ok=True)

    kicked = asyncio.Event()
    finished = asyncio.Event()

    def on_event(event: BallEvent) -> None:
        if event == BallEvent.KICKED:
            kicked.set()

    def on_data(message: DataMessage) -> None:
        if message.event in (DataEvent.TRANSMISSION_ENDED, DataEvent.TRANSMISSION_CANCELLED):
            finished.set()

    def on_sequence(sequence: CommandSequence, event: SequenceEvent) -> None:
        logger.debug("%s: %s", sequence.name, event.value)
        if event in (SequenceEvent.FAILED_TO_BEGIN, SequenceEvent.ENDED_EARLY):
            logger.warning("%s did not complete (%s)", sequence.name, event.value)

    logger.info("Connecting to %s", address)
    async with BleakClient(address) as client:
        session = BallSession(BleakTransport(client))
        session.add_event_listener(on_event)
        session.add_data_listener(on_data)

        discover_attributes(client, session)
        missing = [c.name for c in REQUIRED if session.attribute(c) is None]
        if missing:
            logger.error("Ball is missing characteristics: %s", ", ".join(missing))
            return None

        with open(outpath, "a") as fh:
            log = PacketLog(fh)
            log.attach(session)
            try:
                session.arm_kick(on_sequence)
                await asyncio.wait_for(kicked.wait(), timeout)

                session.request_samples(num_samples, data_type, on_sequence)
                await asyncio.wait_for(finished.wait(), timeout)
            finally:
                session.reset()
                logger.info("%d records -> %s", log.count, outpath)

        return session.capture
