"""Replay JSONL packet logs into captures for offline analysis."""

from __future__ import annotations

import base64
import json
import logging
from pathlib import Path
from typing import Iterator

from smartball.decoders.capture import Capture
from smartball.decoders.type_two import MalformedPacket
from smartball.protocol import Characteristic, DataType, is_end_marker, is_start_marker

logger = logging.getLogger(__name__)


def iter_records(capture_path: str | Path) -> Iterator[dict]:
    """Yield the JSON records of a capture log, skipping unparseable lines."""
    path = Path(capture_path)
    with open(path) as f:
        for line_num, line in enumerate(f, 1):
            line = line.strip()
            if not line:
                continue
            try:
                yield json.loads(line)
            except json.JSONDecodeError:
                logger.warning("%s:%d: invalid JSON, skipping", path.name, line_num)


def record_bytes(record: dict) -> bytes:
    if "raw_bytes_b64" in record:
        return base64.b64decode(record["raw_bytes_b64"])
    return bytes.fromhex(record.get("hex_data", ""))


def replay_file(
    capture_path: str | Path,
    data_type: DataType | None = None,
    requested: int | None = None,
) -> list[Capture]:
    """Rebuild every transmission in a log as a sealed capture.

    Args:
        capture_path: Path to the .jsonl log.
        data_type: Encoding to assume when the log has no request record.
        requested: Sample count to assume when the log has no request record.

    Returns:
        Captures in log order. A transmission cut off by the end of the log
        is returned sealed as cancelled.
    """
    captures: list[Capture] = []
    current: Capture | None = None
    previous: bytes | None = None
    pending_type = data_type
    pending_requested = requested

    for record in iter_records(capture_path):
        if record.get("event") == "request":
            pending_type = DataType(record["data_type"])
            pending_requested = record.get("requested")
            continue
        if Characteristic.from_uuid(record.get("uuid", "")) != Characteristic.DATA_CALLBACK:
            continue

        data = record_bytes(record)
        if len(data) <= 3:
            continue

        if is_start_marker(data):
            if current is not None and not current.complete:
                current.seal(cancelled=True)
            if pending_type is None:
                logger.warning("Transmission with unknown data type, assuming type 2")
                pending_type = DataType.TYPE_TWO
            current = Capture(pending_type, pending_requested)
            captures.append(current)
            _feed(current, data, start=True)
            previous = None
        elif current is None or current.complete:
            continue
        elif is_end_marker(data, previous):
            _feed(current, data, end=True)
            current.seal()
            previous = None
        else:
            _feed(current, data)
            previous = data

    if current is not None and not current.complete:
        current.seal(cancelled=True)

    logger.info("Replayed %d transmission(s) from %s", len(captures), Path(capture_path).name)
    return captures


def _feed(capture: Capture, data: bytes, start: bool = False, end: bool = False) -> None:
    try:
        capture.add_line(data, start=start, end=end)
    except MalformedPacket as exc:
        logger.warning("Dropped line: %s", exc)
