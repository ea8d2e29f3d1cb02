"""Device session: command queue, attribute registry and event fan-out.

One ``BallSession`` lives for one connection. It is the only thing that
issues requests to the transport, and it never has more than one request
outstanding: sequences run strictly in FIFO order, and inside a sequence the
next command starts only when the previous one's completion arrives.

Completions and notifications may arrive from a different thread than the
caller's; all state is guarded by one re-entrant lock so listeners may call
back into the session.
"""

from __future__ import annotations

import logging
import threading
from collections import deque
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable

from smartball.ble import GATT_SUCCESS, Transport
from smartball.commands import (
    AttributeNotFound,
    Command,
    CommandSequence,
    ReadCommand,
    SequenceCallback,
    SequenceEvent,
    WriteCommand,
)
from smartball.decoders.capture import Capture
from smartball.decoders.sample import Sample
from smartball.decoders.type_two import MalformedPacket
from smartball.protocol import (
    ARM_KICK,
    CCCD_CODE,
    DISCONNECT,
    DISCONNECT_SEQUENCE,
    END_DATA_TRANSMIT_SEQUENCE,
    END_TRANSMISSION,
    KICK_SEQUENCE,
    MAX_SAMPLES,
    NOTIFY_ON,
    TRANSMIT_SEQUENCES,
    Characteristic,
    DataType,
    build_request_samples,
    is_end_marker,
    is_start_marker,
    transmit_sequence_name,
)

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Events
# ---------------------------------------------------------------------------


class BallEvent(Enum):
    READY_TO_KICK = "ready_to_kick"
    KICKED = "kicked"
    ATTRIBUTES_DISCOVERED = "attributes_discovered"


class DataEvent(Enum):
    TRANSMISSION_BEGUN = "transmission_begun"
    LINE_READ = "line_read"
    TRANSMISSION_ENDED = "transmission_ended"
    TRANSMISSION_CANCELLED = "transmission_cancelled"
    LINE_REJECTED = "line_rejected"


@dataclass(frozen=True)
class DataMessage:
    """What data listeners receive for every transmission event."""

    event: DataEvent
    data_type: DataType | None
    requested: int | None
    line: bytes | None = None
    start: bool = False
    end: bool = False
    samples: tuple[Sample, ...] = ()
    error: Exception | None = None


@dataclass
class TransmissionState:
    in_progress: bool = False
    data_type: DataType | None = None
    requested: int | None = None


EventListener = Callable[[BallEvent], None]
DataListener = Callable[[DataMessage], None]
CharacteristicListener = Callable[[bytes], None]


def _fan_out(listeners: list, *args: Any) -> None:
    """Call every listener still registered at the moment of its turn."""
    for listener in list(listeners):
        if listener in listeners:
            listener(*args)


# ---------------------------------------------------------------------------
# Session
# ---------------------------------------------------------------------------


class BallSession:
    def __init__(self, transport: Transport) -> None:
        self.transport = transport
        self._lock = threading.RLock()

        self._registry: dict[Characteristic, Any] = {}
        self._discovery_announced = False
        self._queue: deque[CommandSequence] = deque()
        self._notifying: set[Characteristic] = set()
        # the link carries at most one request; a flushed one still owes a completion
        self._request_outstanding = False
        self._flushed_request = False

        self.transmission = TransmissionState()
        self.capture: Capture | None = None
        self.kick_bit: bool | None = None
        self._previous_line: bytes | None = None

        self._event_listeners: list[EventListener] = []
        self._data_listeners: list[DataListener] = []
        self._characteristic_listeners: dict[Characteristic, list[CharacteristicListener]] = {}

        self.add_characteristic_listener(Characteristic.KICK_BIT, self._on_kick_bit)
        self.add_characteristic_listener(Characteristic.DATA_CALLBACK, self._on_data_line)

        transport.bind(self.on_command_complete, self.handle_notification)

    def __repr__(self) -> str:
        return (
            f"BallSession({len(self._registry)}/{len(Characteristic)} attributes, "
            f"{len(self._queue)} sequences queued, transmitting={self.transmission.in_progress})"
        )

    # -- listeners ---------------------------------------------------------

    def add_event_listener(self, listener: EventListener) -> None:
        with self._lock:
            if listener not in self._event_listeners:
                self._event_listeners.append(listener)

    def remove_event_listener(self, listener: EventListener) -> None:
        with self._lock:
            if listener in self._event_listeners:
                self._event_listeners.remove(listener)

    def add_data_listener(self, listener: DataListener) -> None:
        with self._lock:
            if listener not in self._data_listeners:
                self._data_listeners.append(listener)

    def remove_data_listener(self, listener: DataListener) -> None:
        with self._lock:
            if listener in self._data_listeners:
                self._data_listeners.remove(listener)

    def add_characteristic_listener(self, characteristic: Characteristic, listener: CharacteristicListener) -> None:
        with self._lock:
            listeners = self._characteristic_listeners.setdefault(characteristic, [])
            if listener in listeners:
                logger.debug("Listener already registered on %s", characteristic.name)
                return
            listeners.append(listener)

    def remove_characteristic_listener(self, listener: CharacteristicListener) -> None:
        with self._lock:
            for listeners in self._characteristic_listeners.values():
                if listener in listeners:
                    listeners.remove(listener)

    # -- attribute registry ------------------------------------------------

    def add_attribute(self, characteristic: Characteristic, handle: Any) -> None:
        """Register a resolved characteristic; repeats are ignored."""
        with self._lock:
            if characteristic in self._registry:
                return
            self._registry[characteristic] = handle
            logger.debug("Characteristic added: %s (%d found)", characteristic.name, len(self._registry))

            if len(self._registry) == len(Characteristic) and not self._discovery_announced:
                self._discovery_announced = True
                logger.debug("All characteristics discovered")
                _fan_out(self._event_listeners, BallEvent.ATTRIBUTES_DISCOVERED)

    def attribute(self, characteristic: Characteristic) -> Any | None:
        return self._registry.get(characteristic)

    @property
    def all_discovered(self) -> bool:
        return self._discovery_announced

    # -- sequence queue ----------------------------------------------------

    @property
    def current_sequence(self) -> CommandSequence | None:
        with self._lock:
            return self._queue[0] if self._queue else None

    @property
    def pending(self) -> int:
        return len(self._queue)

    def enqueue_sequence(self, sequence: CommandSequence) -> None:
        """Queue a sequence and start it if the link is idle.

        Heads that fail to start are discarded until one starts or the queue
        is empty.
        """
        with self._lock:
            self._queue.append(sequence)
            logger.debug("Sequence queued: %s @ position %d", sequence.name, len(self._queue) - 1)
            self._drain()

    def on_command_complete(self, value: bytes | None = None, status: int = GATT_SUCCESS) -> None:
        """Transport callback: the outstanding write or read has finished."""
        with self._lock:
            if not self._request_outstanding:
                if self._queue:
                    logger.warning("Command completion with no request outstanding, ignored")
                else:
                    logger.warning("Command completion with no active sequence, ignored")
                return
            self._request_outstanding = False
            if self._flushed_request:
                self._flushed_request = False
                logger.debug("Completion of a flushed request, ignored")
                self._drain()
                return
            sequence = self._queue[0]
            command = sequence.peek()
            if command is None:
                logger.warning("Command completion for empty sequence %s, ignored", sequence.name)
                return
            if status != GATT_SUCCESS:
                logger.warning("%s: %r completed with status %d", sequence.name, command, status)

            if isinstance(command, ReadCommand):
                command.deliver(value, status)

            sequence.pop()

            if sequence.is_empty():
                self._end_current_sequence()
            elif not sequence.execute_top(self._execute_command):
                self._queue.popleft()
                logger.debug("Sequence ended early, next command failed to start: %s", sequence.name)
                sequence.notify(SequenceEvent.ENDED_EARLY)
                self._drain()

    def flush(self) -> None:
        """Discard every queued sequence, telling each one it ended early.

        A request already on the link is not cancelled; the next sequence
        starts only once its completion has been swallowed.
        """
        with self._lock:
            if self._request_outstanding:
                self._flushed_request = True
            while self._queue:
                sequence = self._queue.popleft()
                sequence.notify(SequenceEvent.ENDED_EARLY)

    def reset(self) -> None:
        """Return to a clean slate; call on every disconnect."""
        with self._lock:
            self._clear_transmission()
            self.flush()
            # a dead link delivers no more completions
            self._request_outstanding = False
            self._flushed_request = False
            self._notifying.clear()
            self._registry.clear()
            self._discovery_announced = False
            self._previous_line = None
            self.kick_bit = None
            logger.debug("Session reset")

    on_disconnected = reset

    def _drain(self) -> None:
        while not self._execute_top():
            pass

    def _execute_top(self) -> bool:
        """Start the head sequence; False means it failed and was removed."""
        if not self._queue:
            return True
        sequence = self._queue[0]
        if sequence.executing or self._request_outstanding:
            return True

        if sequence.execute_top(self._execute_command):
            logger.debug("Sequence begun: %s", sequence.name)
            sequence.notify(SequenceEvent.BEGUN_EXECUTION)
            self._on_sequence_begun(sequence)
            return True

        logger.debug("Sequence failed to start and was removed: %s", sequence.name)
        sequence.notify(SequenceEvent.FAILED_TO_BEGIN)
        if self._queue and self._queue[0] is sequence:
            self._queue.popleft()
        return False

    def _end_current_sequence(self) -> None:
        sequence = self._queue.popleft()
        if sequence.executing:
            logger.debug("Sequence ended early: %s", sequence.name)
            sequence.notify(SequenceEvent.ENDED_EARLY)
        else:
            logger.debug("Sequence finished: %s", sequence.name)
            sequence.notify(SequenceEvent.FINISHED_EXECUTION)
        self._drain()

    def _execute_command(self, command: Command) -> None:
        handle = self._registry.get(command.characteristic)
        if handle is None:
            raise AttributeNotFound(f"{command.characteristic.name} has not been discovered")
        if command.characteristic not in self._notifying:
            self.transport.enable_notifications(handle)
            self._notifying.add(command.characteristic)
        command.execute(self.transport, handle)
        self._request_outstanding = True

    # -- transmission state ------------------------------------------------

    def _on_sequence_begun(self, sequence: CommandSequence) -> None:
        data_type = TRANSMIT_SEQUENCES.get(sequence.name)
        if data_type is not None:
            if self.capture is not None and not self.capture.complete:
                self.capture.seal(cancelled=True)
            self.transmission = TransmissionState(True, data_type, sequence.requested_samples)
            self.capture = Capture(data_type, sequence.requested_samples)
            self._previous_line = None
            logger.info("Transmission requested: type %d, %s samples", data_type, sequence.requested_samples)
        elif sequence.name == END_DATA_TRANSMIT_SEQUENCE:
            self._clear_transmission()

    def _clear_transmission(self) -> None:
        state = self.transmission
        if state.in_progress:
            logger.info("Transmission cancelled: type %d", state.data_type)
            if self.capture is not None:
                self.capture.seal(cancelled=True)
            _fan_out(
                self._data_listeners,
                DataMessage(DataEvent.TRANSMISSION_CANCELLED, state.data_type, state.requested),
            )
        self.transmission = TransmissionState()

    @property
    def data_type_in_transit(self) -> DataType | None:
        return self.transmission.data_type if self.transmission.in_progress else None

    # -- notifications -----------------------------------------------------

    def handle_notification(self, attribute: Any, value: bytes) -> None:
        """Transport callback: route a value change to its listeners."""
        characteristic = attribute if isinstance(attribute, Characteristic) else Characteristic.from_uuid(attribute)
        if characteristic is None:
            logger.debug("Notification from unknown attribute %s", attribute)
            return
        with self._lock:
            _fan_out(self._characteristic_listeners.get(characteristic, []), bytes(value))

    def _on_kick_bit(self, value: bytes) -> None:
        if not value:
            return
        if value[0] == 0:
            self.kick_bit = False
            logger.debug("Ball has been kicked")
            _fan_out(self._event_listeners, BallEvent.KICKED)
        elif value[0] == 1:
            self.kick_bit = True
            logger.debug("Ball is ready to be kicked")
            _fan_out(self._event_listeners, BallEvent.READY_TO_KICK)

    def _on_data_line(self, value: bytes) -> None:
        state = self.transmission
        if not state.in_progress or len(value) <= 3:
            return

        def message(event: DataEvent, **kwargs: Any) -> DataMessage:
            return DataMessage(event, state.data_type, state.requested, **kwargs)

        if is_start_marker(value):
            logger.info("Transmission begun: type %d", state.data_type)
            samples = self._feed_capture(value, start=True)
            for listener in list(self._data_listeners):
                if listener in self._data_listeners:
                    listener(message(DataEvent.TRANSMISSION_BEGUN))
                if listener in self._data_listeners:
                    listener(message(DataEvent.LINE_READ, line=value, start=True, samples=samples))

        elif is_end_marker(value, self._previous_line):
            self.transmission = TransmissionState(False, state.data_type, state.requested)
            self._previous_line = None
            samples = self._feed_capture(value, end=True)
            if self.capture is not None:
                self.capture.seal()
            logger.info("Transmission ended: %r", self.capture)
            for listener in list(self._data_listeners):
                if listener in self._data_listeners:
                    listener(message(DataEvent.LINE_READ, line=value, end=True, samples=samples))
                if listener in self._data_listeners:
                    listener(message(DataEvent.TRANSMISSION_ENDED))

        else:
            samples = self._feed_capture(value)
            _fan_out(self._data_listeners, message(DataEvent.LINE_READ, line=value, samples=samples))
            self._previous_line = value

    def _feed_capture(self, line: bytes, start: bool = False, end: bool = False) -> tuple[Sample, ...]:
        if self.capture is None:
            return ()
        try:
            return tuple(self.capture.add_line(line, start=start, end=end))
        except MalformedPacket as exc:
            logger.error("Rejected data line: %s", exc)
            state = self.transmission
            _fan_out(
                self._data_listeners,
                DataMessage(DataEvent.LINE_REJECTED, state.data_type, state.requested, line=line, error=exc),
            )
            return ()

    # -- command sequences -------------------------------------------------

    def execute_command(
        self,
        command: Command,
        name: str,
        callback: SequenceCallback | None = None,
    ) -> CommandSequence:
        """Queue a one-command sequence."""
        sequence = CommandSequence(name, callback).enqueue(command)
        self.enqueue_sequence(sequence)
        return sequence

    def arm_kick(self, callback: SequenceCallback | None = None) -> CommandSequence:
        """Subscribe to kick and data notifications and arm kick detection."""
        sequence = CommandSequence(KICK_SEQUENCE, callback)
        sequence.enqueue(WriteCommand(Characteristic.KICK_BIT, NOTIFY_ON, CCCD_CODE))
        sequence.enqueue(WriteCommand(Characteristic.DATA_CALLBACK, NOTIFY_ON, CCCD_CODE))
        for payload in ARM_KICK:
            sequence.enqueue(WriteCommand(Characteristic.COMMAND_FIELD, payload))
        self.enqueue_sequence(sequence)
        return sequence

    def request_samples(
        self,
        num_samples: int,
        data_type: int,
        callback: SequenceCallback | None = None,
    ) -> CommandSequence:
        """Ask the ball to transmit its last ``num_samples`` samples (at most 1096)."""
        payload = build_request_samples(num_samples, data_type)
        sequence = CommandSequence(
            transmit_sequence_name(data_type),
            callback,
            requested_samples=min(num_samples, MAX_SAMPLES),
        )
        sequence.enqueue(WriteCommand(Characteristic.COMMAND_FIELD, payload))
        self.enqueue_sequence(sequence)
        return sequence

    def end_transmission(self, callback: SequenceCallback | None = None) -> CommandSequence:
        return self.execute_command(
            WriteCommand(Characteristic.COMMAND_FIELD, END_TRANSMISSION),
            END_DATA_TRANSMIT_SEQUENCE,
            callback,
        )

    def disconnect(self, callback: SequenceCallback | None = None) -> CommandSequence:
        return self.execute_command(
            WriteCommand(Characteristic.COMMAND_FIELD, DISCONNECT),
            DISCONNECT_SEQUENCE,
            callback,
        )

    def read(
        self,
        characteristic: Characteristic,
        callback: Callable[[str | None, bytes | None, int], None],
        request_id: str | None = None,
    ) -> CommandSequence:
        """Queue a read of ``characteristic``; ``callback`` gets (id, value, status)."""
        return self.execute_command(
            ReadCommand(characteristic, request_id or characteristic.name, callback),
            f"Read {characteristic.name}",
        )
