"""Tests for single commands and command sequence advancement."""

import pytest

from smartball.commands import (
    CommandSequence,
    ReadCommand,
    SequenceEvent,
    TransportFault,
    WriteCommand,
)
from smartball.protocol import CCCD_CODE, Characteristic

from tests.conftest import FakeTransport


def _ok(command):
    pass


def _refuse(command):
    raise TransportFault("busy")


class TestCommands:
    def test_write_executes_on_transport(self):
        transport = FakeTransport()
        WriteCommand(Characteristic.COMMAND_FIELD, b"\x06").execute(transport, "h")
        assert transport.requests == [("write", "h", b"\x06", None)]

    def test_descriptor_write(self):
        transport = FakeTransport()
        WriteCommand(Characteristic.KICK_BIT, b"\x01\x00", CCCD_CODE).execute(transport, "h")
        assert transport.requests == [("write", "h", b"\x01\x00", "2902")]

    def test_read_executes_on_transport(self):
        transport = FakeTransport()
        ReadCommand(Characteristic.BATTERY, "battery").execute(transport, "h")
        assert transport.requests == [("read", "h", None)]

    def test_read_delivers_to_callback(self):
        got = []
        cmd = ReadCommand(Characteristic.BATTERY, "battery", lambda *args: got.append(args))
        cmd.deliver(b"\x5a", 0)
        assert got == [("battery", b"\x5a", 0)]

    def test_read_without_callback(self):
        ReadCommand(Characteristic.BATTERY).deliver(b"\x00", 0)

    def test_commands_are_immutable(self):
        cmd = WriteCommand(Characteristic.COMMAND_FIELD, b"\x06")
        with pytest.raises(AttributeError):
            cmd.payload = b"\x03"

    def test_repr(self):
        assert repr(WriteCommand(Characteristic.KICK_BIT, b"\x01\x00", "2902")) == "Write(KICK_BIT/2902, [01 00])"


class TestCommandSequence:
    def _sequence(self, n=2, callback=None):
        seq = CommandSequence("test", callback)
        for i in range(n):
            seq.enqueue(WriteCommand(Characteristic.COMMAND_FIELD, bytes([i])))
        return seq

    def test_peek_and_pop_fifo(self):
        seq = self._sequence(2)
        assert seq.peek().payload == b"\x00"
        assert seq.pop().payload == b"\x00"
        assert seq.peek().payload == b"\x01"
        assert len(seq) == 1

    def test_execute_top_marks_executing(self):
        seq = self._sequence(2)
        assert not seq.executing
        assert seq.execute_top(_ok)
        assert seq.executing

    def test_pop_last_clears_executing(self):
        seq = self._sequence(1)
        seq.execute_top(_ok)
        seq.pop()
        assert seq.is_empty()
        assert not seq.executing

    def test_pop_with_commands_left_keeps_executing(self):
        seq = self._sequence(2)
        seq.execute_top(_ok)
        seq.pop()
        assert seq.executing

    def test_execute_top_failure(self):
        seq = self._sequence(1)
        assert not seq.execute_top(_refuse)
        assert not seq.executing

    def test_empty_sequence_cannot_start(self):
        assert not CommandSequence("empty").execute_top(_ok)

    def test_peek_empty(self):
        assert CommandSequence("empty").peek() is None

    def test_notify(self):
        events = []
        seq = self._sequence(1, callback=lambda s, e: events.append((s.name, e)))
        seq.notify(SequenceEvent.BEGUN_EXECUTION)
        assert events == [("test", SequenceEvent.BEGUN_EXECUTION)]

    def test_notify_without_callback(self):
        self._sequence(1).notify(SequenceEvent.ENDED_EARLY)
