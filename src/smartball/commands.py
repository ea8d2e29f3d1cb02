"""GATT commands and the named sequences that group them.

A sequence runs one command at a time: the next command is only issued
once the transport reports the previous one complete. The session owns the
queue of sequences; this module only knows how a single sequence advances.
"""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Union

from smartball.protocol import Characteristic, bytes_to_hex

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------


class CommandError(RuntimeError):
    """A command could not be started."""


class TransportFault(CommandError):
    """The transport refused a write, read or notification enable."""


class AttributeNotFound(CommandError):
    """The command targets a characteristic that was never discovered."""


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------

ReadCallback = Callable[[Union[str, None], Union[bytes, None], int], None]


@dataclass(frozen=True)
class WriteCommand:
    """Write ``payload`` to a characteristic, or to one of its descriptors."""

    characteristic: Characteristic
    payload: bytes
    descriptor: str | None = None  # 4-hex-digit descriptor code

    def execute(self, transport, handle) -> None:
        transport.write(handle, self.payload, self.descriptor)

    def __repr__(self) -> str:
        target = self.characteristic.name + (f"/{self.descriptor}" if self.descriptor else "")
        return f"Write({target}, [{bytes_to_hex(self.payload)}])"


@dataclass(frozen=True)
class ReadCommand:
    """Read a characteristic or descriptor; the value goes to ``callback``."""

    characteristic: Characteristic
    request_id: str | None = None
    callback: ReadCallback | None = None
    descriptor: str | None = None

    def execute(self, transport, handle) -> None:
        transport.read(handle, self.descriptor)

    def deliver(self, value: bytes | None, status: int) -> None:
        if self.callback is not None:
            self.callback(self.request_id, value, status)

    def __repr__(self) -> str:
        target = self.characteristic.name + (f"/{self.descriptor}" if self.descriptor else "")
        return f"Read({target}, id={self.request_id})"


Command = Union[WriteCommand, ReadCommand]

# Starts a command on the transport; raises CommandError on refusal.
CommandExecutor = Callable[[Command], None]


# ---------------------------------------------------------------------------
# Sequences
# ---------------------------------------------------------------------------


class SequenceEvent(Enum):
    BEGUN_EXECUTION = "begun_execution"
    FINISHED_EXECUTION = "finished_execution"
    FAILED_TO_BEGIN = "failed_to_begin"
    ENDED_EARLY = "ended_early"


SequenceCallback = Callable[["CommandSequence", SequenceEvent], None]


class CommandSequence:
    """A named FIFO of commands with an optional lifecycle callback.

    ``requested_samples`` is carried by data transmit sequences so the
    session can size the capture it opens when the sequence begins.
    """

    def __init__(
        self,
        name: str,
        callback: SequenceCallback | None = None,
        requested_samples: int | None = None,
    ) -> None:
        self.name = name
        self.callback = callback
        self.requested_samples = requested_samples
        self._commands: deque[Command] = deque()
        self._executing = False

    def __repr__(self) -> str:
        return f"CommandSequence({self.name!r}, {len(self._commands)} pending, executing={self._executing})"

    def __len__(self) -> int:
        return len(self._commands)

    def enqueue(self, command: Command) -> CommandSequence:
        self._commands.append(command)
        return self

    def peek(self) -> Command | None:
        return self._commands[0] if self._commands else None

    def pop(self) -> Command:
        """Remove the head command; an emptied sequence stops executing."""
        command = self._commands.popleft()
        if not self._commands:
            self._executing = False
        return command

    def is_empty(self) -> bool:
        return not self._commands

    @property
    def executing(self) -> bool:
        return self._executing

    def execute_top(self, executor: CommandExecutor) -> bool:
        """Start the head command. Returns False if it could not be started."""
        command = self.peek()
        if command is None:
            logger.warning("%s: nothing to execute", self.name)
            return False
        try:
            executor(command)
        except CommandError as exc:
            logger.warning("%s: failed to execute %r: %s", self.name, command, exc)
            return False
        logger.debug("%s: executing %r", self.name, command)
        self._executing = True
        return True

    def notify(self, event: SequenceEvent) -> None:
        if self.callback is not None:
            self.callback(self, event)
