"""Continuous recording: capture every kick into one long sample stream.

While recording, each KICKED event requests the ball's buffered samples;
when that transmission ends, kick detection is armed again. Samples from
all transmissions are appended to a single stream with continuous
timestamps, and ``marks`` records the index where each kick's data starts.
"""

from __future__ import annotations

import logging

import numpy as np

from smartball.commands import CommandSequence, SequenceEvent
from smartball.decoders.sample import SAMPLE_PERIOD, SAMPLE_TO_G, Sample
from smartball.protocol import MAX_SAMPLES, DataType
from smartball.session import BallEvent, BallSession, DataEvent, DataMessage

logger = logging.getLogger(__name__)


class ContinuousReader:
    def __init__(
        self,
        session: BallSession,
        num_samples: int = MAX_SAMPLES,
        data_type: DataType = DataType.TYPE_TWO,
    ) -> None:
        self.session = session
        self.num_samples = num_samples
        self.data_type = data_type
        self.recording = False
        self.samples: list[Sample] = []
        self.marks: list[int] = []

    def __repr__(self) -> str:
        return f"ContinuousReader({len(self.samples)} samples, {len(self.marks)} kicks, recording={self.recording})"

    def start(self) -> None:
        if self.recording:
            return
        logger.info("Continuous recording started")
        self.recording = True
        self.session.add_event_listener(self._on_ball_event)
        self.session.add_data_listener(self._on_data)
        self.session.arm_kick(self._on_sequence_event)

    def stop(self) -> None:
        if not self.recording:
            return
        logger.info("Continuous recording stopped: %r", self)
        self.session.end_transmission(self._on_sequence_event)
        self.recording = False
        self.session.remove_event_listener(self._on_ball_event)
        self.session.remove_data_listener(self._on_data)

    def clear(self) -> None:
        self.samples = []
        self.marks = []

    def to_array(self) -> np.ndarray:
        """All recorded samples as an (N, 3) array in g."""
        if not self.samples:
            return np.zeros((0, 3))
        return np.array([(s.x, s.y, s.z) for s in self.samples], dtype=float) * SAMPLE_TO_G

    # -- session callbacks -------------------------------------------------

    def _on_ball_event(self, event: BallEvent) -> None:
        if self.recording and event == BallEvent.KICKED:
            self.marks.append(len(self.samples))
            self.session.request_samples(self.num_samples, self.data_type, self._on_sequence_event)

    def _on_data(self, message: DataMessage) -> None:
        if not self.recording:
            return
        if message.event == DataEvent.LINE_READ:
            for s in message.samples:
                self.samples.append(Sample(len(self.samples) * SAMPLE_PERIOD, s.x, s.y, s.z))
        elif message.event == DataEvent.TRANSMISSION_ENDED:
            self.session.arm_kick(self._on_sequence_event)

    @staticmethod
    def _on_sequence_event(sequence: CommandSequence, event: SequenceEvent) -> None:
        logger.debug("%s: %s", sequence.name, event.value)
