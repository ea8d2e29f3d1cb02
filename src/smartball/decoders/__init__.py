"""Sample stream decoders for smart ball data transmissions."""

from smartball.decoders.sample import Sample, SAMPLE_PERIOD, SAMPLE_TO_G
from smartball.decoders.type_one import TypeOneDecoder
from smartball.decoders.type_two import MalformedPacket, TypeTwoDecoder
from smartball.decoders.capture import Capture, CaptureInProgress, make_decoder

__all__ = [
    "Sample",
    "SAMPLE_PERIOD",
    "SAMPLE_TO_G",
    "TypeOneDecoder",
    "TypeTwoDecoder",
    "MalformedPacket",
    "Capture",
    "CaptureInProgress",
    "make_decoder",
]
