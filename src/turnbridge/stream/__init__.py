"""Line-framed agent output protocol — event models and framer."""

from turnbridge.stream.events import (
    ContentDelta,
    ContentFull,
    FramedEvent,
    MessageEnd,
    MessageStart,
    RawJsonBlock,
    SessionId,
    StructuredMessage,
)
from turnbridge.stream.framer import FramerState, StreamFramer, serialize

__all__ = [
    "ContentDelta",
    "ContentFull",
    "FramedEvent",
    "FramerState",
    "MessageEnd",
    "MessageStart",
    "RawJsonBlock",
    "SessionId",
    "StreamFramer",
    "StructuredMessage",
    "serialize",
]
