"""Pydantic v2 models for framed events parsed from agent output."""

from __future__ import annotations

from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Discriminator, Field, Tag


class _FrameBase(BaseModel):
    """Common configuration shared by every framed event."""

    model_config = ConfigDict(extra="forbid", frozen=True)


class MessageStart(_FrameBase):
    """Turn boundary: the agent started producing a message."""

    type: Literal["message_start"] = "message_start"


class MessageEnd(_FrameBase):
    """Turn boundary: the agent finished producing a message."""

    type: Literal["message_end"] = "message_end"


class StructuredMessage(_FrameBase):
    """One structured SDK event carried as a JSON object on a single line."""

    type: Literal["message"] = "message"
    payload: dict[str, Any] = Field(description="Decoded JSON object")

    @property
    def message_type(self) -> str:
        """The SDK event type, or ``"unknown"`` when the payload has none."""
        value = self.payload.get("type")
        return value if isinstance(value, str) else "unknown"


class ContentFull(_FrameBase):
    """A full assistant text chunk."""

    type: Literal["content"] = "content"
    text: str = Field(description="Raw text after the marker")


class ContentDelta(_FrameBase):
    """An incremental assistant text chunk; the caller concatenates."""

    type: Literal["content_delta"] = "content_delta"
    text: str = Field(description="Raw text after the marker")


class SessionId(_FrameBase):
    """Session identifier the agent can later be resumed with."""

    type: Literal["session_id"] = "session_id"
    session_id: str = Field(description="Opaque session identifier")


class RawJsonBlock(_FrameBase):
    """A multi-line JSON result bracketed by start/end markers."""

    type: Literal["raw_json"] = "raw_json"
    payload: Any = Field(description="Decoded JSON value")


def _frame_discriminator(v: Any) -> str:
    """Extract the discriminator value from raw data or a model instance."""
    if isinstance(v, dict):
        return str(v.get("type", ""))
    return str(getattr(v, "type", ""))


FramedEvent = Annotated[
    Annotated[MessageStart, Tag("message_start")]
    | Annotated[MessageEnd, Tag("message_end")]
    | Annotated[StructuredMessage, Tag("message")]
    | Annotated[ContentFull, Tag("content")]
    | Annotated[ContentDelta, Tag("content_delta")]
    | Annotated[SessionId, Tag("session_id")]
    | Annotated[RawJsonBlock, Tag("raw_json")],
    Discriminator(_frame_discriminator),
]
"""Discriminated union of all framed event types."""
