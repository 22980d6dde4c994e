"""Argument and environment builders for the agent script's commands."""

from __future__ import annotations

import base64
import json
import mimetypes
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field

from turnbridge.constants import EMPTY_CWD_VALUES

SEND = "send"
SEND_WITH_ATTACHMENTS = "sendWithAttachments"
GET_SESSION = "getSession"


class Attachment(BaseModel):
    """A file passed to the agent on stdin, base64-encoded."""

    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    file_name: str = Field(alias="fileName")
    media_type: str = Field(alias="mediaType")
    data: str = Field(description="Base64-encoded file content")

    @classmethod
    def from_path(cls, path: Path) -> Attachment:
        media_type, _ = mimetypes.guess_type(path.name)
        return cls(
            file_name=path.name,
            media_type=media_type or "application/octet-stream",
            data=base64.b64encode(path.read_bytes()).decode("ascii"),
        )


def send_args(
    message: str,
    session_id: str | None = None,
    cwd: str | None = None,
    permission_mode: str | None = None,
    model: str | None = None,
    *,
    with_attachments: bool = False,
) -> list[str]:
    """Positional arguments for ``send`` / ``sendWithAttachments``.

    Missing values are passed as empty strings so positions stay fixed;
    the model is appended only when set.
    """
    args = [
        SEND_WITH_ATTACHMENTS if with_attachments else SEND,
        message,
        session_id or "",
        cwd or "",
        permission_mode or "",
    ]
    if model:
        args.append(model)
    return args


def get_session_args(session_id: str, cwd: str | None = None) -> list[str]:
    return [GET_SESSION, session_id, cwd or ""]


def attachments_payload(attachments: list[Attachment]) -> bytes:
    """JSON array written to stdin for ``sendWithAttachments``."""
    items = [a.model_dump(by_alias=True) for a in attachments]
    return json.dumps(items).encode("utf-8")


def send_env(cwd: str | None, *, with_attachments: bool = False) -> dict[str, str]:
    """Extra environment for a ``send`` invocation."""
    env: dict[str, str] = {}
    if cwd is not None and cwd not in EMPTY_CWD_VALUES:
        env["PROJECT_PATH"] = cwd
        env["IDEA_PROJECT_PATH"] = cwd
    if with_attachments:
        env["CLAUDE_USE_STDIN"] = "true"
    return env
