"""
Control/data demultiplexer for the unframed terminal channel.

A message is a control candidate if it arrived as a text frame, or if it is a
binary frame under CONTROL_MAX_BYTES whose UTF-8 decoding starts with "{" and
contains CONTROL_KEYWORD. Candidates that fail to parse are dropped rather
than forwarded, so malformed metadata never reaches the shell. Everything
else is raw input, forwarded byte-for-byte.

The thresholds match what existing terminal clients send and must not change.
"""

import json
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Union

from pydantic import ValidationError

from sandshell.lib.errors import ControlParseError
from sandshell.models.protocol import ResizeMessage

CONTROL_MAX_BYTES = 200
CONTROL_KEYWORD = "resize"
MIN_TERMINAL_SIZE = 2
# winsize fields are unsigned 16-bit
MAX_TERMINAL_SIZE = 65535

Message = Union[str, bytes]


class FrameKind(str, Enum):
    RAW = "raw"
    CONTROL = "control"
    DROPPED = "dropped"


@dataclass(frozen=True)
class ResizeCommand:
    cols: int
    rows: int


@dataclass(frozen=True)
class Frame:
    """Classification result for one inbound message."""

    kind: FrameKind
    data: bytes = b""
    command: Optional[ResizeCommand] = None
    error: Optional[str] = None


def is_control_candidate(message: Message) -> bool:
    if isinstance(message, str):
        return True
    if len(message) >= CONTROL_MAX_BYTES:
        return False
    text = message.decode("utf-8", errors="replace")
    return text.startswith("{") and CONTROL_KEYWORD in text


def clamp_size(value: int) -> int:
    return min(MAX_TERMINAL_SIZE, max(MIN_TERMINAL_SIZE, value))


def parse_control(message: Message) -> ResizeCommand:
    """Parse a control candidate. Raises ControlParseError if it is not a known command."""
    text = message if isinstance(message, str) else message.decode("utf-8", errors="replace")
    try:
        payload = json.loads(text)
    except json.JSONDecodeError as e:
        raise ControlParseError(f"invalid JSON: {e}") from e

    if not isinstance(payload, dict):
        raise ControlParseError("control message is not an object")
    if payload.get("type") != "resize":
        raise ControlParseError(f"unknown control type: {payload.get('type')!r}")

    try:
        resize = ResizeMessage.model_validate(payload)
    except ValidationError as e:
        raise ControlParseError(f"invalid resize: {e.errors()[0]['msg']}") from e

    return ResizeCommand(cols=clamp_size(resize.cols), rows=clamp_size(resize.rows))


def classify(message: Message) -> Frame:
    """Classify an inbound message as raw input, a control command, or dropped."""
    if not is_control_candidate(message):
        return Frame(kind=FrameKind.RAW, data=bytes(message))
    try:
        command = parse_control(message)
    except ControlParseError as e:
        return Frame(kind=FrameKind.DROPPED, error=str(e))
    return Frame(kind=FrameKind.CONTROL, command=command)
