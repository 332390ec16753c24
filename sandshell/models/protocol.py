"""
Wire messages exchanged on the terminal WebSocket.

Only two structured messages exist; everything else on the connection is
raw terminal bytes.
"""

from typing import Any, Literal

from pydantic import BaseModel, Field, ValidationInfo, field_validator

DEFAULT_COLS = 80
DEFAULT_ROWS = 24


class SessionMessage(BaseModel):
    """Handshake sent right after connect: the id to reconnect with."""

    type: Literal["session"] = "session"
    session: str = Field(description="Session identifier for reconnection")


class ResizeMessage(BaseModel):
    """Client request to resize the sandbox's pseudo-terminal."""

    type: Literal["resize"]
    cols: int = Field(default=DEFAULT_COLS, description="Terminal width in columns")
    rows: int = Field(default=DEFAULT_ROWS, description="Terminal height in rows")

    model_config = {"extra": "ignore"}

    @field_validator("cols", "rows", mode="before")
    @classmethod
    def _size_or_default(cls, value: Any, info: ValidationInfo) -> Any:
        if value is None:
            return DEFAULT_COLS if info.field_name == "cols" else DEFAULT_ROWS
        # bool is an int subclass; JSON true/false is not a size
        if isinstance(value, bool):
            raise ValueError("must be an integer, not a boolean")
        return value
