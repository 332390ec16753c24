"""
Typed errors for the sandbox session layer.

Each error carries an ErrorCode for programmatic handling. How the gateway
reports them to the client:

- ProvisioningError / AttachError: text message, then the connection closes
- StreamError: inline terminal notice, then the connection closes
- ControlParseError: message dropped, session continues
- SandboxNotFound: recovered by re-provisioning, never reaches the client
"""

from enum import Enum


class ErrorCode(str, Enum):
    """Error codes for programmatic handling."""

    PROVIDER_ERROR = "provider_error"
    SANDBOX_NOT_FOUND = "sandbox_not_found"
    PROVISIONING_FAILED = "provisioning_failed"
    ATTACH_FAILED = "attach_failed"
    STREAM_ERROR = "stream_error"
    CONTROL_PARSE_ERROR = "control_parse_error"
    INVALID_SESSION = "invalid_session"


class SandshellError(Exception):
    """Base class for sandshell errors."""

    code: ErrorCode = ErrorCode.PROVIDER_ERROR

    def __init__(self, message: str, *, session_id: str | None = None):
        super().__init__(message)
        self.message = message
        self.session_id = session_id

    def __str__(self) -> str:
        return self.message


class ProviderError(SandshellError):
    """A Sandbox Provider call failed."""

    code = ErrorCode.PROVIDER_ERROR


class SandboxNotFound(ProviderError):
    """The provider does not know the sandbox (removed out-of-band)."""

    code = ErrorCode.SANDBOX_NOT_FOUND


class ProvisioningError(SandshellError):
    """Image unavailable, resource rejection, or provider unreachable."""

    code = ErrorCode.PROVISIONING_FAILED


class AttachError(SandshellError):
    """Attaching to a sandbox's terminal failed."""

    code = ErrorCode.ATTACH_FAILED


class StreamError(SandshellError):
    """Mid-session I/O failure on the attach stream."""

    code = ErrorCode.STREAM_ERROR


class ControlParseError(SandshellError):
    """A control candidate could not be parsed into a known command."""

    code = ErrorCode.CONTROL_PARSE_ERROR


class InvalidSessionId(SandshellError):
    """Client-supplied session identifier is not usable."""

    code = ErrorCode.INVALID_SESSION
