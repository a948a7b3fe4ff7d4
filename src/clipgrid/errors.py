"""
Error Taxonomy
==============

Exceptions raised across the codec, chain and log-cache layers.

Propagation Rules:
    - ClipCodecError subclasses are caught at the render boundary and turned
      into a visible error raster; they never reach the scheduler.
    - EmptyCaptureError / CameraUnavailableError surface to the user and
      leave the recorder restartable.
    - RemoteWriteRejected is surfaced with the provider message; no retry.
    - RpcChunkFailure is logged and skipped by the log cache.
"""


class ClipGridError(Exception):
    """Base class for all ClipGrid errors."""
    pass


# =============================================================================
# Codec Errors
# =============================================================================

class ClipCodecError(ClipGridError):
    """Base class for frame codec and reconstruction failures."""
    pass


class DecompressionError(ClipCodecError):
    """Raised when a compressed payload cannot be inflated."""
    pass


class MalformedDiffError(ClipCodecError):
    """Raised when a serialized diff is not a whole number of records."""
    pass


class MissingBaselineError(ClipCodecError):
    """Raised when a clip without a baseline frame is exported or decoded."""
    pass


class InvalidBaselineError(ClipCodecError):
    """Raised when a baseline raster does not hold exactly one frame of pixels."""
    pass


class FrameNotFoundError(ClipCodecError):
    """Raised when a requested frame is not part of the sequence."""
    pass


class PrecedingBaselineMissingError(ClipCodecError):
    """Raised when a delta frame appears before any baseline frame."""
    pass


# =============================================================================
# Capture Errors
# =============================================================================

class EmptyCaptureError(ClipGridError):
    """Raised when saving a session that captured no frames."""
    pass


class CameraUnavailableError(ClipGridError):
    """Raised when the camera cannot be opened or stops delivering frames."""
    pass


# =============================================================================
# Chain Errors
# =============================================================================

class RemoteWriteRejected(ClipGridError):
    """Raised when a clip write transaction fails or reverts."""

    GENERIC_MESSAGE = "Error saving video."

    def __init__(self, message: str = GENERIC_MESSAGE, code: object = None) -> None:
        if code is not None:
            message = f"{message} (Code: {code})"
        super().__init__(message)
        self.code = code


class RpcError(ClipGridError):
    """Raised when a JSON-RPC call fails at transport or protocol level."""
    pass


class RpcChunkFailure(RpcError):
    """Raised when one block-range log query fails during paging."""

    def __init__(self, from_block: int, to_block: int, cause: Exception) -> None:
        super().__init__(f"getLogs failed for blocks {from_block}-{to_block}: {cause}")
        self.from_block = from_block
        self.to_block = to_block
        self.cause = cause
