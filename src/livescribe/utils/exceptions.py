"""
Error taxonomy for capture, windowing and transcription.

Startup failures derive from InitializationError, per-source failures from
CaptureError and per-window failures from ProcessingError.
"""


class LivescribeError(Exception):
    """Base class for all application errors."""


class InitializationError(LivescribeError):
    """Something required before capture can start is missing."""


class ExecutableNotFoundError(InitializationError):
    pass


class ModelNotFoundError(InitializationError):
    pass


class CaptureError(LivescribeError):
    """A capture source could not be started or stopped cleanly."""

    def __init__(self, message: str, device_id: str = ""):
        super().__init__(message)
        self.device_id = device_id


class SpawnFailedError(CaptureError):
    pass


class StreamUnavailableError(CaptureError):
    pass


class SourceExitedError(CaptureError):
    """The audio process exited before a stop was requested."""

    def __init__(self, message: str, device_id: str = "", returncode=None):
        super().__init__(message, device_id)
        self.returncode = returncode


class ProcessingError(LivescribeError):
    """Transcription of a single window failed."""


class EncodeFailedError(ProcessingError):
    pass


class ProcessFailedError(ProcessingError):

    def __init__(self, message: str, returncode=None):
        super().__init__(message)
        self.returncode = returncode
