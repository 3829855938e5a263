"""Error taxonomy for capture, transport, and session operations."""


class KeywatchError(Exception):
    """Base class for all Keywatch errors."""


class CapturePermissionError(KeywatchError):
    """Audio capture was denied or the device could not be opened."""

    def __init__(self, source_type: str, detail: str = ""):
        self.source_type = source_type
        message = (
            f"Permission to access your {source_type} was denied. "
            "Grant the required permissions in your system settings and try again."
        )
        if detail:
            message = f"{message} ({detail})"
        super().__init__(message)


class TransportAuthError(KeywatchError):
    """The transcription service rejected our credentials."""

    def __init__(self, detail: str = ""):
        message = "Your API key is invalid or lacks the required permissions. Please configure a valid key."
        if detail:
            message = f"{message} ({detail})"
        super().__init__(message)


class TransportError(KeywatchError):
    """The transcription stream failed for a reason other than credentials."""


class PlaybackDecodeError(KeywatchError):
    """An inline audio reply could not be decoded."""


class MalformedPayloadError(KeywatchError):
    """An inbound payload did not match the expected shape."""


class KeywordValidationError(KeywatchError):
    """A keyword edit was rejected (empty name, duplicate, unknown keyword)."""


class ExportError(KeywatchError):
    """There is nothing to export."""
