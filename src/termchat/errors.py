class TermchatError(Exception):
    """Base class for all termchat errors."""


class ConfigError(TermchatError):
    pass


class StorageError(TermchatError):
    pass


class TransportError(TermchatError):
    def __init__(self, message: str, *, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class FrameParseError(TermchatError):
    """A single SSE data frame could not be parsed. Never aborts decoding."""

    def __init__(self, frame: str, reason: str):
        super().__init__(f"Error parsing JSON frame: {reason}")
        self.frame = frame
        self.reason = reason
