"""Exception hierarchy for LiveScribe."""


class LiveScribeError(Exception):
    """Base class for all LiveScribe errors."""

    user_message = "Something went wrong."

    def __str__(self) -> str:
        text = super().__str__()
        return text or self.user_message


class PermissionDeniedError(LiveScribeError):
    """Microphone access was refused or no input device is usable."""

    user_message = "Microphone access was denied. Check your input device and try again."


class SessionConnectionError(LiveScribeError):
    """The streaming session failed to open or failed while streaming."""

    user_message = "Failed to connect to the transcription service."


class EncodingFault(LiveScribeError):
    """An audio block could not be encoded. Indicates a programming error."""

    user_message = "Audio could not be encoded."


class ConfigurationError(LiveScribeError):
    """Configuration or credentials are missing or invalid."""

    user_message = "LiveScribe is not configured correctly."


class ChatStreamError(LiveScribeError):
    """The chat response stream failed."""

    user_message = "An unknown error occurred."
