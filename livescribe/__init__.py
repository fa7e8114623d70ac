"""LiveScribe: real-time microphone transcription and grounded chat."""

__version__ = "0.1.0"
