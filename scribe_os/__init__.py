"""ScribeOS: clinical encounter transcription, structuring and export."""

__version__ = "0.4.0"
