"""Session-scoped question answering over lecture transcripts and slides."""

__version__ = "0.1.0"
