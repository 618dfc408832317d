"""App Center release uploader."""

__version__ = "0.1.0"
