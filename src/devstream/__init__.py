"""DevStream: local developer-activity monitor."""

__version__ = "0.1.0"
