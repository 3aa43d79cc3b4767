"""Multi-account Google Drive storage aggregator."""

__version__ = "0.1.0"
