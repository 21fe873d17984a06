"""Content analytics aggregation engine for a content-operations dashboard."""

__version__ = "0.1.0"
