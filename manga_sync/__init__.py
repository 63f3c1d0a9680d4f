"""manga-sync: automated manga catalog ingestion with human review."""

__version__ = "0.1.0"
