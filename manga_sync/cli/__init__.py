"""Command line interface for manga-sync."""
