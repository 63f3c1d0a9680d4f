"""Admin web API for manga-sync."""
