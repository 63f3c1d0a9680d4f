"""Core enums and schema models."""
