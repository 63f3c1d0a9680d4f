"""Application services for manga-sync."""

from manga_sync.services.admin_service import AdminService

__all__ = ["AdminService"]
