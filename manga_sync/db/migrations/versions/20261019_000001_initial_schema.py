"""Initial schema for manga-sync.

Revision ID: 0001
Revises:
Create Date: 2026-10-19

"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = "0001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Sources
    op.create_table(
        "manga_sources",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("base_url", sa.String(500), nullable=False),
        sa.Column("fetch_kind", sa.String(20), default="api"),
        sa.Column("is_active", sa.Boolean(), default=True),
        sa.Column("last_sync_at", sa.DateTime(), nullable=True),
        sa.Column("config_json", sa.Text(), default="{}"),
        sa.Column("position", sa.Integer(), default=0),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_manga_sources_is_active", "manga_sources", ["is_active"])

    # Catalog
    op.create_table(
        "manga",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("title", sa.String(500), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("author", sa.String(255), nullable=True),
        sa.Column("artist", sa.String(255), nullable=True),
        sa.Column("genres_json", sa.Text(), default="[]"),
        sa.Column("status", sa.String(20), default="ongoing"),
        sa.Column("cover_image_url", sa.Text(), nullable=True),
        sa.Column("manga_type", sa.String(20), default="manga"),
        sa.Column("source_id", sa.String(36), nullable=True),
        sa.Column("source_manga_id", sa.String(255), nullable=True),
        sa.Column("auto_added", sa.Boolean(), default=False),
        sa.Column("approval_status", sa.String(20), default="approved"),
        sa.Column("created_by", sa.String(100), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_manga_title", "manga", ["title"])
    op.create_index("ix_manga_author", "manga", ["author"])
    op.create_index("ix_manga_source_id", "manga", ["source_id"])
    op.create_index("ix_manga_source_manga_id", "manga", ["source_manga_id"])
    op.create_index("ix_manga_approval_status", "manga", ["approval_status"])

    op.create_table(
        "chapters",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("manga_id", sa.String(36), sa.ForeignKey("manga.id"), nullable=False),
        sa.Column("chapter_number", sa.Float(), nullable=False),
        sa.Column("title", sa.String(500), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("pages_json", sa.Text(), default="[]"),
        sa.Column("source_chapter_id", sa.String(255), nullable=True),
        sa.Column("auto_added", sa.Boolean(), default=False),
        sa.Column("approval_status", sa.String(20), default="approved"),
        sa.Column("created_by", sa.String(100), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_chapters_manga_id", "chapters", ["manga_id"])
    op.create_index("ix_chapters_chapter_number", "chapters", ["chapter_number"])
    op.create_index("ix_chapters_approval_status", "chapters", ["approval_status"])

    # Approval queue
    op.create_table(
        "content_review_queue",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("content_kind", sa.String(20), nullable=False),
        sa.Column("content_id", sa.String(36), nullable=False),
        sa.Column("title", sa.String(500), default=""),
        sa.Column("priority", sa.Integer(), default=0),
        sa.Column("submitted_by", sa.String(100), default="system"),
        sa.Column("submitted_at", sa.DateTime(), nullable=False),
        sa.Column("status", sa.String(20), default="pending"),
        sa.Column("reviewer_id", sa.String(36), nullable=True),
        sa.Column("reviewed_at", sa.DateTime(), nullable=True),
        sa.Column("review_notes", sa.Text(), nullable=True),
    )
    op.create_index("ix_content_review_queue_content_id", "content_review_queue", ["content_id"])
    op.create_index("ix_content_review_queue_submitted_at", "content_review_queue", ["submitted_at"])
    op.create_index("ix_content_review_queue_status", "content_review_queue", ["status"])

    # Jobs and settings
    op.create_table(
        "sync_jobs",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("status", sa.String(20), default="pending"),
        sa.Column("trigger", sa.String(20), default="manual"),
        sa.Column("source_ids_json", sa.Text(), default="[]"),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("started_at", sa.DateTime(), nullable=True),
        sa.Column("completed_at", sa.DateTime(), nullable=True),
        sa.Column("progress_json", sa.Text(), default="{}"),
        sa.Column("result_json", sa.Text(), nullable=True),
    )
    op.create_index("ix_sync_jobs_status", "sync_jobs", ["status"])
    op.create_index("ix_sync_jobs_created_at", "sync_jobs", ["created_at"])
    op.create_index("ix_sync_jobs_started_at", "sync_jobs", ["started_at"])

    op.create_table(
        "system_settings",
        sa.Column("key", sa.String(100), primary_key=True),
        sa.Column("value_json", sa.Text(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    )

    # Observability and notifications
    op.create_table(
        "sync_logs",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("level", sa.String(10), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("details_json", sa.Text(), nullable=True),
        sa.Column("source", sa.String(50), default="system"),
        sa.Column("source_id", sa.String(36), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_sync_logs_level", "sync_logs", ["level"])
    op.create_index("ix_sync_logs_source_id", "sync_logs", ["source_id"])
    op.create_index("ix_sync_logs_created_at", "sync_logs", ["created_at"])

    op.create_table(
        "notifications",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("user_id", sa.String(36), nullable=False),
        sa.Column("type", sa.String(50), default="content_review"),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("data_json", sa.Text(), default="{}"),
        sa.Column("is_read", sa.Boolean(), default=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_notifications_user_id", "notifications", ["user_id"])

    op.create_table(
        "profiles",
        sa.Column("user_id", sa.String(36), primary_key=True),
        sa.Column("display_name", sa.String(255), default=""),
        sa.Column("role", sa.String(30), default="user"),
    )
    op.create_index("ix_profiles_role", "profiles", ["role"])


def downgrade() -> None:
    op.drop_table("profiles")
    op.drop_table("notifications")
    op.drop_table("sync_logs")
    op.drop_table("system_settings")
    op.drop_table("sync_jobs")
    op.drop_table("content_review_queue")
    op.drop_table("chapters")
    op.drop_table("manga")
    op.drop_table("manga_sources")
