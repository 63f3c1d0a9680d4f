"""Add normalized title to manga for candidate search.

Revision ID: 0002
Revises: 0001
Create Date: 2026-10-20

"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

from manga_sync.core.text import normalize_text

# revision identifiers, used by Alembic.
revision: str = "0002"
down_revision: Union[str, None] = "0001"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    with op.batch_alter_table("manga") as batch_op:
        batch_op.add_column(
            sa.Column("normalized_title", sa.String(500), nullable=False, server_default="")
        )
        batch_op.create_index("ix_manga_normalized_title", ["normalized_title"])

    # Backfill existing rows
    manga = sa.table(
        "manga",
        sa.column("id", sa.String),
        sa.column("title", sa.String),
        sa.column("normalized_title", sa.String),
    )
    conn = op.get_bind()
    rows = conn.execute(sa.select(manga.c.id, manga.c.title)).all()
    for row in rows:
        conn.execute(
            manga.update()
            .where(manga.c.id == row.id)
            .values(normalized_title=normalize_text(row.title))
        )


def downgrade() -> None:
    with op.batch_alter_table("manga") as batch_op:
        batch_op.drop_index("ix_manga_normalized_title")
        batch_op.drop_column("normalized_title")
