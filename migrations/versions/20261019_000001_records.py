from __future__ import annotations

from alembic import op
import sqlalchemy as sa


revision = "20261019_000001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    record_status_enum = sa.Enum("uploaded", "processing", "ready", "failed", name="recordstatus")

    op.create_table(
        "records",
        sa.Column("record_id", sa.String(length=64), primary_key=True),
        sa.Column("owner_id", sa.String(length=128), nullable=False),
        sa.Column("title", sa.String(length=512), nullable=False),
        sa.Column("location", sa.String(length=1024), nullable=False),
        sa.Column("mime_type", sa.String(length=255), nullable=True),
        sa.Column("size_bytes", sa.BigInteger(), nullable=False),
        sa.Column("duration_s", sa.Float(), nullable=False, server_default="0"),
        sa.Column("thumbnail_locations", sa.JSON(), nullable=False),
        sa.Column("media_info", sa.JSON(), nullable=True),
        sa.Column("status", record_status_enum, nullable=False, server_default="uploaded"),
        sa.Column("failure_reason", sa.String(length=255), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("version", sa.Integer(), nullable=False),
    )
    op.create_index("ix_records_owner_id_created_at", "records", ["owner_id", "created_at"])


def downgrade() -> None:
    op.drop_index("ix_records_owner_id_created_at", table_name="records")
    op.drop_table("records")

    sa.Enum(name="recordstatus").drop(op.get_bind(), checkfirst=True)
