"""create unified_files and unified_sync_logs tables

Revision ID: 20261019_000001
Revises:
Create Date: 2026-10-19 00:00:00

One denormalized row per file keyed by identity_key, plus one log row per
stage invocation, chain failure or rejected run.
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = "20261019_000001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    bind = op.get_bind()
    inspector = sa.inspect(bind)

    if not inspector.has_table("unified_files"):
        op.create_table(
            "unified_files",
            sa.Column("identity_key", sa.String(64), primary_key=True, nullable=False),
            sa.Column("source_type", sa.String(32), nullable=False),
            sa.Column("source_record_id", sa.Text(), nullable=False),
            sa.Column("title", sa.Text(), nullable=True),
            sa.Column("extension", sa.String(64), nullable=True),
            sa.Column("mime_type", sa.String(255), nullable=True),
            sa.Column("size_bytes", sa.BigInteger(), nullable=True),
            sa.Column("created_at", sa.TIMESTAMP(timezone=True), nullable=True),
            sa.Column("modified_at", sa.TIMESTAMP(timezone=True), nullable=True),
            sa.Column("created_by_id", sa.Text(), nullable=True),
            sa.Column("modified_by_id", sa.Text(), nullable=True),
            sa.Column("parent_record_id", sa.Text(), nullable=True),
            sa.Column("parent_record_type", sa.Text(), nullable=True),
            sa.Column("parent_record_name", sa.Text(), nullable=True),
            sa.Column("owner_id", sa.Text(), nullable=True),
            sa.Column("content_hash", sa.String(64), nullable=False),
            sa.Column(
                "last_synced_at",
                sa.TIMESTAMP(timezone=True),
                nullable=False,
                server_default=sa.text("NOW()"),
            ),
            sa.Column(
                "missing_in_source",
                sa.Boolean(),
                nullable=False,
                server_default=sa.text("FALSE"),
            ),
            sa.Column("flagged_at", sa.TIMESTAMP(timezone=True), nullable=True),
        )

    op.execute(
        "CREATE INDEX IF NOT EXISTS idx_unified_files_source_type "
        "ON unified_files(source_type)"
    )
    op.execute(
        "CREATE INDEX IF NOT EXISTS idx_unified_files_parent_record_id "
        "ON unified_files(parent_record_id)"
    )

    if not inspector.has_table("unified_sync_logs"):
        op.create_table(
            "unified_sync_logs",
            sa.Column(
                "id",
                postgresql.UUID(as_uuid=True),
                primary_key=True,
                nullable=False,
                server_default=sa.text("gen_random_uuid()"),
            ),
            sa.Column("job_name", sa.String(128), nullable=False),
            sa.Column("mode", sa.String(16), nullable=False),
            sa.Column(
                "entry_type",
                sa.String(32),
                nullable=False,
                server_default=sa.text("'stage'"),
            ),
            sa.Column("status", sa.String(32), nullable=False),
            sa.Column("started_at", sa.TIMESTAMP(timezone=True), nullable=False),
            sa.Column("finished_at", sa.TIMESTAMP(timezone=True), nullable=True),
            sa.Column("records_processed", sa.Integer(), nullable=False, server_default=sa.text("0")),
            sa.Column("records_upserted", sa.Integer(), nullable=False, server_default=sa.text("0")),
            sa.Column("records_skipped", sa.Integer(), nullable=False, server_default=sa.text("0")),
            sa.Column("orphans_flagged", sa.Integer(), nullable=False, server_default=sa.text("0")),
            sa.Column("error_count", sa.Integer(), nullable=False, server_default=sa.text("0")),
            sa.Column("sample_error_message", sa.Text(), nullable=True),
            sa.Column("next_stage", sa.String(64), nullable=True),
        )

    op.execute(
        "CREATE INDEX IF NOT EXISTS idx_unified_sync_logs_started_at "
        "ON unified_sync_logs(started_at DESC)"
    )


def downgrade() -> None:
    op.execute("DROP INDEX IF EXISTS idx_unified_sync_logs_started_at")
    op.drop_table("unified_sync_logs")
    op.execute("DROP INDEX IF EXISTS idx_unified_files_parent_record_id")
    op.execute("DROP INDEX IF EXISTS idx_unified_files_source_type")
    op.drop_table("unified_files")
