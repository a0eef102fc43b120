import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision = "20261001_0002"
down_revision = "20261001_0001"
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        "ReportExport",
        sa.Column("ExportID", sa.String(length=36), primary_key=True),
        sa.Column("UserID", sa.String(length=200), nullable=False),
        sa.Column("ReportID", sa.String(length=36), nullable=False),
        sa.Column("CreatedAt", sa.DateTime(), server_default=sa.func.now()),
        sa.Column("LastUpdated", sa.DateTime(), server_default=sa.func.now()),
        sa.Column("Deleted", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("Viewed", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("ViewedAt", sa.DateTime(), nullable=True),
        sa.Column("ExpiresAt", sa.DateTime(), nullable=True),
        sa.Column("Version", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("Status", sa.String(length=16), nullable=False, server_default="Pending"),
        sa.Column("FileName", sa.String(length=255), nullable=False),
        sa.Column("Filter", sa.JSON(), nullable=False),
        sa.Column("Columns", sa.JSON(), nullable=False),
        sa.Column("RecordCount", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("CompletedAt", sa.DateTime(), nullable=True),
        sa.Column("ArchiveLocation", sa.String(length=500), nullable=True),
        sa.Column("ArchiveSize", sa.BigInteger(), nullable=True),
        sa.Column("ErrorMessage", sa.Text(), nullable=True),
    )
    op.create_index("ix_ReportExport_UserID", "ReportExport", ["UserID"])
    op.create_index("ix_ReportExport_ReportID", "ReportExport", ["ReportID"])
    # Drives the hourly retention sweep
    op.create_index("ix_ReportExport_ExpiresAt", "ReportExport", ["ExpiresAt"])


def downgrade():
    op.drop_index("ix_ReportExport_ExpiresAt", table_name="ReportExport")
    op.drop_index("ix_ReportExport_ReportID", table_name="ReportExport")
    op.drop_index("ix_ReportExport_UserID", table_name="ReportExport")
    op.drop_table("ReportExport")
