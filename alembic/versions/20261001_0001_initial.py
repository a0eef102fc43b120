import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision = "20261001_0001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        "ReportDefinition",
        sa.Column("ReportID", sa.String(length=36), primary_key=True),
        sa.Column("Name", sa.String(length=200), nullable=False),
        sa.Column("Description", sa.Text(), nullable=True),
        sa.Column("ViewName", sa.String(length=200), nullable=False),
        sa.Column("ViewDBName", sa.String(length=200), nullable=False),
        sa.Column("SourceCollection", sa.String(length=200), nullable=False),
        sa.Column("Pipeline", sa.JSON(), nullable=False),
        sa.Column("IsCrossDB", sa.Boolean(), nullable=True),
        sa.Column("Fields", sa.JSON(), nullable=False),
        sa.Column("Filters", sa.JSON(), nullable=False),
        sa.Column("Searchable", sa.JSON(), nullable=False),
        sa.Column("CreatedAt", sa.DateTime(), server_default=sa.func.now()),
        sa.Column("UpdatedAt", sa.DateTime(), server_default=sa.func.now()),
    )
    op.create_index("ix_ReportDefinition_Name", "ReportDefinition", ["Name"], unique=True)

    op.create_table(
        "AppErrorLog",
        sa.Column("ErrorID", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("OccurredAt", sa.DateTime(), server_default=sa.func.now()),
        sa.Column("RequestID", sa.String(length=64), nullable=True),
        sa.Column("Path", sa.String(length=500), nullable=True),
        sa.Column("Method", sa.String(length=16), nullable=True),
        sa.Column("StatusCode", sa.Integer(), nullable=True),
        sa.Column("UserID", sa.String(length=200), nullable=True),
        sa.Column("ClientIP", sa.String(length=45), nullable=True),
        sa.Column("ErrorType", sa.String(length=100), nullable=True),
        sa.Column("Message", sa.Text(), nullable=True),
        sa.Column("StackTrace", sa.Text(), nullable=True),
    )


def downgrade():
    op.drop_table("AppErrorLog")
    op.drop_index("ix_ReportDefinition_Name", table_name="ReportDefinition")
    op.drop_table("ReportDefinition")
