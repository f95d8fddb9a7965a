"""create Occurrence and Price tables

Revision ID: a1b2c3d4e5f6
Revises:
Create Date: 2026-10-17 12:00:00.000000

Hey future me - this is the schema the existing SQL Server database already has, column for
column (Id identity, Title nvarchar(80), Timestamp rowversion, composite Price key). On
SQLite the Timestamp columns are BLOBs with a randomblob(8) default and an AFTER UPDATE
trigger so the token changes on every mutation, same contract as rowversion.
"""

from alembic import op
import sqlalchemy as sa

from eventsdb.infrastructure.persistence.types import (
    RowVersion,
    sqlite_row_version_trigger_sql,
)


# revision identifiers, used by Alembic.
revision = "a1b2c3d4e5f6"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    """Create Occurrence and Price (idempotent - skips tables that exist)."""
    conn = op.get_bind()
    existing = set(sa.inspect(conn).get_table_names())

    if "Occurrence" not in existing:
        op.create_table(
            "Occurrence",
            sa.Column("Id", sa.Integer(), autoincrement=True, nullable=False),
            sa.Column("Title", sa.Unicode(80), nullable=False),
            sa.Column("Timestamp", RowVersion(), nullable=False),
            sa.PrimaryKeyConstraint("Id", name="pk_Occurrence"),
        )

    if "Price" not in existing:
        op.create_table(
            "Price",
            sa.Column("OccurrenceId", sa.Integer(), autoincrement=False, nullable=False),
            sa.Column("Currency", sa.CHAR(3), nullable=False),
            sa.Column("Value", sa.Numeric(18, 0), nullable=False),
            sa.Column("Timestamp", RowVersion(), nullable=False),
            sa.PrimaryKeyConstraint("OccurrenceId", "Currency", name="pk_Price"),
            sa.ForeignKeyConstraint(
                ["OccurrenceId"], ["Occurrence.Id"], name="fk_Price_Occurrence"
            ),
        )

    if conn.dialect.name == "sqlite":
        op.execute(sqlite_row_version_trigger_sql("Occurrence", "Timestamp"))
        op.execute(sqlite_row_version_trigger_sql("Price", "Timestamp"))


def downgrade() -> None:
    """Drop both tables (Price first for the foreign key)."""
    op.drop_table("Price")
    op.drop_table("Occurrence")
