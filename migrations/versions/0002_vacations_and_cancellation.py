"""Add vacations and session cancellation/confirmation columns"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = "0002_vacations_and_cancellation"
down_revision = "0001_initial_schema"
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "vacation",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(length=120), nullable=False),
        sa.Column("start_date", sa.Date(), nullable=False),
        sa.Column("end_date", sa.Date(), nullable=False),
        sa.Column("notes", sa.Text()),
        sa.Column("created_at", sa.DateTime()),
        sa.Column("updated_at", sa.DateTime()),
        sa.CheckConstraint("end_date >= start_date", name="chk_vacation_range"),
    )
    op.create_index("ix_vacation_range", "vacation", ["start_date", "end_date"])

    with op.batch_alter_table("class_session") as batch_op:
        batch_op.add_column(
            sa.Column("status", sa.String(length=20), nullable=False, server_default="pending")
        )
        batch_op.add_column(
            sa.Column("is_cancelled", sa.Boolean(), nullable=False, server_default=sa.false())
        )
        batch_op.add_column(sa.Column("cancelled_at", sa.DateTime()))
        batch_op.add_column(sa.Column("cancelled_by", sa.String(length=64)))
        batch_op.add_column(sa.Column("cancellation_reason", sa.String(length=255)))


def downgrade() -> None:
    with op.batch_alter_table("class_session") as batch_op:
        batch_op.drop_column("cancellation_reason")
        batch_op.drop_column("cancelled_by")
        batch_op.drop_column("cancelled_at")
        batch_op.drop_column("is_cancelled")
        batch_op.drop_column("status")

    op.drop_index("ix_vacation_range", table_name="vacation")
    op.drop_table("vacation")
