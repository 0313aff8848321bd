"""create_delivery_table

Revision ID: 3f1c2a9d7b10
Revises:
Create Date: 2026-10-18 10:00:00.000000

"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


revision: str = "3f1c2a9d7b10"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "delivery",
        sa.Column("id", sa.String(length=255), nullable=False),
        sa.Column("received_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("signature_valid", sa.Boolean(), nullable=False),
        sa.Column("raw_payload_hash", sa.String(length=64), nullable=False),
        sa.Column("event_type", sa.String(length=64), nullable=False),
        sa.Column(
            "status",
            sa.Enum(
                "pending", "processed", "failed", "duplicate", name="deliverystatus"
            ),
            nullable=False,
        ),
        sa.Column("in_progress", sa.Boolean(), nullable=False),
        sa.Column("attempts", sa.Integer(), nullable=False),
        sa.Column("handler_results", sa.JSON(), nullable=False),
        sa.Column("duplicate_of", sa.String(length=255), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        op.f("ix_delivery_received_at"), "delivery", ["received_at"], unique=False
    )
    op.create_index(
        op.f("ix_delivery_raw_payload_hash"),
        "delivery",
        ["raw_payload_hash"],
        unique=False,
    )
    op.create_index(op.f("ix_delivery_status"), "delivery", ["status"], unique=False)


def downgrade() -> None:
    op.drop_index(op.f("ix_delivery_status"), table_name="delivery")
    op.drop_index(op.f("ix_delivery_raw_payload_hash"), table_name="delivery")
    op.drop_index(op.f("ix_delivery_received_at"), table_name="delivery")
    op.drop_table("delivery")
    op.execute("DROP TYPE IF EXISTS deliverystatus")
