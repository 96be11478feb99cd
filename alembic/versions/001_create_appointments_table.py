"""Create appointments table.

Revision ID: 001
Revises:
Create Date: 2026-10-18 00:00:00.000000

"""

from typing import Sequence, Union

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade database schema."""
    op.create_table(
        "appointments",
        sa.Column("insured_id", sa.String(length=5), nullable=False),
        sa.Column("appointment_id", sa.String(length=64), nullable=False),
        sa.Column("schedule_id", sa.Integer(), nullable=False),
        sa.Column("country_iso", sa.String(length=2), nullable=False),
        sa.Column("schedule", sa.JSON(), nullable=True),
        sa.Column("status", sa.String(length=20), server_default="pending", nullable=False),
        sa.Column("error_details", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("processed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("insured_id", "appointment_id", name="appointments_pkey"),
        sa.UniqueConstraint("appointment_id", name="appointments_appointment_id_key"),
        sa.CheckConstraint(
            "status IN ('pending', 'processing', 'completed', 'failed', 'cancelled')",
            name="appointments_status_check",
        ),
        sa.CheckConstraint("country_iso IN ('PE', 'CL')", name="appointments_country_check"),
    )

    op.create_index(
        "idx_appointments_status_created",
        "appointments",
        ["status", "created_at"],
        unique=False,
    )
    op.create_index("idx_appointments_expires_at", "appointments", ["expires_at"], unique=False)


def downgrade() -> None:
    """Downgrade database schema."""
    op.drop_index("idx_appointments_expires_at", table_name="appointments")
    op.drop_index("idx_appointments_status_created", table_name="appointments")
    op.drop_table("appointments")
