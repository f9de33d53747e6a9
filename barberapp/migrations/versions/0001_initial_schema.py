"""Initial database schema

Revision ID: 0001_initial_schema
Revises:
Create Date: 2026-10-18 10:00:00.000000

"""

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision = "0001_initial_schema"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "barbers",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("barber_id", sa.String(length=64), nullable=False),
        sa.Column("name", sa.String(length=120), nullable=False),
        sa.Column("shop_name", sa.String(length=160), nullable=False),
        sa.Column("email", sa.String(length=254), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("price_haircut", sa.String(length=16), nullable=False, server_default="15.00"),
        sa.Column("price_beard", sa.String(length=16), nullable=False, server_default="10.00"),
        sa.Column("price_complete", sa.String(length=16), nullable=False, server_default="20.00"),
        sa.Column("price_shave", sa.String(length=16), nullable=False, server_default="8.00"),
        sa.Column("working_hours", sa.JSON(), nullable=True),
        sa.Column("has_break", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("break_start", sa.String(length=5), nullable=True),
        sa.Column("break_end", sa.String(length=5), nullable=True),
        sa.Column(
            "subscription_status",
            sa.Enum("trial", "active", "expired", name="subscription_status", native_enum=False, length=16),
            nullable=False,
            server_default="trial",
        ),
        sa.Column("trial_ends_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("subscription_expires", sa.DateTime(timezone=True), nullable=True),
        sa.Column("payment_subscription_id", sa.String(length=128), nullable=True),
        sa.Column("last_notification_sent_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_notification_type", sa.String(length=64), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("email"),
    )
    op.create_index("ix_barbers_barber_id", "barbers", ["barber_id"], unique=True)

    op.create_table(
        "services",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("barber_id", sa.String(length=64), nullable=False),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("price", sa.String(length=16), nullable=False),
        sa.Column("duration", sa.String(length=8), nullable=False, server_default="30"),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("order", sa.String(length=8), nullable=False, server_default="0"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_services_barber_id", "services", ["barber_id"])

    op.create_table(
        "appointments",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("barber_id", sa.String(length=64), nullable=False),
        sa.Column("date", sa.String(length=10), nullable=False),
        sa.Column("time", sa.String(length=5), nullable=False),
        sa.Column("client_name", sa.String(length=120), nullable=False),
        sa.Column("client_phone", sa.String(length=32), nullable=True),
        sa.Column("service", sa.String(length=200), nullable=False),
        sa.Column("price", sa.String(length=16), nullable=True),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="confirmed"),
        sa.Column("idempotency_key", sa.String(length=128), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_appointments_barber_date", "appointments", ["barber_id", "date"])
    op.create_index("ix_appointments_client_phone", "appointments", ["client_phone"])
    # At most one live appointment per slot
    op.create_index(
        "uq_appointments_live_slot",
        "appointments",
        ["barber_id", "date", "time"],
        unique=True,
        postgresql_where=sa.text("status <> 'cancelled'"),
        sqlite_where=sa.text("status <> 'cancelled'"),
    )


def downgrade() -> None:
    op.drop_index("uq_appointments_live_slot", table_name="appointments")
    op.drop_index("ix_appointments_client_phone", table_name="appointments")
    op.drop_index("ix_appointments_barber_date", table_name="appointments")
    op.drop_table("appointments")
    op.drop_index("ix_services_barber_id", table_name="services")
    op.drop_table("services")
    op.drop_index("ix_barbers_barber_id", table_name="barbers")
    op.drop_table("barbers")
