"""Initial schema: accounts, catalog, purchases, tickets and the check-in log.

Revision ID: 001
Revises: None
Create Date: 2026-10-19
"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    ]


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("full_name", sa.String(255), nullable=False),
        sa.Column("hashed_password", sa.String(255), nullable=True),
        sa.Column("role", sa.String(20), nullable=False, server_default=sa.text("'attendee'")),
        sa.Column("is_guest", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        *_timestamps(),
        sa.CheckConstraint("role IN ('attendee', 'organizer', 'admin')", name="check_user_role"),
    )
    op.create_index("ix_users_id", "users", ["id"])
    op.create_index("ix_users_email", "users", ["email"], unique=True)

    op.create_table(
        "events",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("description", sa.String(2000), nullable=True),
        sa.Column("starts_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("ends_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("location", sa.String(255), nullable=True),
        sa.Column("organizer_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        *_timestamps(),
    )
    op.create_index("ix_events_id", "events", ["id"])
    op.create_index("ix_events_organizer_id", "events", ["organizer_id"])
    # Listings are always "upcoming, soonest first"
    op.create_index("ix_events_starts_at", "events", ["starts_at"])

    op.create_table(
        "ticket_types",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("event_id", sa.Integer(), sa.ForeignKey("events.id"), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("description", sa.String(1000), nullable=True),
        sa.Column("price", sa.Numeric(10, 2), nullable=False),
        sa.Column("capacity_total", sa.Integer(), nullable=False),
        sa.Column("capacity_reserved", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("max_per_order", sa.Integer(), nullable=False, server_default=sa.text("10")),
        sa.Column("sales_start", sa.DateTime(timezone=True), nullable=True),
        sa.Column("sales_end", sa.DateTime(timezone=True), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("version", sa.Integer(), nullable=False, server_default=sa.text("1")),
        *_timestamps(),
        sa.CheckConstraint("price >= 0", name="check_ticket_type_price_non_negative"),
        sa.CheckConstraint("capacity_total >= 1", name="check_capacity_total_positive"),
        sa.CheckConstraint("capacity_reserved >= 0", name="check_capacity_reserved_non_negative"),
        # Last line of defence against overselling
        sa.CheckConstraint("capacity_reserved <= capacity_total", name="check_reserved_lte_total"),
        sa.CheckConstraint("max_per_order >= 1", name="check_max_per_order_positive"),
    )
    op.create_index("ix_ticket_types_id", "ticket_types", ["id"])
    op.create_index("ix_ticket_types_event_id", "ticket_types", ["event_id"])

    op.create_table(
        "discount_codes",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("code", sa.String(64), nullable=False),
        sa.Column("discount_type", sa.String(20), nullable=False),
        sa.Column("discount_value", sa.Numeric(10, 2), nullable=False),
        sa.Column("max_uses", sa.Integer(), nullable=True),
        sa.Column("current_uses", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("valid_from", sa.DateTime(timezone=True), nullable=True),
        sa.Column("valid_until", sa.DateTime(timezone=True), nullable=True),
        sa.Column("event_id", sa.Integer(), sa.ForeignKey("events.id"), nullable=True),
        sa.Column("version", sa.Integer(), nullable=False, server_default=sa.text("1")),
        *_timestamps(),
        sa.CheckConstraint("discount_type IN ('percentage', 'fixed')", name="check_discount_type"),
        sa.CheckConstraint("discount_value >= 0", name="check_discount_value_non_negative"),
        sa.CheckConstraint("current_uses >= 0", name="check_current_uses_non_negative"),
        sa.CheckConstraint("max_uses IS NULL OR current_uses <= max_uses", name="check_uses_lte_max"),
    )
    op.create_index("ix_discount_codes_id", "discount_codes", ["id"])
    op.create_index("ix_discount_codes_code", "discount_codes", ["code"], unique=True)
    op.create_index("ix_discount_codes_event_id", "discount_codes", ["event_id"])

    op.create_table(
        "purchases",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("buyer_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("buyer_email", sa.String(255), nullable=False),
        sa.Column("event_id", sa.Integer(), sa.ForeignKey("events.id"), nullable=False),
        sa.Column("ticket_type_id", sa.Integer(), sa.ForeignKey("ticket_types.id"), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("unit_price", sa.Numeric(10, 2), nullable=False),
        sa.Column("subtotal", sa.Numeric(10, 2), nullable=False),
        sa.Column("discount", sa.Numeric(10, 2), nullable=False, server_default=sa.text("0")),
        sa.Column("fee", sa.Numeric(10, 2), nullable=False, server_default=sa.text("0")),
        sa.Column("total", sa.Numeric(10, 2), nullable=False),
        sa.Column("currency", sa.String(3), nullable=False),
        sa.Column("discount_code_id", sa.Integer(), sa.ForeignKey("discount_codes.id"), nullable=True),
        sa.Column("discount_type", sa.String(20), nullable=True),
        sa.Column("discount_value", sa.Numeric(10, 2), nullable=True),
        sa.Column("payment_status", sa.String(20), nullable=False, server_default=sa.text("'pending'")),
        sa.Column("payment_session_id", sa.String(255), nullable=True),
        sa.Column("payment_ref", sa.String(255), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("failed_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("payment_session_id", name="uq_purchase_payment_session"),
        sa.CheckConstraint("quantity > 0", name="check_purchase_quantity_positive"),
        sa.CheckConstraint(
            "payment_status IN ('pending', 'completed', 'failed')",
            name="check_purchase_payment_status",
        ),
    )
    op.create_index("ix_purchases_id", "purchases", ["id"])
    op.create_index("ix_purchases_buyer_id", "purchases", ["buyer_id"])
    op.create_index("ix_purchases_event_id", "purchases", ["event_id"])
    op.create_index("ix_purchases_ticket_type_id", "purchases", ["ticket_type_id"])
    # Covers the sweeper: WHERE payment_status = 'pending' AND created_at < cutoff
    op.create_index("ix_purchases_status_created", "purchases", ["payment_status", "created_at"])

    op.create_table(
        "tickets",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("ticket_number", sa.String(32), nullable=False),
        sa.Column("purchase_id", sa.Integer(), sa.ForeignKey("purchases.id"), nullable=False),
        sa.Column("sequence_index", sa.Integer(), nullable=False),
        sa.Column("owner_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("event_id", sa.Integer(), sa.ForeignKey("events.id"), nullable=False),
        sa.Column("ticket_type_id", sa.Integer(), sa.ForeignKey("ticket_types.id"), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default=sa.text("'valid'")),
        sa.Column("validation_payload", sa.Text(), nullable=False),
        sa.Column("checked_in_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("checked_in_by", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
        *_timestamps(),
        # One row per (purchase, slot): duplicate issuance cannot insert twice
        sa.UniqueConstraint("purchase_id", "sequence_index", name="uq_ticket_purchase_sequence"),
        sa.CheckConstraint("sequence_index >= 0", name="check_ticket_sequence_non_negative"),
        sa.CheckConstraint("status IN ('valid', 'used', 'cancelled')", name="check_ticket_status"),
    )
    op.create_index("ix_tickets_id", "tickets", ["id"])
    op.create_index("ix_tickets_ticket_number", "tickets", ["ticket_number"], unique=True)
    op.create_index("ix_tickets_purchase_id", "tickets", ["purchase_id"])
    op.create_index("ix_tickets_owner_id", "tickets", ["owner_id"])
    op.create_index("ix_tickets_event_id", "tickets", ["event_id"])

    op.create_table(
        "check_ins",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("ticket_id", sa.Integer(), sa.ForeignKey("tickets.id"), nullable=False),
        sa.Column("event_id", sa.Integer(), sa.ForeignKey("events.id"), nullable=False),
        sa.Column("checked_in_by", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("method", sa.String(20), nullable=False, server_default=sa.text("'qr'")),
        sa.Column("checked_in_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_check_ins_id", "check_ins", ["id"])
    op.create_index("ix_check_ins_ticket_id", "check_ins", ["ticket_id"])
    op.create_index("ix_check_ins_event_id", "check_ins", ["event_id"])


def downgrade() -> None:
    op.drop_table("check_ins")
    op.drop_table("tickets")
    op.drop_table("purchases")
    op.drop_table("discount_codes")
    op.drop_table("ticket_types")
    op.drop_table("events")
    op.drop_table("users")
