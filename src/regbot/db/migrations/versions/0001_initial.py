"""initial schema

Revision ID: 0001
Revises:
Create Date: 2025-07-26 00:00:00.000000
"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


revision = "0001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.BigInteger(), primary_key=True, autoincrement=False),
        sa.Column("name", sa.Text()),
        sa.Column("username", sa.Text()),
        sa.Column("locale", sa.Text()),
        sa.Column("admin_group_topic", sa.BigInteger()),
        sa.Column("can_manage_events", sa.Boolean(), nullable=False, server_default=sa.text("false")),
    )

    op.create_table(
        "events",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("announce_text_html", sa.Text(), nullable=False, server_default=""),
        sa.Column("reminder_text_html", sa.Text()),
        sa.Column("published", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("registration_open", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("cancelled", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("date_changed", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("require_approval", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("reminder_sent", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("payment", sa.Text(), nullable=False, server_default="Donation"),
        sa.Column("price", sa.Text()),
        sa.Column("iban", sa.Text()),
        sa.Column("recipient", sa.Text()),
        sa.Column("participation_options", postgresql.ARRAY(sa.Text())),
        sa.CheckConstraint("payment in ('Required','Donation','NotRequired')", name="events_payment_check"),
    )

    op.create_table(
        "event_signups",
        sa.Column("event_id", sa.BigInteger(), sa.ForeignKey("events.id", ondelete="CASCADE"), primary_key=True),
        sa.Column("user_id", sa.BigInteger(), sa.ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
        sa.Column("status", sa.Text(), nullable=False),
        sa.Column("approved_by", sa.BigInteger()),
        sa.Column("approved_at", sa.DateTime(timezone=True)),
        sa.Column("participation_options", postgresql.ARRAY(sa.Text())),
        sa.Column("participation_confirmed", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.CheckConstraint(
            "status in ('PendingApproval','PendingPayment','Approved','Rejected')",
            name="event_signups_status_check",
        ),
    )

    op.create_table(
        "message_mirror_links",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("origin_id", sa.BigInteger(), nullable=False),
        sa.Column("origin_chat_id", sa.BigInteger(), nullable=False),
        sa.Column("destination_id", sa.BigInteger(), nullable=False),
        sa.Column("destination_chat_id", sa.BigInteger(), nullable=False),
    )

    op.create_index("idx_users_admin_group_topic", "users", ["admin_group_topic"])
    op.create_index("idx_events_reminder_due", "events", ["reminder_sent", "date"])
    op.create_index("idx_event_signups_user", "event_signups", ["user_id"])
    op.create_index("idx_mirror_links_origin", "message_mirror_links", ["origin_id", "origin_chat_id"])
    op.create_index(
        "idx_mirror_links_origin_destination_chat",
        "message_mirror_links",
        ["origin_id", "origin_chat_id", "destination_chat_id"],
    )


def downgrade() -> None:
    op.drop_index("idx_mirror_links_origin_destination_chat", table_name="message_mirror_links")
    op.drop_index("idx_mirror_links_origin", table_name="message_mirror_links")
    op.drop_index("idx_event_signups_user", table_name="event_signups")
    op.drop_index("idx_events_reminder_due", table_name="events")
    op.drop_index("idx_users_admin_group_topic", table_name="users")

    op.drop_table("message_mirror_links")
    op.drop_table("event_signups")
    op.drop_table("events")
    op.drop_table("users")
