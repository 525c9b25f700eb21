"""create users, ledger, equb, notifications and telegram_settings tables

Revision ID: a0e1b2c3d4f5
Revises:
Create Date: 2026-10-19

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


revision: str = 'a0e1b2c3d4f5'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column("email", sa.String(255), nullable=False, unique=True),
        sa.Column("name", sa.String(255), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
    )

    # Ledger
    op.create_table(
        "bank_accounts",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.Integer, nullable=False, index=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("created_at", sa.TIMESTAMP(timezone=True), nullable=False, server_default=sa.text("now()")),
    )
    op.create_table(
        "categories",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.Integer, nullable=False, index=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("category_type", sa.String(20), nullable=False),
        sa.Column("icon", sa.String(16), nullable=True),
        sa.Column("created_at", sa.TIMESTAMP(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.UniqueConstraint("user_id", "name", "category_type", name="uq_category_user_name_type"),
    )
    op.create_table(
        "transactions",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.Integer, nullable=False, index=True),
        sa.Column("amount", sa.Numeric(20, 2), nullable=False),
        sa.Column("transaction_type", sa.String(20), nullable=False),
        sa.Column("description", sa.Text, nullable=False, server_default=""),
        sa.Column("occurred_at", sa.TIMESTAMP(timezone=True), nullable=False),
        sa.Column("category_id", sa.Integer, sa.ForeignKey("categories.id"), nullable=True),
        sa.Column("bank_account_id", sa.Integer, sa.ForeignKey("bank_accounts.id"), nullable=True, index=True),
        sa.Column("created_at", sa.TIMESTAMP(timezone=True), nullable=False, server_default=sa.text("now()")),
    )

    # Equb plans
    op.create_table(
        "equbs",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.Integer, nullable=False, index=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("contribution_amount", sa.Numeric(20, 2), nullable=False),
        sa.Column("frequency", sa.String(16), nullable=False),
        sa.Column("start_date", sa.Date, nullable=False),
        sa.Column("total_cycles", sa.Integer, nullable=False),
        sa.Column("payout_cycle", sa.Integer, nullable=False),
        sa.Column("created_at", sa.TIMESTAMP(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.CheckConstraint("contribution_amount > 0", name="ck_equb_amount_positive"),
        sa.CheckConstraint("total_cycles >= 1", name="ck_equb_total_cycles"),
        sa.CheckConstraint("payout_cycle >= 1 AND payout_cycle <= total_cycles", name="ck_equb_payout_cycle"),
    )
    op.create_table(
        "equb_contributions",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("equb_id", sa.Integer, sa.ForeignKey("equbs.id", ondelete="CASCADE"), nullable=False, index=True),
        sa.Column("cycle_number", sa.Integer, nullable=False),
        sa.Column("amount", sa.Numeric(20, 2), nullable=False),
        sa.Column("due_date", sa.Date, nullable=False),
        sa.Column("status", sa.String(16), nullable=False, server_default="PENDING"),
        sa.Column("transaction_id", sa.Integer, sa.ForeignKey("transactions.id"), nullable=True),
        sa.Column("paid_at", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.UniqueConstraint("equb_id", "cycle_number", name="uq_equb_contribution_cycle"),
    )
    # reminder sweep: PENDING + due_date <= today
    op.create_index("ix_equb_contrib_status_due", "equb_contributions", ["status", "due_date"])

    op.create_table(
        "equb_payouts",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("equb_id", sa.Integer, sa.ForeignKey("equbs.id", ondelete="CASCADE"), nullable=False, unique=True),
        sa.Column("amount", sa.Numeric(20, 2), nullable=False),
        sa.Column("due_date", sa.Date, nullable=False),
        sa.Column("status", sa.String(16), nullable=False, server_default="PENDING"),
        sa.Column("transaction_id", sa.Integer, sa.ForeignKey("transactions.id"), nullable=True),
        sa.Column("received_at", sa.TIMESTAMP(timezone=True), nullable=True),
    )

    # Notifications
    op.create_table(
        "notifications",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.Integer, nullable=False, index=True),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("message", sa.Text, nullable=False),
        sa.Column("notification_type", sa.String(32), nullable=False, server_default="INFO"),
        sa.Column("action_id", sa.Integer, nullable=True),
        sa.Column("action_type", sa.String(64), nullable=True),
        sa.Column("is_read", sa.Boolean, nullable=False, server_default="false"),
        sa.Column("telegram_message_id", sa.String(64), nullable=True),
        sa.Column("created_at", sa.TIMESTAMP(timezone=True), nullable=False, server_default=sa.text("now()")),
    )
    # At most one unread actionable notification per (user, action)
    op.create_index(
        "uq_notification_unread_action",
        "notifications",
        ["user_id", "action_id", "action_type"],
        unique=True,
        postgresql_where=sa.text("is_read = false AND action_id IS NOT NULL"),
    )

    op.create_table(
        "telegram_settings",
        sa.Column("user_id", sa.Integer, primary_key=True),
        sa.Column("chat_id", sa.String(64), nullable=True, index=True),
        sa.Column("connected", sa.Boolean, nullable=False, server_default="false"),
        sa.Column("connected_at", sa.TIMESTAMP(timezone=True), nullable=True),
    )


def downgrade() -> None:
    op.drop_table("telegram_settings")
    op.drop_index("uq_notification_unread_action", table_name="notifications")
    op.drop_table("notifications")
    op.drop_table("equb_payouts")
    op.drop_index("ix_equb_contrib_status_due", table_name="equb_contributions")
    op.drop_table("equb_contributions")
    op.drop_table("equbs")
    op.drop_table("transactions")
    op.drop_table("categories")
    op.drop_table("bank_accounts")
    op.drop_table("users")
