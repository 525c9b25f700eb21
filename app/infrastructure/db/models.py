"""
SQLAlchemy ORM models (ledger tables + Equb plans + notifications)
"""
from decimal import Decimal
from datetime import date as date_type, datetime
from sqlalchemy import (
    String, DateTime, Integer, Text, TIMESTAMP, Date, func, Boolean, Numeric,
    ForeignKey, UniqueConstraint, CheckConstraint, Index, false, text,
)
from sqlalchemy.orm import Mapped, mapped_column

from app.infrastructure.db.session import Base


class User(Base):
    """
    User model (owner of every other row)
    """
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(primary_key=True)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    name: Mapped[str | None] = mapped_column(String(255), nullable=True)

    created_at: Mapped[DateTime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False
    )


# ============================================================================
# Ledger (accounts, categories, transactions)
# ============================================================================


class BankAccount(Base):
    """
    Bank or mobile-money account. Balance is derived from transactions.
    """
    __tablename__ = "bank_accounts"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    created_at: Mapped[DateTime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=func.now(), nullable=False
    )


class Category(Base):
    """
    Transaction category (INCOME/EXPENSE), one row per (user, name, type)
    """
    __tablename__ = "categories"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    category_type: Mapped[str] = mapped_column(String(20), nullable=False)  # INCOME/EXPENSE
    icon: Mapped[str | None] = mapped_column(String(16), nullable=True)
    created_at: Mapped[DateTime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=func.now(), nullable=False
    )

    __table_args__ = (
        UniqueConstraint('user_id', 'name', 'category_type', name='uq_category_user_name_type'),
    )


class LedgerTransaction(Base):
    """
    Ledger transaction (INCOME/EXPENSE/TRANSFER).
    bank_account_id NULL means cash.
    """
    __tablename__ = "transactions"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    amount: Mapped[Decimal] = mapped_column(Numeric(precision=20, scale=2), nullable=False)
    transaction_type: Mapped[str] = mapped_column(String(20), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    occurred_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False)
    category_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("categories.id"), nullable=True
    )
    bank_account_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("bank_accounts.id"), nullable=True, index=True
    )
    created_at: Mapped[DateTime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=func.now(), nullable=False
    )


# ============================================================================
# Equb (personal rotating-savings plans)
# ============================================================================


class EqubModel(Base):
    """
    Equb plan: fixed installments, one lump-sum payout
    """
    __tablename__ = "equbs"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    contribution_amount: Mapped[Decimal] = mapped_column(Numeric(precision=20, scale=2), nullable=False)
    frequency: Mapped[str] = mapped_column(String(16), nullable=False)  # DAILY/WEEKLY/MONTHLY
    start_date: Mapped[date_type] = mapped_column(Date, nullable=False)
    total_cycles: Mapped[int] = mapped_column(Integer, nullable=False)
    payout_cycle: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[DateTime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=func.now(), nullable=False
    )

    __table_args__ = (
        CheckConstraint('contribution_amount > 0', name='ck_equb_amount_positive'),
        CheckConstraint('total_cycles >= 1', name='ck_equb_total_cycles'),
        CheckConstraint('payout_cycle >= 1 AND payout_cycle <= total_cycles', name='ck_equb_payout_cycle'),
    )


class EqubContributionModel(Base):
    """One scheduled installment. PENDING -> PAID exactly once."""
    __tablename__ = "equb_contributions"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    equb_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("equbs.id", ondelete="CASCADE"), nullable=False, index=True
    )
    cycle_number: Mapped[int] = mapped_column(Integer, nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(precision=20, scale=2), nullable=False)
    due_date: Mapped[date_type] = mapped_column(Date, nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="PENDING")
    transaction_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("transactions.id"), nullable=True
    )
    paid_at: Mapped[datetime | None] = mapped_column(TIMESTAMP(timezone=True), nullable=True)

    __table_args__ = (
        UniqueConstraint('equb_id', 'cycle_number', name='uq_equb_contribution_cycle'),
        Index('ix_equb_contrib_status_due', 'status', 'due_date'),
    )


class EqubPayoutModel(Base):
    """The single lump-sum payout. PENDING -> RECEIVED exactly once."""
    __tablename__ = "equb_payouts"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    equb_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("equbs.id", ondelete="CASCADE"), nullable=False, unique=True
    )
    amount: Mapped[Decimal] = mapped_column(Numeric(precision=20, scale=2), nullable=False)
    due_date: Mapped[date_type] = mapped_column(Date, nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="PENDING")
    transaction_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("transactions.id"), nullable=True
    )
    received_at: Mapped[datetime | None] = mapped_column(TIMESTAMP(timezone=True), nullable=True)


# ============================================================================
# Notifications + Telegram link
# ============================================================================


class NotificationModel(Base):
    """
    In-app notification. Reminders carry action_id/action_type so that the
    "pay now" affordance can settle the contribution they point at.
    """
    __tablename__ = "notifications"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    notification_type: Mapped[str] = mapped_column(String(32), nullable=False, default="INFO")
    action_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    action_type: Mapped[str | None] = mapped_column(String(64), nullable=True)
    is_read: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default=false())
    telegram_message_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    created_at: Mapped[DateTime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=func.now(), nullable=False
    )

    __table_args__ = (
        # At most one unread actionable notification per (user, action)
        Index(
            'uq_notification_unread_action',
            'user_id', 'action_id', 'action_type',
            unique=True,
            postgresql_where=text('is_read = false AND action_id IS NOT NULL'),
            sqlite_where=text('is_read = 0 AND action_id IS NOT NULL'),
        ),
    )


class TelegramSettings(Base):
    """Linked Telegram chat for a user (external messaging identity)."""
    __tablename__ = "telegram_settings"

    user_id: Mapped[int] = mapped_column(Integer, primary_key=True)
    chat_id: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)
    connected: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default=false())
    connected_at: Mapped[datetime | None] = mapped_column(TIMESTAMP(timezone=True), nullable=True)
