"""
Ledger bridge - the one place that talks to the ledger tables on behalf of Equb.

- resolve_or_create_category: search-then-create, never a duplicate row
- post_ledger_entry: adds a transaction inside the caller's unit of work
- get_account_balance: derived balance of a bank/mobile-money account
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

from sqlalchemy import case, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.infrastructure.db.models import BankAccount, Category, LedgerTransaction

logger = logging.getLogger(__name__)

TX_INCOME = "INCOME"
TX_EXPENSE = "EXPENSE"
TX_TRANSFER = "TRANSFER"

_DEFAULT_ICONS = {
    TX_INCOME: "🎁",
    TX_EXPENSE: "📅",
}


@dataclass(frozen=True)
class LedgerEntry:
    amount: Decimal
    transaction_type: str  # INCOME/EXPENSE
    description: str
    occurred_at: datetime
    category_id: int | None = None
    bank_account_id: int | None = None  # None = cash


def _find_category(db: Session, user_id: int, name: str, category_type: str) -> Category | None:
    return db.query(Category).filter(
        Category.user_id == user_id,
        Category.name == name,
        Category.category_type == category_type,
    ).first()


def resolve_or_create_category(db: Session, user_id: int, name: str, category_type: str) -> Category:
    """
    Return the user's (name, type) category, creating it on first use.

    Must be called outside an open unit of work: creation commits on its own.
    A concurrent insert of the same category trips the unique constraint;
    in that case the winner's row is re-read and returned.
    """
    category = _find_category(db, user_id, name, category_type)
    if category:
        return category

    category = Category(
        user_id=user_id,
        name=name,
        category_type=category_type,
        icon=_DEFAULT_ICONS.get(category_type),
    )
    db.add(category)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        logger.info("Category %r/%s created concurrently for user_id=%s, reusing", name, category_type, user_id)
        category = _find_category(db, user_id, name, category_type)
        if category is None:
            raise
    return category


def post_ledger_entry(db: Session, user_id: int, entry: LedgerEntry) -> int:
    """
    Add a ledger transaction to the current unit of work (flush, no commit).

    Returns:
        transaction id for linking back to the settled Equb item
    """
    tx = LedgerTransaction(
        user_id=user_id,
        amount=entry.amount,
        transaction_type=entry.transaction_type,
        description=entry.description,
        occurred_at=entry.occurred_at,
        category_id=entry.category_id,
        bank_account_id=entry.bank_account_id,
    )
    db.add(tx)
    db.flush()
    return tx.id


def get_bank_account(db: Session, user_id: int, bank_account_id: int) -> BankAccount | None:
    return db.query(BankAccount).filter(
        BankAccount.id == bank_account_id,
        BankAccount.user_id == user_id,
    ).first()


def get_account_balance(db: Session, user_id: int, bank_account_id: int) -> Decimal:
    """
    Running balance of an account: sum(INCOME) - sum(EXPENSE).

    TRANSFER rows are neutral here. The value is read without locking, so it
    is only advisory for concurrent spends.
    """
    signed = case(
        (LedgerTransaction.transaction_type == TX_INCOME, LedgerTransaction.amount),
        (LedgerTransaction.transaction_type == TX_EXPENSE, -LedgerTransaction.amount),
        else_=0,
    )
    total = db.query(func.sum(signed)).filter(
        LedgerTransaction.user_id == user_id,
        LedgerTransaction.bank_account_id == bank_account_id,
    ).scalar()
    if total is None:
        return Decimal("0")
    return Decimal(str(total)).quantize(Decimal("0.01"))
