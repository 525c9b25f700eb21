"""
Equb API endpoints
"""
from datetime import date
from decimal import Decimal

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from pydantic import BaseModel, field_validator
from sqlalchemy.orm import Session

from app.api.deps import get_db, get_current_user_id, get_messenger
from app.application.equb import (
    ActionResult,
    EqubDetails,
    create_equb,
    delete_equb,
    get_equbs,
    list_upcoming_contributions,
    ERROR_ALREADY_SETTLED,
    ERROR_HAS_SETTLEMENTS,
    ERROR_INSUFFICIENT_FUNDS,
    ERROR_NOT_FOUND,
    ERROR_VALIDATION,
)
from app.application.equb_reminders import check_pending_equbs
from app.application.equb_settlement import mark_contribution_paid, receive_equb_payout
from app.application.telegram_bridge import MessagingBridge
from app.utils.validation import parse_amount


router = APIRouter(prefix="/api/v1/equbs", tags=["equb"])

_STATUS_BY_ERROR = {
    ERROR_VALIDATION: 422,
    ERROR_NOT_FOUND: 404,
    ERROR_ALREADY_SETTLED: 409,
    ERROR_HAS_SETTLEMENTS: 409,
    ERROR_INSUFFICIENT_FUNDS: 400,
}


# === Request/Response models ===

class CreateEqubRequest(BaseModel):
    name: str
    contribution_amount: Decimal
    frequency: str  # DAILY, WEEKLY, MONTHLY
    start_date: date
    total_cycles: int
    payout_cycle: int

    @field_validator("contribution_amount", mode="before")
    @classmethod
    def validate_amount(cls, v) -> Decimal:
        """Accepts "1 500,50" as well as 1500.5"""
        return parse_amount(v)


class SettleRequest(BaseModel):
    bank_account_id: int | None = None  # None = cash


class ContributionResponse(BaseModel):
    id: int
    cycle_number: int
    amount: str  # Decimal as string
    due_date: date
    status: str
    transaction_id: int | None


class PayoutResponse(BaseModel):
    id: int
    amount: str
    due_date: date
    status: str
    transaction_id: int | None


class EqubResponse(BaseModel):
    id: int
    name: str
    contribution_amount: str
    frequency: str
    start_date: date
    total_cycles: int
    payout_cycle: int
    paid_count: int
    contributions: list[ContributionResponse]
    payout: PayoutResponse | None


class UpcomingContributionResponse(BaseModel):
    contribution_id: int
    equb_id: int
    equb_name: str
    cycle_number: int
    amount: str
    due_date: date


# === Helper functions ===

def _error_response(result: ActionResult) -> JSONResponse:
    return JSONResponse(
        status_code=_STATUS_BY_ERROR.get(result.error, 500),
        content={"detail": result.message, "error": result.error},
    )


def _to_response(details: EqubDetails) -> EqubResponse:
    e = details.equb
    p = details.payout
    return EqubResponse(
        id=e.id,
        name=e.name,
        contribution_amount=str(e.contribution_amount),
        frequency=e.frequency,
        start_date=e.start_date,
        total_cycles=e.total_cycles,
        payout_cycle=e.payout_cycle,
        paid_count=details.paid_count,
        contributions=[
            ContributionResponse(
                id=c.id,
                cycle_number=c.cycle_number,
                amount=str(c.amount),
                due_date=c.due_date,
                status=c.status,
                transaction_id=c.transaction_id,
            )
            for c in details.contributions
        ],
        payout=PayoutResponse(
            id=p.id,
            amount=str(p.amount),
            due_date=p.due_date,
            status=p.status,
            transaction_id=p.transaction_id,
        ) if p else None,
    )


# === Endpoints ===

@router.post("/", status_code=201)
def create_equb_endpoint(
    req: CreateEqubRequest,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    """Create an Equb with its full contribution schedule"""
    result = create_equb(
        db,
        user_id,
        name=req.name,
        contribution_amount=req.contribution_amount,
        frequency=req.frequency,
        start_date=req.start_date,
        total_cycles=req.total_cycles,
        payout_cycle=req.payout_cycle,
    )
    if not result.ok:
        return _error_response(result)

    created = next(
        (d for d in get_equbs(db, user_id).data or [] if d.equb.id == result.data.id),
        None,
    )
    if created is None:
        return JSONResponse(status_code=500, content={"detail": "Failed to create Equb", "error": "Internal"})
    return _to_response(created)


@router.get("/", response_model=list[EqubResponse])
def list_equbs(
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    """All Equbs of the current user, newest first"""
    result = get_equbs(db, user_id)
    if not result.ok:
        return _error_response(result)
    return [_to_response(d) for d in result.data]


@router.get("/upcoming", response_model=list[UpcomingContributionResponse])
def upcoming_contributions(
    limit: int = 3,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    """Next pending contributions across all Equbs"""
    result = list_upcoming_contributions(db, user_id, limit=max(1, min(limit, 50)))
    if not result.ok:
        return _error_response(result)
    return [
        UpcomingContributionResponse(
            contribution_id=c.id,
            equb_id=e.id,
            equb_name=e.name,
            cycle_number=c.cycle_number,
            amount=str(c.amount),
            due_date=c.due_date,
        )
        for c, e in result.data
    ]


@router.delete("/{equb_id}")
def delete_equb_endpoint(
    equb_id: int,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
    messenger: MessagingBridge = Depends(get_messenger),
):
    """Delete an Equb (no-op for ids the user does not own)"""
    result = delete_equb(db, user_id, equb_id, messenger=messenger)
    if not result.ok:
        return _error_response(result)
    return {"success": True}


@router.post("/contributions/{contribution_id}/pay")
def pay_contribution(
    contribution_id: int,
    req: SettleRequest | None = None,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
    messenger: MessagingBridge = Depends(get_messenger),
):
    """Record a contribution as paid (posts an EXPENSE)"""
    bank_account_id = req.bank_account_id if req else None
    result = mark_contribution_paid(db, user_id, contribution_id, bank_account_id, messenger=messenger)
    if not result.ok:
        return _error_response(result)
    return {"success": True, "transaction_id": result.data["transaction_id"]}


@router.post("/payouts/{payout_id}/receive")
def receive_payout(
    payout_id: int,
    req: SettleRequest | None = None,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
    messenger: MessagingBridge = Depends(get_messenger),
):
    """Record the payout as received (posts an INCOME)"""
    bank_account_id = req.bank_account_id if req else None
    result = receive_equb_payout(db, user_id, payout_id, bank_account_id, messenger=messenger)
    if not result.ok:
        return _error_response(result)
    return {"success": True, "transaction_id": result.data["transaction_id"]}


@router.post("/reminders/check")
def check_reminders(
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
    messenger: MessagingBridge = Depends(get_messenger),
):
    """Raise reminders for due contributions (called on dashboard load)"""
    result = check_pending_equbs(db, user_id, messenger)
    if not result.ok:
        return _error_response(result)
    return result.data
