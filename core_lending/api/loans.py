"""
Loan endpoints
"""

from datetime import date
from typing import Optional

from fastapi import APIRouter, HTTPException, Depends

from .dependencies import LendingSystem, get_lending_system, unwrap
from .schemas import UpdateLoanRequest, loan_view, schedule_view
from ..loans import LoanUpdate
from ..models import LoanStatus


router = APIRouter()


def _parse_status(value: str) -> LoanStatus:
    try:
        return LoanStatus(value)
    except ValueError:
        raise HTTPException(status_code=422, detail={"field": "status",
                                                     "reason": f"unknown loan status '{value}'"})


@router.get("")
async def list_loans(
    status: Optional[str] = None,
    include_archived: bool = False,
    as_of: Optional[date] = None,
    system: LendingSystem = Depends(get_lending_system)
):
    """List loans with their status derived for ``as_of`` (default today)"""
    store = system.sync()
    as_of = as_of or date.today()
    grace = system.config.overdue_grace_days
    wanted = _parse_status(status) if status else None

    loans = sorted(store.loans.values(), key=lambda loan: loan.start_date)
    views = [
        loan_view(loan, as_of, grace) for loan in loans
        if (include_archived or not loan.archived)
        and (wanted is None or loan.status_as_of(as_of, grace) == wanted)
    ]
    return {"loans": views, "count": len(views)}


@router.get("/active")
async def list_active_loans(
    as_of: Optional[date] = None,
    system: LendingSystem = Depends(get_lending_system)
):
    """Loans that are pending or overdue"""
    store = system.sync()
    as_of = as_of or date.today()
    grace = system.config.overdue_grace_days
    loans = sorted(store.active_loans(as_of, grace), key=lambda loan: loan.start_date)
    return {"loans": [loan_view(loan, as_of, grace) for loan in loans], "count": len(loans)}


@router.post("/archive-paid")
async def archive_paid_loans(system: LendingSystem = Depends(get_lending_system)):
    """Archive every paid loan"""
    archived = unwrap(await system.loan_manager.archive_paid_loans())
    return {"archived": archived, "message": f"Archived {archived} paid loans"}


@router.get("/{loan_id}")
async def get_loan(
    loan_id: str,
    as_of: Optional[date] = None,
    system: LendingSystem = Depends(get_lending_system)
):
    """Get loan details"""
    loan = unwrap(await system.loan_manager.get_loan(loan_id))
    return loan_view(loan, as_of or date.today(), system.config.overdue_grace_days)


@router.get("/{loan_id}/schedule")
async def get_loan_schedule(
    loan_id: str,
    system: LendingSystem = Depends(get_lending_system)
):
    """Amortization schedule of a fixed-term loan"""
    loan = unwrap(await system.loan_manager.get_loan(loan_id))
    schedule = unwrap(system.loan_manager.loan_schedule(loan))
    return {"loan_id": loan_id, "schedule": schedule_view(schedule)}


@router.post("/{loan_id}/payments")
async def register_payment(
    loan_id: str,
    system: LendingSystem = Depends(get_lending_system)
):
    """Register one installment"""
    loan = unwrap(await system.loan_manager.register_payment(loan_id))
    return loan_view(loan, date.today(), system.config.overdue_grace_days)


@router.patch("/{loan_id}")
async def update_loan(
    loan_id: str,
    request: UpdateLoanRequest,
    system: LendingSystem = Depends(get_lending_system)
):
    """Edit a loan; payment figures are recomputed"""
    changes = LoanUpdate(
        amount=request.amount,
        term=request.term,
        interest_rate=request.interest_rate,
        start_date=request.start_date,
        payments_made=request.payments_made,
        status=_parse_status(request.status) if request.status else None,
        client_name=request.client_name
    )
    loan = unwrap(await system.loan_manager.update_loan(loan_id, changes))
    return loan_view(loan, date.today(), system.config.overdue_grace_days)


@router.delete("/{loan_id}")
async def delete_loan(
    loan_id: str,
    system: LendingSystem = Depends(get_lending_system)
):
    """Delete a loan"""
    unwrap(await system.loan_manager.delete_loan(loan_id))
    return {"loan_id": loan_id, "message": "Loan deleted"}
