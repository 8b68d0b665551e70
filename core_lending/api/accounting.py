"""
Accounting endpoints
"""

from datetime import date
from typing import Optional

from fastapi import APIRouter, HTTPException, Depends, status

from .dependencies import LendingSystem, get_lending_system, unwrap
from .schemas import CreateAccountingEntryRequest, InitialCapitalRequest, entry_view
from ..models import AccountingEntryType


router = APIRouter()


def _parse_type(value: str) -> AccountingEntryType:
    try:
        return AccountingEntryType(value.upper())
    except ValueError:
        raise HTTPException(status_code=422, detail={"field": "type",
                                                     "reason": f"unknown entry type '{value}'"})


@router.post("/entries", status_code=status.HTTP_201_CREATED)
async def add_entry(
    request: CreateAccountingEntryRequest,
    system: LendingSystem = Depends(get_lending_system)
):
    """Record an income, expense or capital movement"""
    entry = unwrap(await system.accounting_manager.add_entry(
        _parse_type(request.type), request.amount, request.description, request.entry_date
    ))
    return entry_view(entry)


@router.get("/entries")
async def list_entries(
    type: Optional[str] = None,
    system: LendingSystem = Depends(get_lending_system)
):
    """List ledger entries, newest first"""
    wanted = _parse_type(type) if type else None
    entries = unwrap(await system.accounting_manager.list_entries(wanted))
    return {"entries": [entry_view(e) for e in entries], "count": len(entries)}


@router.delete("/entries/{entry_id}")
async def delete_entry(
    entry_id: str,
    system: LendingSystem = Depends(get_lending_system)
):
    """Delete a ledger entry"""
    unwrap(await system.accounting_manager.delete_entry(entry_id))
    return {"entry_id": entry_id, "message": "Entry deleted"}


@router.get("/initial-capital")
async def get_initial_capital(system: LendingSystem = Depends(get_lending_system)):
    """Get the initial capital setting"""
    amount = unwrap(await system.accounting_manager.get_initial_capital())
    return {"initial_capital": str(amount)}


@router.put("/initial-capital")
async def set_initial_capital(
    request: InitialCapitalRequest,
    system: LendingSystem = Depends(get_lending_system)
):
    """Set the initial capital"""
    amount = unwrap(await system.accounting_manager.set_initial_capital(request.amount))
    return {"initial_capital": str(amount)}


@router.get("/summary")
async def financial_summary(
    as_of: Optional[date] = None,
    system: LendingSystem = Depends(get_lending_system)
):
    """Financial snapshot of the whole portfolio"""
    store = system.sync()
    snapshot = store.snapshot(as_of or date.today(), system.config.overdue_grace_days)
    return snapshot.to_dict()
