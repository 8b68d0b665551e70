"""
Client endpoints
"""

from datetime import date
from typing import Optional

from fastapi import APIRouter, HTTPException, Depends, status

from .dependencies import LendingSystem, get_lending_system, unwrap
from .schemas import (
    CreateClientLoanRequest, client_loans_view, client_view, loan_view, reputation_view
)


router = APIRouter()


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_client_and_loan(
    request: CreateClientLoanRequest,
    system: LendingSystem = Depends(get_lending_system)
):
    """Create a client together with its first loan"""
    created = unwrap(await system.loan_manager.create_client_and_loan(
        request.to_client_fields(), request.amount, request.term_months, request.start_date
    ))
    return {
        "client_id": created["client_id"],
        "loan_id": created["loan_id"],
        "message": "Client and loan created"
    }


@router.get("")
async def list_clients(
    include_archived: bool = False,
    as_of: Optional[date] = None,
    system: LendingSystem = Depends(get_lending_system)
):
    """Every client with its loans, ordered by name"""
    store = system.sync()
    as_of = as_of or date.today()
    grace = system.config.overdue_grace_days
    clients = store.client_loan_data(include_archived)
    return {
        "clients": [client_loans_view(entry, as_of, grace) for entry in clients],
        "count": len(clients)
    }


@router.get("/reputation")
async def client_reputation(system: LendingSystem = Depends(get_lending_system)):
    """Clients ranked by loans repaid and archived"""
    report = unwrap(await system.loan_manager.client_reputation())
    return {"clients": reputation_view(report)}


@router.get("/{client_id}")
async def get_client(
    client_id: str,
    include_archived: bool = True,
    as_of: Optional[date] = None,
    system: LendingSystem = Depends(get_lending_system)
):
    """Get a client and its loans"""
    store = system.sync()
    client = store.clients.get(client_id)
    if client is None:
        raise HTTPException(status_code=404, detail=f"Client {client_id} not found")

    as_of = as_of or date.today()
    grace = system.config.overdue_grace_days
    loans = [
        loan for loan in store.loans_for_client(client_id)
        if include_archived or not loan.archived
    ]
    view = client_view(client)
    view["loans"] = [loan_view(loan, as_of, grace) for loan in loans]
    return view
