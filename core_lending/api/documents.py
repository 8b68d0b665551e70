"""
Document endpoints (PDF receipts, reports and simulations)
"""

from datetime import date
from typing import Callable

from fastapi import APIRouter, HTTPException, Depends, Response

from .dependencies import LendingSystem, get_lending_system, unwrap
from .schemas import ReceiptRequest, DesiredPaymentRequest, ContractTemplateRequest
from ..amortization import allocate_payment, solve_term_for_desired_payment
from ..documents import DEFAULT_CONTRACT_TEMPLATE, DocumentRenderError, ReceiptData
from ..logging_config import get_logger


router = APIRouter()
logger = get_logger("lending.api.documents")


def _pdf(render: Callable[[], bytes], filename: str) -> Response:
    try:
        content = render()
    except DocumentRenderError as e:
        logger.error(f"Could not render {filename}: {e}")
        raise HTTPException(status_code=503, detail=str(e))
    return Response(
        content=content,
        media_type="application/pdf",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'}
    )


@router.get("/contract-template")
async def get_contract_template(system: LendingSystem = Depends(get_lending_system)):
    """Current contract template and whether it is the built-in one"""
    template = await system.request_manager.get_contract_template()
    return {
        "template": template or DEFAULT_CONTRACT_TEMPLATE,
        "is_default": template is None
    }


@router.put("/contract-template")
async def set_contract_template(
    request: ContractTemplateRequest,
    system: LendingSystem = Depends(get_lending_system)
):
    """Replace the contract template"""
    if not request.template.strip():
        raise HTTPException(status_code=422, detail={"field": "template",
                                                     "reason": "template cannot be empty"})
    unwrap(await system.request_manager.set_contract_template(request.template))
    return {"message": "Contract template saved"}


@router.post("/receipt")
async def payment_receipt(
    request: ReceiptRequest,
    system: LendingSystem = Depends(get_lending_system)
):
    """Receipt PDF for a payment, split into interest and principal"""
    loan = unwrap(await system.loan_manager.get_loan(request.loan_id))
    balance = loan.amount if request.outstanding_balance is None else request.outstanding_balance
    allocation = allocate_payment(request.amount, balance, loan.interest_rate)
    data = ReceiptData.from_allocation(
        loan.client_name, loan.id, request.amount, allocation,
        request.payment_date or date.today(), request.notes
    )
    return _pdf(lambda: system.documents.receipt_pdf(data, request.signature),
                f"receipt_{loan.id}.pdf")


@router.get("/clients/{client_id}/report")
async def client_report(
    client_id: str,
    system: LendingSystem = Depends(get_lending_system)
):
    """Loan history report PDF of one client"""
    store = system.sync()
    client = store.clients.get(client_id)
    if client is None:
        raise HTTPException(status_code=404, detail=f"Client {client_id} not found")
    loans = store.loans_for_client(client_id)
    return _pdf(lambda: system.documents.client_report_pdf(client, loans),
                f"client_report_{client_id}.pdf")


@router.get("/requests/{request_id}/summary")
async def request_summary(
    request_id: str,
    system: LendingSystem = Depends(get_lending_system)
):
    """Loan request summary PDF with the contract preview"""
    loan_request = unwrap(await system.request_manager.get_request(request_id))
    template = await system.request_manager.get_contract_template()
    return _pdf(lambda: system.documents.request_summary_pdf(loan_request, template),
                f"request_{request_id}.pdf")


@router.post("/simulation")
async def loan_simulation(
    request: DesiredPaymentRequest,
    system: LendingSystem = Depends(get_lending_system)
):
    """Simulation PDF for a desired monthly payment"""
    start = request.start_date or date.today()
    plan = unwrap(solve_term_for_desired_payment(
        request.principal, request.monthly_rate_percent, request.target_payment, start
    ))
    return _pdf(lambda: system.documents.simulation_pdf(plan, start), "simulation.pdf")
