"""
Loan request endpoints
"""

import base64
import binascii
from typing import Optional

from fastapi import APIRouter, HTTPException, Depends, status

from .dependencies import LendingSystem, get_lending_system, unwrap
from .schemas import (
    SubmitLoanRequest, UpdateRequestStatus, ApproveLoanRequest, request_view
)
from ..models import RequestStatus


router = APIRouter()


def _decode_image(data: str, field: str) -> bytes:
    # Accept raw base64 as well as data URLs
    if data.startswith("data:") and "," in data:
        data = data.split(",", 1)[1]
    try:
        return base64.b64decode(data, validate=True)
    except (binascii.Error, ValueError):
        raise HTTPException(status_code=422, detail={"field": field, "reason": "invalid base64 image"})


def _parse_status(value: str) -> RequestStatus:
    try:
        return RequestStatus(value)
    except ValueError:
        raise HTTPException(status_code=422, detail={"field": "status",
                                                     "reason": f"unknown request status '{value}'"})


@router.post("", status_code=status.HTTP_201_CREATED)
async def submit_request(
    request: SubmitLoanRequest,
    system: LendingSystem = Depends(get_lending_system)
):
    """Submit a loan request with both sides of the applicant's ID"""
    front = _decode_image(request.front_id_image, "front_id_image")
    back = _decode_image(request.back_id_image, "back_id_image")
    submitted = unwrap(await system.request_manager.submit_request(
        request.to_form(), front, back, request.image_content_type
    ))
    return request_view(submitted)


@router.get("")
async def list_requests(
    status: Optional[str] = None,
    system: LendingSystem = Depends(get_lending_system)
):
    """List open loan requests, newest first"""
    wanted = _parse_status(status) if status else None
    requests = unwrap(await system.request_manager.list_requests(wanted))
    return {"requests": [request_view(r) for r in requests], "count": len(requests)}


@router.get("/status/{id_number}")
async def check_request_status(
    id_number: str,
    system: LendingSystem = Depends(get_lending_system)
):
    """Public lookup of the latest request filed under an ID number"""
    lookup = unwrap(await system.request_manager.check_status(id_number))
    if lookup is None:
        return {"found": False}
    return {
        "found": True,
        "status": lookup.status.value,
        "request_date": lookup.request_date.isoformat(),
    }


@router.get("/{request_id}")
async def get_request(
    request_id: str,
    system: LendingSystem = Depends(get_lending_system)
):
    """Get loan request details"""
    return request_view(unwrap(await system.request_manager.get_request(request_id)))


@router.patch("/{request_id}/status")
async def update_request_status(
    request_id: str,
    request: UpdateRequestStatus,
    system: LendingSystem = Depends(get_lending_system)
):
    """Move a request between pending and under review"""
    updated = unwrap(await system.request_manager.update_status(
        request_id, _parse_status(request.status)
    ))
    return request_view(updated)


@router.post("/{request_id}/approve")
async def approve_request(
    request_id: str,
    request: ApproveLoanRequest,
    system: LendingSystem = Depends(get_lending_system)
):
    """Approve a request into a new client and loan"""
    created = unwrap(await system.request_manager.approve(
        request_id, request.term_months, request.loan_amount, request.signature
    ))
    return {
        "client_id": created["client_id"],
        "loan_id": created["loan_id"],
        "message": "Loan request approved"
    }


@router.delete("/{request_id}")
async def deny_request(
    request_id: str,
    system: LendingSystem = Depends(get_lending_system)
):
    """Deny a request, deleting it and its ID images"""
    unwrap(await system.request_manager.deny(request_id))
    return {"request_id": request_id, "message": "Loan request denied"}
