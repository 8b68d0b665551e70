"""
Operator authentication endpoints
"""

from fastapi import APIRouter, HTTPException, Depends, status

from .dependencies import LendingSystem, get_lending_system
from .schemas import CredentialsRequest, PasswordResetRequest, session_view
from ..auth import AuthError


router = APIRouter()


@router.post("/sign-up", status_code=status.HTTP_201_CREATED)
async def sign_up(
    request: CredentialsRequest,
    system: LendingSystem = Depends(get_lending_system)
):
    """Register a back-office operator"""
    try:
        user = await system.auth.sign_up(request.email, request.password)
    except AuthError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {"user_id": user.id, "email": user.email, "message": "Operator registered"}


@router.post("/sign-in")
async def sign_in(
    request: CredentialsRequest,
    system: LendingSystem = Depends(get_lending_system)
):
    """Open an operator session"""
    try:
        session = await system.auth.sign_in(request.email, request.password)
    except AuthError as e:
        raise HTTPException(status_code=401, detail=str(e))
    return session_view(session)


@router.post("/sign-out")
async def sign_out(system: LendingSystem = Depends(get_lending_system)):
    """Close the operator session"""
    try:
        await system.auth.sign_out()
    except AuthError as e:
        raise HTTPException(status_code=502, detail=str(e))
    return {"message": "Signed out"}


@router.post("/reset-password")
async def reset_password(
    request: PasswordResetRequest,
    system: LendingSystem = Depends(get_lending_system)
):
    """Send a password recovery e-mail"""
    try:
        await system.auth.reset_password(request.email)
    except AuthError as e:
        raise HTTPException(status_code=502, detail=str(e))
    return {"message": "If the address is registered, a recovery e-mail is on its way"}


@router.get("/me")
async def current_operator(system: LendingSystem = Depends(get_lending_system)):
    """Operator of the current session"""
    user = system.auth.current_user
    if user is None:
        raise HTTPException(status_code=401, detail="Not signed in")
    return {"user_id": user.id, "email": user.email}
