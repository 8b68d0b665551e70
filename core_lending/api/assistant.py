"""
AI text helper endpoints
"""

from fastapi import APIRouter, Depends

from .dependencies import LendingSystem, get_lending_system
from ..assistant import AssistantReply


router = APIRouter()


def _reply_view(reply: AssistantReply) -> dict:
    return {
        "text": reply.text,
        "generated": reply.generated,
        "latency_ms": round(reply.latency_ms, 1)
    }


@router.get("/tip")
async def financial_tip(system: LendingSystem = Depends(get_lending_system)):
    """Short personal finance tip"""
    return _reply_view(await system.assistant.financial_tip())


@router.get("/fact")
async def random_fact(system: LendingSystem = Depends(get_lending_system)):
    """Random curious fact"""
    return _reply_view(await system.assistant.random_fact())


@router.get("/welcome/{client_name}")
async def welcome_message(
    client_name: str,
    system: LendingSystem = Depends(get_lending_system)
):
    """Welcome message for a new client"""
    return _reply_view(await system.assistant.welcome_message(client_name))
