"""
Loan and personal finance calculator endpoints
"""

from fastapi import APIRouter, Depends

from .dependencies import LendingSystem, get_lending_system, unwrap
from .schemas import (
    LoanParametersRequest, DesiredPaymentRequest, AllocationRequest, BudgetRequest,
    SavingsGoalRequest, parameters_view, plan_view, allocation_view, budget_view, savings_view
)
from ..amortization import (
    calculate_loan_parameters, solve_term_for_desired_payment, allocate_payment
)
from ..currency import to_decimal
from ..outcomes import Unaffordable
from ..planning import budget_split, savings_goal


router = APIRouter()


@router.post("/loan")
async def loan_parameters(
    request: LoanParametersRequest,
    system: LendingSystem = Depends(get_lending_system)
):
    """Monthly payment and total repayment for a principal and term"""
    rate = request.annual_rate_percent
    if rate is None:
        rate = to_decimal(system.config.default_annual_interest_rate)
    params = unwrap(calculate_loan_parameters(request.principal, request.term_months, rate))
    return parameters_view(params)


@router.post("/desired-payment")
async def desired_payment(request: DesiredPaymentRequest):
    """Months needed to repay a principal with an affordable monthly payment"""
    result = solve_term_for_desired_payment(
        request.principal, request.monthly_rate_percent, request.target_payment, request.start_date
    )
    if isinstance(result, Unaffordable):
        return {
            "affordable": False,
            "minimum_payment": str(result.minimum_payment),
            "message": str(result)
        }
    return plan_view(unwrap(result))


@router.post("/allocation")
async def payment_allocation(
    request: AllocationRequest,
    system: LendingSystem = Depends(get_lending_system)
):
    """Split a payment into interest and principal"""
    rate = request.annual_rate_percent
    if rate is None:
        rate = to_decimal(system.config.default_annual_interest_rate)
    return allocation_view(allocate_payment(request.amount, request.outstanding_balance, rate))


@router.post("/budget")
async def budget(request: BudgetRequest):
    """50/30/20 split of a monthly income"""
    return budget_view(unwrap(budget_split(request.income)))


@router.post("/savings-goal")
async def savings(request: SavingsGoalRequest):
    """Months needed to reach a savings goal"""
    return savings_view(unwrap(savings_goal(request.goal, request.monthly_contribution)))
