"""
Personal Finance Calculators

50/30/20 budget split and months needed to reach a savings goal.
"""

from decimal import Decimal, ROUND_CEILING
from dataclasses import dataclass
from typing import Any, Union

from .currency import to_decimal
from .outcomes import Ok, InvalidInput

NEEDS_SHARE = Decimal('0.5')
WANTS_SHARE = Decimal('0.3')
SAVINGS_SHARE = Decimal('0.2')


@dataclass(frozen=True)
class BudgetSplit:
    """Monthly income split into needs, wants and savings"""
    income: Decimal
    needs: Decimal
    wants: Decimal
    savings: Decimal


@dataclass(frozen=True)
class SavingsPlan:
    """Time needed to reach a savings goal"""
    goal: Decimal
    monthly_contribution: Decimal
    months: int
    years: int
    remaining_months: int


def budget_split(income: Any) -> Union[Ok, InvalidInput]:
    """Ok(BudgetSplit) for a positive monthly income"""
    try:
        value = to_decimal(income)
    except ValueError as e:
        return InvalidInput(str(e), "income")
    if value <= 0:
        return InvalidInput("income must be positive", "income")
    return Ok(BudgetSplit(
        income=value,
        needs=value * NEEDS_SHARE,
        wants=value * WANTS_SHARE,
        savings=value * SAVINGS_SHARE
    ))


def savings_goal(goal: Any, monthly_contribution: Any) -> Union[Ok, InvalidInput]:
    """
    Months to save ``goal`` putting aside ``monthly_contribution`` a month,
    rounded up, also expressed as whole years plus months.
    """
    try:
        target = to_decimal(goal)
    except ValueError as e:
        return InvalidInput(str(e), "goal")
    try:
        contribution = to_decimal(monthly_contribution)
    except ValueError as e:
        return InvalidInput(str(e), "monthly_contribution")
    if target <= 0:
        return InvalidInput("goal must be positive", "goal")
    if contribution <= 0:
        return InvalidInput("monthly contribution must be positive", "monthly_contribution")

    months = int((target / contribution).to_integral_value(rounding=ROUND_CEILING))
    return Ok(SavingsPlan(
        goal=target,
        monthly_contribution=contribution,
        months=months,
        years=months // 12,
        remaining_months=months % 12
    ))
