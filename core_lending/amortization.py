"""
Amortization Module

Pure loan math: fixed-installment (French) payment calculation, the inverse
problem of finding how many months a desired payment needs, amortization
schedules and interest-first payment allocation. All values are Decimal and
nothing here performs I/O.
"""

from decimal import Decimal, ROUND_CEILING
from datetime import date
from dataclasses import dataclass, field
from typing import Any, List, Optional, Union
import calendar
import math

from .currency import to_decimal
from .outcomes import Ok, InvalidInput, Unaffordable


# All interest rates are annual percentage rates (APR); 96% APR is 8% a month
DEFAULT_ANNUAL_INTEREST_RATE = Decimal('96')
MONTHS_PER_YEAR = Decimal('12')
HUNDRED = Decimal('100')
ZERO = Decimal('0')
ONE = Decimal('1')

# Fractional months are rounded to this many places before taking the ceiling
# so that Decimal noise on an exact term (10.000...01) does not add a month
TERM_ROUNDING = Decimal('0.000000001')


@dataclass(frozen=True)
class LoanParameters:
    """Payment figures for a loan of known term"""
    principal: Decimal
    term_months: int
    monthly_payment: Decimal
    total_repayment: Optional[Decimal]   # None for indefinite (interest-only) loans
    monthly_rate: Decimal                # e.g. 0.08
    monthly_rate_percentage: Decimal     # e.g. 8

    @property
    def is_indefinite(self) -> bool:
        return self.term_months == 0

    @property
    def total_interest(self) -> Optional[Decimal]:
        if self.total_repayment is None:
            return None
        return self.total_repayment - self.principal


@dataclass(frozen=True)
class ScheduleRow:
    """Single period in an amortization schedule"""
    period: int
    due_date: date
    payment: Decimal
    interest: Decimal
    principal: Decimal
    balance: Decimal


@dataclass(frozen=True)
class PaymentPlan:
    """Solution of the desired-payment problem"""
    principal: Decimal
    monthly_rate: Decimal
    monthly_payment: Decimal
    total_payment: Decimal
    total_interest: Decimal
    calculated_term: int
    schedule: List[ScheduleRow] = field(default_factory=list)


@dataclass(frozen=True)
class PaymentAllocation:
    """Interest-first split of a received payment"""
    previous_balance: Decimal
    interest_due: Decimal
    interest_part: Decimal
    capital_part: Decimal
    new_balance: Decimal


def monthly_rate_from_annual(annual_rate_percent: Decimal) -> Decimal:
    """96 (% APR) -> Decimal('0.08')"""
    return annual_rate_percent / HUNDRED / MONTHS_PER_YEAR


def add_months(start_date: date, months: int) -> date:
    """Add months to a date, clamping the day to the last day of the target month"""
    month = start_date.month - 1 + months
    year = start_date.year + month // 12
    month = month % 12 + 1
    day = min(start_date.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


def next_due_date(start_date: date, payments_made: int) -> date:
    """Due date of the first unpaid installment"""
    return add_months(start_date, payments_made + 1)


def amortized_payment(principal: Decimal, monthly_rate: Decimal, term_months: int) -> Decimal:
    """
    Fixed installment for a fully amortizing loan.

    Standard formula: P * r / (1 - (1 + r)^-n). Callers must rule out
    term_months == 0 beforehand; a zero rate degrades to P / n.
    """
    if monthly_rate == ZERO:
        return principal / Decimal(term_months)
    return principal * monthly_rate / (ONE - (ONE + monthly_rate) ** -term_months)


def _parse_amount(value: Any, field_name: str) -> Union[Decimal, InvalidInput]:
    try:
        return to_decimal(value)
    except ValueError as e:
        return InvalidInput(str(e), field_name)


def _parse_term(value: Any) -> Union[int, InvalidInput]:
    if isinstance(value, bool) or not isinstance(value, (int, Decimal, float)):
        return InvalidInput(f"term must be a whole number of months, got {value!r}", "term_months")
    if isinstance(value, float) and not math.isfinite(value):
        return InvalidInput(f"term must be finite, got {value!r}", "term_months")
    if isinstance(value, Decimal) and not value.is_finite():
        return InvalidInput(f"term must be finite, got {value!r}", "term_months")
    if value != int(value):
        return InvalidInput(f"term must be a whole number of months, got {value!r}", "term_months")
    return int(value)


def calculate_loan_parameters(
    principal: Any,
    term_months: Any,
    annual_rate_percent: Any = DEFAULT_ANNUAL_INTEREST_RATE
) -> Union[Ok, InvalidInput]:
    """
    Calculate monthly payment and total repayment for a loan.

    Args:
        principal: Capital lent, must be > 0
        term_months: Term in months; 0 means indefinite (interest-only)
        annual_rate_percent: APR in percent (96 means 8% a month)

    Returns:
        Ok(LoanParameters) or InvalidInput
    """
    amount = _parse_amount(principal, "principal")
    if isinstance(amount, InvalidInput):
        return amount
    rate_percent = _parse_amount(annual_rate_percent, "annual_rate_percent")
    if isinstance(rate_percent, InvalidInput):
        return rate_percent
    term = _parse_term(term_months)
    if isinstance(term, InvalidInput):
        return term

    if amount <= ZERO:
        return InvalidInput("principal must be positive", "principal")
    if term < 0:
        return InvalidInput("term cannot be negative", "term_months")
    if rate_percent < ZERO:
        return InvalidInput("interest rate cannot be negative", "annual_rate_percent")

    monthly_rate = monthly_rate_from_annual(rate_percent)

    if term == 0:
        # Indefinite loan: interest only, no total can be stated
        monthly_payment = amount * monthly_rate
        total_repayment = None
    elif monthly_rate == ZERO:
        monthly_payment = amount / Decimal(term)
        total_repayment = amount
    else:
        monthly_payment = amortized_payment(amount, monthly_rate, term)
        total_repayment = monthly_payment * Decimal(term)

    return Ok(LoanParameters(
        principal=amount,
        term_months=term,
        monthly_payment=monthly_payment,
        total_repayment=total_repayment,
        monthly_rate=monthly_rate,
        monthly_rate_percentage=monthly_rate * HUNDRED
    ))


def build_schedule(
    principal: Decimal,
    monthly_rate: Decimal,
    monthly_payment: Decimal,
    months: int,
    start_date: date
) -> List[ScheduleRow]:
    """
    Amortize ``principal`` with a fixed payment over ``months`` periods.

    Due dates are computed from ``start_date`` for every period so that a
    clamped month end (Jan 31 -> Feb 28) does not shift later due dates.
    """
    schedule = []
    balance = principal

    for period in range(1, months + 1):
        interest = balance * monthly_rate
        principal_part = monthly_payment - interest
        balance = balance - principal_part
        if balance < ZERO:
            balance = ZERO

        schedule.append(ScheduleRow(
            period=period,
            due_date=add_months(start_date, period),
            payment=monthly_payment,
            interest=interest,
            principal=principal_part,
            balance=balance
        ))

    return schedule


def solve_term_for_desired_payment(
    principal: Any,
    monthly_rate_percent: Any,
    target_payment: Any,
    start_date: Optional[date] = None
) -> Union[Ok, Unaffordable, InvalidInput]:
    """
    Find how many whole months a borrower needs to repay ``principal`` when
    they can afford ``target_payment`` a month.

    The returned plan uses the exact payment for the integer term, which is
    never above the target, so the schedule closes at a zero balance.

    Args:
        principal: Capital lent, must be > 0
        monthly_rate_percent: Monthly interest in percent (8 means 8%)
        target_payment: Affordable monthly payment, must be > 0
        start_date: Loan start; first installment is due one month later.
            Defaults to today.

    Returns:
        Ok(PaymentPlan), Unaffordable or InvalidInput
    """
    amount = _parse_amount(principal, "principal")
    if isinstance(amount, InvalidInput):
        return amount
    rate_percent = _parse_amount(monthly_rate_percent, "monthly_rate_percent")
    if isinstance(rate_percent, InvalidInput):
        return rate_percent
    target = _parse_amount(target_payment, "target_payment")
    if isinstance(target, InvalidInput):
        return target

    if amount <= ZERO:
        return InvalidInput("principal must be positive", "principal")
    if target <= ZERO:
        return InvalidInput("target payment must be positive", "target_payment")
    if rate_percent < ZERO:
        return InvalidInput("interest rate cannot be negative", "monthly_rate_percent")

    monthly_rate = rate_percent / HUNDRED

    if monthly_rate > ZERO:
        if target <= amount * monthly_rate:
            return Unaffordable(principal=amount, monthly_rate=monthly_rate, target_payment=target)

        # A target covering the whole debt still takes one installment
        fractional = -(ONE - amount * monthly_rate / target).ln() / (ONE + monthly_rate).ln()
        months = max(1, int(fractional.quantize(TERM_ROUNDING).to_integral_value(rounding=ROUND_CEILING)))
        monthly_payment = amortized_payment(amount, monthly_rate, months)
    else:
        months = max(1, int((amount / target).quantize(TERM_ROUNDING).to_integral_value(rounding=ROUND_CEILING)))
        monthly_payment = amount / Decimal(months)

    total_payment = monthly_payment * Decimal(months)
    schedule = build_schedule(
        amount, monthly_rate, monthly_payment, months, start_date or date.today()
    )

    return Ok(PaymentPlan(
        principal=amount,
        monthly_rate=monthly_rate,
        monthly_payment=monthly_payment,
        total_payment=total_payment,
        total_interest=total_payment - amount,
        calculated_term=months,
        schedule=schedule
    ))


def calculate_monthly_interest(capital: Any,
                               annual_rate_percent: Any = DEFAULT_ANNUAL_INTEREST_RATE) -> Decimal:
    """
    Flat monthly interest on outstanding capital, no day proration.
    96% APR -> 8% of the capital each month.
    """
    return to_decimal(capital) * monthly_rate_from_annual(to_decimal(annual_rate_percent))


def allocate_payment(
    amount: Any,
    outstanding_balance: Any,
    annual_rate_percent: Any = DEFAULT_ANNUAL_INTEREST_RATE
) -> PaymentAllocation:
    """
    Split a received payment: interest due first, the rest reduces capital.

    A payment below the interest due leaves the capital untouched; an
    overpayment never drives the balance below zero.
    """
    balance = to_decimal(outstanding_balance)
    paid = to_decimal(amount)
    interest_due = calculate_monthly_interest(balance, annual_rate_percent)

    if paid <= ZERO:
        return PaymentAllocation(
            previous_balance=balance,
            interest_due=interest_due,
            interest_part=ZERO,
            capital_part=ZERO,
            new_balance=balance
        )

    interest_part = min(paid, interest_due)
    capital_part = max(ZERO, paid - interest_due)
    return PaymentAllocation(
        previous_balance=balance,
        interest_due=interest_due,
        interest_part=interest_part,
        capital_part=capital_part,
        new_balance=max(ZERO, balance - capital_part)
    )
