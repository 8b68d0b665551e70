"""
Financial Ledger Module

Aggregates the book of the lending operation from loans, manual accounting
entries and the initial capital setting:

    working_capital = initial_capital + injections - withdrawals + net_profit
    net_profit = (realized_interest_profit + income) - expense
    realized_interest_profit = sum(total_repayment - amount) over Paid loans
    active_principal = sum(amount) over loans that are not Paid

Every sum is Decimal. Nothing here raises on bad stored data; a missing or
unparsable initial capital counts as zero.
"""

from decimal import Decimal
from datetime import date
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional

from .currency import to_decimal, decimal_from_string
from .models import Loan, LoanStatus, AccountingEntry, AccountingEntryType

ZERO = Decimal('0')


@dataclass(frozen=True)
class FinancialSnapshot:
    """Point-in-time view of the book"""
    initial_capital: Decimal
    total_income: Decimal
    total_expense: Decimal
    total_injections: Decimal
    total_withdrawals: Decimal
    realized_interest_profit: Decimal
    total_net_profit: Decimal
    working_capital: Decimal
    active_principal: Decimal
    total_lent: Decimal
    status_counts: Dict[LoanStatus, int] = field(default_factory=dict)

    @property
    def active_loans(self) -> int:
        return (self.status_counts.get(LoanStatus.PENDING, 0) +
                self.status_counts.get(LoanStatus.OVERDUE, 0))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "initial_capital": str(self.initial_capital),
            "total_income": str(self.total_income),
            "total_expense": str(self.total_expense),
            "total_injections": str(self.total_injections),
            "total_withdrawals": str(self.total_withdrawals),
            "realized_interest_profit": str(self.realized_interest_profit),
            "total_net_profit": str(self.total_net_profit),
            "working_capital": str(self.working_capital),
            "active_principal": str(self.active_principal),
            "total_lent": str(self.total_lent),
            "status_counts": {status.value: count for status, count in self.status_counts.items()},
        }


@dataclass(frozen=True)
class ClientReputation:
    """Repayment history of one client, built from archived loans"""
    client_id: str
    client_name: str
    paid_loans: int
    total_principal: Decimal


def parse_initial_capital(raw: Any) -> Decimal:
    """Stored initial capital as Decimal; absent or garbage reads as 0"""
    if raw is None:
        return ZERO
    try:
        if isinstance(raw, str):
            if not raw.strip():
                return ZERO
            return decimal_from_string(raw)
        return to_decimal(raw)
    except ValueError:
        return ZERO


def sum_entries(entries: Iterable[AccountingEntry], entry_type: AccountingEntryType) -> Decimal:
    """Total of the entries of exactly one type"""
    return sum((e.amount for e in entries if e.type == entry_type), ZERO)


def realized_interest_profit(loans: Iterable[Loan]) -> Decimal:
    """
    Interest earned on loans whose stored status is Paid, archived or not.
    A Paid loan without a total (indefinite, closed by hand) adds nothing.
    """
    total = ZERO
    for loan in loans:
        if loan.status == LoanStatus.PAID and loan.total_repayment is not None:
            total += loan.total_repayment - loan.amount
    return total


def active_principal(loans: Iterable[Loan]) -> Decimal:
    return sum((loan.amount for loan in loans if loan.status != LoanStatus.PAID), ZERO)


def count_by_status(loans: Iterable[Loan], as_of: date,
                    grace_days: int = 0) -> Dict[LoanStatus, int]:
    """Loan count per derived status on ``as_of``"""
    counts = {status: 0 for status in LoanStatus}
    for loan in loans:
        counts[loan.status_as_of(as_of, grace_days)] += 1
    return counts


def compute_snapshot(loans: Iterable[Loan], entries: Iterable[AccountingEntry],
                     initial_capital_raw: Any = None, as_of: Optional[date] = None,
                     grace_days: int = 0) -> FinancialSnapshot:
    """
    Aggregate loans and accounting entries into a FinancialSnapshot.

    Args:
        loans: All loans, archived included
        entries: All accounting entries
        initial_capital_raw: Stored ``initial_capital`` value, any type
        as_of: Day used for the status counts; defaults to today
        grace_days: Days past the due date before a loan counts as overdue

    Returns:
        FinancialSnapshot
    """
    loans = list(loans)
    entries = list(entries)

    initial_capital = parse_initial_capital(initial_capital_raw)
    income = sum_entries(entries, AccountingEntryType.INCOME)
    expense = sum_entries(entries, AccountingEntryType.EXPENSE)
    injections = sum_entries(entries, AccountingEntryType.CAPITAL_INJECTION)
    withdrawals = sum_entries(entries, AccountingEntryType.CAPITAL_WITHDRAWAL)
    interest_profit = realized_interest_profit(loans)

    net_profit = (interest_profit + income) - expense
    working_capital = initial_capital + injections - withdrawals + net_profit

    return FinancialSnapshot(
        initial_capital=initial_capital,
        total_income=income,
        total_expense=expense,
        total_injections=injections,
        total_withdrawals=withdrawals,
        realized_interest_profit=interest_profit,
        total_net_profit=net_profit,
        working_capital=working_capital,
        active_principal=active_principal(loans),
        total_lent=sum((loan.amount for loan in loans), ZERO),
        status_counts=count_by_status(loans, as_of or date.today(), grace_days)
    )


def client_reputation(loans: Iterable[Loan]) -> List[ClientReputation]:
    """
    Per-client count and principal of archived Paid loans, largest total
    principal first.
    """
    grouped: Dict[str, Dict[str, Any]] = {}
    for loan in loans:
        if not loan.archived or loan.status != LoanStatus.PAID:
            continue
        row = grouped.setdefault(loan.client_id, {
            "client_name": loan.client_name, "paid_loans": 0, "total_principal": ZERO
        })
        row["paid_loans"] += 1
        row["total_principal"] += loan.amount

    report = [
        ClientReputation(client_id=client_id, **row)
        for client_id, row in grouped.items()
    ]
    report.sort(key=lambda r: (-r.total_principal, -r.paid_loans, r.client_name))
    return report
