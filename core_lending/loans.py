"""
Loan Lifecycle Module

Direct loan creation, payment registration, manual edits, deletion,
archiving of paid loans and schedule views. Loan rows are written through
the backend; client+loan creation runs as one server-side procedure.
"""

from decimal import Decimal
from datetime import date
from dataclasses import dataclass
from typing import Any, List, Optional, Union

from .amortization import (
    calculate_loan_parameters, build_schedule, monthly_rate_from_annual, ScheduleRow
)
from .currency import to_decimal
from .ledger import client_reputation
from .logging_config import get_logger, log_action
from .models import Loan, LoanStatus, ClientFields, Table
from .outcomes import Ok, InvalidInput, BackendFailure
from .storage import (
    BackendInterface, BackendError, failure_from, RPC_CREATE_CLIENT_AND_LOAN
)

logger = get_logger("lending.loans")


@dataclass
class LoanUpdate:
    """Manual edit of a loan; None leaves a field unchanged"""
    amount: Optional[Decimal] = None
    term: Optional[int] = None
    interest_rate: Optional[Decimal] = None
    start_date: Optional[date] = None
    payments_made: Optional[int] = None
    status: Optional[LoanStatus] = None
    client_name: Optional[str] = None


class LoanManager:
    """
    Manages loans from creation through payoff and archive
    """

    def __init__(self, backend: BackendInterface,
                 annual_interest_rate: Decimal = Decimal('96'),
                 grace_days: int = 0):
        self.backend = backend
        self.annual_interest_rate = annual_interest_rate
        self.grace_days = grace_days

    async def get_loan(self, loan_id: str) -> Union[Ok, BackendFailure]:
        """Load one loan"""
        try:
            row = await self.backend.get(Table.LOANS, loan_id)
        except BackendError as e:
            return failure_from("get_loan", e)
        if row is None:
            return BackendFailure("get_loan", f"Loan {loan_id} not found", status_code=404)
        return Ok(Loan.from_row(row))

    async def list_loans(self, include_archived: bool = False) -> Union[Ok, BackendFailure]:
        """All loans, oldest first"""
        try:
            rows = await self.backend.select(Table.LOANS)
        except BackendError as e:
            return failure_from("list_loans", e)
        loans = [Loan.from_row(row) for row in rows]
        if not include_archived:
            loans = [loan for loan in loans if not loan.archived]
        loans.sort(key=lambda loan: loan.start_date)
        return Ok(loans)

    def derive_status(self, loan: Loan, as_of: Optional[date] = None) -> LoanStatus:
        """Status of ``loan`` on ``as_of`` (default today)"""
        return loan.status_as_of(as_of or date.today(), self.grace_days)

    async def create_client_and_loan(
        self,
        client: ClientFields,
        amount: Any,
        term_months: Any,
        start_date: Optional[date] = None
    ) -> Union[Ok, InvalidInput, BackendFailure]:
        """
        Create a client and its first loan in one atomic backend call.

        Args:
            client: New client's data
            amount: Principal
            term_months: Term in months, 0 for an indefinite loan
            start_date: First day of the loan (default today)

        Returns:
            Ok({"client_id", "loan_id"}), InvalidInput or BackendFailure
        """
        if not client.name or not client.name.strip():
            return InvalidInput("client name is required", "name")
        checked = calculate_loan_parameters(amount, term_months, self.annual_interest_rate)
        if not checked:
            return checked
        params = checked.value

        rpc_params = client.to_params()
        rpc_params.update({
            "loan_amount": str(params.principal),
            "loan_term": params.term_months,
            "start_date": (start_date or date.today()).isoformat(),
        })
        try:
            result = await self.backend.rpc(RPC_CREATE_CLIENT_AND_LOAN, rpc_params)
        except BackendError as e:
            return failure_from("create_client_and_loan", e)

        log_action(logger, "info", "Created client and loan", action="create_client_and_loan",
                   resource=f"loan:{(result or {}).get('loan_id')}",
                   extra={"amount": str(params.principal), "term": params.term_months})
        return Ok(result)

    async def register_payment(self, loan_id: str,
                               as_of: Optional[date] = None) -> Union[Ok, InvalidInput, BackendFailure]:
        """
        Record one installment.

        Each call adds exactly one payment; calls are not deduplicated. A
        fixed-term loan becomes Paid when the last installment is recorded.
        Indefinite loans stay open until closed by a manual edit.

        Returns:
            Ok(Loan) with the updated loan, InvalidInput or BackendFailure
        """
        loaded = await self.get_loan(loan_id)
        if not loaded:
            return loaded
        loan = loaded.value

        if loan.status == LoanStatus.PAID or loan.is_complete:
            return InvalidInput(f"loan {loan_id} is already paid", "loan_id")

        payments_made = loan.payments_made + 1
        status = loan.status
        if loan.term > 0 and payments_made >= loan.term:
            status = LoanStatus.PAID

        try:
            row = await self.backend.update(Table.LOANS, loan_id, {
                "payments_made": payments_made,
                "status": status.value,
            })
        except BackendError as e:
            return failure_from("register_payment", e)

        updated = Loan.from_row(row)
        log_action(logger, "info", "Registered loan payment", action="register_payment",
                   resource=f"loan:{loan_id}",
                   extra={"payments_made": payments_made, "term": loan.term,
                          "status": self.derive_status(updated, as_of).value})
        return Ok(updated)

    async def update_loan(self, loan_id: str,
                          changes: LoanUpdate) -> Union[Ok, InvalidInput, BackendFailure]:
        """
        Apply a manual edit, recomputing the payment figures when the amount,
        term or rate changes.
        """
        loaded = await self.get_loan(loan_id)
        if not loaded:
            return loaded
        loan = loaded.value

        amount = loan.amount if changes.amount is None else changes.amount
        term = loan.term if changes.term is None else changes.term
        rate = loan.interest_rate if changes.interest_rate is None else changes.interest_rate
        payments_made = loan.payments_made if changes.payments_made is None else changes.payments_made
        status = loan.status if changes.status is None else changes.status

        checked = calculate_loan_parameters(amount, term, rate)
        if not checked:
            return checked
        params = checked.value
        term = params.term_months

        if isinstance(payments_made, bool) or not isinstance(payments_made, int) or payments_made < 0:
            return InvalidInput("payments made must be a non-negative whole number", "payments_made")
        if term > 0 and payments_made > term:
            return InvalidInput(f"payments made ({payments_made}) exceed the term ({term})",
                                "payments_made")

        # Fixed-term loans are Paid exactly when every installment is in
        if term > 0:
            if changes.status == LoanStatus.PAID:
                payments_made = term
            elif payments_made >= term:
                if changes.status is not None:
                    return InvalidInput("a fully repaid loan can only be Paid", "status")
                status = LoanStatus.PAID
            elif status == LoanStatus.PAID:
                # Stored Paid with installments now missing reopens the loan
                status = LoanStatus.PENDING

        update = {
            "amount": str(params.principal),
            "term": params.term_months,
            "interest_rate": str(to_decimal(rate)),
            "monthly_payment": str(params.monthly_payment),
            "total_repayment": (str(params.total_repayment)
                                if params.total_repayment is not None else None),
            "payments_made": payments_made,
            "status": status.value,
        }
        if changes.start_date is not None:
            update["start_date"] = changes.start_date.isoformat()
        if changes.client_name is not None:
            update["client_name"] = changes.client_name

        try:
            row = await self.backend.update(Table.LOANS, loan_id, update)
        except BackendError as e:
            return failure_from("update_loan", e)

        log_action(logger, "info", "Updated loan", action="update_loan", resource=f"loan:{loan_id}")
        return Ok(Loan.from_row(row))

    async def delete_loan(self, loan_id: str) -> Union[Ok, BackendFailure]:
        try:
            deleted = await self.backend.delete(Table.LOANS, loan_id)
        except BackendError as e:
            return failure_from("delete_loan", e)
        if not deleted:
            return BackendFailure("delete_loan", f"Loan {loan_id} not found", status_code=404)
        log_action(logger, "info", "Deleted loan", action="delete_loan", resource=f"loan:{loan_id}")
        return Ok(loan_id)

    async def archive_paid_loans(self) -> Union[Ok, BackendFailure]:
        """
        Flag every Paid loan as archived. Archived loans leave the active
        views but still count toward realized profit.

        Returns:
            Ok(number of loans archived) or BackendFailure
        """
        try:
            rows = await self.backend.select(Table.LOANS, {"status": LoanStatus.PAID.value})
            to_archive = [row for row in rows if not row.get("archived")]
            for row in to_archive:
                await self.backend.update(Table.LOANS, str(row["id"]), {"archived": True})
        except BackendError as e:
            return failure_from("archive_paid_loans", e)

        log_action(logger, "info", f"Archived {len(to_archive)} paid loans",
                   action="archive_paid_loans", resource="loans")
        return Ok(len(to_archive))

    async def client_reputation(self) -> Union[Ok, BackendFailure]:
        """Ok(List[ClientReputation]) built from archived loans"""
        listed = await self.list_loans(include_archived=True)
        if not listed:
            return listed
        return Ok(client_reputation(listed.value))

    def loan_schedule(self, loan: Loan) -> Union[Ok, InvalidInput]:
        """Full amortization schedule of a fixed-term loan"""
        if loan.is_indefinite:
            return InvalidInput("indefinite loans have no amortization schedule", "term")
        schedule: List[ScheduleRow] = build_schedule(
            loan.amount,
            monthly_rate_from_annual(loan.interest_rate),
            loan.monthly_payment,
            loan.term,
            loan.start_date
        )
        return Ok(schedule)
