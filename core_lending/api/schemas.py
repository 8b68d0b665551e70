"""
Pydantic schemas for API requests and response views
"""

from decimal import Decimal
from datetime import date
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field

from ..amortization import LoanParameters, PaymentAllocation, PaymentPlan, ScheduleRow
from ..auth import AuthSession
from ..ledger import ClientReputation
from ..models import (
    AccountingEntry, Client, ClientFields, Loan, LoanRequest, LoanRequestForm, LoanStatus
)
from ..planning import BudgetSplit, SavingsPlan
from ..store import ClientLoans


# Loan request schemas
class SubmitLoanRequest(BaseModel):
    full_name: str
    id_number: str
    loan_amount: Decimal
    address: str = ""
    phone: str = ""
    email: str = ""
    loan_reason: str = ""
    employment_status: str = ""
    contract_type: Optional[str] = None
    signature: Optional[str] = Field(None, description="Signature image as a data URL")
    front_id_image: str = Field(..., description="Front of the ID document, base64")
    back_id_image: str = Field(..., description="Back of the ID document, base64")
    image_content_type: str = "image/jpeg"

    def to_form(self) -> LoanRequestForm:
        return LoanRequestForm(
            full_name=self.full_name,
            id_number=self.id_number,
            loan_amount=self.loan_amount,
            address=self.address,
            phone=self.phone,
            email=self.email,
            loan_reason=self.loan_reason,
            employment_status=self.employment_status,
            contract_type=self.contract_type,
            signature=self.signature
        )


class UpdateRequestStatus(BaseModel):
    status: str = Field(..., description="Request status (pending, under_review)")


class ApproveLoanRequest(BaseModel):
    term_months: int = Field(..., description="Loan term in months, 0 for indefinite")
    loan_amount: Optional[Decimal] = None
    signature: Optional[str] = None


# Client and loan schemas
class CreateClientLoanRequest(BaseModel):
    name: str
    id_number: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    email: Optional[str] = None
    amount: Decimal
    term_months: int
    start_date: Optional[date] = None

    def to_client_fields(self) -> ClientFields:
        return ClientFields(
            name=self.name,
            id_number=self.id_number,
            phone=self.phone,
            address=self.address,
            email=self.email
        )


class UpdateLoanRequest(BaseModel):
    amount: Optional[Decimal] = None
    term: Optional[int] = None
    interest_rate: Optional[Decimal] = None
    start_date: Optional[date] = None
    payments_made: Optional[int] = None
    status: Optional[str] = Field(None, description="Loan status (pending, overdue, paid)")
    client_name: Optional[str] = None


# Accounting schemas
class CreateAccountingEntryRequest(BaseModel):
    type: str = Field(..., description="INCOME, EXPENSE, CAPITAL_INJECTION or CAPITAL_WITHDRAWAL")
    amount: Decimal
    description: str = ""
    entry_date: Optional[date] = None


class InitialCapitalRequest(BaseModel):
    amount: Decimal


# Calculator schemas
class LoanParametersRequest(BaseModel):
    principal: Decimal
    term_months: int
    annual_rate_percent: Optional[Decimal] = None


class DesiredPaymentRequest(BaseModel):
    principal: Decimal
    monthly_rate_percent: Decimal = Decimal('8')
    target_payment: Decimal
    start_date: Optional[date] = None


class AllocationRequest(BaseModel):
    amount: Decimal
    outstanding_balance: Decimal
    annual_rate_percent: Optional[Decimal] = None


class BudgetRequest(BaseModel):
    income: Decimal


class SavingsGoalRequest(BaseModel):
    goal: Decimal
    monthly_contribution: Decimal


# Document schemas
class ReceiptRequest(BaseModel):
    loan_id: str
    amount: Decimal
    outstanding_balance: Optional[Decimal] = Field(
        None, description="Balance before the payment; defaults to the loan amount")
    payment_date: Optional[date] = None
    notes: str = ""
    signature: Optional[str] = None


class ContractTemplateRequest(BaseModel):
    template: str


# Auth schemas
class CredentialsRequest(BaseModel):
    email: str
    password: str


class PasswordResetRequest(BaseModel):
    email: str


# Response views

def loan_view(loan: Loan, as_of: date, grace_days: int = 0) -> Dict[str, Any]:
    return {
        "id": loan.id,
        "client_id": loan.client_id,
        "client_name": loan.client_name,
        "amount": str(loan.amount),
        "interest_rate": str(loan.interest_rate),
        "term": loan.term,
        "start_date": loan.start_date.isoformat(),
        "status": loan.status.value,
        "current_status": loan.status_as_of(as_of, grace_days).value,
        "next_due_date": (None if loan.status == LoanStatus.PAID or loan.is_complete
                          else loan.next_due_date.isoformat()),
        "monthly_payment": str(loan.monthly_payment),
        "total_repayment": str(loan.total_repayment) if loan.total_repayment is not None else None,
        "payments_made": loan.payments_made,
        "remaining_payments": loan.remaining_payments,
        "contract_pdf_url": loan.contract_pdf_url,
        "archived": loan.archived,
    }


def client_view(client: Client) -> Dict[str, Any]:
    return {
        "id": client.id,
        "name": client.name,
        "join_date": client.join_date.isoformat(),
        "id_number": client.id_number,
        "phone": client.phone,
        "address": client.address,
        "email": client.email,
    }


def client_loans_view(entry: ClientLoans, as_of: date, grace_days: int = 0) -> Dict[str, Any]:
    view = client_view(entry.client)
    view["loans"] = [loan_view(loan, as_of, grace_days) for loan in entry.loans]
    return view


def request_view(request: LoanRequest) -> Dict[str, Any]:
    return {
        "id": request.id,
        "full_name": request.full_name,
        "id_number": request.id_number,
        "address": request.address,
        "phone": request.phone,
        "email": request.email,
        "loan_amount": str(request.loan_amount),
        "loan_reason": request.loan_reason,
        "employment_status": request.employment_status,
        "contract_type": request.contract_type,
        "front_id_url": request.front_id_url,
        "back_id_url": request.back_id_url,
        "request_date": request.request_date.isoformat(),
        "status": request.status.value,
        "has_signature": bool(request.signature),
    }


def entry_view(entry: AccountingEntry) -> Dict[str, Any]:
    return {
        "id": entry.id,
        "entry_date": entry.entry_date.isoformat(),
        "type": entry.type.value,
        "description": entry.description,
        "amount": str(entry.amount),
    }


def reputation_view(report: List[ClientReputation]) -> List[Dict[str, Any]]:
    return [
        {
            "client_id": r.client_id,
            "client_name": r.client_name,
            "paid_loans": r.paid_loans,
            "total_principal": str(r.total_principal),
        }
        for r in report
    ]


def parameters_view(params: LoanParameters) -> Dict[str, Any]:
    return {
        "principal": str(params.principal),
        "term_months": params.term_months,
        "monthly_payment": str(params.monthly_payment),
        "total_repayment": str(params.total_repayment) if params.total_repayment is not None else None,
        "total_interest": str(params.total_interest) if params.total_interest is not None else None,
        "monthly_rate": str(params.monthly_rate),
        "monthly_rate_percentage": str(params.monthly_rate_percentage),
        "indefinite": params.is_indefinite,
    }


def schedule_view(schedule: List[ScheduleRow]) -> List[Dict[str, Any]]:
    return [
        {
            "period": row.period,
            "due_date": row.due_date.isoformat(),
            "payment": str(row.payment),
            "interest": str(row.interest),
            "principal": str(row.principal),
            "balance": str(row.balance),
        }
        for row in schedule
    ]


def plan_view(plan: PaymentPlan) -> Dict[str, Any]:
    return {
        "affordable": True,
        "principal": str(plan.principal),
        "monthly_payment": str(plan.monthly_payment),
        "total_payment": str(plan.total_payment),
        "total_interest": str(plan.total_interest),
        "calculated_term": plan.calculated_term,
        "schedule": schedule_view(plan.schedule),
    }


def allocation_view(allocation: PaymentAllocation) -> Dict[str, Any]:
    return {
        "previous_balance": str(allocation.previous_balance),
        "interest_due": str(allocation.interest_due),
        "interest_part": str(allocation.interest_part),
        "capital_part": str(allocation.capital_part),
        "new_balance": str(allocation.new_balance),
    }


def budget_view(split: BudgetSplit) -> Dict[str, Any]:
    return {
        "income": str(split.income),
        "needs": str(split.needs),
        "wants": str(split.wants),
        "savings": str(split.savings),
    }


def savings_view(plan: SavingsPlan) -> Dict[str, Any]:
    return {
        "goal": str(plan.goal),
        "monthly_contribution": str(plan.monthly_contribution),
        "months": plan.months,
        "years": plan.years,
        "remaining_months": plan.remaining_months,
    }


def session_view(session: AuthSession) -> Dict[str, Any]:
    return {
        "access_token": session.access_token,
        "expires_at": session.expires_at.isoformat(),
        "user": {"id": session.user.id, "email": session.user.email},
    }
