"""
Domain Records Module

Typed records for the five backend tables (clients, loans, requests,
accounting_entries, app_meta) and their mapping to and from table rows.
Rows use snake_case column names; Decimals travel as strings and dates as
ISO 8601 strings.
"""

from decimal import Decimal
from datetime import date, datetime, timedelta, timezone
from dataclasses import dataclass, field
from typing import Any, Dict, Optional
from enum import Enum

from .currency import to_decimal
from .amortization import next_due_date


class LoanStatus(Enum):
    """Loan status; OVERDUE is derived from due dates, PAID is terminal"""
    PENDING = "pending"
    OVERDUE = "overdue"
    PAID = "paid"


class RequestStatus(Enum):
    """Stored states of a loan request. Approval and denial consume the row."""
    PENDING = "pending"
    UNDER_REVIEW = "under_review"


class AccountingEntryType(Enum):
    """Manual ledger line types"""
    INCOME = "INCOME"
    EXPENSE = "EXPENSE"
    CAPITAL_INJECTION = "CAPITAL_INJECTION"
    CAPITAL_WITHDRAWAL = "CAPITAL_WITHDRAWAL"


class Table:
    """Backend table names"""
    CLIENTS = "clients"
    LOANS = "loans"
    REQUESTS = "requests"
    ACCOUNTING_ENTRIES = "accounting_entries"
    APP_META = "app_meta"


INITIAL_CAPITAL_KEY = "initial_capital"
CONTRACT_TEMPLATE_KEY = "contract_template"


def parse_date(value: Any) -> Optional[date]:
    """Accept date, datetime or ISO string (date or timestamp)"""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return datetime.fromisoformat(str(value).replace("Z", "+00:00")).date() \
        if "T" in str(value) else date.fromisoformat(str(value))


def parse_datetime(value: Any) -> Optional[datetime]:
    """Accept datetime, date or ISO string; naive values are taken as UTC"""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        result = value
    elif isinstance(value, date):
        result = datetime(value.year, value.month, value.day)
    else:
        result = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    if result.tzinfo is None:
        result = result.replace(tzinfo=timezone.utc)
    return result


def _optional_decimal(value: Any) -> Optional[Decimal]:
    if value is None or value == "":
        return None
    return to_decimal(value)


def _decimal_str(value: Optional[Decimal]) -> Optional[str]:
    return str(value) if value is not None else None


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class Client:
    """Borrower"""
    id: str
    name: str
    join_date: datetime
    id_number: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    email: Optional[str] = None

    def to_row(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "join_date": self.join_date.isoformat(),
            "id_number": self.id_number,
            "phone": self.phone,
            "address": self.address,
            "email": self.email,
        }

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> 'Client':
        return cls(
            id=str(row["id"]),
            name=row["name"],
            join_date=parse_datetime(row.get("join_date")) or utcnow(),
            id_number=row.get("id_number"),
            phone=row.get("phone"),
            address=row.get("address"),
            email=row.get("email"),
        )


@dataclass
class Loan:
    """Loan owned by one client"""
    id: str
    client_id: str
    amount: Decimal
    term: int                              # months, 0 = indefinite
    start_date: date
    monthly_payment: Decimal
    total_repayment: Optional[Decimal]     # None for indefinite loans
    interest_rate: Decimal = Decimal('96')  # APR percent
    status: LoanStatus = LoanStatus.PENDING
    payments_made: int = 0
    client_name: str = ""
    signature: Optional[str] = None
    contract_pdf_url: Optional[str] = None
    archived: bool = False

    def __post_init__(self):
        if self.amount <= Decimal('0'):
            raise ValueError(f"Loan amount must be positive, got {self.amount}")
        if self.term < 0:
            raise ValueError(f"Loan term cannot be negative, got {self.term}")
        if self.payments_made < 0:
            raise ValueError(f"Payments made cannot be negative, got {self.payments_made}")
        if self.term > 0 and self.payments_made > self.term:
            raise ValueError(
                f"Payments made ({self.payments_made}) exceed the term ({self.term})"
            )

    @property
    def is_indefinite(self) -> bool:
        return self.term == 0

    @property
    def is_complete(self) -> bool:
        """All installments registered (never true for indefinite loans)"""
        return self.term > 0 and self.payments_made >= self.term

    @property
    def remaining_payments(self) -> Optional[int]:
        if self.is_indefinite:
            return None
        return self.term - self.payments_made

    @property
    def next_due_date(self) -> date:
        return next_due_date(self.start_date, self.payments_made)

    def status_as_of(self, as_of: date, grace_days: int = 0) -> LoanStatus:
        """
        Derive the status on a given day.

        Pending and Overdue are never stored transitions: a loan is overdue
        when ``as_of`` is past the due date of its first unpaid installment
        (plus the grace period). Paid is terminal.
        """
        if self.status == LoanStatus.PAID or self.is_complete:
            return LoanStatus.PAID
        if as_of > self.next_due_date + timedelta(days=grace_days):
            return LoanStatus.OVERDUE
        return LoanStatus.PENDING

    def to_row(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "client_id": self.client_id,
            "client_name": self.client_name,
            "amount": str(self.amount),
            "interest_rate": str(self.interest_rate),
            "term": self.term,
            "start_date": self.start_date.isoformat(),
            "status": self.status.value,
            "monthly_payment": str(self.monthly_payment),
            "total_repayment": _decimal_str(self.total_repayment),
            "payments_made": self.payments_made,
            "signature": self.signature,
            "contract_pdf_url": self.contract_pdf_url,
            "archived": self.archived,
        }

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> 'Loan':
        return cls(
            id=str(row["id"]),
            client_id=str(row["client_id"]),
            client_name=row.get("client_name") or "",
            amount=to_decimal(row["amount"]),
            interest_rate=to_decimal(row.get("interest_rate", "96")),
            term=int(row.get("term") or 0),
            start_date=parse_date(row["start_date"]),
            status=LoanStatus(row.get("status", LoanStatus.PENDING.value)),
            monthly_payment=to_decimal(row.get("monthly_payment") or "0"),
            total_repayment=_optional_decimal(row.get("total_repayment")),
            payments_made=int(row.get("payments_made") or 0),
            signature=row.get("signature"),
            contract_pdf_url=row.get("contract_pdf_url"),
            archived=bool(row.get("archived", False)),
        )


@dataclass
class LoanRequest:
    """Applicant submitted loan request"""
    id: str
    full_name: str
    id_number: str
    loan_amount: Decimal
    request_date: datetime
    status: RequestStatus = RequestStatus.PENDING
    address: str = ""
    phone: str = ""
    email: str = ""
    loan_reason: str = ""
    employment_status: str = ""
    contract_type: Optional[str] = None
    front_id_url: str = ""
    back_id_url: str = ""
    signature: Optional[str] = None

    def to_row(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "full_name": self.full_name,
            "id_number": self.id_number,
            "address": self.address,
            "phone": self.phone,
            "email": self.email,
            "loan_amount": str(self.loan_amount),
            "loan_reason": self.loan_reason,
            "employment_status": self.employment_status,
            "contract_type": self.contract_type,
            "front_id_url": self.front_id_url,
            "back_id_url": self.back_id_url,
            "request_date": self.request_date.isoformat(),
            "status": self.status.value,
            "signature": self.signature,
        }

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> 'LoanRequest':
        return cls(
            id=str(row["id"]),
            full_name=row["full_name"],
            id_number=row["id_number"],
            loan_amount=to_decimal(row["loan_amount"]),
            request_date=parse_datetime(row.get("request_date")) or utcnow(),
            status=RequestStatus(row.get("status", RequestStatus.PENDING.value)),
            address=row.get("address") or "",
            phone=row.get("phone") or "",
            email=row.get("email") or "",
            loan_reason=row.get("loan_reason") or "",
            employment_status=row.get("employment_status") or "",
            contract_type=row.get("contract_type"),
            front_id_url=row.get("front_id_url") or "",
            back_id_url=row.get("back_id_url") or "",
            signature=row.get("signature"),
        )


@dataclass
class AccountingEntry:
    """Manual ledger line"""
    id: str
    entry_date: date
    type: AccountingEntryType
    amount: Decimal
    description: str = ""
    created_at: datetime = field(default_factory=utcnow)

    def __post_init__(self):
        if self.amount <= Decimal('0'):
            raise ValueError(f"Accounting entry amount must be positive, got {self.amount}")

    def to_row(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "entry_date": self.entry_date.isoformat(),
            "type": self.type.value,
            "description": self.description,
            "amount": str(self.amount),
            "created_at": self.created_at.isoformat(),
        }

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> 'AccountingEntry':
        return cls(
            id=str(row["id"]),
            entry_date=parse_date(row["entry_date"]),
            type=AccountingEntryType(row["type"]),
            amount=to_decimal(row["amount"]),
            description=row.get("description") or "",
            created_at=parse_datetime(row.get("created_at")) or utcnow(),
        )


@dataclass
class AppMeta:
    """Key/value configuration row"""
    key: str
    value: str

    @property
    def id(self) -> str:
        return self.key

    def to_row(self) -> Dict[str, Any]:
        return {"key": self.key, "value": self.value}

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> 'AppMeta':
        return cls(key=row["key"], value="" if row.get("value") is None else str(row["value"]))


@dataclass
class ClientFields:
    """Operator supplied data for a new client"""
    name: str
    id_number: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    email: Optional[str] = None

    def to_params(self) -> Dict[str, Any]:
        return {
            "client_name": self.name,
            "client_id_number": self.id_number,
            "client_phone": self.phone,
            "client_address": self.address,
            "client_email": self.email,
        }


@dataclass
class LoanRequestForm:
    """Applicant supplied data for a new loan request"""
    full_name: str
    id_number: str
    loan_amount: Decimal
    address: str = ""
    phone: str = ""
    email: str = ""
    loan_reason: str = ""
    employment_status: str = ""
    contract_type: Optional[str] = None
    signature: Optional[str] = None


@dataclass(frozen=True)
class RequestStatusLookup:
    """Public view of an applicant's latest request"""
    status: RequestStatus
    request_date: datetime
