"""
Tests for domain records: validation, row mapping and loan status derivation
"""

import pytest
from decimal import Decimal
from datetime import date, datetime, timezone

from core_lending.models import (
    Client, Loan, LoanRequest, AccountingEntry, AppMeta, ClientFields,
    LoanStatus, RequestStatus, AccountingEntryType, parse_date, parse_datetime
)


def make_loan(**overrides) -> Loan:
    values = dict(
        id="loan-1",
        client_id="client-1",
        client_name="Ana Ruiz",
        amount=Decimal("1000"),
        term=12,
        start_date=date(2024, 1, 15),
        monthly_payment=Decimal("132.70"),
        total_repayment=Decimal("1592.34"),
    )
    values.update(overrides)
    return Loan(**values)


class TestLoanStatus:
    """Test status derivation from payments and due dates"""

    def test_complete_loan_is_paid(self):
        """All installments in means Paid even if the stored status lags"""
        loan = make_loan(payments_made=12, status=LoanStatus.PENDING)
        assert loan.is_complete
        assert loan.status_as_of(date(2030, 1, 1)) == LoanStatus.PAID

    def test_eleven_of_twelve_before_due_date(self):
        """One installment left and not yet due is Pending"""
        loan = make_loan(payments_made=11)
        assert loan.next_due_date == date(2024, 12, 15)
        assert loan.status_as_of(date(2024, 12, 15)) == LoanStatus.PENDING

    def test_eleven_of_twelve_past_due_date(self):
        """One installment left and past due is Overdue, never Paid"""
        loan = make_loan(payments_made=11)
        assert loan.status_as_of(date(2024, 12, 16)) == LoanStatus.OVERDUE

    def test_grace_days(self):
        loan = make_loan()
        assert loan.status_as_of(date(2024, 2, 18), grace_days=3) == LoanStatus.PENDING
        assert loan.status_as_of(date(2024, 2, 19), grace_days=3) == LoanStatus.OVERDUE

    def test_stored_paid_is_terminal(self):
        loan = make_loan(status=LoanStatus.PAID)
        assert loan.status_as_of(date(2030, 1, 1)) == LoanStatus.PAID

    def test_indefinite_loan_never_completes(self):
        """Term 0 loans are never complete and have no remaining count"""
        loan = make_loan(term=0, total_repayment=None, payments_made=40,
                         monthly_payment=Decimal("80"))
        assert loan.is_indefinite
        assert not loan.is_complete
        assert loan.remaining_payments is None
        assert loan.status_as_of(date(2024, 1, 20)) != LoanStatus.PAID

    def test_remaining_payments(self):
        assert make_loan(payments_made=4).remaining_payments == 8


class TestLoanValidation:
    """Test loan invariants"""

    def test_non_positive_amount(self):
        with pytest.raises(ValueError):
            make_loan(amount=Decimal("0"))

    def test_negative_term(self):
        with pytest.raises(ValueError):
            make_loan(term=-1)

    def test_negative_payments(self):
        with pytest.raises(ValueError):
            make_loan(payments_made=-1)

    def test_payments_beyond_term(self):
        with pytest.raises(ValueError):
            make_loan(payments_made=13)

    def test_indefinite_loan_allows_any_payment_count(self):
        loan = make_loan(term=0, total_repayment=None, payments_made=30)
        assert loan.payments_made == 30


class TestRowMapping:
    """Test conversion to and from backend rows"""

    def test_loan_round_trip(self):
        loan = make_loan(payments_made=3, archived=True)
        assert Loan.from_row(loan.to_row()) == loan

    def test_loan_row_uses_strings_for_decimals(self):
        row = make_loan(term=0, total_repayment=None).to_row()
        assert row["amount"] == "1000"
        assert row["total_repayment"] is None
        assert row["status"] == "pending"

    def test_loan_from_sparse_row(self):
        """Missing optional columns take their defaults"""
        loan = Loan.from_row({
            "id": 7, "client_id": 3, "amount": "500", "start_date": "2024-03-01T10:00:00Z"
        })
        assert loan.id == "7"
        assert loan.term == 0
        assert loan.interest_rate == Decimal("96")
        assert loan.status == LoanStatus.PENDING
        assert loan.start_date == date(2024, 3, 1)
        assert loan.total_repayment is None

    def test_client_round_trip(self):
        client = Client("c1", "Ana Ruiz", datetime(2024, 1, 1, tzinfo=timezone.utc),
                        id_number="12345678Z", email="ana@example.com")
        assert Client.from_row(client.to_row()) == client

    def test_request_round_trip(self):
        request = LoanRequest(
            id="r1", full_name="Luis Gil", id_number="X1234567L",
            loan_amount=Decimal("750"), request_date=datetime(2024, 5, 2, 9, 30, tzinfo=timezone.utc),
            status=RequestStatus.UNDER_REVIEW, front_id_url="u1", back_id_url="u2"
        )
        assert LoanRequest.from_row(request.to_row()) == request

    def test_accounting_entry_round_trip(self):
        entry = AccountingEntry("e1", date(2024, 6, 1), AccountingEntryType.EXPENSE,
                                Decimal("45.90"), "Office supplies",
                                datetime(2024, 6, 1, 12, tzinfo=timezone.utc))
        assert AccountingEntry.from_row(entry.to_row()) == entry

    def test_accounting_entry_must_be_positive(self):
        with pytest.raises(ValueError):
            AccountingEntry("e1", date(2024, 6, 1), AccountingEntryType.INCOME, Decimal("0"))

    def test_app_meta(self):
        meta = AppMeta.from_row({"key": "initial_capital", "value": 5000})
        assert meta.value == "5000"
        assert meta.id == "initial_capital"

    def test_client_fields_to_params(self):
        params = ClientFields("Ana", id_number="1", phone="600").to_params()
        assert params["client_name"] == "Ana"
        assert params["client_id_number"] == "1"
        assert params["client_phone"] == "600"
        assert params["client_email"] is None


class TestParsing:
    """Test date parsing helpers"""

    def test_parse_date(self):
        assert parse_date("2024-02-29") == date(2024, 2, 29)
        assert parse_date("2024-02-29T23:00:00Z") == date(2024, 2, 29)
        assert parse_date(datetime(2024, 1, 1, 5)) == date(2024, 1, 1)
        assert parse_date(None) is None
        assert parse_date("") is None

    def test_parse_datetime_naive_is_utc(self):
        value = parse_datetime("2024-01-01T10:00:00")
        assert value.tzinfo == timezone.utc
        assert parse_datetime("2024-01-01T10:00:00Z") == value
