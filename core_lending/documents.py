"""
Document Generation Module

Loan contracts, payment receipts, client reports, request summaries and
loan simulations. Each document is composed as HTML and rendered to PDF
bytes with WeasyPrint.
"""

from dataclasses import dataclass
from datetime import date, datetime, timezone
from decimal import Decimal
from html import escape
from string import Template
from typing import Callable, List, Optional, Sequence
import logging

from .amortization import PaymentAllocation, PaymentPlan, monthly_rate_from_annual, HUNDRED
from .config import LendingConfig
from .currency import Currency, format_currency, to_decimal
from .models import Client, Loan, LoanRequest

logger = logging.getLogger("lending.documents")


class DocumentRenderError(Exception):
    """HTML could not be rendered to PDF"""


DEFAULT_CONTRACT_TEMPLATE = """PERSONAL LOAN AGREEMENT WITH INTEREST

Signed in ${city}, on ${today}.

THE PARTIES

On one side, as LENDER:
${lenderName}, of legal age, holder of ID ${lenderIdNumber}, domiciled for the purposes of this agreement in ${city}.

On the other side, as BORROWER:
${fullName}, of legal age, holder of ID ${idNumber}, domiciled for notification purposes at ${address}.

Both parties act in their own name and acknowledge each other's legal capacity to enter into this LOAN AGREEMENT, and to that end

STATE

I. That the LENDER hands over to the BORROWER the sum of ${loanAmount} EUROS (EUR), by bank transfer or in cash.

II. That the BORROWER acknowledges receipt of that sum and undertakes to repay it together with the agreed interest, under the following

CLAUSES

ONE. PURPOSE.
The Lender lends the Borrower the sum of ${loanAmount} EUR. This document serves as receipt and acknowledgement of debt for that amount.

TWO. INTEREST.
The capital lent bears a fixed interest of ${interestRate}% PER MONTH, which the Borrower expressly accepts, declaring to know the financial cost of the operation.

THREE. REPAYMENT.
The Borrower repays capital and interest in consecutive monthly installments, by bank transfer to the account designated by the Lender or in cash against receipt. Failure to pay any installment places the Borrower in default automatically.

FOUR. EARLY MATURITY.
The Lender may declare the loan due in advance and claim the whole outstanding capital plus accrued interest if the Borrower misses a single installment.

FIVE. LATE INTEREST.
Unpaid amounts accrue, automatically and without prior notice, late interest equal to the statutory interest rate plus 10 percentage points.

SIX. COSTS.
All costs arising from this agreement, including judicial and extrajudicial collection costs, are borne by the Borrower.

SEVEN. TAXES.
The parties know of the obligation to file this agreement with the competent tax office; the filing is the Borrower's responsibility where so agreed or required.

EIGHT. DATA PROTECTION.
The Borrower's personal data and a copy of the identity document are processed by the Lender only to manage this agreement and collect the debt.

NINE. JURISDICTION.
For any dispute the parties submit to the Courts of ${city}.

In witness whereof, both parties sign this agreement in duplicate.

THE LENDER:                                THE BORROWER:

Signed: ${lenderName}                      Signed: ${fullName}
"""

PLACEHOLDERS = {
    "fullName": "Borrower's full name",
    "idNumber": "Borrower's ID document number",
    "address": "Borrower's address",
    "loanAmount": "Amount lent",
    "today": "Signing date",
    "interestRate": "Monthly interest rate in percent",
}

MONTH_NAMES = ["January", "February", "March", "April", "May", "June", "July",
               "August", "September", "October", "November", "December"]

PDF_CSS = """
@page {
    size: A4;
    margin: 2cm 1.5cm;
    @bottom-right {
        content: "Page " counter(page) " of " counter(pages);
        font-size: 9pt;
        color: #6B7280;
    }
}
body { font-family: 'Helvetica', 'Arial', sans-serif; font-size: 10pt; line-height: 1.4; color: #1F2937; }
h1, h2 { color: #111827; text-align: center; page-break-after: avoid; }
table { width: 100%; border-collapse: collapse; margin-bottom: 1rem; }
th { background-color: #2563EB; color: white; text-align: left; padding: 4px 6px; }
td { padding: 4px 6px; border-bottom: 1px solid #E5E7EB; }
td.amount, th.amount { text-align: right; }
tr.total td { font-weight: bold; border-top: 2px solid #111827; }
.contract { white-space: pre-wrap; font-size: 9pt; }
.signatures { display: flex; justify-content: space-between; margin-top: 2cm; }
.signature img { width: 5cm; }
.stamp { text-align: center; color: #9CA3AF; font-weight: bold; margin-top: 1cm; }
.footer { text-align: center; font-size: 9pt; color: #6B7280; margin-top: 2cm; }
"""


def long_date(value: date) -> str:
    """18 October 2026"""
    return f"{value.day} {MONTH_NAMES[value.month - 1]} {value.year}"


def render_pdf(html: str) -> bytes:
    """
    Render an HTML document to PDF bytes with WeasyPrint.

    Raises:
        DocumentRenderError: WeasyPrint or its system libraries are missing,
            or rendering failed
    """
    # Lazy import - WeasyPrint loads native libraries on import
    try:
        from weasyprint import HTML, CSS
    except (ImportError, OSError) as e:
        raise DocumentRenderError(f"PDF rendering is not available: {e}")

    try:
        return HTML(string=html).write_pdf(stylesheets=[CSS(string=PDF_CSS)])
    except Exception as e:
        logger.error(f"PDF rendering failed: {e}")
        raise DocumentRenderError(f"PDF rendering failed: {e}")


def _page(title: str, body: str) -> str:
    return (
        "<!DOCTYPE html><html><head><meta charset=\"utf-8\">"
        f"<title>{escape(title)}</title></head><body>{body}</body></html>"
    )


def _rows(rows: Sequence[Sequence[str]]) -> str:
    return "".join(
        "<tr>" + "".join(f"<td>{escape(str(cell))}</td>" for cell in row) + "</tr>"
        for row in rows
    )


@dataclass
class ContractData:
    """Borrower data merged into the contract template"""
    full_name: str
    id_number: str
    address: str
    loan_amount: Decimal


@dataclass
class ReceiptData:
    """Payment receipt contents"""
    client_name: str
    loan_id: str
    payment_amount: Decimal
    payment_type: str
    payment_date: date
    previous_balance: Decimal
    new_balance: Decimal
    notes: str = ""
    interest_paid: Optional[Decimal] = None
    capital_paid: Optional[Decimal] = None

    @classmethod
    def from_allocation(cls, client_name: str, loan_id: str, amount: Decimal,
                        allocation: PaymentAllocation, payment_date: date,
                        notes: str = "") -> 'ReceiptData':
        """Receipt for an interest-first split payment"""
        if allocation.capital_part > 0 and allocation.interest_part > 0:
            payment_type = "Interest + principal"
        elif allocation.capital_part > 0:
            payment_type = "Principal payment"
        else:
            payment_type = "Interest payment"
        return cls(
            client_name=client_name,
            loan_id=loan_id,
            payment_amount=to_decimal(amount),
            payment_type=payment_type,
            payment_date=payment_date,
            previous_balance=allocation.previous_balance,
            new_balance=allocation.new_balance,
            notes=notes,
            interest_paid=allocation.interest_part,
            capital_paid=allocation.capital_part
        )


class DocumentGenerator:
    """
    Builds the back-office documents.

    ``renderer`` turns HTML into PDF bytes; it defaults to WeasyPrint.
    """

    def __init__(self, config: LendingConfig,
                 renderer: Callable[[str], bytes] = render_pdf):
        self.config = config
        self.renderer = renderer
        self.currency = Currency[config.currency]
        self.locale = config.locale
        self.monthly_rate_percent = (
            monthly_rate_from_annual(to_decimal(config.default_annual_interest_rate)) * HUNDRED
        )

    def money(self, amount) -> str:
        return format_currency(amount, self.currency, self.locale)

    # Contract

    def contract_text(self, data: ContractData, template: Optional[str] = None,
                      today: Optional[date] = None) -> str:
        """
        Merge borrower data into the contract template. Unknown placeholders
        are left as written.
        """
        amount = format_currency(data.loan_amount, self.currency, self.locale)
        # Template shows the bare number, the unit is written after it
        amount = amount.replace(self.currency.symbol, "").strip()
        values = {
            "fullName": data.full_name,
            "idNumber": data.id_number,
            "address": data.address,
            "loanAmount": amount,
            "today": long_date(today or date.today()),
            "interestRate": f"{self.monthly_rate_percent:.2f}",
            "lenderName": self.config.lender_name,
            "lenderIdNumber": self.config.lender_id_number,
            "city": self.config.lender_city,
        }
        return Template(template or DEFAULT_CONTRACT_TEMPLATE).safe_substitute(values)

    def contract_html(self, data: ContractData, signature: Optional[str] = None,
                      template: Optional[str] = None, today: Optional[date] = None) -> str:
        text = self.contract_text(data, template, today)
        if signature:
            borrower = f'<img src="{escape(signature)}" alt="Borrower signature">'
        else:
            borrower = "<p>______________________</p>"
        body = (
            "<h1>Personal Loan Agreement</h1>"
            f'<div class="contract">{escape(text)}</div>'
            '<div class="signatures">'
            f'<div class="signature"><strong>Borrower signature:</strong>{borrower}</div>'
            '<div class="signature"><strong>Lender signature:</strong>'
            f"<p><em>{escape(self.config.lender_name)}</em><br>{escape(self.config.lender_id_number)}</p>"
            "</div></div>"
        )
        return _page("Loan agreement", body)

    def contract_pdf(self, data: ContractData, signature: Optional[str] = None,
                     template: Optional[str] = None, today: Optional[date] = None) -> bytes:
        return self.renderer(self.contract_html(data, signature, template, today))

    # Receipt

    def receipt_html(self, data: ReceiptData, signature: Optional[str] = None,
                     issued_at: Optional[datetime] = None) -> str:
        issued_at = issued_at or datetime.now(timezone.utc)
        receipt_id = f"RC-{issued_at.strftime('%Y%m%d%H%M%S')}"
        amount = self.money(data.payment_amount)

        details = [
            ("Loan reference", data.loan_id),
            ("Payment date", long_date(data.payment_date)),
            ("Previous balance", self.money(data.previous_balance)),
        ]
        if data.interest_paid is not None and data.capital_paid is not None:
            details += [
                ("(+) Total received", amount),
                ("(-) Interest covered", self.money(data.interest_paid)),
                ("(-) Principal repaid", self.money(data.capital_paid)),
            ]
        else:
            details.append(("Payment amount", amount))
        details.append(("(=) New outstanding balance", self.money(data.new_balance)))
        if data.notes:
            details.append(("Notes", data.notes))

        if signature:
            mark = f'<div class="signature"><img src="{escape(signature)}" alt="Signature"></div>'
        else:
            mark = (f'<div class="stamp">{escape(self.config.business_name.upper())}'
                    "<br><small>Digitally issued receipt</small></div>")

        body = (
            f"<h2>{escape(self.config.business_name)}</h2>"
            "<h1>Payment Receipt</h1>"
            f"<p>Receipt no. {receipt_id} &middot; Issued {escape(issued_at.strftime('%Y-%m-%d %H:%M'))}</p>"
            f"<p>Received from <strong>{escape(data.client_name)}</strong> "
            f"the sum of <strong>{escape(amount)}</strong> "
            f"for <strong>{escape(data.payment_type)}</strong>.</p>"
            f"<table>{_rows(details)}</table>"
            f"{mark}"
            '<p class="footer">Thank you for your trust.</p>'
        )
        return _page("Payment receipt", body)

    def receipt_pdf(self, data: ReceiptData, signature: Optional[str] = None) -> bytes:
        return self.renderer(self.receipt_html(data, signature))

    # Client report

    def client_report_html(self, client: Client, loans: List[Loan]) -> str:
        rows = []
        for loan in loans:
            rows.append((
                loan.id[-6:],
                loan.start_date.isoformat(),
                self.money(loan.amount),
                "Indefinite" if loan.is_indefinite else f"{loan.term} months",
                loan.status.value.capitalize(),
                str(loan.payments_made) if loan.is_indefinite else f"{loan.payments_made}/{loan.term}",
            ))
        body = (
            f"<h1>Client Report: {escape(client.name)}</h1>"
            f"<p>Client ID: {escape(client.id)}<br>"
            f"Member since: {escape(long_date(client.join_date.date()))}</p>"
            "<table><thead><tr><th>Loan</th><th>Start date</th><th class=\"amount\">Amount</th>"
            "<th>Term</th><th>Status</th><th>Payments</th></tr></thead>"
            f"<tbody>{_rows(rows)}</tbody></table>"
        )
        return _page(f"Client report {client.name}", body)

    def client_report_pdf(self, client: Client, loans: List[Loan]) -> bytes:
        return self.renderer(self.client_report_html(client, loans))

    # Request summary

    def request_summary_html(self, request: LoanRequest, template: Optional[str] = None) -> str:
        applicant = [
            ("Full name", request.full_name),
            ("ID number", request.id_number),
            ("Address", request.address),
            ("Phone", request.phone),
            ("E-mail", request.email or "Not provided"),
        ]
        loan = [
            ("Requested amount", self.money(request.loan_amount)),
            ("Reason", request.loan_reason),
            ("Employment status", request.employment_status),
        ]
        if request.contract_type:
            loan.append(("Contract type", request.contract_type))

        contract = ContractData(request.full_name, request.id_number, request.address,
                                request.loan_amount)
        signature = (f'<div class="signature"><img src="{escape(request.signature)}" '
                     'alt="Applicant signature"></div>' if request.signature else "")
        body = (
            "<h1>Loan Request Summary</h1>"
            f"<p>Requested on {escape(request.request_date.strftime('%Y-%m-%d %H:%M'))} "
            f"&middot; Status: {escape(request.status.value.replace('_', ' '))}</p>"
            "<h2>Applicant</h2>"
            f"<table>{_rows(applicant)}</table>"
            "<h2>Loan details</h2>"
            f"<table>{_rows(loan)}</table>"
            '<h2 style="page-break-before: always">Accepted loan agreement</h2>'
            f'<div class="contract">{escape(self.contract_text(contract, template))}</div>'
            f"{signature}"
        )
        return _page("Loan request summary", body)

    def request_summary_pdf(self, request: LoanRequest, template: Optional[str] = None) -> bytes:
        return self.renderer(self.request_summary_html(request, template))

    # Loan simulation

    def simulation_html(self, plan: PaymentPlan, start_date: date) -> str:
        summary = [
            ("Requested amount", self.money(plan.principal)),
            ("Interest rate", f"{plan.monthly_rate * HUNDRED:.2f}% per month"),
            ("Calculated term", f"{plan.calculated_term} months"),
            ("Start date", long_date(start_date)),
            ("Monthly payment", self.money(plan.monthly_payment)),
            ("Total interest", self.money(plan.total_interest)),
            ("Total to repay", self.money(plan.total_payment)),
        ]
        schedule = "".join(
            "<tr>"
            f"<td>{row.period}</td><td>{row.due_date.isoformat()}</td>"
            f'<td class="amount">{escape(self.money(row.payment))}</td>'
            f'<td class="amount">{escape(self.money(row.interest))}</td>'
            f'<td class="amount">{escape(self.money(row.principal))}</td>'
            f'<td class="amount">{escape(self.money(row.balance))}</td>'
            "</tr>"
            for row in plan.schedule
        )
        body = (
            "<h1>Loan Simulation</h1>"
            f"<table>{_rows(summary)}</table>"
            "<h2>Amortization schedule</h2>"
            "<table><thead><tr><th>#</th><th>Due date</th><th class=\"amount\">Payment</th>"
            "<th class=\"amount\">Interest</th><th class=\"amount\">Principal</th>"
            "<th class=\"amount\">Balance</th></tr></thead>"
            f"<tbody>{schedule}</tbody></table>"
        )
        return _page("Loan simulation", body)

    def simulation_pdf(self, plan: PaymentPlan, start_date: date) -> bytes:
        return self.renderer(self.simulation_html(plan, start_date))
