"""
Accounting Module

Manual ledger entries (income, expenses, capital movements), the initial
capital setting and the financial snapshot built from them.
"""

from decimal import Decimal
from datetime import date
from typing import Any, Optional, Union
import uuid

from .currency import to_decimal
from .ledger import compute_snapshot, parse_initial_capital
from .logging_config import get_logger, log_action
from .models import (
    AccountingEntry, AccountingEntryType, AppMeta, Loan, Table, INITIAL_CAPITAL_KEY, utcnow
)
from .outcomes import Ok, InvalidInput, BackendFailure
from .storage import BackendInterface, BackendError, failure_from

logger = get_logger("lending.accounting")


class AccountingManager:
    """
    Manages accounting entries and capital settings
    """

    def __init__(self, backend: BackendInterface, grace_days: int = 0):
        self.backend = backend
        self.grace_days = grace_days

    async def add_entry(
        self,
        entry_type: AccountingEntryType,
        amount: Any,
        description: str = "",
        entry_date: Optional[date] = None
    ) -> Union[Ok, InvalidInput, BackendFailure]:
        """
        Record a ledger line.

        Returns:
            Ok(AccountingEntry), InvalidInput or BackendFailure
        """
        if not isinstance(entry_type, AccountingEntryType):
            return InvalidInput(f"unknown entry type {entry_type!r}", "type")
        try:
            value = to_decimal(amount)
        except ValueError as e:
            return InvalidInput(str(e), "amount")
        if value <= Decimal('0'):
            return InvalidInput("amount must be positive", "amount")

        entry = AccountingEntry(
            id=str(uuid.uuid4()),
            entry_date=entry_date or date.today(),
            type=entry_type,
            amount=value,
            description=description or "",
            created_at=utcnow()
        )
        try:
            row = await self.backend.insert(Table.ACCOUNTING_ENTRIES, entry.to_row())
        except BackendError as e:
            return failure_from("add_entry", e)

        log_action(logger, "info", f"Recorded {entry_type.value} entry", action="add_entry",
                   resource=f"accounting_entry:{entry.id}", extra={"amount": str(value)})
        return Ok(AccountingEntry.from_row(row))

    async def list_entries(self, entry_type: Optional[AccountingEntryType] = None) -> Union[Ok, BackendFailure]:
        """Entries newest first, optionally of one type"""
        try:
            rows = await self.backend.select(Table.ACCOUNTING_ENTRIES)
        except BackendError as e:
            return failure_from("list_entries", e)
        entries = [AccountingEntry.from_row(row) for row in rows]
        if entry_type is not None:
            entries = [e for e in entries if e.type == entry_type]
        entries.sort(key=lambda e: (e.entry_date, e.created_at), reverse=True)
        return Ok(entries)

    async def delete_entry(self, entry_id: str) -> Union[Ok, BackendFailure]:
        try:
            deleted = await self.backend.delete(Table.ACCOUNTING_ENTRIES, entry_id)
        except BackendError as e:
            return failure_from("delete_entry", e)
        if not deleted:
            return BackendFailure("delete_entry", f"Entry {entry_id} not found", status_code=404)
        log_action(logger, "info", "Deleted accounting entry", action="delete_entry",
                   resource=f"accounting_entry:{entry_id}")
        return Ok(entry_id)

    async def get_initial_capital(self) -> Union[Ok, BackendFailure]:
        """Ok(Decimal); a missing or unreadable setting reads as 0"""
        try:
            row = await self.backend.get(Table.APP_META, INITIAL_CAPITAL_KEY)
        except BackendError as e:
            return failure_from("get_initial_capital", e)
        return Ok(parse_initial_capital(row.get("value") if row else None))

    async def set_initial_capital(self, amount: Any) -> Union[Ok, InvalidInput, BackendFailure]:
        try:
            value = to_decimal(amount)
        except ValueError as e:
            return InvalidInput(str(e), "initial_capital")
        if value < Decimal('0'):
            return InvalidInput("initial capital cannot be negative", "initial_capital")

        try:
            await self.backend.upsert(Table.APP_META, AppMeta(INITIAL_CAPITAL_KEY, str(value)).to_row())
        except BackendError as e:
            return failure_from("set_initial_capital", e)

        log_action(logger, "info", "Initial capital updated", action="set_initial_capital",
                   resource="app_meta:initial_capital", extra={"amount": str(value)})
        return Ok(value)

    async def snapshot(self, as_of: Optional[date] = None) -> Union[Ok, BackendFailure]:
        """Ok(FinancialSnapshot) from the backend's current rows"""
        try:
            loan_rows = await self.backend.select(Table.LOANS)
            entry_rows = await self.backend.select(Table.ACCOUNTING_ENTRIES)
            capital = await self.backend.get(Table.APP_META, INITIAL_CAPITAL_KEY)
        except BackendError as e:
            return failure_from("snapshot", e)

        return Ok(compute_snapshot(
            [Loan.from_row(row) for row in loan_rows],
            [AccountingEntry.from_row(row) for row in entry_rows],
            capital.get("value") if capital else None,
            as_of=as_of,
            grace_days=self.grace_days
        ))
