"""
In-Memory Data Store Module

Local read model of the backend tables. A snapshot is loaded once, then
kept current by applying ChangeEvents from the backend feed. Each entity
kind has its own index keyed by primary key.
"""

from dataclasses import dataclass, field
from datetime import date
from typing import Any, Callable, Dict, List, Optional, Tuple
import logging

from . import __version__
from .events import ChangeEvent, ChangeType, EntityKind, Subscription
from .ledger import FinancialSnapshot, compute_snapshot
from .models import (
    Client, Loan, LoanRequest, AccountingEntry, AppMeta, LoanStatus,
    INITIAL_CAPITAL_KEY, utcnow
)
from .storage import BackendInterface

logger = logging.getLogger("lending.store")

NewRequestCallback = Callable[[LoanRequest], None]


@dataclass
class ClientLoans:
    """A client joined with the loans it owns"""
    client: Client
    loans: List[Loan] = field(default_factory=list)

    @property
    def active_loans(self) -> List[Loan]:
        return [loan for loan in self.loans if loan.status != LoanStatus.PAID]


class DataStore:
    """Per-entity indexes fed by snapshots and change events"""

    def __init__(self, on_new_request: Optional[NewRequestCallback] = None):
        self.clients: Dict[str, Client] = {}
        self.loans: Dict[str, Loan] = {}
        self.requests: Dict[str, LoanRequest] = {}
        self.entries: Dict[str, AccountingEntry] = {}
        self.meta: Dict[str, AppMeta] = {}
        self.on_new_request = on_new_request
        self.loaded = False

        self._indexes: Dict[EntityKind, Tuple[Dict[str, Any], Callable[[Dict[str, Any]], Any]]] = {
            EntityKind.CLIENT: (self.clients, Client.from_row),
            EntityKind.LOAN: (self.loans, Loan.from_row),
            EntityKind.REQUEST: (self.requests, LoanRequest.from_row),
            EntityKind.ACCOUNTING_ENTRY: (self.entries, AccountingEntry.from_row),
            EntityKind.APP_META: (self.meta, AppMeta.from_row),
        }

    async def load_snapshot(self, backend: BackendInterface) -> None:
        """Replace every index with the backend's current rows"""
        for kind, (index, parse) in self._indexes.items():
            rows = await backend.select(kind.value)
            index.clear()
            for row in rows:
                record = self._parse(kind, parse, row)
                if record is not None:
                    index[str(row[kind.key_column])] = record
        self.loaded = True
        logger.info(
            f"Loaded snapshot: {len(self.clients)} clients, {len(self.loans)} loans, "
            f"{len(self.requests)} requests, {len(self.entries)} entries"
        )

    @staticmethod
    def _parse(kind: EntityKind, parse: Callable[[Dict[str, Any]], Any],
               row: Dict[str, Any]) -> Optional[Any]:
        try:
            return parse(row)
        except (KeyError, ValueError, TypeError) as e:
            logger.warning(f"Skipping malformed {kind.value} row {row.get(kind.key_column)}: {e}")
            return None

    def apply(self, event: ChangeEvent) -> None:
        """Fold one change event into the matching index"""
        index, parse = self._indexes[event.kind]
        key = event.record_key
        if key is None:
            logger.warning(f"Ignoring {event.change_type.value} on {event.kind.value} without a key")
            return

        if event.change_type is ChangeType.DELETE:
            index.pop(key, None)
            return

        record = self._parse(event.kind, parse, event.record)
        if record is None:
            return
        is_new = key not in index
        index[key] = record

        if (event.kind is EntityKind.REQUEST and event.change_type is ChangeType.INSERT
                and is_new and self.loaded and self.on_new_request is not None):
            try:
                self.on_new_request(record)
            except Exception as e:
                logger.error(f"Error in new request callback: {e}")

    def catch_up(self, subscription: Subscription) -> int:
        """Apply the events already waiting on ``subscription``"""
        events = subscription.drain()
        for event in events:
            self.apply(event)
        return len(events)

    @property
    def initial_capital_raw(self) -> Optional[str]:
        meta = self.meta.get(INITIAL_CAPITAL_KEY)
        return meta.value if meta is not None else None

    @property
    def pending_request_count(self) -> int:
        return len(self.requests)

    def loans_for_client(self, client_id: str) -> List[Loan]:
        return sorted(
            (loan for loan in self.loans.values() if loan.client_id == client_id),
            key=lambda loan: loan.start_date
        )

    def client_loan_data(self, include_archived: bool = False) -> List[ClientLoans]:
        """Every client with its loans, clients ordered by name"""
        grouped: Dict[str, ClientLoans] = {
            client_id: ClientLoans(client) for client_id, client in self.clients.items()
        }
        for loan in sorted(self.loans.values(), key=lambda l: l.start_date):
            if loan.archived and not include_archived:
                continue
            if loan.client_id in grouped:
                grouped[loan.client_id].loans.append(loan)
        return sorted(grouped.values(), key=lambda c: c.client.name.lower())

    def active_loans(self, as_of: Optional[date] = None, grace_days: int = 0) -> List[Loan]:
        """Loans that are Pending or Overdue on ``as_of``"""
        as_of = as_of or date.today()
        return [
            loan for loan in self.loans.values()
            if loan.status_as_of(as_of, grace_days) != LoanStatus.PAID
        ]

    def snapshot(self, as_of: Optional[date] = None, grace_days: int = 0) -> FinancialSnapshot:
        return compute_snapshot(
            self.loans.values(), self.entries.values(), self.initial_capital_raw,
            as_of=as_of, grace_days=grace_days
        )

    def backup_snapshot(self, app_name: str) -> Dict[str, Any]:
        """
        Portable JSON export of clients, loans and open requests.

        Rows use the same column layout as the backend tables, so a backup
        can be re-imported table by table.
        """
        return {
            "timestamp": utcnow().isoformat(),
            "version": __version__,
            "app": app_name,
            "data": {
                "clients": [
                    client.to_row() for client in sorted(self.clients.values(), key=lambda c: c.name.lower())
                ],
                "loans": [loan.to_row() for loan in sorted(self.loans.values(), key=lambda l: l.start_date)],
                "requests": [
                    request.to_row()
                    for request in sorted(self.requests.values(), key=lambda r: r.request_date)
                ],
            },
        }
