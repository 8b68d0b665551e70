"""
Backend Storage Module

Async interface to the hosted backend: table rows, atomic server-side
procedures (RPCs), object storage and the realtime change feed. Ships an
in-memory implementation used for tests and local runs; the hosted
implementation lives in ``supabase_backend``.

Backends are created with ``init_backend(config)`` and released with
``dispose_backend(backend)``; there is no module level instance.
"""

from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, List, Optional, Tuple
from decimal import Decimal
from datetime import date, datetime, timezone
import asyncio
import json
import logging
import uuid

from .config import LendingConfig
from .currency import to_decimal
from .amortization import calculate_loan_parameters
from .events import ChangeEvent, ChangeFeed, ChangeType, EntityKind
from .models import Table, LoanStatus, RequestStatus, parse_date, parse_datetime
from .outcomes import BackendFailure

logger = logging.getLogger("lending.storage")


class BackendError(Exception):
    """A backend call failed (network, HTTP status, constraint or RPC error)"""

    def __init__(self, message: str, operation: Optional[str] = None,
                 status_code: Optional[int] = None):
        super().__init__(message)
        self.operation = operation
        self.status_code = status_code


class NotFoundError(BackendError):
    """The addressed row or file does not exist"""


def failure_from(operation: str, error: BackendError) -> BackendFailure:
    """Convert a raised BackendError into a BackendFailure outcome"""
    logger.error(f"{operation} failed: {error}")
    return BackendFailure(operation=operation, detail=str(error), status_code=error.status_code)


# RPC names
RPC_APPROVE_REQUEST = "approve_request"
RPC_CREATE_CLIENT_AND_LOAN = "create_client_and_loan"
RPC_GET_REQUEST_STATUS = "get_request_status"

# Object storage prefixes
REQUESTS_PREFIX = "requests"
CONTRACTS_PREFIX = "contracts"


def request_image_path(request_id: str, side: str) -> str:
    """requests/<id>/front_id"""
    return f"{REQUESTS_PREFIX}/{request_id}/{side}_id"


def contract_path(request_id: str) -> str:
    """contracts/contract_<id>.pdf"""
    return f"{CONTRACTS_PREFIX}/contract_{request_id}.pdf"


class BackendInterface(ABC):
    """Abstract interface for lending backends"""

    feed: ChangeFeed

    @abstractmethod
    async def insert(self, table: str, row: Dict[str, Any]) -> Dict[str, Any]:
        """Insert a row and return it as stored"""
        pass

    @abstractmethod
    async def update(self, table: str, key: str, changes: Dict[str, Any]) -> Dict[str, Any]:
        """Update columns of one row; raises NotFoundError if absent"""
        pass

    @abstractmethod
    async def upsert(self, table: str, row: Dict[str, Any]) -> Dict[str, Any]:
        """Insert or replace a row by primary key"""
        pass

    @abstractmethod
    async def delete(self, table: str, key: str) -> bool:
        """Delete one row; returns False if it did not exist"""
        pass

    @abstractmethod
    async def select(self, table: str, filters: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
        """Rows whose columns equal every filter value"""
        pass

    @abstractmethod
    async def rpc(self, name: str, params: Dict[str, Any]) -> Any:
        """Call a server-side procedure"""
        pass

    @abstractmethod
    async def upload(self, path: str, content: bytes,
                     content_type: str = "application/octet-stream") -> str:
        """Store a file and return its path"""
        pass

    @abstractmethod
    def public_url(self, path: str) -> str:
        """Public URL of a stored file"""
        pass

    @abstractmethod
    async def remove_files(self, paths: List[str]) -> None:
        """Delete stored files"""
        pass

    async def get(self, table: str, key: str) -> Optional[Dict[str, Any]]:
        """Load one row by primary key"""
        rows = await self.select(table, {EntityKind(table).key_column: key})
        return rows[0] if rows else None

    async def close(self) -> None:
        """Release connections (default no-op)"""
        pass


def _copy(data: Any) -> Any:
    return json.loads(json.dumps(data, default=str))


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class InMemoryBackend(BackendInterface):
    """
    Backend kept in process memory.

    Every mutation, RPCs included, runs under one asyncio.Lock and publishes
    its ChangeEvents only after all of its writes are applied, so an RPC is
    observed as a single atomic step.
    """

    def __init__(self, annual_interest_rate: Decimal = Decimal('96'),
                 bucket: str = "documents",
                 public_base_url: str = "memory://storage"):
        self.annual_interest_rate = annual_interest_rate
        self.bucket = bucket
        self.public_base_url = public_base_url
        self.feed = ChangeFeed()
        self._tables: Dict[str, Dict[str, Dict[str, Any]]] = {
            kind.value: {} for kind in EntityKind
        }
        self._files: Dict[str, Tuple[bytes, str]] = {}
        self._lock = asyncio.Lock()
        self._rpcs: Dict[str, Callable[[Dict[str, Any]], Tuple[Any, List[ChangeEvent]]]] = {
            RPC_APPROVE_REQUEST: self._approve_request,
            RPC_CREATE_CLIENT_AND_LOAN: self._create_client_and_loan,
            RPC_GET_REQUEST_STATUS: self._get_request_status,
        }

    def _table(self, table: str) -> Dict[str, Dict[str, Any]]:
        try:
            return self._tables[table]
        except KeyError:
            raise BackendError(f"Unknown table '{table}'", operation="table")

    def _publish(self, events: List[ChangeEvent]) -> None:
        for event in events:
            self.feed.publish(event)

    def _insert_row(self, table: str, row: Dict[str, Any]) -> ChangeEvent:
        rows = self._table(table)
        kind = EntityKind(table)
        stored = _copy(row)
        if kind is not EntityKind.APP_META and not stored.get("id"):
            stored["id"] = str(uuid.uuid4())
        key = stored.get(kind.key_column)
        if key is None:
            raise BackendError(f"Missing primary key '{kind.key_column}' for {table}", operation="insert")
        key = str(key)
        if key in rows:
            raise BackendError(f"Duplicate key '{key}' in {table}", operation="insert", status_code=409)
        rows[key] = stored
        return ChangeEvent(ChangeType.INSERT, kind, record=_copy(stored))

    def _delete_row(self, table: str, key: str) -> Optional[ChangeEvent]:
        removed = self._table(table).pop(str(key), None)
        if removed is None:
            return None
        return ChangeEvent(ChangeType.DELETE, EntityKind(table), old_record=_copy(removed))

    async def insert(self, table: str, row: Dict[str, Any]) -> Dict[str, Any]:
        async with self._lock:
            event = self._insert_row(table, row)
        self._publish([event])
        return _copy(event.record)

    async def update(self, table: str, key: str, changes: Dict[str, Any]) -> Dict[str, Any]:
        async with self._lock:
            rows = self._table(table)
            current = rows.get(str(key))
            if current is None:
                raise NotFoundError(f"No row '{key}' in {table}", operation="update", status_code=404)
            old = _copy(current)
            current.update(_copy(changes))
            event = ChangeEvent(ChangeType.UPDATE, EntityKind(table),
                                record=_copy(current), old_record=old)
        self._publish([event])
        return _copy(event.record)

    async def upsert(self, table: str, row: Dict[str, Any]) -> Dict[str, Any]:
        kind = EntityKind(table)
        async with self._lock:
            rows = self._table(table)
            key = row.get(kind.key_column)
            if key is not None and str(key) in rows:
                old = _copy(rows[str(key)])
                rows[str(key)] = _copy(row)
                event = ChangeEvent(ChangeType.UPDATE, kind, record=_copy(row), old_record=old)
            else:
                event = self._insert_row(table, row)
        self._publish([event])
        return _copy(event.record)

    async def delete(self, table: str, key: str) -> bool:
        async with self._lock:
            event = self._delete_row(table, key)
        if event is None:
            return False
        self._publish([event])
        return True

    async def select(self, table: str, filters: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
        async with self._lock:
            rows = list(self._table(table).values())
        if filters:
            rows = [
                row for row in rows
                if all(str(row.get(column)) == str(value) for column, value in filters.items())
            ]
        return _copy(rows)

    async def rpc(self, name: str, params: Dict[str, Any]) -> Any:
        handler = self._rpcs.get(name)
        if handler is None:
            raise BackendError(f"Unknown procedure '{name}'", operation="rpc", status_code=404)
        async with self._lock:
            result, events = handler(params)
        self._publish(events)
        logger.debug(f"RPC {name} committed {len(events)} changes")
        return result

    async def upload(self, path: str, content: bytes,
                     content_type: str = "application/octet-stream") -> str:
        async with self._lock:
            if path in self._files:
                raise BackendError(f"File '{path}' already exists", operation="upload", status_code=409)
            self._files[path] = (bytes(content), content_type)
        return path

    def public_url(self, path: str) -> str:
        return f"{self.public_base_url}/{self.bucket}/{path}"

    async def remove_files(self, paths: List[str]) -> None:
        async with self._lock:
            for path in paths:
                self._files.pop(path, None)

    def file_exists(self, path: str) -> bool:
        return path in self._files

    def read_file(self, path: str) -> bytes:
        try:
            return self._files[path][0]
        except KeyError:
            raise NotFoundError(f"No file '{path}'", operation="download", status_code=404)

    async def close(self) -> None:
        self.feed.close()

    # Server-side procedures. Each runs with the lock held and either applies
    # all of its writes or raises before touching any table.

    def _loan_row(self, client_id: str, client_name: str, amount: Any, term: Any,
                  start_date: Any = None, signature: Optional[str] = None,
                  contract_pdf_url: Optional[str] = None) -> Dict[str, Any]:
        result = calculate_loan_parameters(amount, term, self.annual_interest_rate)
        if not result:
            raise BackendError(str(result), operation="rpc", status_code=400)
        params = result.value
        return {
            "id": str(uuid.uuid4()),
            "client_id": client_id,
            "client_name": client_name,
            "amount": str(params.principal),
            "interest_rate": str(self.annual_interest_rate),
            "term": params.term_months,
            "start_date": (parse_date(start_date) or date.today()).isoformat(),
            "status": LoanStatus.PENDING.value,
            "monthly_payment": str(params.monthly_payment),
            "total_repayment": (str(params.total_repayment)
                                if params.total_repayment is not None else None),
            "payments_made": 0,
            "signature": signature,
            "contract_pdf_url": contract_pdf_url,
            "archived": False,
        }

    def _approve_request(self, params: Dict[str, Any]) -> Tuple[Dict[str, str], List[ChangeEvent]]:
        request_id = str(params.get("request_id"))
        request = self._tables[Table.REQUESTS].get(request_id)
        if request is None:
            raise NotFoundError(f"No request '{request_id}'", operation="rpc", status_code=404)

        client = {
            "id": str(uuid.uuid4()),
            "name": request["full_name"],
            "join_date": _now_iso(),
            "id_number": request.get("id_number"),
            "phone": request.get("phone"),
            "address": request.get("address"),
            "email": request.get("email"),
        }
        loan = self._loan_row(
            client["id"], client["name"],
            params.get("loan_amount", request.get("loan_amount")),
            params.get("loan_term", 0),
            start_date=params.get("start_date"),
            signature=params.get("signature") or request.get("signature"),
            contract_pdf_url=params.get("contract_pdf_url")
        )

        events = [
            self._insert_row(Table.CLIENTS, client),
            self._insert_row(Table.LOANS, loan),
            self._delete_row(Table.REQUESTS, request_id),
        ]
        return {"client_id": client["id"], "loan_id": loan["id"]}, events

    def _create_client_and_loan(self, params: Dict[str, Any]) -> Tuple[Dict[str, str], List[ChangeEvent]]:
        name = (params.get("client_name") or "").strip()
        if not name:
            raise BackendError("client_name is required", operation="rpc", status_code=400)

        client = {
            "id": str(uuid.uuid4()),
            "name": name,
            "join_date": _now_iso(),
            "id_number": params.get("client_id_number"),
            "phone": params.get("client_phone"),
            "address": params.get("client_address"),
            "email": params.get("client_email"),
        }
        loan = self._loan_row(
            client["id"], name, params.get("loan_amount"), params.get("loan_term", 0),
            start_date=params.get("start_date")
        )

        events = [
            self._insert_row(Table.CLIENTS, client),
            self._insert_row(Table.LOANS, loan),
        ]
        return {"client_id": client["id"], "loan_id": loan["id"]}, events

    def _get_request_status(self, params: Dict[str, Any]) -> Tuple[Optional[Dict[str, str]], List[ChangeEvent]]:
        id_number = str(params.get("p_id_number", "")).strip()
        matches = [
            row for row in self._tables[Table.REQUESTS].values()
            if str(row.get("id_number", "")).strip() == id_number
        ]
        if not matches:
            return None, []
        latest = max(matches, key=lambda row: parse_datetime(row.get("request_date")) or
                     datetime.min.replace(tzinfo=timezone.utc))
        return {
            "status": latest.get("status", RequestStatus.PENDING.value),
            "request_date": latest.get("request_date")
        }, []


def init_backend(config: LendingConfig) -> BackendInterface:
    """
    Create the backend selected by ``config.backend_type``.

    Args:
        config: Application configuration

    Returns:
        Backend instance; release it with ``dispose_backend``
    """
    backend_type = config.backend_type.lower()
    if backend_type == "memory":
        return InMemoryBackend(
            annual_interest_rate=to_decimal(config.default_annual_interest_rate),
            bucket=config.storage_bucket
        )
    if backend_type == "supabase":
        from .supabase_backend import SupabaseBackend
        return SupabaseBackend.from_config(config)
    raise ValueError(f"Unknown backend type '{config.backend_type}'")


async def dispose_backend(backend: BackendInterface) -> None:
    """Close a backend created by ``init_backend``"""
    await backend.close()
