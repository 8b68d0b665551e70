"""
Tests for the in-memory data store fed by snapshots and change events
"""

import json

import pytest
from decimal import Decimal
from datetime import date

from core_lending.events import ChangeEvent, ChangeType, EntityKind
from core_lending.models import Table, LoanStatus
from core_lending.storage import RPC_CREATE_CLIENT_AND_LOAN
from core_lending.store import DataStore


def loan_row(loan_id, client_id="c1", status="pending", archived=False, start="2024-01-10",
             amount="1000", total="1200", term=12, payments=0):
    return {
        "id": loan_id, "client_id": client_id, "client_name": "Ana", "amount": amount,
        "interest_rate": "96", "term": term, "start_date": start, "status": status,
        "monthly_payment": "100", "total_repayment": total, "payments_made": payments,
        "archived": archived,
    }


def request_row(request_id):
    return {
        "id": request_id, "full_name": "Luis", "id_number": "X1", "loan_amount": "500",
        "request_date": "2024-05-01T10:00:00+00:00", "status": "pending",
    }


class TestSnapshotLoad:
    """Test loading every table"""

    @pytest.mark.asyncio
    async def test_load_snapshot(self, backend):
        await backend.insert(Table.CLIENTS, {"id": "c1", "name": "Ana"})
        await backend.insert(Table.LOANS, loan_row("l1"))
        await backend.insert(Table.REQUESTS, request_row("r1"))
        await backend.upsert(Table.APP_META, {"key": "initial_capital", "value": "5000"})

        store = DataStore()
        await store.load_snapshot(backend)

        assert store.loaded
        assert set(store.clients) == {"c1"}
        assert store.loans["l1"].amount == Decimal("1000")
        assert store.pending_request_count == 1
        assert store.initial_capital_raw == "5000"

    @pytest.mark.asyncio
    async def test_malformed_rows_are_skipped(self, backend):
        await backend.insert(Table.LOANS, loan_row("good"))
        await backend.insert(Table.LOANS, {"id": "bad", "client_id": "c1", "amount": "-5",
                                           "start_date": "2024-01-01"})
        store = DataStore()
        await store.load_snapshot(backend)
        assert set(store.loans) == {"good"}


class TestApplyEvents:
    """Test folding change events into the indexes"""

    def test_insert_update_delete(self):
        store = DataStore()
        store.apply(ChangeEvent(ChangeType.INSERT, EntityKind.LOAN, record=loan_row("l1")))
        store.apply(ChangeEvent(ChangeType.UPDATE, EntityKind.LOAN,
                                record=loan_row("l1", payments=3)))
        assert store.loans["l1"].payments_made == 3

        store.apply(ChangeEvent(ChangeType.DELETE, EntityKind.LOAN, old_record={"id": "l1"}))
        assert store.loans == {}

    def test_delete_of_unknown_row_is_ignored(self):
        store = DataStore()
        store.apply(ChangeEvent(ChangeType.DELETE, EntityKind.CLIENT, old_record={"id": "x"}))
        assert store.clients == {}

    def test_event_without_key_is_ignored(self):
        store = DataStore()
        store.apply(ChangeEvent(ChangeType.INSERT, EntityKind.CLIENT, record={"name": "Ana"}))
        assert store.clients == {}

    def test_new_request_callback_after_load(self):
        seen = []
        store = DataStore(on_new_request=lambda r: seen.append(r.id))

        store.apply(ChangeEvent(ChangeType.INSERT, EntityKind.REQUEST, record=request_row("early")))
        store.loaded = True
        store.apply(ChangeEvent(ChangeType.INSERT, EntityKind.REQUEST, record=request_row("r1")))
        store.apply(ChangeEvent(ChangeType.UPDATE, EntityKind.REQUEST, record=request_row("r1")))

        assert seen == ["r1"]

    def test_callback_errors_do_not_break_the_store(self):
        def explode(request):
            raise RuntimeError("boom")

        store = DataStore(on_new_request=explode)
        store.loaded = True
        store.apply(ChangeEvent(ChangeType.INSERT, EntityKind.REQUEST, record=request_row("r1")))
        assert "r1" in store.requests

    @pytest.mark.asyncio
    async def test_catch_up_with_backend_feed(self, backend):
        store = DataStore()
        subscription = backend.feed.subscribe()
        await store.load_snapshot(backend)

        result = await backend.rpc(RPC_CREATE_CLIENT_AND_LOAN, {
            "client_name": "Ana", "loan_amount": "1000", "loan_term": 12
        })
        assert store.loans == {}

        applied = store.catch_up(subscription)
        assert applied == 2
        assert result["loan_id"] in store.loans
        assert result["client_id"] in store.clients


class TestQueries:
    """Test derived views"""

    def _store(self):
        store = DataStore()
        for row in ({"id": "c1", "name": "beatriz"}, {"id": "c2", "name": "Ana"}):
            store.apply(ChangeEvent(ChangeType.INSERT, EntityKind.CLIENT, record=row))
        for row in (
            loan_row("l1", "c1", start="2024-03-01"),
            loan_row("l2", "c1", start="2024-01-01"),
            loan_row("l3", "c2", status="paid", payments=12, archived=True),
            loan_row("l4", "missing-client"),
        ):
            store.apply(ChangeEvent(ChangeType.INSERT, EntityKind.LOAN, record=row))
        return store

    def test_client_loan_data_sorted_by_name(self):
        data = self._store().client_loan_data()
        assert [entry.client.name for entry in data] == ["Ana", "beatriz"]
        assert data[0].loans == []
        assert [loan.id for loan in data[1].loans] == ["l2", "l1"]

    def test_client_loan_data_with_archived(self):
        data = self._store().client_loan_data(include_archived=True)
        assert [loan.id for loan in data[0].loans] == ["l3"]
        assert data[0].active_loans == []

    def test_active_loans(self):
        active = self._store().active_loans(date(2024, 6, 1))
        assert {loan.id for loan in active} == {"l1", "l2", "l4"}

    def test_loans_for_client(self):
        assert [loan.id for loan in self._store().loans_for_client("c1")] == ["l2", "l1"]

    def test_snapshot(self):
        snapshot = self._store().snapshot(date(2024, 6, 1))
        assert snapshot.realized_interest_profit == Decimal("200")
        assert snapshot.status_counts[LoanStatus.PAID] == 1
        assert snapshot.initial_capital == Decimal("0")

    def test_backup_snapshot(self):
        store = self._store()
        store.apply(ChangeEvent(ChangeType.INSERT, EntityKind.REQUEST, record=request_row("r1")))
        backup = store.backup_snapshot("B.M Contigo")

        assert backup["app"] == "B.M Contigo"
        assert backup["timestamp"]
        assert set(backup["data"]) == {"clients", "loans", "requests"}
        assert [row["name"] for row in backup["data"]["clients"]] == ["Ana", "beatriz"]
        assert [row["id"] for row in backup["data"]["loans"]] == ["l2", "l3", "l4", "l1"]
        assert backup["data"]["requests"][0]["loan_amount"] == "500"
        assert json.loads(json.dumps(backup)) == backup
