"""
Hosted Backend Module

BackendInterface over a Supabase project's REST endpoints using httpx:
PostgREST tables (/rest/v1/<table>), stored procedures (/rest/v1/rpc/<fn>)
and object storage (/storage/v1/object/<bucket>/<path>).

The realtime feed is fed from this process's own committed mutations; rows
changed by other operators are picked up on the next snapshot load.
"""

import httpx
import logging
from typing import Any, Dict, List, Optional
from urllib.parse import quote

from .config import LendingConfig
from .events import ChangeEvent, ChangeFeed, ChangeType, EntityKind
from .models import Table
from .storage import (
    BackendInterface, BackendError, NotFoundError,
    RPC_APPROVE_REQUEST, RPC_CREATE_CLIENT_AND_LOAN
)

logger = logging.getLogger("lending.supabase")

RETURN_REPRESENTATION = {"Prefer": "return=representation"}


class SupabaseBackend(BackendInterface):
    """REST client for a hosted Supabase backend"""

    def __init__(
        self,
        base_url: str,
        anon_key: str,
        bucket: str = "documents",
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        if not base_url or not anon_key:
            raise ValueError("Supabase backend needs both a URL and an anon key")
        self.base_url = base_url.rstrip("/")
        self.anon_key = anon_key
        self.bucket = bucket
        self.feed = ChangeFeed()
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout,
            transport=transport,
            headers={
                "apikey": anon_key,
                "Authorization": f"Bearer {anon_key}",
            }
        )

    @classmethod
    def from_config(cls, config: LendingConfig,
                    transport: Optional[httpx.AsyncBaseTransport] = None) -> 'SupabaseBackend':
        return cls(
            base_url=config.backend_url,
            anon_key=config.backend_anon_key,
            bucket=config.storage_bucket,
            timeout=config.backend_timeout,
            transport=transport
        )

    def set_access_token(self, token: Optional[str]) -> None:
        """Act as a signed-in user; None reverts to the anon key"""
        self._client.headers["Authorization"] = f"Bearer {token or self.anon_key}"

    async def _request(self, method: str, url: str, operation: str, **kwargs) -> httpx.Response:
        try:
            response = await self._client.request(method, url, **kwargs)
        except httpx.HTTPError as e:
            logger.error(f"{operation} failed to reach backend: {e}")
            raise BackendError(f"Backend unreachable: {e}", operation=operation)

        if response.status_code == 404:
            raise NotFoundError(response.text or "Not found", operation=operation, status_code=404)
        if response.status_code >= 400:
            logger.warning(f"{operation} returned {response.status_code}: {response.text}")
            raise BackendError(
                f"Backend returned {response.status_code}: {response.text}",
                operation=operation,
                status_code=response.status_code
            )
        return response

    @staticmethod
    def _json(response: httpx.Response) -> Any:
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as e:
            raise BackendError(
                f"Backend returned invalid JSON: {e}",
                operation="decode",
                status_code=response.status_code
            )

    @staticmethod
    def _eq(filters: Dict[str, Any]) -> Dict[str, str]:
        return {column: f"eq.{value}" for column, value in filters.items()}

    def _publish(self, change_type: ChangeType, table: str, record: Optional[Dict[str, Any]] = None,
                 old_record: Optional[Dict[str, Any]] = None) -> None:
        self.feed.publish(ChangeEvent(
            change_type, EntityKind(table), record=record or {}, old_record=old_record or {}
        ))

    async def insert(self, table: str, row: Dict[str, Any]) -> Dict[str, Any]:
        response = await self._request(
            "POST", f"/rest/v1/{table}", "insert", json=row, headers=RETURN_REPRESENTATION
        )
        rows = self._json(response) or [row]
        self._publish(ChangeType.INSERT, table, rows[0])
        return rows[0]

    async def update(self, table: str, key: str, changes: Dict[str, Any]) -> Dict[str, Any]:
        key_column = EntityKind(table).key_column
        response = await self._request(
            "PATCH", f"/rest/v1/{table}", "update",
            params=self._eq({key_column: key}), json=changes, headers=RETURN_REPRESENTATION
        )
        rows = self._json(response) or []
        if not rows:
            raise NotFoundError(f"No row '{key}' in {table}", operation="update", status_code=404)
        self._publish(ChangeType.UPDATE, table, rows[0])
        return rows[0]

    async def upsert(self, table: str, row: Dict[str, Any]) -> Dict[str, Any]:
        response = await self._request(
            "POST", f"/rest/v1/{table}", "upsert", json=row,
            headers={"Prefer": "resolution=merge-duplicates,return=representation"}
        )
        rows = self._json(response) or [row]
        self._publish(ChangeType.UPDATE, table, rows[0])
        return rows[0]

    async def delete(self, table: str, key: str) -> bool:
        key_column = EntityKind(table).key_column
        response = await self._request(
            "DELETE", f"/rest/v1/{table}", "delete",
            params=self._eq({key_column: key}), headers=RETURN_REPRESENTATION
        )
        rows = self._json(response) or []
        for row in rows:
            self._publish(ChangeType.DELETE, table, old_record=row)
        return bool(rows)

    async def select(self, table: str, filters: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
        params = {"select": "*"}
        params.update(self._eq(filters or {}))
        response = await self._request("GET", f"/rest/v1/{table}", "select", params=params)
        return self._json(response) or []

    async def rpc(self, name: str, params: Dict[str, Any]) -> Any:
        response = await self._request("POST", f"/rest/v1/rpc/{name}", f"rpc:{name}", json=params)
        result = self._json(response)
        await self._echo_rpc(name, params, result)
        return result

    async def _echo_rpc(self, name: str, params: Dict[str, Any], result: Any) -> None:
        """Publish the rows an RPC created or consumed"""
        if name not in (RPC_APPROVE_REQUEST, RPC_CREATE_CLIENT_AND_LOAN) or not isinstance(result, dict):
            return
        for table, key in ((Table.CLIENTS, result.get("client_id")), (Table.LOANS, result.get("loan_id"))):
            if key is None:
                continue
            try:
                row = await self.get(table, str(key))
            except BackendError as e:
                # The RPC already committed; the row arrives with the next snapshot load
                logger.warning(f"Could not read back {table} {key} after {name}: {e}")
                continue
            if row is not None:
                self._publish(ChangeType.INSERT, table, row)
        if name == RPC_APPROVE_REQUEST:
            self._publish(ChangeType.DELETE, Table.REQUESTS, old_record={"id": params.get("request_id")})

    def _object_url(self, path: str) -> str:
        return f"/storage/v1/object/{self.bucket}/{quote(path)}"

    async def upload(self, path: str, content: bytes,
                     content_type: str = "application/octet-stream") -> str:
        await self._request(
            "POST", self._object_url(path), "upload", content=content,
            headers={"Content-Type": content_type, "x-upsert": "false"}
        )
        return path

    def public_url(self, path: str) -> str:
        return f"{self.base_url}/storage/v1/object/public/{self.bucket}/{quote(path)}"

    async def remove_files(self, paths: List[str]) -> None:
        await self._request(
            "DELETE", f"/storage/v1/object/{self.bucket}", "remove_files",
            json={"prefixes": list(paths)}
        )

    async def close(self) -> None:
        self.feed.close()
        await self._client.aclose()
