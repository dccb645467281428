"""Persistence for projects and registry lands.

Remote side: a hosted Supabase table reached through its PostgREST API.
Local side: a JSON file used when the hosted table is unconfigured or
unreachable. No retries and no caching; one request per operation.
"""

from __future__ import annotations

import asyncio
import json
import logging
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import httpx

log = logging.getLogger("project_store")

MIN_ID_LENGTH = 8


class StoreError(Exception):
    """Raised when the hosted table is unconfigured or a request fails."""


def ensure_id(record: dict[str, Any]) -> dict[str, Any]:
    """Give records without a persistent id (absent or short) a fresh UUID."""
    record_id = record.get("id")
    if not record_id or len(str(record_id)) < MIN_ID_LENGTH:
        return {**record, "id": str(uuid.uuid4())}
    return record


# ---------------------------------------------------------------------------
# Hosted table
# ---------------------------------------------------------------------------

class SupabaseTable:
    """One PostgREST table addressed with the project's anon key."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        url: str,
        key: str,
        table: str,
        timeout: float = 10,
    ) -> None:
        self.client = client
        self.url = (url or "").rstrip("/")
        self.key = key or ""
        self.table = table
        self.timeout = timeout

    @property
    def configured(self) -> bool:
        return bool(self.key) and self.url.startswith("http")

    @property
    def endpoint(self) -> str:
        return f"{self.url}/rest/v1/{self.table}"

    def _headers(self, **extra: str) -> dict[str, str]:
        return {
            "apikey": self.key,
            "Authorization": f"Bearer {self.key}",
            "Content-Type": "application/json",
            **extra,
        }

    def _require_config(self) -> None:
        if not self.configured:
            raise StoreError("Supabase não configurado.")

    @staticmethod
    def _raise_for_status(r: httpx.Response) -> None:
        if r.is_success:
            return
        try:
            body = r.json()
        except ValueError:
            body = None
        detail = body.get("message") if isinstance(body, dict) else None
        detail = detail or r.text
        raise StoreError(f"HTTP {r.status_code}: {detail}")

    @staticmethod
    def _json(r: httpx.Response) -> Any:
        try:
            return r.json()
        except ValueError as exc:
            raise StoreError(f"Resposta inválida de {r.url}: {exc}") from exc

    async def save(self, record: dict[str, Any]) -> dict[str, Any]:
        """Upsert one record on ``id`` and return the stored row."""
        self._require_config()
        record = ensure_id(record)
        r = await self.client.post(
            self.endpoint,
            params={"on_conflict": "id"},
            json=[record],
            headers=self._headers(Prefer="resolution=merge-duplicates,return=representation"),
            timeout=self.timeout,
        )
        self._raise_for_status(r)
        rows = self._json(r)
        return rows[0] if isinstance(rows, list) and rows else record

    async def fetch_all(self) -> list[dict[str, Any]]:
        self._require_config()
        r = await self.client.get(
            self.endpoint,
            params={"select": "*", "order": "created_at.desc"},
            headers=self._headers(),
            timeout=self.timeout,
        )
        self._raise_for_status(r)
        rows = self._json(r)
        if not isinstance(rows, list):
            raise StoreError(f"Resposta inesperada de {r.url}")
        return rows

    async def delete(self, record_id: str) -> None:
        self._require_config()
        r = await self.client.delete(
            self.endpoint,
            params={"id": f"eq.{record_id}"},
            headers=self._headers(),
            timeout=self.timeout,
        )
        self._raise_for_status(r)

    async def test_connection(self) -> bool:
        """True when the project answers with valid credentials.

        A missing table still counts as connected so the schema can be
        created afterwards; auth failures and transport errors do not.
        """
        if not self.configured:
            return False
        try:
            r = await self.client.head(
                self.endpoint,
                params={"select": "count"},
                headers=self._headers(Prefer="count=exact"),
                timeout=self.timeout,
            )
        except httpx.HTTPError as exc:
            log.warning("Connection test failed: %s", exc)
            return False

        if r.is_success:
            return True
        if r.status_code in (401, 403) or "JWT" in r.text:
            return False
        return True


# ---------------------------------------------------------------------------
# Local file fallback
# ---------------------------------------------------------------------------

class LocalTable:
    """JSON file holding records newest-first.

    File work runs in a worker thread so the event loop never blocks on disk.
    """

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)

    def _read(self) -> list[dict[str, Any]]:
        if not self.path.exists():
            return []
        try:
            return json.loads(self.path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as exc:
            log.warning("Corrupt local store %s: %s", self.path, exc)
            return []

    def _write(self, records: list[dict[str, Any]]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps(records, ensure_ascii=False, indent=2), encoding="utf-8")

    def _save(self, record: dict[str, Any]) -> dict[str, Any]:
        others = [r for r in self._read() if r.get("id") != record["id"]]
        self._write([record, *others])
        return record

    def _delete(self, record_id: str) -> None:
        self._write([r for r in self._read() if r.get("id") != record_id])

    async def save(self, record: dict[str, Any]) -> dict[str, Any]:
        record = dict(ensure_id(record))
        record.setdefault("created_at", datetime.now(timezone.utc).isoformat())
        return await asyncio.to_thread(self._save, record)

    async def fetch_all(self) -> list[dict[str, Any]]:
        return await asyncio.to_thread(self._read)

    async def delete(self, record_id: str) -> None:
        await asyncio.to_thread(self._delete, record_id)


# ---------------------------------------------------------------------------
# Repository: hosted first, local on failure
# ---------------------------------------------------------------------------

class Repository:
    """Routes each call to the hosted table, falling back to the local file.

    Every method returns ``(payload, source)`` with source ``"remote"`` or
    ``"local"`` so callers can tell the user where data went.
    """

    def __init__(self, remote: SupabaseTable, local: LocalTable) -> None:
        self.remote = remote
        self.local = local

    async def save(self, record: dict[str, Any]) -> tuple[dict[str, Any], str]:
        record = ensure_id(record)
        try:
            return await self.remote.save(record), "remote"
        except (StoreError, httpx.HTTPError) as exc:
            log.warning("Save on %s fell back to local store: %s", self.remote.table, exc)
            return await self.local.save(record), "local"

    async def fetch_all(self) -> tuple[list[dict[str, Any]], str]:
        try:
            return await self.remote.fetch_all(), "remote"
        except (StoreError, httpx.HTTPError) as exc:
            log.warning("Fetch on %s fell back to local store: %s", self.remote.table, exc)
            return await self.local.fetch_all(), "local"

    async def get(self, record_id: str) -> tuple[dict[str, Any] | None, str]:
        records, source = await self.fetch_all()
        for record in records:
            if record.get("id") == record_id:
                return record, source
        return None, source

    async def delete(self, record_id: str) -> str:
        try:
            await self.remote.delete(record_id)
            return "remote"
        except (StoreError, httpx.HTTPError) as exc:
            log.warning("Delete on %s fell back to local store: %s", self.remote.table, exc)
            await self.local.delete(record_id)
            return "local"
