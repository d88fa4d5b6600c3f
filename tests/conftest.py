import os

os.environ["ENVIRONMENT"] = "testing"
for _name in ("AIRTABLE_API_TOKEN", "AIRTABLE_BASE_ID", "AIRTABLE_LEADS_TABLE", "SENTRY_DSN"):
    os.environ.pop(_name, None)

import itertools
from typing import Any, Dict, List, Optional

import pytest
from fastapi.testclient import TestClient

from leadmagnet.core.exceptions import AirtableError, AirtableRequestError
from leadmagnet.main import app
from leadmagnet.services.airtable import (
    AirtableRecord,
    TokenLookupResult,
    get_record_store,
    pick_defined_fields,
)
from leadmagnet.services.normalization import normalize_download_count, utc_now_iso


class FakeRecordStore:
    """In-memory RecordStore with Airtable's write semantics."""

    def __init__(self) -> None:
        self.records: Dict[str, AirtableRecord] = {}
        self.calls: List[str] = []
        self.fail_on: set = set()
        self._ids = itertools.count(1)

    def seed(self, **fields: Any) -> str:
        record_id = f"recSEED{next(self._ids):08d}"
        self.records[record_id] = AirtableRecord(id=record_id, fields=dict(fields), created_time=utc_now_iso())
        return record_id

    def _check(self, operation: str) -> None:
        self.calls.append(operation)
        if operation in self.fail_on:
            raise AirtableRequestError(503, "service unavailable")

    async def find_by_token(self, token: str) -> TokenLookupResult:
        self._check("find_by_token")
        for record in self.records.values():
            if record.fields.get("token") == token:
                return TokenLookupResult.from_record(record)
        return TokenLookupResult.from_record(None)

    async def find_by_record_id(self, record_id: str) -> Optional[AirtableRecord]:
        self._check("find_by_record_id")
        return self.records.get(record_id)

    async def create_lead(self, fields: Dict[str, Any]) -> TokenLookupResult:
        self._check("create_lead")
        record_id = f"recNEW{next(self._ids):010d}"
        record = AirtableRecord(id=record_id, fields=pick_defined_fields(fields), created_time=utc_now_iso())
        self.records[record_id] = record
        return TokenLookupResult.from_record(record)

    async def update_lead(self, record_id: str, fields: Dict[str, Any]) -> TokenLookupResult:
        self._check("update_lead")
        existing = self.records[record_id]
        merged = {**existing.fields, **pick_defined_fields(fields)}
        record = AirtableRecord(id=record_id, fields=merged, created_time=existing.created_time)
        self.records[record_id] = record
        return TokenLookupResult.from_record(record)

    async def increment_download(self, record_id: str, extra_fields=None) -> TokenLookupResult:
        self._check("increment_download")
        record = self.records.get(record_id)
        if record is None:
            raise AirtableError("Record not found for download increment")
        current = normalize_download_count(record.fields.get("download_count"))
        now = utc_now_iso()
        return await self.update_lead(
            record_id,
            {"download_count": current + 1, "ts_downloaded": now, "last_seen_at": now, **(extra_fields or {})},
        )


@pytest.fixture
def store() -> FakeRecordStore:
    return FakeRecordStore()


@pytest.fixture
def client(store: FakeRecordStore):
    app.dependency_overrides[get_record_store] = lambda: store
    yield TestClient(app)
    app.dependency_overrides.clear()
