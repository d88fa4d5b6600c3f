import json

import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer

from leadmagnet.core.config import Settings
from leadmagnet.core.exceptions import AirtableConfigError, AirtableError, AirtableRequestError
from leadmagnet.services.airtable import (
    AirtableClient,
    AirtableConfig,
    build_lead_fields,
    escape_formula_string,
    pick_defined_fields,
    reset_token_prefix_warning,
)

BASE_ID = "appTEST1234"
TABLE = "Leads Table"


def make_settings(**overrides) -> Settings:
    values = {
        "ENVIRONMENT": "testing",
        "AIRTABLE_API_TOKEN": "patTEST.secret",
        "AIRTABLE_BASE_ID": BASE_ID,
        "AIRTABLE_LEADS_TABLE": TABLE,
    }
    values.update(overrides)
    return Settings(**values)


class FakeAirtable:
    """Minimal Airtable REST emulation for one table."""

    def __init__(self) -> None:
        self.records = {}
        self.requests = []
        self.fail_status = None

    def app(self) -> web.Application:
        app = web.Application()
        prefix = f"/v0/{BASE_ID}/{{table}}"
        app.router.add_get(prefix, self.list_records)
        app.router.add_get(prefix + "/{record_id}", self.get_record)
        app.router.add_post(prefix, self.create_records)
        app.router.add_patch(prefix, self.update_records)
        return app

    async def _record(self, request):
        body = await request.json() if request.can_read_body else None
        self.requests.append({
            "method": request.method,
            "path": request.path,
            "query": dict(request.query),
            "auth": request.headers.get("Authorization"),
            "body": body,
        })
        return body

    def _failure(self):
        if self.fail_status:
            return web.Response(status=self.fail_status, text="x" * 1000)
        return None

    async def list_records(self, request):
        await self._record(request)
        failure = self._failure()
        if failure:
            return failure
        formula = request.query.get("filterByFormula", "")
        matches = [
            record for record in self.records.values()
            if formula == f"{{token}}='{record['fields'].get('token')}'"
        ]
        return web.json_response({"records": matches[: int(request.query.get("maxRecords", "100"))]})

    async def get_record(self, request):
        await self._record(request)
        record = self.records.get(request.match_info["record_id"])
        if record is None:
            return web.json_response({"error": "NOT_FOUND"}, status=404)
        return web.json_response(record)

    async def create_records(self, request):
        body = await self._record(request)
        failure = self._failure()
        if failure:
            return failure
        created = []
        for item in body["records"]:
            record_id = f"recCREATED{len(self.records) + 1:05d}"
            record = {"id": record_id, "createdTime": "2026-01-01T00:00:00.000Z", "fields": item["fields"]}
            self.records[record_id] = record
            created.append(record)
        return web.json_response({"records": created})

    async def update_records(self, request):
        body = await self._record(request)
        updated = []
        for item in body["records"]:
            record = self.records[item["id"]]
            record["fields"].update(item["fields"])
            updated.append(record)
        return web.json_response({"records": updated})


@pytest.fixture
async def airtable():
    fake = FakeAirtable()
    server = TestServer(fake.app())
    await server.start_server()
    fake.base_url = str(server.make_url("/v0"))
    yield fake
    await server.close()


@pytest.fixture
def airtable_client(airtable):
    return AirtableClient(settings=make_settings(AIRTABLE_API_BASE=airtable.base_url))


def test_config_lists_every_missing_variable():
    settings = Settings(ENVIRONMENT="testing", AIRTABLE_BASE_ID=BASE_ID)
    with pytest.raises(AirtableConfigError) as exc_info:
        AirtableConfig.from_settings(settings)
    assert exc_info.value.missing == ["AIRTABLE_API_TOKEN", "AIRTABLE_LEADS_TABLE"]
    assert "Missing: AIRTABLE_API_TOKEN, AIRTABLE_LEADS_TABLE" in exc_info.value.message


def test_config_rejects_malformed_base_and_table():
    with pytest.raises(AirtableConfigError):
        AirtableConfig.from_settings(make_settings(AIRTABLE_BASE_ID="appABC/tblXYZ"))
    with pytest.raises(AirtableConfigError):
        AirtableConfig.from_settings(make_settings(AIRTABLE_BASE_ID="baseABC"))
    with pytest.raises(AirtableConfigError):
        AirtableConfig.from_settings(make_settings(AIRTABLE_LEADS_TABLE="tblA/viwB"))


def test_config_quotes_table_name():
    config = AirtableConfig.from_settings(make_settings())
    assert config.table_url == f"https://api.airtable.com/v0/{BASE_ID}/Leads%20Table"


def test_token_prefix_warning_is_logged_once(monkeypatch):
    import leadmagnet.services.airtable as airtable_module

    warnings = []
    monkeypatch.setattr(airtable_module.logger, "warning", lambda event, **kw: warnings.append(event))
    reset_token_prefix_warning()

    AirtableConfig.from_settings(make_settings(AIRTABLE_API_TOKEN="keyOLD"))
    AirtableConfig.from_settings(make_settings(AIRTABLE_API_TOKEN="keyOLD"))
    assert warnings == ["airtable.token_prefix_unexpected"]


def test_pick_defined_fields_drops_none_only():
    assert pick_defined_fields({"a": None, "b": 0, "c": False, "d": ""}) == {"b": 0, "c": False, "d": ""}


def test_escape_formula_string():
    assert escape_formula_string("a'b") == "a\\'b"
    assert escape_formula_string("a\\b") == "a\\\\b"
    assert escape_formula_string("a\r\nb") == "a  b"


def test_build_lead_fields_normalizes_and_omits_absent():
    fields = build_lead_fields(
        email=" Max@Example.com ",
        token="bad token",
        consent_marketing="yes",
        utm_campaign="c" * 300,
        ts_submitted="not a date",
        download_count=2.7,
        last_seen_at="2026-02-02T10:00:00Z",
    )
    assert fields == {
        "email": "max@example.com",
        "utm_campaign": "c" * 180,
        "last_seen_at": "2026-02-02T10:00:00.000Z",
        "download_count": 2,
    }


def test_build_lead_fields_defaults_last_seen():
    fields = build_lead_fields(email="a@b.co")
    assert fields["last_seen_at"].endswith("Z")


@pytest.mark.asyncio
async def test_find_by_token(airtable, airtable_client):
    airtable.records["recKNOWN0001"] = {
        "id": "recKNOWN0001",
        "createdTime": "2026-01-01T00:00:00.000Z",
        "fields": {"token": "abc123", "name": "Anna", "download_count": 4},
    }

    result = await airtable_client.find_by_token("abc123")
    assert result.record_id == "recKNOWN0001"
    assert result.token_matched is True
    assert result.first_name == "Anna"
    assert result.download_count == 4

    request = airtable.requests[-1]
    assert request["auth"] == "Bearer patTEST.secret"
    assert request["path"] == f"/v0/{BASE_ID}/{TABLE}"
    assert request["query"] == {"maxRecords": "1", "filterByFormula": "{token}='abc123'"}


@pytest.mark.asyncio
async def test_find_by_token_no_match_and_invalid_token(airtable, airtable_client):
    result = await airtable_client.find_by_token("unknown")
    assert result.record_id is None
    assert result.token_matched is False

    requests_before = len(airtable.requests)
    result = await airtable_client.find_by_token("bad token")
    assert result.token_matched is False
    assert len(airtable.requests) == requests_before


@pytest.mark.asyncio
async def test_create_lead_sends_only_defined_fields(airtable, airtable_client):
    result = await airtable_client.create_lead({"email": "a@b.co", "name": None, "token": "t1"})
    assert result.token_matched is True
    assert result.record_id.startswith("rec")
    assert airtable.requests[-1]["body"] == {"records": [{"fields": {"email": "a@b.co", "token": "t1"}}]}


@pytest.mark.asyncio
async def test_update_lead_rejects_invalid_record_id(airtable_client):
    with pytest.raises(AirtableError):
        await airtable_client.update_lead("not-a-record", {"email": "a@b.co"})


@pytest.mark.asyncio
async def test_non_success_response_raises_with_truncated_body(airtable, airtable_client):
    airtable.fail_status = 422
    with pytest.raises(AirtableRequestError) as exc_info:
        await airtable_client.create_lead({"email": "a@b.co"})
    assert exc_info.value.status == 422
    assert len(exc_info.value.body) == 400


@pytest.mark.asyncio
async def test_find_by_record_id_missing_returns_none(airtable, airtable_client):
    assert await airtable_client.find_by_record_id("recMISSING0001") is None
    assert await airtable_client.find_by_record_id("garbage") is None


@pytest.mark.asyncio
async def test_increment_download_is_monotonic(airtable, airtable_client):
    airtable.records["recCOUNT00001"] = {
        "id": "recCOUNT00001",
        "fields": {"token": "abc", "download_count": 2},
    }

    first = await airtable_client.increment_download("recCOUNT00001", {"page_path": "/playbook"})
    second = await airtable_client.increment_download("recCOUNT00001")

    assert first.download_count == 3
    assert second.download_count == 4
    fields = airtable.records["recCOUNT00001"]["fields"]
    assert fields["page_path"] == "/playbook"
    assert fields["ts_downloaded"] == fields["last_seen_at"]


@pytest.mark.asyncio
async def test_increment_download_unknown_record(airtable, airtable_client):
    with pytest.raises(AirtableError):
        await airtable_client.increment_download("recMISSING0001")


@pytest.mark.asyncio
async def test_missing_config_surfaces_on_request():
    client = AirtableClient(settings=Settings(ENVIRONMENT="testing"))
    with pytest.raises(AirtableConfigError):
        await client.find_by_token("abc")


@pytest.mark.asyncio
async def test_transport_error_becomes_request_error():
    client = AirtableClient(settings=make_settings(AIRTABLE_API_BASE="http://127.0.0.1:9/v0"))
    with pytest.raises(AirtableRequestError) as exc_info:
        await client.find_by_token("abc")
    assert exc_info.value.status == 0
