import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer

from leadmagnet.client.api import HttpLeadMagnetApi, LeadMagnetApiError


@pytest.fixture
async def endpoints():
    received = []

    async def resolve_known(request):
        received.append(("GET", request.path, dict(request.query)))
        if request.query.get("token") == "broken":
            return web.Response(status=502, text="<html>bad gateway</html>")
        return web.json_response({"ok": True, "known": True, "tokenMatched": False, "name": "", "leadRecordId": None})

    async def capture(request):
        received.append(("POST", request.path, await request.json()))
        return web.json_response({"ok": False, "error": "Invalid email"}, status=400)

    async def download(request):
        received.append(("POST", request.path, await request.json()))
        return web.json_response({"ok": True, "status": "noop_no_identifier"})

    app = web.Application()
    app.router.add_get("/api/lead-magnet/resolve-known", resolve_known)
    app.router.add_post("/api/lead-magnet/capture", capture)
    app.router.add_post("/api/lead-magnet/download", download)

    server = TestServer(app)
    await server.start_server()
    yield HttpLeadMagnetApi(str(server.make_url("/"))), received
    await server.close()


@pytest.mark.asyncio
async def test_resolve_known_sends_query(endpoints):
    api, received = endpoints
    body = await api.resolve_known("abc123", "Ann")
    assert body["known"] is True
    assert received == [("GET", "/api/lead-magnet/resolve-known", {"token": "abc123", "firstname": "Ann"})]


@pytest.mark.asyncio
async def test_error_status_with_json_body_is_returned(endpoints):
    api, _ = endpoints
    body = await api.capture({"email": "bad"})
    assert body == {"ok": False, "error": "Invalid email"}


@pytest.mark.asyncio
async def test_non_json_response_raises(endpoints):
    api, _ = endpoints
    with pytest.raises(LeadMagnetApiError) as exc_info:
        await api.resolve_known("broken")
    assert exc_info.value.code == "invalid_response"
    assert exc_info.value.status == 502


@pytest.mark.asyncio
async def test_track_download_posts_payload(endpoints):
    api, received = endpoints
    await api.track_download({"token": "abc"})
    assert received[-1] == ("POST", "/api/lead-magnet/download", {"token": "abc"})


@pytest.mark.asyncio
async def test_unreachable_server_raises():
    api = HttpLeadMagnetApi("http://127.0.0.1:9")
    with pytest.raises(LeadMagnetApiError) as exc_info:
        await api.capture({"email": "a@b.co"})
    assert exc_info.value.code == "client_error"
