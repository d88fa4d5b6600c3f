def test_resolve_known_matched(client, store):
    record_id = store.seed(token="abc123", name="Anna")

    response = client.get("/api/lead-magnet/resolve-known", params={"token": "abc123", "firstname": "Ann"})

    assert response.status_code == 200
    assert response.headers["cache-control"] == "no-store"
    assert response.json() == {
        "ok": True,
        "known": True,
        "tokenMatched": True,
        "name": "Anna",
        "leadRecordId": record_id,
        "token": "abc123",
    }


def test_resolve_known_unmatched_uses_fallback_name(client, store):
    response = client.get("/api/lead-magnet/resolve-known", params={"token": "zzz", "firstname": " Ben "})

    body = response.json()
    assert response.status_code == 200
    assert body["known"] is True
    assert body["tokenMatched"] is False
    assert body["name"] == "Ben"
    assert body["leadRecordId"] is None


def test_resolve_known_without_fallback_name(client, store):
    response = client.get("/api/lead-magnet/resolve-known", params={"token": "zzz"})
    assert response.json()["name"] == ""


def test_resolve_known_missing_token(client, store):
    response = client.get("/api/lead-magnet/resolve-known", params={"firstname": "Ben"})

    assert response.status_code == 400
    assert response.json() == {
        "ok": False,
        "error": "Missing or invalid token",
        "known": False,
        "tokenMatched": False,
        "name": "Ben",
        "leadRecordId": None,
    }
    assert store.calls == []


def test_resolve_known_invalid_token(client, store):
    response = client.get("/api/lead-magnet/resolve-known", params={"token": "a b"})
    assert response.status_code == 400
    assert response.json()["known"] is False


def test_resolve_known_store_failure(client, store):
    store.fail_on.add("find_by_token")

    response = client.get("/api/lead-magnet/resolve-known", params={"token": "abc123", "firstname": "Ann"})

    assert response.status_code == 500
    assert response.json() == {
        "ok": False,
        "error": "Unable to resolve known lead",
        "known": True,
        "tokenMatched": False,
        "name": "Ann",
        "leadRecordId": None,
        "token": "abc123",
    }
