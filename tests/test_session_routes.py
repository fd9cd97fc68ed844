def test_health(client) -> None:
    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.json() == {"ok": True, "sync_engine": True}


def test_create_or_get_session(client) -> None:
    created = client.post("/api/sessions", json={"sessionId": "abc", "videoUrl": "http://x/y.mp4"})
    again = client.post("/api/sessions", json={"sessionId": "abc", "videoUrl": "http://x/other.mp4"})

    assert created.status_code == 200
    body = created.json()
    assert body["id"] == "abc"
    assert body["videoUrl"] == "http://x/y.mp4"
    assert body["isPlaying"] is False
    assert body["currentTime"] == 0
    assert body["videoSources"] == []
    assert body["selectedSourceId"] is None
    assert again.json()["videoUrl"] == "http://x/y.mp4"


def test_create_without_id_generates_one(client) -> None:
    first = client.post("/api/sessions", json={}).json()
    second = client.post("/api/sessions").json()

    assert first["id"]
    assert second["id"]
    assert first["id"] != second["id"]
    assert first["videoUrl"] is None


def test_get_session_reports_viewer_count(client) -> None:
    client.post("/api/sessions", json={"sessionId": "abc"})

    resp = client.get("/api/sessions/abc")

    assert resp.status_code == 200
    assert resp.json()["viewerCount"] == 0


def test_unknown_session_is_404(client) -> None:
    assert client.get("/api/sessions/ghost").status_code == 404
    assert client.patch("/api/sessions/ghost", json={"isPlaying": True}).status_code == 404
    assert client.get("/api/sessions/ghost/sources").status_code == 404
    assert client.post("/api/sessions/ghost/sources", json={"url": "http://x"}).status_code == 404
    assert client.delete("/api/sessions/ghost/sources/s1").status_code == 404


def test_patch_merges_fields(client) -> None:
    client.post("/api/sessions", json={"sessionId": "abc", "videoUrl": "http://x/y.mp4"})

    resp = client.patch("/api/sessions/abc", json={"isPlaying": True, "currentTime": 12.5})

    assert resp.status_code == 200
    body = resp.json()
    assert body["isPlaying"] is True
    assert body["currentTime"] == 12.5
    assert body["videoUrl"] == "http://x/y.mp4"


def test_patch_rejects_unknown_selection(client) -> None:
    client.post("/api/sessions", json={"sessionId": "abc"})

    resp = client.patch("/api/sessions/abc", json={"selectedSourceId": "missing"})

    assert resp.status_code == 400


def test_patch_rejects_non_finite_current_time(client) -> None:
    client.post("/api/sessions", json={"sessionId": "abc"})
    client.patch("/api/sessions/abc", json={"currentTime": 30})

    resp = client.patch(
        "/api/sessions/abc",
        content='{"currentTime": 1e999}',
        headers={"Content-Type": "application/json"},
    )

    assert resp.status_code == 422
    assert resp.json()["detail"][0]["loc"] == ["body", "currentTime"]
    follow_up = client.get("/api/sessions/abc")
    assert follow_up.status_code == 200
    assert follow_up.json()["currentTime"] == 30


def test_source_crud(client) -> None:
    client.post("/api/sessions", json={"sessionId": "abc"})

    added = client.post("/api/sessions/abc/sources", json={"url": "http://x/en.mp4", "language": "en", "addedBy": "v1"})
    assert added.status_code == 200
    sources = added.json()
    assert len(sources) == 1
    source = sources[0]
    assert source["title"] == "Untitled Video"
    assert source["language"] == "en"
    assert source["addedBy"] == "v1"

    assert client.get("/api/sessions/abc/sources").json() == sources

    selected = client.patch("/api/sessions/abc", json={"selectedSourceId": source["id"]})
    assert selected.json()["selectedSourceId"] == source["id"]

    removed = client.delete(f"/api/sessions/abc/sources/{source['id']}")
    assert removed.json() == []
    assert client.get("/api/sessions/abc").json()["selectedSourceId"] is None

    assert client.delete(f"/api/sessions/abc/sources/{source['id']}").json() == []


def test_viewers_empty_without_connections(client) -> None:
    client.post("/api/sessions", json={"sessionId": "abc"})

    assert client.get("/api/sessions/abc/viewers").json() == []
