from conftest import CRAWLER_KEY

ALICE = {"username": "alice", "email": "a@x.com", "password": "pw123", "password2": "pw123"}


def _ingest(client, pages, key=CRAWLER_KEY):
    headers = {"X-API-Key": key} if key is not None else {}
    return client.post("/api/batch-pages", json={"pages": pages}, headers=headers)


def test_importing_main_builds_no_app():
    import oggole.main

    assert not hasattr(oggole.main, "app")


def test_health(client):
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "running"


class TestAuthRoutes:

    def test_register_sets_cookie_and_signs_in(self, client):
        response = client.post("/api/register", data=ALICE)

        assert response.status_code == 201
        assert response.json()["username"] == "alice"
        set_cookie = response.headers["set-cookie"]
        assert "session_token=" in set_cookie
        assert "HttpOnly" in set_cookie
        assert "Max-Age=86400" in set_cookie

        me = client.get("/api/me")
        assert me.status_code == 200
        assert me.json()["username"] == "alice"
        assert "password_hash" not in me.json()

    def test_register_validation_error(self, client):
        response = client.post("/api/register", data={**ALICE, "password2": "other"})

        assert response.status_code == 400
        assert response.json()["code"] == "VALIDATION_ERROR"

    def test_register_missing_fields(self, client):
        response = client.post("/api/register", data={"username": "alice"})

        assert response.status_code == 400

    def test_register_conflict(self, client):
        client.post("/api/register", data=ALICE)

        response = client.post("/api/register", data={**ALICE, "email": "other@x.com"})

        assert response.status_code == 409

    def test_login_failures_are_indistinguishable(self, client):
        client.post("/api/register", data=ALICE)

        wrong_password = client.post("/api/login", data={"username": "alice", "password": "wrongpw"})
        unknown_user = client.post("/api/login", data={"username": "nobody", "password": "wrongpw"})

        assert wrong_password.status_code == unknown_user.status_code == 401
        assert wrong_password.json() == unknown_user.json()
        assert "set-cookie" not in wrong_password.headers

    def test_login_success(self, client):
        client.post("/api/register", data=ALICE)
        client.cookies.clear()

        response = client.post("/api/login", data={"username": "alice", "password": "pw123"})

        assert response.status_code == 200
        assert "session_token=" in response.headers["set-cookie"]
        assert client.get("/api/me").json()["login_count"] == 1

    def test_login_requires_post(self, client):
        assert client.get("/api/login").status_code == 405

    def test_me_without_session(self, client):
        response = client.get("/api/me")

        assert response.status_code == 401
        assert response.json()["code"] == "SESSION_NOT_FOUND"

    def test_logout_clears_cookie_and_session(self, client):
        client.post("/api/register", data=ALICE)
        token = client.cookies.get("session_token")

        response = client.post("/api/logout")

        assert response.status_code == 200
        assert "Max-Age=-1" in response.headers["set-cookie"]
        client.cookies.set("session_token", token)
        assert client.get("/api/me").status_code == 401

    def test_logout_twice_is_fine(self, client):
        client.post("/api/register", data=ALICE)

        assert client.post("/api/logout").status_code == 200
        assert client.post("/api/logout").status_code == 200


class TestSearchRoutes:

    def test_search_returns_ingested_pages(self, client):
        _ingest(client, [
            {"title": "Notes", "url": "https://example.com/notes", "language": "en",
             "content": "These are alice's notes."},
            {"title": "Noter", "url": "https://example.com/noter", "language": "da",
             "content": "Dette er alice's notes på dansk."},
        ])

        response = client.get("/api/search", params={"q": "alice's notes", "language": "en"})

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("application/json")
        body = response.json()
        assert [page["title"] for page in body] == ["Notes"]
        assert set(body[0]) == {"title", "url", "language", "last_updated", "content"}

    def test_unknown_language_behaves_like_english(self, client):
        _ingest(client, [{"title": "Go", "url": "https://example.com/go", "content": "golang"}])

        english = client.get("/api/search", params={"q": "golang", "language": "en"}).json()
        unknown = client.get("/api/search", params={"q": "golang", "language": "xx"}).json()

        assert english == unknown
        assert len(english) == 1

    def test_empty_query(self, client):
        response = client.get("/api/search")

        assert response.status_code == 200
        assert response.json() == []

    def test_query_length_limit(self, client):
        assert client.get("/api/search", params={"q": "a" * 200}).status_code == 200
        assert client.get("/api/search", params={"q": "a" * 201}).status_code == 400

    def test_search_metrics(self, client):
        client.get("/api/search", params={"q": "nothing"})

        metrics = client.get("/metrics").text

        assert "oggole_search_queries_total 1.0" in metrics
        assert "oggole_search_zero_results_total 1.0" in metrics


class TestBatchPages:

    def test_requires_api_key(self, client):
        pages = [{"title": "Go", "url": "https://example.com/go", "content": "golang"}]

        assert _ingest(client, pages, key=None).status_code == 401
        assert _ingest(client, pages, key="wrong").status_code == 401
        assert client.get("/api/search", params={"q": "golang"}).json() == []

    def test_reports_counts(self, client):
        response = _ingest(client, [
            {"title": "Go", "url": "https://example.com/go", "content": "golang"},
            {"title": "Broken", "content": "no url"},
        ])

        assert response.status_code == 200
        assert response.json() == {"success_count": 1, "error_count": 1, "total": 2}

        metrics = client.get("/metrics").text
        assert "oggole_pages_indexed_total 1.0" in metrics
        assert "oggole_pages_in_database 1.0" in metrics


class TestWeatherRoute:

    def test_weather_is_cached(self, client, upstream):
        first = client.get("/api/weather")
        second = client.get("/api/weather")

        assert first.status_code == 200
        assert first.json() == second.json()
        assert len(first.json()["forecast"]) == 5
        assert upstream.endpoints() == ["weather", "forecast"]

    def test_weather_response_fields(self, client):
        body = client.get("/api/weather").json()

        assert set(body) == {"location", "current_conditions", "forecast", "fetched_at", "expires_at"}
        assert body["current_conditions"]["description"] == "light rain"

    def test_upstream_failure(self, client, upstream):
        upstream.fail_with_status = 500

        response = client.get("/api/weather")

        assert response.status_code == 502
        assert response.json()["code"] == "UPSTREAM_ERROR"

    def test_invalid_coordinates(self, client):
        assert client.get("/api/weather", params={"lat": 123}).status_code == 422


def test_end_to_end_register_login_search(client):
    registered = client.post("/api/register", data=ALICE)
    assert registered.status_code == 201
    token = client.cookies.get("session_token")

    failed = client.post("/api/login", data={"username": "alice", "password": "wrongpw"})
    assert failed.status_code == 401
    assert client.cookies.get("session_token") == token
    assert client.get("/api/me").json()["username"] == "alice"

    _ingest(client, [{
        "title": "Alice",
        "url": "https://example.com/alice",
        "content": "A page about alice's notes and other things.",
    }])
    results = client.get("/api/search", params={"q": "alice's notes", "language": "en"}).json()
    assert [page["title"] for page in results] == ["Alice"]
