"""
tests/test_api_routes.py -- Integration tests for the HTTP surface.

These tests exercise the full stack: FastAPI routing -> request models ->
AuthService / EngagementTracker -> DocumentStore -> response models and
the error envelope. Unit tests of the services would miss the status code
mapping and the camelCase wire format.

Every test in this module shares one store (module-scoped api_client), so
each test uses its own logins and X-Forwarded-For addresses.
"""

from __future__ import annotations

from types import SimpleNamespace

from fastapi.testclient import TestClient

from auth.tokens import decode_access_token
from core.errors import PersistenceError


def _from(ip: str) -> dict[str, str]:
    return {"X-Forwarded-For": ip}


class TestRegisterRoute:
    def test_register_created(self, api_client: TestClient) -> None:
        resp = api_client.post(
            "/register",
            json={"firstName": "Alice", "lastName": "A", "login": "alice1", "password": "secret1"},
        )
        assert resp.status_code == 201, resp.text
        assert resp.json() == {"message": "User registered successfully"}

    def test_register_duplicate_is_400(self, api_client: TestClient) -> None:
        body = {"login": "dupe-user", "password": "secret1"}
        assert api_client.post("/register", json=body).status_code == 201
        resp = api_client.post("/register", json=body)
        assert resp.status_code == 400
        assert resp.json() == {"error": "Login already exists", "code": "conflict"}

    def test_register_short_password(self, api_client: TestClient) -> None:
        resp = api_client.post("/register", json={"login": "shorty", "password": "12345"})
        assert resp.status_code == 400
        assert resp.json()["error"] == "Password must be at least 6 characters"

    def test_register_short_login(self, api_client: TestClient) -> None:
        resp = api_client.post("/register", json={"login": "ab", "password": "secret1"})
        assert resp.status_code == 400
        assert resp.json()["error"] == "Login must be at least 3 characters"

    def test_register_missing_fields(self, api_client: TestClient) -> None:
        resp = api_client.post("/register", json={})
        assert resp.status_code == 400
        assert resp.json()["error"] == "Login and password are required"

    def test_register_wrong_types(self, api_client: TestClient) -> None:
        resp = api_client.post("/register", json={"login": 12345, "password": ["secret1"]})
        assert resp.status_code == 400
        assert resp.json()["code"] == "validation_error"


class TestLoginRoute:
    def test_login_returns_token_and_profile(self, api_client: TestClient) -> None:
        api_client.post(
            "/register",
            json={"firstName": "Bob", "lastName": "B", "login": "bob-login", "password": "secret1"},
        )
        resp = api_client.post("/login", json={"login": "bob-login", "password": "secret1"})
        assert resp.status_code == 200, resp.text
        assert resp.headers["Cache-Control"] == "no-store"

        data = resp.json()
        user = data["user"]
        assert user["login"] == "bob-login"
        assert user["firstName"] == "Bob"
        assert user["lastName"] == "B"
        assert set(user) == {"id", "firstName", "lastName", "login"}
        assert decode_access_token(data["token"])["user_id"] == user["id"]

    def test_wrong_password_and_unknown_login_are_identical(self, api_client: TestClient) -> None:
        api_client.post("/register", json={"login": "carol-login", "password": "secret1"})
        wrong = api_client.post("/login", json={"login": "carol-login", "password": "wrong"})
        unknown = api_client.post("/login", json={"login": "no-such-login", "password": "secret1"})
        assert wrong.status_code == unknown.status_code == 401
        assert wrong.json() == unknown.json() == {"error": "Invalid login or password", "code": "bad_credentials"}

    def test_login_missing_fields(self, api_client: TestClient) -> None:
        resp = api_client.post("/login", json={"login": "carol-login"})
        assert resp.status_code == 400
        assert resp.json()["error"] == "Login and password are required"


class TestVoteRoutes:
    def test_one_vote_per_origin(self, api_client: TestClient) -> None:
        before = api_client.get("/results", headers=_from("10.0.0.1")).json()["votes"]

        resp = api_client.post("/vote", json={"vote": "support"}, headers=_from("1.2.3.4"))
        assert resp.status_code == 200
        assert resp.json() == {"success": True}

        again = api_client.post("/vote", json={"vote": "oppose"}, headers=_from("1.2.3.4"))
        assert again.status_code == 403
        assert again.json()["error"] == "You already voted."

        after = api_client.get("/results", headers=_from("10.0.0.1")).json()["votes"]
        assert after == {"support": before["support"] + 1, "oppose": before["oppose"]}

    def test_invalid_choice_is_400_and_not_counted(self, api_client: TestClient) -> None:
        before = api_client.get("/results", headers=_from("10.0.0.2")).json()["votes"]
        for body in ({"vote": "maybe"}, {"vote": ""}, {}):
            resp = api_client.post("/vote", json=body, headers=_from("2.2.2.2"))
            assert resp.status_code == 400
            assert resp.json()["code"] == "validation_error"
        after = api_client.get("/results", headers=_from("10.0.0.2")).json()["votes"]
        assert after == before

        # The rejected attempts did not use up this origin's vote.
        assert api_client.post("/vote", json={"vote": "oppose"}, headers=_from("2.2.2.2")).status_code == 200

    def test_first_forwarded_address_is_the_origin(self, api_client: TestClient) -> None:
        headers = {"X-Forwarded-For": "3.3.3.3, 10.1.1.1"}
        assert api_client.post("/vote", json={"vote": "support"}, headers=headers).status_code == 200
        resp = api_client.post("/vote", json={"vote": "support"}, headers=_from("3.3.3.3"))
        assert resp.status_code == 403

    def test_results_shape(self, api_client: TestClient) -> None:
        resp = api_client.get("/results", headers=_from("4.4.4.4"))
        assert resp.status_code == 200
        data = resp.json()
        assert set(data) == {"votes", "visitors", "message"}
        assert set(data["votes"]) == {"support", "oppose"}
        assert data["visitors"] >= 1
        assert data["message"]


class TestVisitorRoutes:
    def test_track_visit_counts_once_per_origin(self, api_client: TestClient) -> None:
        first = api_client.post("/api/visitors/track", json={"userAgent": "pytest"}, headers=_from("5.5.5.5"))
        assert first.status_code == 200
        data = first.json()
        assert set(data) == {"users", "visitors", "realtimeVisitors"}
        assert data["realtimeVisitors"] >= 1

        second = api_client.post("/api/visitors/track", json={}, headers=_from("5.5.5.5")).json()
        assert second["visitors"] == data["visitors"]
        assert second["realtimeVisitors"] == data["realtimeVisitors"]

    def test_track_visit_without_body(self, api_client: TestClient) -> None:
        resp = api_client.post("/api/visitors/track", headers=_from("5.5.5.6"))
        assert resp.status_code == 200

    def test_user_count_reports_total_visits(self, api_client: TestClient) -> None:
        before = api_client.get("/api/users/count").json()
        assert set(before) == {"users", "visitors", "realtimeVisitors", "totalVisits"}

        api_client.post("/register", json={"login": "counted-user", "password": "secret1"})
        api_client.post("/api/visitors/track", headers=_from("6.6.6.6"))
        api_client.post("/api/visitors/track", headers=_from("6.6.6.6"))

        after = api_client.get("/api/users/count").json()
        assert after["users"] == before["users"] + 1
        assert after["visitors"] == before["visitors"] + 1
        assert after["totalVisits"] == before["totalVisits"] + 2


class TestOriginAddress:
    def test_forwarded_header_ignored_when_untrusted(self, api_client: TestClient, monkeypatch) -> None:
        """With TRUST_FORWARDED_FOR off, a forged header cannot buy a second vote."""
        monkeypatch.setattr("api.origin.get_settings", lambda: SimpleNamespace(trust_forwarded_for=False))
        assert api_client.post("/vote", json={"vote": "support"}, headers=_from("7.7.7.1")).status_code == 200
        resp = api_client.post("/vote", json={"vote": "support"}, headers=_from("7.7.7.2"))
        assert resp.status_code == 403


class TestServerErrors:
    """500s come back in the envelope with a generic message.

    A second client with raise_server_exceptions=False shares the app state
    started by api_client, so the handler's response is what the test sees.
    """

    def test_store_failure_on_vote_is_generic_500(self, api_client: TestClient, monkeypatch) -> None:
        def broken(*args, **kwargs):
            raise PersistenceError()

        monkeypatch.setattr(api_client.app.state.documents, "update_or_insert", broken)
        client = TestClient(api_client.app, raise_server_exceptions=False)
        resp = client.post("/vote", json={"vote": "support"}, headers=_from("8.8.8.1"))
        assert resp.status_code == 500
        assert resp.json() == {"error": "Server error", "code": "server_error"}

        monkeypatch.undo()
        assert api_client.post("/vote", json={"vote": "support"}, headers=_from("8.8.8.1")).status_code == 200

    def test_unexpected_error_does_not_leak_detail(self, api_client: TestClient, monkeypatch) -> None:
        def broken():
            raise RuntimeError("secret detail")

        monkeypatch.setattr(api_client.app.state.tracker, "counts", broken)
        client = TestClient(api_client.app, raise_server_exceptions=False)
        resp = client.get("/api/users/count")
        assert resp.status_code == 500
        assert resp.json() == {"error": "Something went wrong", "code": "internal_error"}
        assert "secret detail" not in resp.text
