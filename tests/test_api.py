"""
Integration tests for the HTTP surface.

Each test drives one or more client contexts (X-Client-Id) through the FastAPI
app, with the platform replaced by the recording stub.
"""

import json

from athletes_profile.core.deps import CLIENT_ID_HEADER
from athletes_profile.core.platform import SESSION_STORAGE_KEY
from athletes_profile.core.preferences import REMEMBER_ME_KEY
from athletes_profile.core.storage import MemoryStorage
from athletes_profile.services.password_reset import ERROR_USE_FULL_TOKEN
from tests.helpers import session_payload, user_payload


HEADERS = {CLIENT_ID_HEADER: "client-1"}


def _seed_session(client_storages, client_id="client-1", role="student", remember=True):
    storage = MemoryStorage()
    storage.set_item(SESSION_STORAGE_KEY, json.dumps(session_payload(user_id=f"{role}-1", role=role)))
    if remember:
        storage.set_item(REMEMBER_ME_KEY, "true")
    client_storages[client_id] = storage
    return storage


class TestHealth:

    def test_health(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"


class TestClientContext:

    def test_client_id_issued(self, client, client_registry):
        """Test a client id is generated and echoed when the header is missing"""
        response = client.get("/api/v1/registration")

        client_id = response.headers[CLIENT_ID_HEADER]
        assert response.status_code == 200
        assert client_id in client_registry

    def test_client_id_echoed(self, client):
        response = client.get("/api/v1/auth/me", headers=HEADERS)

        assert response.headers[CLIENT_ID_HEADER] == "client-1"

    def test_identity_check_without_header_holds_no_context(self, client, client_registry):
        for _ in range(5):
            response = client.get("/api/v1/auth/me")
            assert response.json()["authenticated"] is False
            assert CLIENT_ID_HEADER not in response.headers

        assert len(client_registry) == 0

    def test_malformed_client_id_is_replaced(self, client, client_registry):
        """Test ids outside [A-Za-z0-9_-] get a fresh id instead of sharing a sanitised one"""
        response = client.get("/api/v1/registration", headers={CLIENT_ID_HEADER: "tab.one"})

        issued = response.headers[CLIENT_ID_HEADER]
        assert issued != "tab.one"
        assert issued in client_registry
        assert "tab.one" not in client_registry


class TestSessionEndpoints:

    def test_sign_in(self, client, stub):
        stub.on("POST", "/auth/v1/token", json=session_payload(user_id="user-1"))

        response = client.post(
            "/api/v1/auth/sign-in",
            json={"email": "student@example.com", "password": "secret123", "remember_me": True},
            headers=HEADERS,
        )

        assert response.status_code == 200
        data = response.json()
        assert data["authenticated"] is True
        assert data["user_id"] == "user-1"
        assert data["role"] == "student"
        assert data["remember_me"] is True

    def test_sign_in_rejected(self, client, stub):
        stub.on("POST", "/auth/v1/token", status_code=400, json={"error_description": "Invalid login credentials"})

        response = client.post(
            "/api/v1/auth/sign-in",
            json={"email": "student@example.com", "password": "wrong"},
            headers=HEADERS,
        )

        assert response.status_code == 401
        assert response.json()["detail"] == "Invalid login credentials"

    def test_bootstrap_revokes_unremembered_session(self, client, stub, client_storages):
        storage = _seed_session(client_storages, remember=False)
        stub.on("POST", "/auth/v1/logout", status_code=204)

        response = client.post("/api/v1/auth/bootstrap", headers=HEADERS)

        assert response.status_code == 200
        assert response.json()["authenticated"] is False
        assert storage.get_item(SESSION_STORAGE_KEY) is None

    def test_bootstrap_keeps_remembered_session(self, client, stub, client_storages):
        _seed_session(client_storages, remember=True)

        response = client.post("/api/v1/auth/bootstrap", headers=HEADERS)

        assert response.json()["authenticated"] is True
        assert stub.requests == []

    def test_sign_out(self, client, stub, client_storages):
        storage = _seed_session(client_storages)
        stub.on("POST", "/auth/v1/logout", status_code=204)
        client.post("/api/v1/auth/bootstrap", headers=HEADERS)

        response = client.post("/api/v1/auth/sign-out", headers=HEADERS)

        assert response.json()["authenticated"] is False
        assert storage.get_item(REMEMBER_ME_KEY) is None

    def test_contexts_are_isolated(self, client, stub):
        stub.on("POST", "/auth/v1/token", json=session_payload(user_id="user-1"))
        client.post(
            "/api/v1/auth/sign-in",
            json={"email": "student@example.com", "password": "secret123"},
            headers=HEADERS,
        )

        response = client.get("/api/v1/auth/me", headers={CLIENT_ID_HEADER: "client-2"})

        assert response.json()["authenticated"] is False


class TestRegistrationEndpoints:

    FORM = {
        "email": "jamie@example.com",
        "password": "secret123",
        "confirm_password": "secret123",
        "full_name": "Jamie Rivera",
        "student_id": "2021-00123",
        "sport": "Basketball",
    }

    def test_missing_id_picture(self, client, stub):
        response = client.post("/api/v1/registration", data=self.FORM, headers=HEADERS)

        assert response.status_code == 200
        state = response.json()["state"]
        assert state["kind"] == "form"
        assert state["error"] == "Please upload your ID picture!"
        assert stub.requests == []

    def test_submit_and_verify(self, client, stub):
        stub.on("POST", "/auth/v1/signup", json=user_payload("user-1", "jamie@example.com"))
        stub.on("PATCH", "/rest/v1/users", status_code=204)
        stub.on("POST", "/auth/v1/verify", json={"user": user_payload("user-1", "jamie@example.com")})

        response = client.post(
            "/api/v1/registration",
            data=self.FORM,
            files={"id_picture": ("card.png", b"png-bytes", "image/png")},
            headers=HEADERS,
        )
        state = response.json()["state"]
        assert state["kind"] == "awaiting_code"
        assert state["email"] == "jamie@example.com"

        response = client.post("/api/v1/registration/verify", json={"code": "123456"}, headers=HEADERS)
        assert response.json()["state"]["kind"] == "confirmed"

    def test_signup_link_consumed_once(self, client, stub):
        fragment = "#access_token=eyJhbGciOi.payload.abc123456&type=signup"

        first = client.post("/api/v1/auth/deep-link", json={"fragment": fragment}, headers=HEADERS).json()
        second = client.post("/api/v1/auth/deep-link", json={"fragment": fragment}, headers=HEADERS).json()

        assert first == {"consumed": True, "type": "signup", "strip_fragment": True}
        assert second["consumed"] is False

        state = client.get("/api/v1/registration", headers=HEADERS).json()["state"]
        assert state["kind"] == "awaiting_code"
        assert state["code"] == "123456"
        assert stub.requests == []

    def test_cancel(self, client):
        response = client.post("/api/v1/registration/cancel", headers=HEADERS)

        assert response.json()["state"]["kind"] == "form"


class TestPasswordResetEndpoints:

    def test_bare_code_scenario(self, client, stub):
        stub.on("POST", "/auth/v1/recover", json={})

        state = client.post("/api/v1/password-reset/request", json={"email": "a@b.com"}, headers=HEADERS).json()["state"]
        assert state["kind"] == "code_sent"

        response = client.post(
            "/api/v1/password-reset/confirm",
            json={"code": "654321", "new_password": "newpass1", "confirm_password": "newpass1"},
            headers=HEADERS,
        )

        state = response.json()["state"]
        assert response.status_code == 200
        assert state["kind"] == "code_sent"
        assert state["error"] == ERROR_USE_FULL_TOKEN

    def test_toggle_full_token(self, client, stub):
        stub.on("POST", "/auth/v1/recover", json={})
        client.post("/api/v1/password-reset/request", json={"email": "a@b.com"}, headers=HEADERS)

        state = client.post("/api/v1/password-reset/toggle-full-token", headers=HEADERS).json()["state"]

        assert state["use_full_token"] is True

    def test_recovery_link(self, client):
        response = client.post(
            "/api/v1/auth/deep-link",
            json={"fragment": "https://athletes.example.com/reset-password#access_token=tok987654&type=recovery"},
            headers=HEADERS,
        )

        assert response.json()["type"] == "recovery"
        state = client.get("/api/v1/password-reset", headers=HEADERS).json()["state"]
        assert state["kind"] == "code_sent"
        assert state["code"] == "987654"


class TestAthleteEndpoints:

    def test_requires_sign_in(self, client):
        response = client.get("/api/v1/athletes/folders", headers=HEADERS)

        assert response.status_code == 401

    def test_admin_only(self, client, client_storages):
        _seed_session(client_storages, role="student")

        response = client.get("/api/v1/athletes/students", headers=HEADERS)

        assert response.status_code == 403

    def test_admin_lists_students(self, client, stub, client_storages):
        _seed_session(client_storages, role="admin")
        stub.on("GET", "/rest/v1/users", json=[{"id": "u1", "role": "student"}, {"id": "admin-1", "role": "admin"}])

        response = client.get("/api/v1/athletes/students", headers=HEADERS)

        assert response.status_code == 200
        assert [u["id"] for u in response.json()] == ["u1"]

    def test_unverified_student_cannot_create_subfolder(self, client, stub, client_storages):
        _seed_session(client_storages, role="student")
        stub.on("GET", "/rest/v1/users", json=[{"id": "student-1", "role": "student", "is_verified": False}])

        response = client.post(
            "/api/v1/athletes/subfolders",
            json={"sport_folder_id": "f1", "name": "My docs"},
            headers=HEADERS,
        )

        assert response.status_code == 403

    def test_second_subfolder_rejected(self, client, stub, client_storages):
        _seed_session(client_storages, role="student")
        stub.on("GET", "/rest/v1/users", json=[{"id": "student-1", "role": "student", "is_verified": True}])
        stub.on("GET", "/rest/v1/student_folders", json=[{"id": "sf1", "name": "Mine", "student_id": "student-1"}])

        response = client.post(
            "/api/v1/athletes/subfolders",
            json={"sport_folder_id": "f2", "name": "Another"},
            headers=HEADERS,
        )

        assert response.status_code == 400
        assert "only have one subfolder" in response.json()["detail"]

    def test_platform_failure(self, client, stub, client_storages):
        _seed_session(client_storages, role="student")
        stub.on("GET", "/rest/v1/folders", status_code=503, json={"message": "Service unavailable"})

        response = client.get("/api/v1/athletes/folders", headers=HEADERS)

        assert response.status_code == 502


class TestReportEndpoints:

    def test_download_csv(self, client, stub, client_storages):
        _seed_session(client_storages, role="admin")
        for table in ("users", "files", "folders", "student_folders"):
            stub.on("GET", f"/rest/v1/{table}", json=[])
        stub.on("GET", "/rest/v1/announcements", json=[
            {"id": "a1", "title": "Tryouts", "content": "Gym at 5pm", "created_at": "2024-03-06T09:30:00+00:00"},
        ])

        response = client.get("/api/v1/reports/announcements", headers=HEADERS)

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/csv")
        assert 'filename="announcements_report_' in response.headers["content-disposition"]
        assert response.text == '"Title","Content","Created Date"\n"Tryouts","Gym at 5pm","2024-03-06"'

    def test_invalid_range(self, client, client_storages):
        _seed_session(client_storages, role="admin")

        response = client.get(
            "/api/v1/reports/athletes",
            params={"start": "2024-03-10", "end": "2024-03-01"},
            headers=HEADERS,
        )

        assert response.status_code == 400

    def test_students_cannot_export(self, client, client_storages):
        _seed_session(client_storages, role="student")

        response = client.get("/api/v1/reports/athletes", headers=HEADERS)

        assert response.status_code == 403

    def _stub_folders(self, stub, name):
        for table in ("users", "files", "student_folders", "announcements"):
            stub.on("GET", f"/rest/v1/{table}", json=[])
        stub.on("GET", "/rest/v1/folders", json=[{"id": "f1", "name": name}])

    def test_folder_name_outside_latin1(self, client, stub, client_storages):
        _seed_session(client_storages, role="admin")
        self._stub_folders(stub, "篮球 Team")

        response = client.get("/api/v1/reports/folders", params={"sport_folder_id": "f1"}, headers=HEADERS)

        disposition = response.headers["content-disposition"]
        assert response.status_code == 200
        assert 'filename="folders_report____Team_' in disposition
        assert "filename*=UTF-8''folders_report_%E7%AF%AE%E7%90%83_Team_" in disposition
        assert response.text.startswith('"Folder Name"')

    def test_folder_name_with_quotes(self, client, stub, client_storages):
        _seed_session(client_storages, role="admin")
        self._stub_folders(stub, 'Varsity "A"')

        response = client.get("/api/v1/reports/folders", params={"sport_folder_id": "f1"}, headers=HEADERS)

        fallback = response.headers["content-disposition"].split("filename=", 1)[1].split(";", 1)[0]
        assert response.status_code == 200
        assert fallback.startswith('"folders_report_Varsity__A__')
        assert fallback.count('"') == 2
