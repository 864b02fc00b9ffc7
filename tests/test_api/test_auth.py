"""Tests de session : connexion, deconnexion, navigation, profil, remise a zero."""

from app import create_app
from app.state import get_state


class TestLogin:
    def test_login_case_insensitive(self, client):
        resp = client.post("/api/auth/login", json={"username": " Admin ", "password": "1234"})
        assert resp.status_code == 200
        data = resp.get_json()["data"]
        assert data["user"]["id"] == "1"
        assert "password" not in data["user"]
        assert data["navigation"] == ["dashboard", "scanner", "history", "chat", "config"]
        assert data["settings"]["appName"] == "VIN SCAN PRO"

    def test_rejection_is_generic(self, client):
        wrong = client.post("/api/auth/login", json={"username": "admin", "password": "0"})
        unknown = client.post("/api/auth/login", json={"username": "x", "password": "1234"})
        assert wrong.status_code == unknown.status_code == 401
        assert wrong.get_json()["error"] == "LOGIN_REJECTED"
        assert wrong.get_json()["message"] == unknown.get_json()["message"]

    def test_missing_body(self, client):
        resp = client.post("/api/auth/login", data="pas du json")
        assert resp.status_code == 400
        assert resp.get_json()["error"] == "VALIDATION_ERROR"

    def test_login_writes_session_slot(self, app, client):
        client.post("/api/auth/login", json={"username": "admin", "password": "1234"})
        with app.app_context():
            assert get_state().session_operator_id == "1"


class TestSession:
    def test_anonymous_rejected(self, client):
        resp = client.get("/api/auth/me")
        assert resp.status_code == 401
        assert resp.get_json()["error"] == "UNAUTHORIZED"

    def test_logout_clears_session(self, app, admin_client):
        assert admin_client.post("/api/auth/logout").status_code == 200
        assert admin_client.get("/api/auth/me").status_code == 401
        with app.app_context():
            assert get_state().session_operator_id is None

    def test_session_restored_after_restart(self, tmp_path):
        """Le pointeur de session survit au redemarrage de l'application."""
        overrides = {
            "SQLALCHEMY_DATABASE_URI": f"sqlite:///{tmp_path / 'restart.db'}",
            "SQLALCHEMY_BINDS": {"blobs": f"sqlite:///{tmp_path / 'restart_images.db'}"},
            "RESTORE_SESSION": True,
        }
        first = create_app("testing", overrides=overrides)
        first.test_client().post(
            "/api/auth/login", json={"username": "admin", "password": "1234"}
        )

        second = create_app("testing", overrides=overrides)
        resp = second.test_client().get("/api/auth/me")
        assert resp.status_code == 200
        assert resp.get_json()["data"]["user"]["username"] == "admin"

        for restarted in (first, second):
            restarted.extensions["scan_pipeline"].shutdown()
            restarted.extensions["blob_store"].shutdown()


class TestNavigationAndProfile:
    def test_agent_navigation(self, operator_client):
        client = operator_client(overrides={"scanner": False})
        resp = client.get("/api/navigation")
        assert resp.get_json()["data"]["screens"] == ["history"]

    def test_update_profile(self, admin_client):
        resp = admin_client.patch("/api/profile", json={"name": " Directeur ", "avatar": "a2"})
        assert resp.status_code == 200
        assert resp.get_json()["data"]["name"] == "Directeur"
        me = admin_client.get("/api/auth/me").get_json()["data"]["user"]
        assert me["avatar"] == "a2"


class TestReset:
    def test_reset_restores_defaults(self, app, admin_client):
        admin_client.post("/api/config/locations", json={"name": "Parc"})
        resp = admin_client.post("/api/reset")

        assert resp.status_code == 200
        assert admin_client.get("/api/auth/me").status_code == 401
        with app.app_context():
            assert [loc.id for loc in get_state().locations] == ["default-1"]
