import logging
import re
import threading

from fastapi.testclient import TestClient

from conftest import ADMIN_PASSWORD, site_payload
from wpfleet.config import Settings
from wpfleet.engine.storage import MemStorage
from wpfleet.main import create_app


def _login(client):
    resp = client.post("/api/auth/login", json={"username": "admin", "password": ADMIN_PASSWORD})
    assert resp.status_code == 200
    return resp


def test_health_check(client):
    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.json() == {"status": "ok"}
    assert "x-trace-id" in resp.headers


# Auth

def test_login_returns_user_without_password(make_client, admin):
    client, _ = make_client()
    resp = _login(client)
    assert resp.json() == {"user": {"id": admin.id, "username": "admin", "email": "admin@example.com"}}
    assert "set-cookie" in resp.headers


def test_wrong_password_sets_no_session(make_client, admin):
    client, _ = make_client()
    resp = client.post("/api/auth/login", json={"username": "admin", "password": "admin"})
    assert resp.status_code == 401
    assert resp.json() == {"message": "Invalid credentials"}
    assert "set-cookie" not in resp.headers

    resp = client.get("/api/sites")
    assert resp.status_code == 401
    assert resp.json() == {"message": "Authentication required"}


def test_unknown_user_is_rejected(make_client, admin):
    client, _ = make_client()
    resp = client.post("/api/auth/login", json={"username": "root", "password": ADMIN_PASSWORD})
    assert resp.status_code == 401


def test_login_requires_both_fields(make_client, admin):
    client, _ = make_client()
    resp = client.post("/api/auth/login", json={"username": "admin"})
    assert resp.status_code == 400
    assert resp.json()["message"] == "Invalid request data"


def test_me_and_logout(client):
    resp = client.get("/api/auth/me")
    assert resp.status_code == 200
    assert resp.json()["user"]["username"] == "admin"

    resp = client.post("/api/auth/logout")
    assert resp.status_code == 200
    assert resp.json() == {"message": "Logged out successfully"}

    assert client.get("/api/auth/me").status_code == 401
    assert client.get("/api/sites").status_code == 401


def test_me_without_session(make_client):
    client, _ = make_client()
    resp = client.get("/api/auth/me")
    assert resp.status_code == 401
    assert resp.json() == {"message": "Not authenticated"}


def test_protected_routes_require_session(make_client):
    client, _ = make_client()
    for method, path in [
        ("get", "/api/sites"),
        ("get", "/api/sites/1"),
        ("post", "/api/maintenance/run/1"),
        ("post", "/api/maintenance/backup/1"),
        ("get", "/api/logs"),
        ("get", "/api/reports"),
        ("get", "/api/dashboard/stats"),
    ]:
        assert getattr(client, method)(path).status_code == 401, path


# Sites

def test_create_site_uses_defaults(client):
    resp = client.post("/api/sites", json=site_payload())
    assert resp.status_code == 201
    site = resp.json()
    assert site["status"] == "ok"
    assert site["lastBackup"] is None
    assert site["lastUpdate"] is None
    assert site["lastCheck"] is None
    assert site["lastError"] is None
    assert site["pluginUpdateCount"] == 0
    assert site["pagesToScan"] == ["/", "/about", "/contact"]
    assert site["sshKey"] is None

    assert client.get(f"/api/sites/{site['id']}").json() == site
    assert client.get("/api/sites").json() == [site]


def test_create_site_validation_error(client):
    resp = client.post("/api/sites", json={"url": "https://nameless.example.com", "pagesToScan": "not-a-list"})
    assert resp.status_code == 400
    body = resp.json()
    assert body["message"] == "Invalid request data"
    fields = {tuple(error["loc"])[-1] for error in body["errors"]}
    assert {"name", "pagesToScan"} <= fields


def test_get_unknown_site(client):
    resp = client.get("/api/sites/999")
    assert resp.status_code == 404
    assert resp.json() == {"message": "Site not found"}


def test_update_site_partial(client):
    site = client.post("/api/sites", json=site_payload()).json()
    resp = client.put(f"/api/sites/{site['id']}", json={"status": "needs_updates", "pluginUpdateCount": 4})
    assert resp.status_code == 200
    updated = resp.json()
    assert updated["status"] == "needs_updates"
    assert updated["pluginUpdateCount"] == 4
    assert updated["name"] == site["name"]
    assert updated["pagesToScan"] == site["pagesToScan"]

    resp = client.put(f"/api/sites/{site['id']}", json={"lastError": None, "name": None})
    assert resp.json()["name"] == site["name"]


def test_update_site_rejects_unknown_status(client):
    site = client.post("/api/sites", json=site_payload()).json()
    assert client.put(f"/api/sites/{site['id']}", json={"status": "broken"}).status_code == 400


def test_update_and_delete_unknown_site(client):
    assert client.put("/api/sites/999", json={"name": "x"}).status_code == 404
    assert client.delete("/api/sites/999").status_code == 404


def test_delete_site_keeps_logs(make_client, admin, store):
    client, manager = make_client()
    _login(client)
    site = client.post("/api/sites", json=site_payload()).json()
    log_id = client.post(f"/api/maintenance/backup/{site['id']}").json()["logId"]
    assert manager.wait(log_id, timeout=5)

    resp = client.delete(f"/api/sites/{site['id']}")
    assert resp.status_code == 200
    assert resp.json() == {"message": "Site deleted successfully"}
    assert client.get(f"/api/sites/{site['id']}").status_code == 404

    logs = client.get("/api/logs", params={"siteId": site["id"]}).json()
    assert [log["id"] for log in logs] == [log_id]


# Maintenance

def test_run_maintenance_success_scenario(make_client, admin):
    client, manager = make_client(update_succeeds=True)
    _login(client)
    site = client.post("/api/sites", json=site_payload()).json()

    resp = client.post(f"/api/maintenance/run/{site['id']}")
    assert resp.status_code == 200
    body = resp.json()
    assert body["message"] == "Maintenance started"
    assert manager.wait(body["logId"], timeout=5)

    updated = client.get(f"/api/sites/{site['id']}").json()
    assert updated["status"] == "ok"
    assert updated["lastUpdate"] is not None
    assert updated["pluginUpdateCount"] == 0

    logs = client.get("/api/logs", params={"siteId": site["id"]}).json()
    assert len(logs) == 4
    assert {log["siteId"] for log in logs} == {site["id"]}
    assert [log["type"] for log in logs] == ["full_maintenance", "backup", "screenshot", "update"]
    assert logs[0]["id"] == body["logId"]
    assert logs[0]["status"] == "success"
    assert logs[0]["completedAt"] is not None


def test_run_maintenance_failure_scenario(make_client, admin):
    client, manager = make_client(update_succeeds=False)
    _login(client)
    site = client.post("/api/sites", json=site_payload()).json()

    log_id = client.post(f"/api/maintenance/run/{site['id']}").json()["logId"]
    assert manager.wait(log_id, timeout=5)

    updated = client.get(f"/api/sites/{site['id']}").json()
    assert updated["status"] == "error"
    assert updated["lastError"] == "Plugin update failed - conflict detected"
    main = client.get("/api/logs", params={"siteId": site["id"]}).json()[0]
    assert main["status"] == "error"


def test_run_backup(make_client, admin):
    client, manager = make_client()
    _login(client)
    site = client.post("/api/sites", json=site_payload()).json()

    resp = client.post(f"/api/maintenance/backup/{site['id']}")
    assert resp.status_code == 200
    assert resp.json()["message"] == "Backup started"
    assert manager.wait(resp.json()["logId"], timeout=5)
    assert client.get(f"/api/sites/{site['id']}").json()["lastBackup"] is not None


def test_maintenance_unknown_site(client):
    assert client.post("/api/maintenance/run/999").json() == {"message": "Site not found"}
    assert client.post("/api/maintenance/run/999").status_code == 404
    assert client.post("/api/maintenance/backup/999").status_code == 404


def test_exclusive_mode_returns_conflict(make_client, admin):
    release = threading.Event()
    client, manager = make_client(exclusive=True, sleep=lambda seconds: release.wait(5))
    _login(client)
    site = client.post("/api/sites", json=site_payload()).json()

    first = client.post(f"/api/maintenance/run/{site['id']}")
    assert first.status_code == 200
    second = client.post(f"/api/maintenance/backup/{site['id']}")
    assert second.status_code == 409
    assert second.json() == {"message": "Maintenance already running for this site"}

    release.set()
    assert manager.wait(first.json()["logId"], timeout=5)


# Logs, reports, dashboard

def test_logs_newest_first_and_filtered(client, store):
    first = client.post("/api/sites", json=site_payload(name="A")).json()
    second = client.post("/api/sites", json=site_payload(name="B")).json()
    for site_id in (first["id"], second["id"], first["id"]):
        store.create_maintenance_log({"site_id": site_id, "type": "backup", "status": "success",
                                      "message": "Backup completed successfully", "details": {}})

    logs = client.get("/api/logs").json()
    started = [log["startedAt"] for log in logs]
    assert started == sorted(started, reverse=True)
    assert len(logs) == 3

    filtered = client.get("/api/logs", params={"siteId": first["id"]}).json()
    assert len(filtered) == 2
    assert all(log["siteId"] == first["id"] for log in filtered)
    assert filtered[0]["id"] < filtered[1]["id"]


def test_generate_and_list_reports(client):
    resp = client.post("/api/reports/generate",
                       json={"name": "Weekly Maintenance Report", "type": "weekly", "description": "All sites"})
    assert resp.status_code == 201
    report = resp.json()
    assert re.fullmatch(r"/reports/weekly-\d+\.pdf", report["filePath"])
    assert report["generatedAt"]

    second = client.post("/api/reports/generate", json={"name": "Errors", "type": "error_summary"}).json()
    assert second["description"] is None
    assert [r["id"] for r in client.get("/api/reports").json()] == [second["id"], report["id"]]


def test_generate_report_requires_name_and_type(client):
    assert client.post("/api/reports/generate", json={"type": "weekly"}).status_code == 400


def test_dashboard_stats(client):
    statuses = ["ok", "needs_updates", "error", "updating", "ok"]
    for index, status in enumerate(statuses):
        site = client.post("/api/sites", json=site_payload(name=f"site {index}")).json()
        client.put(f"/api/sites/{site['id']}", json={"status": status})

    stats = client.get("/api/dashboard/stats").json()
    assert stats["totalSites"] == 5
    assert stats["sitesOk"] == 2
    assert stats["needUpdates"] == 1
    assert stats["errors"] == 1
    assert stats["recentActivity"] == []


# App wiring

def test_demo_app_seeds_fleet():
    settings = Settings(session_secret="test-secret", seed_demo_data=True, admin_password="demo-pass")
    client = TestClient(create_app(settings=settings))
    resp = client.post("/api/auth/login", json={"username": "admin", "password": "demo-pass"})
    assert resp.status_code == 200

    stats = client.get("/api/dashboard/stats").json()
    assert (stats["totalSites"], stats["sitesOk"], stats["needUpdates"], stats["errors"]) == (4, 2, 1, 1)
    assert len(stats["recentActivity"]) == 3
    assert len(client.get("/api/reports").json()) == 2


def test_lowercase_log_level_is_accepted(monkeypatch):
    settings = Settings(session_secret="test-secret", seed_demo_data=False, log_level=" debug")
    assert settings.log_level == "DEBUG"
    assert logging.getLevelName(settings.log_level) == logging.DEBUG
    calls = []
    monkeypatch.setattr(logging, "basicConfig", lambda **kwargs: calls.append(kwargs))
    client = TestClient(create_app(settings=settings))
    assert client.get("/health").status_code == 200
    # setLevel raises ValueError on names logging does not know
    logging.Logger("level-check").setLevel(calls[0]["level"])


def test_unhandled_errors_return_opaque_500(admin, store):
    class FailingStore(MemStorage):
        def list_sites(self):
            raise RuntimeError("disk on fire")

    failing = FailingStore()
    failing.users = store.users
    settings = Settings(session_secret="test-secret", seed_demo_data=False)
    client = TestClient(create_app(settings=settings, store=failing), raise_server_exceptions=False)
    _login(client)

    resp = client.get("/api/sites")
    assert resp.status_code == 500
    body = resp.json()
    assert body["message"] == "Internal server error"
    assert "trace_id" in body
    assert "disk on fire" not in resp.text
