import re

import pytest
from fastapi.testclient import TestClient

from syntropy_manager import __version__
from syntropy_manager.api import create_app


@pytest.fixture
def client(settings, services):
    return TestClient(create_app(settings, services=services))


def test_health(client):
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json() == {"status": "ok", "version": __version__}

def test_windows_environment_snapshot(client):
    r = client.post("/api/v1/validation/environment", json={
        "interface": "cli",
        "environment": {
            "os": "windows", "arch": "amd64", "home_dir": "C:\\Users\\T",
            "has_admin_rights": True, "available_disk_gb": 50.0, "has_internet": True,
        },
    })
    assert r.status_code == 200
    result = r.json()["result"]
    assert result["valid"] is True
    assert result["environment"]["os"] == "windows"
    assert result["environment"]["architecture"] == "amd64"
    items = result["errors"] + result["warnings"]
    assert not [i for i in items if i["severity"] == "error"]

def test_unsupported_os_snapshot(client):
    r = client.post("/api/v1/validation/environment", json={
        "interface": "cli",
        "environment": {"os": "unsupported", "available_disk_gb": 0, "has_admin_rights": False},
    })
    assert r.status_code == 200
    result = r.json()["result"]
    assert result["valid"] is False
    assert "UNSUPPORTED_OS" in [e["code"] for e in result["errors"]]

def test_security_probe(client):
    r = client.post("/api/v1/validation/security", json={"interface": "web"})
    assert r.status_code == 200
    security = r.json()["result"]["security"]
    assert security["encryption_available"] is True
    assert security["secure_random"] is True
    assert security["key_generation"] is True

def test_generate_config(client):
    r = client.post("/api/v1/config/generate", json={
        "type": "setup", "interface": "cli", "environment": {"os": "linux", "home_dir": "/home/t"},
    })
    assert r.status_code == 200
    body = r.json()
    assert body["success"] is True
    assert body["config"]["manager"]["home_dir"].endswith(".syntropy")
    assert body["config"]["owner_key"]["public_key"].startswith("-----BEGIN PUBLIC KEY-----")
    assert re.fullmatch(r"[0-9a-f]{64}", body["config"]["metadata"]["checksum"])
    assert body["metadata"] == body["config"]["metadata"]

def test_setup_twice_conflicts(client, home):
    payload = {"interface": "cli", "user_id": "u", "options": {"force": False}}
    first = client.post("/api/v1/setup/execute", json=payload)
    assert first.status_code == 200
    assert first.json()["success"] is True
    assert first.json()["result"]["state"] == "FINAL_OK"
    assert (home / ".syntropy" / "config" / "manager.yaml").is_file()

    second = client.post("/api/v1/setup/execute", json=payload)
    assert second.status_code == 409
    body = second.json()
    assert body["success"] is False
    assert body["code"] == 409
    assert body["error"]["code"] == "SETUP_EXISTS"

def test_validate_null_config(client):
    r = client.post("/api/v1/config/validate", json={"config": None})
    assert r.status_code == 200
    result = r.json()["result"]
    assert result["valid"] is False
    assert "NULL_CONFIG" in [e["code"] for e in result["errors"]]

def test_failed_setup_returns_500(client, tmp_path):
    not_a_dir = tmp_path / "plain-file"
    not_a_dir.write_text("")
    r = client.post("/api/v1/setup/execute", json={
        "interface": "cli", "options": {"home_dir": str(not_a_dir)},
    })
    assert r.status_code == 500
    body = r.json()
    assert body["success"] is False
    assert body["error"]["code"] == "SETUP_FAILED"
    assert body["error"]["details"] == "env"
    assert body["result"]["failed_step"] == "env"

def test_invalid_interface_is_rejected(client):
    r = client.post("/api/v1/validation/all", json={"interface": "telepathy"})
    assert r.status_code == 400
    body = r.json()
    assert body["error"]["code"] == "INVALID_REQUEST"
    assert body["error"]["field"] == "body.interface"

def test_unknown_category(client):
    r = client.post("/api/v1/validation/bogus", json={})
    assert r.status_code == 400
    assert r.json()["error"]["code"] == "INVALID_REQUEST"

def test_autofix_reports_count(client):
    r = client.post("/api/v1/validation/autofix", json={"options": {"categories": ["environment"]}})
    assert r.status_code == 200
    body = r.json()
    assert body["fixed_count"] == 0
    assert body["result"]["environment"]["os"] == "linux"

def test_backup_list_and_restore(client, home):
    env = {"os": "linux", "home_dir": str(home)}
    ids = []
    for user in ("a", "b", "a"):
        r = client.post("/api/v1/config/backup", json={"interface": "cli", "user_id": user, "environment": env})
        assert r.status_code == 200
        ids.append(r.json()["backup"]["id"])
    assert ids[1] == f"{ids[0]}_1"

    r = client.get("/api/v1/config/list", params={"page_size": 2})
    body = r.json()
    assert len(body["configs"]) == 2
    assert body["pagination"] == {"page": 1, "page_size": 2, "total": 3}
    assert body["sort"] == {"field": "created_at", "order": "desc"}

    r = client.get("/api/v1/config/list", params={"user_id": "a"})
    assert r.json()["pagination"]["total"] == 2

    r = client.post("/api/v1/config/restore", json={"backup_id": ids[0], "options": {"dry_run": True}})
    assert r.status_code == 200
    assert r.json()["dry_run"] is True
    assert not (home / ".syntropy" / "config" / "manager.yaml").exists()

    r = client.post("/api/v1/config/restore", json={"backup_id": ids[0]})
    assert r.status_code == 200
    assert r.json()["config_path"] == str(home / ".syntropy" / "config" / "manager.yaml")
    assert (home / ".syntropy" / "config" / "manager.yaml").is_file()

def test_list_rejects_bad_paging(client):
    r = client.get("/api/v1/config/list", params={"page": 0})
    assert r.status_code == 400
    assert r.json()["error"]["code"] == "INVALID_REQUEST"

def test_restore_unknown_backup(client):
    r = client.post("/api/v1/config/restore", json={"backup_id": "backup_cli_1"})
    assert r.status_code == 404
    assert r.json()["error"]["code"] == "BACKUP_NOT_FOUND"

def test_template_lookup(client):
    r = client.get("/api/v1/config/template", params={"interface": "cli", "environment": "linux"})
    assert r.status_code == 200
    assert r.json()["template"]["name"] == "default"

    r = client.get("/api/v1/config/template", params={"interface": "cli", "environment": "plan9"})
    assert r.status_code == 404
    assert r.json()["error"]["code"] == "TEMPLATE_NOT_FOUND"

    r = client.get("/api/v1/config/template", params={"interface": "cli"})
    assert r.status_code == 400

def test_status_reset_and_history(client):
    r = client.get("/api/v1/setup/status", params={"interface": "cli"})
    assert r.status_code == 404
    assert r.json()["error"]["code"] == "SETUP_NOT_FOUND"

    client.post("/api/v1/setup/execute", json={"interface": "cli", "user_id": "u"})
    r = client.get("/api/v1/setup/status", params={"interface": "cli", "user_id": "u"})
    assert r.status_code == 200
    assert r.json()["status"]["status"] == "completed"

    r = client.post("/api/v1/setup/validate", json={"interface": "cli", "user_id": "u"})
    assert r.json()["result"]["valid"] is True

    r = client.post("/api/v1/setup/reset", json={"interface": "cli", "user_id": "u"})
    assert r.status_code == 200
    assert len(r.json()["data"]["removed"]) == 3

    r = client.get("/api/v1/setup/history", params={"interface": "cli", "user_id": "u"})
    assert [e["action"] for e in r.json()["history"]] == ["reset", "setup"]

    r = client.get("/api/v1/setup/history", params={"interface": "cli", "limit": 0})
    assert r.status_code == 400
