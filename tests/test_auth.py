import logging

from fastapi import Depends, FastAPI
from fastapi.testclient import TestClient

from taskboard.auth import get_basic_auth_dependency


def make_client() -> TestClient:
    app = FastAPI()

    @app.get("/ping", dependencies=[Depends(get_basic_auth_dependency())])
    def ping():
        return {"ok": True}

    return TestClient(app)


class TestBasicAuth:
    def test_disabled_by_default(self, monkeypatch):
        monkeypatch.delenv("ENABLE_BASIC_AUTH", raising=False)
        assert make_client().get("/ping").status_code == 200

    def test_enforced_when_enabled(self, monkeypatch):
        monkeypatch.setenv("ENABLE_BASIC_AUTH", "true")
        monkeypatch.setenv("BASIC_AUTH_USERNAME", "alice")
        monkeypatch.setenv("BASIC_AUTH_PASSWORD", "secret")
        client = make_client()

        missing = client.get("/ping")
        assert missing.status_code == 401
        assert missing.headers["WWW-Authenticate"] == 'Basic realm="taskboard"'
        assert client.get("/ping", auth=("alice", "wrong")).status_code == 401
        assert client.get("/ping", auth=("alice", "secret")).status_code == 200

    def test_missing_credentials_are_logged_and_reject_everything(self, monkeypatch, caplog):
        monkeypatch.setenv("ENABLE_BASIC_AUTH", "true")
        monkeypatch.delenv("BASIC_AUTH_USERNAME", raising=False)
        monkeypatch.delenv("BASIC_AUTH_PASSWORD", raising=False)

        with caplog.at_level(logging.WARNING, logger="taskboard.auth"):
            client = make_client()

        assert "all requests will be rejected" in caplog.text
        assert client.get("/ping", auth=("alice", "secret")).status_code == 401
