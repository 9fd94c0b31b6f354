from dataclasses import dataclass

import pytest
from fastapi.testclient import TestClient

from app.config import get_settings
from app.main import create_app
from tests.fakes import FakeMailer, FakeObjectStore

API_KEY = "test-api-key"


@dataclass
class Harness:
    client: TestClient
    public_store: FakeObjectStore
    private_store: FakeObjectStore
    mailer: FakeMailer


@pytest.fixture
def build_harness(monkeypatch):
    def build(raise_server_exceptions: bool = True, **env) -> Harness:
        defaults = {
            "FILEDROP_API_KEY": API_KEY,
            "FILEDROP_SESSION_SECRET": "test-session-secret",
            "FILEDROP_ADMIN_USERNAME": "admin",
            "FILEDROP_ADMIN_PASSWORD": "hunter2",
            "FILEDROP_MAX_UPLOAD_SIZE_BYTES": "1000",
            "FILEDROP_RESEND_API_KEY": "re_test",
        }
        defaults.update(env)
        for name, value in defaults.items():
            monkeypatch.setenv(name, value)
        get_settings.cache_clear()

        public_store = FakeObjectStore("filedrop-public")
        private_store = FakeObjectStore("filedrop-private")
        mailer = FakeMailer()
        app = create_app(public_store=public_store, private_store=private_store, mailer=mailer)
        return Harness(TestClient(app, raise_server_exceptions=raise_server_exceptions), public_store, private_store, mailer)

    yield build
    get_settings.cache_clear()


@pytest.fixture
def harness(build_harness) -> Harness:
    return build_harness()


@pytest.fixture
def auth_headers() -> dict:
    return {"x-api-key": API_KEY}
