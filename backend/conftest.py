import os
import tempfile

# The engine is built at import time, so point it at a scratch database first
_DB_DIR = tempfile.mkdtemp(prefix="modeler-tests-")
os.environ["DATABASE_URL"] = f"sqlite:///{os.path.join(_DB_DIR, 'test.db')}"
os.environ.setdefault("LOG_LEVEL", "WARNING")

import pytest
from fastapi.testclient import TestClient

from modeler.api.deps import get_llm_client
from modeler.api.middleware import rate_limiter
from modeler.db.models import Base
from modeler.db.session import SessionLocal, engine
from modeler.main import app

PASSWORD = "correct-horse-battery"


class FakeLLM:
    """Stands in for the chat-completions client; records every prompt it gets."""

    def __init__(self, reply="```json\n{\"message\": \"ok\", \"changes\": {}}\n```"):
        self.reply = reply
        self.calls = []
        self.error = None

    def generate(self, messages):
        self.calls.append(messages)
        if self.error is not None:
            raise self.error
        return self.reply


@pytest.fixture(autouse=True)
def fresh_database():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    rate_limiter.reset()
    yield
    app.dependency_overrides.clear()


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def client_factory():
    """Signed-in TestClient per email; the session cookie stays on the client."""
    clients = []

    def make(email="owner@example.com", full_name=None):
        client = TestClient(app)
        response = client.post(
            "/api/auth/sign-up",
            json={"email": email, "password": PASSWORD, "full_name": full_name},
        )
        assert response.status_code == 201, response.text
        response = client.post("/api/auth/sign-in", json={"email": email, "password": PASSWORD})
        assert response.status_code == 200, response.text
        client.user = response.json()["user"]
        clients.append(client)
        return client

    yield make
    for client in clients:
        client.close()


@pytest.fixture
def owner(client_factory):
    return client_factory("owner@example.com", "Olive Owner")


@pytest.fixture
def project(owner):
    response = owner.post("/api/projects", json={"name": "Retail"})
    assert response.status_code == 201, response.text
    return response.json()["project"]


@pytest.fixture
def data_model(owner, project):
    response = owner.post(f"/api/projects/{project['id']}/models", json={"name": "Orders"})
    assert response.status_code == 201, response.text
    return response.json()["dataModel"]


@pytest.fixture
def make_entity(owner, data_model):
    def make(name, client=None, **fields):
        body = {"name": name, "dataModelId": data_model["id"]}
        body.update(fields)
        response = (client or owner).post("/api/entities", json=body)
        assert response.status_code == 201, response.text
        return response.json()["entity"]

    return make


@pytest.fixture
def fake_llm():
    llm = FakeLLM()
    app.dependency_overrides[get_llm_client] = lambda: llm
    return llm
