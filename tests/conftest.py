"""
Pytest configuration and fixtures for the workflow execution engine tests.
"""
import json
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

import httpx
import pytest
from fastapi.testclient import TestClient

# Add the project root to Python path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from api.dependencies import get_services  # noqa: E402
from api.main import app  # noqa: E402
from core.config import Settings  # noqa: E402
from services.container import build_services  # noqa: E402
from services.engine.models import Graph  # noqa: E402


class WorkerRecorder:
    """httpx.MockTransport handler recording every outbound request."""

    def __init__(self):
        self.requests: List[httpx.Request] = []
        self.status_code = 200
        self.error: Optional[Exception] = None

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.error is not None:
            raise self.error
        return httpx.Response(self.status_code, json={"accepted": True})

    def payloads(self) -> List[Dict[str, Any]]:
        return [json.loads(request.content) for request in self.requests]

    def urls(self) -> List[str]:
        return [str(request.url) for request in self.requests]


@pytest.fixture
def db_path(tmp_path):
    """A fresh SQLite file per test."""
    return str(tmp_path / "engine.db")


@pytest.fixture
def test_settings(db_path):
    return Settings(
        database_path=db_path,
        base_url="http://engine.test",
        environment="development",
        worker_dispatch_timeout=5.0,
        _env_file=None,
    )


@pytest.fixture
def worker_recorder():
    return WorkerRecorder()


@pytest.fixture
def services(test_settings, worker_recorder):
    client = httpx.AsyncClient(transport=httpx.MockTransport(worker_recorder))
    return build_services(test_settings, http_client=client)


@pytest.fixture
def test_client(services):
    """Create a test client wired to the per-test services."""
    app.dependency_overrides[get_services] = lambda: services
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


# Graph fixtures

@pytest.fixture
def echo_graph() -> Graph:
    """Trigger -> Worker(echo)"""
    return Graph.model_validate({
        "nodes": {
            "trigger": {"type": "Trigger"},
            "worker": {"type": "Worker", "config": {"worker_type": "echo"}},
        },
        "edges": [
            {"id": "e1", "source": "trigger", "target": "worker"},
        ],
    })


@pytest.fixture
def async_worker_graph() -> Graph:
    """Trigger -> Worker(webhook) -> Worker(echo)"""
    return Graph.model_validate({
        "nodes": {
            "trigger": {"type": "Trigger"},
            "remote": {"type": "Worker", "config": {"webhook_url": "http://worker.test/run", "voice": "calm"}},
            "after": {"type": "Worker", "config": {"worker_type": "echo"}},
        },
        "edges": [
            {"id": "e1", "source": "trigger", "target": "remote"},
            {"id": "e2", "source": "remote", "target": "after"},
        ],
    })


@pytest.fixture
def fan_out_graph() -> Graph:
    """Trigger -> Splitter(items) -> Worker(webhook) -> Collector"""
    return Graph.model_validate({
        "nodes": {
            "trigger": {"type": "Trigger"},
            "split": {"type": "Splitter", "config": {"array_path": "items"}},
            "each": {"type": "Worker", "config": {"webhook_url": "http://worker.test/each"}},
            "collect": {"type": "Collector"},
        },
        "edges": [
            {"id": "e1", "source": "trigger", "target": "split"},
            {"id": "e2", "source": "split", "target": "each"},
            {"id": "e3", "source": "each", "target": "collect"},
        ],
    })


@pytest.fixture
def ux_graph() -> Graph:
    """Trigger -> UX -> Worker(echo)"""
    return Graph.model_validate({
        "nodes": {
            "trigger": {"type": "Trigger"},
            "review": {"type": "UX"},
            "after": {"type": "Worker", "config": {"worker_type": "echo"}},
        },
        "edges": [
            {"id": "e1", "source": "trigger", "target": "review"},
            {"id": "e2", "source": "review", "target": "after"},
        ],
    })
