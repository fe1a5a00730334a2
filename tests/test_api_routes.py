"""
Tests for the FastAPI routes.
"""
import json
import time

import pytest

from services.webhooks.security import hmac_sha256_hex

ECHO_GRAPH = {
    "nodes": {
        "trigger": {"type": "Trigger"},
        "worker": {"type": "Worker", "config": {"worker_type": "echo"}},
    },
    "edges": [{"id": "e1", "source": "trigger", "target": "worker"}],
}

REMOTE_GRAPH = {
    "nodes": {
        "trigger": {"type": "Trigger"},
        "remote": {"type": "Worker", "config": {"webhook_url": "http://worker.test/run"}},
        "review": {"type": "UX"},
    },
    "edges": [
        {"id": "e1", "source": "trigger", "target": "remote"},
        {"id": "e2", "source": "remote", "target": "review"},
    ],
}


def create_workflow(client, graph, workflow_id="wf-1"):
    response = client.post("/workflows", json={"workflow_id": workflow_id, "name": "Test", "graph": graph})
    assert response.status_code == 201
    return response.json()


def start_run(client, workflow_id="wf-1", input=None):
    response = client.post("/runs", json={"workflow_id": workflow_id, "input": input})
    assert response.status_code == 201
    return response.json()


class TestSystemEndpoints:

    def test_root(self, test_client):
        response = test_client.get("/")

        assert response.status_code == 200
        assert response.json()["docs"] == "/docs"

    def test_health(self, test_client):
        response = test_client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    def test_request_id_header(self, test_client):
        response = test_client.get("/health")

        assert "X-Request-ID" in response.headers
        assert "X-Response-Time" in response.headers


class TestWorkflowEndpoints:

    def test_create_and_get(self, test_client):
        created = create_workflow(test_client, ECHO_GRAPH)

        assert created["workflow_id"] == "wf-1"
        response = test_client.get("/workflows/wf-1")
        assert response.status_code == 200
        assert response.json()["graph"]["nodes"]["worker"]["config"] == {"worker_type": "echo"}
        assert test_client.get("/workflows").json()["workflows"][0]["workflow_id"] == "wf-1"

    def test_invalid_graph(self, test_client):
        graph = {"nodes": {"a": {"type": "Trigger"}}, "edges": [{"id": "e1", "source": "a", "target": "b"}]}

        response = test_client.post("/workflows", json={"graph": graph})

        assert response.status_code == 422

    def test_graph_in_use_cannot_be_replaced(self, test_client):
        create_workflow(test_client, ECHO_GRAPH)
        start_run(test_client, input={})

        response = test_client.post("/workflows", json={"workflow_id": "wf-1", "graph": REMOTE_GRAPH})

        assert response.status_code == 422
        assert response.json()["errorType"] == "configuration"

    def test_missing_workflow(self, test_client):
        assert test_client.get("/workflows/nope").status_code == 404


class TestRunEndpoints:

    def test_start_and_get_run(self, test_client):
        create_workflow(test_client, ECHO_GRAPH)

        run = start_run(test_client, input={"a": 1})

        assert run["node_states"]["worker"]["status"] == "completed"
        assert run["node_states"]["worker"]["output"] == {"a": 1}
        response = test_client.get(f"/runs/{run['id']}")
        assert response.status_code == 200
        assert response.json()["drained"] is True

    def test_list_runs(self, test_client):
        create_workflow(test_client, ECHO_GRAPH)
        start_run(test_client, input={})
        start_run(test_client, input={})

        response = test_client.get("/runs", params={"workflow_id": "wf-1", "limit": 1})

        assert response.status_code == 200
        assert len(response.json()["runs"]) == 1
        assert response.json()["limit"] == 1

    def test_unknown_workflow(self, test_client):
        response = test_client.post("/runs", json={"workflow_id": "nope"})

        assert response.status_code == 404
        assert response.json()["errorType"] == "not_found"

    def test_unknown_run(self, test_client):
        assert test_client.get("/runs/nope").status_code == 404


class TestCallbackEndpoints:
    """Test worker callbacks and UX completion over HTTP"""

    @pytest.fixture
    def running(self, test_client, worker_recorder):
        create_workflow(test_client, REMOTE_GRAPH)
        run = start_run(test_client, input={"x": 1})
        assert run["node_states"]["remote"]["status"] == "running"
        return run

    def test_callback_completes_node(self, test_client, running):
        response = test_client.post(
            f"/callback/{running['id']}/remote", json={"status": "completed", "output": {"y": 2}}
        )

        assert response.status_code == 200
        assert response.json() == {"success": True}
        run = test_client.get(f"/runs/{running['id']}").json()
        assert run["node_states"]["remote"]["output"] == {"y": 2}
        assert run["node_states"]["review"]["status"] == "waiting_for_user"

    def test_duplicate_callback_succeeds_without_change(self, test_client, running):
        url = f"/callback/{running['id']}/remote"
        test_client.post(url, json={"status": "completed", "output": {"y": 2}})

        response = test_client.post(url, json={"status": "completed", "output": {"y": 3}})

        assert response.status_code == 200
        assert response.json() == {"success": True}
        run = test_client.get(f"/runs/{running['id']}").json()
        assert run["node_states"]["remote"]["output"] == {"y": 2}

    @pytest.mark.parametrize("body", [
        {"status": "done"},
        {"status": "completed", "output": "text"},
        {"status": "failed", "error": 5},
    ])
    def test_malformed_callback(self, test_client, running, body):
        response = test_client.post(f"/callback/{running['id']}/remote", json=body)

        assert response.status_code == 400
        assert response.json() == {"success": False, "error": "Invalid request"}

    def test_non_json_callback(self, test_client, running):
        response = test_client.post(f"/callback/{running['id']}/remote", content=b"not json")

        assert response.status_code == 400

    def test_unknown_run_or_node(self, test_client, running):
        assert test_client.post("/callback/nope/remote", json={"status": "completed"}).status_code == 404
        response = test_client.post(f"/callback/{running['id']}/ghost", json={"status": "completed"})
        assert response.status_code == 404
        assert response.json() == {"success": False, "error": "Not found"}

    def test_complete_ux_node(self, test_client, running):
        test_client.post(f"/callback/{running['id']}/remote", json={"status": "completed", "output": {}})

        response = test_client.post(f"/complete/{running['id']}/review", json={"input": {"approved": True}})

        assert response.status_code == 200
        run = test_client.get(f"/runs/{running['id']}").json()
        assert run["node_states"]["review"]["output"] == {"approved": True}
        assert run["drained"] is True

    @pytest.mark.parametrize("content", [b"not json", b"[1, 2]"])
    def test_malformed_completion(self, test_client, running, content):
        test_client.post(f"/callback/{running['id']}/remote", json={"status": "completed", "output": {}})

        response = test_client.post(f"/complete/{running['id']}/review", content=content)

        assert response.status_code == 400
        assert response.json() == {"success": False, "error": "Invalid request"}
        run = test_client.get(f"/runs/{running['id']}").json()
        assert run["node_states"]["review"]["status"] == "waiting_for_user"

    def test_complete_node_not_waiting(self, test_client, running):
        response = test_client.post(f"/complete/{running['id']}/review", json={"input": {}})

        assert response.status_code == 400


class TestWebhookEndpoints:
    """Test webhook ingestion and administration over HTTP"""

    @pytest.fixture
    def stripe_config(self, test_client):
        create_workflow(test_client, ECHO_GRAPH)
        response = test_client.post("/webhook-configs", json={
            "canvas_id": "canvas-1",
            "source": "stripe",
            "endpoint_slug": "s1",
            "secret": "whsec_test",
            "workflow_id": "wf-1",
            "entry_edge_id": "e1",
        })
        assert response.status_code == 201
        return response.json()

    def signed_post(self, client, payload, secret="whsec_test"):
        raw = json.dumps(payload)
        timestamp = int(time.time())
        signature = hmac_sha256_hex(secret, f"{timestamp}.{raw}")
        return client.post(
            "/webhooks/s1",
            content=raw,
            headers={"Content-Type": "application/json", "Stripe-Signature": f"t={timestamp},v1={signature}"},
        )

    def test_config_response_hides_secret(self, test_client, stripe_config):
        assert stripe_config["has_secret"] is True
        assert "secret" not in stripe_config
        listed = test_client.get("/webhook-configs", params={"canvas_id": "canvas-1"}).json()
        assert [c["endpoint_slug"] for c in listed] == ["s1"]

    def test_config_requires_known_edge(self, test_client):
        create_workflow(test_client, ECHO_GRAPH)

        response = test_client.post("/webhook-configs", json={
            "canvas_id": "canvas-1",
            "source": "custom",
            "endpoint_slug": "s2",
            "workflow_id": "wf-1",
            "entry_edge_id": "missing",
        })

        assert response.status_code == 400

    def test_config_rejects_parallel_entry_edge(self, test_client):
        graph = {
            "nodes": {
                "trigger": {"type": "Trigger"},
                "split": {"type": "Splitter", "config": {"array_path": "items"}},
                "each": {"type": "Worker", "config": {"webhook_url": "http://worker.test/each"}},
            },
            "edges": [
                {"id": "e1", "source": "trigger", "target": "split"},
                {"id": "e2", "source": "split", "target": "each"},
            ],
        }
        create_workflow(test_client, graph, workflow_id="wf-fan")

        response = test_client.post("/webhook-configs", json={
            "canvas_id": "canvas-1",
            "source": "custom",
            "endpoint_slug": "fan",
            "workflow_id": "wf-fan",
            "entry_edge_id": "e2",
        })

        assert response.status_code == 400

    def test_duplicate_slug(self, test_client, stripe_config):
        response = test_client.post("/webhook-configs", json={
            "canvas_id": "canvas-2",
            "source": "custom",
            "endpoint_slug": "s1",
            "workflow_id": "wf-1",
            "entry_edge_id": "e1",
        })

        assert response.status_code == 422

    def test_signed_delivery(self, test_client, stripe_config):
        payload = {"id": "evt_1", "type": "checkout.session.completed",
                   "data": {"object": {"customer_details": {"email": "a@b.com", "name": "A"}}}}

        response = self.signed_post(test_client, payload)

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["webhookEventId"]
        entity = test_client.get(f"/entities/{body['entityId']}").json()
        assert entity["entity_type"] == "customer"
        run = test_client.get(f"/runs/{body['runId']}").json()
        assert run["trigger"]["source"] == "stripe"

        events = test_client.get(f"/webhook-configs/{stripe_config['config_id']}/events").json()["events"]
        assert [e["status"] for e in events] == ["completed"]

    def test_invalid_signature(self, test_client, stripe_config):
        response = self.signed_post(test_client, {"id": "evt_1"}, secret="wrong")

        assert response.status_code == 401
        assert response.json()["errorType"] == "authentication"

    def test_inactive_endpoint(self, test_client, stripe_config):
        patched = test_client.patch(f"/webhook-configs/{stripe_config['config_id']}", json={"is_active": False})
        assert patched.json()["is_active"] is False

        response = self.signed_post(test_client, {"id": "evt_1"})

        assert response.status_code == 422
        assert "inactive" in response.json()["error"]
        assert test_client.get("/runs").json()["runs"] == []
        events = test_client.get(
            f"/webhook-configs/{stripe_config['config_id']}/events", params={"status": "failed"}
        ).json()["events"]
        assert len(events) == 1

    def test_unknown_endpoint(self, test_client):
        response = test_client.post("/webhooks/nope", json={"a": 1})

        assert response.status_code == 404
        assert response.json()["webhookEventId"] is None

    @pytest.mark.parametrize("content", [b"not json", b"[1, 2]"])
    def test_payload_must_be_object(self, test_client, stripe_config, content):
        response = test_client.post("/webhooks/s1", content=content)

        assert response.status_code == 400
        assert response.json()["errorType"] == "validation"

    def test_unknown_entity(self, test_client):
        assert test_client.get("/entities/nope").status_code == 404

    def test_missing_config(self, test_client):
        assert test_client.get("/webhook-configs/nope").status_code == 404
        assert test_client.patch("/webhook-configs/nope", json={"is_active": True}).status_code == 404
