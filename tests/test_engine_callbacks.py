"""
Tests for the worker callback gateway.
"""
import pytest

from core.errors import DuplicateDeliveryNoop, NotFoundError, ValidationError
from services.engine.callbacks import DEFAULT_FAILURE_MESSAGE, validate_callback_body
from services.engine.models import NodeStatus


class TestCallbackValidation:
    """Test callback body validation"""

    @pytest.mark.parametrize("body", [
        None,
        [],
        {},
        {"status": "done"},
        {"status": "completed", "output": "text"},
        {"status": "completed", "output": [1, 2]},
        {"status": "failed", "error": {"code": 1}},
    ])
    def test_malformed_bodies(self, body):
        with pytest.raises(ValidationError):
            validate_callback_body(body)

    def test_valid_bodies(self):
        assert validate_callback_body({"status": "completed"})["output"] is None
        assert validate_callback_body({"status": "completed", "output": {"a": 1}})["status"] == NodeStatus.COMPLETED
        assert validate_callback_body({"status": "failed", "error": "x"})["error"] == "x"


class TestCallbackGateway:
    """Test applying callbacks to runs"""

    @pytest.mark.asyncio
    async def test_completed_without_output(self, services, async_worker_graph):
        services.graphs.save_graph("wf-1", async_worker_graph)
        run = await services.walker.start_run("wf-1", input={})

        result = await services.callbacks.handle_callback(run.id, "remote", {"status": "completed"})

        assert result == {"success": True}
        assert services.runs.get_run(run.id).state("remote").output == {}

    @pytest.mark.asyncio
    async def test_failed_callback_does_not_walk(self, services, async_worker_graph):
        """Test a failed node does not fire its default edges"""
        services.graphs.save_graph("wf-1", async_worker_graph)
        run = await services.walker.start_run("wf-1", input={})

        await services.callbacks.handle_callback(run.id, "remote", {"status": "failed"})

        run = services.runs.get_run(run.id)
        assert run.status_of("remote") == NodeStatus.FAILED
        assert run.state("remote").error == DEFAULT_FAILURE_MESSAGE
        assert run.status_of("after") == NodeStatus.PENDING

    @pytest.mark.asyncio
    async def test_duplicate_callback_is_noop(self, services, async_worker_graph):
        """Test a second callback for a settled node changes nothing"""
        services.graphs.save_graph("wf-1", async_worker_graph)
        run = await services.walker.start_run("wf-1", input={})
        await services.callbacks.handle_callback(run.id, "remote", {"status": "completed", "output": {"v": 1}})
        settled = services.runs.get_run(run.id).node_states

        with pytest.raises(DuplicateDeliveryNoop):
            await services.callbacks.handle_callback(run.id, "remote", {"status": "failed", "error": "late"})

        assert services.runs.get_run(run.id).node_states == settled

    @pytest.mark.asyncio
    async def test_callback_for_pending_node_is_noop(self, services, async_worker_graph):
        services.graphs.save_graph("wf-1", async_worker_graph)
        run = await services.walker.start_run("wf-1", input={})

        with pytest.raises(DuplicateDeliveryNoop):
            await services.callbacks.handle_callback(run.id, "after", {"status": "completed"})
        assert services.runs.get_run(run.id).status_of("after") == NodeStatus.PENDING

    @pytest.mark.asyncio
    async def test_unknown_run_or_node(self, services, async_worker_graph):
        services.graphs.save_graph("wf-1", async_worker_graph)
        run = await services.walker.start_run("wf-1", input={})

        with pytest.raises(NotFoundError):
            await services.callbacks.handle_callback("missing", "remote", {"status": "completed"})
        with pytest.raises(NotFoundError):
            await services.callbacks.handle_callback(run.id, "ghost", {"status": "completed"})


class TestCompleteUx:
    """Test completing UX nodes"""

    @pytest.mark.asyncio
    async def test_complete_continues_walk(self, services, ux_graph):
        services.graphs.save_graph("wf-1", ux_graph)
        run = await services.walker.start_run("wf-1", input={})

        await services.callbacks.complete_ux(run.id, "review", {"approved": True})

        run = services.runs.get_run(run.id)
        assert run.state("review").output == {"approved": True}
        assert run.state("after").output == {"approved": True}
        assert run.is_drained()

    @pytest.mark.asyncio
    async def test_complete_twice_rejected(self, services, ux_graph):
        services.graphs.save_graph("wf-1", ux_graph)
        run = await services.walker.start_run("wf-1", input={})
        await services.callbacks.complete_ux(run.id, "review", {"approved": True})

        with pytest.raises(ValidationError):
            await services.callbacks.complete_ux(run.id, "review", {"approved": False})
        assert services.runs.get_run(run.id).state("review").output == {"approved": True}

    @pytest.mark.asyncio
    async def test_complete_non_ux_node_rejected(self, services, ux_graph):
        services.graphs.save_graph("wf-1", ux_graph)
        run = await services.walker.start_run("wf-1", input={})

        with pytest.raises(ValidationError):
            await services.callbacks.complete_ux(run.id, "after", {})
