"""
Worker Callback Gateway: resumes runs when external workers or humans report back.
"""

from typing import Any, Dict, Tuple

from core.errors import DuplicateDeliveryNoop, NotFoundError, ValidationError
from core.logging_config import get_execution_logger, get_logger
from .edge_walker import EdgeWalker
from .models import Graph, NodeStatus, NodeType, Run

logger = get_logger(__name__)
exec_logger = get_execution_logger(__name__)

DEFAULT_FAILURE_MESSAGE = "Worker reported failure"
CALLBACK_STATUSES = (NodeStatus.COMPLETED.value, NodeStatus.FAILED.value)


def validate_callback_body(body: Any) -> Dict[str, Any]:
    """Check the callback body shape and return ``{status, output, error}``."""
    if not isinstance(body, dict):
        raise ValidationError("Callback body must be a JSON object")

    status = body.get("status")
    if status not in CALLBACK_STATUSES:
        raise ValidationError("status must be 'completed' or 'failed'")

    output = body.get("output")
    error = body.get("error")
    if status == NodeStatus.COMPLETED.value and output is not None and not isinstance(output, dict):
        raise ValidationError("output must be an object")
    if status == NodeStatus.FAILED.value and error is not None and not isinstance(error, str):
        raise ValidationError("error must be a string")
    return {"status": NodeStatus(status), "output": output, "error": error}


class CallbackGateway:
    """Applies worker callbacks and UX completions, then continues the walk."""

    def __init__(self, runs, walker: EdgeWalker):
        self.runs = runs
        self.walker = walker

    def _load(self, run_id: str, node_id: str) -> Tuple[Run, Graph]:
        run = self.runs.get_run(run_id)
        if run is None:
            raise NotFoundError(f"Run {run_id} not found", run_id=run_id)
        if node_id not in run.node_states:
            raise NotFoundError(f"Node {node_id} not found in run {run_id}", run_id=run_id, node_id=node_id)
        return run, self.walker.load_graph(run.workflow_id)

    async def handle_callback(self, run_id: str, node_id: str, body: Any) -> Dict[str, Any]:
        """
        Apply a worker callback.

        A callback for a node that is not ``running`` is a duplicate delivery:
        it is logged and DuplicateDeliveryNoop is raised for the caller to
        answer with success. Only ``completed`` continues the walk, except
        that a failed parallel instance still lets its Collector settle.
        """
        fields = validate_callback_body(body)
        status: NodeStatus = fields["status"]
        run, graph = self._load(run_id, node_id)
        exec_logger.log_callback_received(run_id, node_id, status.value, fields["output"], fields["error"])

        if status == NodeStatus.COMPLETED:
            output = fields["output"] if fields["output"] is not None else {}
            updated = self.runs.update_node_state(
                run_id, node_id, NodeStatus.COMPLETED, output=output, expected_status=NodeStatus.RUNNING
            )
        else:
            output = None
            updated = self.runs.update_node_state(
                run_id, node_id, NodeStatus.FAILED,
                error=fields["error"] or DEFAULT_FAILURE_MESSAGE,
                expected_status=NodeStatus.RUNNING,
            )

        if updated is None:
            current = self.runs.get_run(run_id).status_of(node_id)
            logger.warning(
                f"Ignoring duplicate callback for {node_id} in run {run_id}: node is {current.value if current else 'missing'}"
            )
            raise DuplicateDeliveryNoop("Callback already processed", run_id=run_id, node_id=node_id)

        await self.walker.hooks.node_settled(graph, updated, node_id, status, output)
        if self.walker.continues_walk(graph, node_id, status):
            await self.walker.walk_edges(node_id, graph, run_id)
        return {"success": True}

    async def complete_ux(self, run_id: str, node_id: str, input: Any) -> Dict[str, Any]:
        """Complete a UX node waiting for a human with the supplied input as its output."""
        run, graph = self._load(run_id, node_id)
        base_id, _ = graph.resolve_node_id(node_id)
        if graph.nodes[base_id].type != NodeType.UX:
            raise ValidationError("Node is not a UX node")
        if run.status_of(node_id) != NodeStatus.WAITING_FOR_USER:
            raise ValidationError("Node is not waiting for user input")

        updated = self.runs.update_node_state(
            run_id, node_id, NodeStatus.COMPLETED, output=input, expected_status=NodeStatus.WAITING_FOR_USER
        )
        if updated is None:
            raise ValidationError("Node is not waiting for user input")

        logger.info(f"UX node {node_id} in run {run_id} completed by user")
        await self.walker.hooks.node_settled(graph, updated, node_id, NodeStatus.COMPLETED, input)
        await self.walker.walk_edges(node_id, graph, run_id)
        return {"success": True}
