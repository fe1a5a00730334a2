"""
Node readiness and per-type firing.

``is_ready`` decides from a freshly read Run whether a node may fire.
``fire`` claims the node with a compare-and-set on ``pending`` so two writers
racing for the same node fire it once; the loser gets a skipped FireResult.
"""

from typing import Any, Dict, List, Optional

from jinja2.sandbox import SandboxedEnvironment

from core.errors import ExternalDispatchError
from core.logging_config import get_execution_logger, get_logger
from services.webhooks.json_path import extract_path
from .dispatcher import WorkerDispatcher
from .models import (
    EdgeKind,
    FireResult,
    Graph,
    GraphEdge,
    GraphNode,
    NodeStatus,
    NodeType,
    Run,
)
from .status import is_terminal
from .workers import IntegratedWorkerRegistry

logger = get_logger(__name__)
exec_logger = get_execution_logger(__name__)

COLLECTOR_POLICIES = ("fail", "partial")
FAN_OUT_TYPES = (NodeType.WORKER, NodeType.UX)


class NodeHandlers:
    """Readiness checks and fire semantics for every node type."""

    def __init__(
        self,
        runs,
        dispatcher: WorkerDispatcher,
        workers: IntegratedWorkerRegistry,
        collector_policy: str = "fail",
    ):
        self.runs = runs
        self.dispatcher = dispatcher
        self.workers = workers
        self.collector_policy = collector_policy
        self.jinja_env = SandboxedEnvironment()

    # Readiness

    def condition_holds(self, edge: GraphEdge, output: Any) -> bool:
        """Evaluate a conditional edge against its source output. Unevaluable conditions are false."""
        if edge.kind != EdgeKind.CONDITIONAL:
            return True
        try:
            expression = self.jinja_env.compile_expression(edge.condition)
            return bool(expression(output=output))
        except Exception as e:
            exec_logger.log_execution_error(
                "Edge condition could not be evaluated", error=e, edge_id=edge.id, condition=edge.condition
            )
            return False

    def instance_ids(self, graph: Graph, run: Run, base_id: str) -> List[str]:
        """Instance ids of a fan-out node, derived from its Splitter's output."""
        splitter_id = graph.fan_out_splitter(base_id)
        if splitter_id is None:
            return []
        state = run.state(splitter_id)
        if state is None or state.status != NodeStatus.COMPLETED or not isinstance(state.output, list):
            return []
        return [graph.instance_id(base_id, i) for i in range(len(state.output))]

    def is_ready(self, graph: Graph, run: Run, node_id: str) -> bool:
        state = run.state(node_id)
        if state is None or state.status != NodeStatus.PENDING:
            return False

        base_id, index = graph.resolve_node_id(node_id)
        node = graph.nodes[base_id]
        if index is not None:
            # Instances only exist once their Splitter completed
            return True
        if node.type == NodeType.TRIGGER:
            return True
        if graph.fan_out_splitter(base_id):
            # The static fan-out node never fires itself
            return False

        for edge in graph.inbound_edges(base_id):
            if not self._dependency_satisfied(graph, run, node, edge):
                return False
        return True

    def _dependency_satisfied(self, graph: Graph, run: Run, node: GraphNode, edge: GraphEdge) -> bool:
        source_id = edge.source
        splitter_id = graph.fan_out_splitter(source_id)
        if splitter_id is None:
            source = run.state(source_id)
            if source is None or source.status != NodeStatus.COMPLETED:
                return False
            return self.condition_holds(edge, source.output)

        if run.status_of(splitter_id) != NodeStatus.COMPLETED:
            return False
        statuses = [run.status_of(i) for i in self.instance_ids(graph, run, source_id)]
        if node.type == NodeType.COLLECTOR:
            return all(is_terminal(status) for status in statuses)
        return all(status == NodeStatus.COMPLETED for status in statuses)

    # Input

    def upstream_output(self, graph: Graph, run: Run, source_id: str) -> Any:
        if graph.fan_out_splitter(source_id):
            return [run.state(i).output for i in self.instance_ids(graph, run, source_id)]
        state = run.state(source_id)
        return state.output if state else None

    def build_input(self, graph: Graph, run: Run, node_id: str) -> Any:
        """
        Merge upstream outputs in edge order.

        Instances receive their split element. Edge ``mapping`` picks fields,
        dict outputs merge key-wise and anything else lands under the source id.
        """
        base_id, index = graph.resolve_node_id(node_id)
        state = run.state(node_id)
        inbound = graph.inbound_edges(base_id)
        if index is not None or not inbound:
            return state.input if state else None

        merged: Dict[str, Any] = {}
        for edge in inbound:
            if edge.kind == EdgeKind.CONDITIONAL and run.status_of(edge.source) != NodeStatus.COMPLETED:
                continue
            value = self.upstream_output(graph, run, edge.source)
            if edge.mapping:
                for key, path in edge.mapping.items():
                    merged[key] = extract_path(value, path)
            elif isinstance(value, dict):
                merged.update(value)
            else:
                merged[edge.source] = value
        return merged

    # Firing

    async def fire(self, graph: Graph, run: Run, node_id: str, input: Any = None) -> FireResult:
        """Fire one node or parallel instance. ``input`` overrides the merged upstream input."""
        base_id, _ = graph.resolve_node_id(node_id)
        node = graph.nodes[base_id]
        if input is None:
            input = self.build_input(graph, run, node_id)

        exec_logger.log_node_execution(run.id, node_id, node.type.value, input)

        if node.type == NodeType.TRIGGER:
            return await self._fire_trigger(run, node_id, input)
        if node.type == NodeType.WORKER:
            return await self._fire_worker(run, node, node_id, input)
        if node.type == NodeType.UX:
            return self._fire_ux(run, node_id, input)
        if node.type == NodeType.SPLITTER:
            return self._fire_splitter(graph, run, node, node_id, input)
        if node.type == NodeType.COLLECTOR:
            return self._fire_collector(graph, run, node, node_id)
        raise ValueError(f"Unsupported node type: {node.type}")

    def _claim(self, run: Run, node_id: str, status: NodeStatus, input: Any) -> Optional[Run]:
        return self.runs.update_node_state(
            run.id, node_id, status, input=input, expected_status=NodeStatus.PENDING
        )

    def _complete(self, run_id: str, node_id: str, output: Any) -> FireResult:
        updated = self.runs.update_node_state(
            run_id, node_id, NodeStatus.COMPLETED, output=output, expected_status=NodeStatus.RUNNING
        )
        if updated is None:
            return FireResult.skipped(node_id)
        return FireResult(node_id=node_id, status=NodeStatus.COMPLETED, output=output)

    def _fail(self, run_id: str, node_id: str, error: str) -> FireResult:
        exec_logger.log_execution_error("Node failed", run_id=run_id, node_id=node_id, reason=error)
        updated = self.runs.update_node_state(
            run_id, node_id, NodeStatus.FAILED, error=error, expected_status=NodeStatus.RUNNING
        )
        if updated is None:
            return FireResult.skipped(node_id)
        return FireResult(node_id=node_id, status=NodeStatus.FAILED, error=error)

    async def _fire_trigger(self, run: Run, node_id: str, input: Any) -> FireResult:
        if self._claim(run, node_id, NodeStatus.RUNNING, input) is None:
            return FireResult.skipped(node_id)
        return self._complete(run.id, node_id, input)

    async def _fire_worker(self, run: Run, node: GraphNode, node_id: str, input: Any) -> FireResult:
        if self._claim(run, node_id, NodeStatus.RUNNING, input) is None:
            return FireResult.skipped(node_id)

        worker_type = node.config.get("worker_type")
        if worker_type in self.workers:
            try:
                output = await self.workers.run(worker_type, node.config, input)
            except Exception as e:
                return self._fail(run.id, node_id, f"Worker '{worker_type}' failed: {e}")
            return self._complete(run.id, node_id, output)

        url = node.config.get("webhook_url")
        payload = self.dispatcher.build_payload(run.id, node_id, node.config, input)
        exec_logger.log_worker_call(run.id, node_id, worker_type or "webhook", url or "", payload)
        try:
            await self.dispatcher.dispatch(url, payload)
        except ExternalDispatchError as e:
            return self._fail(run.id, node_id, e.message)
        return FireResult(node_id=node_id, status=NodeStatus.RUNNING)

    def _fire_ux(self, run: Run, node_id: str, input: Any) -> FireResult:
        if self._claim(run, node_id, NodeStatus.WAITING_FOR_USER, input) is None:
            return FireResult.skipped(node_id)
        return FireResult(node_id=node_id, status=NodeStatus.WAITING_FOR_USER)

    def _fire_splitter(self, graph: Graph, run: Run, node: GraphNode, node_id: str, input: Any) -> FireResult:
        if self._claim(run, node_id, NodeStatus.RUNNING, input) is None:
            return FireResult.skipped(node_id)

        array_path = node.config.get("array_path")
        items = extract_path(input, array_path) if array_path else input
        if not isinstance(items, list):
            return self._fail(run.id, node_id, f"Splitter input at '{array_path or '$'}' is not an array")

        outbound = graph.outbound_edges(node.id)
        if len(outbound) != 1 or outbound[0].kind != EdgeKind.DEFAULT:
            return self._fail(run.id, node_id, "Splitter must have exactly one default outbound edge")
        target = graph.nodes[outbound[0].target]
        if target.type not in FAN_OUT_TYPES or graph.fan_out_splitter(target.id) != node.id:
            return self._fail(
                run.id, node_id,
                f"Splitter target {target.id} must be a Worker or UX node fed only by the splitter",
            )

        instances = {graph.instance_id(target.id, i): item for i, item in enumerate(items)}
        updated = self.runs.complete_splitter(run.id, node_id, items, instances)
        if updated is None:
            return FireResult.skipped(node_id)
        exec_logger.log_parallel_instances(run.id, target.id, instances.keys())
        return FireResult(node_id=node_id, status=NodeStatus.COMPLETED, output=items)

    def _fire_collector(self, graph: Graph, run: Run, node: GraphNode, node_id: str) -> FireResult:
        claimed = self._claim(run, node_id, NodeStatus.RUNNING, None)
        if claimed is None:
            return FireResult.skipped(node_id)

        policy = node.config.get("failure_policy") or self.collector_policy
        if policy not in COLLECTOR_POLICIES:
            return self._fail(run.id, node_id, f"Unknown collector failure policy '{policy}'")

        inbound = graph.inbound_edges(node.id)
        fan_out_sources = [e.source for e in inbound if graph.fan_out_splitter(e.source)]
        if not fan_out_sources:
            output = [self.upstream_output(graph, claimed, e.source) for e in inbound]
            return self._complete(run.id, node_id, output)

        output = []
        failed = []
        for source_id in fan_out_sources:
            for instance_id in self.instance_ids(graph, claimed, source_id):
                state = claimed.state(instance_id)
                if state.status == NodeStatus.FAILED:
                    failed.append(instance_id)
                elif state.status == NodeStatus.COMPLETED:
                    output.append(state.output)

        if failed and policy == "fail":
            return self._fail(run.id, node_id, f"Parallel instances failed: {', '.join(failed)}")
        if failed:
            logger.warning(f"Collector {node_id} in run {run.id} omitting failed instances: {', '.join(failed)}")
        return self._complete(run.id, node_id, output)
