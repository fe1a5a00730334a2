"""
Edge Walker: the continuation algorithm.

Given a just-completed node, fire every downstream node that is now ready.
Synchronous completions are pushed on a work stack and walked before the
call returns, so a chain of synchronous nodes settles within one invocation.
Asynchronous fires (``running``, ``waiting_for_user``) end their branch; it
resumes through the callback gateway.

The walker keeps no state between invocations. Every readiness decision is
made against a Run read from the store after the latest write.
"""

from typing import Any, List, Optional, Tuple

from core.errors import ConfigurationError, NotFoundError
from core.logging_config import get_execution_logger, get_logger
from .handlers import NodeHandlers
from .hooks import SettlementHooks
from .models import FireResult, Graph, NodeStatus, NodeType, Run, TriggerMetadata

logger = get_logger(__name__)
exec_logger = get_execution_logger(__name__)

# (node_id, bypass): bypass walks past a fan-out node whose split was empty
WorkItem = Tuple[str, bool]


class EdgeWalker:
    """Drives runs forward from completions."""

    def __init__(self, graphs, runs, handlers: NodeHandlers, hooks: SettlementHooks):
        self.graphs = graphs
        self.runs = runs
        self.handlers = handlers
        self.hooks = hooks

    def _fresh_run(self, run_id: str) -> Run:
        run = self.runs.get_run(run_id)
        if run is None:
            raise NotFoundError(f"Run {run_id} not found", run_id=run_id)
        return run

    def load_graph(self, workflow_id: str) -> Graph:
        graph = self.graphs.get_graph(workflow_id)
        if graph is None:
            raise NotFoundError(f"Workflow {workflow_id} not found", workflow_id=workflow_id)
        return graph

    async def start_run(
        self,
        workflow_id: str,
        input: Any = None,
        entity_id: Optional[str] = None,
        trigger: Optional[TriggerMetadata] = None,
    ) -> Run:
        """Create a run and fire every entry node with ``input``."""
        graph = self.load_graph(workflow_id)
        run = self.runs.create_run(workflow_id, graph, entity_id=entity_id, trigger=trigger)
        for node_id in graph.entry_nodes():
            await self.fire_node(graph, run.id, node_id, input=input)
        return self._fresh_run(run.id)

    async def fire_node(self, graph: Graph, run_id: str, node_id: str, input: Any = None) -> FireResult:
        """
        Fire one node directly and settle the walk behind it.

        Used for entry nodes and webhook entry edges; the node only has to be
        ``pending``, its upstream dependencies are not consulted.
        """
        if graph.fan_out_splitter(node_id) is not None:
            raise ConfigurationError(f"Node {node_id} is fanned out by a Splitter and cannot be fired directly")
        run = self._fresh_run(run_id)
        if run.status_of(node_id) != NodeStatus.PENDING:
            logger.info(f"Node {node_id} in run {run_id} already fired; skipping")
            return FireResult.skipped(node_id)

        result = await self.handlers.fire(graph, run, node_id, input=input)
        if await self._after_fire(graph, run_id, result):
            await self.walk_edges(node_id, graph, run_id)
        return result

    async def walk_edges(self, completed_node_id: str, graph: Graph, run_id: str):
        """
        Fire everything made ready by ``completed_node_id``.

        Calling this again for an already processed node is a no-op: every
        target has left ``pending`` and the claim in ``fire`` refuses it.
        """
        stack: List[WorkItem] = [(completed_node_id, False)]
        while stack:
            node_id, bypass = stack.pop()
            settled = await self._walk_node(graph, run_id, node_id, bypass)
            # Reverse so the first declared target is walked first
            stack.extend(reversed(settled))

        run = self._fresh_run(run_id)
        if run.is_drained():
            logger.info(f"Run {run_id} drained")

    def continues_walk(self, graph: Graph, node_id: str, status: Optional[NodeStatus]) -> bool:
        """
        Whether settling ``node_id`` with ``status`` continues the walk.

        Completed nodes do. A failed parallel instance only continues towards
        its Collector, which has to observe every instance settle.
        """
        if status == NodeStatus.COMPLETED:
            return True
        return status == NodeStatus.FAILED and graph.resolve_node_id(node_id)[1] is not None

    async def _walk_node(self, graph: Graph, run_id: str, node_id: str, bypass: bool) -> List[WorkItem]:
        run = self._fresh_run(run_id)
        status = run.status_of(node_id)
        if not bypass and not self.continues_walk(graph, node_id, status):
            return []

        base_id, _ = graph.resolve_node_id(node_id)
        edges = graph.outbound_edges(base_id)
        if not bypass and status == NodeStatus.FAILED:
            edges = [edge for edge in edges if graph.nodes[edge.target].type == NodeType.COLLECTOR]
        exec_logger.log_edge_walking(run_id, node_id, [edge.target for edge in edges])

        settled: List[WorkItem] = []
        for edge in edges:
            target = edge.target
            if graph.fan_out_splitter(target) == base_id:
                settled.extend(await self._fire_instances(graph, run_id, target))
                continue

            run = self._fresh_run(run_id)
            if not self.handlers.is_ready(graph, run, target):
                continue
            result = await self.handlers.fire(graph, run, target)
            if await self._after_fire(graph, run_id, result):
                settled.append((target, False))
        return settled

    async def _fire_instances(self, graph: Graph, run_id: str, base_id: str) -> List[WorkItem]:
        run = self._fresh_run(run_id)
        instance_ids = self.handlers.instance_ids(graph, run, base_id)
        if not instance_ids:
            logger.info(f"Empty split for {base_id} in run {run_id}; walking past it")
            return [(base_id, True)]

        settled: List[WorkItem] = []
        for instance_id in instance_ids:
            run = self._fresh_run(run_id)
            if not self.handlers.is_ready(graph, run, instance_id):
                continue
            result = await self.handlers.fire(graph, run, instance_id)
            if await self._after_fire(graph, run_id, result):
                settled.append((instance_id, False))
        return settled

    async def _after_fire(self, graph: Graph, run_id: str, result: FireResult) -> bool:
        """Run settlement hooks; True when the node settled and must be walked."""
        if not result.fired:
            return False
        run = self._fresh_run(run_id)
        if result.status == NodeStatus.WAITING_FOR_USER:
            self.hooks.node_waiting(graph, run, result.node_id)
        elif result.status in (NodeStatus.COMPLETED, NodeStatus.FAILED):
            await self.hooks.node_settled(graph, run, result.node_id, result.status, result.output)
        return self.continues_walk(graph, result.node_id, result.status)
