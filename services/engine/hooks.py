"""
Side effects attached to node settlement: entity movement and system edge
notifications. Both are best-effort; their failures are logged and never
change run state.
"""

from typing import Any, Optional

from core.best_effort import BestEffort, best_effort, best_effort_async
from core.logging_config import get_logger
from .dispatcher import WorkerDispatcher
from .models import EdgeKind, Graph, NodeStatus, NodeType, Run

logger = get_logger(__name__)


class EntityMovementHooks:
    """
    Moves the run's entity according to a node's ``entity_movement`` config:

        {"on_success": {"target_node_id": "...", "complete_as": "...", "set_entity_type": "..."},
         "on_failure": {...}}
    """

    def __init__(self, entities):
        self.entities = entities

    def on_settled(self, graph: Graph, run: Run, node_id: str, status: NodeStatus) -> BestEffort:
        if not run.entity_id:
            return BestEffort()
        base_id, _ = graph.resolve_node_id(node_id)
        movement = graph.nodes[base_id].config.get("entity_movement") or {}
        rule = movement.get("on_success" if status == NodeStatus.COMPLETED else "on_failure")
        if not rule or not rule.get("target_node_id"):
            return BestEffort()

        return best_effort(
            self.entities.move_to_node,
            run.entity_id,
            rule["target_node_id"],
            complete_as=rule.get("complete_as"),
            set_entity_type=rule.get("set_entity_type"),
        )

    def on_waiting(self, graph: Graph, run: Run, node_id: str) -> BestEffort:
        """A UX node waiting for a human holds the entity."""
        if not run.entity_id:
            return BestEffort()
        base_id, _ = graph.resolve_node_id(node_id)
        if graph.nodes[base_id].type != NodeType.UX:
            return BestEffort()
        return best_effort(self.entities.move_to_node, run.entity_id, base_id)


class SystemEdgeNotifier:
    """POSTs a notification to ``edge.config['url']`` for each system edge of a completed node."""

    def __init__(self, dispatcher: WorkerDispatcher):
        self.dispatcher = dispatcher

    async def notify(self, graph: Graph, run: Run, node_id: str, output: Any):
        base_id, _ = graph.resolve_node_id(node_id)
        for edge in graph.outbound_edges(base_id, kinds=(EdgeKind.SYSTEM,)):
            payload = {
                "edge_id": edge.id,
                "run_id": run.id,
                "source": node_id,
                "target": edge.target,
                "entity_id": run.entity_id,
                "output": output,
            }
            result = await best_effort_async(self.dispatcher.dispatch, edge.config.get("url"), payload)
            result.acknowledge(logger, "System edge notification failed", run_id=run.id, edge_id=edge.id)


class SettlementHooks:
    """Runs every settlement side effect once per node transition."""

    def __init__(self, movement: Optional[EntityMovementHooks], notifier: Optional[SystemEdgeNotifier]):
        self.movement = movement
        self.notifier = notifier

    async def node_settled(self, graph: Graph, run: Run, node_id: str, status: NodeStatus, output: Any = None):
        if self.movement:
            self.movement.on_settled(graph, run, node_id, status).acknowledge(
                logger, "Entity movement failed", run_id=run.id, node_id=node_id
            )
        if self.notifier and status == NodeStatus.COMPLETED:
            await self.notifier.notify(graph, run, node_id, output)

    def node_waiting(self, graph: Graph, run: Run, node_id: str):
        if self.movement:
            self.movement.on_waiting(graph, run, node_id).acknowledge(
                logger, "Entity placement on UX node failed", run_id=run.id, node_id=node_id
            )
