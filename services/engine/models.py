"""
Data models for the workflow execution engine.

The Graph describes one immutable workflow version. A Run is one execution
of a Graph and is the sole holder of execution progress, as a map of
NodeId -> NodeState. Parallel instances produced by a Splitter live in the
same map under ``{baseId}_{index}`` keys.
"""

import re
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, Field, model_validator


class NodeType(str, Enum):
    """Supported node types in the graph"""
    WORKER = "Worker"
    UX = "UX"
    SPLITTER = "Splitter"
    COLLECTOR = "Collector"
    TRIGGER = "Trigger"


class NodeStatus(str, Enum):
    """Node execution status"""
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    WAITING_FOR_USER = "waiting_for_user"


TERMINAL_STATUSES = frozenset({NodeStatus.COMPLETED, NodeStatus.FAILED})


class EdgeKind(str, Enum):
    """Edge kinds. Only default and conditional edges carry dependencies."""
    DEFAULT = "default"
    CONDITIONAL = "conditional"
    SYSTEM = "system"


DEPENDENCY_KINDS = (EdgeKind.DEFAULT, EdgeKind.CONDITIONAL)

_INSTANCE_PATTERN = re.compile(r"^(?P<base>.+)_(?P<index>\d+)$")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class GraphNode(BaseModel):
    """A typed node with its static configuration."""

    id: str = ""
    type: NodeType
    config: Dict[str, Any] = Field(default_factory=dict)


class GraphEdge(BaseModel):
    """A directed link between two nodes."""

    id: str
    source: str
    target: str
    kind: EdgeKind = EdgeKind.DEFAULT
    condition: Optional[str] = Field(None, description="Jinja2 expression evaluated against the source output")
    mapping: Optional[Dict[str, str]] = Field(None, description="target_key -> dot path into the source output")
    config: Dict[str, Any] = Field(default_factory=dict)

    @model_validator(mode="after")
    def _check_condition(self):
        if self.kind == EdgeKind.CONDITIONAL and not self.condition:
            raise ValueError(f"Conditional edge {self.id} requires a condition")
        return self


class Graph(BaseModel):
    """Immutable description of nodes and edges for one workflow version."""

    nodes: Dict[str, GraphNode]
    edges: List[GraphEdge] = Field(default_factory=list)

    model_config = {"frozen": True}

    @model_validator(mode="before")
    @classmethod
    def _fill_node_ids(cls, data: Any) -> Any:
        if isinstance(data, dict) and isinstance(data.get("nodes"), dict):
            nodes = {}
            for node_id, node in data["nodes"].items():
                if isinstance(node, dict):
                    node = {**node, "id": node_id}
                nodes[node_id] = node
            data = {**data, "nodes": nodes}
        return data

    @model_validator(mode="after")
    def _check_structure(self):
        if not self.nodes:
            raise ValueError("Graph must have nodes")

        seen = set()
        for edge in self.edges:
            if edge.id in seen:
                raise ValueError(f"Duplicate edge id {edge.id}")
            seen.add(edge.id)
            if edge.source not in self.nodes:
                raise ValueError(f"Edge source {edge.source} not found in nodes")
            if edge.target not in self.nodes:
                raise ValueError(f"Edge target {edge.target} not found in nodes")

        # Parallel instance ids must not collide with static node ids
        for node_id in self.nodes:
            match = _INSTANCE_PATTERN.match(node_id)
            if match and match.group("base") in self.nodes and self.fan_out_splitter(match.group("base")):
                raise ValueError(f"Node id {node_id} collides with parallel instances of {match.group('base')}")
        return self

    # Lookups

    def get_node(self, node_id: str) -> Optional[GraphNode]:
        return self.nodes.get(node_id)

    def get_edge(self, edge_id: str) -> Optional[GraphEdge]:
        for edge in self.edges:
            if edge.id == edge_id:
                return edge
        return None

    def outbound_edges(self, node_id: str, kinds: Tuple[EdgeKind, ...] = DEPENDENCY_KINDS) -> List[GraphEdge]:
        """Outbound edges of ``node_id`` in declaration order."""
        return [e for e in self.edges if e.source == node_id and e.kind in kinds]

    def inbound_edges(self, node_id: str, kinds: Tuple[EdgeKind, ...] = DEPENDENCY_KINDS) -> List[GraphEdge]:
        """Inbound edges of ``node_id`` in declaration order."""
        return [e for e in self.edges if e.target == node_id and e.kind in kinds]

    def entry_nodes(self) -> List[str]:
        """Nodes with no inbound dependency edges, in declaration order."""
        return [node_id for node_id in self.nodes if not self.inbound_edges(node_id)]

    # Parallel instancing

    def fan_out_splitter(self, node_id: str) -> Optional[str]:
        """The Splitter feeding ``node_id`` when it is a fan-out node, else None."""
        inbound = self.inbound_edges(node_id)
        if len(inbound) != 1:
            return None
        source = self.nodes[inbound[0].source]
        return source.id if source.type == NodeType.SPLITTER else None

    def resolve_node_id(self, node_id: str) -> Tuple[str, Optional[int]]:
        """
        Map a run node id to ``(static_id, instance_index)``.

        Static ids win over the instance pattern so node ids that happen to end
        in ``_<digits>`` are still resolved correctly.
        """
        if node_id in self.nodes:
            return node_id, None
        match = _INSTANCE_PATTERN.match(node_id)
        if match and match.group("base") in self.nodes and self.fan_out_splitter(match.group("base")):
            return match.group("base"), int(match.group("index"))
        raise KeyError(node_id)

    @staticmethod
    def instance_id(base_id: str, index: int) -> str:
        return f"{base_id}_{index}"


class NodeState(BaseModel):
    """Execution state of one node (or parallel instance) within a Run."""

    status: NodeStatus = NodeStatus.PENDING
    input: Optional[Any] = None
    output: Optional[Any] = None
    error: Optional[str] = None


class TriggerMetadata(BaseModel):
    """How a Run was started."""

    type: str = Field("manual", description="manual or webhook")
    source: Optional[str] = None
    event_id: Optional[str] = None
    timestamp: datetime = Field(default_factory=utcnow)


class Run(BaseModel):
    """One execution instance of a workflow graph."""

    id: str
    workflow_id: str
    entity_id: Optional[str] = None
    trigger: TriggerMetadata = Field(default_factory=TriggerMetadata)
    node_states: Dict[str, NodeState] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    def state(self, node_id: str) -> Optional[NodeState]:
        return self.node_states.get(node_id)

    def status_of(self, node_id: str) -> Optional[NodeStatus]:
        state = self.node_states.get(node_id)
        return state.status if state else None

    def instance_ids(self, base_id: str) -> List[str]:
        """Existing parallel instance ids of ``base_id`` ordered by index."""
        found = []
        for node_id in self.node_states:
            match = _INSTANCE_PATTERN.match(node_id)
            if match and match.group("base") == base_id:
                found.append((int(match.group("index")), node_id))
        return [node_id for _, node_id in sorted(found)]

    def is_drained(self) -> bool:
        """No node is running or waiting for a human."""
        return not any(
            s.status in (NodeStatus.RUNNING, NodeStatus.WAITING_FOR_USER)
            for s in self.node_states.values()
        )


@dataclass
class FireResult:
    """Outcome of firing one node or parallel instance."""

    node_id: str
    status: Optional[NodeStatus]
    fired: bool = True
    output: Any = None
    error: Optional[str] = None

    @property
    def completed(self) -> bool:
        return self.fired and self.status == NodeStatus.COMPLETED

    @classmethod
    def skipped(cls, node_id: str) -> "FireResult":
        """The node was not fired because another writer already claimed it."""
        return cls(node_id=node_id, status=None, fired=False)
