"""
Node status state machine.

A node moves ``pending -> running -> completed|failed`` or
``pending -> waiting_for_user -> completed``. Anything else is a programming
error and raises StatusTransitionError.
"""

from typing import Dict, FrozenSet

from core.errors import StatusTransitionError
from .models import TERMINAL_STATUSES, NodeStatus

VALID_TRANSITIONS: Dict[NodeStatus, FrozenSet[NodeStatus]] = {
    NodeStatus.PENDING: frozenset({NodeStatus.RUNNING, NodeStatus.WAITING_FOR_USER}),
    NodeStatus.RUNNING: frozenset({NodeStatus.COMPLETED, NodeStatus.FAILED}),
    NodeStatus.WAITING_FOR_USER: frozenset({NodeStatus.COMPLETED}),
    NodeStatus.COMPLETED: frozenset(),
    NodeStatus.FAILED: frozenset(),
}


def can_transition(from_status: NodeStatus, to_status: NodeStatus) -> bool:
    return to_status in VALID_TRANSITIONS.get(NodeStatus(from_status), frozenset())


def validate_transition(from_status: NodeStatus, to_status: NodeStatus, node_id: str = None):
    """Raise StatusTransitionError unless ``from_status -> to_status`` is legal."""
    if not can_transition(from_status, to_status):
        raise StatusTransitionError(
            NodeStatus(from_status).value, NodeStatus(to_status).value, node_id=node_id
        )


def is_terminal(status: NodeStatus) -> bool:
    return NodeStatus(status) in TERMINAL_STATUSES
