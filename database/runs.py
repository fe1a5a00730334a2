"""
Run Store: durable execution state of workflow runs.

Every mutation runs inside one ``BEGIN IMMEDIATE`` transaction that reads the
current node_states, applies the change and returns the post-update Run read
in the same transaction. Callers make every readiness decision from that
returned Run, never from a copy captured before the write.
"""

import logging
import uuid
from typing import Any, Dict, List, Optional

from core.errors import NotFoundError
from services.engine.models import Graph, NodeState, NodeStatus, Run, TriggerMetadata, utcnow
from services.engine.status import validate_transition
from .config import connection, datetime_to_str, from_json, init_schema, str_to_datetime, to_json, transaction

logger = logging.getLogger(__name__)

_UNSET = object()


class RunStore:
    """Database interface for runs and their per-node state."""

    def __init__(self, db_path: str):
        self.db_path = db_path
        init_schema(db_path)

    def create_run(
        self,
        workflow_id: str,
        graph: Graph,
        entity_id: Optional[str] = None,
        trigger: Optional[TriggerMetadata] = None,
    ) -> Run:
        """Create a run with every static node seeded ``pending``."""
        run = Run(
            id=str(uuid.uuid4()),
            workflow_id=workflow_id,
            entity_id=entity_id,
            trigger=trigger or TriggerMetadata(),
            node_states={node_id: NodeState() for node_id in graph.nodes},
        )
        try:
            with transaction(self.db_path) as conn:
                conn.execute("""
                    INSERT INTO runs (
                        run_id, workflow_id, entity_id, trigger, node_states, created_at, updated_at
                    ) VALUES (?, ?, ?, ?, ?, ?, ?)
                """, (
                    run.id,
                    run.workflow_id,
                    run.entity_id,
                    run.trigger.model_dump_json(),
                    self._dump_states(run.node_states),
                    datetime_to_str(run.created_at),
                    datetime_to_str(run.updated_at),
                ))
            logger.info(f"Run {run.id} created for workflow {workflow_id}")
            return run

        except Exception as e:
            logger.error(f"Failed to create run for workflow {workflow_id}: {e}")
            raise

    def get_run(self, run_id: str) -> Optional[Run]:
        """Get a run by ID."""
        try:
            with connection(self.db_path) as conn:
                row = conn.execute("SELECT * FROM runs WHERE run_id = ?", (run_id,)).fetchone()
            return self._row_to_run(row) if row else None

        except Exception as e:
            logger.error(f"Failed to get run {run_id}: {e}")
            raise

    def list_runs(self, workflow_id: Optional[str] = None, limit: int = 50, offset: int = 0) -> List[Run]:
        """List runs, newest first."""
        try:
            with connection(self.db_path) as conn:
                if workflow_id:
                    rows = conn.execute("""
                        SELECT * FROM runs WHERE workflow_id = ?
                        ORDER BY created_at DESC LIMIT ? OFFSET ?
                    """, (workflow_id, limit, offset)).fetchall()
                else:
                    rows = conn.execute("""
                        SELECT * FROM runs ORDER BY created_at DESC LIMIT ? OFFSET ?
                    """, (limit, offset)).fetchall()
            return [self._row_to_run(row) for row in rows]

        except Exception as e:
            logger.error(f"Failed to list runs: {e}")
            raise

    def update_node_state(
        self,
        run_id: str,
        node_id: str,
        status: NodeStatus,
        output: Any = _UNSET,
        error: Any = _UNSET,
        input: Any = _UNSET,
        expected_status: Optional[NodeStatus] = None,
    ) -> Optional[Run]:
        """
        Atomically move one node to ``status`` and return the fresh Run.

        With ``expected_status`` the update is a compare-and-set: when the node
        is no longer in that status (another writer got there first) nothing is
        written and None is returned. Otherwise an illegal transition raises
        StatusTransitionError.
        """
        status = NodeStatus(status)
        with transaction(self.db_path) as conn:
            run = self._load_for_update(conn, run_id)
            current = run.node_states.get(node_id)
            if current is None:
                raise NotFoundError(f"Node {node_id} not found in run {run_id}", run_id=run_id, node_id=node_id)

            if expected_status is not None and current.status != NodeStatus(expected_status):
                logger.debug(
                    f"Skipping update of {node_id} in run {run_id}: "
                    f"expected {NodeStatus(expected_status).value}, found {current.status.value}"
                )
                return None

            validate_transition(current.status, status, node_id=node_id)

            patch: Dict[str, Any] = {"status": status}
            if output is not _UNSET:
                patch["output"] = output
            if error is not _UNSET:
                patch["error"] = error
            if input is not _UNSET:
                patch["input"] = input
            run.node_states[node_id] = current.model_copy(update=patch)

            return self._save(conn, run)

    def complete_splitter(
        self,
        run_id: str,
        splitter_id: str,
        output: Any,
        instances: Dict[str, Any],
    ) -> Optional[Run]:
        """
        Create parallel instance states and complete the splitter in one transaction.

        ``instances`` maps instance id to the element it receives as input.
        Existing instance states are left untouched. Returns None when the
        splitter is no longer running.
        """
        with transaction(self.db_path) as conn:
            run = self._load_for_update(conn, run_id)
            current = run.node_states.get(splitter_id)
            if current is None:
                raise NotFoundError(f"Node {splitter_id} not found in run {run_id}", run_id=run_id, node_id=splitter_id)
            if current.status != NodeStatus.RUNNING:
                return None

            validate_transition(current.status, NodeStatus.COMPLETED, node_id=splitter_id)
            for instance_id, element in instances.items():
                if instance_id not in run.node_states:
                    run.node_states[instance_id] = NodeState(input=element)
            run.node_states[splitter_id] = current.model_copy(
                update={"status": NodeStatus.COMPLETED, "output": output}
            )

            saved = self._save(conn, run)
        logger.info(f"Splitter {splitter_id} in run {run_id} created {len(instances)} instances")
        return saved

    def _load_for_update(self, conn, run_id: str) -> Run:
        row = conn.execute("SELECT * FROM runs WHERE run_id = ?", (run_id,)).fetchone()
        if row is None:
            raise NotFoundError(f"Run {run_id} not found", run_id=run_id)
        return self._row_to_run(row)

    def _save(self, conn, run: Run) -> Run:
        run.updated_at = utcnow()
        conn.execute("""
            UPDATE runs SET node_states = ?, updated_at = ? WHERE run_id = ?
        """, (self._dump_states(run.node_states), datetime_to_str(run.updated_at), run.id))
        return run

    @staticmethod
    def _dump_states(node_states: Dict[str, NodeState]) -> str:
        return to_json({node_id: state.model_dump(mode="json") for node_id, state in node_states.items()})

    @staticmethod
    def _row_to_run(row) -> Run:
        return Run(
            id=row["run_id"],
            workflow_id=row["workflow_id"],
            entity_id=row["entity_id"],
            trigger=TriggerMetadata.model_validate(from_json(row["trigger"], {})),
            node_states={
                node_id: NodeState.model_validate(state)
                for node_id, state in from_json(row["node_states"], {}).items()
            },
            created_at=str_to_datetime(row["created_at"]),
            updated_at=str_to_datetime(row["updated_at"]),
        )
