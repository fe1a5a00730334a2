"""
Graph Store: workflow graphs keyed by workflow id.
"""

import logging
from datetime import datetime, timezone
from typing import List, Optional

from core.errors import ConfigurationError
from services.engine.models import Graph
from .config import connection, from_json, init_schema, str_to_datetime, transaction
from .models import WorkflowRecord

logger = logging.getLogger(__name__)


class GraphStore:
    """Stores one immutable graph per workflow id."""

    def __init__(self, db_path: str):
        self.db_path = db_path
        init_schema(db_path)

    def save_graph(self, workflow_id: str, graph: Graph, name: Optional[str] = None) -> WorkflowRecord:
        """
        Insert or replace the graph of a workflow.

        A graph referenced by any Run is immutable; replacing it raises
        ConfigurationError.
        """
        now = datetime.now(timezone.utc).isoformat()
        try:
            with transaction(self.db_path) as conn:
                in_use = conn.execute(
                    "SELECT 1 FROM runs WHERE workflow_id = ? LIMIT 1", (workflow_id,)
                ).fetchone()
                if in_use:
                    raise ConfigurationError(
                        f"Workflow {workflow_id} is referenced by a run and cannot be replaced",
                        workflow_id=workflow_id,
                    )
                conn.execute("""
                    INSERT INTO workflows (workflow_id, name, graph, created_at, updated_at)
                    VALUES (?, ?, ?, ?, ?)
                    ON CONFLICT(workflow_id) DO UPDATE SET
                        name = excluded.name,
                        graph = excluded.graph,
                        updated_at = excluded.updated_at
                """, (workflow_id, name, graph.model_dump_json(), now, now))
                row = conn.execute(
                    "SELECT * FROM workflows WHERE workflow_id = ?", (workflow_id,)
                ).fetchone()
            logger.info(f"Workflow {workflow_id} saved with {len(graph.nodes)} nodes and {len(graph.edges)} edges")
            return self._row_to_record(row)

        except ConfigurationError:
            raise
        except Exception as e:
            logger.error(f"Failed to save workflow {workflow_id}: {e}")
            raise

    def get_graph(self, workflow_id: str) -> Optional[Graph]:
        """Get the graph of a workflow, or None."""
        try:
            with connection(self.db_path) as conn:
                row = conn.execute(
                    "SELECT graph FROM workflows WHERE workflow_id = ?", (workflow_id,)
                ).fetchone()
            if row is None:
                return None
            return Graph.model_validate(from_json(row["graph"]))

        except Exception as e:
            logger.error(f"Failed to get workflow {workflow_id}: {e}")
            raise

    def get_record(self, workflow_id: str) -> Optional[WorkflowRecord]:
        with connection(self.db_path) as conn:
            row = conn.execute("SELECT * FROM workflows WHERE workflow_id = ?", (workflow_id,)).fetchone()
        return self._row_to_record(row) if row else None

    def list_graphs(self) -> List[WorkflowRecord]:
        try:
            with connection(self.db_path) as conn:
                rows = conn.execute("SELECT * FROM workflows ORDER BY created_at ASC").fetchall()
            return [self._row_to_record(row) for row in rows]

        except Exception as e:
            logger.error(f"Failed to list workflows: {e}")
            raise

    @staticmethod
    def _row_to_record(row) -> WorkflowRecord:
        return WorkflowRecord(
            workflow_id=row["workflow_id"],
            name=row["name"],
            created_at=str_to_datetime(row["created_at"]),
            updated_at=str_to_datetime(row["updated_at"]),
        )
