"""
Entity Store: externally originated records (customers, leads) and their
position on the canvas.
"""

import logging
import uuid
from typing import Any, Dict, Optional, Tuple

from core.errors import NotFoundError, ValidationError
from services.engine.models import utcnow
from .config import connection, datetime_to_str, from_json, init_schema, str_to_datetime, to_json, transaction
from .models import Entity, JourneyStep

logger = logging.getLogger(__name__)


def normalize_email(email: Optional[str]) -> Optional[str]:
    if email is None:
        return None
    email = str(email).strip().lower()
    return email or None


class EntityStore:
    """Database interface for entities."""

    def __init__(self, db_path: str):
        self.db_path = db_path
        init_schema(db_path)

    def get(self, entity_id: str) -> Optional[Entity]:
        with connection(self.db_path) as conn:
            row = conn.execute("SELECT * FROM entities WHERE entity_id = ?", (entity_id,)).fetchone()
        return self._row_to_entity(row) if row else None

    def find_by_email(self, canvas_id: str, email: str) -> Optional[Entity]:
        email = normalize_email(email)
        if email is None:
            return None
        with connection(self.db_path) as conn:
            row = conn.execute("""
                SELECT * FROM entities WHERE canvas_id = ? AND email = ?
            """, (canvas_id, email)).fetchone()
        return self._row_to_entity(row) if row else None

    def upsert(self, canvas_id: str, data: Dict[str, Any]) -> Tuple[Entity, bool]:
        """
        Insert an entity, or update the one with the same ``(canvas_id, email)``.

        Entities without an email are always inserted. Metadata of an existing
        entity is merged with the new keys winning. Returns ``(entity, created)``.
        """
        name = data.get("name")
        entity_type = data.get("entity_type")
        if not name or not entity_type:
            raise ValidationError("Entity requires a name and an entity_type")

        email = normalize_email(data.get("email"))
        metadata = dict(data.get("metadata") or {})
        now = datetime_to_str(utcnow())

        try:
            with transaction(self.db_path) as conn:
                existing = None
                if email is not None:
                    existing = conn.execute("""
                        SELECT * FROM entities WHERE canvas_id = ? AND email = ?
                    """, (canvas_id, email)).fetchone()
                if existing is not None:
                    metadata = {**from_json(existing["metadata"], {}), **metadata}

                # A conflicting insert keeps the existing row and its id
                new_id = str(uuid.uuid4())
                conn.execute("""
                    INSERT INTO entities (
                        entity_id, canvas_id, name, email, entity_type, metadata, source,
                        journey, created_at, updated_at
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    ON CONFLICT(canvas_id, email) WHERE email IS NOT NULL DO UPDATE SET
                        name = excluded.name,
                        entity_type = excluded.entity_type,
                        metadata = excluded.metadata,
                        source = COALESCE(excluded.source, entities.source),
                        updated_at = excluded.updated_at
                """, (
                    new_id,
                    canvas_id,
                    str(name),
                    email,
                    str(entity_type),
                    to_json(metadata),
                    data.get("source"),
                    to_json([]),
                    now,
                    now,
                ))
                entity_id = existing["entity_id"] if existing is not None else new_id
                row = conn.execute("SELECT * FROM entities WHERE entity_id = ?", (entity_id,)).fetchone()

            created = existing is None
            logger.info(f"Entity {entity_id} {'created' if created else 'updated'} on canvas {canvas_id}")
            return self._row_to_entity(row), created

        except Exception as e:
            logger.error(f"Failed to upsert entity on canvas {canvas_id}: {e}")
            raise

    def place_on_edge(self, entity_id: str, edge_id: str) -> Entity:
        """Put the entity on an edge (travelling between nodes)."""
        return self._move(entity_id, JourneyStep(kind="edge", id=edge_id), current_edge_id=edge_id, current_node_id=None)

    def move_to_node(
        self,
        entity_id: str,
        node_id: str,
        complete_as: Optional[str] = None,
        set_entity_type: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Entity:
        """Put the entity on a node, optionally changing its type or merging metadata."""
        return self._move(
            entity_id,
            JourneyStep(kind="node", id=node_id, status=complete_as),
            current_node_id=node_id,
            current_edge_id=None,
            entity_type=set_entity_type,
            metadata=metadata,
        )

    def _move(
        self,
        entity_id: str,
        step: JourneyStep,
        current_node_id: Optional[str],
        current_edge_id: Optional[str],
        entity_type: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Entity:
        with transaction(self.db_path) as conn:
            row = conn.execute("SELECT * FROM entities WHERE entity_id = ?", (entity_id,)).fetchone()
            if row is None:
                raise NotFoundError(f"Entity {entity_id} not found", entity_id=entity_id)

            journey = from_json(row["journey"], [])
            journey.append(step.model_dump(mode="json"))
            merged = {**from_json(row["metadata"], {}), **(metadata or {})}

            conn.execute("""
                UPDATE entities SET
                    current_node_id = ?, current_edge_id = ?, entity_type = ?,
                    metadata = ?, journey = ?, updated_at = ?
                WHERE entity_id = ?
            """, (
                current_node_id,
                current_edge_id,
                entity_type or row["entity_type"],
                to_json(merged),
                to_json(journey),
                datetime_to_str(utcnow()),
                entity_id,
            ))
            row = conn.execute("SELECT * FROM entities WHERE entity_id = ?", (entity_id,)).fetchone()
        return self._row_to_entity(row)

    @staticmethod
    def _row_to_entity(row) -> Entity:
        return Entity(
            entity_id=row["entity_id"],
            canvas_id=row["canvas_id"],
            name=row["name"],
            email=row["email"],
            entity_type=row["entity_type"],
            metadata=from_json(row["metadata"], {}),
            source=row["source"],
            current_node_id=row["current_node_id"],
            current_edge_id=row["current_edge_id"],
            journey=[JourneyStep.model_validate(step) for step in from_json(row["journey"], [])],
            created_at=str_to_datetime(row["created_at"]),
            updated_at=str_to_datetime(row["updated_at"]),
        )
