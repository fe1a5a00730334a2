"""
WebhookConfig and WebhookEvent stores.
"""

import logging
import sqlite3
import uuid
from typing import Any, List, Optional

from core.errors import ConfigurationError, NotFoundError
from services.engine.models import utcnow
from .config import connection, datetime_to_str, from_json, init_schema, str_to_datetime, to_json, transaction
from .models import EntityMapping, WebhookConfig, WebhookEvent, WebhookEventStatus

logger = logging.getLogger(__name__)

_UNSET = object()


class WebhookConfigStore:
    """Operator-managed webhook endpoint configurations."""

    def __init__(self, db_path: str):
        self.db_path = db_path
        init_schema(db_path)

    def create(self, config: WebhookConfig) -> WebhookConfig:
        """Insert a new config. The endpoint slug must be unique."""
        try:
            with transaction(self.db_path) as conn:
                conn.execute("""
                    INSERT INTO webhook_configs (
                        config_id, canvas_id, name, source, endpoint_slug, secret,
                        require_signature, is_active, workflow_id, entry_edge_id,
                        entity_mapping, created_at, updated_at
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """, (
                    config.config_id,
                    config.canvas_id,
                    config.name,
                    config.source,
                    config.endpoint_slug,
                    config.secret,
                    1 if config.require_signature else 0,
                    1 if config.is_active else 0,
                    config.workflow_id,
                    config.entry_edge_id,
                    config.entity_mapping.model_dump_json(),
                    datetime_to_str(config.created_at),
                    datetime_to_str(config.updated_at),
                ))
            logger.info(f"Webhook config {config.config_id} created for /webhooks/{config.endpoint_slug}")
            return config

        except sqlite3.IntegrityError as e:
            raise ConfigurationError(
                f"Endpoint slug '{config.endpoint_slug}' is already in use",
                endpoint_slug=config.endpoint_slug,
            ) from e
        except Exception as e:
            logger.error(f"Failed to create webhook config: {e}")
            raise

    def get(self, config_id: str) -> Optional[WebhookConfig]:
        return self._fetch_one("SELECT * FROM webhook_configs WHERE config_id = ?", (config_id,))

    def get_by_slug(self, endpoint_slug: str) -> Optional[WebhookConfig]:
        return self._fetch_one("SELECT * FROM webhook_configs WHERE endpoint_slug = ?", (endpoint_slug,))

    def list_for_canvas(self, canvas_id: str) -> List[WebhookConfig]:
        try:
            with connection(self.db_path) as conn:
                rows = conn.execute("""
                    SELECT * FROM webhook_configs WHERE canvas_id = ? ORDER BY created_at ASC
                """, (canvas_id,)).fetchall()
            return [self._row_to_config(row) for row in rows]

        except Exception as e:
            logger.error(f"Failed to list webhook configs for canvas {canvas_id}: {e}")
            raise

    def set_active(self, config_id: str, is_active: bool) -> WebhookConfig:
        """Activate or deactivate a config."""
        with transaction(self.db_path) as conn:
            cursor = conn.execute("""
                UPDATE webhook_configs SET is_active = ?, updated_at = ? WHERE config_id = ?
            """, (1 if is_active else 0, datetime_to_str(utcnow()), config_id))
            if cursor.rowcount == 0:
                raise NotFoundError(f"Webhook config {config_id} not found", config_id=config_id)
            row = conn.execute("SELECT * FROM webhook_configs WHERE config_id = ?", (config_id,)).fetchone()
        logger.info(f"Webhook config {config_id} {'activated' if is_active else 'deactivated'}")
        return self._row_to_config(row)

    def _fetch_one(self, query: str, params: tuple) -> Optional[WebhookConfig]:
        try:
            with connection(self.db_path) as conn:
                row = conn.execute(query, params).fetchone()
            return self._row_to_config(row) if row else None

        except Exception as e:
            logger.error(f"Failed to get webhook config: {e}")
            raise

    @staticmethod
    def _row_to_config(row) -> WebhookConfig:
        return WebhookConfig(
            config_id=row["config_id"],
            canvas_id=row["canvas_id"],
            name=row["name"],
            source=row["source"],
            endpoint_slug=row["endpoint_slug"],
            secret=row["secret"],
            require_signature=bool(row["require_signature"]),
            is_active=bool(row["is_active"]),
            workflow_id=row["workflow_id"],
            entry_edge_id=row["entry_edge_id"],
            entity_mapping=EntityMapping.model_validate(from_json(row["entity_mapping"], {})),
            created_at=str_to_datetime(row["created_at"]),
            updated_at=str_to_datetime(row["updated_at"]),
        )


class WebhookEventStore:
    """Audit log of inbound webhook deliveries."""

    def __init__(self, db_path: str):
        self.db_path = db_path
        init_schema(db_path)

    def create(self, config_id: str, payload: Any) -> WebhookEvent:
        """Record a delivery with status ``pending``."""
        event = WebhookEvent(event_id=str(uuid.uuid4()), config_id=config_id, payload=payload)
        with transaction(self.db_path) as conn:
            conn.execute("""
                INSERT INTO webhook_events (event_id, config_id, payload, status, received_at)
                VALUES (?, ?, ?, ?, ?)
            """, (
                event.event_id,
                event.config_id,
                to_json(event.payload),
                event.status.value,
                datetime_to_str(event.received_at),
            ))
        return event

    def update(
        self,
        event_id: str,
        status: Optional[WebhookEventStatus] = None,
        error: Any = _UNSET,
        error_type: Any = _UNSET,
        event_type: Any = _UNSET,
        external_event_id: Any = _UNSET,
        entity_id: Any = _UNSET,
        run_id: Any = _UNSET,
        duplicate_of: Any = _UNSET,
    ) -> WebhookEvent:
        """Patch an event; terminal statuses also stamp ``processed_at``."""
        fields = {
            "error": error,
            "error_type": error_type,
            "event_type": event_type,
            "external_event_id": external_event_id,
            "entity_id": entity_id,
            "run_id": run_id,
            "duplicate_of": duplicate_of,
        }
        assignments = []
        params: List[Any] = []
        for column, value in fields.items():
            if value is not _UNSET:
                assignments.append(f"{column} = ?")
                params.append(value)
        if status is not None:
            status = WebhookEventStatus(status)
            assignments.append("status = ?")
            params.append(status.value)
            if status in (WebhookEventStatus.COMPLETED, WebhookEventStatus.FAILED):
                assignments.append("processed_at = ?")
                params.append(datetime_to_str(utcnow()))

        with transaction(self.db_path) as conn:
            if assignments:
                conn.execute(
                    f"UPDATE webhook_events SET {', '.join(assignments)} WHERE event_id = ?",
                    (*params, event_id),
                )
            row = conn.execute("SELECT * FROM webhook_events WHERE event_id = ?", (event_id,)).fetchone()
        if row is None:
            raise NotFoundError(f"Webhook event {event_id} not found", event_id=event_id)
        return self._row_to_event(row)

    def get(self, event_id: str) -> Optional[WebhookEvent]:
        with connection(self.db_path) as conn:
            row = conn.execute("SELECT * FROM webhook_events WHERE event_id = ?", (event_id,)).fetchone()
        return self._row_to_event(row) if row else None

    def list_for_config(self, config_id: str, limit: int = 50) -> List[WebhookEvent]:
        """Recent events for a config, newest first."""
        with connection(self.db_path) as conn:
            rows = conn.execute("""
                SELECT * FROM webhook_events WHERE config_id = ?
                ORDER BY received_at DESC LIMIT ?
            """, (config_id, limit)).fetchall()
        return [self._row_to_event(row) for row in rows]

    def find_completed_by_external_id(self, config_id: str, external_event_id: str) -> Optional[WebhookEvent]:
        """The earliest completed delivery of a provider event for this config."""
        with connection(self.db_path) as conn:
            row = conn.execute("""
                SELECT * FROM webhook_events
                WHERE config_id = ? AND external_event_id = ? AND status = ?
                AND duplicate_of IS NULL
                ORDER BY received_at ASC LIMIT 1
            """, (config_id, external_event_id, WebhookEventStatus.COMPLETED.value)).fetchone()
        return self._row_to_event(row) if row else None

    @staticmethod
    def _row_to_event(row) -> WebhookEvent:
        return WebhookEvent(
            event_id=row["event_id"],
            config_id=row["config_id"],
            payload=from_json(row["payload"]),
            status=WebhookEventStatus(row["status"]),
            error=row["error"],
            error_type=row["error_type"],
            event_type=row["event_type"],
            external_event_id=row["external_event_id"],
            entity_id=row["entity_id"],
            run_id=row["run_id"],
            duplicate_of=row["duplicate_of"],
            received_at=str_to_datetime(row["received_at"]),
            processed_at=str_to_datetime(row["processed_at"]),
        )
