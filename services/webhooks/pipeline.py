"""
Webhook ingestion pipeline.

Turns one inbound delivery into (at most) one entity upsert and one run:

    config lookup -> event log -> active check -> signature requirement ->
    adapter verify/extract -> entity upsert -> placement (best-effort) ->
    run creation -> initial fire -> event completion

Every resolved delivery is recorded as a WebhookEvent and always ends
``completed`` or ``failed``; errors are returned as structured results, never
raised to the HTTP layer.
"""

from dataclasses import dataclass
from typing import Any, Dict, Optional

from core.best_effort import best_effort
from core.errors import AuthenticationError, ConfigurationError, EngineError, NotFoundError
from core.logging_config import get_execution_logger, get_logger
from database.models import WebhookConfig, WebhookEvent, WebhookEventStatus
from services.engine.edge_walker import EdgeWalker
from services.engine.models import TriggerMetadata
from .adapters import get_adapter
from .entity_mapper import map_payload, resolve_entity

logger = get_logger(__name__)
exec_logger = get_execution_logger(__name__)

INTERNAL_ERROR_MESSAGE = "Internal error while processing webhook"


@dataclass
class IngestResult:
    success: bool
    webhook_event_id: Optional[str] = None
    entity_id: Optional[str] = None
    run_id: Optional[str] = None
    error: Optional[str] = None
    error_type: Optional[str] = None
    duplicate: bool = False

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"success": self.success, "webhookEventId": self.webhook_event_id}
        if self.entity_id:
            data["entityId"] = self.entity_id
        if self.run_id:
            data["runId"] = self.run_id
        if self.error:
            data["error"] = self.error
            data["errorType"] = self.error_type
        if self.duplicate:
            data["duplicate"] = True
        return data


class WebhookPipeline:
    """Ingests webhook deliveries for configured endpoints."""

    def __init__(
        self,
        configs,
        events,
        entities,
        runs,
        walker: EdgeWalker,
        hardened: bool = False,
        max_age_seconds: int = 300,
    ):
        self.configs = configs
        self.events = events
        self.entities = entities
        self.runs = runs
        self.walker = walker
        self.hardened = hardened
        self.max_age_seconds = max_age_seconds

    async def ingest(
        self,
        endpoint_slug: str,
        raw_body: str,
        payload: Dict[str, Any],
        signature: Optional[str] = None,
    ) -> IngestResult:
        config = self.configs.get_by_slug(endpoint_slug)
        if config is None:
            error = NotFoundError(f"No webhook configured for endpoint '{endpoint_slug}'")
            exec_logger.log_webhook_processed(endpoint_slug, None, False, error=error.message)
            return IngestResult(success=False, error=error.message, error_type=error.error_type)

        event = self.events.create(config.config_id, payload)
        try:
            result = await self._process(config, event, raw_body, payload, signature)
        except EngineError as e:
            self.events.update(
                event.event_id, status=WebhookEventStatus.FAILED, error=e.message, error_type=e.error_type
            )
            exec_logger.log_webhook_processed(endpoint_slug, event.event_id, False, error=e.message)
            return IngestResult(
                success=False, webhook_event_id=event.event_id, error=e.message, error_type=e.error_type
            )
        except Exception as e:
            self.events.update(
                event.event_id, status=WebhookEventStatus.FAILED,
                error=f"{type(e).__name__}: {e}", error_type="internal",
            )
            exec_logger.log_execution_error(
                "Webhook processing failed", error=e, endpoint_slug=endpoint_slug, webhook_event_id=event.event_id
            )
            return IngestResult(
                success=False, webhook_event_id=event.event_id, error=INTERNAL_ERROR_MESSAGE, error_type="internal"
            )

        exec_logger.log_webhook_processed(
            endpoint_slug, event.event_id, True,
            entity_id=result.entity_id, run_id=result.run_id, duplicate=result.duplicate or None,
        )
        return result

    def signature_required(self, config: WebhookConfig) -> bool:
        return config.require_signature or (self.hardened and bool(config.secret))

    async def _process(
        self,
        config: WebhookConfig,
        event: WebhookEvent,
        raw_body: str,
        payload: Dict[str, Any],
        signature: Optional[str],
    ) -> IngestResult:
        if not config.is_active:
            raise ConfigurationError(f"Webhook endpoint '{config.endpoint_slug}' is inactive")

        if self.signature_required(config):
            if not config.secret:
                raise ConfigurationError("Webhook requires a signature but has no secret configured")
            if not signature:
                raise AuthenticationError("Missing webhook signature")

        adapter = get_adapter(config.source)
        if not adapter.verify(raw_body, signature, config.secret, self.max_age_seconds):
            raise AuthenticationError(f"Invalid {config.source} webhook signature")

        external_id = adapter.external_event_id(payload)
        self.events.update(
            event.event_id,
            status=WebhookEventStatus.PROCESSING,
            event_type=adapter.event_type(payload),
            external_event_id=external_id,
        )

        if external_id:
            earlier = self.events.find_completed_by_external_id(config.config_id, external_id)
            if earlier is not None and earlier.event_id != event.event_id:
                logger.info(f"Duplicate delivery of {config.source} event {external_id}; original {earlier.event_id}")
                self.events.update(
                    event.event_id,
                    status=WebhookEventStatus.COMPLETED,
                    duplicate_of=earlier.event_id,
                    entity_id=earlier.entity_id,
                    run_id=earlier.run_id,
                )
                return IngestResult(
                    success=True,
                    webhook_event_id=event.event_id,
                    entity_id=earlier.entity_id,
                    run_id=earlier.run_id,
                    duplicate=True,
                )

        entity_data = resolve_entity(adapter.extract(payload, config), map_payload(payload, config.entity_mapping))
        entity_data["source"] = config.source

        # Resolve the entry edge before mutating anything
        graph = self.walker.graphs.get_graph(config.workflow_id)
        if graph is None:
            raise ConfigurationError(f"Workflow {config.workflow_id} not found")
        entry_edge = graph.get_edge(config.entry_edge_id)
        if entry_edge is None:
            raise ConfigurationError(
                f"Entry edge {config.entry_edge_id} not found in workflow {config.workflow_id}"
            )
        if graph.fan_out_splitter(entry_edge.target) is not None:
            raise ConfigurationError(f"Entry edge {entry_edge.id} targets a parallel node fed by a Splitter")

        entity, _ = self.entities.upsert(config.canvas_id, entity_data)

        best_effort(self.entities.place_on_edge, entity.entity_id, entry_edge.id).acknowledge(
            logger, "Entity placement failed", entity_id=entity.entity_id, edge_id=entry_edge.id
        )

        run = self.runs.create_run(
            config.workflow_id,
            graph,
            entity_id=entity.entity_id,
            trigger=TriggerMetadata(type="webhook", source=config.source, event_id=event.event_id),
        )
        await self.walker.fire_node(graph, run.id, entry_edge.target, input=payload)

        self.events.update(
            event.event_id,
            status=WebhookEventStatus.COMPLETED,
            entity_id=entity.entity_id,
            run_id=run.id,
        )
        return IngestResult(
            success=True,
            webhook_event_id=event.event_id,
            entity_id=entity.entity_id,
            run_id=run.id,
        )
