"""
Wires stores, dispatcher, walker, callback gateway and webhook pipeline
together from settings.
"""

from dataclasses import dataclass
from typing import Optional

import httpx

from core.config import Settings
from core.logging_config import get_logger
from database.config import init_schema
from database.entities import EntityStore
from database.graphs import GraphStore
from database.runs import RunStore
from database.webhooks import WebhookConfigStore, WebhookEventStore
from services.engine.callbacks import CallbackGateway
from services.engine.dispatcher import WorkerDispatcher
from services.engine.edge_walker import EdgeWalker
from services.engine.handlers import NodeHandlers
from services.engine.hooks import EntityMovementHooks, SettlementHooks, SystemEdgeNotifier
from services.engine.workers import IntegratedWorkerRegistry, default_registry
from services.webhooks.pipeline import WebhookPipeline

logger = get_logger(__name__)


@dataclass
class ServiceContainer:
    graphs: GraphStore
    runs: RunStore
    webhook_configs: WebhookConfigStore
    webhook_events: WebhookEventStore
    entities: EntityStore
    dispatcher: WorkerDispatcher
    workers: IntegratedWorkerRegistry
    walker: EdgeWalker
    callbacks: CallbackGateway
    webhooks: WebhookPipeline

    async def aclose(self):
        await self.dispatcher.aclose()


def build_services(
    settings: Settings,
    http_client: Optional[httpx.AsyncClient] = None,
    workers: Optional[IntegratedWorkerRegistry] = None,
) -> ServiceContainer:
    """Build every service over the database at ``settings.database_path``."""
    db_path = settings.database_path
    init_schema(db_path)

    graphs = GraphStore(db_path)
    runs = RunStore(db_path)
    webhook_configs = WebhookConfigStore(db_path)
    webhook_events = WebhookEventStore(db_path)
    entities = EntityStore(db_path)

    dispatcher = WorkerDispatcher(
        settings.base_url, timeout=settings.worker_dispatch_timeout, client=http_client
    )
    workers = workers or default_registry()
    handlers = NodeHandlers(runs, dispatcher, workers, collector_policy=settings.collector_failure_policy)
    hooks = SettlementHooks(EntityMovementHooks(entities), SystemEdgeNotifier(dispatcher))
    walker = EdgeWalker(graphs, runs, handlers, hooks)

    container = ServiceContainer(
        graphs=graphs,
        runs=runs,
        webhook_configs=webhook_configs,
        webhook_events=webhook_events,
        entities=entities,
        dispatcher=dispatcher,
        workers=workers,
        walker=walker,
        callbacks=CallbackGateway(runs, walker),
        webhooks=WebhookPipeline(
            webhook_configs,
            webhook_events,
            entities,
            runs,
            walker,
            hardened=settings.is_hardened,
            max_age_seconds=settings.webhook_max_age_seconds,
        ),
    )
    logger.info(f"Services initialized (database={db_path}, environment={settings.environment})")
    return container
