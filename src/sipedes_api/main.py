import os
from pathlib import Path
from textwrap import dedent

import pydantic
from fastapi import FastAPI
from fastapi.routing import APIRoute
from loguru import logger

from sipedes_api.errors import handle_broad_exceptions
from sipedes_api.errors import handle_permohonan_errors
from sipedes_api.errors import handle_pydantic_validation_errors
from sipedes_api.monitoring.logger import configure_logger
from sipedes_api.monitoring.request_context import RequestContextMiddleware
from sipedes_api.routes.routes_admin import ROUTER_ADMIN
from sipedes_api.routes.routes_health import ROUTER_HEALTH
from sipedes_api.routes.routes_layanan import ROUTER_LAYANAN
from sipedes_api.routes.routes_permohonan import ROUTER_PERMOHONAN
from sipedes_api.settings import Settings
from sipedes_api.workflow import __version__
from sipedes_api.workflow.catalog import ServiceCatalog
from sipedes_api.workflow.db.pool import DomainDBPool
from sipedes_api.workflow.db.repository_base import PermohonanRepository
from sipedes_api.workflow.db.repository_memory import InMemoryPermohonanRepository
from sipedes_api.workflow.db.repository_permohonan import PostgresPermohonanRepository
from sipedes_api.workflow.documents import DocumentRegistry
from sipedes_api.workflow.engine import WorkflowEngine
from sipedes_api.workflow.exceptions import PermohonanError
from sipedes_api.workflow.locks import LockRegistry
from sipedes_api.workflow.models.document import DocumentPolicy
from sipedes_api.workflow.notifications.dispatcher import LoggingNotificationDispatcher
from sipedes_api.workflow.notifications.dispatcher import NotificationDispatcher
from sipedes_api.workflow.notifications.queue_client import QueueNotificationDispatcher
from sipedes_api.workflow.queries import PermohonanQueries
from sipedes_api.workflow.service import PermohonanService
from sipedes_api.workflow.storage.azure_storage import AzureBlobStorage
from sipedes_api.workflow.storage.blob_storage import BlobStorage
from sipedes_api.workflow.storage.local_storage import LocalBlobStorage
from sipedes_api.workflow.tracking import TrackingNumberGenerator


def _detect_environment() -> str:
    """Detect if running in Azure Web App or locally."""
    # Azure Web App sets WEBSITE_INSTANCE_ID
    if os.getenv("WEBSITE_INSTANCE_ID"):
        return "azure-web-app"
    elif Path(".env").exists():
        return "local-env-file"
    else:
        return "local-env-vars"


def create_app(settings: Settings | None = None) -> FastAPI:
    """Create a FastAPI application.

    Configuration is loaded directly from environment variables via pydantic-settings.
    - Azure Web App: Set variables as App Settings (Configuration > Application settings)
    - Local development: Use a .env file next to app.py
    """
    settings = settings or Settings()

    configure_logger(log_level=settings.log_level, log_file_path=settings.log_file_path)

    logger.info(
        "Configuration loaded successfully",
        environment=_detect_environment(),
        database=bool(settings.domain_db_connection_string),
        azure_storage=bool(settings.azure_storage_connection_string or settings.azure_storage_account_url),
        notification_queue=bool(settings.azure_queue_connection_string),
        timezone=settings.village_timezone,
    )

    app = FastAPI(
        title=f"{settings.app_name} - Permohonan API",
        version=__version__,
        description=dedent(
            """
        Layanan administrasi Desa Legok.

        | Area | Notes |
        | --- | --- |
        | Layanan | Public catalog of services and their required documents |
        | Permohonan | Citizens submit requests, re-upload documents and track status |
        | Admin | Officers verify, process, reject and complete requests |
        """
        ),
        generate_unique_id_function=custom_generate_unique_id,
        swagger_ui_parameters={
            "defaultModelsExpandDepth": -1,  # Hide schemas section
            "defaultModelExpandDepth": 1,
        },
    )
    app.state.settings = settings

    build_workflow(app, settings)

    # Add request context middleware for tracking who/where requests come from
    app.add_middleware(RequestContextMiddleware)
    app.include_router(ROUTER_HEALTH, prefix="/api")
    app.include_router(ROUTER_LAYANAN, prefix="/api")
    app.include_router(ROUTER_PERMOHONAN, prefix="/api")
    app.include_router(ROUTER_ADMIN, prefix="/api")

    @app.on_event("startup")
    async def startup_workflow():
        """Open the permohonan database (runs migrations when tables are missing)."""
        if hasattr(app.state, "domain_db_pool"):
            await app.state.domain_db_pool.initialize()
            logger.success("Permohonan database initialized")

    @app.on_event("shutdown")
    async def shutdown_workflow():
        """Close the notification queue and database connections."""
        await app.state.dispatcher.close()
        if hasattr(app.state, "domain_db_pool"):
            await app.state.domain_db_pool.close()
            logger.info("Permohonan database closed")

    app.add_exception_handler(
        exc_class_or_status_code=pydantic.ValidationError,
        handler=handle_pydantic_validation_errors,
    )
    app.add_exception_handler(
        exc_class_or_status_code=PermohonanError,
        handler=handle_permohonan_errors,
    )

    app.middleware("http")(handle_broad_exceptions)

    return app


def build_workflow(app: FastAPI, settings: Settings) -> None:
    """Wire repository, storage, notifications and the workflow services into ``app.state``."""
    repository: PermohonanRepository
    if settings.domain_db_connection_string:
        domain_db_pool = DomainDBPool(settings.domain_db_connection_string)
        app.state.domain_db_pool = domain_db_pool
        repository = PostgresPermohonanRepository(domain_db_pool)
        logger.info("Using PostgreSQL permohonan repository")
    else:
        repository = InMemoryPermohonanRepository()
        logger.warning("Database not configured - permohonan are kept in memory only")

    storage: BlobStorage
    if settings.azure_storage_connection_string or settings.azure_storage_account_url:
        storage = AzureBlobStorage(
            container_name=settings.azure_documents_container,
            connection_string=settings.azure_storage_connection_string,
            account_url=settings.azure_storage_account_url,
        )
    else:
        storage = LocalBlobStorage(settings.local_storage_dir)
        logger.info("Storing documents on local disk", directory=settings.local_storage_dir)

    dispatcher: NotificationDispatcher
    if settings.azure_queue_connection_string:
        dispatcher = QueueNotificationDispatcher(
            settings.azure_queue_connection_string,
            settings.notification_queue_name,
            max_attempts=settings.notification_max_attempts,
            backoff_seconds=settings.notification_backoff_seconds,
        )
    else:
        dispatcher = LoggingNotificationDispatcher()
        logger.warning("Azure queue not configured - status changes are only logged")

    catalog = ServiceCatalog.load(settings.service_catalog_path)
    policy = DocumentPolicy(
        allowed_media_types=frozenset(settings.allowed_media_types),
        max_bytes=settings.max_document_bytes,
    )
    registry = DocumentRegistry(storage, policy=policy)
    tracking = TrackingNumberGenerator(
        repository,
        prefix=settings.tracking_prefix,
        timezone=settings.village_timezone,
    )
    engine = WorkflowEngine(repository, dispatcher=dispatcher, locks=LockRegistry())

    app.state.repository = repository
    app.state.storage = storage
    app.state.dispatcher = dispatcher
    app.state.catalog = catalog
    app.state.registry = registry
    app.state.engine = engine
    app.state.permohonan_service = PermohonanService(repository, catalog, registry, tracking, engine)
    app.state.queries = PermohonanQueries(repository, timezone=settings.village_timezone)

    logger.success("Permohonan workflow ready", layanan=len(catalog))


def custom_generate_unique_id(route: APIRoute):
    """
    Generate prettier `operationId`s in the OpenAPI schema.

    These become the function names in generated client SDKs.
    """
    if route.tags:
        return f"{route.tags[0]}-{route.name}"
    return route.name


if __name__ == "__main__":
    import uvicorn

    app = create_app()
    uvicorn.run(app, host="0.0.0.0", port=8000)
