from __future__ import annotations

import asyncio

import httpx

from ticketdesk.core.config import Settings
from ticketdesk.core.security import InteractionVerifier
from ticketdesk.infrastructure.circuit_breaker import CircuitBreaker
from ticketdesk.infrastructure.discord_client import DiscordRestClient
from ticketdesk.infrastructure.logging import get_logger
from ticketdesk.infrastructure.media_fetcher import MediaFetcher
from ticketdesk.infrastructure.mongo_indexes import ensure_mongo_indexes
from ticketdesk.infrastructure.object_storage import ObjectStorage, S3ObjectStorage
from ticketdesk.infrastructure.persistence_clients import MongoClientManager
from ticketdesk.infrastructure.rate_limiter import FixedWindowRateLimiter
from ticketdesk.orchestrator.dispatcher import EventDispatcher
from ticketdesk.repositories.archival_job_repository import ArchivalJobRepository
from ticketdesk.repositories.ticket_repository import TicketRepository
from ticketdesk.services.announcement_service import AnnouncementService
from ticketdesk.services.archival_scheduler import ArchivalScheduler
from ticketdesk.services.duplicate_notifier import DuplicateIdentifierNotifier
from ticketdesk.services.media_ingestion_service import MediaIngestionPipeline
from ticketdesk.services.retention_service import RetentionSweeper
from ticketdesk.services.ticket_lifecycle_service import TicketLifecycleManager
from ticketdesk.workers.scheduler import BackgroundScheduler

logger = get_logger(__name__)


class Container:
    def __init__(
        self,
        settings: Settings | None = None,
        *,
        chat_client: DiscordRestClient | None = None,
        storage: ObjectStorage | None = None,
        fetch_client: httpx.AsyncClient | None = None,
    ) -> None:
        self.settings = settings or Settings.from_env()
        try:
            self.interaction_verifier = InteractionVerifier(self.settings.discord_public_key)
        except ValueError:
            logger.critical("interaction_public_key_invalid", key_length=len(self.settings.discord_public_key))
            raise

        self.mongo_manager = MongoClientManager(
            uri=self.settings.mongodb_uri,
            enabled=self.settings.enable_external_services,
        )
        self.api_client = httpx.AsyncClient(timeout=15.0)
        self.fetch_client = fetch_client or httpx.AsyncClient(
            timeout=self.settings.fetch_timeout_seconds,
            follow_redirects=True,
        )
        self.chat_client = chat_client or DiscordRestClient(settings=self.settings, client=self.api_client)
        self.storage_breaker = CircuitBreaker(
            name="object_storage",
            failure_threshold=self.settings.storage_failure_threshold,
            recovery_timeout_seconds=self.settings.storage_recovery_seconds,
        )
        self.storage = storage or S3ObjectStorage(settings=self.settings, breaker=self.storage_breaker)
        self.rate_limiter = FixedWindowRateLimiter()

        self.ticket_repository = TicketRepository(
            mongo_manager=self.mongo_manager,
        )
        self.archival_job_repository = ArchivalJobRepository(
            mongo_manager=self.mongo_manager,
        )

        self.media_pipeline = MediaIngestionPipeline(
            fetcher=MediaFetcher(client=self.fetch_client),
            storage=self.storage,
            spacing_seconds=self.settings.upload_spacing_seconds,
        )
        self.duplicate_notifier = DuplicateIdentifierNotifier(
            direct_notifier=self.chat_client,
            channels=self.chat_client,
            audit_channel_ref=self.settings.admin_check_channel_id,
        )
        self.archival_scheduler = ArchivalScheduler(
            archival_job_repository=self.archival_job_repository,
        )
        self.lifecycle = TicketLifecycleManager(
            settings=self.settings,
            ticket_repository=self.ticket_repository,
            channels=self.chat_client,
            pipeline=self.media_pipeline,
            storage=self.storage,
            notifier=self.duplicate_notifier,
            archival_scheduler=self.archival_scheduler,
            rate_limiter=self.rate_limiter,
        )
        self.retention_sweeper = RetentionSweeper(
            ticket_repository=self.ticket_repository,
            storage=self.storage,
            spacing_seconds=self.settings.delete_spacing_seconds,
        )
        self.announcement_service = AnnouncementService(
            settings=self.settings,
            channels=self.chat_client,
        )
        self.dispatcher = EventDispatcher(
            lifecycle=self.lifecycle,
            responder=self.chat_client,
            audit_channel_ref=self.settings.admin_check_channel_id,
        )

        self.background = BackgroundScheduler()
        self.background.every(
            "retention_sweep",
            self.settings.sweep_interval_seconds,
            lambda: self.retention_sweeper.sweep(self.settings.retention_days),
        )
        self.background.every(
            "archival_jobs",
            self.settings.archival_poll_seconds,
            lambda: self.archival_scheduler.process_due(self.lifecycle.archive_channel),
        )

    async def start(self) -> None:
        await asyncio.to_thread(self.mongo_manager.connect)
        if self.mongo_manager.client is None:
            if self.settings.require_store_on_startup:
                logger.critical(
                    "startup_store_unavailable",
                    uri=self.settings.mongodb_uri,
                    error=self.mongo_manager.error,
                )
                raise RuntimeError(f"Ticket store unavailable: {self.mongo_manager.error}")
        else:
            try:
                await asyncio.to_thread(ensure_mongo_indexes, client=self.mongo_manager.client)
            except Exception as exc:
                logger.warning("mongo_index_setup_failed", error=str(exc))

        if self.chat_client.enabled:
            await self.announcement_service.register_commands(self.chat_client)
            await self.announcement_service.post_panels()
        else:
            logger.warning("chat_client_disabled", reason="missing DISCORD_TOKEN or GUILD_ID")
        self.background.start()

    async def stop(self) -> None:
        await self.background.stop()
        await self.api_client.aclose()
        await self.fetch_client.aclose()
        self.mongo_manager.disconnect()


container = Container()

settings = container.settings
mongo_manager = container.mongo_manager
storage = container.storage
dispatcher = container.dispatcher
interaction_verifier = container.interaction_verifier
