"""AppContext: wires config, DB, providers and services together."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from researchbench.config import AppConfig, load_config
from researchbench.infra.db.client import MongoClient

if TYPE_CHECKING:
    from pathlib import Path

    from researchbench.infra.capture.base import ContentCapture
    from researchbench.infra.db.jobs import JobRepo
    from researchbench.infra.db.reports import ReportRepo
    from researchbench.infra.providers.base import LLMProvider
    from researchbench.infra.search.base import SearchProvider
    from researchbench.services.job_queue_service import JobQueueService
    from researchbench.services.job_store import JobStore
    from researchbench.services.orchestrator import ResearchOrchestrator
    from researchbench.services.progress import ProgressBroadcaster
    from researchbench.services.report_service import ReportService

logger = logging.getLogger(__name__)


class AppContext:
    """Central wiring for all application dependencies.

    Lazily builds services on first access. Call `initialize()` to connect
    to MongoDB and run migrations; with `[mongodb] enabled = false` every
    store stays in memory.
    """

    def __init__(self, config: AppConfig | None = None, config_path: Path | None = None) -> None:
        self.config = config or load_config(config_path)
        self._mongo: MongoClient | None = None
        self._job_repo: JobRepo | None = None
        self._report_repo: ReportRepo | None = None
        self._llm: LLMProvider | None = None
        self._search: SearchProvider | None = None
        self._capture: ContentCapture | None = None
        self._progress_broadcaster: ProgressBroadcaster | None = None
        self._job_store: JobStore | None = None
        self._report_service: ReportService | None = None
        self._orchestrator: ResearchOrchestrator | None = None
        self._job_queue: JobQueueService | None = None

    async def initialize(self) -> None:
        """Initialize the database connection and run migrations."""
        if not self.config.mongodb.enabled:
            logger.info("AppContext initialized without MongoDB")
            return

        from researchbench.infra.db.migrations import run_migrations

        self._mongo = MongoClient(
            uri=self.config.mongodb.uri,
            database=self.config.mongodb.database,
        )
        if not await self._mongo.ping():
            raise ConnectionError(f"MongoDB unreachable at {self.config.mongodb.uri}")
        await run_migrations(self._mongo.db)
        logger.info("AppContext initialized")

    async def close(self) -> None:
        """Stop workers and close all connections."""
        if self._job_queue is not None:
            await self._job_queue.stop()
        for client in (self._llm, self._search, self._capture):
            close = getattr(client, "close", None)
            if close is not None:
                await close()
        if self._mongo:
            self._mongo.close()
        logger.info("AppContext closed")

    @property
    def has_db(self) -> bool:
        return self._mongo is not None

    @property
    def mongo(self) -> MongoClient:
        if self._mongo is None:
            raise RuntimeError("AppContext not initialized. Call initialize() first.")
        return self._mongo

    @property
    def job_repo(self) -> JobRepo:
        if self._job_repo is None:
            from researchbench.infra.db.jobs import JobRepo

            self._job_repo = JobRepo(self.mongo.db)
        return self._job_repo

    @property
    def report_repo(self) -> ReportRepo:
        if self._report_repo is None:
            from researchbench.infra.db.reports import ReportRepo

            self._report_repo = ReportRepo(self.mongo.db)
        return self._report_repo

    @property
    def llm(self) -> LLMProvider:
        if self._llm is None:
            from researchbench.infra.providers.registry import get_provider_with_fallback

            self._llm = get_provider_with_fallback(self.config)
        return self._llm

    @property
    def search(self) -> SearchProvider:
        if self._search is None:
            from researchbench.infra.search.registry import get_search_provider

            self._search = get_search_provider(self.config)
        return self._search

    @property
    def capture(self) -> ContentCapture:
        if self._capture is None:
            from researchbench.infra.capture.web import WebCaptureProvider

            self._capture = WebCaptureProvider(
                user_agent=self.config.capture.user_agent,
                timeout=self.config.external.timeout_seconds,
                max_links=self.config.capture.max_links,
                max_captures=self.config.capture.max_captures,
            )
        return self._capture

    @property
    def progress_broadcaster(self) -> ProgressBroadcaster:
        if self._progress_broadcaster is None:
            from researchbench.services.progress import ProgressBroadcaster

            self._progress_broadcaster = ProgressBroadcaster()
        return self._progress_broadcaster

    @property
    def job_store(self) -> JobStore:
        if self._job_store is None:
            from researchbench.services.job_store import JobStore

            self._job_store = JobStore(self.job_repo if self.has_db else None)
        return self._job_store

    @property
    def report_service(self) -> ReportService:
        if self._report_service is None:
            from researchbench.services.report_service import ReportService

            self._report_service = ReportService(self.report_repo if self.has_db else None)
        return self._report_service

    @property
    def orchestrator(self) -> ResearchOrchestrator:
        if self._orchestrator is None:
            from researchbench.services.orchestrator import ResearchOrchestrator

            self._orchestrator = ResearchOrchestrator()
        return self._orchestrator

    @property
    def job_queue(self) -> JobQueueService:
        if self._job_queue is None:
            from researchbench.services.job_queue_service import JobQueueService
            from researchbench.services.pipeline_context import Capabilities, PipelineSettings
            from researchbench.services.progress import LoggingProgressSink

            self._job_queue = JobQueueService(
                store=self.job_store,
                orchestrator=self.orchestrator,
                report_service=self.report_service,
                capabilities=Capabilities(llm=self.llm, search=self.search, capture=self.capture),
                settings=PipelineSettings.from_app_config(self.config),
                defaults=self.config.research,
                max_concurrent_jobs=self.config.queue.max_concurrent_jobs,
                sinks=(LoggingProgressSink(), self.progress_broadcaster),
            )
        return self._job_queue
