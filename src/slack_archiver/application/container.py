"""Wiring of the archiver's components from configuration."""

from dataclasses import dataclass
from zoneinfo import ZoneInfo

from slack_sdk.web.async_client import AsyncWebClient

from slack_archiver.application.handlers.job_handlers import (
    BackfillJobHandler,
    BulkImportJobHandler,
    ChannelSyncJobHandler,
    InitialSetupJobHandler,
    JobHandlerRegistry,
    MissingConfigJobHandler,
    ThreadRepairJobHandler,
    UserSyncJobHandler,
)
from slack_archiver.application.services.backfill import BackfillJob
from slack_archiver.application.services.bulk_import import BulkImportJob
from slack_archiver.application.services.channel_directory import ChannelDirectory
from slack_archiver.application.services.integrity import IntegrityScanner
from slack_archiver.application.services.job_runner import JobRunner
from slack_archiver.application.services.message_writer import MessageWriter
from slack_archiver.application.services.progress import ProgressRepository
from slack_archiver.application.services.reader import ArchiveReader
from slack_archiver.application.services.realtime import RealtimeEventHandler
from slack_archiver.application.services.thread_repair import ThreadRepairer
from slack_archiver.application.services.user_directory import (
    UserDirectory,
    UserIndexCache,
)
from slack_archiver.config.models import AppConfig
from slack_archiver.domain.entities.event import EventType
from slack_archiver.infrastructure.cache import TTLCache
from slack_archiver.infrastructure.event_queue import EventQueue
from slack_archiver.infrastructure.locking import StoreLock
from slack_archiver.infrastructure.logging import get_logger
from slack_archiver.infrastructure.persistence import (
    Database,
    SqlitePropertyStore,
    SqliteTableStore,
)
from slack_archiver.infrastructure.slack import SlackApi, create_web_client

SLACK_JOBS = (
    EventType.BACKFILL,
    EventType.USER_SYNC,
    EventType.CHANNEL_SYNC,
    EventType.INITIAL_SETUP,
)
ALL_JOBS = (*SLACK_JOBS, EventType.BULK_IMPORT, EventType.THREAD_REPAIR)


@dataclass
class Services:
    """Components shared by the worker loop and the HTTP server.

    Members that need a missing configuration section are None.
    """

    queue: EventQueue
    runner: JobRunner
    database: Database | None = None
    progress: ProgressRepository | None = None
    realtime: RealtimeEventHandler | None = None
    reader: ArchiveReader | None = None
    scanner: IntegrityScanner | None = None
    web_client: AsyncWebClient | None = None

    async def close(self) -> None:
        await self.queue.close()
        if self.web_client is not None and self.web_client.session is not None:
            await self.web_client.session.close()
        if self.database is not None:
            await self.database.close()


async def build_services(config: AppConfig) -> Services:
    """Create and initialize every component the configuration allows.

    Jobs whose configuration is incomplete are registered with a handler
    that only reports the configuration fault.
    """
    archive = config.archive
    queue = EventQueue()
    registry = JobHandlerRegistry()
    runner = JobRunner(
        registry=registry,
        queue=queue,
        continuation_delay=archive.continuation_delay_seconds,
        logger=get_logger("job_runner"),
        repair_interval=archive.repair_interval_seconds,
    )
    services = Services(queue=queue, runner=runner)

    if config.database is None:
        for job in ALL_JOBS:
            registry.register(job, MissingConfigJobHandler("database"))
        return services

    database = Database(config.database.url)
    await database.initialize()
    services.database = database

    store = SqliteTableStore(database)
    progress = ProgressRepository(SqlitePropertyStore(database), get_logger("progress"))
    timezone = ZoneInfo(archive.timezone)
    excluded = (archive.credential_table,)
    repairer = ThreadRepairer(store, get_logger("thread_repair"), excluded)

    services.progress = progress
    services.reader = ArchiveReader(store, archive.credential_table, get_logger("reader"))
    services.scanner = IntegrityScanner(
        store, archive.max_integrity_findings, get_logger("integrity"), excluded
    )
    registry.register(EventType.THREAD_REPAIR, ThreadRepairJobHandler(repairer))

    if config.slack is None:
        for job in SLACK_JOBS:
            registry.register(job, MissingConfigJobHandler("slack"))
        if config.export is None:
            registry.register(EventType.BULK_IMPORT, MissingConfigJobHandler("export"))
        else:
            registry.register(EventType.BULK_IMPORT, MissingConfigJobHandler("slack"))
        return services

    web_client = create_web_client(config.slack)
    services.web_client = web_client
    slack = SlackApi(web_client, get_logger("slack_api"))
    cache = UserIndexCache(store, archive.user_cache_ttl_seconds)
    users = UserDirectory(store, slack, cache, get_logger("user_directory"))
    channels = ChannelDirectory(store, slack, get_logger("channel_directory"))
    writer = MessageWriter(
        store, repairer, timezone, archive.chunk_size, get_logger("message_writer")
    )

    registry.register(EventType.USER_SYNC, UserSyncJobHandler(users))
    registry.register(EventType.CHANNEL_SYNC, ChannelSyncJobHandler(channels))
    registry.register(EventType.INITIAL_SETUP, InitialSetupJobHandler(users, channels))
    registry.register(
        EventType.BACKFILL,
        BackfillJobHandler(
            BackfillJob(
                progress=progress,
                slack=slack,
                users=users,
                channels=channels,
                writer=writer,
                time_budget=archive.time_budget_seconds,
                logger=get_logger("backfill"),
            )
        ),
    )
    if config.export is None:
        registry.register(EventType.BULK_IMPORT, MissingConfigJobHandler("export"))
    else:
        registry.register(
            EventType.BULK_IMPORT,
            BulkImportJobHandler(
                BulkImportJob(
                    root=config.export.root,
                    progress=progress,
                    users=users,
                    channels=channels,
                    writer=writer,
                    repairer=repairer,
                    time_budget=archive.time_budget_seconds,
                    logger=get_logger("bulk_import"),
                )
            ),
        )

    services.realtime = RealtimeEventHandler(
        store=store,
        users=users,
        channels=channels,
        slack=slack,
        lock=StoreLock(archive.lock_timeout_seconds),
        seen_events=TTLCache(archive.event_dedup_ttl_seconds),
        timezone=timezone,
        duplicate_window=archive.duplicate_check_window,
        logger=get_logger("realtime"),
    )
    return services
