"""Application entry point for slack-archiver."""

import argparse
import asyncio
import json
import signal
import sys
from collections.abc import Callable
from pathlib import Path

from pydantic import ValidationError
from structlog.stdlib import BoundLogger

from slack_archiver.application.container import Services, build_services
from slack_archiver.application.services.job_runner import JobRunner
from slack_archiver.config import (
    ConfigError,
    ConfigFileNotFoundError,
    load_config,
)
from slack_archiver.domain.entities.event import Event, EventType, create_event
from slack_archiver.infrastructure import EventQueue
from slack_archiver.infrastructure.logging import get_logger, setup_logging
from slack_archiver.presentation.http.server import HTTPServer

# Shutdown timeout in seconds
SHUTDOWN_TIMEOUT = 30

JOB_CHOICES = [event_type.value for event_type in EventType]
RESETTABLE_JOBS = [EventType.BACKFILL.value, EventType.BULK_IMPORT.value]


def parse_args(args: list[str] | None = None) -> argparse.Namespace:
    """Parse command line arguments.

    Args:
        args: Command line arguments. If None, uses sys.argv.

    Returns:
        Parsed arguments namespace.
    """
    parser = argparse.ArgumentParser(
        description="slack-archiver - Slack workspace archiver"
    )
    parser.add_argument(
        "-c",
        "--config",
        type=Path,
        default=Path("config.yaml"),
        help="Path to configuration file (default: config.yaml)",
    )
    commands = parser.add_subparsers(dest="command")
    commands.add_parser("serve", help="Run the webhook server and job worker (default)")

    run = commands.add_parser("run", help="Run one job invocation in the foreground")
    run.add_argument("job", choices=JOB_CHOICES)
    run.add_argument(
        "--follow",
        action="store_true",
        help="Keep running continuations until the job finishes",
    )

    reset = commands.add_parser("reset", help="Clear a batch job's progress")
    reset.add_argument("job", choices=RESETTABLE_JOBS)

    commands.add_parser("status", help="Print the progress of the batch jobs")
    commands.add_parser("check", help="Scan the archive for malformed rows")

    parsed = parser.parse_args(args)
    if parsed.command is None:
        parsed.command = "serve"
    return parsed


async def run_main_loop(
    event_queue: EventQueue,
    job_runner: JobRunner,
    shutdown_event: asyncio.Event,
    running_check: Callable[[], bool],
    logger: BoundLogger,
) -> None:
    """Run the main job processing loop.

    Args:
        event_queue: EventQueue instance for retrieving jobs.
        job_runner: JobRunner instance for processing jobs.
        shutdown_event: Event that signals shutdown.
        running_check: Callable that returns whether the loop should continue.
        logger: Logger instance.
    """
    while running_check():
        # Create tasks for dequeue and shutdown wait
        dequeue_task = asyncio.create_task(event_queue.dequeue())
        shutdown_task = asyncio.create_task(shutdown_event.wait())

        try:
            # Wait for either dequeue to return or shutdown to be signaled
            done, pending = await asyncio.wait(
                [dequeue_task, shutdown_task],
                return_when=asyncio.FIRST_COMPLETED,
            )

            for task in pending:
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass

            if shutdown_task in done:
                # If dequeue also completed, process that job
                if dequeue_task in done:
                    event = dequeue_task.result()
                    await _process_event(event, job_runner, event_queue, logger)
                break

            if dequeue_task in done:
                event = dequeue_task.result()
                await _process_event(event, job_runner, event_queue, logger)

        except asyncio.CancelledError:
            dequeue_task.cancel()
            shutdown_task.cancel()
            try:
                await dequeue_task
            except asyncio.CancelledError:
                pass
            try:
                await shutdown_task
            except asyncio.CancelledError:
                pass
            raise


async def _process_event(
    event: Event,
    job_runner: JobRunner,
    event_queue: EventQueue,
    logger: BoundLogger,
) -> None:
    """Process a single job event.

    Args:
        event: Event to process.
        job_runner: JobRunner instance.
        event_queue: EventQueue instance for marking done.
        logger: Logger instance.
    """
    try:
        await job_runner.process(event)
    except Exception as e:
        logger.error("Error processing job", event_id=event.id, error=str(e))
    finally:
        event_queue.mark_done(event)


async def serve(
    config_path: Path,
    services: Services,
    http_server: HTTPServer,
    logger: BoundLogger,
    shutdown_timeout: float = SHUTDOWN_TIMEOUT,
) -> int:
    """Run the HTTP server and the job worker until a shutdown signal."""
    running = True
    shutdown_event = asyncio.Event()

    def is_running() -> bool:
        return running

    def signal_handler(sig: signal.Signals) -> None:
        nonlocal running
        logger.info("Received signal, initiating shutdown", signal=sig.name)
        running = False
        shutdown_event.set()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, signal_handler, sig)

    try:
        await http_server.start()
        await services.runner.resume_pending()
        await services.runner.schedule_repair()
        logger.info("slack-archiver started successfully", config_path=str(config_path))

        await run_main_loop(
            event_queue=services.queue,
            job_runner=services.runner,
            shutdown_event=shutdown_event,
            running_check=is_running,
            logger=logger,
        )

    except asyncio.CancelledError:
        logger.info("Main loop cancelled")

    finally:
        logger.info("Shutting down")
        try:
            await asyncio.wait_for(http_server.stop(), timeout=shutdown_timeout)
            logger.info("slack-archiver stopped")
        except TimeoutError:
            logger.warning(
                "Shutdown timed out, forcing termination",
                timeout_seconds=shutdown_timeout,
            )

    return 0


async def run_job(
    services: Services, job: EventType, follow: bool, delay: float
) -> int:
    """Run a job in the foreground and print each invocation's result."""
    while True:
        try:
            outcome = await services.runner.process(create_event(job, source="cli"))
        except Exception as e:
            print(f"Error: {job.value} failed: {e}", file=sys.stderr)
            return 1
        if outcome is None:
            return 1
        print(outcome.message)
        if not (follow and outcome.reschedule):
            return 0
        # Continuations run in this loop rather than through the queue
        await services.queue.cancel_scheduled(job.value)
        await asyncio.sleep(delay)


async def main_async(
    config_path: Path,
    command: str = "serve",
    job: str | None = None,
    follow: bool = False,
    shutdown_timeout: float = SHUTDOWN_TIMEOUT,
) -> int:
    """Async main function.

    Args:
        config_path: Path to configuration file.
        command: Subcommand to execute.
        job: Job type for the run and reset subcommands.
        follow: Whether ``run`` keeps going until the job finishes.
        shutdown_timeout: Maximum time in seconds to wait for graceful shutdown.

    Returns:
        Exit code (0 for success, non-zero for failure).
    """
    # 1. Load configuration
    config = load_config(config_path)

    # 2. Initialize logging
    setup_logging(config.logging)
    logger = get_logger(__name__)
    logger.info("Starting slack-archiver", command=command)

    # 3. Initialize components
    services = await build_services(config)
    try:
        if command == "serve":
            http_server = HTTPServer(
                config=config.server,
                services=services,
                logger=get_logger("http_server"),
                signing_secret=config.slack.signing_secret if config.slack else None,
            )
            return await serve(
                config_path,
                services,
                http_server,
                logger,
                shutdown_timeout,
            )

        if command == "run" and job is not None:
            return await run_job(
                services,
                EventType(job),
                follow,
                config.archive.continuation_delay_seconds,
            )

        if command == "reset" and job is not None:
            print(await services.runner.reset(EventType(job)))
            return 0

        if command == "status":
            if services.progress is None:
                print("Error: the 'database' section is missing.", file=sys.stderr)
                return 1
            print(json.dumps(await services.progress.snapshot(), ensure_ascii=False, indent=2))
            return 0

        if command == "check":
            if services.scanner is None:
                print("Error: the 'database' section is missing.", file=sys.stderr)
                return 1
            print(await services.scanner.report())
            return 0

        logger.error("Unknown command", command=command)
        return 2
    finally:
        await services.close()


def main() -> None:
    """Main entry point."""
    args = parse_args()
    config_path = args.config

    try:
        exit_code = asyncio.run(
            main_async(
                config_path,
                command=args.command,
                job=getattr(args, "job", None),
                follow=getattr(args, "follow", False),
            )
        )
        sys.exit(exit_code)
    except ConfigFileNotFoundError:
        print(f"Error: {config_path} not found", file=sys.stderr)
        sys.exit(1)
    except ConfigError as e:
        print(f"Error: Configuration error: {e}", file=sys.stderr)
        sys.exit(1)
    except ValidationError as e:
        print(f"Error: Configuration validation error: {e}", file=sys.stderr)
        sys.exit(1)
    except KeyboardInterrupt:
        sys.exit(0)


if __name__ == "__main__":
    main()
