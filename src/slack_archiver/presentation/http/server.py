"""HTTP server for Slack events, operator jobs and the read API."""

import json
from typing import Any

import structlog
from aiohttp import web
from slack_sdk.signature import SignatureVerifier

from slack_archiver.application.container import Services
from slack_archiver.application.services.reader import UserView
from slack_archiver.config.models import ServerConfig
from slack_archiver.domain.entities.event import EventType, create_event

NOT_CONFIGURED_ACK = "Configuration error: slack section missing"


class HTTPServer:
    """HTTP server for receiving events and health checks.

    This server provides endpoints for:
    - POST /slack/events: Slack Events API webhook (plain-text ack)
    - GET /healthz: Kubernetes liveness probe
    - POST /api/v1/jobs: Enqueue an operator job
    - POST /api/v1/jobs/{type}/reset: Clear a job's progress
    - GET /api/v1/status: Progress of the batch jobs
    - GET /api/v1/integrity: Integrity scan report
    - GET /api/v1/channels, /api/v1/channels/{name}/messages, /api/v1/users
    - POST /api/v1/auth/login: Shared-password login

    Args:
        config: Server configuration containing host and port.
        services: Application components.
        logger: Structured logger for logging.
        signing_secret: Slack signing secret; requests are not verified
            when None.
    """

    def __init__(
        self,
        config: ServerConfig,
        services: Services,
        logger: structlog.BoundLogger,
        signing_secret: str | None = None,
    ) -> None:
        self.config = config
        self._services = services
        self._logger = logger
        self._verifier = SignatureVerifier(signing_secret) if signing_secret else None
        self._app: web.Application | None = None
        self._runner: web.AppRunner | None = None
        self._site: web.TCPSite | None = None

    @property
    def is_running(self) -> bool:
        """Return True if the server is running."""
        return self._site is not None

    @property
    def actual_port(self) -> int:
        """Return the actual port the server is listening on.

        This is useful when port 0 is configured to get a random port.

        Raises:
            RuntimeError: If the server is not running.
        """
        if self._site is None:
            raise RuntimeError("Server is not running")
        server = getattr(self._site, "_server", None)
        if server is None:
            raise RuntimeError("Server is not running")
        sockets = getattr(server, "sockets", None)
        if sockets:
            return sockets[0].getsockname()[1]
        raise RuntimeError("No sockets available")

    def create_app(self) -> web.Application:
        """Create and return the aiohttp Application.

        This method is exposed for testing purposes.

        Returns:
            Configured aiohttp Application.
        """
        app = web.Application()
        app.router.add_get("/healthz", self._handle_health_check)
        app.router.add_post("/slack/events", self._handle_slack_event)
        app.router.add_post("/api/v1/jobs", self._handle_job)
        app.router.add_post("/api/v1/jobs/{type}/reset", self._handle_reset)
        app.router.add_get("/api/v1/status", self._handle_status)
        app.router.add_get("/api/v1/integrity", self._handle_integrity)
        app.router.add_get("/api/v1/channels", self._handle_channels)
        app.router.add_get("/api/v1/channels/{name}/messages", self._handle_messages)
        app.router.add_get("/api/v1/users", self._handle_users)
        app.router.add_post("/api/v1/auth/login", self._handle_login)
        return app

    async def start(self) -> None:
        """Start the HTTP server."""
        self._app = self.create_app()
        self._runner = web.AppRunner(self._app)
        await self._runner.setup()
        self._site = web.TCPSite(self._runner, self.config.host, self.config.port)
        await self._site.start()
        self._logger.info(
            "HTTP server started",
            host=self.config.host,
            port=self.actual_port,
        )

    async def stop(self) -> None:
        """Stop the HTTP server."""
        if self._runner is not None:
            await self._runner.cleanup()
            self._runner = None
            self._site = None
            self._app = None
            self._logger.info("HTTP server stopped")

    async def _handle_health_check(self, request: web.Request) -> web.Response:
        """Handle GET /healthz requests."""
        return web.json_response({"status": "ok"})

    async def _handle_slack_event(self, request: web.Request) -> web.Response:
        """Handle POST /slack/events requests.

        Args:
            request: The incoming request.

        Returns:
            Plain-text acknowledgement; 401 when the signature does not match.
        """
        raw = await request.read()
        if self._verifier is not None and not self._verifier.is_valid_request(
            raw, dict(request.headers)
        ):
            self._logger.warning("Rejected Slack request with invalid signature")
            return web.Response(status=401, text="Invalid signature")

        try:
            envelope = json.loads(raw)
        except (json.JSONDecodeError, UnicodeDecodeError):
            return web.Response(status=400, text="Invalid JSON")
        if not isinstance(envelope, dict):
            return web.Response(status=400, text="Invalid JSON")

        realtime = self._services.realtime
        if realtime is None:
            return web.Response(text=NOT_CONFIGURED_ACK)
        return web.Response(text=await realtime.handle(envelope))

    async def _read_json_object(self, request: web.Request) -> dict[str, Any] | None:
        try:
            body = await request.json()
        except (json.JSONDecodeError, UnicodeDecodeError):
            return None
        return body if isinstance(body, dict) else None

    async def _handle_job(self, request: web.Request) -> web.Response:
        """Handle POST /api/v1/jobs requests.

        Returns:
            JSON response with event_id on success, or error message on failure.
        """
        body = await self._read_json_object(request)
        if body is None:
            return web.json_response({"error": "Invalid JSON"}, status=400)
        if "type" not in body:
            return web.json_response(
                {"error": "Missing required field: type"}, status=400
            )

        try:
            event_type = EventType(body["type"])
        except ValueError:
            return web.json_response(
                {"error": f"Invalid job type: {body['type']}"}, status=400
            )

        event = create_event(event_type)
        delay = body.get("delay", 0)
        try:
            await self._services.queue.enqueue(event, delay=delay)
        except Exception as e:
            self._logger.error("Failed to enqueue job", error=str(e))
            return web.json_response({"error": "Failed to enqueue job"}, status=500)

        self._logger.info(
            "Job received",
            event_id=event.id,
            event_type=event_type.value,
            delay=delay,
        )
        return web.json_response({"event_id": event.id})

    async def _handle_reset(self, request: web.Request) -> web.Response:
        try:
            event_type = EventType(request.match_info["type"])
        except ValueError:
            return web.json_response(
                {"error": f"Invalid job type: {request.match_info['type']}"},
                status=400,
            )
        message = await self._services.runner.reset(event_type)
        return web.json_response({"message": message})

    def _not_configured(self) -> web.Response:
        return web.json_response({"error": "Database not configured"}, status=503)

    async def _handle_status(self, request: web.Request) -> web.Response:
        progress = self._services.progress
        if progress is None:
            return self._not_configured()
        status = await progress.snapshot()
        status["results"] = self._services.runner.last_results
        return web.json_response(status)

    async def _handle_integrity(self, request: web.Request) -> web.Response:
        scanner = self._services.scanner
        if scanner is None:
            return self._not_configured()
        findings = await scanner.scan()
        return web.json_response(
            {
                "findings": [finding.model_dump() for finding in findings],
                "report": scanner.render(findings),
            }
        )

    async def _handle_channels(self, request: web.Request) -> web.Response:
        reader = self._services.reader
        if reader is None:
            return self._not_configured()
        channels = await reader.get_channels()
        return web.json_response([c.model_dump(by_alias=True) for c in channels])

    async def _handle_messages(self, request: web.Request) -> web.Response:
        reader = self._services.reader
        if reader is None:
            return self._not_configured()
        messages = await reader.get_messages(request.match_info["name"])
        return web.json_response(
            [m.model_dump(mode="json", by_alias=True) for m in messages]
        )

    async def _handle_users(self, request: web.Request) -> web.Response:
        reader = self._services.reader
        if reader is None:
            return self._not_configured()
        users = await reader.get_users()
        return web.json_response(
            {
                str(index): UserView.from_entry(entry).model_dump(by_alias=True)
                for index, entry in users.items()
            }
        )

    async def _handle_login(self, request: web.Request) -> web.Response:
        reader = self._services.reader
        if reader is None:
            return self._not_configured()
        body = await self._read_json_object(request)
        if body is None or "email" not in body or "password" not in body:
            return web.json_response(
                {"error": "Missing required fields: email, password"}, status=400
            )
        user = await reader.validate_user(str(body["email"]), str(body["password"]))
        if user is None:
            return web.json_response({"error": "Invalid credentials"}, status=401)
        self._logger.info("User logged in", user_index=user.index)
        return web.json_response(
            {"user": UserView.from_entry(user).model_dump(by_alias=True)}
        )
