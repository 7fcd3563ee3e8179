"""Slack Web API access with failures converted into ``{"ok": False}``."""

import asyncio
from collections.abc import AsyncIterator
from typing import Any

import aiohttp
from slack_sdk.errors import SlackApiError
from slack_sdk.http_retry.builtin_async_handlers import (
    AsyncRateLimitErrorRetryHandler,
)
from slack_sdk.web.async_client import AsyncWebClient
from structlog.stdlib import BoundLogger

from slack_archiver.config.models import SlackConfig

RATE_LIMIT_RETRIES = 3


def create_web_client(config: SlackConfig) -> AsyncWebClient:
    """Create an AsyncWebClient that retries rate-limited calls."""
    kwargs: dict[str, Any] = {"token": config.bot_token}
    if config.api_base_url:
        kwargs["base_url"] = config.api_base_url
    client = AsyncWebClient(**kwargs)
    client.retry_handlers.append(
        AsyncRateLimitErrorRetryHandler(max_retry_count=RATE_LIMIT_RETRIES)
    )
    return client


class SlackApi:
    """Thin wrapper over the Slack Web API calls the archiver consumes.

    No call raises for API or network faults. Every method returns the
    response payload, and failures come back as ``{"ok": False, "error": ...}``
    after being logged, so callers proceed with partial data.

    Args:
        client: Async Slack Web API client.
        logger: Structured logger.
    """

    def __init__(self, client: AsyncWebClient, logger: BoundLogger) -> None:
        self._client = client
        self._logger = logger

    async def call(self, method: str, **params: Any) -> dict[str, Any]:
        """Invoke a Web API method by its SDK name (e.g. "users_list")."""
        try:
            response = await getattr(self._client, method)(**params)
        except SlackApiError as e:
            data = e.response.data if isinstance(e.response.data, dict) else {}
            error = data.get("error") or str(e)
            self._logger.error("Slack API error", method=method, error=error)
            return {"ok": False, "error": error}
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            self._logger.error("Slack network error", method=method, error=str(e))
            return {"ok": False, "error": "network_failure"}

        data = response.data
        if not isinstance(data, dict):
            self._logger.error("Unexpected Slack response", method=method)
            return {"ok": False, "error": "invalid_response"}
        if not data.get("ok"):
            self._logger.error(
                "Slack API error", method=method, error=data.get("error")
            )
        return data

    async def _responses(
        self, method: str, **params: Any
    ) -> AsyncIterator[dict[str, Any]]:
        """Yield page responses until the last page or the first failure."""
        cursor = ""
        while True:
            page_params = dict(params)
            if cursor:
                page_params["cursor"] = cursor
            response = await self.call(method, **page_params)
            yield response
            if not response.get("ok"):
                return
            cursor = (response.get("response_metadata") or {}).get("next_cursor") or ""
            if not cursor:
                return

    async def pages(
        self, method: str, key: str, **params: Any
    ) -> AsyncIterator[list[dict[str, Any]]]:
        """Yield the ``key`` list of every page of a cursor-paginated method.

        Iteration stops after the last page or at the first failed page.
        """
        async for response in self._responses(method, **params):
            if response.get("ok"):
                yield list(response.get(key) or [])

    async def collect(
        self, method: str, key: str, **params: Any
    ) -> tuple[list[dict[str, Any]], bool]:
        """Gather all pages of a paginated method.

        Returns:
            The items and whether every page was fetched successfully.
        """
        items: list[dict[str, Any]] = []
        async for response in self._responses(method, **params):
            if not response.get("ok"):
                return items, False
            items.extend(response.get(key) or [])
        return items, True

    async def list_members(self) -> tuple[list[dict[str, Any]], bool]:
        return await self.collect("users_list", "members", limit=200)

    async def list_channels(
        self, types: str, exclude_archived: bool = False
    ) -> tuple[list[dict[str, Any]], bool]:
        return await self.collect(
            "conversations_list",
            "channels",
            types=types,
            limit=1000,
            exclude_archived=exclude_archived,
        )

    async def join_channel(self, channel_id: str) -> bool:
        response = await self.call("conversations_join", channel=channel_id)
        return bool(response.get("ok"))

    async def get_channel_name(self, channel_id: str) -> str | None:
        """Return the current channel name, or None if it cannot be resolved."""
        response = await self.call("conversations_info", channel=channel_id)
        if not response.get("ok"):
            return None
        return (response.get("channel") or {}).get("name") or None

    def history_pages(self, channel_id: str) -> AsyncIterator[list[dict[str, Any]]]:
        return self.pages(
            "conversations_history", "messages", channel=channel_id, limit=100
        )

    def reply_pages(
        self, channel_id: str, thread_ts: str
    ) -> AsyncIterator[list[dict[str, Any]]]:
        return self.pages(
            "conversations_replies",
            "messages",
            channel=channel_id,
            ts=thread_ts,
            limit=200,
        )
