"""Slack Web API infrastructure."""

from slack_archiver.infrastructure.slack.client import SlackApi, create_web_client

__all__ = ["SlackApi", "create_web_client"]
