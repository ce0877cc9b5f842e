"""Slack Web API wrapper for user lookups and direct messages."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

import httpx

from reviewporter.config import DEFAULT_VACATION_STATUS_TEXT, SLACK_TOKEN_ENV_VARS, resolve_token
from reviewporter.tasks import gather_or_cancel

logger = logging.getLogger(__name__)

SLACK_API_BASE_URL = "https://slack.com/api/"


class SlackAuthError(RuntimeError):
    """Raised when the Slack token is missing."""


class SlackApiError(RuntimeError):
    """Raised when a Slack Web API call fails."""

    def __init__(self, message: str, *, method: str, error: str | None = None) -> None:
        super().__init__(message)
        self.method = method
        self.error = error


@dataclass(frozen=True, slots=True)
class SlackUser:
    """Slack profile fields used for routing reports."""

    id: str
    name: str
    status_text: str

    def is_on_vacation(self, vacation_status_text: str = DEFAULT_VACATION_STATUS_TEXT) -> bool:
        return self.status_text == vacation_status_text


@dataclass(frozen=True, slots=True)
class SlackDirectory:
    """Usergroup members keyed by their real name."""

    users: dict[str, SlackUser]
    vacation_status_text: str = DEFAULT_VACATION_STATUS_TEXT

    def is_out_of_office(self, name: str) -> bool:
        """Return whether the named person is on vacation; unknown names count as available."""
        user = self.users.get(name)
        return user is not None and user.is_on_vacation(self.vacation_status_text)

    def reachable_user_ids(self) -> dict[str, str]:
        """Return Slack ids of members who are not on vacation."""
        return {
            name: user.id
            for name, user in self.users.items()
            if not user.is_on_vacation(self.vacation_status_text)
        }


class SlackClient:
    """Thin async client for the handful of Slack methods we need."""

    def __init__(self, client: httpx.AsyncClient, *, team_id: str, usergroup_id: str) -> None:
        self._client = client
        self._team_id = team_id
        self._usergroup_id = usergroup_id

    async def _call(self, method: str, params: dict[str, str]) -> dict[str, Any]:
        """Call a GET-style Slack method scoped to the workspace."""
        logger.info("Executing Slack request %s.", method)
        response = await self._client.get(method, params={**params, "team_id": self._team_id})
        return _checked_payload(response, method=method)

    async def obtain_user_ids(self) -> list[str]:
        payload = await self._call("usergroups.users.list", {"usergroup": self._usergroup_id})
        users = payload.get("users")
        if not isinstance(users, list) or not all(isinstance(user, str) for user in users):
            raise SlackApiError(
                "Expected 'users' string array in Slack response.",
                method="usergroups.users.list",
            )
        return users

    async def obtain_user(self, user_id: str) -> SlackUser:
        payload = await self._call("users.profile.get", {"user": user_id})
        profile = payload.get("profile")
        if not isinstance(profile, dict):
            raise SlackApiError(
                "Expected 'profile' object in Slack response.",
                method="users.profile.get",
            )
        name = profile.get("real_name")
        if not isinstance(name, str):
            raise SlackApiError(
                "Expected string field 'real_name' in Slack profile.",
                method="users.profile.get",
            )
        status_text = profile.get("status_text") or ""
        return SlackUser(id=user_id, name=name, status_text=str(status_text))

    async def obtain_directory(
        self,
        vacation_status_text: str = DEFAULT_VACATION_STATUS_TEXT,
    ) -> SlackDirectory:
        """Fetch every usergroup member's profile concurrently."""
        user_ids = await self.obtain_user_ids()
        users = await gather_or_cancel(*(self.obtain_user(user_id) for user_id in user_ids))
        logger.info("Slack users: %s", [user.name for user in users])
        return SlackDirectory(
            users={user.name: user for user in users},
            vacation_status_text=vacation_status_text,
        )

    async def send_message(self, user_id: str, message: str) -> None:
        """Send a direct message to a Slack user."""
        logger.info("Sending message to %s.", user_id)
        response = await self._client.post(
            "chat.postMessage",
            json={"text": message, "channel": user_id},
        )
        _checked_payload(response, method="chat.postMessage")
        logger.info("Message successfully sent to %s.", user_id)


def _checked_payload(response: httpx.Response, *, method: str) -> dict[str, Any]:
    """Return the JSON body of a Slack response, raising unless it reports ok."""
    if response.status_code >= 400:
        raise SlackApiError(
            f"Slack request failed with status {response.status_code} for '{method}'.",
            method=method,
        )
    payload = response.json()
    if not isinstance(payload, dict):
        raise SlackApiError("Expected JSON object in Slack response.", method=method)
    if payload.get("ok") is not True:
        error = payload.get("error")
        error_text = error if isinstance(error, str) else None
        logger.error("Slack call %s failed with error: %s.", method, error_text)
        raise SlackApiError(
            f"Slack call '{method}' failed: {error_text or 'unknown error'}.",
            method=method,
            error=error_text,
        )
    return payload


def get_slack_token_with_source(configured: str | None = None) -> tuple[str, str]:
    """Return the Slack token and where it was found."""
    resolved = resolve_token(configured, SLACK_TOKEN_ENV_VARS)
    if resolved is None:
        message = (
            "Missing Slack token. Set slack.token in the config file or "
            f"{' / '.join(SLACK_TOKEN_ENV_VARS)}."
        )
        raise SlackAuthError(message)
    return resolved


def build_slack_client(token: str, timeout_seconds: int = 20) -> httpx.AsyncClient:
    """Build an authenticated Slack Web API HTTP client."""
    return httpx.AsyncClient(
        base_url=SLACK_API_BASE_URL,
        headers={"Authorization": f"Bearer {token}"},
        timeout=timeout_seconds,
    )
