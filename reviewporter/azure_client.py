"""Azure DevOps REST API wrapper and auth helpers."""

from __future__ import annotations

import asyncio
import base64
import logging
import re
from collections.abc import Sequence
from dataclasses import replace
from datetime import datetime
from typing import Any
from urllib.parse import quote

import httpx

from reviewporter.config import AZURE_TOKEN_ENV_VARS, resolve_token
from reviewporter.gateway import SearchRole
from reviewporter.models import (
    Identifier,
    NewReviewerAssignment,
    PullRequest,
    PullRequestAuthor,
    PullRequestReviewer,
    PullRequestStatus,
    TeamMember,
    Vote,
)

logger = logging.getLogger(__name__)

AZURE_API_VERSION = "6.0"
AZURE_TEAMS_API_VERSION = "6.0-preview.3"
AZURE_MAX_RETRIES = 3
DEFAULT_RETRY_BACKOFF_SECONDS = 0.5
FRACTIONAL_SECONDS_PATTERN = re.compile(r"(\.\d{6})\d+")


class AzureAuthError(RuntimeError):
    """Raised when the Azure DevOps token is missing."""


class AzureInputError(ValueError):
    """Raised when repository or pull request input values are invalid."""


class AzureApiError(RuntimeError):
    """Raised when an Azure DevOps API request fails."""

    def __init__(self, message: str, *, status_code: int, endpoint: str) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.endpoint = endpoint


class AzureRateLimitError(AzureApiError):
    """Raised when Azure DevOps throttling prevents request completion."""


def _ensure_mapping(value: object, *, context: str) -> dict[str, Any]:
    """Ensure a response fragment is a JSON object."""
    if not isinstance(value, dict):
        raise AzureApiError(
            f"Expected JSON object for {context}.",
            status_code=500,
            endpoint=context,
        )
    return value


def _require_str(payload: dict[str, Any], *, key: str, endpoint: str) -> str:
    """Read a required string field from payload."""
    value = payload.get(key)
    if not isinstance(value, str):
        raise AzureApiError(
            f"Expected string field '{key}' in Azure DevOps response.",
            status_code=500,
            endpoint=endpoint,
        )
    return value


def _require_int(payload: dict[str, Any], *, key: str, endpoint: str) -> int:
    """Read a required integer field from payload."""
    value = payload.get(key)
    if not isinstance(value, int) or isinstance(value, bool):
        raise AzureApiError(
            f"Expected integer field '{key}' in Azure DevOps response.",
            status_code=500,
            endpoint=endpoint,
        )
    return value


def _optional_bool(payload: dict[str, Any], *, key: str, endpoint: str) -> bool:
    """Read an optional boolean field that defaults to False."""
    value = payload.get(key, False)
    if value is None:
        return False
    if not isinstance(value, bool):
        raise AzureApiError(
            f"Expected boolean field '{key}' in Azure DevOps response.",
            status_code=500,
            endpoint=endpoint,
        )
    return value


def _require_object(payload: dict[str, Any], *, key: str, endpoint: str) -> dict[str, Any]:
    """Read a required object field from payload."""
    value = payload.get(key)
    if not isinstance(value, dict):
        raise AzureApiError(
            f"Expected object field '{key}' in Azure DevOps response.",
            status_code=500,
            endpoint=endpoint,
        )
    return value


def _require_list_value(payload: dict[str, Any], *, endpoint: str) -> list[dict[str, Any]]:
    """Read the ``value`` array of an Azure DevOps list response."""
    rows = payload.get("value")
    if not isinstance(rows, list):
        raise AzureApiError(
            "Expected 'value' array in Azure DevOps list response.",
            status_code=500,
            endpoint=endpoint,
        )
    for row in rows:
        if not isinstance(row, dict):
            raise AzureApiError(
                "Expected all array items to be JSON objects in Azure DevOps response.",
                status_code=500,
                endpoint=endpoint,
            )
    return rows


def _parse_timestamp(value: str, *, endpoint: str) -> datetime:
    """Parse Azure DevOps timestamps, which carry up to seven fractional digits."""
    try:
        return datetime.fromisoformat(FRACTIONAL_SECONDS_PATTERN.sub(r"\1", value))
    except ValueError as error:
        raise AzureApiError(
            f"Invalid timestamp '{value}' in Azure DevOps response.",
            status_code=500,
            endpoint=endpoint,
        ) from error


def parse_team_member(row: dict[str, Any], *, endpoint: str) -> TeamMember | None:
    """Parse one team membership row, returning None for group identities."""
    identity = _require_object(row, key="identity", endpoint=endpoint)
    if _optional_bool(identity, key="isContainer", endpoint=endpoint):
        return None
    return TeamMember(
        id=Identifier(_require_str(identity, key="id", endpoint=endpoint)),
        name=_require_str(identity, key="displayName", endpoint=endpoint),
    )


def parse_reviewer(row: dict[str, Any], *, endpoint: str) -> PullRequestReviewer:
    """Parse one reviewer entry of a pull request."""
    vote_value = _require_int(row, key="vote", endpoint=endpoint)
    try:
        vote = Vote(vote_value)
    except ValueError as error:
        raise AzureApiError(
            f"Unknown reviewer vote {vote_value} in Azure DevOps response.",
            status_code=500,
            endpoint=endpoint,
        ) from error
    return PullRequestReviewer(
        id=Identifier(_require_str(row, key="id", endpoint=endpoint)),
        name=_require_str(row, key="displayName", endpoint=endpoint),
        is_required=_optional_bool(row, key="isRequired", endpoint=endpoint),
        vote=vote,
        has_declined=_optional_bool(row, key="hasDeclined", endpoint=endpoint),
    )


def parse_pull_request(payload: dict[str, Any], *, endpoint: str) -> PullRequest:
    """Parse a pull request payload into a snapshot."""
    created_by = _require_object(payload, key="createdBy", endpoint=endpoint)
    status_value = _require_str(payload, key="status", endpoint=endpoint)
    try:
        status = PullRequestStatus(status_value)
    except ValueError as error:
        raise AzureApiError(
            f"Unknown pull request status '{status_value}' in Azure DevOps response.",
            status_code=500,
            endpoint=endpoint,
        ) from error

    reviewer_rows = payload.get("reviewers", [])
    if not isinstance(reviewer_rows, list):
        raise AzureApiError(
            "Expected 'reviewers' to be an array in Azure DevOps response.",
            status_code=500,
            endpoint=endpoint,
        )

    return PullRequest(
        id=_require_int(payload, key="pullRequestId", endpoint=endpoint),
        title=_require_str(payload, key="title", endpoint=endpoint),
        url=_require_str(payload, key="url", endpoint=endpoint),
        author=PullRequestAuthor(
            id=Identifier(_require_str(created_by, key="id", endpoint=endpoint)),
            name=_require_str(created_by, key="displayName", endpoint=endpoint),
        ),
        creation_date=_parse_timestamp(
            _require_str(payload, key="creationDate", endpoint=endpoint),
            endpoint=endpoint,
        ),
        status=status,
        reviewers=tuple(
            parse_reviewer(_ensure_mapping(row, context=endpoint), endpoint=endpoint)
            for row in reviewer_rows
        ),
    )


def _is_retryable_status(status_code: int) -> bool:
    """Return whether a status code is retryable under policy."""
    return status_code == 429 or 500 <= status_code < 600


def _parse_retry_after_seconds(response: httpx.Response) -> float | None:
    """Parse Retry-After header as seconds if present and valid."""
    retry_after = response.headers.get("Retry-After")
    if retry_after is None:
        return None
    try:
        parsed_value = float(retry_after)
    except ValueError:
        return None
    if parsed_value < 0:
        return None
    return parsed_value


def _compute_retry_delay_seconds(response: httpx.Response, *, attempt_number: int) -> float:
    """Compute retry delay from Retry-After header or exponential backoff."""
    retry_after_seconds = _parse_retry_after_seconds(response)
    if retry_after_seconds is not None:
        return retry_after_seconds
    return DEFAULT_RETRY_BACKOFF_SECONDS * (2 ** (attempt_number - 1))


async def _sleep_for_retry(seconds: float) -> None:
    """Sleep helper for retry delays (wrapped for deterministic tests)."""
    await asyncio.sleep(seconds)


def _raise_http_error(response: httpx.Response, endpoint: str) -> None:
    """Raise a typed error for a non-success Azure DevOps response."""
    message = (
        f"Azure DevOps request failed with status {response.status_code} for '{endpoint}'."
    )
    if response.status_code == 429:
        raise AzureRateLimitError(
            message,
            status_code=response.status_code,
            endpoint=endpoint,
        )
    raise AzureApiError(
        message,
        status_code=response.status_code,
        endpoint=endpoint,
    )


async def _request_with_retries(
    client: httpx.AsyncClient,
    endpoint: str,
    *,
    params: dict[str, str] | None = None,
    api_version: str = AZURE_API_VERSION,
    max_attempts: int = AZURE_MAX_RETRIES,
) -> httpx.Response:
    """Perform a GET request with retry handling for 429/5xx responses."""
    query = {**(params or {}), "api-version": api_version}
    for attempt_number in range(1, max_attempts + 1):
        logger.debug("Executing GET request with url: %s.", endpoint)
        response = await client.get(endpoint, params=query)
        if response.status_code < 400:
            return response

        should_retry = _is_retryable_status(response.status_code) and attempt_number < max_attempts
        if not should_retry:
            _raise_http_error(response, endpoint)

        delay_seconds = _compute_retry_delay_seconds(response, attempt_number=attempt_number)
        logger.warning(
            "Azure DevOps returned %s for '%s'; retrying in %.1fs.",
            response.status_code,
            endpoint,
            delay_seconds,
        )
        await _sleep_for_retry(delay_seconds)

    raise RuntimeError("Unexpected retry loop exit without a response.")


async def _request_json(
    client: httpx.AsyncClient,
    endpoint: str,
    *,
    params: dict[str, str] | None = None,
    api_version: str = AZURE_API_VERSION,
) -> dict[str, Any]:
    """Perform a JSON request against Azure DevOps."""
    response = await _request_with_retries(
        client,
        endpoint,
        params=params,
        api_version=api_version,
    )
    return _ensure_mapping(response.json(), context=endpoint)


async def _request_json_list(
    client: httpx.AsyncClient,
    endpoint: str,
    *,
    params: dict[str, str] | None = None,
    api_version: str = AZURE_API_VERSION,
) -> list[dict[str, Any]]:
    """Perform a JSON request that returns an Azure DevOps ``value`` list."""
    payload = await _request_json(client, endpoint, params=params, api_version=api_version)
    return _require_list_value(payload, endpoint=endpoint)


def validate_repository_id(repository_id: str) -> str:
    """Validate and normalize repository name input."""
    normalized = repository_id.strip()
    if not normalized or "/" in normalized:
        raise AzureInputError(
            f"Invalid repository '{repository_id}'. Expected a repository name or id."
        )
    return normalized


def validate_pull_request_id(pull_request_id: str) -> str:
    """Validate and normalize pull request id input."""
    normalized = pull_request_id.strip()
    if not normalized.isdigit() or int(normalized) <= 0:
        raise AzureInputError(
            f"Invalid pull request id '{pull_request_id}'. Expected a positive integer."
        )
    return normalized


class AzureDevOpsGateway:
    """Azure DevOps implementation of the directory gateways."""

    def __init__(self, client: httpx.AsyncClient, *, project: str) -> None:
        self._client = client
        self._project = project

    def _project_path(self) -> str:
        return quote(self._project, safe="")

    def _repository_path(self, repository_id: str) -> str:
        repository = quote(validate_repository_id(repository_id), safe="")
        return f"{self._project_path()}/_apis/git/repositories/{repository}"

    def pull_request_web_url(self, repository_id: str, pull_request_id: int) -> str:
        """Return the browser URL of a pull request."""
        path = (
            f"{self._project_path()}/_git/{quote(repository_id, safe='')}"
            f"/pullrequest/{pull_request_id}"
        )
        return str(self._client.base_url.join(path))

    async def get_team_names(self) -> list[str]:
        logger.info("Requesting teams in project %s.", self._project)
        endpoint = f"_apis/projects/{self._project_path()}/teams"
        rows = await _request_json_list(
            self._client,
            endpoint,
            api_version=AZURE_TEAMS_API_VERSION,
        )
        return [_require_str(row, key="name", endpoint=endpoint) for row in rows]

    async def get_team_members(self, team_name: str) -> list[TeamMember]:
        logger.info("Requesting team %s members.", team_name)
        team = quote(team_name, safe="")
        endpoint = f"_apis/projects/{self._project_path()}/teams/{team}/members"
        rows = await _request_json_list(self._client, endpoint)
        members: list[TeamMember] = []
        for row in rows:
            member = parse_team_member(row, endpoint=endpoint)
            if member is not None:
                members.append(member)
        return members

    async def get_pull_request(self, repository_id: str, pull_request_id: str) -> PullRequest:
        normalized_id = validate_pull_request_id(pull_request_id)
        logger.info(
            "Requesting pull request %s in repository %s.", normalized_id, repository_id
        )
        endpoint = f"{self._repository_path(repository_id)}/pullrequests/{normalized_id}"
        payload = await _request_json(self._client, endpoint)
        return parse_pull_request(payload, endpoint=endpoint)

    async def find_active_pull_requests(
        self,
        repository_id: str,
        *,
        role: SearchRole,
        member_id: Identifier,
    ) -> list[PullRequest]:
        endpoint = f"{self._repository_path(repository_id)}/pullrequests"
        rows = await _request_json_list(
            self._client,
            endpoint,
            params={
                f"searchCriteria.{role.value}": member_id,
                "searchCriteria.status": PullRequestStatus.ACTIVE.value,
            },
        )
        pull_requests: list[PullRequest] = []
        for row in rows:
            pull_request = parse_pull_request(row, endpoint=endpoint)
            pull_requests.append(
                replace(
                    pull_request,
                    url=self.pull_request_web_url(repository_id, pull_request.id),
                )
            )
        return pull_requests

    async def submit_reviewers(
        self,
        repository_id: str,
        pull_request_id: str,
        reviewers: Sequence[NewReviewerAssignment],
    ) -> None:
        normalized_id = validate_pull_request_id(pull_request_id)
        if not reviewers:
            logger.info("No new reviewers for %s in repository %s.", normalized_id, repository_id)
            return

        logger.info(
            "Creating reviewers for %s in repository %s. Reviewers: %s",
            normalized_id,
            repository_id,
            reviewers,
        )
        endpoint = f"{self._repository_path(repository_id)}/pullrequests/{normalized_id}/reviewers"
        response = await self._client.post(
            endpoint,
            params={"api-version": AZURE_API_VERSION},
            json=[reviewer.to_payload() for reviewer in reviewers],
        )
        if response.status_code >= 400:
            _raise_http_error(response, endpoint)


def get_azure_token_with_source(configured: str | None = None) -> tuple[str, str]:
    """Return the Azure DevOps token and where it was found."""
    resolved = resolve_token(configured, AZURE_TOKEN_ENV_VARS)
    if resolved is None:
        message = (
            "Missing Azure DevOps token. Set azure.token in the config file or "
            f"{' / '.join(AZURE_TOKEN_ENV_VARS)}."
        )
        raise AzureAuthError(message)
    return resolved


def build_azure_client(
    base_url: str,
    token: str,
    timeout_seconds: int = 20,
    *,
    trust_env: bool = True,
) -> httpx.AsyncClient:
    """Build an authenticated Azure DevOps HTTP client for a personal access token."""
    credentials = base64.b64encode(f":{token}".encode()).decode("ascii")
    headers = {
        "Accept": "application/json",
        "Authorization": f"Basic {credentials}",
    }
    return httpx.AsyncClient(
        base_url=base_url,
        headers=headers,
        timeout=timeout_seconds,
        trust_env=trust_env,
    )
