"""Typer CLI for reviewer assignment and review reports."""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Annotated

import httpx
import typer

from reviewporter.assignment import add_reviewers
from reviewporter.azure_client import (
    AzureApiError,
    AzureAuthError,
    AzureDevOpsGateway,
    AzureInputError,
    build_azure_client,
    get_azure_token_with_source,
)
from reviewporter.config import AppConfig, ConfigError, load_config
from reviewporter.models import NewReviewerAssignment
from reviewporter.observability import configure_logging
from reviewporter.reports import send_reports
from reviewporter.slack_client import (
    SlackApiError,
    SlackAuthError,
    SlackClient,
    build_slack_client,
    get_slack_token_with_source,
)

app = typer.Typer(help="Assign pull request reviewers and remind people about pending reviews.")

RUN_ERRORS = (
    AzureApiError,
    AzureAuthError,
    AzureInputError,
    SlackApiError,
    SlackAuthError,
)


@app.callback()
def main(
    ctx: typer.Context,
    config: Annotated[
        Path, typer.Option("--config", "-c", help="Path to the TOML configuration file.")
    ],
    log_level: Annotated[
        str | None,
        typer.Option(help="Logging level; defaults to REVIEWPORTER_LOG_LEVEL or INFO."),
    ] = None,
) -> None:
    """Load configuration shared by all commands."""
    configure_logging(log_level)
    try:
        ctx.obj = load_config(config)
    except ConfigError as error:
        typer.echo(f"Configuration error: {error}")
        raise typer.Exit(code=1) from error


def _slack_client(config: AppConfig, http_client: httpx.AsyncClient) -> SlackClient:
    return SlackClient(
        http_client,
        team_id=config.slack.team_id,
        usergroup_id=config.slack.usergroup_id,
    )


async def _run_add_reviewers(
    config: AppConfig,
    *,
    repository: str,
    request_id: str,
) -> list[NewReviewerAssignment]:
    azure_token, _source = get_azure_token_with_source(config.azure.token)
    slack_token, _source = get_slack_token_with_source(config.slack.token)
    async with (
        build_azure_client(config.azure.base_url, azure_token) as azure_http,
        build_slack_client(slack_token) as slack_http,
    ):
        directory = await _slack_client(config, slack_http).obtain_directory(
            config.slack.vacation_status_text
        )
        gateway = AzureDevOpsGateway(azure_http, project=config.azure.project)
        return await add_reviewers(
            gateway,
            repository_id=repository,
            pull_request_id=request_id,
            team_name=config.azure.team_name,
            config=config.reviewers,
            is_out_of_office=directory.is_out_of_office,
        )


async def _run_send_reports(config: AppConfig, *, repositories: list[str]) -> int:
    azure_token, _source = get_azure_token_with_source(config.azure.token)
    slack_token, _source = get_slack_token_with_source(config.slack.token)
    async with (
        build_azure_client(config.azure.base_url, azure_token) as azure_http,
        build_slack_client(slack_token) as slack_http,
    ):
        slack = _slack_client(config, slack_http)
        directory = await slack.obtain_directory(config.slack.vacation_status_text)
        gateway = AzureDevOpsGateway(azure_http, project=config.azure.project)
        return await send_reports(
            gateway,
            slack,
            team_name=config.azure.team_name,
            repositories=repositories,
            user_ids=directory.reachable_user_ids(),
        )


def _fail(prefix: str, error: Exception) -> typer.Exit:
    if isinstance(error, AzureApiError):
        typer.echo(f"{prefix}: status={error.status_code} endpoint={error.endpoint}.")
    elif isinstance(error, httpx.HTTPError):
        typer.echo(f"{prefix}: network error ({error}).")
    else:
        typer.echo(f"{prefix}: {error}")
    return typer.Exit(code=1)


@app.command("add-reviewers")
def add_reviewers_command(
    ctx: typer.Context,
    repository: Annotated[str, typer.Option("--repository", "-r", help="Repository name.")],
    request_id: Annotated[str, typer.Option(help="Pull request id.")],
) -> None:
    """Add reviewers to the pull request."""
    config: AppConfig = ctx.obj
    try:
        reviewers = asyncio.run(
            _run_add_reviewers(config, repository=repository, request_id=request_id)
        )
    except (*RUN_ERRORS, httpx.HTTPError) as error:
        raise _fail("Adding reviewers failed", error) from error

    required = sum(1 for reviewer in reviewers if reviewer.is_required)
    typer.echo(
        f"Added {len(reviewers)} reviewer(s) ({required} required) "
        f"to pull request {request_id} in {repository}."
    )


@app.command("send-reports")
def send_reports_command(
    ctx: typer.Context,
    repositories: Annotated[
        list[str] | None,
        typer.Argument(help="Repositories to report on; defaults to the configured list."),
    ] = None,
) -> None:
    """Send reports with not reviewed pull requests to reviewers."""
    config: AppConfig = ctx.obj
    selected = repositories or config.azure.repositories
    if not selected:
        raise typer.BadParameter("No repositories given and none configured.")

    try:
        sent = asyncio.run(_run_send_reports(config, repositories=selected))
    except (*RUN_ERRORS, httpx.HTTPError) as error:
        raise _fail("Sending reports failed", error) from error

    typer.echo(f"Sent {sent} report(s).")


async def _check_azure_access(config: AppConfig, token: str, timeout_seconds: int) -> int:
    async with build_azure_client(
        config.azure.base_url, token, timeout_seconds=timeout_seconds
    ) as azure_http:
        gateway = AzureDevOpsGateway(azure_http, project=config.azure.project)
        members = await gateway.get_team_members(config.azure.team_name)
    return len(members)


@app.command("auth-check")
def auth_check_command(
    ctx: typer.Context,
    timeout_seconds: Annotated[
        int, typer.Option(help="Azure DevOps timeout in seconds for the validation call.")
    ] = 20,
) -> None:
    """Validate token setup and access to the configured Azure DevOps team."""
    config: AppConfig = ctx.obj
    try:
        azure_token, azure_source = get_azure_token_with_source(config.azure.token)
        _slack_token, slack_source = get_slack_token_with_source(config.slack.token)
    except (AzureAuthError, SlackAuthError) as error:
        typer.echo(f"Auth check failed: {error}")
        raise typer.Exit(code=1) from error

    typer.echo(f"Azure DevOps token detected in {azure_source}.")
    typer.echo(f"Slack token detected in {slack_source}.")

    try:
        member_count = asyncio.run(_check_azure_access(config, azure_token, timeout_seconds))
    except (AzureApiError, httpx.HTTPError) as error:
        raise _fail("Auth check failed", error) from error

    typer.echo(f"Team '{config.azure.team_name}' has {member_count} member(s).")
    typer.echo("Token setup is valid.")
