"""Tests for CLI commands."""

from __future__ import annotations

import json
from collections.abc import Callable
from pathlib import Path

import httpx
import pytest
from reviewporter import cli
from typer.testing import CliRunner

runner = CliRunner()

Handler = Callable[[httpx.Request], httpx.Response]

CONFIG_TEMPLATE = """
[azure]
base_url = "https://dev.azure.com/acme/"
project = "rocket"
team_name = "Devs"
repositories = ["rocket-api"]
{azure_token}

[slack]
team_id = "T1"
usergroup_id = "S1"
{slack_token}

[reviewers]
required_reviewers_count = 1

[[reviewers.teams]]
name = "Team_1"
"""

PEOPLE = {
    "a": "Ann",
    "b": "Ben",
    "c": "Cleo",
    "d": "Dan",
}


def write_config(tmp_path: Path, *, with_tokens: bool = True) -> Path:
    """Write a CLI config file, optionally carrying both tokens."""
    content = CONFIG_TEMPLATE.format(
        azure_token='token = "azure-pat"' if with_tokens else "",
        slack_token='token = "xoxb-slack"' if with_tokens else "",
    )
    path = tmp_path / "reviewporter.toml"
    path.write_text(content, encoding="utf-8")
    return path


def members_payload(*ids: str) -> dict[str, object]:
    return {"value": [{"identity": {"id": key, "displayName": PEOPLE[key]}} for key in ids]}


def make_azure_handler(posted: list[object], *, pull_request_status: int = 200) -> Handler:
    def handler(request: httpx.Request) -> httpx.Response:
        path = request.url.path
        if path == "/acme/_apis/projects/rocket/teams/Devs/members":
            return httpx.Response(status_code=200, json=members_payload("a", "b", "c", "d"))
        if path == "/acme/_apis/projects/rocket/teams/Team_1/members":
            return httpx.Response(status_code=200, json=members_payload("a", "b"))
        if path == "/acme/_apis/projects/rocket/teams":
            return httpx.Response(status_code=200, json={"value": [{"name": "QA"}]})
        if path == "/acme/rocket/_apis/git/repositories/rocket-api/pullrequests/42":
            if pull_request_status != 200:
                return httpx.Response(status_code=pull_request_status)
            return httpx.Response(
                status_code=200,
                json={
                    "pullRequestId": 42,
                    "title": "Add rotation",
                    "url": "https://dev.azure.com/acme/_apis/git/pullRequests/42",
                    "status": "active",
                    "creationDate": "2024-03-05T10:15:30Z",
                    "createdBy": {"id": "a", "displayName": "Ann"},
                    "reviewers": [],
                },
            )
        if path.endswith("/pullrequests/42/reviewers") and request.method == "POST":
            posted.append(json.loads(request.content))
            return httpx.Response(status_code=200, json={"value": []})
        raise AssertionError(f"Unexpected Azure request {request.method} {path}")

    return handler


def slack_handler(request: httpx.Request) -> httpx.Response:
    if request.url.path == "/api/usergroups.users.list":
        return httpx.Response(status_code=200, json={"ok": True, "users": ["U2", "U3", "U4"]})
    if request.url.path == "/api/users.profile.get":
        profiles = {
            "U2": {"real_name": "Ben", "status_text": ""},
            "U3": {"real_name": "Cleo", "status_text": "Vacationing"},
            "U4": {"real_name": "Dan", "status_text": ""},
        }
        return httpx.Response(
            status_code=200,
            json={"ok": True, "profile": profiles[request.url.params["user"]]},
        )
    raise AssertionError(f"Unexpected Slack request {request.url.path}")


def patch_clients(monkeypatch: pytest.MonkeyPatch, azure_handler: Handler) -> None:
    monkeypatch.setattr(
        cli,
        "build_azure_client",
        lambda base_url, token, timeout_seconds=20: httpx.AsyncClient(
            base_url=base_url, transport=httpx.MockTransport(azure_handler)
        ),
    )
    monkeypatch.setattr(
        cli,
        "build_slack_client",
        lambda token, timeout_seconds=20: httpx.AsyncClient(
            base_url="https://slack.com/api/", transport=httpx.MockTransport(slack_handler)
        ),
    )


@pytest.mark.unit
def test_add_reviewers_submits_batch(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    posted: list[object] = []
    patch_clients(monkeypatch, make_azure_handler(posted))

    result = runner.invoke(
        cli.app,
        [
            "--config",
            str(write_config(tmp_path)),
            "add-reviewers",
            "--repository",
            "rocket-api",
            "--request-id",
            "42",
        ],
    )

    assert result.exit_code == 0, result.output
    assert "Added 3 reviewer(s) (1 required) to pull request 42 in rocket-api." in result.output
    assert posted == [
        [
            {"id": "b", "isRequired": True},
            {"id": "d", "isRequired": False},
            {"id": "c", "isRequired": False},
        ]
    ]


@pytest.mark.unit
def test_add_reviewers_reports_api_failure(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path
) -> None:
    posted: list[object] = []
    patch_clients(monkeypatch, make_azure_handler(posted, pull_request_status=404))

    result = runner.invoke(
        cli.app,
        [
            "--config",
            str(write_config(tmp_path)),
            "add-reviewers",
            "--repository",
            "rocket-api",
            "--request-id",
            "42",
        ],
    )

    assert result.exit_code == 1
    assert "Adding reviewers failed: status=404" in result.output
    assert posted == []


@pytest.mark.unit
def test_add_reviewers_rejects_invalid_request_id(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path
) -> None:
    patch_clients(monkeypatch, make_azure_handler([]))

    result = runner.invoke(
        cli.app,
        [
            "--config",
            str(write_config(tmp_path)),
            "add-reviewers",
            "--repository",
            "rocket-api",
            "--request-id",
            "latest",
        ],
    )

    assert result.exit_code == 1
    assert "Invalid pull request id 'latest'" in result.output


@pytest.mark.unit
def test_send_reports_with_unknown_team_sends_nothing(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path
) -> None:
    patch_clients(monkeypatch, make_azure_handler([]))

    result = runner.invoke(cli.app, ["--config", str(write_config(tmp_path)), "send-reports"])

    assert result.exit_code == 0, result.output
    assert "Sent 0 report(s)." in result.output


@pytest.mark.unit
def test_missing_config_file_exits(tmp_path: Path) -> None:
    result = runner.invoke(
        cli.app, ["--config", str(tmp_path / "nope.toml"), "send-reports"]
    )

    assert result.exit_code == 1
    assert "Configuration error" in result.output


@pytest.mark.unit
def test_auth_check_fails_when_token_missing(tmp_path: Path, clean_token_env: None) -> None:
    result = runner.invoke(
        cli.app, ["--config", str(write_config(tmp_path, with_tokens=False)), "auth-check"]
    )

    assert result.exit_code == 1
    assert "Auth check failed: Missing Azure DevOps token" in result.output


@pytest.mark.unit
def test_auth_check_succeeds(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    patch_clients(monkeypatch, make_azure_handler([]))

    result = runner.invoke(cli.app, ["--config", str(write_config(tmp_path)), "auth-check"])

    assert result.exit_code == 0, result.output
    assert "Azure DevOps token detected in config file." in result.output
    assert "Slack token detected in config file." in result.output
    assert "Team 'Devs' has 4 member(s)." in result.output
    assert "Token setup is valid." in result.output
