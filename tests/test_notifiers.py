"""
Tests for status and chat notifiers.
No real HTTP requests: httpx.AsyncClient is mocked.
"""
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

from ciserver.core.config import CIConfig
from ciserver.core.notifiers import (
    CHAT_CONTENT_LIMIT,
    DisabledNotifier,
    DiscordNotifier,
    GitHubStatusNotifier,
    build_description,
    build_notifiers,
    format_chat_message,
    map_result_to_state,
)
from ciserver.core.result import BuildResult
from ciserver.schemas.ci import CommitState, PushEvent


def make_event():
    return PushEvent(
        clone_url="https://github.com/owner/repo.git",
        branch="main",
        commit_sha="heylol123",
        repo_full_name="owner/repo",
    )


def mock_async_client(mock_client, status_code=201, side_effect=None):
    """Wire a patched httpx.AsyncClient class to return a mock instance."""
    mock_response = MagicMock()
    mock_response.status_code = status_code

    mock_instance = AsyncMock()
    if side_effect is not None:
        mock_instance.post = AsyncMock(side_effect=side_effect)
    else:
        mock_instance.post = AsyncMock(return_value=mock_response)
    mock_instance.__aenter__ = AsyncMock(return_value=mock_instance)
    mock_instance.__aexit__ = AsyncMock(return_value=None)
    mock_client.return_value = mock_instance
    return mock_instance


# =============================================================================
# Result mapping
# =============================================================================

class TestMapResultToState:

    def test_success(self):
        result = BuildResult("heylol123", "main", build_successful=True, tests_successful=True)
        assert map_result_to_state(result) == CommitState.SUCCESS

    def test_build_failure_is_failure(self):
        result = BuildResult("heylol123", "main", error_message="Compilation failed:\nx")
        assert map_result_to_state(result) == CommitState.FAILURE

    def test_test_failure_is_failure(self):
        result = BuildResult(
            "heylol123", "main", build_successful=True, error_message="Tests failed:\nx"
        )
        assert map_result_to_state(result) == CommitState.FAILURE

    def test_clone_failure_is_failure(self):
        result = BuildResult("heylol123", "main", error_message="Git clone failed with exit code: 128")
        assert map_result_to_state(result) == CommitState.FAILURE

    def test_exception_is_error(self):
        result = BuildResult("heylol123", "main", error_message="Build exception: something went wrong")
        assert map_result_to_state(result) == CommitState.ERROR


class TestBuildDescription:

    def test_success(self):
        result = BuildResult("sha", "main", build_successful=True, tests_successful=True)
        assert build_description(result) == "Build and tests passed"

    def test_compile_failure(self):
        assert build_description(BuildResult("sha", "main")) == "Compilation failed"

    def test_test_failure(self):
        result = BuildResult("sha", "main", build_successful=True)
        assert build_description(result) == "Tests failed"


class TestChatMessage:

    def test_template(self):
        content = format_chat_message("SUCCESS", "main", "Build and tests passed")
        assert content == (
            "**CI Build Update**\n**Status:** SUCCESS\n**Branch:** main\n"
            "**Message:** Build and tests passed"
        )

    def test_long_message_truncated(self):
        content = format_chat_message("FAILURE", "main", "x" * 5000)
        assert len(content) <= CHAT_CONTENT_LIMIT
        assert content.endswith("(truncated)")
        assert "**Branch:** main" in content


# =============================================================================
# GitHub status notifier
# =============================================================================

class TestGitHubStatusNotifier:

    def test_status_url(self):
        notifier = GitHubStatusNotifier("token")
        assert notifier.status_url("owner/repo", "abc") == "https://api.github.com/repos/owner/repo/statuses/abc"

    @pytest.mark.asyncio
    async def test_sends_authenticated_status(self):
        notifier = GitHubStatusNotifier("test-token", context="ci-server", target_url="http://ci/builds")

        with patch("httpx.AsyncClient") as mock_client:
            instance = mock_async_client(mock_client)
            code = await notifier.send_status("owner/repo", "abc", CommitState.SUCCESS, "Build and tests passed")

        assert code == 201
        headers = mock_client.call_args.kwargs["headers"]
        assert headers["Authorization"] == "Bearer test-token"
        url = instance.post.call_args.args[0]
        body = instance.post.call_args.kwargs["json"]
        assert url.endswith("/repos/owner/repo/statuses/abc")
        assert body == {
            "state": "success",
            "description": "Build and tests passed",
            "context": "ci-server",
            "target_url": "http://ci/builds",
        }

    @pytest.mark.asyncio
    async def test_pending_status(self):
        notifier = GitHubStatusNotifier("test-token")

        with patch("httpx.AsyncClient") as mock_client:
            instance = mock_async_client(mock_client)
            await notifier.notify_pending(make_event())

        body = instance.post.call_args.kwargs["json"]
        assert body["state"] == "pending"
        assert "target_url" not in body

    @pytest.mark.asyncio
    async def test_result_status(self):
        notifier = GitHubStatusNotifier("test-token")
        result = BuildResult("heylol123", "main", build_successful=True, error_message="Tests failed:\nx")

        with patch("httpx.AsyncClient") as mock_client:
            instance = mock_async_client(mock_client)
            await notifier.notify_result(make_event(), result)

        body = instance.post.call_args.kwargs["json"]
        assert body["state"] == "failure"
        assert body["description"] == "Tests failed"

    @pytest.mark.asyncio
    async def test_non_2xx_is_swallowed(self):
        notifier = GitHubStatusNotifier("bad-token")

        with patch("httpx.AsyncClient") as mock_client:
            mock_async_client(mock_client, status_code=401)
            code = await notifier.send_status("owner/repo", "abc", CommitState.PENDING, "x")

        assert code is None

    @pytest.mark.asyncio
    async def test_transport_error_is_swallowed(self):
        notifier = GitHubStatusNotifier("token")

        with patch("httpx.AsyncClient") as mock_client:
            mock_async_client(mock_client, side_effect=httpx.ConnectError("refused"))
            code = await notifier.send_status("owner/repo", "abc", CommitState.PENDING, "x")

        assert code is None

    @pytest.mark.asyncio
    async def test_timeout_is_swallowed(self):
        notifier = GitHubStatusNotifier("token")

        with patch("httpx.AsyncClient") as mock_client:
            mock_async_client(mock_client, side_effect=httpx.TimeoutException("timeout"))
            await notifier.notify_result(make_event(), BuildResult("heylol123", "main"))


# =============================================================================
# Discord notifier
# =============================================================================

class TestDiscordNotifier:

    @pytest.mark.asyncio
    async def test_posts_content(self):
        notifier = DiscordNotifier("https://discord.example/webhook")
        result = BuildResult("heylol123", "main", error_message="Compilation failed:\nboom")

        with patch("httpx.AsyncClient") as mock_client:
            instance = mock_async_client(mock_client, status_code=204)
            await notifier.notify_result(make_event(), result)

        assert instance.post.call_args.args[0] == "https://discord.example/webhook"
        content = instance.post.call_args.kwargs["json"]["content"]
        assert "**Status:** FAILURE" in content
        assert "**Branch:** main" in content
        assert "Compilation failed" in content
        assert "boom" in content

    @pytest.mark.asyncio
    async def test_pending_sends_nothing(self):
        notifier = DiscordNotifier("https://discord.example/webhook")

        with patch("httpx.AsyncClient") as mock_client:
            await notifier.notify_pending(make_event())

        mock_client.assert_not_called()

    @pytest.mark.asyncio
    async def test_failure_is_swallowed(self):
        notifier = DiscordNotifier("https://discord.example/webhook")

        with patch("httpx.AsyncClient") as mock_client:
            mock_async_client(mock_client, status_code=500)
            code = await notifier.send("SUCCESS", "main", "ok")

        assert code is None


# =============================================================================
# Selection
# =============================================================================

class TestBuildNotifiers:

    def test_missing_credentials_disable_both(self):
        notifiers = build_notifiers(CIConfig(history_dir=Path("unused")))

        assert len(notifiers) == 2
        assert all(isinstance(n, DisabledNotifier) for n in notifiers)
        assert not any(n.enabled for n in notifiers)

    def test_credentials_enable_both(self):
        config = CIConfig(
            github_token="token",
            discord_webhook_url="https://discord.example/webhook",
            public_base_url="https://ci.example.com/",
        )
        github, discord = build_notifiers(config)

        assert isinstance(github, GitHubStatusNotifier)
        assert github.target_url == "https://ci.example.com/builds"
        assert isinstance(discord, DiscordNotifier)

    @pytest.mark.asyncio
    async def test_disabled_notifier_is_noop(self):
        notifier = DisabledNotifier("github_status", "GITHUB_TOKEN not set")

        with patch("httpx.AsyncClient") as mock_client:
            await notifier.notify_pending(make_event())
            await notifier.notify_result(make_event(), BuildResult("sha", "main"))

        mock_client.assert_not_called()
