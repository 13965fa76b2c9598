"""
Status notifiers - best-effort reporting of build outcomes.

- GitHubStatusNotifier: commit status via the GitHub Statuses API
  (POST /repos/{owner}/{repo}/statuses/{sha}), bearer-token authenticated
- DiscordNotifier: formatted summary posted to a chat webhook
- DisabledNotifier: stands in when a credential is missing

Notifiers never raise. Transport errors and non-2xx responses are logged
and counted, and the build outcome is unaffected.
"""
import logging
from typing import Any, Optional

import httpx

from ciserver.core.config import CIConfig
from ciserver.core.metrics import metrics
from ciserver.core.result import BuildResult
from ciserver.schemas.ci import CommitState, PushEvent

logger = logging.getLogger(__name__)

USER_AGENT = "ci-server/1.0"
GITHUB_API_VERSION = "2022-11-28"

PENDING_DESCRIPTION = "CI build in progress..."

# Discord rejects message content above this length
CHAT_CONTENT_LIMIT = 2000
CHAT_TEMPLATE = "**CI Build Update**\n**Status:** {status}\n**Branch:** {branch}\n**Message:** {message}"


class NotificationError(Exception):
    """A notification could not be delivered."""
    pass


# =============================================================================
# Result mapping
# =============================================================================

def map_result_to_state(result: BuildResult) -> CommitState:
    """Map a finished build to success, error (unexpected exception) or failure."""
    if result.ci_successful:
        return CommitState.SUCCESS
    if result.is_build_exception:
        return CommitState.ERROR
    return CommitState.FAILURE


def build_description(result: BuildResult) -> str:
    """Short human-readable description for the commit status."""
    if result.ci_successful:
        return "Build and tests passed"
    if not result.build_successful:
        return "Compilation failed"
    if not result.tests_successful:
        return "Tests failed"
    return "CI completed with issues"


def format_chat_message(status: str, branch: str, message: str) -> str:
    """Fill the chat template, truncating the message to fit the content limit."""
    frame = CHAT_TEMPLATE.format(status=status, branch=branch, message="")
    room = CHAT_CONTENT_LIMIT - len(frame)
    if len(message) > room:
        marker = "\n... (truncated)"
        message = message[:max(room - len(marker), 0)] + marker
    return CHAT_TEMPLATE.format(status=status, branch=branch, message=message)


# =============================================================================
# Notifiers
# =============================================================================

class Notifier:
    """Interface shared by all notifiers. Default implementation does nothing."""

    name = "notifier"
    enabled = True

    async def notify_pending(self, event: PushEvent) -> None:
        """Called when a build is dispatched, before any outcome is known."""
        return None

    async def notify_result(self, event: PushEvent, result: BuildResult) -> None:
        """Called once with the finished build result."""
        return None

    async def _post(self, url: str, json_body: dict[str, Any], headers: dict[str, str], timeout: float) -> int:
        """POST JSON and return the status code; raises NotificationError on any failure."""
        try:
            async with httpx.AsyncClient(timeout=timeout, headers=headers) as client:
                response = await client.post(url, json=json_body)
        except httpx.TimeoutException:
            raise NotificationError(f"{self.name} request timed out")
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            raise NotificationError(f"{self.name} request failed: {type(e).__name__}")

        if not 200 <= response.status_code < 300:
            raise NotificationError(f"{self.name} returned HTTP {response.status_code}")
        return response.status_code


class DisabledNotifier(Notifier):
    """Used when a notifier has no credential; logs once at construction."""

    enabled = False

    def __init__(self, name: str, reason: str):
        self.name = name
        self.reason = reason
        logger.info(f"notifier_disabled notifier={name} reason={reason}")


class GitHubStatusNotifier(Notifier):
    """Posts commit statuses to the GitHub Statuses API."""

    name = "github_status"

    def __init__(
        self,
        token: str,
        api_base: str = "https://api.github.com",
        context: str = "ci-server",
        target_url: Optional[str] = None,
        timeout: float = 5.0,
    ):
        self._token = token
        self.api_base = api_base.rstrip("/")
        self.context = context
        self.target_url = target_url
        self.timeout = timeout

    def status_url(self, repo_full_name: str, commit_sha: str) -> str:
        return f"{self.api_base}/repos/{repo_full_name}/statuses/{commit_sha}"

    def _headers(self) -> dict[str, str]:
        return {
            "User-Agent": USER_AGENT,
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": GITHUB_API_VERSION,
            "Authorization": f"Bearer {self._token}",
        }

    async def send_status(
        self,
        repo_full_name: str,
        commit_sha: str,
        state: CommitState,
        description: str,
    ) -> Optional[int]:
        """
        Send one status update.

        Returns:
            HTTP status code, or None if the update could not be delivered
        """
        body: dict[str, Any] = {
            "state": state.value,
            "description": description,
            "context": self.context,
        }
        if self.target_url:
            body["target_url"] = self.target_url

        log_extra = {"commit_sha": commit_sha, "repo": repo_full_name, "state": state.value}
        try:
            code = await self._post(
                self.status_url(repo_full_name, commit_sha), body, self._headers(), self.timeout
            )
        except NotificationError as e:
            metrics.inc("notifications_failed_total")
            logger.warning(f"status_notify_failed error={e}", extra=log_extra)
            return None

        logger.info(f"status_notified status_code={code}", extra=log_extra)
        return code

    async def notify_pending(self, event: PushEvent) -> None:
        await self.send_status(
            event.repo_full_name, event.commit_sha, CommitState.PENDING, PENDING_DESCRIPTION
        )

    async def notify_result(self, event: PushEvent, result: BuildResult) -> None:
        await self.send_status(
            event.repo_full_name,
            result.commit_sha,
            map_result_to_state(result),
            build_description(result),
        )


class DiscordNotifier(Notifier):
    """Posts a build summary to a Discord-compatible chat webhook."""

    name = "discord"

    def __init__(self, webhook_url: str, timeout: float = 5.0):
        self._webhook_url = webhook_url
        self.timeout = timeout

    async def send(self, status: str, branch: str, message: str) -> Optional[int]:
        """Post one formatted message. Returns HTTP status code or None on failure."""
        body = {"content": format_chat_message(status, branch, message)}
        headers = {"User-Agent": USER_AGENT}
        try:
            code = await self._post(self._webhook_url, body, headers, self.timeout)
        except NotificationError as e:
            metrics.inc("notifications_failed_total")
            logger.warning(f"chat_notify_failed error={e}", extra={"branch": branch})
            return None

        logger.info(f"chat_notified status_code={code}", extra={"branch": branch})
        return code

    async def notify_result(self, event: PushEvent, result: BuildResult) -> None:
        message = build_description(result)
        if result.error_message:
            message = f"{message}\n{result.error_message}"
        await self.send(map_result_to_state(result).value.upper(), result.branch_name, message)


def build_notifiers(config: CIConfig) -> list[Notifier]:
    """Select enabled or disabled notifiers based on which credentials are present."""
    notifiers: list[Notifier] = []

    if config.github_status_enabled:
        notifiers.append(GitHubStatusNotifier(
            token=config.github_token,
            api_base=config.github_api_base,
            context=config.status_context,
            target_url=config.builds_url,
            timeout=config.notify_timeout_s,
        ))
    else:
        notifiers.append(DisabledNotifier("github_status", "GITHUB_TOKEN not set"))

    if config.chat_enabled:
        notifiers.append(DiscordNotifier(config.discord_webhook_url, timeout=config.notify_timeout_s))
    else:
        notifiers.append(DisabledNotifier("discord", "DISCORD_WEBHOOK_URL not set"))

    return notifiers
