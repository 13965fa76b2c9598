"""
CI server configuration from environment variables.
All settings are optional with safe defaults.
Secrets (GitHub token, chat webhook URL) are never logged.
"""
import os
import shlex
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

PROJECT_ROOT = Path(__file__).parent.parent.parent
DEFAULT_HISTORY_DIR = PROJECT_ROOT / "build_history"

DEFAULT_GITHUB_API_BASE = "https://api.github.com"
DEFAULT_STATUS_CONTEXT = "ci-server"
DEFAULT_COMPILE_COMMAND = "mvn compile"
DEFAULT_TEST_COMMAND = "mvn test"
DEFAULT_PORT = 8001


@dataclass(frozen=True)
class CIConfig:
    """CI server configuration (immutable)."""
    github_token: Optional[str] = None  # Never logged
    discord_webhook_url: Optional[str] = None  # Never logged
    github_api_base: str = DEFAULT_GITHUB_API_BASE
    status_context: str = DEFAULT_STATUS_CONTEXT
    public_base_url: Optional[str] = None
    history_dir: Path = DEFAULT_HISTORY_DIR
    workspace_root: Optional[Path] = None  # None = system temp dir
    git_bin: str = "git"
    compile_command: tuple[str, ...] = field(default_factory=lambda: tuple(shlex.split(DEFAULT_COMPILE_COMMAND)))
    test_command: tuple[str, ...] = field(default_factory=lambda: tuple(shlex.split(DEFAULT_TEST_COMMAND)))
    command_timeout_s: Optional[int] = None  # None = wait forever
    notify_timeout_s: float = 5.0
    log_level: str = "INFO"
    listen_host: str = "0.0.0.0"
    port: int = DEFAULT_PORT

    @property
    def github_status_enabled(self) -> bool:
        """Commit statuses need a token."""
        return bool(self.github_token)

    @property
    def chat_enabled(self) -> bool:
        """Chat notifications need a webhook URL."""
        return bool(self.discord_webhook_url)

    @property
    def builds_url(self) -> Optional[str]:
        """Public link to the build history page, if the server knows its base URL."""
        if not self.public_base_url:
            return None
        return f"{self.public_base_url.rstrip('/')}/builds"


def _optional(name: str) -> Optional[str]:
    value = os.getenv(name, "").strip()
    return value or None


def _command(name: str, default: str) -> tuple[str, ...]:
    parts = shlex.split(os.getenv(name, "") or default)
    if not parts:
        parts = shlex.split(default)
    return tuple(parts)


def get_ci_config() -> CIConfig:
    """Load CI configuration from environment."""
    history_dir = _optional("CI_HISTORY_DIR")
    workspace_root = _optional("CI_WORKSPACE_ROOT")

    command_timeout = int(os.getenv("CI_COMMAND_TIMEOUT_S", "0") or "0")

    return CIConfig(
        github_token=_optional("GITHUB_TOKEN"),
        discord_webhook_url=_optional("DISCORD_WEBHOOK_URL"),
        github_api_base=(_optional("GITHUB_API_BASE") or DEFAULT_GITHUB_API_BASE).rstrip("/"),
        status_context=_optional("CI_STATUS_CONTEXT") or DEFAULT_STATUS_CONTEXT,
        public_base_url=_optional("PUBLIC_BASE_URL"),
        history_dir=Path(history_dir) if history_dir else DEFAULT_HISTORY_DIR,
        workspace_root=Path(workspace_root) if workspace_root else None,
        git_bin=_optional("CI_GIT_BIN") or "git",
        compile_command=_command("CI_COMPILE_COMMAND", DEFAULT_COMPILE_COMMAND),
        test_command=_command("CI_TEST_COMMAND", DEFAULT_TEST_COMMAND),
        command_timeout_s=command_timeout if command_timeout > 0 else None,
        notify_timeout_s=float(os.getenv("CI_NOTIFY_TIMEOUT_S", "5") or "5"),
        log_level=os.getenv("LOG_LEVEL", "INFO"),
        listen_host=os.getenv("LISTEN_HOST", "0.0.0.0"),
        port=int(os.getenv("PORT", str(DEFAULT_PORT))),
    )
