"""
Build history storage.
One JSON file per build, written once and never updated.

Filenames embed the commit SHA and a millisecond timestamp. The timestamp
comes from a lock-protected monotonic clock, and files are opened in
exclusive-create mode, so repeated or concurrent builds of the same commit
never overwrite each other. No other locking is needed.

Security:
- Path traversal prevention on reads
- Commit SHA sanitised before it becomes part of a filename
"""
import logging
import re
import threading
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from ciserver.core.config import DEFAULT_HISTORY_DIR
from ciserver.core.result import BuildResult
from ciserver.schemas.ci import HistoryEntry, HistoryRecord

logger = logging.getLogger(__name__)

FILE_PREFIX = "build_"
FILE_SUFFIX = ".json"
UNSAFE_NAME_CHARS = re.compile(r"[^A-Za-z0-9_.-]")
MAX_SHA_IN_NAME = 64
MAX_CREATE_ATTEMPTS = 100


class HistoryNotFoundError(Exception):
    """Requested history file does not exist or is not readable."""
    pass


def sanitize_sha(commit_sha: str) -> str:
    """Make a commit SHA safe to embed in a filename."""
    cleaned = UNSAFE_NAME_CHARS.sub("_", commit_sha)[:MAX_SHA_IN_NAME].strip(".")
    return cleaned or "unknown"


class HistoryStore:
    """Persists build results and serves them back for the history pages."""

    def __init__(self, history_dir: Optional[Path] = None):
        """Initialize history store. The directory is created on first use."""
        self._history_dir = Path(history_dir) if history_dir else DEFAULT_HISTORY_DIR
        self._lock = threading.Lock()
        self._last_ms = 0

    @property
    def history_dir(self) -> Path:
        """Get history directory as Path."""
        return self._history_dir

    @history_dir.setter
    def history_dir(self, value) -> None:
        """Set history directory, converting to Path if needed."""
        self._history_dir = Path(value) if value else DEFAULT_HISTORY_DIR

    def ensure_dir(self) -> Path:
        """Create the history directory if absent. Safe to call repeatedly."""
        self._history_dir.mkdir(parents=True, exist_ok=True)
        return self._history_dir

    def _next_timestamp_ms(self) -> int:
        """Wall-clock milliseconds, strictly increasing within this process."""
        with self._lock:
            now_ms = time.time_ns() // 1_000_000
            self._last_ms = max(now_ms, self._last_ms + 1)
            return self._last_ms

    def file_name_for(self, commit_sha: str, timestamp_ms: int) -> str:
        return f"{FILE_PREFIX}{sanitize_sha(commit_sha)}_{timestamp_ms}{FILE_SUFFIX}"

    def persist(self, result: BuildResult) -> Path:
        """
        Write a snapshot of a build result to a new file.

        Returns:
            Path of the created file
        """
        directory = self.ensure_dir()

        record = HistoryRecord(
            commit_sha=result.commit_sha,
            branch=result.branch_name,
            log=result.build_log,
            date=datetime.now(timezone.utc),
            build_successful=result.build_successful,
            tests_successful=result.tests_successful,
            error_message=result.error_message,
        )
        content = record.model_dump_json(by_alias=True, indent=2)

        for _ in range(MAX_CREATE_ATTEMPTS):
            path = directory / self.file_name_for(result.commit_sha, self._next_timestamp_ms())
            try:
                with path.open("x", encoding="utf-8") as fh:
                    fh.write(content)
            except FileExistsError:
                # Another process wrote the same millisecond; take the next one
                continue
            logger.info(
                f"history_saved file={path.name} size={len(content)}",
                extra={"commit_sha": result.commit_sha, "branch": result.branch_name},
            )
            return path

        raise FileExistsError(f"Could not find a free history file name for {result.commit_sha}")

    def list_builds(self) -> list[HistoryEntry]:
        """Persisted build files, newest first by modification time."""
        directory = self.ensure_dir()

        entries = []
        for item in directory.iterdir():
            if not (item.is_file() and item.suffix == FILE_SUFFIX):
                continue
            stat = item.stat()
            entries.append(HistoryEntry(
                name=item.name,
                size_bytes=stat.st_size,
                modified_at=datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc),
            ))

        # Name breaks ties between files written in the same mtime tick
        entries.sort(key=lambda entry: (entry.modified_at, entry.name), reverse=True)
        return entries

    def _resolve(self, file_name: str) -> Path:
        """Resolve a file name inside the store, rejecting anything else."""
        if (
            not file_name
            or file_name in (".", "..")
            or any(sep in file_name for sep in ("/", "\\", "\x00"))
        ):
            raise HistoryNotFoundError(f"Invalid history file name: {file_name!r}")

        directory = self.ensure_dir().resolve()
        try:
            path = (directory / file_name).resolve()
            found = path.parent == directory and path.is_file()
        except (OSError, ValueError):
            found = False
        if not found:
            raise HistoryNotFoundError(f"History file not found: {file_name}")
        return path

    def read(self, file_name: str) -> str:
        """
        Raw content of one history file.

        Raises:
            HistoryNotFoundError: name is invalid, outside the store, or unreadable
        """
        path = self._resolve(file_name)
        try:
            return path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            raise HistoryNotFoundError(f"History file unreadable: {file_name} ({type(e).__name__})")

    def load(self, file_name: str) -> HistoryRecord:
        """Parsed history record; raises HistoryNotFoundError like read()."""
        content = self.read(file_name)
        try:
            return HistoryRecord.model_validate_json(content)
        except ValueError as e:
            raise HistoryNotFoundError(f"History file is not a build record: {file_name} ({type(e).__name__})")


# Global history store
history_store = HistoryStore()
