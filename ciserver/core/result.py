"""
Build result model.

A BuildResult is created when a build starts with only the commit and
branch set, is filled in by the build orchestrator as the pipeline runs,
and is read-only for notifiers and the history store afterwards.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional

# Error messages recorded for unexpected failures start with this marker.
# The commit-status mapping uses it to tell "error" from "failure".
BUILD_EXCEPTION_PREFIX = "Build exception: "


class BuildStage(str, Enum):
    """Pipeline stage a build has reached (or stopped in)."""
    START = "start"
    WORKSPACE_CREATED = "workspace_created"
    CLONED = "cloned"
    COMPILED = "compiled"
    TESTED = "tested"
    DONE = "done"
    CLONE_FAILED = "clone_failed"
    COMPILE_FAILED = "compile_failed"
    ERRORED = "errored"


@dataclass
class BuildResult:
    """Outcome and log of one CI build."""
    commit_sha: str
    branch_name: str
    build_successful: bool = False
    tests_successful: bool = False
    error_message: Optional[str] = None
    build_log: str = ""
    stage: BuildStage = BuildStage.START

    @property
    def ci_successful(self) -> bool:
        """True only when both compilation and tests passed."""
        return self.build_successful and self.tests_successful

    @property
    def is_build_exception(self) -> bool:
        """True when the pipeline was aborted by an unexpected exception."""
        return bool(self.error_message) and self.error_message.startswith(BUILD_EXCEPTION_PREFIX)

    def append_build_log(self, text: str) -> None:
        """
        Append step output to the build log.

        An empty log is replaced; otherwise the text goes after a newline
        separator, so appending "A" then "B" yields "A\\nB".
        """
        if not self.build_log:
            self.build_log = text
        else:
            self.build_log += "\n" + text

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary format (for logs and API responses)."""
        return {
            "commit_sha": self.commit_sha,
            "branch": self.branch_name,
            "build_successful": self.build_successful,
            "tests_successful": self.tests_successful,
            "ci_successful": self.ci_successful,
            "error_message": self.error_message,
            "stage": self.stage.value,
        }
