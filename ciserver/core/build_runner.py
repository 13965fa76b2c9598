"""
Build Runner - clone, compile and test one commit in an isolated workspace.

Pipeline (strictly sequential, no branching back):
    START -> WORKSPACE_CREATED -> CLONED -> COMPILED -> TESTED -> DONE

Failure exits:
- CLONE_FAILED: compile and test are skipped
- COMPILE_FAILED: test is skipped, tests stay unsuccessful
- ERRORED: any unexpected exception, recorded with BUILD_EXCEPTION_PREFIX

A failing test step never unsets build_successful. Step failures are
recorded on the BuildResult and never raised past run_build.

Security:
- No shell=True anywhere (see process_runner)
- Fresh workspace per build, removed when the build ends
"""
import logging
import shutil
import tempfile
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional, Sequence

from ciserver.core.config import CIConfig, DEFAULT_COMPILE_COMMAND, DEFAULT_TEST_COMMAND
from ciserver.core.process_runner import ProcessResult, ProcessRunner, run_process
from ciserver.core.result import BUILD_EXCEPTION_PREFIX, BuildResult, BuildStage

logger = logging.getLogger(__name__)

WORKSPACE_PREFIX = "ci-build-"

CLONE_FAILED_MESSAGE = "Git clone failed with exit code: {exit_code}"
COMPILE_FAILED_PREFIX = "Compilation failed:\n"
TESTS_FAILED_PREFIX = "Tests failed:\n"


# =============================================================================
# Workspace Management
# =============================================================================

@contextmanager
def build_workspace(root: Optional[Path] = None) -> Iterator[Path]:
    """
    Create an empty, uniquely named workspace directory and remove it on exit.

    Concurrent builds of the same commit get separate directories.
    """
    if root is not None:
        root.mkdir(parents=True, exist_ok=True)
    workspace = Path(tempfile.mkdtemp(prefix=WORKSPACE_PREFIX, dir=str(root) if root else None))
    logger.info(f"workspace_created path={workspace}")
    try:
        yield workspace
    finally:
        shutil.rmtree(workspace, ignore_errors=True)
        logger.info(f"workspace_cleaned path={workspace}")


# =============================================================================
# Orchestrator
# =============================================================================

class BuildOrchestrator:
    """Runs the clone/compile/test pipeline and fills in a BuildResult."""

    def __init__(
        self,
        runner: Optional[ProcessRunner] = None,
        git_bin: str = "git",
        compile_command: Sequence[str] = tuple(DEFAULT_COMPILE_COMMAND.split()),
        test_command: Sequence[str] = tuple(DEFAULT_TEST_COMMAND.split()),
        workspace_root: Optional[Path] = None,
        command_timeout: Optional[int] = None,
    ):
        self._runner = runner
        self.git_bin = git_bin
        self.compile_command = list(compile_command)
        self.test_command = list(test_command)
        self.workspace_root = workspace_root
        self.command_timeout = command_timeout

    @classmethod
    def from_config(cls, config: CIConfig, runner: Optional[ProcessRunner] = None) -> "BuildOrchestrator":
        """Build an orchestrator from the server configuration."""
        return cls(
            runner=runner,
            git_bin=config.git_bin,
            compile_command=config.compile_command,
            test_command=config.test_command,
            workspace_root=config.workspace_root,
            command_timeout=config.command_timeout_s,
        )

    def _run(self, cwd: Path, command: Sequence[str]) -> ProcessResult:
        if self._runner is not None:
            return self._runner(cwd, command)
        return run_process(cwd, command, timeout=self.command_timeout)

    def clone_command(self, clone_url: str, branch: str) -> list[str]:
        """Clone only the pushed branch, into the workspace itself."""
        return [self.git_bin, "clone", "-b", branch, "--", clone_url, "."]

    def run_build(self, clone_url: str, branch: str, commit_sha: str) -> BuildResult:
        """
        Run the full pipeline for one pushed commit.

        Args:
            clone_url: HTTPS clone URL of the repository
            branch: Branch to check out
            commit_sha: Commit being built (identifies the result)

        Returns:
            BuildResult describing the outcome. Never raises.
        """
        result = BuildResult(commit_sha=commit_sha, branch_name=branch)
        log_extra = {"commit_sha": commit_sha, "branch": branch}

        try:
            with build_workspace(self.workspace_root) as workspace:
                result.stage = BuildStage.WORKSPACE_CREATED
                self._execute(result, workspace, clone_url, branch)

        except Exception as e:
            logger.exception("build_exception", extra=log_extra)
            result.build_successful = False
            result.error_message = f"{BUILD_EXCEPTION_PREFIX}{str(e) or type(e).__name__}"
            result.stage = BuildStage.ERRORED

        logger.info(
            f"build_finished stage={result.stage.value} "
            f"build_ok={result.build_successful} tests_ok={result.tests_successful}",
            extra=log_extra,
        )
        return result

    def _execute(self, result: BuildResult, workspace: Path, clone_url: str, branch: str) -> None:
        # Clone output is not part of the build log
        clone = self._run(workspace, self.clone_command(clone_url, branch))
        if clone.exit_code != 0:
            result.build_successful = False
            result.error_message = CLONE_FAILED_MESSAGE.format(exit_code=clone.exit_code)
            result.stage = BuildStage.CLONE_FAILED
            return
        result.stage = BuildStage.CLONED

        compiled = self._run(workspace, self.compile_command)
        result.append_build_log(compiled.output)
        if compiled.exit_code != 0:
            result.build_successful = False
            result.error_message = COMPILE_FAILED_PREFIX + compiled.output
            result.stage = BuildStage.COMPILE_FAILED
            return
        result.build_successful = True
        result.stage = BuildStage.COMPILED

        tested = self._run(workspace, self.test_command)
        result.append_build_log(tested.output)
        result.stage = BuildStage.TESTED
        if tested.exit_code == 0:
            result.tests_successful = True
        else:
            result.tests_successful = False
            result.error_message = TESTS_FAILED_PREFIX + tested.output

        result.stage = BuildStage.DONE
