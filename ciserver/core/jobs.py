"""
Background CI job: one per accepted push.

pending status -> build (worker thread) -> history -> final notifications

Jobs share nothing but the append-only history store. There is no queue, no
admission control and no deduplication: two pushes of the same commit run
two independent pipelines, and their notifications may interleave.
Logs only commit, branch, repo and outcome (never tokens or payloads).
"""
import logging
from typing import Optional

from starlette.concurrency import run_in_threadpool

from ciserver.core.build_runner import BuildOrchestrator
from ciserver.core.config import CIConfig, get_ci_config
from ciserver.core.history_store import HistoryStore, history_store
from ciserver.core.metrics import metrics
from ciserver.core.notifiers import Notifier, build_notifiers, map_result_to_state
from ciserver.core.result import BuildResult
from ciserver.schemas.ci import CommitState, PushEvent

logger = logging.getLogger(__name__)


def _record_outcome(result: BuildResult) -> None:
    state = map_result_to_state(result)
    if state == CommitState.SUCCESS:
        metrics.inc("builds_succeeded_total")
    elif state == CommitState.ERROR:
        metrics.inc("builds_errored_total")
    else:
        metrics.inc("builds_failed_total")


async def _notify_all(notifiers: list[Notifier], method: str, *args) -> None:
    """Call one notifier method on every notifier; one failing never stops the others."""
    for notifier in notifiers:
        if not notifier.enabled:
            continue
        try:
            await getattr(notifier, method)(*args)
        except Exception as e:
            metrics.inc("notifications_failed_total")
            logger.error(f"notifier_crashed notifier={notifier.name} error_type={type(e).__name__}")


async def run_ci_job(
    event: PushEvent,
    config: Optional[CIConfig] = None,
    orchestrator: Optional[BuildOrchestrator] = None,
    notifiers: Optional[list[Notifier]] = None,
    store: Optional[HistoryStore] = None,
) -> Optional[BuildResult]:
    """
    Background task for one push event.

    The blocking pipeline runs in the threadpool so the event loop keeps
    serving webhooks while builds are in progress. Never raises.
    """
    log_extra = {"commit_sha": event.commit_sha, "branch": event.branch, "repo": event.repo_full_name}

    try:
        config = config or get_ci_config()
        orchestrator = orchestrator or BuildOrchestrator.from_config(config)
        notifiers = notifiers if notifiers is not None else build_notifiers(config)
        store = store or history_store
    except Exception as e:
        logger.error(f"ci_job_setup_failed error_type={type(e).__name__}", extra=log_extra)
        return None

    metrics.inc("builds_started_total")
    logger.info("ci_job_started", extra=log_extra)

    await _notify_all(notifiers, "notify_pending", event)

    result = await run_in_threadpool(
        orchestrator.run_build, event.clone_url, event.branch, event.commit_sha
    )
    _record_outcome(result)

    logger.info(f"ci_job_finished success={result.ci_successful}", extra=log_extra)
    if result.build_log.strip():
        logger.info(f"build_log\n{result.build_log}", extra=log_extra)
    if result.error_message:
        logger.warning(f"build_error\n{result.error_message}", extra=log_extra)

    try:
        store.persist(result)
    except Exception as e:
        metrics.inc("history_write_failures_total")
        logger.error(f"history_save_failed error_type={type(e).__name__}", extra=log_extra)

    await _notify_all(notifiers, "notify_result", event, result)
    return result
