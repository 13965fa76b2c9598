"""
Webhook front door.

POST /webhook accepts GitHub push events, answers immediately and builds in
the background. Ping events are acknowledged without doing anything else.
Signatures are not verified.
"""
import logging

from fastapi import APIRouter, BackgroundTasks, Request
from fastapi.responses import PlainTextResponse

from ciserver.core.jobs import run_ci_job
from ciserver.core.metrics import metrics
from ciserver.core.payload import MalformedPayloadError, parse_push_event
from ciserver.core.request_context import EVENT_HEADER

logger = logging.getLogger(__name__)

router = APIRouter(tags=["webhook"])

PING_EVENT = "ping"


@router.post("/webhook", response_class=PlainTextResponse)
async def receive_webhook(request: Request, background_tasks: BackgroundTasks) -> PlainTextResponse:
    """
    Receive a push event and dispatch a CI build.

    Returns 200 with an acknowledgement as soon as the build is scheduled,
    whatever its eventual outcome. Returns 400 for malformed payloads; no
    build is started in that case.
    """
    metrics.inc("webhooks_received_total")

    event_type = request.headers.get(EVENT_HEADER, "").strip().lower()
    if event_type == PING_EVENT:
        metrics.inc("pings_total")
        logger.info("webhook_ping")
        return PlainTextResponse("Ping received")

    body = await request.body()
    try:
        event = parse_push_event(body)
    except MalformedPayloadError as e:
        metrics.inc("webhooks_rejected_total")
        logger.warning(f"webhook_rejected event={event_type or '-'} error={e}")
        return PlainTextResponse(f"Invalid payload: {e}", status_code=400)

    logger.info(
        "webhook_accepted",
        extra={"commit_sha": event.commit_sha, "branch": event.branch, "repo": event.repo_full_name},
    )
    background_tasks.add_task(run_ci_job, event)

    return PlainTextResponse(f"Build started for {event.branch} @ {event.commit_sha}")
