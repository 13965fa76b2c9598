"""
Push event payload parsing.

Turns the raw webhook body into a PushEvent. Anything that is not JSON, or
that lacks ref, after, repository.clone_url or repository.full_name, is
rejected with MalformedPayloadError so the caller can answer 400 without
starting a build.
"""
import json
from typing import Union

from pydantic import ValidationError

from ciserver.schemas.ci import PushEvent, PushPayload

BRANCH_REF_PREFIX = "refs/heads/"


class MalformedPayloadError(Exception):
    """Webhook body is not a usable push event."""
    pass


def parse_branch_from_ref(ref: str) -> str:
    """
    Extract the short branch name from a ref.

    "refs/heads/feature/foo" becomes "feature/foo". Refs without the
    prefix (tags, bare names) are returned unchanged.
    """
    if ref.startswith(BRANCH_REF_PREFIX):
        return ref[len(BRANCH_REF_PREFIX):]
    return ref


def _describe_validation_error(error: ValidationError) -> str:
    problems = []
    for item in error.errors():
        location = ".".join(str(part) for part in item.get("loc", ())) or "body"
        problems.append(f"{location}: {item.get('msg', 'invalid')}")
    return "; ".join(problems)


def parse_push_event(raw_body: Union[str, bytes]) -> PushEvent:
    """
    Parse a push event webhook body.

    Raises:
        MalformedPayloadError: body is not JSON, or a required field is
            missing, empty or of the wrong type.
    """
    if isinstance(raw_body, bytes):
        try:
            raw_body = raw_body.decode("utf-8")
        except UnicodeDecodeError:
            raise MalformedPayloadError("Body is not valid UTF-8")

    try:
        data = json.loads(raw_body)
    except json.JSONDecodeError as e:
        raise MalformedPayloadError(f"Body is not valid JSON: {e.msg}")

    if not isinstance(data, dict):
        raise MalformedPayloadError("Body must be a JSON object")

    try:
        payload = PushPayload.model_validate(data)
    except ValidationError as e:
        raise MalformedPayloadError(
            f"Missing or invalid push event fields: {_describe_validation_error(e)}"
        )

    branch = parse_branch_from_ref(payload.ref)
    if not branch:
        raise MalformedPayloadError(f"Ref does not name a branch: {payload.ref}")

    return PushEvent(
        clone_url=payload.repository.clone_url,
        branch=branch,
        commit_sha=payload.after,
        repo_full_name=payload.repository.full_name,
    )
