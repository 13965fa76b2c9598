"""
Request context for tracking request_id across async calls.

Webhook deliveries carry their own id (X-GitHub-Delivery); when it looks
sane it becomes the request id, so server logs line up with the delivery
log on the repository's webhook settings page.
"""
import re
import uuid
from contextvars import ContextVar
from typing import Optional

DELIVERY_HEADER = "x-github-delivery"
EVENT_HEADER = "x-github-event"
SAFE_DELIVERY_ID = re.compile(r"^[A-Za-z0-9-]{1,64}$")

request_id_var: ContextVar[str] = ContextVar("request_id", default="")


def get_request_id() -> str:
    """Get the current request ID ("" outside a request)."""
    return request_id_var.get()


def set_request_id(delivery_id: Optional[str] = None) -> str:
    """Use the delivery id if it is well formed, otherwise generate one."""
    if delivery_id and SAFE_DELIVERY_ID.match(delivery_id):
        rid = delivery_id
    else:
        rid = str(uuid.uuid4())
    request_id_var.set(rid)
    return rid
