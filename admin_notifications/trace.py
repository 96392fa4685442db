# trace.py
import uuid


def get_or_create_trace_id(existing_trace_id=None):
    """Return the incoming trace id, or mint a new one for this request."""
    if existing_trace_id:
        return existing_trace_id
    return str(uuid.uuid4())


def new_queue_id() -> str:
    """Local token for a queued notification; never reused as a record id."""
    return uuid.uuid4().hex
