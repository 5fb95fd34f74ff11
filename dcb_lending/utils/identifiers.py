"""
Correlation identifiers required by the lending API headers.
"""
import uuid


def generate_request_id() -> str:
    """Fresh UUID4 for x-request-id, channelTxnRefId and contractRefId."""
    return str(uuid.uuid4())


def generate_trace_parent() -> str:
    """
    Build an x-traceparent value: 00-<32 hex trace id>-<16 hex span id>-01.

    The version (00) and flags (01) markers are fixed.
    """
    trace_id = uuid.uuid4().hex
    span_id = uuid.uuid4().hex[:16]
    return f"00-{trace_id}-{span_id}-01"
