"""
Envelope construction, encoding and decoding.

Wire shape is a UTF-8 JSON object with exactly the fields
sessionId, messageId, content, timestamp, type (and correlationId on
responses that carry one).
"""

import json
import uuid
from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import ValidationError

from privacyai.errors import EnvelopeError
from privacyai.models.envelope import Envelope, MessageKind


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def new_message_id() -> str:
    return str(uuid.uuid4())


def build_request(session_id: str, content: str, message_id: Optional[str] = None) -> Envelope:
    """Build a request envelope for a chat turn."""
    return Envelope(
        session_id=session_id,
        message_id=message_id or new_message_id(),
        content=content,
        timestamp=now_iso(),
        kind=MessageKind.REQUEST,
    )


def build_response(request: Envelope, content: str) -> Envelope:
    """Build the response to ``request``: same session, fresh id, timestamp now."""
    return Envelope(
        session_id=request.session_id,
        message_id=new_message_id(),
        content=content,
        timestamp=now_iso(),
        kind=MessageKind.RESPONSE,
        correlation_id=request.message_id,
    )


def encode_envelope(envelope: Envelope) -> bytes:
    data = envelope.model_dump(by_alias=True, exclude_none=True, mode="json")
    return json.dumps(data, ensure_ascii=False).encode("utf-8")


def decode_envelope(raw: Any) -> Envelope:
    """Decode an inbound payload. Raises EnvelopeError if it is not a valid envelope."""
    if isinstance(raw, (bytes, bytearray, memoryview)):
        try:
            text = bytes(raw).decode("utf-8")
        except UnicodeDecodeError as e:
            raise EnvelopeError(f"Payload is not UTF-8: {e}")
    elif isinstance(raw, str):
        text = raw
    else:
        raise EnvelopeError(f"Unsupported payload type: {type(raw).__name__}")

    try:
        data = json.loads(text)
    except (ValueError, RecursionError) as e:
        raise EnvelopeError(f"Payload is not JSON: {e}")
    if not isinstance(data, dict):
        raise EnvelopeError("Payload is not a JSON object")

    try:
        return Envelope.model_validate(data)
    except ValidationError as e:
        raise EnvelopeError("Payload is not a valid envelope", details={"errors": e.errors()})
