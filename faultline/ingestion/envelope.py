"""
Sentry envelope decoding.

An envelope is newline-delimited:

    {"event_id": "...", "dsn": "..."}          envelope header
    {"type": "event", "length": 123}           item header
    {"platform": "javascript", ...}            item payload
    ...more items...

An item header with `length` gives the payload size in bytes, otherwise
the payload runs to the next newline. Only the first `event` item is
used; sessions, attachments and client reports are skipped.
"""

import json
from typing import Any, Dict, Iterator, Tuple

from faultline.core.errors import InvalidEnvelope


def _read_line(body: bytes, pos: int) -> Tuple[bytes, int]:
    end = body.find(b"\n", pos)
    if end == -1:
        return body[pos:], len(body)
    return body[pos:end], end + 1


def iter_items(body: bytes) -> Iterator[Tuple[Dict[str, Any], bytes]]:
    """Yield (item_header, payload) pairs; the envelope header is skipped."""
    _, pos = _read_line(body, 0)
    while pos < len(body):
        line, pos = _read_line(body, pos)
        if not line.strip():
            continue
        try:
            header = json.loads(line)
        except ValueError as e:
            raise InvalidEnvelope(f"Bad item header: {e}") from e
        if not isinstance(header, dict):
            raise InvalidEnvelope("Item header is not an object")

        length = header.get("length")
        if length is not None:
            payload = body[pos:pos + length]
            pos += length
            # skip the newline after a sized payload
            if body[pos:pos + 1] == b"\n":
                pos += 1
        else:
            payload, pos = _read_line(body, pos)
        yield header, payload


def parse_envelope(body: bytes) -> Dict[str, Any]:
    """
    Payload of the first event item.

    Raises:
        InvalidEnvelope: no event item, or the item is not a JSON object
    """
    for header, payload in iter_items(body):
        if header.get("type") != "event":
            continue
        try:
            event = json.loads(payload)
        except ValueError as e:
            raise InvalidEnvelope(f"Bad event payload: {e}") from e
        if not isinstance(event, dict):
            raise InvalidEnvelope("Event payload is not an object")
        return event
    raise InvalidEnvelope("Envelope contains no event item")
