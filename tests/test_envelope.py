"""
Tests for Sentry envelope decoding.
"""

import json

import pytest

from faultline.core.errors import InvalidEnvelope
from faultline.ingestion.envelope import iter_items, parse_envelope


class TestIterItems:
    """Tests for iter_items."""

    def test_sized_payload_may_contain_newlines(self):
        """With a length header the payload is read by size, not by line."""
        payload = b'{"message": "line one\\nline two",\n "platform": "python"}'
        body = b"{}\n" + json.dumps({"type": "event", "length": len(payload)}).encode() + b"\n" + payload

        [(header, data)] = list(iter_items(body))

        assert header["type"] == "event"
        assert json.loads(data)["platform"] == "python"

    def test_sized_payload_followed_by_item(self):
        attachment = b"\x00\x01binary\n"
        body = b"\n".join([
            b"{}",
            json.dumps({"type": "attachment", "length": len(attachment)}).encode(),
        ]) + b"\n" + attachment + b"\n" + b'{"type": "event"}\n{"platform": "go"}'

        items = list(iter_items(body))

        assert [h["type"] for h, _ in items] == ["attachment", "event"]
        assert items[0][1] == attachment

    def test_blank_lines_skipped(self):
        body = b'{}\n\n{"type": "event"}\n{"platform": "go"}\n'
        assert [h["type"] for h, _ in iter_items(body)] == ["event"]

    def test_header_only(self):
        assert list(iter_items(b'{"event_id": "abc"}')) == []

    def test_bad_item_header(self):
        with pytest.raises(InvalidEnvelope):
            list(iter_items(b"{}\nnot-json\n{}"))


class TestParseEnvelope:
    """Tests for parse_envelope."""

    def test_first_event_wins(self):
        body = b"\n".join([
            b"{}",
            b'{"type": "client_report"}',
            b'{"discarded_events": []}',
            b'{"type": "event"}',
            b'{"platform": "python", "message": "first"}',
            b'{"type": "event"}',
            b'{"platform": "python", "message": "second"}',
        ])

        assert parse_envelope(body)["message"] == "first"

    def test_no_event_item(self):
        with pytest.raises(InvalidEnvelope):
            parse_envelope(b'{}\n{"type": "session"}\n{"sid": "1"}')

    def test_event_payload_not_json(self):
        with pytest.raises(InvalidEnvelope):
            parse_envelope(b'{}\n{"type": "event"}\n{broken')

    def test_event_payload_not_object(self):
        with pytest.raises(InvalidEnvelope):
            parse_envelope(b'{}\n{"type": "event"}\n[1, 2]')

    def test_empty_body(self):
        with pytest.raises(InvalidEnvelope):
            parse_envelope(b"")
