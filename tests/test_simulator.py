"""
Tests for the event simulator payloads.
"""

import random

import pytest

from faultline.grouping import fingerprint_hash
from faultline.ingestion.schemas import SentryEventPayload
from faultline.ingestion.service import build_event
from simulator.simulator import ERROR_SHAPES, build_payload

from fakes import NOW


@pytest.mark.parametrize("shape", ERROR_SHAPES, ids=lambda shape: shape["type"])
def test_payload_is_accepted_by_ingestion(shape):
    payload = SentryEventPayload.model_validate(build_payload(shape, random.Random(1)))

    event = build_event("project-1", payload, NOW)

    assert event.type == shape["type"]
    assert event.platform == shape["platform"]
    assert event.frames_count == 1


@pytest.mark.parametrize("shape", ERROR_SHAPES, ids=lambda shape: shape["type"])
def test_volatile_values_share_a_group(shape):
    """Different numbers and ids in the message still hash to one fingerprint."""
    first = build_payload(shape, random.Random(1))
    second = build_payload(shape, random.Random(2))

    assert fingerprint_hash(first["fingerprint"]) == fingerprint_hash(second["fingerprint"])
    assert first["event_id"] != second["event_id"]
