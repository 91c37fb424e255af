"""
Tests for app/middleware/logging_config.py — request context on log records.
"""

import json
import logging

from flask import g

from app.middleware.logging_config import JSONFormatter, ReadableFormatter, RequestContextFilter


def _record(**extra):
    record = logging.LogRecord("app.services.x", logging.INFO, __file__, 1, "Approved %s", (7,), None)
    for key, val in extra.items():
        setattr(record, key, val)
    return record


def test_filter_stamps_identity_from_request(app):
    with app.test_request_context("/api/v1/approval/routes"):
        g.request_id = "abc123"
        g.group_id = 3
        g.member_id = 9
        record = _record(application_id=7)
        RequestContextFilter().filter(record)

    entry = json.loads(JSONFormatter().format(record))
    assert entry["message"] == "Approved 7"
    assert entry["request_id"] == "abc123"
    assert entry["group_id"] == 3
    assert entry["member_id"] == 9
    assert entry["application_id"] == 7


def test_explicit_extra_wins_and_no_request_leaves_none():
    record = _record(group_id=5)
    RequestContextFilter().filter(record)
    assert record.group_id == 5
    assert record.member_id is None

    line = ReadableFormatter().format(record)
    assert line.endswith("app.services.x: Approved 7 [group=5]")
