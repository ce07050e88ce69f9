import json
from typing import Any, List

import pytest
from class_booking.models import ClassStatus
from class_booking.utils import audit_log
from class_booking.utils.request_id import set_request_id
from class_booking.utils.sse import KEEPALIVE, format_event


def test_emit_audit_log_outputs_json(monkeypatch) -> None:
    messages: List[str] = []

    class DummyLogger:
        def info(self, message: str) -> None:
            messages.append(message)

    dummy_logger = DummyLogger()
    monkeypatch.setattr(audit_log, "_audit_logger", dummy_logger)

    set_request_id("req-123")
    audit_log.emit_audit_log(
        action="booking.created",
        initiator="user",
        booking_id="U1_C1",
        class_key="C1",
        user_id="U1",
        class_status=ClassStatus.ACTIVE,
    )
    set_request_id(None)
    assert len(messages) == 1
    payload = json.loads(messages[0])
    assert payload["action"] == "booking.created"
    assert payload["initiator"] == "user"
    assert payload["request_id"] == "req-123"
    assert payload["class_status"] == "active"
    assert payload["booking_id"] == "U1_C1"
    assert "slots_from" not in payload
    assert "timestamp" in payload


def test_emit_audit_log_merges_extra_fields(monkeypatch) -> None:
    messages: List[str] = []

    class DummyLogger:
        def info(self, message: str) -> None:
            messages.append(message)

    monkeypatch.setattr(audit_log, "_audit_logger", DummyLogger())

    audit_log.emit_audit_log(
        action="slots.reconciled",
        initiator="system",
        class_key="C1",
        slots_from=0,
        slots_to=1,
        extra={"capacity": 1, "booked": 0},
    )
    payload = json.loads(messages[0])
    assert payload["slots_from"] == 0
    assert payload["slots_to"] == 1
    assert payload["capacity"] == 1
    assert payload["booked"] == 0


def test_emit_audit_log_raises_on_logger_failure(monkeypatch) -> None:
    class DummyLogger:
        def info(self, _: Any) -> None:
            raise ValueError("fail")

    dummy_logger = DummyLogger()
    monkeypatch.setattr(audit_log, "_audit_logger", dummy_logger)

    with pytest.raises(RuntimeError):
        audit_log.emit_audit_log(
            action="booking.cancelled",
            initiator="user",
            class_key="C1",
            user_id="U1",
        )


def test_format_event_frames_json_payload() -> None:
    frame = format_event("bookings", [{"id": "U1_C1"}])
    assert frame == 'event: bookings\ndata: [{"id":"U1_C1"}]\n\n'
    assert KEEPALIVE.startswith(":")
