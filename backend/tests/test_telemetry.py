from __future__ import annotations

from datetime import datetime, timezone

from conftest import VERIFIED_ID
from support_plus.identity import ResolverState
from support_plus.telemetry import emit_event, register_listener


def test_emit_event_sanitizes_payload(events) -> None:
    moment = datetime(2026, 1, 2, 3, 4, 5, tzinfo=timezone.utc)

    emit_event("identity_state_changed", state=ResolverState.READY, at=moment, identity_kind="remote")

    assert events[-1].name == "identity_state_changed"
    assert events[-1].payload == {
        "state": "ready",
        "at": "2026-01-02T03:04:05+00:00",
        "identity_kind": "remote",
    }


def test_failing_listener_does_not_block_others(events) -> None:
    def broken(event) -> None:
        raise RuntimeError("listener bug")

    register_listener(broken)
    emit_event("account_reset", sign_out_ok=True)

    assert [event.name for event in events] == ["account_reset"]


def test_unverified_identity_ids_are_masked(events) -> None:
    emit_event("manual_identity_rejected", identity_id="sms:+79123456789")
    emit_event("profile_sync_completed", identity_id=VERIFIED_ID, fallback=False)

    assert events[0].payload == {"identity_id": "sms:+*********89"}
    assert events[1].payload["identity_id"] == VERIFIED_ID


def test_unregistered_listener_stops_receiving(events) -> None:
    seen = []
    unregister = register_listener(lambda event: seen.append(event.name))

    emit_event("account_reset", sign_out_ok=True)
    unregister()
    emit_event("account_reset", sign_out_ok=False)

    assert seen == ["account_reset"]
    assert len(events) == 2
