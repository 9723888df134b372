"""
Audit trail tests.
"""

from mintforge.audit import AuditEvent, AuditEventType, AuditLogger
from mintforge.observability import set_correlation_id, correlation_id_var


def _log(audit, actor="creator-1", event_type=AuditEventType.PRICES_SET):
    return audit.log(
        event_type=event_type,
        actor=actor,
        resource_type="prices",
        resource_id="table",
        action="set_prices",
        outcome="success",
        details={"public": 5},
    )


class TestAuditChain:

    def test_events_are_chained(self):
        audit = AuditLogger()
        first = _log(audit)
        second = _log(audit)

        assert first.event_id == "evt-000000000001"
        assert second.event_id == "evt-000000000002"
        assert first.previous_event_digest is None
        assert second.previous_event_digest == first.event_digest
        assert audit.verify_chain() == (True, None)

    def test_edited_event_detected(self):
        audit = AuditLogger()
        _log(audit)
        _log(audit)
        _log(audit)
        audit._events[1].details["public"] = 0
        assert audit.verify_chain() == (False, 1)

    def test_dropped_event_detected(self):
        audit = AuditLogger()
        for _ in range(3):
            _log(audit)
        del audit._events[1]
        assert audit.verify_chain() == (False, 1)

    def test_correlation_id_recorded(self):
        audit = AuditLogger()
        token = set_correlation_id("corr-test")
        try:
            event = _log(audit)
        finally:
            correlation_id_var.reset(token)
        assert event.correlation_id == "corr-test"

    def test_missing_correlation_id_not_invented(self):
        audit = AuditLogger()
        token = set_correlation_id("")
        try:
            first = _log(audit)
            second = _log(audit)
            leaked = correlation_id_var.get()
        finally:
            correlation_id_var.reset(token)
        assert first.correlation_id == ""
        assert second.correlation_id == ""
        assert leaked == ""


class TestAuditQueries:

    def test_filters_and_limit(self):
        audit = AuditLogger()
        _log(audit, actor="a")
        _log(audit, actor="b", event_type=AuditEventType.PHASE_CHANGED)
        _log(audit, actor="a", event_type=AuditEventType.PHASE_CHANGED)

        assert len(audit) == 3
        assert [e.actor for e in audit.get_events(event_type=AuditEventType.PHASE_CHANGED)] == ["b", "a"]
        assert len(audit.get_events(actor="a")) == 2
        assert [e.actor for e in audit.get_events(limit=1)] == ["a"]

    def test_export_round_trip_continues_numbering(self):
        audit = AuditLogger()
        _log(audit)
        _log(audit)

        restored = AuditLogger.from_export(audit.export())
        event = _log(restored)

        assert event.event_id == "evt-000000000003"
        assert event.previous_event_digest == audit._events[-1].event_digest
        assert restored.verify_chain() == (True, None)

    def test_from_dict_keeps_stored_digest(self):
        event = _log(AuditLogger())
        data = event.to_dict()
        data["outcome"] = "denied"
        restored = AuditEvent.from_dict(data)
        assert restored.event_digest == event.event_digest
        assert restored.compute_digest() != restored.event_digest
