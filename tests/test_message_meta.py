"""Tests for the message meta variants and their stored form."""

from yarrow.schemas.meta import (
    ActionAuditMeta,
    AiClassificationMeta,
    PlainMeta,
    dump_meta,
    load_meta,
)


class TestDumpMeta:
    def test_none_is_plain(self):
        assert dump_meta(None) == {"kind": "plain"}

    def test_audit_round_trip(self):
        stored = dump_meta(
            ActionAuditMeta(
                action_type="request_photos", action_id="p1", params={"prompt": "photo"}, outcome="ok"
            )
        )
        assert stored["kind"] == "action_audit"
        assert "error" not in stored
        assert isinstance(load_meta(stored), ActionAuditMeta)


class TestLoadMeta:
    def test_untagged_audit_row(self):
        meta = load_meta(
            {"action_type": "update_ticket_status", "action_id": "a1", "params": {}, "outcome": "ok"}
        )
        assert isinstance(meta, ActionAuditMeta)
        assert meta.action_id == "a1"

    def test_untagged_classification_row(self):
        meta = load_meta({"category": "plumbing", "severity": "high", "next_actions": []})
        assert isinstance(meta, AiClassificationMeta)

    def test_unreadable_row_degrades_to_plain(self):
        meta = load_meta({"kind": "action_audit", "action_id": "a1"})
        assert isinstance(meta, PlainMeta)

    def test_empty(self):
        assert isinstance(load_meta({}), PlainMeta)
        assert isinstance(load_meta(None), PlainMeta)
