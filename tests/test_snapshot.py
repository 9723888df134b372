"""
State snapshot tests.
"""

import json

import pytest

from conftest import ALICE, CREATOR, SECOND_CREATOR
from mintforge.engine import IssuanceEngine
from mintforge.hardening import QuotaExceeded
from mintforge.phases import Phase
from mintforge.registry import ItemRegistry
from mintforge.snapshot import (
    SNAPSHOT_FORMAT,
    SnapshotError,
    load_snapshot,
    restore_engine,
    save_snapshot,
    snapshot_engine,
)


@pytest.fixture
def busy_engine(engine):
    engine.roles.grant(CREATOR, SECOND_CREATOR)
    engine.registry.set_base_location("ipfs://c/")
    engine.phases.set_active_phase(CREATOR, Phase.PUBLIC)
    engine.quotas.set_limits(CREATOR, [ALICE], Phase.PUBLIC, [4])
    engine.claim(ALICE, 3, 15)
    engine.treasury.withdraw(SECOND_CREATOR)
    engine.claim(ALICE, 1, 6)
    return engine


class TestSnapshotRoundTrip:

    def test_restored_engine_matches(self, busy_engine):
        restored = restore_engine(snapshot_engine(busy_engine))

        assert restored.status() == busy_engine.status()
        assert restored.roles.members() == busy_engine.roles.members()
        assert restored.quotas.snapshot() == busy_engine.quotas.snapshot()
        assert restored.registry.owner_of(4) == ALICE
        assert restored.registry.item_location(2) == "ipfs://c/2"
        assert restored.treasury.payout_sink.paid == {SECOND_CREATOR: 15}
        assert len(restored.audit) == len(busy_engine.audit)
        assert restored.audit.verify_chain() == (True, None)

    def test_restored_engine_keeps_working(self, busy_engine):
        restored = restore_engine(snapshot_engine(busy_engine))
        with pytest.raises(QuotaExceeded):
            restored.claim(ALICE, 1, 5)

        restored.quotas.set_limits(CREATOR, [ALICE], Phase.PUBLIC, [1])
        assert restored.claim(ALICE, 1, 5).item_ids == (5,)
        assert restored.audit.verify_chain() == (True, None)

    def test_restore_adds_no_audit_events(self, engine):
        restored = restore_engine(snapshot_engine(engine))
        assert len(restored.audit) == 0


class TestSnapshotFiles:

    def test_save_is_canonical(self, busy_engine, tmp_path):
        path = tmp_path / "state.json"
        digest = save_snapshot(busy_engine, path)

        raw = path.read_bytes()
        assert raw.endswith(b"\n")
        data = json.loads(raw)
        assert data["format"] == SNAPSHOT_FORMAT
        assert len(digest) == 64
        assert save_snapshot(load_snapshot(path), tmp_path / "again.json") == digest

    def test_missing_file(self, tmp_path):
        with pytest.raises(SnapshotError, match="init"):
            load_snapshot(tmp_path / "absent.json")

    def test_wrong_format(self):
        with pytest.raises(SnapshotError):
            restore_engine({"format": "something/v9"})

    def test_malformed(self):
        with pytest.raises(SnapshotError):
            restore_engine({"format": SNAPSHOT_FORMAT, "roles": []})

    def test_tampered_audit_detected(self, busy_engine):
        data = snapshot_engine(busy_engine)
        data["audit"][0]["actor"] = ALICE
        restored = restore_engine(data)
        assert restored.audit.verify_chain() == (False, 0)

    def test_custom_registry_not_snapshotable(self):
        class RemoteRegistry(ItemRegistry):
            def issue_unique(self, to, item_id):
                pass

            def total_issued(self):
                return 0

            def retract(self, item_id):
                pass

        engine = IssuanceEngine(CREATOR, 5, registry=RemoteRegistry())
        with pytest.raises(SnapshotError):
            snapshot_engine(engine)
