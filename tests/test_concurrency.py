"""
Concurrency tests for the issuance engine.

All claims on one collection serialize on the engine lock; these tests
race threads against the supply cap and the quota ledger.
"""

import threading

import pytest

from conftest import ALICE, BOB, CREATOR
from mintforge.engine import IssuanceEngine
from mintforge.hardening import IssuanceError, QuotaExceeded, SupplyExceeded
from mintforge.phases import Phase, PriceTable


def _race(engine, claims):
    """Start all claims together; return (receipts, errors)."""
    barrier = threading.Barrier(len(claims))
    receipts, errors = [], []
    lock = threading.Lock()

    def worker(caller, quantity, payment):
        barrier.wait()
        try:
            receipt = engine.claim(caller, quantity, payment)
            with lock:
                receipts.append(receipt)
        except IssuanceError as exc:
            with lock:
                errors.append(exc)

    threads = [threading.Thread(target=worker, args=claim) for claim in claims]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    return receipts, errors


class TestLastUnitRace:
    """Two identities race for the last item."""

    def test_exactly_one_wins(self):
        engine = IssuanceEngine(CREATOR, 1, prices=PriceTable(public=5), active_phase=Phase.PUBLIC)
        engine.quotas.set_limits(CREATOR, [ALICE, BOB], Phase.PUBLIC, [1, 1])

        receipts, errors = _race(engine, [(ALICE, 1, 5), (BOB, 1, 5)])

        assert len(receipts) == 1
        assert len(errors) == 1
        assert isinstance(errors[0], SupplyExceeded)
        assert engine.total_issued() == 1
        assert engine.treasury.balance == 5

        loser = BOB if receipts[0].caller == ALICE else ALICE
        assert engine.quotas.remaining(loser, Phase.PUBLIC) == 1


class TestManyClaims:
    """Many concurrent claimers against a small supply."""

    def test_supply_never_exceeded(self):
        identities = [f"user-{i:03d}" for i in range(40)]
        engine = IssuanceEngine(CREATOR, 25, prices=PriceTable(public=2), active_phase=Phase.PUBLIC)
        engine.quotas.set_limits(CREATOR, identities, Phase.PUBLIC, [2] * len(identities))

        receipts, errors = _race(engine, [(who, 1, 2) for who in identities])

        assert len(receipts) == 25
        assert all(isinstance(e, SupplyExceeded) for e in errors)
        assert engine.total_issued() == 25
        assert engine.treasury.balance == 50
        issued = sorted(i for r in receipts for i in r.item_ids)
        assert issued == list(range(1, 26))

    def test_quota_never_overdrawn(self):
        """One identity claiming from many threads cannot exceed its allowance."""
        engine = IssuanceEngine(CREATOR, 100, active_phase=Phase.PUBLIC)
        engine.quotas.set_limits(CREATOR, [ALICE], Phase.PUBLIC, [5])

        receipts, errors = _race(engine, [(ALICE, 1, 0)] * 20)

        assert len(receipts) == 5
        assert len(errors) == 15
        assert all(isinstance(e, QuotaExceeded) for e in errors)
        assert engine.quotas.remaining(ALICE, Phase.PUBLIC) == 0

    @pytest.mark.slow
    def test_mixed_workload_consistency(self):
        """Claims, limit updates and withdrawals interleaved over many rounds."""
        identities = [f"user-{i:03d}" for i in range(16)]
        engine = IssuanceEngine(CREATOR, 500, prices=PriceTable(public=3), active_phase=Phase.PUBLIC)
        engine.quotas.set_limits(CREATOR, identities, Phase.PUBLIC, [50] * len(identities))
        withdrawn = []

        def claimer(who):
            for _ in range(40):
                try:
                    engine.claim(who, 1, 3)
                except (SupplyExceeded, QuotaExceeded):
                    pass

        def withdrawer():
            for _ in range(50):
                try:
                    withdrawn.append(engine.treasury.withdraw(CREATOR))
                except IssuanceError:
                    pass

        threads = [threading.Thread(target=claimer, args=(w,)) for w in identities]
        threads.append(threading.Thread(target=withdrawer))
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert engine.total_issued() == 500
        assert sum(withdrawn) + engine.treasury.balance == 500 * 3
        assert engine.audit.verify_chain() == (True, None)
