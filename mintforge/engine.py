"""
mintforge Issuance Engine

The claim state machine. One engine owns one re-entrant lock shared by the
role registry, phase configuration, quota ledger and treasury, so that a
claim is a single critical section:

    validate quantity ─► supply cap ─► unit price (role check in Privileged)
        ─► payment ─► reserve quota ─► issue items ─► credit treasury

Any failure leaves supply, quota and treasury exactly as they were. If the
item registry refuses an item part-way through a multi-item claim, the quota
reservation is released and the items already issued in that claim are
retracted before IssuanceFailed is raised.

Copyright (c) 2026 Momentum. All rights reserved.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

from mintforge.audit import AuditEventType, AuditLogger
from mintforge.hardening import (
    InsufficientPayment,
    InvariantChecker,
    IssuanceError,
    IssuanceFailed,
    SupplyExceeded,
    require_amount,
    require_identity,
    require_quantity,
)
from mintforge.observability import Layer, get_logger, timed_operation
from mintforge.phases import Phase, PhaseConfig, PriceTable
from mintforge.quota import QuotaLedger
from mintforge.registry import InMemoryItemRegistry, ItemRegistry
from mintforge.roles import RoleRegistry
from mintforge.treasury import PayoutSink, Treasury

logger = get_logger("engine", Layer.ENGINE)


@dataclass(frozen=True)
class ClaimReceipt:
    """Outcome of a successful claim."""
    caller: str
    phase: Phase
    quantity: int
    item_ids: Tuple[int, ...]
    price: int
    payment: int

    @property
    def excess(self) -> int:
        """Payment above the price. Retained by the treasury, not refunded."""
        return self.payment - self.price

    def to_dict(self) -> Dict[str, Any]:
        return {
            "caller": self.caller,
            "phase": self.phase.label,
            "quantity": self.quantity,
            "item_ids": list(self.item_ids),
            "price": self.price,
            "payment": self.payment,
            "excess": self.excess,
        }


class IssuanceEngine:
    """Phased, quota-limited issuance of a fixed supply of unique items."""

    def __init__(
        self,
        deployer: str,
        max_supply: int,
        registry: Optional[ItemRegistry] = None,
        prices: Optional[PriceTable] = None,
        payout_sink: Optional[PayoutSink] = None,
        audit: Optional[AuditLogger] = None,
        active_phase: Any = Phase.PRIVILEGED,
        name: str = "",
        symbol: str = "",
    ):
        if isinstance(max_supply, bool) or not isinstance(max_supply, int) or max_supply < 1:
            raise ValueError(f"max_supply must be a positive integer, got {max_supply!r}")

        self._lock = threading.RLock()
        self._max_supply = max_supply
        self.name = name
        self.symbol = symbol
        self.audit = audit or AuditLogger()
        self.registry = registry or InMemoryItemRegistry()
        InvariantChecker.check_ceiling("total_issued", self.registry.total_issued(), max_supply)

        self.roles = RoleRegistry(deployer, lock=self._lock, audit=self.audit)
        self.phases = PhaseConfig(
            self.roles,
            prices=prices,
            active_phase=active_phase,
            lock=self._lock,
            audit=self.audit,
        )
        self.quotas = QuotaLedger(self.roles, lock=self._lock, audit=self.audit)
        self.treasury = Treasury(self.roles, payout_sink=payout_sink, lock=self._lock, audit=self.audit)

    @property
    def lock(self) -> threading.RLock:
        return self._lock

    @property
    def max_supply(self) -> int:
        return self._max_supply

    @property
    def active_phase(self) -> Phase:
        return self.phases.active_phase

    def total_issued(self) -> int:
        with self._lock:
            return self.registry.total_issued()

    def remaining_supply(self) -> int:
        with self._lock:
            return self._max_supply - self.registry.total_issued()

    def current_price(self, caller: str) -> int:
        return self.phases.current_price(caller)

    @timed_operation(logger, "claim")
    def claim(self, caller: str, quantity: int, payment: int) -> ClaimReceipt:
        """Issue ``quantity`` items to ``caller`` against ``payment``.

        Raises InvalidQuantity, SupplyExceeded, Unauthorized,
        InsufficientPayment, QuotaExceeded or IssuanceFailed; in every case
        no state has changed.
        """
        with self._lock:
            try:
                return self._claim(caller, quantity, payment)
            except IssuanceError as exc:
                self._record_rejection(caller, quantity, payment, exc)
                raise

    def _claim(self, caller: str, quantity: int, payment: int) -> ClaimReceipt:
        caller = require_identity(caller, "caller")
        quantity = require_quantity(quantity)
        payment = require_amount(payment, "payment")

        issued = self.registry.total_issued()
        if issued + quantity > self._max_supply:
            raise SupplyExceeded(issued, quantity, self._max_supply)

        phase = self.phases.active_phase
        price = self.phases.current_price(caller) * quantity
        if payment < price:
            raise InsufficientPayment(payment, price)

        self.quotas.reserve(caller, phase, quantity)
        item_ids = self._issue(caller, phase, self.registry.next_item_id(), quantity)

        now_issued = self.registry.total_issued()
        InvariantChecker.check_monotonic_increase("total_issued", issued, now_issued)
        InvariantChecker.check_ceiling("total_issued", now_issued, self._max_supply)
        self.treasury.deposit(payment)

        receipt = ClaimReceipt(
            caller=caller,
            phase=phase,
            quantity=quantity,
            item_ids=tuple(item_ids),
            price=price,
            payment=payment,
        )
        self.audit.log(
            event_type=AuditEventType.ITEMS_CLAIMED,
            actor=caller,
            resource_type="items",
            resource_id=f"{item_ids[0]}-{item_ids[-1]}",
            action="claim",
            outcome="success",
            details=receipt.to_dict(),
        )
        if receipt.excess:
            logger.warning("Excess payment retained", caller=caller, price=price, payment=payment)
        logger.info("Items claimed", **receipt.to_dict())
        return receipt

    def _issue(self, caller: str, phase: Phase, first_id: int, quantity: int) -> List[int]:
        item_ids: List[int] = []
        for item_id in range(first_id, first_id + quantity):
            try:
                self.registry.issue_unique(caller, item_id)
            except Exception as exc:
                logger.error(
                    "Registry refused item; rolling back claim",
                    error_code=IssuanceFailed.code,
                    item_id=item_id,
                    rolled_back=len(item_ids),
                )
                self.quotas.release(caller, phase, quantity)
                stuck = self._retract(item_ids)
                reason = str(exc)
                if stuck:
                    reason = f"{reason}; could not retract items {stuck}"
                raise IssuanceFailed(item_id, reason) from exc
            item_ids.append(item_id)
        return item_ids

    def _retract(self, item_ids: List[int]) -> List[int]:
        """Retract items newest first. Returns the ids the registry kept."""
        stuck: List[int] = []
        for item_id in reversed(item_ids):
            try:
                self.registry.retract(item_id)
            except Exception as exc:
                logger.error(
                    "Registry refused retraction",
                    error_code=IssuanceFailed.code,
                    item_id=item_id,
                    reason=str(exc),
                )
                stuck.append(item_id)
        return stuck

    def _record_rejection(self, caller: Any, quantity: Any, payment: Any, exc: IssuanceError) -> None:
        self.audit.log(
            event_type=AuditEventType.CLAIM_REJECTED,
            actor=str(caller),
            resource_type="items",
            resource_id="claim",
            action="claim",
            outcome="denied",
            details={"error": exc.code, "quantity": str(quantity), "payment": str(payment)},
        )
        logger.warning(
            "Claim rejected",
            error_code=exc.code,
            caller=str(caller),
            quantity=quantity,
            reason=str(exc),
        )

    def status(self) -> Dict[str, Any]:
        """Consistent view of the collection state."""
        with self._lock:
            return {
                "name": self.name,
                "symbol": self.symbol,
                "active_phase": self.phases.active_phase.label,
                "prices": self.phases.prices.to_dict(),
                "max_supply": self._max_supply,
                "total_issued": self.registry.total_issued(),
                "remaining_supply": self._max_supply - self.registry.total_issued(),
                "treasury": self.treasury.snapshot(),
                "creators": self.roles.count(),
            }
