"""
Payment custody and withdrawal.

Every accepted claim payment is credited here. A creator withdraws the
entire balance at once; the balance is cleared only after the payout sink
confirms the transfer, so a refused transfer leaves the funds in place.

Copyright (c) 2026 Momentum. All rights reserved.
"""

from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from typing import Dict, Iterable, Optional, Set

from mintforge.audit import AuditEventType, AuditLogger
from mintforge.hardening import (
    InvariantChecker,
    InvariantViolation,
    NothingToWithdraw,
    TransferFailed,
    require_amount,
    synchronized,
)
from mintforge.observability import Layer, get_logger
from mintforge.roles import RoleRegistry

logger = get_logger("treasury", Layer.TREASURY)


class PayoutSink(ABC):
    """Transfer collaborator that moves withdrawn funds to a recipient."""

    @abstractmethod
    def send(self, recipient: str, amount: int) -> bool:
        """Transfer ``amount``; return False if the recipient refuses it."""


class LedgerPayoutSink(PayoutSink):
    """Records payouts per recipient. Identities in ``reject`` refuse funds."""

    def __init__(self, reject: Iterable[str] = (), paid: Optional[Dict[str, int]] = None):
        self._lock = threading.Lock()
        self.reject: Set[str] = set(reject)
        self.paid: Dict[str, int] = dict(paid or {})

    def send(self, recipient: str, amount: int) -> bool:
        with self._lock:
            if recipient in self.reject:
                return False
            self.paid[recipient] = self.paid.get(recipient, 0) + amount
            return True

    def total_paid(self) -> int:
        with self._lock:
            return sum(self.paid.values())


class Treasury:
    """Accumulated payment balance."""

    def __init__(
        self,
        roles: RoleRegistry,
        payout_sink: Optional[PayoutSink] = None,
        lock: Optional[threading.RLock] = None,
        audit: Optional[AuditLogger] = None,
    ):
        self._roles = roles
        self._sink = payout_sink or LedgerPayoutSink()
        self._lock = lock or threading.RLock()
        self._audit = audit
        self._balance = 0
        self._total_received = 0
        self._total_withdrawn = 0

    @property
    def payout_sink(self) -> PayoutSink:
        return self._sink

    @property
    @synchronized
    def balance(self) -> int:
        return self._balance

    @property
    @synchronized
    def total_received(self) -> int:
        return self._total_received

    @property
    @synchronized
    def total_withdrawn(self) -> int:
        return self._total_withdrawn

    @synchronized
    def deposit(self, amount: int) -> int:
        """Credit an accepted payment and return the new balance."""
        amount = require_amount(amount)
        self._balance += amount
        self._total_received += amount
        return self._balance

    @synchronized
    def withdraw(self, caller: str) -> int:
        """Pay the whole balance to ``caller`` and return the amount paid."""
        caller = self._roles.require(caller, "withdraw")
        amount = self._balance
        if amount == 0:
            raise NothingToWithdraw()

        try:
            accepted = self._sink.send(caller, amount)
        except Exception as exc:
            self._reject(caller, amount, str(exc))
            raise TransferFailed(caller, amount, str(exc)) from exc
        if not accepted:
            self._reject(caller, amount, "recipient refused funds")
            raise TransferFailed(caller, amount, "recipient refused funds")

        self._balance = 0
        self._total_withdrawn += amount
        InvariantChecker.check_non_negative(
            "treasury", self._total_received - self._total_withdrawn
        )
        if self._audit is not None:
            self._audit.log(
                event_type=AuditEventType.WITHDRAWAL,
                actor=caller,
                resource_type="treasury",
                resource_id="balance",
                action="withdraw",
                outcome="success",
                details={"amount": amount},
            )
        logger.info("Treasury withdrawn", caller=caller, amount=amount)
        return amount

    def _reject(self, caller: str, amount: int, reason: str) -> None:
        if self._audit is not None:
            self._audit.log(
                event_type=AuditEventType.WITHDRAWAL_REJECTED,
                actor=caller,
                resource_type="treasury",
                resource_id="balance",
                action="withdraw",
                outcome="failure",
                details={"amount": amount, "reason": reason},
            )
        logger.warning(
            "Treasury transfer failed; balance kept",
            error_code=TransferFailed.code,
            caller=caller,
            amount=amount,
            reason=reason,
        )

    @synchronized
    def snapshot(self) -> Dict[str, int]:
        return {
            "balance": self._balance,
            "total_received": self._total_received,
            "total_withdrawn": self._total_withdrawn,
        }

    @synchronized
    def load(self, data: Dict[str, int]) -> None:
        balance = require_amount(data.get("balance", 0), "balance")
        received = require_amount(data.get("total_received", balance), "total_received")
        withdrawn = require_amount(data.get("total_withdrawn", 0), "total_withdrawn")
        if received - withdrawn != balance:
            raise InvariantViolation(
                f"Treasury snapshot inconsistent: received {received} - withdrawn {withdrawn} != balance {balance}"
            )
        self._balance, self._total_received, self._total_withdrawn = balance, received, withdrawn
