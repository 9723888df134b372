"""
Per-requester, per-phase claim allowances.

An identity with no explicit entry has zero allowance. Limits are replaced,
never added to; claims decrement them.

Copyright (c) 2026 Momentum. All rights reserved.
"""

from __future__ import annotations

import threading
from typing import Any, Dict, List, Optional, Sequence, Tuple

from mintforge.audit import AuditEventType, AuditLogger
from mintforge.hardening import (
    ArityMismatch,
    InvariantChecker,
    QuotaExceeded,
    ValidationError,
    require_amount,
    require_identity,
    require_quantity,
    synchronized,
)
from mintforge.observability import Layer, get_logger
from mintforge.phases import Phase
from mintforge.roles import RoleRegistry

logger = get_logger("quota", Layer.QUOTA)


def _as_list(values: Any, field: str) -> List[Any]:
    if isinstance(values, (str, bytes)) or not isinstance(values, (list, tuple)):
        raise ValidationError(field, "must be a list", values)
    return list(values)


class QuotaLedger:
    """Remaining allowance keyed by (identity, phase)."""

    def __init__(
        self,
        roles: RoleRegistry,
        lock: Optional[threading.RLock] = None,
        audit: Optional[AuditLogger] = None,
    ):
        self._roles = roles
        self._lock = lock or threading.RLock()
        self._audit = audit
        self._limits: Dict[Tuple[str, Phase], int] = {}

    @synchronized
    def set_limits(
        self,
        caller: str,
        identities: Sequence[str],
        phase: Any,
        limits: Sequence[int],
    ) -> int:
        """Overwrite the allowance of each identity for ``phase``.

        The batch is validated in full before anything is written. Returns
        the number of entries written.
        """
        caller = self._roles.require(caller, "set mint limits")
        identities = _as_list(identities, "identities")
        limits = _as_list(limits, "limits")
        if len(identities) != len(limits):
            raise ArityMismatch(len(identities), len(limits))
        target = Phase.parse(phase)

        entries: List[Tuple[str, int]] = [
            (require_identity(identity), require_amount(limit, f"limits[{i}]"))
            for i, (identity, limit) in enumerate(zip(identities, limits))
        ]
        for identity, limit in entries:
            self._limits[(identity, target)] = limit

        if self._audit is not None:
            self._audit.log(
                event_type=AuditEventType.LIMITS_SET,
                actor=caller,
                resource_type="quota",
                resource_id=target.label,
                action="set_limits",
                outcome="success",
                details={"limits": {identity: limit for identity, limit in entries}},
            )
        logger.info("Mint limits set", caller=caller, phase=target.label, entries=len(entries))
        return len(entries)

    @synchronized
    def remaining(self, identity: str, phase: Any) -> int:
        return self._limits.get((require_identity(identity), Phase.parse(phase)), 0)

    @synchronized
    def reserve(self, identity: str, phase: Any, quantity: int) -> bool:
        """Check-and-decrement in one step, raising QuotaExceeded if short."""
        identity = require_identity(identity)
        target = Phase.parse(phase)
        quantity = require_quantity(quantity)
        available = self._limits.get((identity, target), 0)
        if available < quantity:
            raise QuotaExceeded(identity, target, available, quantity)
        remaining = available - quantity
        InvariantChecker.check_non_negative("quota", remaining)
        self._limits[(identity, target)] = remaining
        return True

    @synchronized
    def release(self, identity: str, phase: Any, quantity: int) -> None:
        """Give back a reservation that did not result in issuance."""
        key = (require_identity(identity), Phase.parse(phase))
        self._limits[key] = self._limits.get(key, 0) + require_quantity(quantity)

    @synchronized
    def snapshot(self) -> Dict[str, Dict[str, int]]:
        """Non-zero allowances as ``{phase_label: {identity: remaining}}``."""
        out: Dict[str, Dict[str, int]] = {}
        for (identity, phase), remaining in sorted(self._limits.items()):
            if remaining:
                out.setdefault(phase.label, {})[identity] = remaining
        return out

    @synchronized
    def load(self, data: Dict[str, Dict[str, int]]) -> None:
        """Replace all allowances from ``snapshot()`` output."""
        limits: Dict[Tuple[str, Phase], int] = {}
        for phase_label, entries in data.items():
            phase = Phase.parse(phase_label)
            for identity, remaining in entries.items():
                limits[(require_identity(identity), phase)] = require_amount(remaining, "remaining")
        self._limits = limits
