"""
Sale phases and per-phase pricing.

Phases are totally ordered (Privileged < AllowListed < Public). The active
phase is changed only by a creator, in any direction: moving backward
re-opens an earlier window.

Copyright (c) 2026 Momentum. All rights reserved.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from enum import IntEnum
from typing import Any, Dict, Optional

from mintforge.audit import AuditEventType, AuditLogger
from mintforge.hardening import InvalidPhase, Unauthorized, require_amount, synchronized
from mintforge.observability import Layer, get_logger
from mintforge.roles import RoleRegistry

logger = get_logger("phases", Layer.PHASES)


class Phase(IntEnum):
    """Issuance windows, in progression order."""
    PRIVILEGED = 0
    ALLOW_LISTED = 1
    PUBLIC = 2

    @property
    def label(self) -> str:
        return self.name.lower()

    @classmethod
    def parse(cls, value: Any) -> "Phase":
        """Map a Phase, an int or a name onto a Phase, raising InvalidPhase otherwise."""
        if isinstance(value, cls):
            return value
        if isinstance(value, bool):
            raise InvalidPhase(value)
        if isinstance(value, int):
            try:
                return cls(value)
            except ValueError:
                raise InvalidPhase(value) from None
        if isinstance(value, str):
            key = value.strip().lower().replace("-", "_")
            if key.isdigit():
                return cls.parse(int(key))
            if key == "allowlisted":
                key = "allow_listed"
            for phase in cls:
                if phase.label == key:
                    return phase
        raise InvalidPhase(value)


@dataclass(frozen=True)
class PriceTable:
    """Unit price per phase, in the smallest currency unit."""
    privileged: int = 0
    allow_listed: int = 0
    public: int = 0

    def __post_init__(self):
        require_amount(self.privileged, "privileged_price")
        require_amount(self.allow_listed, "allow_listed_price")
        require_amount(self.public, "public_price")

    def for_phase(self, phase: Phase) -> int:
        return {
            Phase.PRIVILEGED: self.privileged,
            Phase.ALLOW_LISTED: self.allow_listed,
            Phase.PUBLIC: self.public,
        }[phase]

    def to_dict(self) -> Dict[str, int]:
        return {
            Phase.PRIVILEGED.label: self.privileged,
            Phase.ALLOW_LISTED.label: self.allow_listed,
            Phase.PUBLIC.label: self.public,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, int]) -> "PriceTable":
        return cls(
            privileged=data.get(Phase.PRIVILEGED.label, 0),
            allow_listed=data.get(Phase.ALLOW_LISTED.label, 0),
            public=data.get(Phase.PUBLIC.label, 0),
        )


class PhaseConfig:
    """Holds the price table and the active phase."""

    def __init__(
        self,
        roles: RoleRegistry,
        prices: Optional[PriceTable] = None,
        active_phase: Phase = Phase.PRIVILEGED,
        lock: Optional[threading.RLock] = None,
        audit: Optional[AuditLogger] = None,
    ):
        self._roles = roles
        self._lock = lock or threading.RLock()
        self._audit = audit
        self._prices = prices or PriceTable()
        self._active = Phase.parse(active_phase)

    @property
    @synchronized
    def active_phase(self) -> Phase:
        return self._active

    @property
    @synchronized
    def prices(self) -> PriceTable:
        return self._prices

    @synchronized
    def price_for(self, phase: Any) -> int:
        return self._prices.for_phase(Phase.parse(phase))

    @synchronized
    def set_prices(self, caller: str, privileged: int, allow_listed: int, public: int) -> PriceTable:
        """Replace all three prices at once."""
        caller = self._roles.require(caller, "set prices")
        table = PriceTable(privileged=privileged, allow_listed=allow_listed, public=public)
        previous, self._prices = self._prices, table
        if self._audit is not None:
            self._audit.log(
                event_type=AuditEventType.PRICES_SET,
                actor=caller,
                resource_type="prices",
                resource_id="table",
                action="set_prices",
                outcome="success",
                details={"previous": previous.to_dict(), "current": table.to_dict()},
            )
        logger.info("Prices updated", caller=caller, **table.to_dict())
        return table

    @synchronized
    def set_active_phase(self, caller: str, phase: Any) -> Phase:
        """Set the active phase and return the previous one."""
        caller = self._roles.require(caller, "set active phase")
        target = Phase.parse(phase)
        previous, self._active = self._active, target
        if self._audit is not None:
            self._audit.log(
                event_type=AuditEventType.PHASE_CHANGED,
                actor=caller,
                resource_type="phase",
                resource_id="active",
                action="set_active_phase",
                outcome="success",
                details={"from": previous.label, "to": target.label},
            )
        if target < previous:
            logger.warning("Active phase moved backward", caller=caller, previous=previous.label, phase=target.label)
        else:
            logger.info("Active phase set", caller=caller, previous=previous.label, phase=target.label)
        return previous

    @synchronized
    def current_price(self, caller: str) -> int:
        """Unit price for ``caller`` in the active phase.

        During the Privileged phase only creators may buy. AllowListed
        eligibility is enforced by quota, not here.
        """
        if self._active is Phase.PRIVILEGED and not self._roles.has(caller):
            raise Unauthorized(str(caller), "claim during the privileged phase")
        return self._prices.for_phase(self._active)
