"""
Administrative and public surface of a collection.

Every call returns an ``OperationResult`` instead of raising, carrying the
error kind (``Unauthorized``, ``QuotaExceeded``, ...) on failure. This is
the seam an RPC or CLI layer sits on.

Copyright (c) 2026 Momentum. All rights reserved.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Sequence

from mintforge.audit import AuditEventType
from mintforge.engine import IssuanceEngine
from mintforge.hardening import IssuanceError, ValidationError, Validators, require_identity
from mintforge.observability import (
    Layer,
    correlation_id_var,
    generate_correlation_id,
    get_logger,
    set_correlation_id,
)
from mintforge.phases import Phase
from mintforge.registry import RegistryError

logger = get_logger("service", Layer.SERVICE)


@dataclass(frozen=True)
class OperationResult:
    """Success/failure envelope with a structured error kind."""
    ok: bool
    value: Any = None
    error: str = ""
    message: str = ""

    def to_dict(self) -> Dict[str, Any]:
        if self.ok:
            return {"ok": True, "value": self.value}
        return {"ok": False, "error": self.error, "message": self.message}

    @classmethod
    def success(cls, value: Any = None) -> "OperationResult":
        return cls(ok=True, value=value)

    @classmethod
    def failure(cls, error: str, message: str) -> "OperationResult":
        return cls(ok=False, error=error, message=message)


class CollectionService:
    """Wraps an engine with the operations exposed to callers."""

    def __init__(self, engine: IssuanceEngine):
        self.engine = engine

    def _run(self, operation: str, func: Callable[[], Any]) -> OperationResult:
        token = set_correlation_id(generate_correlation_id())
        try:
            return OperationResult.success(func())
        except IssuanceError as exc:
            logger.warning(f"{operation} failed", error_code=exc.code, reason=str(exc))
            return OperationResult.failure(exc.code, str(exc))
        except RegistryError as exc:
            logger.warning(f"{operation} failed", error_code="RegistryError", reason=str(exc))
            return OperationResult.failure("RegistryError", str(exc))
        except (TypeError, ValueError) as exc:
            logger.warning(f"{operation} failed", error_code=ValidationError.code, reason=str(exc))
            return OperationResult.failure(ValidationError.code, str(exc))
        finally:
            correlation_id_var.reset(token)

    # Administrative surface

    def set_prices(self, caller: str, privileged: int, allow_listed: int, public: int) -> OperationResult:
        return self._run(
            "set_prices",
            lambda: self.engine.phases.set_prices(caller, privileged, allow_listed, public).to_dict(),
        )

    def set_mint_limits_by_phase(
        self,
        caller: str,
        identities: Sequence[str],
        phase: Any,
        limits: Sequence[int],
    ) -> OperationResult:
        return self._run(
            "set_mint_limits_by_phase",
            lambda: self.engine.quotas.set_limits(caller, identities, phase, limits),
        )

    def start_minting_phase(self, caller: str, phase: Any) -> OperationResult:
        def start() -> Dict[str, str]:
            previous = self.engine.phases.set_active_phase(caller, phase)
            return {"previous": previous.label, "active": self.engine.active_phase.label}
        return self._run("start_minting_phase", start)

    def set_base_metadata_location(self, caller: str, uri: str) -> OperationResult:
        """Pass-through to the item registry, gated by the creator role."""
        def set_location() -> str:
            with self.engine.lock:
                actor = self.engine.roles.require(caller, "set base metadata location")
                location = Validators.validate_uri(uri, "base_location").unwrap()
                self.engine.registry.set_base_location(location)
                self.engine.audit.log(
                    event_type=AuditEventType.METADATA_LOCATION_SET,
                    actor=actor,
                    resource_type="registry",
                    resource_id="base_location",
                    action="set_base_location",
                    outcome="success",
                    details={"base_location": location},
                )
                return location
        return self._run("set_base_metadata_location", set_location)

    def withdraw(self, caller: str) -> OperationResult:
        return self._run("withdraw", lambda: self.engine.treasury.withdraw(caller))

    def read_role_count(self, caller: str) -> OperationResult:
        def count() -> int:
            with self.engine.lock:
                self.engine.roles.require(caller, "read role count")
                return self.engine.roles.count()
        return self._run("read_role_count", count)

    def grant_role(self, caller: str, identity: str) -> OperationResult:
        return self._run("grant_role", lambda: self.engine.roles.grant(caller, identity))

    def revoke_role(self, caller: str, identity: str) -> OperationResult:
        return self._run("revoke_role", lambda: self.engine.roles.revoke(caller, identity))

    # Public surface

    def claim(self, caller: str, quantity: int, payment: int) -> OperationResult:
        return self._run("claim", lambda: self.engine.claim(caller, quantity, payment).to_dict())

    def current_price(self, caller: str) -> OperationResult:
        return self._run("current_price", lambda: self.engine.current_price(caller))

    def price_for(self, phase: Any) -> OperationResult:
        return self._run("price_for", lambda: self.engine.phases.price_for(phase))

    def remaining_quota(self, identity: str, phase: Optional[Any] = None) -> OperationResult:
        def remaining() -> int:
            target = self.engine.active_phase if phase is None else Phase.parse(phase)
            return self.engine.quotas.remaining(require_identity(identity), target)
        return self._run("remaining_quota", remaining)

    def status(self) -> OperationResult:
        return self._run("status", self.engine.status)
