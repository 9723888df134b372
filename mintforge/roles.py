"""
Creator role membership.

The privileged role gates every administrative action and the Privileged
sale phase. Membership changes are made only by existing members; the
deployer is a member from construction.

Copyright (c) 2026 Momentum. All rights reserved.
"""

from __future__ import annotations

import threading
from typing import List, Optional, Set

from mintforge.audit import AuditEventType, AuditLogger
from mintforge.hardening import (
    InvariantViolation,
    Unauthorized,
    Validators,
    require_identity,
    synchronized,
)
from mintforge.observability import Layer, get_logger

logger = get_logger("roles", Layer.ROLES)

CREATOR_ROLE = "creator"


class RoleRegistry:
    """Set of identities holding the creator role."""

    def __init__(
        self,
        deployer: str,
        lock: Optional[threading.RLock] = None,
        audit: Optional[AuditLogger] = None,
    ):
        self._lock = lock or threading.RLock()
        self._audit = audit
        self._members: Set[str] = {require_identity(deployer, "deployer")}

    @synchronized
    def has(self, identity: str) -> bool:
        result = Validators.validate_identity(identity)
        # A malformed identity can never have been granted.
        return result.is_valid and result.sanitized_value in self._members

    @synchronized
    def count(self) -> int:
        return len(self._members)

    @synchronized
    def members(self) -> List[str]:
        return sorted(self._members)

    @synchronized
    def require(self, caller: str, action: str) -> str:
        """Return the normalized caller, or raise Unauthorized."""
        if not self.has(caller):
            logger.warning(
                "Privileged action denied",
                error_code=Unauthorized.code,
                caller=caller,
                action=action,
            )
            raise Unauthorized(str(caller), action)
        return require_identity(caller, "caller")

    @synchronized
    def grant(self, caller: str, identity: str) -> bool:
        """Grant the role. Returns False when ``identity`` already held it."""
        caller = self.require(caller, "grant role")
        identity = require_identity(identity)
        if identity in self._members:
            return False
        self._members.add(identity)
        self._record(AuditEventType.ROLE_GRANTED, caller, identity, "grant")
        logger.info("Role granted", caller=caller, identity=identity, members=len(self._members))
        return True

    @synchronized
    def revoke(self, caller: str, identity: str) -> bool:
        """Revoke the role. Returns False when ``identity`` did not hold it."""
        caller = self.require(caller, "revoke role")
        identity = require_identity(identity)
        return self._remove(caller, identity)

    @synchronized
    def renounce(self, caller: str) -> bool:
        caller = self.require(caller, "renounce role")
        return self._remove(caller, caller)

    def _remove(self, caller: str, identity: str) -> bool:
        if identity not in self._members:
            return False
        if len(self._members) == 1:
            raise InvariantViolation("Cannot remove the last creator; the collection would have no administrator")
        self._members.remove(identity)
        self._record(AuditEventType.ROLE_REVOKED, caller, identity, "revoke")
        logger.info("Role revoked", caller=caller, identity=identity, members=len(self._members))
        return True

    @synchronized
    def load(self, members: List[str]) -> None:
        """Replace membership from a snapshot."""
        loaded = {require_identity(m) for m in members}
        if not loaded:
            raise InvariantViolation("Role snapshot has no members")
        self._members = loaded

    def _record(self, event_type: AuditEventType, caller: str, identity: str, action: str) -> None:
        if self._audit is not None:
            self._audit.log(
                event_type=event_type,
                actor=caller,
                resource_type="role",
                resource_id=CREATOR_ROLE,
                action=action,
                outcome="success",
                details={"identity": identity},
            )
