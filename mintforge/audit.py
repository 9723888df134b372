"""
mintforge Audit Trail

Tamper-evident record of every state change made through the issuance
core. Each event carries the digest of the previous event, so editing or
dropping an entry breaks the chain and ``verify_chain`` reports the first
bad index.

Copyright (c) 2026 Momentum. All rights reserved.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from mintforge.core import canonical_json_bytes, now_iso8601, sha256_bytes
from mintforge.hardening import AtomicCounter
from mintforge.observability import Layer, correlation_id_var, get_logger

logger = get_logger("audit", Layer.AUDIT)


class AuditEventType(Enum):
    """Types of audit events."""
    # Roles
    ROLE_GRANTED = "role_granted"
    ROLE_REVOKED = "role_revoked"

    # Configuration
    PRICES_SET = "prices_set"
    PHASE_CHANGED = "phase_changed"
    LIMITS_SET = "limits_set"
    METADATA_LOCATION_SET = "metadata_location_set"

    # Issuance
    ITEMS_CLAIMED = "items_claimed"
    CLAIM_REJECTED = "claim_rejected"

    # Funds
    WITHDRAWAL = "withdrawal"
    WITHDRAWAL_REJECTED = "withdrawal_rejected"


@dataclass
class AuditEvent:
    """An audit log entry."""
    event_id: str
    event_type: AuditEventType
    timestamp: str
    actor: str
    resource_type: str
    resource_id: str
    action: str
    outcome: str  # success, failure, denied
    details: Dict[str, Any] = field(default_factory=dict)
    correlation_id: str = ""

    previous_event_digest: Optional[str] = None
    event_digest: str = ""

    def __post_init__(self):
        if not self.event_digest:
            self.event_digest = self.compute_digest()

    def compute_digest(self) -> str:
        content = {
            "event_id": self.event_id,
            "event_type": self.event_type.value,
            "timestamp": self.timestamp,
            "actor": self.actor,
            "resource_type": self.resource_type,
            "resource_id": self.resource_id,
            "action": self.action,
            "outcome": self.outcome,
            "details": self.details,
            "previous_event_digest": self.previous_event_digest,
        }
        return sha256_bytes(canonical_json_bytes(content))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "event_id": self.event_id,
            "event_type": self.event_type.value,
            "timestamp": self.timestamp,
            "actor": self.actor,
            "resource_type": self.resource_type,
            "resource_id": self.resource_id,
            "action": self.action,
            "outcome": self.outcome,
            "details": self.details,
            "correlation_id": self.correlation_id,
            "previous_event_digest": self.previous_event_digest,
            "event_digest": self.event_digest,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AuditEvent":
        return cls(
            event_id=data["event_id"],
            event_type=AuditEventType(data["event_type"]),
            timestamp=data["timestamp"],
            actor=data["actor"],
            resource_type=data["resource_type"],
            resource_id=data["resource_id"],
            action=data["action"],
            outcome=data["outcome"],
            details=dict(data.get("details") or {}),
            correlation_id=data.get("correlation_id", ""),
            previous_event_digest=data.get("previous_event_digest"),
            event_digest=data.get("event_digest", ""),
        )


class AuditLogger:
    """
    Hash-chained audit logger.

    Details must be canonical-JSON friendly (no floats); amounts are ints.
    """

    def __init__(self):
        self._events: List[AuditEvent] = []
        self._lock = threading.Lock()
        self._event_counter = AtomicCounter(0)

    def log(
        self,
        event_type: AuditEventType,
        actor: str,
        resource_type: str,
        resource_id: str,
        action: str,
        outcome: str,
        details: Optional[Dict[str, Any]] = None,
    ) -> AuditEvent:
        """Append an audit event."""
        with self._lock:
            event_num = self._event_counter.increment()
            previous_digest = self._events[-1].event_digest if self._events else None

            event = AuditEvent(
                event_id=f"evt-{event_num:012d}",
                event_type=event_type,
                timestamp=now_iso8601(),
                actor=actor,
                resource_type=resource_type,
                resource_id=resource_id,
                action=action,
                outcome=outcome,
                details=details or {},
                correlation_id=correlation_id_var.get(),
                previous_event_digest=previous_digest,
            )
            self._events.append(event)

        logger.debug(
            f"AUDIT: {action} on {resource_type}/{resource_id}",
            operation="audit",
            event_id=event.event_id,
            outcome=outcome,
        )
        return event

    def verify_chain(self) -> Tuple[bool, Optional[int]]:
        """
        Verify the audit chain integrity.

        Returns (valid, first_invalid_index).
        """
        with self._lock:
            for i, event in enumerate(self._events):
                if event.compute_digest() != event.event_digest:
                    return (False, i)
                expected_prev = self._events[i - 1].event_digest if i > 0 else None
                if event.previous_event_digest != expected_prev:
                    return (False, i)
            return (True, None)

    def get_events(
        self,
        actor: Optional[str] = None,
        event_type: Optional[AuditEventType] = None,
        limit: int = 100,
    ) -> List[AuditEvent]:
        """Query audit events, newest last."""
        with self._lock:
            events = list(self._events)

        if actor:
            events = [e for e in events if e.actor == actor]
        if event_type:
            events = [e for e in events if e.event_type == event_type]

        return events[-limit:] if limit else events

    def __len__(self) -> int:
        with self._lock:
            return len(self._events)

    def export(self) -> List[Dict[str, Any]]:
        """Export all events as dicts."""
        with self._lock:
            return [e.to_dict() for e in self._events]

    @classmethod
    def from_export(cls, events: List[Dict[str, Any]]) -> "AuditLogger":
        """Rebuild a logger from ``export()`` output, keeping digests as stored."""
        audit = cls()
        audit._events = [AuditEvent.from_dict(e) for e in events]
        audit._event_counter.reset(len(audit._events))
        return audit
