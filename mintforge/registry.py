"""
Item registry collaborator.

The issuance core does not track ownership itself. It needs only to issue a
uniquely numbered item to an identity, to read how many items exist, and to
retract an item it just issued when a multi-item claim has to be rolled
back. ``InMemoryItemRegistry`` is the in-process implementation used by the
CLI and the tests.

Copyright (c) 2026 Momentum. All rights reserved.
"""

from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from collections import Counter
from typing import Dict, List, Optional

from mintforge.hardening import Validators, require_identity
from mintforge.observability import Layer, get_logger

logger = get_logger("registry", Layer.REGISTRY)


class RegistryError(Exception):
    """The registry refused an operation."""
    pass


class ItemRegistry(ABC):
    """Ownership registry contract consumed by the issuance engine."""

    @abstractmethod
    def issue_unique(self, to: str, item_id: int) -> None:
        """Issue item ``item_id`` to ``to``; raise RegistryError on refusal."""

    @abstractmethod
    def total_issued(self) -> int:
        """Number of items currently issued."""

    @abstractmethod
    def retract(self, item_id: int) -> None:
        """Undo the issuance of ``item_id``."""

    def next_item_id(self) -> int:
        """Id the next issued item receives."""
        return self.total_issued() + 1

    def set_base_location(self, uri: str) -> None:
        raise RegistryError("Registry does not store metadata locations")

    def item_location(self, item_id: int) -> str:
        return ""


class InMemoryItemRegistry(ItemRegistry):
    """Dictionary-backed registry. Item ids are positive integers."""

    def __init__(self, base_location: str = ""):
        self._lock = threading.Lock()
        self._owners: Dict[int, str] = {}
        self._highest = 0
        self._base_location = Validators.validate_uri(base_location, "base_location").unwrap()

    def issue_unique(self, to: str, item_id: int) -> None:
        to = require_identity(to, "to")
        if isinstance(item_id, bool) or not isinstance(item_id, int) or item_id < 1:
            raise RegistryError(f"Item id must be a positive integer, got {item_id!r}")
        with self._lock:
            if item_id in self._owners:
                raise RegistryError(f"Item #{item_id} already issued")
            self._owners[item_id] = to
            self._highest = max(self._highest, item_id)
        logger.debug("Item issued", item_id=item_id, to=to)

    def total_issued(self) -> int:
        with self._lock:
            return len(self._owners)

    def retract(self, item_id: int) -> None:
        with self._lock:
            if self._owners.pop(item_id, None) is None:
                raise RegistryError(f"Item #{item_id} was never issued")
            if item_id == self._highest:
                self._highest = max(self._owners, default=0)
        logger.warning("Item retracted", item_id=item_id)

    def next_item_id(self) -> int:
        """One past the highest issued id. Gaps left by retraction are not refilled."""
        with self._lock:
            return self._highest + 1

    def owner_of(self, item_id: int) -> Optional[str]:
        with self._lock:
            return self._owners.get(item_id)

    def balance_of(self, identity: str) -> int:
        identity = require_identity(identity)
        with self._lock:
            return sum(1 for owner in self._owners.values() if owner == identity)

    def items_of(self, identity: str) -> List[int]:
        identity = require_identity(identity)
        with self._lock:
            return sorted(i for i, owner in self._owners.items() if owner == identity)

    def holders(self) -> Dict[str, int]:
        with self._lock:
            return dict(Counter(self._owners.values()))

    @property
    def base_location(self) -> str:
        with self._lock:
            return self._base_location

    def set_base_location(self, uri: str) -> None:
        uri = Validators.validate_uri(uri, "base_location").unwrap()
        with self._lock:
            self._base_location = uri

    def item_location(self, item_id: int) -> str:
        """Metadata location of an issued item: base location + id."""
        with self._lock:
            if item_id not in self._owners:
                raise RegistryError(f"Item #{item_id} was never issued")
            if not self._base_location:
                return ""
            return f"{self._base_location}{item_id}"

    def snapshot(self) -> Dict[str, object]:
        with self._lock:
            return {
                "base_location": self._base_location,
                "owners": {str(i): owner for i, owner in sorted(self._owners.items())},
            }

    @classmethod
    def from_snapshot(cls, data: Dict[str, object]) -> "InMemoryItemRegistry":
        registry = cls(base_location=str(data.get("base_location") or ""))
        owners = data.get("owners") or {}
        for item_id, owner in sorted(owners.items(), key=lambda kv: int(kv[0])):  # type: ignore[union-attr]
            registry.issue_unique(owner, int(item_id))
        return registry
