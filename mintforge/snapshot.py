"""State snapshots.

The CLI is stateless between invocations; it keeps a collection in a
canonical JSON snapshot and rebuilds the engine from it on every run.
Restoring does not replay history: the audit trail is carried over as
stored and ``verify_chain`` still detects edits made to the file.
"""

from __future__ import annotations

import pathlib
from typing import Any, Dict

from mintforge.audit import AuditLogger
from mintforge.core import load_json, write_canonical_json
from mintforge.engine import IssuanceEngine
from mintforge.phases import Phase, PriceTable
from mintforge.registry import InMemoryItemRegistry
from mintforge.treasury import LedgerPayoutSink

SNAPSHOT_FORMAT = "mintforge.snapshot/v1"


class SnapshotError(Exception):
    """Snapshot could not be read or does not describe a valid collection."""
    pass


def snapshot_engine(engine: IssuanceEngine) -> Dict[str, Any]:
    """Capture the full state of ``engine`` under its lock."""
    if not isinstance(engine.registry, InMemoryItemRegistry):
        raise SnapshotError("Only in-memory registries can be captured in a snapshot")

    with engine.lock:
        data: Dict[str, Any] = {
            "format": SNAPSHOT_FORMAT,
            "collection": {
                "name": engine.name,
                "symbol": engine.symbol,
                "max_supply": engine.max_supply,
            },
            "roles": engine.roles.members(),
            "phase": engine.active_phase.label,
            "prices": engine.phases.prices.to_dict(),
            "quotas": engine.quotas.snapshot(),
            "registry": engine.registry.snapshot(),
            "treasury": engine.treasury.snapshot(),
            "audit": engine.audit.export(),
        }
        sink = engine.treasury.payout_sink
        if isinstance(sink, LedgerPayoutSink):
            data["payouts"] = dict(sorted(sink.paid.items()))
    return data


def restore_engine(data: Dict[str, Any]) -> IssuanceEngine:
    """Rebuild an engine equivalent to the one ``data`` was taken from."""
    if not isinstance(data, dict) or data.get("format") != SNAPSHOT_FORMAT:
        raise SnapshotError(f"Unsupported snapshot format: {data.get('format') if isinstance(data, dict) else data!r}")

    try:
        collection = data["collection"]
        roles = list(data["roles"])
        engine = IssuanceEngine(
            deployer=roles[0],
            max_supply=collection["max_supply"],
            registry=InMemoryItemRegistry.from_snapshot(data.get("registry") or {}),
            prices=PriceTable.from_dict(data.get("prices") or {}),
            payout_sink=LedgerPayoutSink(paid=data.get("payouts") or {}),
            audit=AuditLogger.from_export(data.get("audit") or []),
            active_phase=Phase.parse(data.get("phase", Phase.PRIVILEGED.label)),
            name=collection.get("name", ""),
            symbol=collection.get("symbol", ""),
        )
        engine.roles.load(roles)
        engine.quotas.load(data.get("quotas") or {})
        engine.treasury.load(data.get("treasury") or {})
    except (KeyError, IndexError, TypeError) as exc:
        raise SnapshotError(f"Malformed snapshot: {exc}") from exc
    return engine


def save_snapshot(engine: IssuanceEngine, path: pathlib.Path) -> str:
    """Write a snapshot and return the SHA-256 of its canonical bytes."""
    return write_canonical_json(pathlib.Path(path), snapshot_engine(engine))


def load_snapshot(path: pathlib.Path) -> IssuanceEngine:
    path = pathlib.Path(path)
    if not path.exists():
        raise SnapshotError(f"State file not found: {path} (run `mintforge init` first)")
    return restore_engine(load_json(path))
