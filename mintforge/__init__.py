"""
mintforge: phased, access-controlled issuance of unique items

A collection has a fixed supply of numbered items released in three sale
phases. Creators configure prices and per-identity allowances, move the
collection between phases and withdraw the accumulated payments; anyone
may claim items in the active phase within their allowance.

Architecture
────────────

    ┌─────────────────────────────────────────────────────────────────────┐
    │  SURFACES                                                            │
    │    cli.py         argparse commands over a JSON state file           │
    │    service.py     OperationResult envelopes for every operation      │
    │                                                                      │
    │  ISSUANCE                                                            │
    │    engine.py      claim state machine under one collection lock      │
    │    roles.py       creator role membership                            │
    │    phases.py      active phase and per-phase unit prices             │
    │    quota.py       per-identity, per-phase allowances                 │
    │    treasury.py    accumulated payments and withdrawal                │
    │    registry.py    item ownership and metadata locations              │
    │                                                                      │
    │  FOUNDATIONS                                                         │
    │    hardening.py   error kinds, validation, thread safety             │
    │    audit.py       hash-chained audit trail                           │
    │    observability.py  structured logging and correlation ids         │
    │    config.py      YAML and environment configuration                 │
    │    manifest.py    deployment manifests (JSON Schema validated)       │
    │    snapshot.py    canonical JSON state snapshots                     │
    └─────────────────────────────────────────────────────────────────────┘

Sale Phases
───────────

    Privileged      only creators may claim
    Allow-listed    anyone with a positive allow-listed allowance
    Public          anyone with a positive public allowance

Every claim either issues all requested items, consumes the allowance and
credits the treasury, or changes nothing at all.

Copyright (c) 2026 Momentum. All rights reserved.
"""

__version__ = "0.3.1"


# Lazy imports to avoid circular dependencies
def __getattr__(name):
    """Lazy import mintforge modules on first access."""

    if name in ("IssuanceEngine", "ClaimReceipt"):
        from mintforge import engine
        return getattr(engine, name)

    if name in ("CollectionService", "OperationResult"):
        from mintforge import service
        return getattr(service, name)

    if name in ("Phase", "PriceTable", "PhaseConfig"):
        from mintforge import phases
        return getattr(phases, name)

    if name in ("RoleRegistry", "CREATOR_ROLE"):
        from mintforge import roles
        return getattr(roles, name)

    if name == "QuotaLedger":
        from mintforge import quota
        return quota.QuotaLedger

    if name in ("Treasury", "PayoutSink", "LedgerPayoutSink"):
        from mintforge import treasury
        return getattr(treasury, name)

    if name in ("ItemRegistry", "InMemoryItemRegistry", "RegistryError"):
        from mintforge import registry
        return getattr(registry, name)

    if name in ("IssuanceError", "Unauthorized", "InvalidPhase", "InvalidQuantity",
                "SupplyExceeded", "InsufficientPayment", "QuotaExceeded",
                "ArityMismatch", "NothingToWithdraw", "TransferFailed",
                "IssuanceFailed", "ValidationError", "InvariantViolation"):
        from mintforge import hardening
        return getattr(hardening, name)

    if name in ("build_engine", "load_collection_manifest", "ManifestError"):
        from mintforge import manifest
        return getattr(manifest, name)

    if name in ("snapshot_engine", "restore_engine", "save_snapshot", "load_snapshot"):
        from mintforge import snapshot
        return getattr(snapshot, name)

    raise AttributeError(f"module 'mintforge' has no attribute '{name}'")
