"""Collection deployment manifests.

A manifest is a YAML (or JSON) document describing a collection at
deployment: its creators, supply cap, prices, initial allowances and
metadata location. Manifests are validated against
``schemas/collection.schema.json`` before an engine is built from them.
Values a manifest omits fall back to the active configuration.
"""

from __future__ import annotations

import pathlib
from functools import lru_cache
from typing import Any, Dict, List, Optional

from jsonschema import Draft202012Validator

from mintforge.config import MintforgeConfig, get_config
from mintforge.core import PACKAGE_ROOT, load_json, load_yaml
from mintforge.engine import IssuanceEngine
from mintforge.observability import Layer, get_logger
from mintforge.phases import Phase, PriceTable
from mintforge.registry import InMemoryItemRegistry
from mintforge.treasury import PayoutSink

logger = get_logger("manifest", Layer.CONFIG)

MANIFEST_SCHEMA_PATH = PACKAGE_ROOT / "schemas" / "collection.schema.json"


class ManifestError(Exception):
    """Manifest could not be loaded or failed validation."""

    def __init__(self, message: str, errors: Optional[List[str]] = None):
        self.errors = errors or []
        super().__init__(message)


@lru_cache(maxsize=1)
def manifest_validator() -> Draft202012Validator:
    """Create (once) the validator for collection manifests."""
    schema = load_json(MANIFEST_SCHEMA_PATH)
    Draft202012Validator.check_schema(schema)
    return Draft202012Validator(schema)


def validate_manifest(manifest: Any) -> List[str]:
    """Validate a manifest object.

    Returns:
        List of validation error messages (empty if valid)
    """
    return [
        f"{error.json_path}: {error.message}"
        for error in sorted(manifest_validator().iter_errors(manifest), key=lambda e: e.json_path)
    ]


def load_collection_manifest(path: pathlib.Path) -> Dict[str, Any]:
    """Load and validate a manifest file (``.json`` or YAML)."""
    path = pathlib.Path(path)
    if not path.exists():
        raise ManifestError(f"Manifest not found: {path}")

    manifest = load_json(path) if path.suffix == ".json" else load_yaml(path)
    errors = validate_manifest(manifest)
    if errors:
        raise ManifestError(f"invalid collection manifest: {path}: {errors[0]}", errors)
    return manifest


def build_engine(
    manifest: Dict[str, Any],
    config: Optional[MintforgeConfig] = None,
    payout_sink: Optional[PayoutSink] = None,
) -> IssuanceEngine:
    """Build an engine from a validated manifest.

    The first creator deploys the collection and grants the role to the
    rest. Allowances and prices are applied before the initial phase is set.
    """
    errors = validate_manifest(manifest)
    if errors:
        raise ManifestError(f"invalid collection manifest: {errors[0]}", errors)

    config = config or get_config()
    creators: List[str] = list(manifest["creators"])
    deployer = creators[0]

    price_defaults = {
        "privileged": config.pricing.privileged_price.get(),
        "allow_listed": config.pricing.allow_listed_price.get(),
        "public": config.pricing.public_price.get(),
    }
    price_defaults.update(manifest.get("prices") or {})

    engine = IssuanceEngine(
        deployer=deployer,
        max_supply=manifest.get("max_supply", config.collection.max_supply.get()),
        registry=InMemoryItemRegistry(
            base_location=manifest.get("base_uri", config.collection.base_uri.get())
        ),
        prices=PriceTable.from_dict(price_defaults),
        payout_sink=payout_sink,
        name=manifest.get("name", config.collection.name.get()),
        symbol=manifest.get("symbol", config.collection.symbol.get()),
    )

    for creator in creators[1:]:
        engine.roles.grant(deployer, creator)

    for phase_label, allowances in (manifest.get("limits") or {}).items():
        identities = list(allowances)
        engine.quotas.set_limits(deployer, identities, phase_label, [allowances[i] for i in identities])

    initial_phase = Phase.parse(manifest.get("initial_phase", Phase.PRIVILEGED.label))
    if initial_phase is not engine.active_phase:
        engine.phases.set_active_phase(deployer, initial_phase)

    logger.info(
        "Collection built from manifest",
        name=engine.name,
        max_supply=engine.max_supply,
        creators=len(creators),
        phase=engine.active_phase.label,
    )
    return engine
