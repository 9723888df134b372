#!/usr/bin/env python3
"""
mintforge CLI

Command-line interface for a phased issuance collection. Each invocation
loads the collection from a JSON state file, performs one operation as
``--caller`` and writes the state back.

Usage:
    mintforge [--state FILE] [--caller ID] <command> [subcommand] [options]

Commands:
    init        Create a collection from a deployment manifest
    status      Show supply, phase, prices and treasury
    price       Current unit price for the caller
    claim       Claim items in the active phase
    quota       Remaining allowance for an identity
    admin       Prices, allowances, phases, metadata location, withdrawal
    roles       Creator role membership
    audit       Audit trail inspection
    config      Configuration management

Exit codes: 0 on success, 1 on failure, 2 when the caller lacks the
creator role.

Copyright (c) 2026 Momentum. All rights reserved.
"""

from __future__ import annotations

import argparse
import json
import os
import pathlib
import sys
from enum import Enum
from typing import Any, List, Optional

import yaml

from mintforge import __version__
from mintforge.audit import AuditEventType
from mintforge.config import get_config, get_config_manager
from mintforge.core import write_canonical_json
from mintforge.engine import IssuanceEngine
from mintforge.hardening import Unauthorized
from mintforge.manifest import build_engine, load_collection_manifest
from mintforge.observability import Layer, configure_logging, get_logger
from mintforge.phases import Phase
from mintforge.service import CollectionService, OperationResult
from mintforge.snapshot import load_snapshot, snapshot_engine
from mintforge.treasury import LedgerPayoutSink

logger = get_logger("cli", Layer.CLI)

DEFAULT_STATE_FILE = "mintforge-state.json"


class OutputFormat(Enum):
    """Output format options."""
    JSON = "json"
    YAML = "yaml"
    TABLE = "table"
    TEXT = "text"


class CLIError(Exception):
    """CLI error with exit code."""
    def __init__(self, message: str, exit_code: int = 1):
        super().__init__(message)
        self.exit_code = exit_code


def format_output(data: Any, fmt: OutputFormat = OutputFormat.JSON) -> str:
    """Format data for output."""
    if fmt == OutputFormat.JSON:
        return json.dumps(data, indent=2, sort_keys=True, default=str)
    elif fmt == OutputFormat.YAML:
        return yaml.dump(data, default_flow_style=False)
    elif fmt == OutputFormat.TABLE:
        return _format_table(data)
    else:
        return str(data)


def _format_table(data: Any) -> str:
    """Format data as ASCII table."""
    if isinstance(data, list) and data and isinstance(data[0], dict):
        headers = list(data[0].keys())
        rows = [[str(row.get(h, ""))[:40] for h in headers] for row in data]
        widths = [max(len(h), max(len(r[i]) for r in rows)) for i, h in enumerate(headers)]

        lines = []
        lines.append(" | ".join(h.ljust(widths[i]) for i, h in enumerate(headers)))
        lines.append("-+-".join("-" * w for w in widths))
        for row in rows:
            lines.append(" | ".join(c.ljust(widths[i]) for i, c in enumerate(row)))
        return "\n".join(lines)
    elif isinstance(data, dict):
        return "\n".join(f"{k}: {v}" for k, v in data.items())
    return str(data)


def _unwrap(result: OperationResult) -> Any:
    """Return the value of a successful result or raise a CLIError."""
    if result.ok:
        return result.value
    exit_code = 2 if result.error == Unauthorized.code else 1
    raise CLIError(f"{result.error}: {result.message}", exit_code)


class MintforgeCLI:
    """Main CLI application."""

    # Commands that change collection state and must be written back.
    MUTATING = {
        ("claim", None),
        ("admin", "set-prices"),
        ("admin", "set-limits"),
        ("admin", "start-phase"),
        ("admin", "set-base-uri"),
        ("admin", "withdraw"),
        ("roles", "grant"),
        ("roles", "revoke"),
    }

    def __init__(self):
        self.parser = argparse.ArgumentParser(
            prog="mintforge",
            description="Phased, access-controlled issuance of unique items",
            formatter_class=argparse.RawDescriptionHelpFormatter,
        )
        self.parser.add_argument(
            "--version", "-V",
            action="version",
            version=f"mintforge {__version__}",
        )
        self.parser.add_argument(
            "--format", "-f",
            choices=["json", "yaml", "table", "text"],
            default="json",
            help="Output format (default: json)",
        )
        self.parser.add_argument(
            "--quiet", "-q",
            action="store_true",
            help="Suppress non-essential output",
        )
        self.parser.add_argument(
            "--state", "-s",
            default=os.environ.get("MINTFORGE_STATE", DEFAULT_STATE_FILE),
            help=f"Collection state file (default: {DEFAULT_STATE_FILE})",
        )
        self.parser.add_argument(
            "--caller", "-c",
            default=os.environ.get("MINTFORGE_CALLER"),
            help="Identity performing the operation",
        )
        self.parser.add_argument(
            "--config",
            help="Configuration file (default: search mintforge.yaml locations)",
        )

        self.subparsers = self.parser.add_subparsers(dest="command", help="Commands")
        self._register_commands()
        self.engine: Optional[IssuanceEngine] = None

    def _register_commands(self) -> None:
        """Register all command groups."""
        self._register_collection_commands()
        self._register_admin_commands()
        self._register_roles_commands()
        self._register_audit_commands()
        self._register_config_commands()

    def _register_collection_commands(self) -> None:
        init = self.subparsers.add_parser("init", help="Create a collection from a manifest")
        init.add_argument("manifest", help="Deployment manifest (YAML or JSON)")
        init.add_argument("--force", action="store_true", help="Overwrite an existing state file")

        self.subparsers.add_parser("status", help="Show collection status")
        price = self.subparsers.add_parser("price", help="Current unit price for the caller")
        price.add_argument("--phase", help="Listed price of a phase instead (no caller needed)")

        claim = self.subparsers.add_parser("claim", help="Claim items in the active phase")
        claim.add_argument("--quantity", "-n", type=int, required=True, help="Number of items")
        claim.add_argument("--payment", "-p", type=int, required=True, help="Payment offered")

        quota = self.subparsers.add_parser("quota", help="Remaining allowance")
        quota.add_argument("identity", nargs="?", help="Identity (default: --caller)")
        quota.add_argument("--phase", help="Phase (default: active phase)")

    def _register_admin_commands(self) -> None:
        admin = self.subparsers.add_parser("admin", help="Creator-only operations")
        admin_sub = admin.add_subparsers(dest="subcommand")

        # admin set-prices
        prices = admin_sub.add_parser("set-prices", help="Set the three phase prices")
        prices.add_argument("--privileged", type=int, required=True)
        prices.add_argument("--allow-listed", type=int, required=True)
        prices.add_argument("--public", type=int, required=True)

        # admin set-limits
        limits = admin_sub.add_parser("set-limits", help="Set per-identity allowances for a phase")
        limits.add_argument("--phase", required=True, help="Phase the allowances apply to")
        limits.add_argument("--identity", "-i", action="append", default=[], dest="identities",
                            help="Identity (repeatable)")
        limits.add_argument("--limit", "-l", action="append", default=[], type=int, dest="limits",
                            help="Allowance, paired with --identity by position (repeatable)")

        # admin start-phase
        start = admin_sub.add_parser("start-phase", help="Switch the active phase")
        start.add_argument("phase", help="privileged, allow-listed or public (or 0-2)")

        # admin set-base-uri
        base_uri = admin_sub.add_parser("set-base-uri", help="Set the base metadata location")
        base_uri.add_argument("uri")

        admin_sub.add_parser("withdraw", help="Withdraw the whole treasury balance to the caller")
        admin_sub.add_parser("role-count", help="Number of creators")

    def _register_roles_commands(self) -> None:
        roles = self.subparsers.add_parser("roles", help="Creator role membership")
        roles_sub = roles.add_subparsers(dest="subcommand")

        for name, help_text in (("grant", "Grant the creator role"),
                                ("revoke", "Revoke the creator role"),
                                ("has", "Check whether an identity holds the role")):
            cmd = roles_sub.add_parser(name, help=help_text)
            cmd.add_argument("identity")

        roles_sub.add_parser("list", help="List creators")

    def _register_audit_commands(self) -> None:
        audit = self.subparsers.add_parser("audit", help="Audit trail")
        audit_sub = audit.add_subparsers(dest="subcommand")

        show = audit_sub.add_parser("show", help="Show recent audit events")
        show.add_argument("--actor", help="Filter by actor")
        show.add_argument("--type", dest="event_type", help="Filter by event type")
        show.add_argument("--limit", type=int, default=20, help="Maximum events (default: 20)")

        audit_sub.add_parser("verify", help="Verify the audit hash chain")

    def _register_config_commands(self) -> None:
        """Register config subcommands."""
        config = self.subparsers.add_parser("config", help="Configuration management")
        config_sub = config.add_subparsers(dest="subcommand")

        get = config_sub.add_parser("get", help="Get configuration value")
        get.add_argument("path", help="Config path (e.g., pricing.public_price)")

        config_sub.add_parser("show", help="Show all configuration")
        config_sub.add_parser("validate", help="Validate configuration")
        config_sub.add_parser("schema", help="Export configuration schema")

    def run(self, args: Optional[List[str]] = None) -> int:
        """Run the CLI."""
        parsed = self.parser.parse_args(args)

        if not parsed.command:
            self.parser.print_help()
            return 0

        try:
            self._configure(parsed)
            fmt = OutputFormat(parsed.format)
            result = self._dispatch(parsed)

            if result is not None:
                print(format_output(result, fmt))

            return 0

        except CLIError as e:
            if not parsed.quiet:
                print(f"Error: {e}", file=sys.stderr)
            return e.exit_code

        except Exception as e:
            if not parsed.quiet:
                print(f"Error: {e}", file=sys.stderr)
            return 1

    def _configure(self, args: argparse.Namespace) -> None:
        mgr = get_config_manager()
        if args.config:
            mgr.load_from_file(args.config)
        else:
            mgr.load_defaults()

        obs = get_config().observability
        level = "error" if args.quiet else obs.log_level.get()
        configure_logging(level=level, fmt=obs.log_format.get(), stream=sys.stderr)

    def _dispatch(self, args: argparse.Namespace) -> Any:
        """Dispatch command to handler."""
        cmd = args.command
        subcmd = getattr(args, "subcommand", None)

        handler_name = f"_handle_{cmd}_{subcmd.replace('-', '_')}" if subcmd else f"_handle_{cmd}"
        handler = getattr(self, handler_name, None)

        if handler is None:
            raise CLIError(f"Unknown command: {cmd} {subcmd or ''}")

        if cmd in ("init", "config"):
            return handler(args)

        self.engine = load_snapshot(pathlib.Path(args.state))
        service = CollectionService(self.engine)
        try:
            return handler(args, service)
        finally:
            # Rejected claims and withdrawals still extend the audit trail.
            if (cmd, subcmd) in self.MUTATING:
                self._save(args)

    def _save(self, args: argparse.Namespace) -> str:
        data = snapshot_engine(self.engine)
        if not get_config().treasury.payout_ledger.get():
            data.pop("payouts", None)
        digest = write_canonical_json(pathlib.Path(args.state), data)
        logger.debug("State saved", path=args.state, digest=digest)
        return digest

    def _require_caller(self, args: argparse.Namespace) -> str:
        if not args.caller:
            raise CLIError("--caller is required for this command (or set MINTFORGE_CALLER)")
        return args.caller

    # Collection handlers
    def _handle_init(self, args: argparse.Namespace) -> Any:
        state = pathlib.Path(args.state)
        if state.exists() and not args.force:
            raise CLIError(f"State file already exists: {state} (use --force to overwrite)")

        manifest = load_collection_manifest(pathlib.Path(args.manifest))
        self.engine = build_engine(manifest, payout_sink=LedgerPayoutSink())
        digest = self._save(args)
        return {"state": str(state), "digest": digest, "status": self.engine.status()}

    def _handle_status(self, args: argparse.Namespace, service: CollectionService) -> Any:
        return _unwrap(service.status())

    def _handle_price(self, args: argparse.Namespace, service: CollectionService) -> Any:
        if args.phase is not None:
            price = _unwrap(service.price_for(args.phase))
            return {"phase": Phase.parse(args.phase).label, "price": price}
        caller = self._require_caller(args)
        price = _unwrap(service.current_price(caller))
        return {"phase": self.engine.active_phase.label, "price": price}

    def _handle_claim(self, args: argparse.Namespace, service: CollectionService) -> Any:
        caller = self._require_caller(args)
        return _unwrap(service.claim(caller, args.quantity, args.payment))

    def _handle_quota(self, args: argparse.Namespace, service: CollectionService) -> Any:
        identity = args.identity or self._require_caller(args)
        remaining = _unwrap(service.remaining_quota(identity, args.phase))
        phase = args.phase or self.engine.active_phase.label
        return {"identity": identity, "phase": phase, "remaining": remaining}

    # Admin handlers
    def _handle_admin_set_prices(self, args: argparse.Namespace, service: CollectionService) -> Any:
        caller = self._require_caller(args)
        return _unwrap(service.set_prices(caller, args.privileged, args.allow_listed, args.public))

    def _handle_admin_set_limits(self, args: argparse.Namespace, service: CollectionService) -> Any:
        caller = self._require_caller(args)
        written = _unwrap(service.set_mint_limits_by_phase(caller, args.identities, args.phase, args.limits))
        return {"phase": args.phase, "updated": written}

    def _handle_admin_start_phase(self, args: argparse.Namespace, service: CollectionService) -> Any:
        caller = self._require_caller(args)
        return _unwrap(service.start_minting_phase(caller, args.phase))

    def _handle_admin_set_base_uri(self, args: argparse.Namespace, service: CollectionService) -> Any:
        caller = self._require_caller(args)
        return {"base_uri": _unwrap(service.set_base_metadata_location(caller, args.uri))}

    def _handle_admin_withdraw(self, args: argparse.Namespace, service: CollectionService) -> Any:
        caller = self._require_caller(args)
        return {"recipient": caller, "amount": _unwrap(service.withdraw(caller))}

    def _handle_admin_role_count(self, args: argparse.Namespace, service: CollectionService) -> Any:
        caller = self._require_caller(args)
        return {"count": _unwrap(service.read_role_count(caller))}

    # Roles handlers
    def _handle_roles_grant(self, args: argparse.Namespace, service: CollectionService) -> Any:
        caller = self._require_caller(args)
        changed = _unwrap(service.grant_role(caller, args.identity))
        return {"identity": args.identity, "changed": changed}

    def _handle_roles_revoke(self, args: argparse.Namespace, service: CollectionService) -> Any:
        caller = self._require_caller(args)
        changed = _unwrap(service.revoke_role(caller, args.identity))
        return {"identity": args.identity, "changed": changed}

    def _handle_roles_has(self, args: argparse.Namespace, service: CollectionService) -> Any:
        return {"identity": args.identity, "has_role": self.engine.roles.has(args.identity)}

    def _handle_roles_list(self, args: argparse.Namespace, service: CollectionService) -> Any:
        caller = self._require_caller(args)
        if not self.engine.roles.has(caller):
            raise CLIError(f"Unauthorized: {caller} may not list creators", 2)
        return {"creators": self.engine.roles.members()}

    # Audit handlers
    def _handle_audit_show(self, args: argparse.Namespace, service: CollectionService) -> Any:
        event_type = None
        if args.event_type:
            try:
                event_type = AuditEventType(args.event_type.lower())
            except ValueError as exc:
                raise CLIError(f"Unknown audit event type: {args.event_type}") from exc
        events = self.engine.audit.get_events(actor=args.actor, event_type=event_type, limit=args.limit)
        return [
            {
                "event_id": e.event_id,
                "type": e.event_type.value,
                "actor": e.actor,
                "action": e.action,
                "outcome": e.outcome,
                "timestamp": e.timestamp,
            }
            for e in events
        ]

    def _handle_audit_verify(self, args: argparse.Namespace, service: CollectionService) -> Any:
        valid, broken_at = self.engine.audit.verify_chain()
        if not valid:
            raise CLIError(f"Audit chain broken at event index {broken_at}")
        return {"valid": True, "events": len(self.engine.audit)}

    # Config handlers
    def _handle_config_get(self, args: argparse.Namespace) -> Any:
        mgr = get_config_manager()
        return {"path": args.path, "value": mgr.get(args.path)}

    def _handle_config_show(self, args: argparse.Namespace) -> Any:
        return get_config_manager().config.to_dict()

    def _handle_config_validate(self, args: argparse.Namespace) -> Any:
        errors = get_config_manager().validate()
        return {"valid": len(errors) == 0, "errors": errors}

    def _handle_config_schema(self, args: argparse.Namespace) -> Any:
        return get_config_manager().export_schema()


def main() -> int:
    """CLI entry point."""
    cli = MintforgeCLI()
    return cli.run()


if __name__ == "__main__":
    sys.exit(main())
