#!/usr/bin/env python3
"""
CERTAUTH CLI

Command-line host for a certification authority registry kept in a snapshot
file. Each invocation loads the snapshot, submits one transaction through
the RegistryHost and writes the snapshot back when a mutation succeeded.

Usage:
    certauth <command> [subcommand] [options]

Commands:
    init        Create a new registry snapshot with an owner
    authority   Register, update, deactivate and query authorities
    owner       Show or transfer registry ownership
    config      Configuration management

Exit codes:
    0           success
    1, 2, 3     registry error code (UNAUTHORIZED, ALREADY_EXISTS, NOT_FOUND)
    64          usage error, malformed input or unreadable snapshot

Copyright (c) 2026 Momentum. All rights reserved.
"""

from __future__ import annotations

import argparse
import json
import sys
from enum import Enum
from pathlib import Path
from typing import Any, List, Optional, Tuple

import yaml

from certauth import __version__
from certauth.config import ConfigError, get_config, get_config_manager
from certauth.hardening import InvariantViolation, ValidationErrors, Validators
from certauth.host import BlockClock, ClockRegressionError, Receipt, RegistryHost
from certauth.observability import Component, configure_logging, get_logger
from certauth.registry import AuthorityRegistry
from certauth.snapshot import SnapshotError, read_snapshot, write_snapshot

EXIT_USAGE = 64


class OutputFormat(Enum):
    """Output format options."""
    JSON = "json"
    YAML = "yaml"
    TEXT = "text"


class CLIError(Exception):
    """CLI error with exit code."""
    def __init__(self, message: str, exit_code: int = EXIT_USAGE):
        super().__init__(message)
        self.exit_code = exit_code


def format_output(data: Any, fmt: OutputFormat = OutputFormat.JSON) -> str:
    """Format data for output."""
    if fmt == OutputFormat.JSON:
        return json.dumps(data, indent=2, default=str)
    elif fmt == OutputFormat.YAML:
        return yaml.safe_dump(data, default_flow_style=False, sort_keys=True)
    elif isinstance(data, dict):
        return "\n".join(f"{k}: {v}" for k, v in data.items())
    return str(data)


class CertAuthCLI:
    """Main CLI application."""

    def __init__(self):
        self.parser = argparse.ArgumentParser(
            prog="certauth",
            description="Certification authority registry CLI",
            formatter_class=argparse.RawDescriptionHelpFormatter,
        )
        self.parser.add_argument(
            "--version", "-V",
            action="version",
            version=f"certauth {__version__}",
        )
        self.parser.add_argument(
            "--format", "-f",
            choices=[f.value for f in OutputFormat],
            default="json",
            help="Output format (default: json)",
        )
        self.parser.add_argument(
            "--quiet", "-q",
            action="store_true",
            help="Suppress error messages on stderr",
        )
        self.parser.add_argument(
            "--config", "-c",
            type=Path,
            help="YAML configuration file (default: search certauth.yaml locations)",
        )

        self.subparsers = self.parser.add_subparsers(dest="command", help="Commands")
        self._register_commands()
        self._exit_code = 0

    def _register_commands(self) -> None:
        """Register all command groups."""
        self._register_init_command()
        self._register_authority_commands()
        self._register_owner_commands()
        self._register_config_commands()

    @staticmethod
    def _add_state_args(parser: argparse.ArgumentParser, sender: bool = True) -> None:
        parser.add_argument("--state", "-s", required=True, type=Path, help="Registry snapshot file")
        if sender:
            parser.add_argument("--sender", required=True, help="Caller identity")
            parser.add_argument("--height", type=int, help="Block height (default: snapshot height)")

    def _register_init_command(self) -> None:
        init = self.subparsers.add_parser("init", help="Create a new registry snapshot")
        init.add_argument("--state", "-s", required=True, type=Path, help="Registry snapshot file")
        init.add_argument("--owner", required=True, help="Initial owner identity")
        init.add_argument("--height", type=int, help="Initial block height")
        init.add_argument("--force", action="store_true", help="Overwrite an existing snapshot")

    def _register_authority_commands(self) -> None:
        """Register authority subcommands."""
        authority = self.subparsers.add_parser("authority", help="Authority lifecycle")
        authority_sub = authority.add_subparsers(dest="subcommand")

        # authority register
        register = authority_sub.add_parser("register", help="Register a new authority")
        register.add_argument("authority_id", help="Authority ID")
        register.add_argument("name", help="Display name")
        register.add_argument("website", help="Website reference")
        self._add_state_args(register)

        # authority update
        update = authority_sub.add_parser("update", help="Re-publish (and reactivate) an authority")
        update.add_argument("authority_id", help="Authority ID")
        update.add_argument("name", help="Display name")
        update.add_argument("website", help="Website reference")
        self._add_state_args(update)

        # authority deactivate
        deactivate = authority_sub.add_parser("deactivate", help="Deactivate an authority")
        deactivate.add_argument("authority_id", help="Authority ID")
        self._add_state_args(deactivate)

        # authority active
        active = authority_sub.add_parser("active", help="Query the active flag")
        active.add_argument("authority_id", help="Authority ID")
        self._add_state_args(active, sender=False)

        # authority show
        show = authority_sub.add_parser("show", help="Show an authority record")
        show.add_argument("authority_id", help="Authority ID")
        self._add_state_args(show, sender=False)

        # authority list
        list_cmd = authority_sub.add_parser("list", help="List authorities")
        list_cmd.add_argument("--active-only", action="store_true", help="Show only active")
        self._add_state_args(list_cmd, sender=False)

    def _register_owner_commands(self) -> None:
        """Register owner subcommands."""
        owner = self.subparsers.add_parser("owner", help="Registry ownership")
        owner_sub = owner.add_subparsers(dest="subcommand")

        show = owner_sub.add_parser("show", help="Show the current owner")
        self._add_state_args(show, sender=False)

        transfer = owner_sub.add_parser("transfer", help="Transfer ownership")
        transfer.add_argument("new_owner", help="New owner identity")
        self._add_state_args(transfer)

    def _register_config_commands(self) -> None:
        """Register config subcommands."""
        config = self.subparsers.add_parser("config", help="Configuration management")
        config_sub = config.add_subparsers(dest="subcommand")

        get = config_sub.add_parser("get", help="Get configuration value")
        get.add_argument("path", help="Config path (e.g., host.audit_enabled)")

        config_sub.add_parser("show", help="Show all configuration")
        config_sub.add_parser("validate", help="Validate configuration")
        config_sub.add_parser("schema", help="Export configuration schema")

    def run(self, args: Optional[List[str]] = None) -> int:
        """Run the CLI."""
        parsed = self.parser.parse_args(args)

        if not parsed.command:
            self.parser.print_help()
            return 0

        self._exit_code = 0
        try:
            self._load_config(parsed.config)
            fmt = OutputFormat(parsed.format)
            result = self._dispatch(parsed)

            if result is not None:
                print(format_output(result, fmt))

            return self._exit_code

        except CLIError as e:
            if not parsed.quiet:
                print(f"Error: {e}", file=sys.stderr)
            return e.exit_code

        except (
            ConfigError,
            SnapshotError,
            InvariantViolation,
            ValidationErrors,
            ClockRegressionError,
        ) as e:
            if not parsed.quiet:
                print(f"Error: {e}", file=sys.stderr)
            return EXIT_USAGE

    def _load_config(self, path: Optional[Path]) -> None:
        mgr = get_config_manager()
        if path is not None:
            mgr.load_from_file(path)
        else:
            mgr.load_defaults()
        configure_logging()
        get_logger("loader", Component.CONFIG).debug("configuration loaded", path=str(path or ""))

    def _dispatch(self, args: argparse.Namespace) -> Any:
        """Dispatch command to handler."""
        cmd = args.command
        subcmd = getattr(args, "subcommand", None)

        handler_name = f"_handle_{cmd}_{subcmd}" if subcmd else f"_handle_{cmd}"
        handler = getattr(self, handler_name, None)

        if handler is None:
            raise CLIError(f"Unknown command: {cmd} {subcmd or ''}".strip())

        return handler(args)

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    @staticmethod
    def _open(args: argparse.Namespace) -> Tuple[RegistryHost, int]:
        registry, height = read_snapshot(args.state)
        return RegistryHost(registry, clock=BlockClock(height)), height

    def _commit(self, args: argparse.Namespace, host: RegistryHost, receipt: Receipt) -> Any:
        """Persist a successful mutation and report the receipt."""
        out = receipt.to_dict()
        if receipt.ok:
            out["state_digest"] = write_snapshot(args.state, host.registry, host.clock.current)
            get_logger("commands", Component.CLI).info(
                "snapshot updated",
                operation=receipt.operation.value,
                path=str(args.state),
                state_digest=out["state_digest"],
            )
        else:
            self._exit_code = int(receipt.error)
        return out

    # -------------------------------------------------------------------------
    # Init
    # -------------------------------------------------------------------------

    def _handle_init(self, args: argparse.Namespace) -> Any:
        if args.state.exists() and not args.force:
            raise CLIError(f"snapshot already exists: {args.state} (use --force to overwrite)")
        Validators.validate_identity(args.owner, "owner").raise_if_invalid()

        height = args.height
        if height is None:
            height = get_config().host.genesis_height.get()
        Validators.validate_clock(height).raise_if_invalid()

        registry = AuthorityRegistry(owner=args.owner)
        digest = write_snapshot(args.state, registry, height)
        return {"owner": args.owner, "height": height, "state_digest": digest}

    # -------------------------------------------------------------------------
    # Authority handlers
    # -------------------------------------------------------------------------

    def _handle_authority_register(self, args: argparse.Namespace) -> Any:
        host, _ = self._open(args)
        receipt = host.register(args.sender, args.authority_id, args.name, args.website, args.height)
        return self._commit(args, host, receipt)

    def _handle_authority_update(self, args: argparse.Namespace) -> Any:
        host, _ = self._open(args)
        receipt = host.update(args.sender, args.authority_id, args.name, args.website, args.height)
        return self._commit(args, host, receipt)

    def _handle_authority_deactivate(self, args: argparse.Namespace) -> Any:
        host, _ = self._open(args)
        receipt = host.deactivate(args.sender, args.authority_id, args.height)
        return self._commit(args, host, receipt)

    def _handle_authority_active(self, args: argparse.Namespace) -> Any:
        host, _ = self._open(args)
        result = host.is_active(args.authority_id)
        if result.ok:
            return {"authority_id": args.authority_id, "ok": True, "active": result.value}
        self._exit_code = int(result.code)
        return {
            "authority_id": args.authority_id,
            "ok": False,
            "error": result.code.name,
            "error_code": int(result.code),
        }

    def _handle_authority_show(self, args: argparse.Namespace) -> Any:
        host, _ = self._open(args)
        record = host.get_record(args.authority_id)
        return {
            "authority_id": args.authority_id,
            "record": record.to_dict() if record else None,
        }

    def _handle_authority_list(self, args: argparse.Namespace) -> Any:
        registry, height = read_snapshot(args.state)
        authorities = [
            dict(authority_id=authority_id, **record.to_dict())
            for authority_id, record in sorted(registry.records().items())
            if record.active or not args.active_only
        ]
        return {"authorities": authorities, "count": len(authorities), "height": height}

    # -------------------------------------------------------------------------
    # Owner handlers
    # -------------------------------------------------------------------------

    def _handle_owner_show(self, args: argparse.Namespace) -> Any:
        registry, height = read_snapshot(args.state)
        return {"owner": registry.owner, "height": height}

    def _handle_owner_transfer(self, args: argparse.Namespace) -> Any:
        host, _ = self._open(args)
        receipt = host.transfer_ownership(args.sender, args.new_owner, args.height)
        return self._commit(args, host, receipt)

    # -------------------------------------------------------------------------
    # Config handlers
    # -------------------------------------------------------------------------

    def _handle_config_get(self, args: argparse.Namespace) -> Any:
        mgr = get_config_manager()
        return {"path": args.path, "value": mgr.get(args.path)}

    def _handle_config_show(self, args: argparse.Namespace) -> Any:
        return get_config_manager().config.to_dict()

    def _handle_config_validate(self, args: argparse.Namespace) -> Any:
        errors = get_config_manager().validate()
        if errors:
            self._exit_code = EXIT_USAGE
        return {"valid": not errors, "errors": errors}

    def _handle_config_schema(self, args: argparse.Namespace) -> Any:
        return get_config_manager().export_schema()


def main(argv: Optional[List[str]] = None) -> int:
    """CLI entry point."""
    return CertAuthCLI().run(argv)


if __name__ == "__main__":
    sys.exit(main())
