"""
CERTAUTH — Certification Authority Registry

An owner-gated registry of certification authorities. A single owner identity
registers, updates and deactivates authorities; anyone may query them.

Architecture
────────────

    ┌─────────────────────────────────────────────────────────────────────────┐
    │                      CERTIFICATION AUTHORITY REGISTRY                    │
    │                                                                          │
    │  HOSTING LAYER                                                          │
    │    cli.py           Command line over a snapshot file                   │
    │    host.py          Transactions, block clock, receipts, serialization  │
    │    snapshot.py      Canonical JSON state, schema validation, digests    │
    │                                                                          │
    │  AMBIENT                                                                │
    │    config.py        YAML + environment configuration                    │
    │    observability.py Structured logging and hash-chained audit trail     │
    │    hardening.py     Boundary validation and invariant checks            │
    │                                                                          │
    │  CORE                                                                   │
    │    registry.py      Authority records and the six guarded operations    │
    │                                                                          │
    └─────────────────────────────────────────────────────────────────────────┘

Core Concepts
─────────────

    Authority: A named entity with a website and an active flag, identified
    by an opaque unique id. Records are never removed; deactivation is a flag.

    Owner: The one identity allowed to mutate the registry. Ownership moves
    in a single step and applies to the very next call.

    Clock: A logical height supplied with every call by the host and used to
    stamp created_at / updated_at.

Copyright (c) 2026 Momentum. All rights reserved.
"""

__version__ = "0.1.0"


def __getattr__(name):
    """Lazy import registry modules on first access."""

    if name in ("AuthorityRegistry", "AuthorityRecord", "CallContext",
                "ErrorCode", "Ok", "Err", "Result"):
        from certauth import registry
        return getattr(registry, name)

    if name in ("RegistryHost", "Transaction", "Receipt", "Operation",
                "BlockClock", "ClockRegressionError"):
        from certauth import host
        return getattr(host, name)

    if name in ("export_snapshot", "load_snapshot", "read_snapshot",
                "write_snapshot", "state_digest", "SnapshotError"):
        from certauth import snapshot
        return getattr(snapshot, name)

    raise AttributeError(f"module 'certauth' has no attribute '{name}'")


__all__ = [
    "__version__",
    # Core
    "AuthorityRegistry",
    "AuthorityRecord",
    "CallContext",
    "ErrorCode",
    "Ok",
    "Err",
    "Result",
    # Host
    "RegistryHost",
    "Transaction",
    "Receipt",
    "Operation",
    "BlockClock",
    "ClockRegressionError",
    # Snapshot
    "export_snapshot",
    "load_snapshot",
    "read_snapshot",
    "write_snapshot",
    "state_digest",
    "SnapshotError",
]
