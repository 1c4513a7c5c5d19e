"""Registry snapshots.

A snapshot is the canonical JSON form of a registry plus the host's clock
height. Snapshots let the CLI carry state between invocations and give tests a
byte-exact way to compare states. The registry core never reads or writes
them.

Format (validated by ``schemas/registry-snapshot.schema.json``)::

    {
      "type": "CertAuthRegistrySnapshot",
      "version": 1,
      "owner": "<identity>",
      "height": <int>,
      "authorities": {"<id>": {"name", "website", "active", "created_at", "updated_at"}}
    }
"""

from __future__ import annotations

import json
import pathlib
from functools import lru_cache
from typing import Any, Dict, List, Tuple

from jsonschema import Draft202012Validator

from certauth.core import (
    SCHEMAS_DIR,
    canonical_json_bytes,
    load_json,
    sha256_bytes,
    write_canonical_json,
)
from certauth.hardening import InvariantChecker
from certauth.observability import Component, get_logger, timed_operation
from certauth.registry import AuthorityRecord, AuthorityRegistry

SNAPSHOT_TYPE = "CertAuthRegistrySnapshot"
SNAPSHOT_VERSION = 1
SNAPSHOT_SCHEMA = SCHEMAS_DIR / "registry-snapshot.schema.json"

_logger = get_logger("snapshot", Component.SNAPSHOT)


class SnapshotError(ValueError):
    """Snapshot is unreadable or does not match the snapshot schema."""
    pass


@lru_cache(maxsize=1)
def snapshot_validator() -> Draft202012Validator:
    """Cached validator for the snapshot schema."""
    schema = load_json(SNAPSHOT_SCHEMA)
    Draft202012Validator.check_schema(schema)
    return Draft202012Validator(schema)


def validate_snapshot(obj: Any) -> List[str]:
    """Validate a snapshot document. Returns error messages, empty if valid."""
    return [
        f"{error.json_path}: {error.message}"
        for error in snapshot_validator().iter_errors(obj)
    ]


def _state_dict(registry: AuthorityRegistry) -> Dict[str, Any]:
    return {
        "owner": registry.owner,
        "authorities": {
            authority_id: record.to_dict()
            for authority_id, record in registry.records().items()
        },
    }


def export_snapshot(registry: AuthorityRegistry, height: int = 0) -> Dict[str, Any]:
    """Build the snapshot document for a registry."""
    doc = {
        "type": SNAPSHOT_TYPE,
        "version": SNAPSHOT_VERSION,
        "height": height,
    }
    doc.update(_state_dict(registry))
    return doc


def state_digest(registry: AuthorityRegistry) -> str:
    """SHA-256 over the canonical owner + authorities state.

    The host's clock height is not part of registry state and is excluded, so
    equal digests mean byte-for-byte equal registry state.
    """
    return sha256_bytes(canonical_json_bytes(_state_dict(registry)))


def load_snapshot(doc: Any) -> Tuple[AuthorityRegistry, int]:
    """Rebuild a registry from a snapshot document.

    Raises SnapshotError on schema mismatch and InvariantViolation when the
    document is well-formed but describes an impossible registry state.
    """
    errors = validate_snapshot(doc)
    if errors:
        raise SnapshotError(f"invalid registry snapshot: {errors[0]}")

    registry = AuthorityRegistry(
        owner=doc["owner"],
        authorities={
            authority_id: AuthorityRecord.from_dict(record)
            for authority_id, record in doc["authorities"].items()
        },
    )
    InvariantChecker.check(registry, doc["height"])
    return registry, doc["height"]


@timed_operation(_logger, "snapshot.read")
def read_snapshot(path: pathlib.Path) -> Tuple[AuthorityRegistry, int]:
    """Load a registry from a snapshot file."""
    path = pathlib.Path(path)
    if not path.exists():
        raise SnapshotError(f"snapshot not found: {path}")
    try:
        doc = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        raise SnapshotError(f"snapshot is not valid JSON: {path}: {e}") from e
    return load_snapshot(doc)


@timed_operation(_logger, "snapshot.write")
def write_snapshot(path: pathlib.Path, registry: AuthorityRegistry, height: int) -> str:
    """Write a registry snapshot as canonical JSON, returning its digest."""
    doc = export_snapshot(registry, height)
    errors = validate_snapshot(doc)
    if errors:
        raise SnapshotError(f"refusing to write invalid snapshot: {errors[0]}")
    digest = write_canonical_json(pathlib.Path(path), doc)
    _logger.debug("snapshot written", path=str(path), digest=digest, authorities=len(registry))
    return digest
