"""Byte-level helpers shared by snapshots, audit events and config loading.

Registry state is compared by digest, so every serialization that feeds a
digest goes through ``canonical_json_bytes``: sorted keys, compact
separators, UTF-8, and no floats (clock values are integers).
"""

from __future__ import annotations

import hashlib
import json
import pathlib
from typing import Any

import yaml

PACKAGE_ROOT = pathlib.Path(__file__).resolve().parent
SCHEMAS_DIR = PACKAGE_ROOT / "schemas"


def sha256_bytes(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


def load_yaml(path: pathlib.Path) -> Any:
    return yaml.safe_load(pathlib.Path(path).read_text(encoding="utf-8"))


def load_json(path: pathlib.Path) -> Any:
    return json.loads(pathlib.Path(path).read_text(encoding="utf-8"))


def _check_no_floats(value: Any, where: str) -> None:
    if isinstance(value, float):
        raise ValueError(f"float value at {where or '<root>'}; registry documents hold integers only")
    if isinstance(value, dict):
        for key, item in value.items():
            _check_no_floats(item, f"{where}.{key}")
    elif isinstance(value, list):
        for index, item in enumerate(value):
            _check_no_floats(item, f"{where}[{index}]")


def canonical_json_bytes(obj: Any) -> bytes:
    """Serialize ``obj`` to the byte form that registry digests are taken over."""
    _check_no_floats(obj, "")
    text = json.dumps(obj, sort_keys=True, separators=(",", ":"), ensure_ascii=False)
    return text.encode("utf-8")


def write_canonical_json(path: pathlib.Path, obj: Any) -> str:
    """Write ``obj`` canonically plus a trailing newline; return the digest of the canonical bytes."""
    canonical = canonical_json_bytes(obj)
    pathlib.Path(path).write_bytes(canonical + b"\n")
    return sha256_bytes(canonical)
