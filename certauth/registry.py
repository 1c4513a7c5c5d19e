"""
Certification Authority Registry

The registry is a table of certification authorities keyed by an opaque
authority id, plus a single owner identity. Every mutation is gated by the
owner; reads are open.

State Transitions:

    (absent) ──register──▶ ACTIVE ──deactivate──▶ INACTIVE
                             ▲                        │
                             └────────update──────────┘

    update on an ACTIVE record re-publishes it (stays ACTIVE).
    No transition leads back to (absent): records are never removed.

Guard Order:

    Every operation runs its guards in a fixed order and fails on the first
    one that does not hold:

        1. authorization   caller == owner          -> UNAUTHORIZED
        2. existence       id present / id absent   -> NOT_FOUND / ALREADY_EXISTS
        3. state write     exactly one, all-or-nothing

    An unauthorized caller therefore gets UNAUTHORIZED even when the target
    id is also missing.

Failures are values, not exceptions: every operation returns ``Ok(value)`` or
``Err(code)``. ``get_record`` is the exception to the rule and returns an
optional record, since absence is not an error for it.

The caller identity and the logical clock are supplied per call through a
``CallContext``. The registry performs no I/O, no logging and no locking;
the hosting environment serializes calls.

Copyright (c) 2026 Momentum. All rights reserved.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from enum import IntEnum
from typing import Any, Dict, Iterator, List, Optional, Tuple, Union


# =============================================================================
# RESULTS
# =============================================================================

class ErrorCode(IntEnum):
    """Closed error taxonomy. Numeric values are part of the call contract."""
    UNAUTHORIZED = 1
    ALREADY_EXISTS = 2
    NOT_FOUND = 3


@dataclass(frozen=True)
class Ok:
    """Successful operation outcome."""
    value: bool

    @property
    def ok(self) -> bool:
        return True


@dataclass(frozen=True)
class Err:
    """Failed operation outcome carrying one error code."""
    code: ErrorCode

    @property
    def ok(self) -> bool:
        return False


Result = Union[Ok, Err]


# =============================================================================
# CALL CONTEXT AND RECORDS
# =============================================================================

@dataclass(frozen=True)
class CallContext:
    """Caller identity and current logical clock for one operation."""
    caller: str
    clock: int


@dataclass(frozen=True)
class AuthorityRecord:
    """
    A registered certification authority.

    ``created_at`` is fixed at registration. ``updated_at`` tracks the clock
    of the latest register/update/deactivate touching this record.
    """
    name: str
    website: str
    active: bool
    created_at: int
    updated_at: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "website": self.website,
            "active": self.active,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AuthorityRecord":
        return cls(
            name=data["name"],
            website=data["website"],
            active=data["active"],
            created_at=data["created_at"],
            updated_at=data["updated_at"],
        )


# =============================================================================
# AUTHORITY REGISTRY
# =============================================================================

class AuthorityRegistry:
    """
    Owner-gated registry of certification authorities.

    Records are immutable values; each mutating operation swaps in a new
    record for its key, so a failed guard never leaves a partial write.
    """

    def __init__(
        self,
        owner: str,
        authorities: Optional[Dict[str, AuthorityRecord]] = None,
    ):
        if not owner:
            raise ValueError("registry owner must be a non-empty identity")
        self._owner = owner
        self._authorities: Dict[str, AuthorityRecord] = dict(authorities or {})

    @property
    def owner(self) -> str:
        return self._owner

    def _authorize(self, ctx: CallContext) -> Optional[Err]:
        if ctx.caller != self._owner:
            return Err(ErrorCode.UNAUTHORIZED)
        return None

    def register(
        self,
        ctx: CallContext,
        authority_id: str,
        name: str,
        website: str,
    ) -> Result:
        """Create a new active record stamped with the current clock."""
        denied = self._authorize(ctx)
        if denied:
            return denied
        if authority_id in self._authorities:
            return Err(ErrorCode.ALREADY_EXISTS)

        self._authorities[authority_id] = AuthorityRecord(
            name=name,
            website=website,
            active=True,
            created_at=ctx.clock,
            updated_at=ctx.clock,
        )
        return Ok(True)

    def update(
        self,
        ctx: CallContext,
        authority_id: str,
        name: str,
        website: str,
    ) -> Result:
        """
        Re-publish an existing record.

        Name and website are replaced and the record is reactivated, even if
        it was deactivated before. ``created_at`` is preserved.
        """
        denied = self._authorize(ctx)
        if denied:
            return denied
        current = self._authorities.get(authority_id)
        if current is None:
            return Err(ErrorCode.NOT_FOUND)

        self._authorities[authority_id] = replace(
            current,
            name=name,
            website=website,
            active=True,
            updated_at=ctx.clock,
        )
        return Ok(True)

    def deactivate(self, ctx: CallContext, authority_id: str) -> Result:
        """Clear the active flag; the record itself is kept."""
        denied = self._authorize(ctx)
        if denied:
            return denied
        current = self._authorities.get(authority_id)
        if current is None:
            return Err(ErrorCode.NOT_FOUND)

        self._authorities[authority_id] = replace(
            current,
            active=False,
            updated_at=ctx.clock,
        )
        return Ok(True)

    def is_active(self, authority_id: str) -> Result:
        """Active flag of a record; NOT_FOUND when the id was never registered."""
        record = self._authorities.get(authority_id)
        if record is None:
            return Err(ErrorCode.NOT_FOUND)
        return Ok(record.active)

    def get_record(self, authority_id: str) -> Optional[AuthorityRecord]:
        """Record for the id, or None. Absence is not an error here."""
        return self._authorities.get(authority_id)

    def transfer_ownership(self, ctx: CallContext, new_owner: str) -> Result:
        """
        Hand the registry to a new owner, effective for the next call.

        Transferring to the current owner is a successful no-op. An empty
        identity is outside the identity domain and raises ValueError once
        the caller is authorized.
        """
        denied = self._authorize(ctx)
        if denied:
            return denied
        if not new_owner:
            raise ValueError("new owner must be a non-empty identity")

        self._owner = new_owner
        return Ok(True)

    # -------------------------------------------------------------------------
    # Read-only helpers
    # -------------------------------------------------------------------------

    def authority_ids(self) -> List[str]:
        return sorted(self._authorities)

    def records(self) -> Dict[str, AuthorityRecord]:
        """Shallow copy of the table; records are immutable."""
        return dict(self._authorities)

    def checkpoint(self) -> Tuple[str, Dict[str, AuthorityRecord]]:
        """Owner and table as they stand now, for a later rollback."""
        return self._owner, dict(self._authorities)

    def rollback(self, checkpoint: Tuple[str, Dict[str, AuthorityRecord]]) -> None:
        owner, authorities = checkpoint
        self._owner = owner
        self._authorities = dict(authorities)

    def __len__(self) -> int:
        return len(self._authorities)

    def __contains__(self, authority_id: object) -> bool:
        return authority_id in self._authorities

    def __iter__(self) -> Iterator[str]:
        return iter(self.authority_ids())
