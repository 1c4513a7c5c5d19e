"""
CERTAUTH Transaction Host

The hosting environment around the registry core. The host plays the part a
chain plays for a contract: it stamps every call with the sender identity and
a block height, applies calls one at a time, and hands back a receipt.

Transaction Flow:

    Transaction(sender, operation, arguments, height?)
         │
         ▼
    ┌──────────────┐  malformed input      ValidationErrors
    │  validate    │──────────────────────▶ (registry untouched)
    └──────┬───────┘
           ▼
    ┌──────────────┐  height < last height  ClockRegressionError
    │  clock       │──────────────────────▶ (registry untouched)
    └──────┬───────┘
           ▼
    ┌──────────────┐
    │  registry    │  Ok(value) / Err(code)
    └──────┬───────┘
           ▼
    audit event + log line + Receipt

Everything the core reports comes back in the receipt; host faults raise.

Copyright (c) 2026 Momentum. All rights reserved.
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Union

from certauth.config import CertAuthConfig, get_config
from certauth.hardening import (
    InvariantChecker,
    InvariantViolation,
    ValidationError,
    ValidationResult,
    Validators,
)
from certauth.observability import (
    AuditLogger,
    AuditOutcome,
    Component,
    RegistryLogger,
    correlation_id_var,
    generate_correlation_id,
    get_logger,
    reset_correlation_id,
    set_correlation_id,
)
from certauth.registry import (
    AuthorityRecord,
    AuthorityRegistry,
    CallContext,
    Err,
    ErrorCode,
    Ok,
    Result,
)


class ClockRegressionError(Exception):
    """A transaction carried a height below the last applied height."""

    def __init__(self, height: int, last_height: int):
        self.height = height
        self.last_height = last_height
        super().__init__(f"height {height} is below last applied height {last_height}")


# =============================================================================
# OPERATIONS
# =============================================================================

class Operation(Enum):
    """Registry operations a transaction can carry."""
    REGISTER = "register"
    UPDATE = "update"
    DEACTIVATE = "deactivate"
    IS_ACTIVE = "is_active"
    GET_RECORD = "get_record"
    TRANSFER_OWNERSHIP = "transfer_ownership"

    @property
    def is_mutating(self) -> bool:
        return self in _MUTATING

    @property
    def parameters(self) -> tuple:
        return _PARAMETERS[self]


_MUTATING = frozenset({
    Operation.REGISTER,
    Operation.UPDATE,
    Operation.DEACTIVATE,
    Operation.TRANSFER_OWNERSHIP,
})

_PARAMETERS = {
    Operation.REGISTER: ("authority_id", "name", "website"),
    Operation.UPDATE: ("authority_id", "name", "website"),
    Operation.DEACTIVATE: ("authority_id",),
    Operation.IS_ACTIVE: ("authority_id",),
    Operation.GET_RECORD: ("authority_id",),
    Operation.TRANSFER_OWNERSHIP: ("new_owner",),
}


# =============================================================================
# CLOCK
# =============================================================================

class BlockClock:
    """
    Logical block-height clock.

    ``current`` is the height stamped on transactions that do not carry
    their own. ``observe`` moves the clock forward to an explicit height.
    """

    def __init__(self, height: int = 0):
        Validators.validate_clock(height).raise_if_invalid()
        self._height = height

    @property
    def current(self) -> int:
        return self._height

    def advance(self, blocks: int = 1) -> int:
        if blocks < 0:
            raise ValueError("clock cannot move backwards")
        self._height += blocks
        return self._height

    def observe(self, height: int) -> None:
        if height > self._height:
            self._height = height


# =============================================================================
# TRANSACTIONS AND RECEIPTS
# =============================================================================

@dataclass(frozen=True)
class Transaction:
    """One operation submitted by one sender."""
    sender: str
    operation: Operation
    arguments: Dict[str, Any] = field(default_factory=dict)
    height: Optional[int] = None


@dataclass
class Receipt:
    """Outcome of an applied transaction."""
    index: int
    sender: str
    operation: Operation
    height: int
    ok: bool
    value: Any = None
    error: Optional[ErrorCode] = None
    correlation_id: str = ""

    def to_dict(self) -> Dict[str, Any]:
        value = self.value
        if isinstance(value, AuthorityRecord):
            value = value.to_dict()
        return {
            "index": self.index,
            "sender": self.sender,
            "operation": self.operation.value,
            "height": self.height,
            "ok": self.ok,
            "value": value,
            "error": self.error.name if self.error else None,
            "error_code": int(self.error) if self.error else None,
            "correlation_id": self.correlation_id,
        }


# =============================================================================
# HOST
# =============================================================================

class RegistryHost:
    """
    Serializing host for an AuthorityRegistry.

    Holds one lock for the whole apply step, so concurrent submitters see
    a total order of transactions and each one observes the full effect of
    its predecessors.
    """

    def __init__(
        self,
        registry: AuthorityRegistry,
        clock: Optional[BlockClock] = None,
        config: Optional[CertAuthConfig] = None,
        audit: Optional[AuditLogger] = None,
        logger: Optional[RegistryLogger] = None,
    ):
        self._config = config or get_config()
        self._registry = registry
        self._clock = clock or BlockClock(self._config.host.genesis_height.get())
        self._logger = logger or get_logger("host", Component.HOST)
        self._audit = audit or AuditLogger(self._logger)
        self._receipts: List[Receipt] = []
        # Never stamp below a timestamp already in the table
        self._last_height = max(
            [self._clock.current] + [r.updated_at for r in registry.records().values()]
        )
        self._clock.observe(self._last_height)
        self._lock = threading.Lock()

        self._handlers: Dict[Operation, Callable[..., Union[Result, Optional[AuthorityRecord]]]] = {
            Operation.REGISTER: lambda ctx, a: registry.register(
                ctx, a["authority_id"], a["name"], a["website"]),
            Operation.UPDATE: lambda ctx, a: registry.update(
                ctx, a["authority_id"], a["name"], a["website"]),
            Operation.DEACTIVATE: lambda ctx, a: registry.deactivate(ctx, a["authority_id"]),
            Operation.IS_ACTIVE: lambda ctx, a: registry.is_active(a["authority_id"]),
            Operation.GET_RECORD: lambda ctx, a: registry.get_record(a["authority_id"]),
            Operation.TRANSFER_OWNERSHIP: lambda ctx, a: registry.transfer_ownership(
                ctx, a["new_owner"]),
        }

    @property
    def registry(self) -> AuthorityRegistry:
        return self._registry

    @property
    def clock(self) -> BlockClock:
        return self._clock

    @property
    def audit(self) -> AuditLogger:
        return self._audit

    @property
    def receipts(self) -> List[Receipt]:
        with self._lock:
            return list(self._receipts)

    def _validate(self, tx: Transaction) -> None:
        cfg = self._config
        checks: List[ValidationResult] = [
            Validators.validate_identity(tx.sender, "sender", cfg),
        ]
        if tx.height is not None:
            checks.append(Validators.validate_clock(tx.height))

        expected = set(tx.operation.parameters)
        missing = expected - set(tx.arguments)
        unexpected = set(tx.arguments) - expected
        for name in sorted(missing):
            checks.append(ValidationResult.failure([ValidationError(name, "Missing argument")]))
        for name in sorted(unexpected):
            checks.append(ValidationResult.failure([ValidationError(name, "Unexpected argument")]))

        args = tx.arguments
        if "authority_id" in args:
            checks.append(Validators.validate_authority_id(args["authority_id"], cfg))
        if "name" in args:
            checks.append(Validators.validate_name(args["name"], cfg))
        if "website" in args:
            checks.append(Validators.validate_website(args["website"], cfg))
        if "new_owner" in args:
            checks.append(Validators.validate_identity(args["new_owner"], "new_owner", cfg))

        ValidationResult.merge(*checks).raise_if_invalid()

    def _resolve_height(self, tx: Transaction) -> int:
        height = self._clock.current if tx.height is None else tx.height
        if (
            self._config.host.enforce_monotonic_clock.get()
            and height < self._last_height
        ):
            raise ClockRegressionError(height, self._last_height)
        return height

    def submit(self, tx: Transaction) -> Receipt:
        """Validate, stamp and apply one transaction."""
        self._validate(tx)

        with self._lock:
            height = self._resolve_height(tx)
            token = set_correlation_id(generate_correlation_id())
            try:
                return self._apply(tx, height)
            finally:
                reset_correlation_id(token)

    def _apply(self, tx: Transaction, height: int) -> Receipt:
        ctx = CallContext(caller=tx.sender, clock=height)
        checkpoint = self._registry.checkpoint() if tx.operation.is_mutating else None
        start = time.monotonic()
        outcome = self._handlers[tx.operation](ctx, tx.arguments)
        duration_ms = (time.monotonic() - start) * 1000

        if isinstance(outcome, Ok):
            ok, value, error = True, outcome.value, None
        elif isinstance(outcome, Err):
            ok, value, error = False, None, outcome.code
        else:
            ok, value, error = True, outcome, None

        if ok and tx.operation.is_mutating and self._config.host.check_invariants.get():
            try:
                InvariantChecker.check(self._registry)
            except InvariantViolation:
                self._registry.rollback(checkpoint)
                raise

        self._last_height = height
        self._clock.observe(height)

        receipt = Receipt(
            index=len(self._receipts),
            sender=tx.sender,
            operation=tx.operation,
            height=height,
            ok=ok,
            value=value,
            error=error,
            correlation_id=correlation_id_var.get(),
        )
        self._receipts.append(receipt)

        resource_id = str(tx.arguments.get("authority_id") or tx.arguments.get("new_owner") or "")
        if self._config.host.audit_enabled.get():
            self._audit.log(
                actor=tx.sender,
                action=tx.operation.value,
                resource_id=resource_id,
                outcome=_audit_outcome(error),
                height=height,
                error=error.name if error else None,
            )

        self._logger.operation(
            tx.operation.value,
            duration_ms,
            success=ok,
            error_code=error.name if error else "",
            sender=tx.sender,
            height=height,
            resource_id=resource_id,
        )
        return receipt

    # -------------------------------------------------------------------------
    # Convenience wrappers
    # -------------------------------------------------------------------------

    def register(self, sender: str, authority_id: str, name: str, website: str,
                 height: Optional[int] = None) -> Receipt:
        return self.submit(Transaction(sender, Operation.REGISTER, {
            "authority_id": authority_id, "name": name, "website": website,
        }, height))

    def update(self, sender: str, authority_id: str, name: str, website: str,
               height: Optional[int] = None) -> Receipt:
        return self.submit(Transaction(sender, Operation.UPDATE, {
            "authority_id": authority_id, "name": name, "website": website,
        }, height))

    def deactivate(self, sender: str, authority_id: str, height: Optional[int] = None) -> Receipt:
        return self.submit(Transaction(sender, Operation.DEACTIVATE, {
            "authority_id": authority_id,
        }, height))

    def transfer_ownership(self, sender: str, new_owner: str, height: Optional[int] = None) -> Receipt:
        return self.submit(Transaction(sender, Operation.TRANSFER_OWNERSHIP, {
            "new_owner": new_owner,
        }, height))

    def is_active(self, authority_id: str) -> Result:
        """Read-only query outside any transaction."""
        Validators.validate_authority_id(authority_id, self._config).raise_if_invalid()
        with self._lock:
            return self._registry.is_active(authority_id)

    def get_record(self, authority_id: str) -> Optional[AuthorityRecord]:
        """Read-only lookup outside any transaction."""
        Validators.validate_authority_id(authority_id, self._config).raise_if_invalid()
        with self._lock:
            return self._registry.get_record(authority_id)


def _audit_outcome(error: Optional[ErrorCode]) -> AuditOutcome:
    if error is None:
        return AuditOutcome.SUCCESS
    if error == ErrorCode.UNAUTHORIZED:
        return AuditOutcome.DENIED
    return AuditOutcome.FAILURE
