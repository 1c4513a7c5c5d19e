"""
CERTAUTH Validation and Hardening Module

Boundary validation for values entering the registry through the host or
the CLI, and invariant checks over registry state. The registry core accepts
any string for names and websites; these checks sit in front of it.

Security Model:
    - All inputs arriving from outside the process are untrusted
    - Registry state loaded from disk is re-checked before use
    - The core error taxonomy is never extended by boundary checks

Copyright (c) 2026 Momentum. All rights reserved.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, List, Optional

from certauth.config import CertAuthConfig, get_config
from certauth.registry import AuthorityRegistry


# =============================================================================
# VALIDATION ERROR TYPES
# =============================================================================

class ValidationError(Exception):
    """Base exception for validation failures."""

    def __init__(self, field: str, message: str, value: Any = None):
        self.field = field
        self.message = message
        self.value = value
        super().__init__(f"{field}: {message}")


class ValidationErrors(Exception):
    """Collection of validation errors."""

    def __init__(self, errors: List[ValidationError]):
        self.errors = errors
        messages = "; ".join(f"{e.field}: {e.message}" for e in errors)
        super().__init__(f"Validation failed: {messages}")


class InvariantViolation(Exception):
    """Registry invariant violated."""

    def __init__(self, violations: List[str]):
        self.violations = violations
        super().__init__("; ".join(violations))


# =============================================================================
# VALIDATION RESULT
# =============================================================================

@dataclass
class ValidationResult:
    """Result of a validation operation."""
    is_valid: bool
    errors: List[ValidationError] = field(default_factory=list)
    sanitized_value: Any = None

    def raise_if_invalid(self) -> None:
        """Raise ValidationErrors if validation failed."""
        if not self.is_valid:
            raise ValidationErrors(self.errors)

    @classmethod
    def success(cls, sanitized_value: Any = None) -> "ValidationResult":
        return cls(is_valid=True, sanitized_value=sanitized_value)

    @classmethod
    def failure(cls, errors: List[ValidationError]) -> "ValidationResult":
        return cls(is_valid=False, errors=errors)

    @classmethod
    def merge(cls, *results: "ValidationResult") -> "ValidationResult":
        errors = [e for r in results for e in r.errors]
        if errors:
            return cls.failure(errors)
        return cls.success()


# =============================================================================
# INPUT VALIDATORS
# =============================================================================

class Validators:
    """Collection of input validators."""

    # Identities and ids are opaque tokens: printable, no whitespace
    TOKEN_PATTERN = re.compile(r"^[^\s\x00-\x1f\x7f]+$")

    @classmethod
    def _limits(cls, config: Optional[CertAuthConfig]) -> CertAuthConfig:
        return config or get_config()

    @classmethod
    def validate_string(
        cls,
        value: Any,
        field_name: str,
        min_length: int = 0,
        max_length: int = 4096,
        pattern: Optional[re.Pattern] = None,
    ) -> ValidationResult:
        """Validate a string value. Strings are checked, never rewritten."""
        errors = []

        if not isinstance(value, str):
            errors.append(ValidationError(field_name, f"Expected string, got {type(value).__name__}", value))
            return ValidationResult.failure(errors)

        if "\x00" in value:
            errors.append(ValidationError(field_name, "Contains null byte", value))

        if len(value) < min_length:
            errors.append(ValidationError(field_name, f"Too short (min {min_length} chars)", value))

        if len(value) > max_length:
            errors.append(ValidationError(field_name, f"Too long (max {max_length} chars)", value))

        if pattern and value and not pattern.match(value):
            errors.append(ValidationError(field_name, "Does not match required pattern", value))

        if errors:
            return ValidationResult.failure(errors)
        return ValidationResult.success(value)

    @classmethod
    def validate_identity(
        cls,
        value: Any,
        field_name: str = "identity",
        config: Optional[CertAuthConfig] = None,
    ) -> ValidationResult:
        """Validate a caller or owner identity."""
        cfg = cls._limits(config)
        return cls.validate_string(
            value, field_name,
            min_length=1,
            max_length=cfg.registry.identity_max_length.get(),
            pattern=cls.TOKEN_PATTERN,
        )

    @classmethod
    def validate_authority_id(
        cls,
        value: Any,
        config: Optional[CertAuthConfig] = None,
    ) -> ValidationResult:
        """Validate an authority id."""
        cfg = cls._limits(config)
        return cls.validate_string(
            value, "authority_id",
            min_length=1,
            max_length=cfg.registry.authority_id_max_length.get(),
            pattern=cls.TOKEN_PATTERN,
        )

    @classmethod
    def validate_name(cls, value: Any, config: Optional[CertAuthConfig] = None) -> ValidationResult:
        cfg = cls._limits(config)
        return cls.validate_string(value, "name", max_length=cfg.registry.name_max_length.get())

    @classmethod
    def validate_website(cls, value: Any, config: Optional[CertAuthConfig] = None) -> ValidationResult:
        cfg = cls._limits(config)
        return cls.validate_string(value, "website", max_length=cfg.registry.website_max_length.get())

    @classmethod
    def validate_clock(cls, value: Any, field_name: str = "height") -> ValidationResult:
        """Validate a logical clock value (non-negative int, bools rejected)."""
        if isinstance(value, bool) or not isinstance(value, int):
            return ValidationResult.failure([
                ValidationError(field_name, f"Expected integer, got {type(value).__name__}", value)
            ])
        if value < 0:
            return ValidationResult.failure([
                ValidationError(field_name, "Must be non-negative", value)
            ])
        return ValidationResult.success(value)


# =============================================================================
# INVARIANT CHECKING
# =============================================================================

class InvariantChecker:
    """
    Checks registry-wide invariants.

    - the registry has an owner
    - every record has updated_at >= created_at
    - the active flag is a real bool and clock values are non-negative ints
    - with a height given, no record was touched after that height
    """

    @staticmethod
    def violations(registry: AuthorityRegistry, height: Optional[int] = None) -> List[str]:
        found: List[str] = []

        if not isinstance(registry.owner, str) or not registry.owner:
            found.append("registry has no owner")

        for authority_id, record in registry.records().items():
            if not isinstance(record.active, bool):
                found.append(f"{authority_id}: active flag is not a bool")
            for label in ("created_at", "updated_at"):
                value = getattr(record, label)
                if not Validators.validate_clock(value, label).is_valid:
                    found.append(f"{authority_id}: {label} is not a non-negative integer")
            if (
                isinstance(record.created_at, int)
                and isinstance(record.updated_at, int)
                and record.updated_at < record.created_at
            ):
                found.append(
                    f"{authority_id}: updated_at {record.updated_at} precedes created_at {record.created_at}"
                )
            if (
                height is not None
                and isinstance(record.updated_at, int)
                and record.updated_at > height
            ):
                found.append(f"{authority_id}: updated_at {record.updated_at} is after height {height}")

        return found

    @classmethod
    def check(cls, registry: AuthorityRegistry, height: Optional[int] = None) -> None:
        """Raise InvariantViolation listing every broken invariant."""
        found = cls.violations(registry, height)
        if found:
            raise InvariantViolation(found)
