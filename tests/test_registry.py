"""
Authority Registry Tests

Covers the six registry operations, the fixed guard order
(authorization before existence), the update-reactivates policy and the
get_record / is_active asymmetry.

Run with: pytest tests/test_registry.py -v
"""

import pytest

from certauth.registry import (
    AuthorityRecord,
    AuthorityRegistry,
    CallContext,
    Err,
    ErrorCode,
    Ok,
)
from certauth.snapshot import state_digest

from conftest import OWNER, STRANGER, SUCCESSOR, as_owner, as_stranger


# =============================================================================
# REGISTER
# =============================================================================

class TestRegister:
    """Tests for register."""

    def test_register_new_authority(self, registry):
        """Owner registration creates an active record stamped with the clock."""
        result = registry.register(as_owner(100), "auth1", "Test Authority", "https://test.com")

        assert result == Ok(True)
        assert "auth1" in registry
        record = registry.get_record("auth1")
        assert record == AuthorityRecord(
            name="Test Authority",
            website="https://test.com",
            active=True,
            created_at=100,
            updated_at=100,
        )

    def test_register_duplicate_fails_and_keeps_first_record(self, registry):
        """Second registration of the same id yields ALREADY_EXISTS."""
        registry.register(as_owner(100), "auth1", "Test Authority", "https://test.com")
        first = registry.get_record("auth1")

        result = registry.register(as_owner(120), "auth1", "Another Authority", "https://another.com")

        assert result == Err(ErrorCode.ALREADY_EXISTS)
        assert registry.get_record("auth1") == first

    def test_register_by_non_owner_is_unauthorized(self, registry):
        result = registry.register(as_stranger(), "auth1", "Test Authority", "https://test.com")

        assert result == Err(ErrorCode.UNAUTHORIZED)
        assert registry.get_record("auth1") is None
        assert len(registry) == 0

    def test_unauthorized_checked_before_already_exists(self, registry):
        """A non-owner gets UNAUTHORIZED even for an id that already exists."""
        registry.register(as_owner(), "auth1", "Test Authority", "https://test.com")

        result = registry.register(as_stranger(), "auth1", "X", "https://x")

        assert result == Err(ErrorCode.UNAUTHORIZED)

    def test_register_accepts_arbitrary_strings(self, registry):
        """Name and website are not validated by the registry."""
        result = registry.register(as_owner(), "auth1", "", "not a url")

        assert result.ok
        assert registry.get_record("auth1").website == "not a url"


# =============================================================================
# UPDATE
# =============================================================================

class TestUpdate:
    """Tests for update."""

    def test_update_existing_authority(self, registry):
        registry.register(as_owner(100), "auth1", "Test Authority", "https://test.com")

        result = registry.update(as_owner(110), "auth1", "Updated Authority", "https://updated.com")

        assert result == Ok(True)
        record = registry.get_record("auth1")
        assert record.name == "Updated Authority"
        assert record.website == "https://updated.com"
        assert record.active is True
        assert record.created_at == 100
        assert record.updated_at == 110

    def test_update_missing_authority_is_not_found(self, registry):
        result = registry.update(as_owner(), "auth1", "Test Authority", "https://test.com")

        assert result == Err(ErrorCode.NOT_FOUND)
        assert "auth1" not in registry

    def test_update_reactivates_deactivated_authority(self, registry):
        """Update re-publishes the record: active is forced back to True."""
        registry.register(as_owner(100), "auth1", "Test Authority", "https://test.com")
        registry.deactivate(as_owner(105), "auth1")
        assert registry.is_active("auth1") == Ok(False)

        registry.update(as_owner(110), "auth1", "Test Authority", "https://test.com")

        assert registry.is_active("auth1") == Ok(True)

    def test_update_by_non_owner_on_missing_id_is_unauthorized(self, registry):
        """Authorization precedes existence: UNAUTHORIZED, not NOT_FOUND."""
        result = registry.update(as_stranger(), "ghost", "X", "https://x")

        assert result == Err(ErrorCode.UNAUTHORIZED)


# =============================================================================
# DEACTIVATE
# =============================================================================

class TestDeactivate:
    """Tests for deactivate."""

    def test_deactivate_existing_authority(self, registry):
        registry.register(as_owner(100), "auth1", "Test Authority", "https://test.com")

        result = registry.deactivate(as_owner(105), "auth1")

        assert result == Ok(True)
        assert registry.get_record("auth1") == AuthorityRecord(
            name="Test Authority",
            website="https://test.com",
            active=False,
            created_at=100,
            updated_at=105,
        )

    def test_deactivate_missing_authority_is_not_found(self, registry):
        assert registry.deactivate(as_owner(), "auth1") == Err(ErrorCode.NOT_FOUND)

    def test_deactivate_by_non_owner_on_missing_id_is_unauthorized(self, registry):
        assert registry.deactivate(as_stranger(), "ghost") == Err(ErrorCode.UNAUTHORIZED)

    def test_deactivate_twice_still_succeeds(self, registry):
        """Deactivation is idempotent on the flag but restamps updated_at."""
        registry.register(as_owner(100), "auth1", "Test Authority", "https://test.com")
        registry.deactivate(as_owner(101), "auth1")

        assert registry.deactivate(as_owner(102), "auth1") == Ok(True)
        assert registry.get_record("auth1").updated_at == 102

    def test_deactivation_never_removes_record(self, registry):
        registry.register(as_owner(), "auth1", "Test Authority", "https://test.com")
        registry.deactivate(as_owner(), "auth1")

        assert "auth1" in registry
        assert registry.authority_ids() == ["auth1"]


# =============================================================================
# QUERIES
# =============================================================================

class TestQueries:
    """Tests for is_active and get_record."""

    def test_is_active_true_after_register(self, registry):
        registry.register(as_owner(), "auth1", "Test Authority", "https://test.com")
        assert registry.is_active("auth1") == Ok(True)

    def test_is_active_false_after_deactivate(self, registry):
        registry.register(as_owner(), "auth1", "Test Authority", "https://test.com")
        registry.deactivate(as_owner(), "auth1")
        assert registry.is_active("auth1") == Ok(False)

    def test_is_active_missing_is_not_found(self, registry):
        assert registry.is_active("auth1") == Err(ErrorCode.NOT_FOUND)

    def test_get_record_missing_returns_none(self, registry):
        """Absence is an optional here, never an error value."""
        assert registry.get_record("auth1") is None

    def test_queries_need_no_owner(self, registry):
        """Reads take no caller at all."""
        registry.register(as_owner(), "auth1", "Test Authority", "https://test.com")

        assert registry.is_active("auth1").ok
        assert registry.get_record("auth1") is not None

    def test_queries_do_not_change_state(self, registry):
        registry.register(as_owner(), "auth1", "Test Authority", "https://test.com")
        before = state_digest(registry)

        registry.is_active("auth1")
        registry.is_active("missing")
        registry.get_record("auth1")
        registry.get_record("missing")

        assert state_digest(registry) == before


# =============================================================================
# OWNERSHIP
# =============================================================================

class TestTransferOwnership:
    """Tests for transfer_ownership."""

    def test_transfer_moves_authorization_immediately(self, registry):
        assert registry.transfer_ownership(as_owner(), SUCCESSOR) == Ok(True)
        assert registry.owner == SUCCESSOR

        old_owner = registry.register(as_owner(101), "auth1", "A", "https://a")
        new_owner = registry.register(CallContext(SUCCESSOR, 101), "auth1", "A", "https://a")

        assert old_owner == Err(ErrorCode.UNAUTHORIZED)
        assert new_owner == Ok(True)

    def test_transfer_by_non_owner_is_unauthorized(self, registry):
        assert registry.transfer_ownership(as_stranger(), STRANGER) == Err(ErrorCode.UNAUTHORIZED)
        assert registry.owner == OWNER

    def test_transfer_to_self_is_noop_success(self, registry):
        before = state_digest(registry)

        assert registry.transfer_ownership(as_owner(), OWNER) == Ok(True)
        assert state_digest(registry) == before

    def test_transfer_to_empty_identity_raises(self, registry):
        with pytest.raises(ValueError):
            registry.transfer_ownership(as_owner(), "")
        assert registry.owner == OWNER

    def test_unauthorized_transfer_to_empty_identity_reports_unauthorized(self, registry):
        assert registry.transfer_ownership(as_stranger(), "") == Err(ErrorCode.UNAUTHORIZED)

    def test_registry_requires_owner(self):
        with pytest.raises(ValueError):
            AuthorityRegistry(owner="")


# =============================================================================
# CROSS-CUTTING PROPERTIES
# =============================================================================

class TestRegistryProperties:
    """Properties that hold across operations."""

    @pytest.mark.parametrize("attempt", [
        lambda r: r.register(as_stranger(200), "auth2", "X", "https://x"),
        lambda r: r.register(as_stranger(200), "auth1", "X", "https://x"),
        lambda r: r.update(as_stranger(200), "auth1", "X", "https://x"),
        lambda r: r.update(as_stranger(200), "ghost", "X", "https://x"),
        lambda r: r.deactivate(as_stranger(200), "auth1"),
        lambda r: r.deactivate(as_stranger(200), "ghost"),
        lambda r: r.transfer_ownership(as_stranger(200), STRANGER),
    ])
    def test_non_owner_mutations_leave_state_unchanged(self, registry, attempt):
        registry.register(as_owner(100), "auth1", "Test Authority", "https://test.com")
        before = state_digest(registry)

        assert attempt(registry) == Err(ErrorCode.UNAUTHORIZED)
        assert state_digest(registry) == before

    def test_error_codes_are_stable(self):
        assert int(ErrorCode.UNAUTHORIZED) == 1
        assert int(ErrorCode.ALREADY_EXISTS) == 2
        assert int(ErrorCode.NOT_FOUND) == 3

    def test_result_ok_flags(self):
        assert Ok(False).ok is True
        assert Err(ErrorCode.NOT_FOUND).ok is False

    def test_created_at_survives_every_mutation(self, registry):
        registry.register(as_owner(100), "auth1", "A", "https://a")
        registry.update(as_owner(103), "auth1", "B", "https://b")
        registry.deactivate(as_owner(107), "auth1")
        registry.update(as_owner(109), "auth1", "C", "https://c")

        record = registry.get_record("auth1")
        assert record.created_at == 100
        assert record.updated_at == 109
        assert record.updated_at >= record.created_at

    def test_rollback_restores_checkpoint(self, registry):
        registry.register(as_owner(100), "auth1", "A", "https://a")
        checkpoint = registry.checkpoint()
        before = state_digest(registry)

        registry.deactivate(as_owner(105), "auth1")
        registry.register(as_owner(105), "auth2", "B", "https://b")
        registry.transfer_ownership(as_owner(105), SUCCESSOR)
        registry.rollback(checkpoint)

        assert state_digest(registry) == before
        assert registry.owner == OWNER
        assert registry.authority_ids() == ["auth1"]

    def test_records_returns_copy(self, registry):
        registry.register(as_owner(), "auth1", "A", "https://a")
        table = registry.records()
        table.clear()

        assert "auth1" in registry


class TestConcreteScenario:
    """End-to-end walk through register, denied deactivate, deactivate, update."""

    def test_scenario(self, registry):
        assert registry.register(as_owner(100), "auth1", "Name", "http://x") == Ok(True)
        assert registry.get_record("auth1") == AuthorityRecord("Name", "http://x", True, 100, 100)

        before = state_digest(registry)
        assert registry.deactivate(as_stranger(102), "auth1") == Err(ErrorCode.UNAUTHORIZED)
        assert state_digest(registry) == before

        assert registry.deactivate(as_owner(105), "auth1") == Ok(True)
        assert registry.get_record("auth1") == AuthorityRecord("Name", "http://x", False, 100, 105)

        assert registry.update(as_owner(110), "auth1", "New", "http://y") == Ok(True)
        assert registry.get_record("auth1") == AuthorityRecord("New", "http://y", True, 100, 110)
