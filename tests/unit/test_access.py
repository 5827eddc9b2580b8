"""
Unit tests for the access gate.

The gate is exercised directly with in-memory audit sinks: no HTTP,
no files. Each test checks both the decision and what was audited.
"""

import pytest

from src.core.access import (
    ADMIN_ROLES,
    MASTER_ROLES,
    AccessGate,
    AccessOutcome,
    Principal,
    RequestContext,
    normalize_roles,
)
from src.core.audit import AuditLevel, AuditLog
from src.core.errors import AccessError, ErrorKind


CONTEXT = RequestContext(path="/api/v1/files/reports", method="POST", source_address="10.0.0.7")


# ---------------------------------------------------------------------------
# Role normalization
# ---------------------------------------------------------------------------

class TestNormalizeRoles:
    """Single role, list of roles and the default all end up as a set."""

    def test_none_means_all_admin_roles(self):
        assert normalize_roles(None) == ADMIN_ROLES

    def test_single_role_becomes_singleton(self):
        assert normalize_roles("exam_admin") == frozenset({"exam_admin"})

    def test_list_is_deduplicated(self):
        assert normalize_roles(["admin", "admin", "exam_admin"]) == frozenset({"admin", "exam_admin"})

    def test_empty_list_is_rejected(self):
        """An empty role set is a configuration mistake, not 'deny everyone'."""
        with pytest.raises(ValueError, match="non-empty"):
            normalize_roles([])

    def test_blank_role_name_is_rejected(self):
        with pytest.raises(ValueError):
            normalize_roles(["admin", ""])

    def test_default_admin_vocabulary(self):
        assert ADMIN_ROLES == {
            "admin", "college_admin", "master_admin", "exam_admin", "academic_admin",
        }
        assert MASTER_ROLES == {"master_admin", "superadmin"}


# ---------------------------------------------------------------------------
# Decisions
# ---------------------------------------------------------------------------

class TestAuthorize:
    """The three outcomes and the audit record each one writes."""

    def test_exam_admin_granted_for_listed_roles(self, gate, security_sink):
        principal = Principal(id="1", role="exam_admin")

        decision = gate.authorize(principal, ["exam_admin", "admin"], CONTEXT)

        assert decision.outcome is AccessOutcome.GRANTED
        assert decision.granted
        assert len(security_sink.records) == 1
        record = security_sink.records[0]
        assert record.event == "Admin access granted"
        assert record.level is AuditLevel.INFO
        assert record.success is True
        assert record.principal_id == "1"
        assert record.principal_role == "exam_admin"
        assert record.path == CONTEXT.path

    def test_student_forbidden_by_default_admin_set(self, gate, security_sink):
        principal = Principal(id="2", role="student")

        decision = gate.authorize(principal, context=CONTEXT)

        assert decision.outcome is AccessOutcome.FORBIDDEN
        assert len(security_sink.records) == 1
        record = security_sink.records[0]
        assert record.event == "Forbidden access attempt"
        assert record.level is AuditLevel.WARNING
        assert record.success is False
        assert record.details["required_roles"] == sorted(ADMIN_ROLES)
        assert record.source_address == "10.0.0.7"

    def test_missing_principal_is_unauthenticated(self, gate, security_sink):
        decision = gate.authorize(None, context=CONTEXT)

        assert decision.outcome is AccessOutcome.UNAUTHENTICATED
        assert len(security_sink.records) == 1
        record = security_sink.records[0]
        assert record.event == "Unauthorized access attempt"
        assert record.method == "POST"
        assert record.principal_id is None

    @pytest.mark.parametrize("principal", [
        Principal(id="3", role=None),
        Principal(id=None, role="admin"),
        Principal(),
    ])
    def test_incomplete_principal_is_unauthenticated(self, gate, principal):
        """A role without an id (or the reverse) is not an identity."""
        decision = gate.authorize(principal)
        assert decision.outcome is AccessOutcome.UNAUTHENTICATED

    def test_only_role_decides(self, gate):
        """Same role, different ids: same outcome."""
        roles = "academic_admin"
        first = gate.authorize(Principal(id="10", role="academic_admin"), roles)
        second = gate.authorize(Principal(id="99", role="academic_admin"), roles)
        assert first.outcome is second.outcome is AccessOutcome.GRANTED

    def test_admin_role_outside_custom_set_is_forbidden(self, gate):
        decision = gate.authorize(Principal(id="4", role="admin"), MASTER_ROLES)
        assert decision.outcome is AccessOutcome.FORBIDDEN

    def test_every_call_writes_one_record(self, gate, security_sink):
        gate.authorize(None)
        gate.authorize(Principal(id="1", role="student"))
        gate.authorize(Principal(id="1", role="admin"))
        assert [r.event for r in security_sink.records] == [
            "Unauthorized access attempt",
            "Forbidden access attempt",
            "Admin access granted",
        ]

    def test_gate_keeps_no_state(self, gate):
        """A grant does not leak into the next caller's decision."""
        gate.authorize(Principal(id="1", role="admin"))
        decision = gate.authorize(Principal(id="2", role="student"))
        assert decision.outcome is AccessOutcome.FORBIDDEN


# ---------------------------------------------------------------------------
# Enforce
# ---------------------------------------------------------------------------

class TestEnforce:
    """Denials become AccessError with the right kind."""

    def test_granted_returns_decision(self, gate):
        decision = gate.enforce(Principal(id="1", role="admin"))
        assert decision.granted

    def test_forbidden_raises_with_required_roles(self, gate):
        with pytest.raises(AccessError) as exc_info:
            gate.enforce(Principal(id="2", role="student"), ["exam_admin", "admin"])

        assert exc_info.value.kind is ErrorKind.FORBIDDEN
        assert exc_info.value.details == "Required role: admin or exam_admin"

    def test_unauthenticated_raises(self, gate):
        with pytest.raises(AccessError) as exc_info:
            gate.enforce(None)
        assert exc_info.value.kind is ErrorKind.UNAUTHENTICATED


# ---------------------------------------------------------------------------
# Failing closed
# ---------------------------------------------------------------------------

class TestFailClosed:
    """If the decision cannot be recorded, nobody gets in."""

    def test_audit_failure_denies_an_otherwise_granted_request(self, failing_sink):
        gate = AccessGate(AuditLog("security", [failing_sink]))

        with pytest.raises(AccessError) as exc_info:
            gate.authorize(Principal(id="1", role="admin"), context=CONTEXT)

        assert exc_info.value.kind is ErrorKind.INTERNAL_FAULT
        assert exc_info.value.message == "Internal Server Error"
        # the grant and the fault record were both attempted
        assert failing_sink.attempts == 2

    def test_audit_failure_on_denial_is_internal_fault(self, failing_sink):
        gate = AccessGate(AuditLog("security", [failing_sink]))

        with pytest.raises(AccessError) as exc_info:
            gate.enforce(None)

        assert exc_info.value.kind is ErrorKind.INTERNAL_FAULT

    def test_partially_written_grant_is_superseded(self, failing_sink, security_sink):
        """
        A grant that reached one sink before another failed is followed by a
        denial for the same principal that names it, so no grant stands
        unretracted for a denied request.
        """
        gate = AccessGate(AuditLog("security", [security_sink, failing_sink]))

        with pytest.raises(AccessError):
            gate.authorize(Principal(id="1", role="admin"), context=CONTEXT)

        grant, fault = security_sink.records
        assert grant.success is True
        assert fault.event == "Error in access gate"
        assert fault.level is AuditLevel.ERROR
        assert fault.success is False
        assert fault.principal_id == "1"
        assert fault.principal_role == "admin"
        assert fault.details["supersedes"] == str(grant.id)
        assert "No space left" in fault.error

        superseded = {r.details.get("supersedes") for r in security_sink.records if not r.success}
        assert all(str(r.id) in superseded for r in security_sink.records if r.success)

    def test_fault_reaches_sinks_after_the_broken_one(self, failing_sink, security_sink):
        gate = AccessGate(AuditLog("security", [failing_sink, security_sink]))

        with pytest.raises(AccessError):
            gate.authorize(Principal(id="1", role="admin"))

        assert security_sink.records[-1].event == "Error in access gate"
        assert security_sink.records[-1].details["supersedes"] == str(security_sink.records[0].id)

    def test_failed_denial_is_not_marked_superseded(self, failing_sink, security_sink):
        """Only grants need retracting; a denial that half-failed is still a denial."""
        gate = AccessGate(AuditLog("security", [security_sink, failing_sink]))

        with pytest.raises(AccessError):
            gate.authorize(Principal(id="2", role="student"))

        assert [r.success for r in security_sink.records] == [False, False]
        assert "supersedes" not in security_sink.records[-1].details

    @pytest.mark.parametrize("roles", [[], ["admin", ""]])
    def test_bad_role_set_is_denied_and_audited(self, gate, security_sink, roles):
        with pytest.raises(AccessError) as exc_info:
            gate.authorize(Principal(id="1", role="admin"), roles, CONTEXT)

        assert exc_info.value.kind is ErrorKind.INTERNAL_FAULT
        assert isinstance(exc_info.value.__cause__, ValueError)
        assert [r.event for r in security_sink.records] == ["Error in access gate"]
        assert security_sink.records[0].success is False
