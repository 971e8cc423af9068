"""Unit tests for typed query specifications."""

import pytest
from sqlalchemy import select
from sqlalchemy.dialects import sqlite

from src.kernel.audit.audit_store import AUDIT_LOG_COLUMNS
from src.kernel.clock import ManualClock
from src.kernel.identity.principal import Principal
from src.kernel.models.audit_log import AuditLog
from src.kernel.models.user import UserRole
from src.kernel.permissions.query_spec import (
    DENY_ALL,
    ActorScope,
    ApprovalLinkScope,
    InstitutionScope,
    NoAccess,
    ProvinceScope,
    QuerySpec,
    ScopeColumns,
)
from src.kernel.permissions.scope_resolver import ScopeKind, ScopeResolver


MATCH_ALL = ("1", "true", "1 = 1")
MATCH_NONE = ("0", "false", "0 = 1")


def sql(clause, literal: bool = True) -> str:
    kwargs = {"literal_binds": True} if literal else {}
    return str(clause.compile(dialect=sqlite.dialect(), compile_kwargs=kwargs))


class TestQuerySpec:

    def test_empty_spec_matches_everything(self):
        assert sql(QuerySpec().to_clause(AUDIT_LOG_COLUMNS)) in MATCH_ALL

    def test_with_is_immutable(self):
        base = QuerySpec()
        narrowed = base.with_(InstitutionScope("inst-a"))
        assert base.filters == ()
        assert narrowed.filters == (InstitutionScope("inst-a"),)

    def test_institution_and_actor_are_anded(self):
        spec = QuerySpec().with_(InstitutionScope("inst-a")).with_(ActorScope("user-1"))
        text = sql(spec.to_clause(AUDIT_LOG_COLUMNS))
        assert "audit_logs.institution_id = 'inst-a'" in text
        assert "audit_logs.changed_by = 'user-1'" in text
        assert " AND " in text

    def test_province_scope_uses_institution_provinces(self):
        text = sql(QuerySpec().with_(ProvinceScope(("Gauteng",))).to_clause(AUDIT_LOG_COLUMNS))
        assert "institutions.province IN ('Gauteng')" in text

    def test_empty_province_scope_matches_nothing(self):
        text = sql(QuerySpec().with_(ProvinceScope(())).to_clause(AUDIT_LOG_COLUMNS))
        assert text in MATCH_NONE

    def test_no_access_wins(self):
        spec = QuerySpec().with_(InstitutionScope("inst-a")).with_(NoAccess())
        assert spec.denies_all
        assert sql(spec.to_clause(AUDIT_LOG_COLUMNS)) in MATCH_NONE

    def test_approval_link_checks_both_tables(self):
        spec = QuerySpec().with_(ApprovalLinkScope(at=ManualClock().now()))
        text = sql(spec.to_clause(AUDIT_LOG_COLUMNS), literal=False)
        assert "submission_resources" in text
        assert "request_resources" in text

    def test_missing_column_is_an_error(self):
        spec = QuerySpec().with_(ActorScope("user-1"))
        with pytest.raises(ValueError):
            spec.to_clause(ScopeColumns(institution_id=AuditLog.institution_id))

    def test_apply_adds_where(self):
        stmt = QuerySpec().with_(InstitutionScope("inst-a")).apply(select(AuditLog.id), AUDIT_LOG_COLUMNS)
        assert "WHERE" in sql(stmt)


class TestVisibilityCompilation:
    """Principal visibility compiled by the scope resolver (no store access needed)."""

    @pytest.fixture
    def resolver(self) -> ScopeResolver:
        return ScopeResolver(store=None, clock=ManualClock())

    def test_platform_admin_sees_all_audit(self, resolver):
        spec = resolver.query_spec_for(Principal(id="p", role=UserRole.PLATFORM_ADMIN), audit=True)
        assert spec.filters == ()

    def test_super_admin_sees_all_audit(self, resolver):
        spec = resolver.query_spec_for(Principal(id="p", role=UserRole.QCTO_SUPER_ADMIN), audit=True)
        assert spec.filters == ()

    def test_regulator_audit_is_province_bound(self, resolver):
        p = Principal(id="p", role=UserRole.QCTO_AUDITOR, assigned_provinces=["Gauteng"])
        assert resolver.query_spec_for(p, audit=True).filters == (ProvinceScope(("Gauteng",)),)

    def test_regulator_without_provinces_sees_nothing(self, resolver):
        p = Principal(id="p", role=UserRole.QCTO_AUDITOR)
        assert resolver.query_spec_for(p, audit=True) == DENY_ALL

    def test_staff_audit_is_own_actions(self, resolver):
        p = Principal(id="staff", role=UserRole.INSTITUTION_STAFF, institution_id="inst-a")
        assert resolver.query_spec_for(p, audit=True).filters == (
            InstitutionScope("inst-a"),
            ActorScope("staff"),
        )

    def test_institution_admin_audit_is_whole_institution(self, resolver):
        p = Principal(id="admin", role=UserRole.INSTITUTION_ADMIN, institution_id="inst-a")
        assert resolver.query_spec_for(p, audit=True).filters == (InstitutionScope("inst-a"),)

    def test_student_audit_is_denied(self, resolver):
        p = Principal(id="s", role=UserRole.STUDENT, institution_id="inst-a")
        assert resolver.query_spec_for(p, audit=True) == DENY_ALL

    def test_regulator_resource_visibility_is_approval_links(self, resolver):
        p = Principal(id="p", role=UserRole.QCTO_REVIEWER, assigned_provinces=["Gauteng"])
        assert resolver.visibility_for(p).kind == ScopeKind.APPROVAL_LINK
        (only,) = resolver.query_spec_for(p).filters
        assert isinstance(only, ApprovalLinkScope)

    def test_student_resource_visibility_is_self(self, resolver):
        p = Principal(id="s", role=UserRole.STUDENT)
        assert resolver.query_spec_for(p).filters == (ActorScope("s"),)

    def test_advisor_sees_nothing(self, resolver):
        assert resolver.query_spec_for(Principal(id="a", role=UserRole.ADVISOR)) == DENY_ALL
