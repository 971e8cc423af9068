"""Unit tests for the access decision engine against an in-memory store."""

from datetime import datetime, timezone
from typing import Dict, Optional
from unittest.mock import AsyncMock

import pytest
from sqlalchemy.exc import OperationalError

from src.kernel.clock import ManualClock
from src.kernel.errors import AccessStoreUnavailable, ForbiddenError
from src.kernel.identity.principal import Principal
from src.kernel.models.user import UserRole
from src.kernel.permissions.access_engine import (
    AccessDecisionEngine,
    ReasonCode,
    delegation_verdict,
)
from src.kernel.permissions.capabilities import Capability
from src.kernel.permissions.resources import (
    ACTIVE,
    Action,
    Deleted,
    ResourceRecord,
    ResourceRef,
    ResourceType,
    UserSnapshot,
)
from src.kernel.permissions.scope_resolver import ScopeKind

DELETED = Deleted(at=datetime(2025, 6, 1, tzinfo=timezone.utc))


class FakeStore:
    """ResourceStore double with call counting on the link lookups."""

    def __init__(self):
        self.records: Dict[ResourceRef, ResourceRecord] = {}
        self.users: Dict[str, UserSnapshot] = {}
        self.has_approved_submission_link = AsyncMock(return_value=False)
        self.has_approved_request_link = AsyncMock(return_value=False)
        self.get_record = AsyncMock(side_effect=lambda ref: self.records.get(ref))
        self.get_user = AsyncMock(side_effect=lambda user_id: self.users.get(user_id))

    async def lock_for_update(self, ref: ResourceRef) -> Optional[ResourceRecord]:
        return self.records.get(ref)

    def add(self, ref: ResourceRef, institution_id=None, parent=None, lifecycle=ACTIVE, owner_user_id=None):
        self.records[ref] = ResourceRecord(
            ref=ref,
            lifecycle=lifecycle,
            institution_id=institution_id,
            parent=parent,
            owner_user_id=owner_user_id,
        )
        return ref


def principal(role: UserRole, pid: str = "p1", **kwargs) -> Principal:
    return Principal(id=pid, role=role, **kwargs)


LEARNER = ResourceRef(ResourceType.LEARNER, "L1")
READINESS = ResourceRef(ResourceType.READINESS, "R1")
FACILITATOR = ResourceRef(ResourceType.FACILITATOR, "F1")


@pytest.fixture
def store() -> FakeStore:
    s = FakeStore()
    s.add(LEARNER, institution_id="A", owner_user_id="student-1")
    s.add(READINESS, institution_id="B")
    s.add(FACILITATOR, parent=READINESS)
    return s


@pytest.fixture
def engine(store) -> AccessDecisionEngine:
    return AccessDecisionEngine(store, ManualClock())


class TestGlobalOverride:

    @pytest.mark.parametrize("action", list(Action))
    async def test_allows_any_action(self, engine, action):
        verdict = await engine.check_access(principal(UserRole.PLATFORM_ADMIN), LEARNER, action)
        assert verdict.allowed
        assert verdict.reason == ReasonCode.GLOBAL_OVERRIDE

    async def test_allows_without_touching_the_store(self, engine, store):
        missing = ResourceRef(ResourceType.DOCUMENT, "nope")
        verdict = await engine.check_access(principal(UserRole.PLATFORM_ADMIN), missing, Action.WRITE)
        assert verdict.allowed
        assert store.get_record.await_count == 0


class TestInstitutionPrincipal:

    async def test_own_institution_allowed(self, engine):
        p = principal(UserRole.INSTITUTION_ADMIN, institution_id="A")
        verdict = await engine.check_access(p, LEARNER, Action.WRITE)
        assert verdict.allowed
        assert verdict.reason == ReasonCode.INSTITUTION_MATCH
        assert verdict.institution_id == "A"
        assert verdict.scope_applied.kind == ScopeKind.INSTITUTION

    @pytest.mark.parametrize("role", [UserRole.INSTITUTION_ADMIN, UserRole.INSTITUTION_STAFF])
    async def test_other_institution_denied(self, engine, role):
        p = principal(role, institution_id="A")
        verdict = await engine.check_access(p, READINESS, Action.READ)
        assert not verdict.allowed
        assert verdict.reason == ReasonCode.WRONG_INSTITUTION

    async def test_ownership_through_parent(self, engine):
        p = principal(UserRole.INSTITUTION_STAFF, institution_id="B")
        verdict = await engine.check_access(p, FACILITATOR, Action.READ)
        assert verdict.allowed
        assert verdict.institution_id == "B"

    async def test_missing_resource_is_not_found(self, engine):
        p = principal(UserRole.INSTITUTION_ADMIN, institution_id="A")
        verdict = await engine.check_access(p, ResourceRef(ResourceType.LEARNER, "ghost"), Action.READ)
        assert verdict.reason == ReasonCode.NOT_FOUND

    async def test_soft_deleted_resource_is_not_found(self, engine, store):
        ref = store.add(ResourceRef(ResourceType.ENROLMENT, "E1"), institution_id="A", lifecycle=DELETED)
        p = principal(UserRole.INSTITUTION_ADMIN, institution_id="A")
        verdict = await engine.check_access(p, ref, Action.READ)
        assert not verdict.allowed
        assert verdict.reason == ReasonCode.NOT_FOUND

    async def test_deleted_parent_breaks_ownership(self, engine, store):
        store.add(READINESS, institution_id="B", lifecycle=DELETED)
        p = principal(UserRole.INSTITUTION_ADMIN, institution_id="B")
        verdict = await engine.check_access(p, FACILITATOR, Action.READ)
        assert verdict.reason == ReasonCode.NOT_FOUND

    async def test_no_institution_is_scope_empty(self, engine):
        verdict = await engine.check_access(principal(UserRole.INSTITUTION_ADMIN), LEARNER, Action.READ)
        assert verdict.reason == ReasonCode.SCOPE_EMPTY

    async def test_cannot_review(self, engine):
        p = principal(UserRole.INSTITUTION_ADMIN, institution_id="A")
        verdict = await engine.check_access(p, LEARNER, Action.REVIEW)
        assert verdict.reason == ReasonCode.ROLE_NOT_PERMITTED

    async def test_never_queries_approval_links(self, engine, store):
        p = principal(UserRole.INSTITUTION_ADMIN, institution_id="A")
        await engine.check_access(p, LEARNER, Action.READ)
        await engine.check_access(p, READINESS, Action.READ)
        assert store.has_approved_submission_link.await_count == 0
        assert store.has_approved_request_link.await_count == 0


class TestRegulatorPrincipal:

    @pytest.fixture
    def reviewer(self) -> Principal:
        return principal(UserRole.QCTO_REVIEWER, assigned_provinces=["Gauteng"])

    async def test_no_link_is_denied(self, engine, reviewer):
        verdict = await engine.check_access(reviewer, LEARNER, Action.READ)
        assert not verdict.allowed
        assert verdict.reason == ReasonCode.NO_APPROVED_LINK

    async def test_submission_link_short_circuits_request_lookup(self, engine, store, reviewer):
        store.has_approved_submission_link.return_value = True

        verdict = await engine.check_access(reviewer, LEARNER, Action.READ)

        assert verdict.allowed
        assert verdict.reason == ReasonCode.APPROVED_SUBMISSION
        assert verdict.institution_id == "A"
        store.has_approved_submission_link.assert_awaited_once_with(ResourceType.LEARNER, "L1")
        assert store.has_approved_request_link.await_count == 0

    async def test_request_link_checked_with_clock_time(self, store, reviewer):
        clock = ManualClock()
        engine = AccessDecisionEngine(store, clock)
        store.has_approved_request_link.return_value = True

        verdict = await engine.check_access(reviewer, LEARNER, Action.READ)

        assert verdict.reason == ReasonCode.APPROVED_REQUEST
        store.has_approved_request_link.assert_awaited_once_with(ResourceType.LEARNER, "L1", clock.now())

    async def test_write_is_never_allowed(self, engine, store, reviewer):
        store.has_approved_submission_link.return_value = True
        verdict = await engine.check_access(reviewer, LEARNER, Action.WRITE)
        assert verdict.reason == ReasonCode.ROLE_NOT_PERMITTED

    async def test_review_requires_review_capability(self, engine, store):
        store.has_approved_submission_link.return_value = True
        viewer = principal(UserRole.QCTO_VIEWER, assigned_provinces=["Gauteng"])

        assert (await engine.check_access(viewer, LEARNER, Action.READ)).allowed
        verdict = await engine.check_access(viewer, LEARNER, Action.REVIEW)
        assert verdict.reason == ReasonCode.ROLE_NOT_PERMITTED

    async def test_missing_resource_skips_link_lookup(self, engine, store, reviewer):
        verdict = await engine.check_access(reviewer, ResourceRef(ResourceType.LEARNER, "ghost"), Action.READ)
        assert verdict.reason == ReasonCode.NOT_FOUND
        assert store.has_approved_submission_link.await_count == 0

    async def test_national_scope_needs_no_link(self, engine, store):
        verdict = await engine.check_access(principal(UserRole.QCTO_SUPER_ADMIN), LEARNER, Action.REVIEW)
        assert verdict.allowed
        assert verdict.reason == ReasonCode.NATIONAL_SCOPE
        assert store.has_approved_submission_link.await_count == 0

    async def test_national_scope_cannot_write(self, engine):
        verdict = await engine.check_access(principal(UserRole.QCTO_SUPER_ADMIN), LEARNER, Action.WRITE)
        assert verdict.reason == ReasonCode.ROLE_NOT_PERMITTED


class TestStudentAndOtherRoles:

    async def test_student_reads_own_learner_record(self, engine):
        verdict = await engine.check_access(principal(UserRole.STUDENT, "student-1"), LEARNER, Action.READ)
        assert verdict.allowed
        assert verdict.reason == ReasonCode.SELF

    async def test_student_cannot_read_someone_else(self, engine):
        verdict = await engine.check_access(principal(UserRole.STUDENT, "student-2"), LEARNER, Action.READ)
        assert verdict.reason == ReasonCode.ROLE_NOT_PERMITTED

    async def test_student_cannot_write_own_record(self, engine):
        verdict = await engine.check_access(principal(UserRole.STUDENT, "student-1"), LEARNER, Action.WRITE)
        assert not verdict.allowed

    async def test_advisor_is_denied(self, engine, store):
        verdict = await engine.check_access(principal(UserRole.ADVISOR), LEARNER, Action.READ)
        assert verdict.reason == ReasonCode.ROLE_NOT_PERMITTED
        assert store.get_record.await_count == 0

    async def test_unknown_action_is_denied(self, engine):
        p = principal(UserRole.INSTITUTION_ADMIN, institution_id="A")
        verdict = await engine.check_access(p, LEARNER, "DELETE")
        assert not verdict.allowed
        assert verdict.reason == ReasonCode.ROLE_NOT_PERMITTED


class TestEngineBehaviour:

    async def test_identical_inputs_give_identical_verdicts(self, engine):
        p = principal(UserRole.INSTITUTION_STAFF, institution_id="A")
        first = await engine.check_access(p, READINESS, Action.READ)
        second = await engine.check_access(p, READINESS, Action.READ)
        assert first == second

    async def test_store_failure_raises_unavailable(self, engine, store):
        store.get_record.side_effect = OperationalError("SELECT", {}, Exception("db down"))
        p = principal(UserRole.INSTITUTION_ADMIN, institution_id="A")
        with pytest.raises(AccessStoreUnavailable):
            await engine.check_access(p, LEARNER, Action.READ)

    async def test_assert_access_hides_reason_in_message(self, engine):
        p = principal(UserRole.INSTITUTION_ADMIN, institution_id="A")
        with pytest.raises(ForbiddenError) as exc_info:
            await engine.assert_access(p, ResourceRef(ResourceType.LEARNER, "ghost"), Action.READ)
        assert exc_info.value.reason == ReasonCode.NOT_FOUND.value
        assert "ghost" not in exc_info.value.message

    async def test_assert_access_returns_verdict(self, engine):
        p = principal(UserRole.INSTITUTION_ADMIN, institution_id="A")
        verdict = await engine.assert_access(p, LEARNER, Action.READ)
        assert verdict.allowed

    def test_assert_capability(self, engine):
        engine.assert_capability(principal(UserRole.QCTO_AUDITOR), Capability.AUDIT_VIEW)
        with pytest.raises(ForbiddenError):
            engine.assert_capability(principal(UserRole.STUDENT), Capability.AUDIT_VIEW)


def snapshot(role: UserRole, uid: str = "t1", lifecycle=ACTIVE, **kwargs) -> UserSnapshot:
    return UserSnapshot(principal=Principal(id=uid, role=role, **kwargs), lifecycle=lifecycle)


class TestDelegation:
    """Role-pair rules for acting on behalf of another user."""

    def test_scoped_regulator_admin_needs_shared_province(self):
        admin = principal(UserRole.QCTO_ADMIN, assigned_provinces=["Gauteng"])

        western_cape = snapshot(UserRole.QCTO_USER, assigned_provinces=["Western Cape"])
        assert delegation_verdict(admin, western_cape).reason == ReasonCode.OUT_OF_SCOPE

        overlapping = snapshot(UserRole.QCTO_USER, assigned_provinces=["Gauteng", "Limpopo"])
        verdict = delegation_verdict(admin, overlapping)
        assert verdict.allowed
        assert verdict.reason == ReasonCode.DELEGATION_PERMITTED

    def test_scoped_regulator_admin_with_no_provinces(self):
        admin = principal(UserRole.QCTO_ADMIN)
        target = snapshot(UserRole.QCTO_USER, assigned_provinces=["Gauteng"])
        assert delegation_verdict(admin, target).reason == ReasonCode.SCOPE_EMPTY

    def test_scoped_regulator_admin_cannot_target_super_admin(self):
        admin = principal(UserRole.QCTO_ADMIN, assigned_provinces=["Gauteng"])
        target = snapshot(UserRole.QCTO_SUPER_ADMIN, assigned_provinces=["Gauteng"])
        assert delegation_verdict(admin, target).reason == ReasonCode.ROLE_NOT_PERMITTED

    def test_super_admin_targets_any_other_regulator(self):
        boss = principal(UserRole.QCTO_SUPER_ADMIN)
        assert delegation_verdict(boss, snapshot(UserRole.QCTO_VIEWER)).allowed
        assert not delegation_verdict(boss, snapshot(UserRole.QCTO_SUPER_ADMIN)).allowed
        assert not delegation_verdict(boss, snapshot(UserRole.INSTITUTION_ADMIN, institution_id="A")).allowed

    def test_institution_admin_same_institution_only(self):
        admin = principal(UserRole.INSTITUTION_ADMIN, institution_id="A")
        assert delegation_verdict(admin, snapshot(UserRole.INSTITUTION_STAFF, institution_id="A")).allowed
        assert delegation_verdict(admin, snapshot(UserRole.STUDENT, institution_id="A")).allowed
        other = snapshot(UserRole.STUDENT, institution_id="B")
        assert delegation_verdict(admin, other).reason == ReasonCode.WRONG_INSTITUTION

    def test_institution_admin_cannot_target_peer_admin(self):
        admin = principal(UserRole.INSTITUTION_ADMIN, institution_id="A")
        peer = snapshot(UserRole.INSTITUTION_ADMIN, institution_id="A")
        assert delegation_verdict(admin, peer).reason == ReasonCode.ROLE_NOT_PERMITTED

    def test_global_override_targets_anyone_live(self):
        root = principal(UserRole.PLATFORM_ADMIN)
        assert delegation_verdict(root, snapshot(UserRole.QCTO_SUPER_ADMIN)).allowed
        assert delegation_verdict(root, snapshot(UserRole.STUDENT, lifecycle=DELETED)).reason == ReasonCode.NOT_FOUND

    def test_missing_target(self):
        assert delegation_verdict(principal(UserRole.PLATFORM_ADMIN), None).reason == ReasonCode.NOT_FOUND

    @pytest.mark.parametrize("role", [UserRole.INSTITUTION_STAFF, UserRole.QCTO_USER, UserRole.STUDENT])
    def test_roles_without_delegation_rules(self, role):
        actor = principal(role, institution_id="A", assigned_provinces=["Gauteng"])
        target = snapshot(UserRole.STUDENT, institution_id="A", assigned_provinces=["Gauteng"])
        assert delegation_verdict(actor, target).reason == ReasonCode.ROLE_NOT_PERMITTED

    async def test_check_delegation_loads_target(self, engine, store):
        store.users["t1"] = snapshot(UserRole.STUDENT, institution_id="A")
        admin = principal(UserRole.INSTITUTION_ADMIN, institution_id="A")
        verdict = await engine.check_delegation(admin, "t1")
        assert verdict.allowed
        store.get_user.assert_awaited_once_with("t1")
