"""
Integration tests: access decisions against the SQL resource store.
"""

from datetime import timedelta

from sqlalchemy import update

from src.kernel.facade import ComplianceKernel
from src.kernel.models import (
    Document,
    Learner,
    Readiness,
    RegulatorRequest,
    RequestStatus,
    Submission,
    SubmissionStatus,
)
from src.kernel.permissions.access_engine import ReasonCode
from src.kernel.permissions.resource_store import SqlResourceStore
from src.kernel.permissions.resources import Action, ResourceRef, ResourceType
from src.kernel.permissions.scope_resolver import ScopeResolver

LEARNER_A = ResourceRef(ResourceType.LEARNER, "learner-a")
READINESS_A = ResourceRef(ResourceType.READINESS, "readiness-a")
FACILITATOR_A = ResourceRef(ResourceType.FACILITATOR, "facilitator-a")
DOCUMENT_A = ResourceRef(ResourceType.DOCUMENT, "document-a")
ENROLMENT_A = ResourceRef(ResourceType.ENROLMENT, "enrolment-a")


async def set_columns(sessions, model, row_id, **values):
    async with sessions() as session:
        async with session.begin():
            await session.execute(update(model).where(model.id == row_id).values(**values))


class TestOwnershipResolution:

    async def test_direct_owner(self, world, db_session):
        resolution = await ScopeResolver(SqlResourceStore(db_session)).resolve(LEARNER_A)
        assert resolution.institution_id == "inst-a"
        assert resolution.hops == 0
        assert resolution.record.owner_user_id == "user-student-a"

    async def test_document_resolves_through_facilitator_and_readiness(self, world, db_session):
        resolution = await ScopeResolver(SqlResourceStore(db_session)).resolve(DOCUMENT_A)
        assert resolution.institution_id == "inst-a"
        assert resolution.hops == 2
        assert resolution.record.ref == DOCUMENT_A

    async def test_soft_deleted_hop_is_unresolved(self, world, sessions, clock):
        await set_columns(sessions, Readiness, "readiness-a", deleted_at=clock.now())
        async with sessions() as session:
            assert await ScopeResolver(SqlResourceStore(session)).resolve(DOCUMENT_A) is None

    async def test_document_with_unknown_parent_type_is_unresolved(self, world, add_rows, db_session):
        await add_rows(Document(
            id="document-x",
            related_entity="SPACESHIP",
            related_entity_id="x",
            document_type="CV",
            file_name="x.pdf",
        ))
        ref = ResourceRef(ResourceType.DOCUMENT, "document-x")
        assert await ScopeResolver(SqlResourceStore(db_session)).resolve(ref) is None


class TestAccessAgainstDatabase:

    async def test_regulator_sees_learner_only_after_submission_approval(self, world, sessions, clock):
        kernel = ComplianceKernel(sessions, clock)
        reviewer = world.principals["qcto-reviewer"]

        verdict = await kernel.check_access(reviewer, LEARNER_A, Action.READ)
        assert not verdict.allowed
        assert verdict.reason == ReasonCode.NO_APPROVED_LINK

        await set_columns(sessions, Submission, "submission-pending", status=SubmissionStatus.APPROVED)

        verdict = await kernel.check_access(reviewer, LEARNER_A, Action.READ)
        assert verdict.allowed
        assert verdict.reason == ReasonCode.APPROVED_SUBMISSION

    async def test_deleted_submission_does_not_grant(self, world, sessions, clock):
        kernel = ComplianceKernel(sessions, clock)
        reviewer = world.principals["qcto-reviewer"]
        assert (await kernel.check_access(reviewer, READINESS_A, Action.REVIEW)).allowed

        await set_columns(sessions, Submission, "submission-approved", deleted_at=clock.now())

        verdict = await kernel.check_access(reviewer, READINESS_A, Action.REVIEW)
        assert verdict.reason == ReasonCode.NO_APPROVED_LINK

    async def test_request_link_grants_until_expiry(self, world, sessions, clock):
        kernel = ComplianceKernel(sessions, clock)
        reviewer = world.principals["qcto-reviewer"]
        assert not (await kernel.check_access(reviewer, ENROLMENT_A, Action.READ)).allowed

        await set_columns(
            sessions,
            RegulatorRequest,
            "request-a",
            status=RequestStatus.APPROVED,
            expires_at=clock.now() + timedelta(days=1),
        )
        verdict = await kernel.check_access(reviewer, ENROLMENT_A, Action.READ)
        assert verdict.reason == ReasonCode.APPROVED_REQUEST

        clock.advance(days=2)
        verdict = await kernel.check_access(reviewer, ENROLMENT_A, Action.READ)
        assert verdict.reason == ReasonCode.NO_APPROVED_LINK

    async def test_institution_isolation(self, world, sessions, clock):
        kernel = ComplianceKernel(sessions, clock)
        admin_b = world.principals["admin-b"]

        verdict = await kernel.check_access(admin_b, LEARNER_A, Action.READ)
        assert verdict.reason == ReasonCode.WRONG_INSTITUTION

        verdict = await kernel.check_access(admin_b, ResourceRef(ResourceType.LEARNER, "learner-b"), Action.WRITE)
        assert verdict.allowed

    async def test_soft_deleted_learner_is_not_found_for_owner(self, world, sessions, clock):
        kernel = ComplianceKernel(sessions, clock)
        await set_columns(sessions, Learner, "learner-a", deleted_at=clock.now())

        verdict = await kernel.check_access(world.principals["admin-a"], LEARNER_A, Action.READ)
        assert verdict.reason == ReasonCode.NOT_FOUND

        verdict = await kernel.check_access(world.principals["platform-admin"], LEARNER_A, Action.READ)
        assert verdict.allowed

    async def test_student_reads_own_learner(self, world, sessions, clock):
        kernel = ComplianceKernel(sessions, clock)
        verdict = await kernel.check_access(world.principals["student-a"], LEARNER_A, Action.READ)
        assert verdict.reason == ReasonCode.SELF
