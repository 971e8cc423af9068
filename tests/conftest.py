"""
Pytest fixtures for kernel tests.

Integration tests run against a file-backed SQLite database per test so that
every session opened by the kernel sees the same data.
"""

from dataclasses import dataclass
from datetime import timedelta
from typing import AsyncGenerator, Dict

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from src.config import Settings
from src.database import create_engine_for, create_session_factory, init_db
from src.kernel.clock import ManualClock
from src.kernel.identity.identity_service import principal_from_user
from src.kernel.identity.principal import Principal
from src.kernel.models import (
    Document,
    Enrolment,
    Facilitator,
    Institution,
    Learner,
    Readiness,
    RegulatorRequest,
    RequestResource,
    RequestStatus,
    Submission,
    SubmissionResource,
    SubmissionStatus,
    User,
    UserRole,
)


@pytest_asyncio.fixture(scope="function")
async def db_engine(tmp_path) -> AsyncGenerator[AsyncEngine, None]:
    """Fresh SQLite database file with all kernel tables."""
    engine = create_engine_for(f"sqlite+aiosqlite:///{tmp_path / 'kernel.db'}")
    await init_db(target=engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def sessions(db_engine) -> async_sessionmaker[AsyncSession]:
    return create_session_factory(db_engine)


@pytest_asyncio.fixture
async def db_session(sessions) -> AsyncGenerator[AsyncSession, None]:
    async with sessions() as session:
        yield session


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock()


@pytest.fixture
def settings() -> Settings:
    return Settings(
        impersonation_token_expiry_seconds=3600,
        impersonation_inactivity_timeout_seconds=900,
        impersonation_max_active_sessions=5,
    )


async def persist(sessions: async_sessionmaker[AsyncSession], *objects) -> None:
    """Insert rows in their own committed transaction."""
    async with sessions() as session:
        async with session.begin():
            session.add_all(objects)


@pytest.fixture
def add_rows(sessions):
    """Callable that commits the given rows: ``await add_rows(row, ...)``."""

    async def _add(*objects) -> None:
        await persist(sessions, *objects)

    return _add


@dataclass
class World:
    """
    Standard fixture data.

    Institution A (Gauteng) and B (Limpopo). learner-a belongs to A, is linked
    to student-a and is only in a SUBMITTED (not approved) submission.
    readiness-a is in an APPROVED submission; facilitator-a hangs off it and
    document-a hangs off the facilitator. enrolment-a is covered by a
    PENDING request.
    """

    users: Dict[str, User]
    principals: Dict[str, Principal]
    institution_a: Institution
    institution_b: Institution
    readiness_a: Readiness
    facilitator_a: Facilitator
    learner_a: Learner
    learner_b: Learner
    enrolment_a: Enrolment
    document_a: Document
    submission_pending: Submission
    submission_approved: Submission
    request_a: RegulatorRequest


@pytest_asyncio.fixture
async def world(sessions, clock) -> World:
    inst_a = Institution(id="inst-a", legal_name="Acme Skills Academy", province="Gauteng")
    inst_b = Institution(id="inst-b", legal_name="Bokamoso Training", province="Limpopo")

    def user(key: str, role: UserRole, **kwargs) -> User:
        return User(
            id=f"user-{key}",
            email=f"{key}@example.org",
            full_name=key.replace("-", " ").title(),
            role=role,
            **kwargs,
        )

    users = {
        "platform-admin": user("platform-admin", UserRole.PLATFORM_ADMIN),
        "qcto-super": user("qcto-super", UserRole.QCTO_SUPER_ADMIN, qcto_id="qcto"),
        "qcto-admin": user("qcto-admin", UserRole.QCTO_ADMIN, qcto_id="qcto", assigned_provinces=["Gauteng"]),
        "qcto-reviewer": user(
            "qcto-reviewer", UserRole.QCTO_REVIEWER, qcto_id="qcto", assigned_provinces=["Gauteng"]
        ),
        "qcto-reviewer-lp": user(
            "qcto-reviewer-lp", UserRole.QCTO_REVIEWER, qcto_id="qcto", assigned_provinces=["Limpopo"]
        ),
        "qcto-user-wc": user(
            "qcto-user-wc", UserRole.QCTO_USER, qcto_id="qcto", assigned_provinces=["Western Cape"]
        ),
        "qcto-auditor": user("qcto-auditor", UserRole.QCTO_AUDITOR, qcto_id="qcto", assigned_provinces=["Gauteng"]),
        "admin-a": user("admin-a", UserRole.INSTITUTION_ADMIN, institution_id="inst-a"),
        "staff-a": user("staff-a", UserRole.INSTITUTION_STAFF, institution_id="inst-a"),
        "admin-b": user("admin-b", UserRole.INSTITUTION_ADMIN, institution_id="inst-b"),
        "staff-b": user("staff-b", UserRole.INSTITUTION_STAFF, institution_id="inst-b"),
        "student-a": user("student-a", UserRole.STUDENT, institution_id="inst-a"),
        "advisor": user("advisor", UserRole.ADVISOR),
    }

    readiness_a = Readiness(id="readiness-a", institution_id="inst-a", qualification_title="Electrician")
    facilitator_a = Facilitator(id="facilitator-a", readiness_id="readiness-a", full_name="Naledi Dlamini")
    learner_a = Learner(
        id="learner-a",
        institution_id="inst-a",
        user_id="user-student-a",
        national_id="9001015800087",
        first_name="Thabo",
        last_name="Mokoena",
    )
    learner_b = Learner(
        id="learner-b",
        institution_id="inst-b",
        national_id="9202025800088",
        first_name="Lerato",
        last_name="Sithole",
    )
    enrolment_a = Enrolment(
        id="enrolment-a", institution_id="inst-a", learner_id="learner-a", qualification_title="Electrician"
    )
    document_a = Document(
        id="document-a",
        related_entity="FACILITATOR",
        related_entity_id="facilitator-a",
        document_type="CV",
        file_name="cv.pdf",
    )
    submission_pending = Submission(
        id="submission-pending", institution_id="inst-a", title="Learner intake", status=SubmissionStatus.SUBMITTED
    )
    submission_approved = Submission(
        id="submission-approved", institution_id="inst-a", title="Readiness", status=SubmissionStatus.APPROVED
    )
    request_a = RegulatorRequest(
        id="request-a",
        institution_id="inst-a",
        requested_by="user-qcto-reviewer",
        title="Enrolment records",
        status=RequestStatus.PENDING,
        expires_at=clock.now() + timedelta(days=30),
    )

    await persist(sessions, inst_a, inst_b, *users.values())
    await persist(sessions, readiness_a, learner_a, learner_b)
    await persist(sessions, facilitator_a, enrolment_a, submission_pending, submission_approved, request_a)
    await persist(
        sessions,
        document_a,
        SubmissionResource(submission_id="submission-pending", resource_type="LEARNER", resource_id_value="learner-a"),
        SubmissionResource(
            submission_id="submission-approved", resource_type="READINESS", resource_id_value="readiness-a"
        ),
        RequestResource(request_id="request-a", resource_type="ENROLMENT", resource_id_value="enrolment-a"),
    )

    return World(
        users=users,
        principals={key: principal_from_user(u) for key, u in users.items()},
        institution_a=inst_a,
        institution_b=inst_b,
        readiness_a=readiness_a,
        facilitator_a=facilitator_a,
        learner_a=learner_a,
        learner_b=learner_b,
        enrolment_a=enrolment_a,
        document_a=document_a,
        submission_pending=submission_pending,
        submission_approved=submission_approved,
        request_a=request_a,
    )
