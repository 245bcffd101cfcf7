"""
Shared test fixtures and utilities for the test suite.

This module provides fixtures for database sessions, users, a workspace with
members of every role, and a fake functions client.
"""
from datetime import UTC, datetime
from typing import AsyncGenerator
from unittest.mock import AsyncMock, Mock
from uuid import uuid4

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

import hamro_task.modules  # noqa: F401  registers every table
from hamro_task.core.models import Base
from hamro_task.core.realtime import change_feed
from hamro_task.integrations.functions import FunctionResult, FunctionsClient
from hamro_task.modules.auth.models import User
from hamro_task.modules.projects.models import Project, ProjectStatus, StatusCategory
from hamro_task.modules.workspace.dependencies import WorkspaceContext
from hamro_task.modules.workspace.models import Workspace, WorkspaceMember, WorkspaceRoleEnum

# Test database URL for in-memory SQLite
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@pytest_asyncio.fixture
async def test_engine():
    """Create a test database engine."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        poolclass=StaticPool,
        connect_args={
            "check_same_thread": False,
        },
    )

    # Create all tables
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    # Clean up
    await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(test_engine):
    return async_sessionmaker(
        test_engine, class_=AsyncSession, expire_on_commit=False, autoflush=False
    )


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Create a test database session."""
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture(autouse=True)
def reset_change_feed():
    """Each test starts with no change feed subscribers."""
    yield
    change_feed.close()


@pytest.fixture
def mock_db_session():
    """Create a mock database session for unit tests."""
    session = AsyncMock(spec=AsyncSession)
    session.add = Mock()
    session.commit = AsyncMock()
    session.rollback = AsyncMock()
    session.refresh = AsyncMock()
    session.execute = AsyncMock()
    session.flush = AsyncMock()
    return session


@pytest.fixture
def mock_functions():
    """Functions client whose calls all succeed."""
    client = AsyncMock(spec=FunctionsClient)
    ok = FunctionResult(success=True, data={})
    client.invoke.return_value = ok
    client.send_push_notification.return_value = ok
    client.send_payment_notification.return_value = ok
    client.send_invitation.return_value = ok
    client.reset_member_password.return_value = ok
    client.remove_member.return_value = ok
    return client


async def create_user(db: AsyncSession, email: str, full_name: str = None, **kwargs) -> User:
    user = User(id=uuid4(), email=email, full_name=full_name, is_active=True, **kwargs)
    db.add(user)
    await db.commit()
    return user


async def add_member(
    db: AsyncSession, workspace: Workspace, user: User, role: WorkspaceRoleEnum
) -> WorkspaceMember:
    member = WorkspaceMember(
        id=uuid4(),
        workspace_id=workspace.id,
        user_id=user.id,
        role=role.value,
    )
    db.add(member)
    await db.commit()
    return member


@pytest_asyncio.fixture
async def owner(db_session: AsyncSession) -> User:
    return await create_user(db_session, "owner@example.com", "Sita Sharma")


@pytest_asyncio.fixture
async def admin(db_session: AsyncSession) -> User:
    return await create_user(db_session, "admin@example.com", "Hari Thapa")


@pytest_asyncio.fixture
async def member(db_session: AsyncSession) -> User:
    return await create_user(db_session, "ram@example.com", "Ram Karki")


@pytest_asyncio.fixture
async def viewer(db_session: AsyncSession) -> User:
    return await create_user(db_session, "gita@example.com")


@pytest_asyncio.fixture
async def superuser(db_session: AsyncSession) -> User:
    return await create_user(db_session, "platform@example.com", "Platform Admin", is_superuser=True)


@pytest_asyncio.fixture
async def workspace(db_session: AsyncSession, owner, admin, member, viewer) -> Workspace:
    """A workspace with one member of each role."""
    ws = Workspace(id=uuid4(), name="Acme", created_by=owner.id)
    db_session.add(ws)
    await db_session.commit()
    await add_member(db_session, ws, owner, WorkspaceRoleEnum.OWNER)
    await add_member(db_session, ws, admin, WorkspaceRoleEnum.ADMIN)
    await add_member(db_session, ws, member, WorkspaceRoleEnum.MEMBER)
    await add_member(db_session, ws, viewer, WorkspaceRoleEnum.VIEWER)
    return ws


@pytest_asyncio.fixture
async def project(db_session: AsyncSession, workspace: Workspace, owner: User) -> Project:
    """A project with the default Todo / In Progress / Done columns."""
    proj = Project(id=uuid4(), workspace_id=workspace.id, name="Website", created_by=owner.id)
    db_session.add(proj)
    for position, (name, is_default, is_completed, category) in enumerate((
        ("Todo", True, False, StatusCategory.TODO),
        ("In Progress", False, False, StatusCategory.ACTIVE),
        ("Done", False, True, StatusCategory.DONE),
    )):
        db_session.add(ProjectStatus(
            id=uuid4(),
            project_id=proj.id,
            name=name,
            position=position,
            is_default=is_default,
            is_completed=is_completed,
            category=category.value,
        ))
    await db_session.commit()
    return proj


def make_context(workspace: Workspace, user: User, role: WorkspaceRoleEnum) -> WorkspaceContext:
    member = WorkspaceMember(workspace_id=workspace.id, user_id=user.id, role=role.value)
    return WorkspaceContext(workspace=workspace, user=user, member=member)


def now_utc() -> datetime:
    return datetime.now(UTC)


# Pytest configuration
def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line(
        "markers", "unit: mark test as a unit test"
    )
    config.addinivalue_line(
        "markers", "integration: mark test as an integration test"
    )


def pytest_collection_modifyitems(config, items):
    """Mark API tests as integration tests, the rest as unit tests."""
    for item in items:
        if "test_api" in item.nodeid:
            item.add_marker(pytest.mark.integration)
        else:
            item.add_marker(pytest.mark.unit)
