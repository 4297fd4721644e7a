# tests/conftest.py

from __future__ import annotations

from collections.abc import AsyncIterator, Awaitable, Callable
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from pathlib import Path
from uuid import uuid4

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from taskberry.db.base import Base
from taskberry.models.task import Task
from taskberry.models.user import User, UserRole, UserStatus
from taskberry.services.security import hash_password

from .fakes import FakeNotifier

PASSWORD = "password123"
# Shared by every fixture user; bcrypt is slow
PASSWORD_HASH = hash_password(PASSWORD)


@pytest_asyncio.fixture()
async def engine(tmp_path: Path) -> AsyncIterator[AsyncEngine]:
    """
    File-backed SQLite per test so that separate sessions (API requests vs
    fixture setup) each get their own connection.
    """
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'taskberry.sqlite3'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture()
def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest_asyncio.fixture()
async def db(session_factory: async_sessionmaker[AsyncSession]) -> AsyncIterator[AsyncSession]:
    async with session_factory() as session:
        yield session


@pytest.fixture()
def notifier() -> FakeNotifier:
    return FakeNotifier()


MakeUser = Callable[..., Awaitable[User]]
MakeTask = Callable[..., Awaitable[Task]]


@pytest.fixture()
def make_user(db: AsyncSession) -> MakeUser:
    async def _make_user(
        name: str,
        role: UserRole = UserRole.MEMBER,
        status: UserStatus = UserStatus.ACTIVE,
        supervisor: User | None = None,
        manager: User | None = None,
    ) -> User:
        user = User(
            id=uuid4(),
            name=name,
            email=f"{name.lower().replace(' ', '.')}@example.com",
            password_hash=PASSWORD_HASH,
            role=role.value,
            status=status.value,
            supervisor_id=supervisor.id if supervisor else None,
            manager_id=manager.id if manager else None,
        )
        db.add(user)
        await db.commit()
        return user

    return _make_user


@pytest.fixture()
def make_task(db: AsyncSession) -> MakeTask:
    async def _make_task(
        assignee: User,
        created_by: User,
        title: str = "Quarterly report",
        status: str = "not-started",
    ) -> Task:
        now = datetime.now(timezone.utc)
        task = Task(
            id=uuid4(),
            title=title,
            assignee_id=assignee.id,
            created_by_id=created_by.id,
            status=status,
            target_date=now + timedelta(days=7),
            assigned_date=now,
            last_updated=now,
            completed_date=now if status == "completed" else None,
            tags=[],
        )
        db.add(task)
        await db.commit()
        return task

    return _make_task


@dataclass
class Org:
    """A small two-team organisation used across the service tests."""

    admin: User
    m1: User
    m2: User
    s1: User
    s2: User
    x: User  # member under s1 and m1
    y: User  # member under s2 and m2
    direct: User  # member reporting to m1 without a supervisor


@pytest_asyncio.fixture()
async def org(make_user: MakeUser) -> Org:
    admin = await make_user("Admin", UserRole.SUPER_ADMIN)
    m1 = await make_user("Manager One", UserRole.MANAGER)
    m2 = await make_user("Manager Two", UserRole.MANAGER)
    s1 = await make_user("Supervisor One", UserRole.SUPERVISOR, manager=m1)
    s2 = await make_user("Supervisor Two", UserRole.SUPERVISOR, manager=m2)
    x = await make_user("Member X", supervisor=s1, manager=m1)
    y = await make_user("Member Y", supervisor=s2, manager=m2)
    direct = await make_user("Member Direct", manager=m1)
    return Org(admin=admin, m1=m1, m2=m2, s1=s1, s2=s2, x=x, y=y, direct=direct)
