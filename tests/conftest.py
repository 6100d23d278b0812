import itertools
import os
from datetime import time
from typing import AsyncGenerator, List, Optional

# Settings are read at import time
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["JWT_SECRET_KEY"] = "test-secret-key"
os.environ["TELEGRAM_BOT_TOKEN"] = ""
os.environ["CLOUDINARY_CLOUD_NAME"] = ""

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from app.auth.models import Student, User
from app.auth.security import create_access_token, default_student_password, generate_scan_code, hash_password
from app.core.cache import TTLCache
from app.core.clock import day_name
from app.core.dependencies import get_cache, get_notifier, get_storage
from app.core.models import Schedule, ScheduleStudent
from app.db.session import Base, get_db
from app.integrations.storage import StoredFile
from app.main import app


TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


class FakeNotifier:
    """Records messages instead of calling the Telegram API."""

    enabled = True

    def __init__(self) -> None:
        self.messages: List[str] = []

    async def send_message(self, text: str) -> bool:
        self.messages.append(text)
        return True


class FakeStorage:
    """In-memory stand-in for hosted storage. Disabled (inline mode) unless a test enables it."""

    def __init__(self, enabled: bool = False) -> None:
        self.enabled = enabled
        self.uploads: List[bytes] = []
        self.deleted: List[str] = []

    async def upload(self, data: bytes, content_type: str, subfolder: str = "") -> StoredFile:
        self.uploads.append(data)
        n = len(self.uploads)
        return StoredFile(
            url=f"https://files.test/{subfolder}/{n}",
            reference=f"image:{subfolder}/{n}",
        )

    async def delete(self, reference: Optional[str]) -> bool:
        self.deleted.append(reference)
        return True


def auth_headers(user: User) -> dict:
    token = create_access_token(
        subject={"sub": str(user.id), "user_id": str(user.id), "role": user.role}
    )
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture()
async def engine():
    """Fresh in-memory SQLite database per test."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    @event.listens_for(engine.sync_engine, "connect")
    def _enable_foreign_keys(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture()
def session_factory(engine):
    return async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture()
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Session for arranging data and checking rows; requests get their own sessions."""
    async with session_factory() as session:
        yield session


@pytest.fixture()
def notifier() -> FakeNotifier:
    return FakeNotifier()


@pytest.fixture()
def storage() -> FakeStorage:
    return FakeStorage()


@pytest.fixture()
def cache() -> TTLCache:
    return TTLCache(30)


@pytest.fixture()
async def client(session_factory, notifier, storage, cache) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client bound to the FastAPI app."""

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_notifier] = lambda: notifier
    app.dependency_overrides[get_storage] = lambda: storage
    app.dependency_overrides[get_cache] = lambda: cache
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


@pytest.fixture()
async def admin_user(db_session: AsyncSession) -> User:
    user = User(
        email="admin@attendance.com",
        password_hash=hash_password("admin123"),
        name="Admin User",
        role="ADMIN",
    )
    db_session.add(user)
    await db_session.commit()
    return user


@pytest.fixture()
def admin_headers(admin_user: User) -> dict:
    return auth_headers(admin_user)


@pytest.fixture()
def make_student(db_session: AsyncSession):
    """Factory: creates a STUDENT user with profile, returns (student, auth headers)."""
    counter = itertools.count(1)

    async def _make(class_name: str = "5A", name: Optional[str] = None):
        n = next(counter)
        number = f"S{n:03d}"
        user = User(
            email=f"student{n}@sekolah.sch.id",
            password_hash=hash_password(default_student_password(number)),
            name=name or f"Student {n}",
            role="STUDENT",
        )
        db_session.add(user)
        await db_session.flush()
        student = Student(
            user_id=user.id,
            student_number=number,
            class_name=class_name,
            qr_code=generate_scan_code(number),
        )
        db_session.add(student)
        await db_session.commit()
        return student, auth_headers(user)

    return _make


@pytest.fixture()
def make_schedule(db_session: AsyncSession):
    """Factory: creates a schedule (recurring by default) with the given students assigned."""

    async def _make(
        students=(),
        day: Optional[str] = "Senin",
        specific_date=None,
        start_time: time = time(8, 0),
        end_time: time = time(9, 30),
        subject: str = "Matematika",
        class_name: str = "5A",
    ) -> Schedule:
        schedule = Schedule(
            subject=subject,
            class_name=class_name,
            day=day_name(specific_date) if specific_date else day,
            specific_date=specific_date,
            start_time=start_time,
            end_time=end_time,
            teacher_name="Bu Sari",
            room="R101",
            qr_code=generate_scan_code(subject, class_name),
        )
        db_session.add(schedule)
        await db_session.flush()
        for s in students:
            db_session.add(ScheduleStudent(schedule_id=schedule.id, student_id=s.id))
        await db_session.commit()
        return schedule

    return _make
