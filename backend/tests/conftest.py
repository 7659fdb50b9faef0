import os
import sys
from pathlib import Path
import uuid
import time

os.environ.setdefault("DATABASE_URL", "sqlite+pysqlite:///:memory:")

import pytest
from fastapi.testclient import TestClient

backend_dir = Path(__file__).resolve().parents[1]
if str(backend_dir) not in sys.path:
    sys.path.insert(0, str(backend_dir))

from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool

from coursehub.db.base import Base
from coursehub.db import session as session_module
from coursehub.main import create_app

# Import models so that they are registered in Base.metadata before create_all.
import coursehub.models  # noqa: F401
from coursehub.core.security import create_access_token, hash_password
from coursehub.models.course import Course, Lesson
from coursehub.models.quiz import Question, QuestionOption, QuestionType, Quiz
from coursehub.models.user import User, UserRole


class _MemoryRedis:
    def __init__(self):
        self._data: dict[str, tuple[str, float | None]] = {}

    def ping(self):
        return True

    def _now(self) -> float:
        return time.time()

    def _get_entry(self, key: str):
        v = self._data.get(key)
        if not v:
            return None
        value, exp = v
        if exp is not None and exp <= self._now():
            self._data.pop(key, None)
            return None
        return value, exp

    def get(self, key: str):
        entry = self._get_entry(key)
        return entry[0] if entry else None

    def incr(self, key: str):
        cur = self.get(key)
        n = int(cur or 0) + 1
        _, exp = self._data.get(key, ("", None))
        self._data[key] = (str(n), exp)
        return n

    def expire(self, key: str, seconds: int):
        entry = self._get_entry(key)
        if not entry:
            return False
        value, _ = entry
        self._data[key] = (value, self._now() + int(seconds))
        return True

    def ttl(self, key: str):
        entry = self._get_entry(key)
        if not entry:
            return -2
        _, exp = entry
        if exp is None:
            return -1
        return max(0, int(exp - self._now()))

    def flushall(self):
        self._data.clear()


# SQLite in-memory, shared through StaticPool, patched over the session module
# so both the app dependency and the fixtures see the same database.
_engine = create_engine(
    "sqlite+pysqlite:///:memory:",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
Base.metadata.create_all(bind=_engine)
session_module.engine = _engine
session_module.SessionLocal = session_module.sessionmaker(autocommit=False, autoflush=False, bind=_engine)


# Stub Redis at import time (rate limiting + readiness check).
_mem_redis = _MemoryRedis()
import coursehub.core.redis_client as redis_client_module

redis_client_module.get_redis = lambda: _mem_redis

import coursehub.core.rate_limit as rate_limit_module
rate_limit_module.get_redis = lambda: _mem_redis

import coursehub.routers.health as health_router_module
health_router_module.get_redis = lambda: _mem_redis


@pytest.fixture(autouse=True)
def _reset_rate_limits():
    _mem_redis.flushall()
    yield


@pytest.fixture(scope="session")
def client():
    app = create_app()

    def _get_db_override():
        db = session_module.SessionLocal()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[session_module.get_db] = _get_db_override
    return TestClient(app)


@pytest.fixture()
def db():
    with session_module.SessionLocal() as session:
        yield session


def make_user(db, *, role: UserRole = UserRole.student, password: str = "testpass123") -> User:
    user = User(name=f"{role.value}_{uuid.uuid4().hex[:8]}", role=role, password_hash=hash_password(password))
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def headers_for(user: User) -> dict[str, str]:
    token = create_access_token(user_id=str(user.id), role=user.role.value)
    return {"Authorization": f"Bearer {token}"}


def make_lesson(db, *, teacher: User) -> Lesson:
    course = Course(title="Course", teacher_id=teacher.id)
    db.add(course)
    db.flush()
    lesson = Lesson(course_id=course.id, title="Lesson", order_index=1)
    db.add(lesson)
    db.commit()
    db.refresh(lesson)
    return lesson


def make_quiz(db, *, lesson: Lesson, published: bool = True, time_limit_minutes: int | None = 30) -> Quiz:
    quiz = Quiz(lesson_id=lesson.id, title="Quiz", time_limit_minutes=time_limit_minutes, is_published=published)
    db.add(quiz)
    db.commit()
    db.refresh(quiz)
    return quiz


def add_question(
    db,
    *,
    quiz: Quiz,
    type: QuestionType,
    points: int = 1,
    options: list[tuple[str, bool]] | None = None,
    order_index: int = 1,
    content: str = "Question?",
) -> tuple[Question, list[QuestionOption]]:
    q = Question(quiz_id=quiz.id, type=type, content=content, points=points, order_index=order_index)
    db.add(q)
    db.flush()
    opts = []
    for i, (text, correct) in enumerate(options or [], start=1):
        o = QuestionOption(question_id=q.id, content=text, is_correct=correct, order_index=i)
        db.add(o)
        opts.append(o)
    db.commit()
    db.refresh(q)
    for o in opts:
        db.refresh(o)
    return q, opts


@pytest.fixture()
def teacher(db):
    return make_user(db, role=UserRole.teacher)


@pytest.fixture()
def student(db):
    return make_user(db, role=UserRole.student)


@pytest.fixture()
def admin(db):
    return make_user(db, role=UserRole.admin)


@pytest.fixture()
def lesson(db, teacher):
    return make_lesson(db, teacher=teacher)
