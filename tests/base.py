import os
import unittest
from datetime import datetime, timedelta, timezone
from uuid import UUID, uuid4

from fastapi.testclient import TestClient
from sqlalchemy import create_engine, delete
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

# Ensure settings can be initialized in test environments
os.environ.setdefault("DATABASE_URL", "sqlite+pysqlite:///:memory:")
os.environ.setdefault("REDIS_URL", "redis://localhost:6379/0")
os.environ.setdefault("JWT_SECRET", "test-secret")
os.environ.setdefault("CLIENT_CACHE_BACKEND", "memory")

from app.core.config import settings
from app.core.security import create_jwt, hash_password
from app.db.session import get_db
from app.main import app
from app.models.application import Application
from app.models.job import Job
from app.models.user import User

_BASE_TIME = datetime(2026, 1, 1, tzinfo=timezone.utc)


class DatabaseTestBase(unittest.TestCase):
    @classmethod
    def setUpClass(cls):
        cls.engine = create_engine(
            "sqlite+pysqlite:///:memory:",
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
        cls.SessionLocal = sessionmaker(bind=cls.engine, autocommit=False, autoflush=False)
        User.__table__.create(bind=cls.engine)
        Job.__table__.create(bind=cls.engine)
        Application.__table__.create(bind=cls.engine)

    @classmethod
    def tearDownClass(cls):
        Application.__table__.drop(bind=cls.engine)
        Job.__table__.drop(bind=cls.engine)
        User.__table__.drop(bind=cls.engine)
        cls.engine.dispose()

    def setUp(self):
        with self.SessionLocal() as db:
            db.execute(delete(Application))
            db.execute(delete(Job))
            db.execute(delete(User))
            db.commit()
        self._tick = 0

    def _next_created_at(self) -> datetime:
        self._tick += 1
        return _BASE_TIME + timedelta(minutes=self._tick)

    def _create_user(self, role: str, email: str | None = None, first_name: str = "Test", last_name: str = "User") -> str:
        with self.SessionLocal() as db:
            user = User(
                role=role,
                first_name=first_name,
                last_name=last_name,
                email=email or f"{role.lower()}-{uuid4().hex[:8]}@example.com",
                password_hash=hash_password("secret-password"),
                created_at=self._next_created_at(),
            )
            db.add(user)
            db.commit()
            return str(user.id)

    def _create_job(self, owner_id: str, status: str = "PUBLISHED", title: str = "Backend Engineer", **fields) -> str:
        with self.SessionLocal() as db:
            job = Job(
                title=title,
                description=fields.pop("description", f"{title} role"),
                status=status,
                created_by_id=_as_uuid(owner_id),
                created_at=self._next_created_at(),
                **fields,
            )
            db.add(job)
            db.commit()
            return str(job.id)

    def _create_application(self, job_id: str, user_id: str, **fields) -> str:
        with self.SessionLocal() as db:
            application = Application(
                job_id=_as_uuid(job_id),
                user_id=_as_uuid(user_id),
                created_at=self._next_created_at(),
                **fields,
            )
            db.add(application)
            db.commit()
            return str(application.id)


class ApiTestBase(DatabaseTestBase):
    def setUp(self):
        super().setUp()

        def override_get_db():
            db = self.SessionLocal()
            try:
                yield db
            finally:
                db.close()

        app.dependency_overrides[get_db] = override_get_db
        self.client = TestClient(app)

    def tearDown(self):
        self.client.close()
        app.dependency_overrides.clear()

    @staticmethod
    def _auth_headers(role: str, sub: str | None = None, email: str | None = None) -> dict[str, str]:
        token = create_jwt(
            {"sub": str(sub or uuid4()), "email": email or f"{role.lower()}@example.com", "role": role},
            settings.JWT_SECRET,
            timedelta(minutes=30),
        )
        return {"Authorization": f"Bearer {token}"}


def _as_uuid(value):
    return value if isinstance(value, UUID) else UUID(str(value))
