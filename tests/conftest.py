"""Pytest configuration and fixtures."""
import json
import os
import uuid
from pathlib import Path

import httpx
import pytest
import pytest_asyncio

TEST_DB_PATH = Path("test_examforge.db")
if TEST_DB_PATH.exists():
    TEST_DB_PATH.unlink()

TEST_DATABASE_URL = f"sqlite+aiosqlite:///{TEST_DB_PATH}"
os.environ.setdefault("DATABASE_URL", TEST_DATABASE_URL)
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("WEBHOOK_INPROCESS_RETRIES", "false")
os.environ.setdefault("ENCRYPTION_SECRET", "YWFhYWFhYWFhYWFhYWFhYWFhYWFhYWFhYWFhYWFhYWE=")

from examforge.database import AsyncSessionLocal, Base, engine  # noqa: E402
from examforge.integrations.rate_limit import RateLimiter  # noqa: E402
from examforge.integrations.retry import RetryManager  # noqa: E402
from examforge.models.integration import Integration, IntegrationStatus, IntegrationType  # noqa: E402
import examforge.models  # noqa: E402,F401

TEST_SECRET = "whsec-test-secret"


class RecordingTransport(httpx.MockTransport):
    """Mock transport that records every request and answers from a queue or a handler."""

    def __init__(self, responses=None, handler=None):
        self.requests = []
        self._responses = list(responses or [])
        self._route = handler
        super().__init__(self._respond)

    def _respond(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self._route is not None:
            return self._route(request)
        if self._responses:
            response = self._responses.pop(0)
        else:
            response = 200
        if isinstance(response, Exception):
            raise response
        if isinstance(response, int):
            return httpx.Response(response, json={})
        return response

    def bodies(self):
        return [json.loads(request.content) for request in self.requests]


async def no_sleep(_delay):
    return None


@pytest_asyncio.fixture(scope="function")
async def db_session():
    """Create a test database session."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with AsyncSessionLocal() as session:
        yield session

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest.fixture
def session_factory(db_session):
    """Session factory bound to the test database."""
    return AsyncSessionLocal


@pytest.fixture
def fast_retry_manager():
    return RetryManager(sleep=no_sleep)


@pytest.fixture
def open_rate_limiter():
    return RateLimiter(sleep=no_sleep)


@pytest.fixture
def make_integration(db_session):
    """Factory for persisted integrations."""

    async def _make(**overrides) -> Integration:
        fields = {
            "id": uuid.uuid4(),
            "team_id": "team-1",
            "name": "Test Integration",
            "type": IntegrationType.WEBHOOK,
            "provider": "custom",
            "status": IntegrationStatus.ACTIVE,
            "credentials": {"secret": TEST_SECRET},
            "config": {"retry_attempts": 3, "retry_delay": 1, "timeout": 5},
            "events": ["quiz.created", "response.submitted"],
            "delivery_url": "https://hooks.example.com/examforge",
        }
        fields.update(overrides)
        integration = Integration(**fields)
        db_session.add(integration)
        await db_session.commit()
        await db_session.refresh(integration)
        return integration

    return _make


@pytest_asyncio.fixture
async def webhook_integration(make_integration):
    return await make_integration()


@pytest_asyncio.fixture
async def classroom_integration(make_integration):
    return await make_integration(
        name="Classroom",
        type=IntegrationType.LMS,
        provider="google-classroom",
        credentials={"access_token": "ya29.test-token"},
        config={"sync_interval": 60, "auto_sync": True},
        events=[],
        delivery_url=None,
    )


def course(course_id, name="Algebra"):
    return {"id": course_id, "name": name, "section": "Period 1", "courseState": "ACTIVE", "ownerId": "t1"}


def profile(user_id, name="Student"):
    return {"profile": {"id": user_id, "emailAddress": f"{user_id}@school.edu", "name": {"fullName": name}}}


def classroom_api(courses_pages=None, students=None, teachers=None, course_work=None, errors=None):
    """Route Classroom API paths to canned responses."""
    courses_pages = courses_pages or {None: {"courses": [course("c1")]}}
    students = students or {}
    teachers = teachers or {}
    course_work = course_work or {}
    errors = errors or {}

    def handler(request: httpx.Request) -> httpx.Response:
        path = request.url.path[len("/v1"):]
        if path in errors:
            status, message = errors[path]
            return httpx.Response(status, json={"error": {"code": status, "message": message}})
        if path == "/courses":
            return httpx.Response(200, json=courses_pages[request.url.params.get("pageToken")])
        parts = path.strip("/").split("/")
        if len(parts) == 3 and parts[2] == "students":
            return httpx.Response(200, json={"students": students.get(parts[1], [])})
        if len(parts) == 3 and parts[2] == "teachers":
            return httpx.Response(200, json={"teachers": teachers.get(parts[1], [])})
        if len(parts) == 3 and parts[2] == "courseWork":
            return httpx.Response(200, json={"courseWork": course_work.get(parts[1], [])})
        return httpx.Response(404, json={"error": {"message": "Not found"}})

    return handler
