"""Google Classroom LMS integration: roster sync, assignment publishing and grade passback."""
import logging
import time
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional, TypeVar

import httpx
from sqlalchemy import select

from examforge.config import settings
from examforge.integrations.base import BaseIntegrationProvider
from examforge.integrations.errors import IntegrationError
from examforge.integrations.rate_limit import RateLimiter, rate_limiter as default_rate_limiter
from examforge.integrations.retry import RetryManager, retry_manager as default_retry_manager
from examforge.middleware.metrics import lms_sync_records_total
from examforge.models.integration import EventStatus, IntegrationStatus, SyncStatus, SyncType
from examforge.models.lms import (
    LMSAssignmentRecord,
    LMSCourseRecord,
    LMSEnrollmentRecord,
    LMSUserRecord,
)
from examforge.schemas.integration import SyncError, SyncOperation
from examforge.schemas.lms import GradePassback, LMSAssignment, LMSCourse, LMSUser
from examforge.utils.time import utcnow

logger = logging.getLogger(__name__)

PROVIDER = "google-classroom"
PAGE_SIZE = 100

T = TypeVar("T")


class GoogleClassroomProvider(BaseIntegrationProvider):
    """Pull courses, rosters and course work from Google Classroom."""

    def __init__(
        self,
        integration,
        session_factory=None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        event_logger=None,
        retry_manager: Optional[RetryManager] = None,
        rate_limiter: Optional[RateLimiter] = None,
        base_url: Optional[str] = None,
    ):
        super().__init__(integration, session_factory, transport, event_logger)
        self.retry_manager = retry_manager or default_retry_manager
        self.rate_limiter = rate_limiter or default_rate_limiter
        self.base_url = (base_url or settings.GOOGLE_CLASSROOM_BASE_URL).rstrip("/")

    async def connect(self) -> bool:
        try:
            credentials = await self.get_decrypted_credentials()
            if not credentials.get("access_token"):
                raise IntegrationError("No access token available", "NO_ACCESS_TOKEN")

            await self.make_request("GET", "/courses", {"pageSize": 1})

            await self.update_status(IntegrationStatus.ACTIVE)
            await self.logger.log(
                "connection_established", EventStatus.SUCCESS, "Connected to Google Classroom"
            )
            return True
        except Exception as exc:
            await self.handle_error(exc, "connect")
            return False

    async def disconnect(self) -> None:
        await self.update_status(IntegrationStatus.INACTIVE)
        await self.logger.log("connection_closed", EventStatus.SUCCESS, "Disconnected from Google Classroom")

    async def test_connection(self) -> bool:
        try:
            credentials = await self.get_decrypted_credentials()
            if not credentials.get("access_token"):
                return False
            await self.make_request("GET", "/courses", {"pageSize": 1})
            return True
        except Exception as exc:
            logger.debug("Google Classroom connection test failed for %s: %s", self.integration_id, exc)
            return False

    async def sync(self, operation: SyncOperation) -> SyncOperation:
        """Run one sync pass. Failures are returned as a ``failed`` operation, never raised."""
        started = time.monotonic()
        handlers = {
            SyncType.ROSTER: self._sync_rosters,
            SyncType.COURSES: self._sync_courses,
            SyncType.ASSIGNMENTS: self._sync_assignments,
            SyncType.GRADES: self._sync_grades,
        }

        try:
            await self.validate_connection()

            handler = handlers.get(operation.type)
            if handler is None:
                raise IntegrationError(f"Unsupported sync type: {operation.type}", "UNSUPPORTED_SYNC_TYPE")

            result = await handler(operation.model_copy(deep=True))
            await self.update_last_sync()

            self._record_metrics(result)
            duration = int((time.monotonic() - started) * 1000)
            await self.logger.log(
                "sync_completed",
                EventStatus.SUCCESS if result.status == SyncStatus.COMPLETED else EventStatus.WARNING,
                f"{result.type.value} sync completed",
                {
                    "records_processed": result.records_processed,
                    "records_failed": result.records_failed,
                },
                duration,
            )
            return result
        except Exception as exc:
            await self.handle_error(exc, f"sync_{operation.type.value}")
            failed = operation.model_copy(deep=True)
            failed.status = SyncStatus.FAILED
            failed.errors = [SyncError(message=str(exc), code=getattr(exc, "code", None) or "UNKNOWN_ERROR")]
            failed.completed_at = utcnow()
            return failed

    def _record_metrics(self, result: SyncOperation) -> None:
        sync_type = result.type.value
        lms_sync_records_total.labels(PROVIDER, sync_type, "succeeded").inc(result.records_succeeded)
        lms_sync_records_total.labels(PROVIDER, sync_type, "failed").inc(result.records_failed)

    @staticmethod
    def _finish(operation: SyncOperation) -> SyncOperation:
        operation.records_failed = operation.records_processed - operation.records_succeeded
        operation.status = SyncStatus.COMPLETED if not operation.errors else SyncStatus.FAILED
        operation.completed_at = utcnow()
        return operation

    @staticmethod
    async def _process_record(
        operation: SyncOperation,
        record_id: str,
        code: str,
        process: Callable[[], Awaitable[Any]],
    ) -> None:
        operation.records_processed += 1
        try:
            await process()
            operation.records_succeeded += 1
        except Exception as exc:
            logger.warning("Failed to process record %s: %s", record_id, exc)
            operation.errors.append(SyncError(record_id=record_id, message=str(exc), code=code))

    async def _sync_rosters(self, operation: SyncOperation) -> SyncOperation:
        for course in await self.get_all_courses():
            try:
                students = await self.get_course_students(course.id)
                teachers = await self.get_course_teachers(course.id)
            except Exception as exc:
                operation.errors.append(
                    SyncError(
                        record_id=course.id,
                        message=f"Failed to sync course roster: {exc}",
                        code="COURSE_SYNC_FAILED",
                    )
                )
                continue

            for user in students + teachers:
                await self._process_record(
                    operation,
                    user.id,
                    "USER_PROCESSING_FAILED",
                    lambda user=user: self.process_user(user, course.id, user.role),
                )
        return self._finish(operation)

    async def _sync_courses(self, operation: SyncOperation) -> SyncOperation:
        for course in await self.get_all_courses():
            await self._process_record(
                operation,
                course.id,
                "COURSE_PROCESSING_FAILED",
                lambda course=course: self.process_course(course),
            )
        return self._finish(operation)

    async def _sync_assignments(self, operation: SyncOperation) -> SyncOperation:
        for course in await self.get_all_courses():
            try:
                assignments = await self.get_course_assignments(course.id)
            except Exception as exc:
                operation.errors.append(
                    SyncError(
                        record_id=course.id,
                        message=f"Failed to sync course assignments: {exc}",
                        code="COURSE_ASSIGNMENTS_FAILED",
                    )
                )
                continue

            for assignment in assignments:
                await self._process_record(
                    operation,
                    assignment.id,
                    "ASSIGNMENT_PROCESSING_FAILED",
                    lambda assignment=assignment: self.process_assignment(assignment, course.id),
                )
        return self._finish(operation)

    async def _sync_grades(self, operation: SyncOperation) -> SyncOperation:
        # Grades are pushed one at a time through passback_grade.
        return self._finish(operation)

    async def publish_assignment(self, assignment: LMSAssignment) -> str:
        """Create course work from ``assignment`` and return its Classroom id."""
        course_work: Dict[str, Any] = {
            "title": assignment.title,
            "description": assignment.description,
            "materials": [],
            "workType": "ASSIGNMENT",
            "state": "PUBLISHED" if assignment.published else "DRAFT",
            "maxPoints": assignment.max_score,
        }
        if assignment.due_date:
            due = assignment.due_date
            if due.tzinfo is not None:
                due = due.astimezone(timezone.utc)
            course_work["dueDate"] = {"year": due.year, "month": due.month, "day": due.day}

        response = await self.make_request("POST", f"/courses/{assignment.course_id}/courseWork", course_work)
        external_id = response["id"]

        await self.logger.log(
            "assignment_published",
            EventStatus.SUCCESS,
            f'Assignment "{assignment.title}" published to course {assignment.course_id}',
            {"assignment_id": external_id},
        )
        return external_id

    async def passback_grade(self, grade: GradePassback) -> None:
        submission_id = grade.submission_id or grade.user_id
        await self.make_request(
            "PATCH",
            f"/courses/{grade.course_id}/courseWork/{grade.assignment_id}/studentSubmissions/{submission_id}",
            {"assignedGrade": grade.grade, "draftGrade": grade.grade},
            params={"updateMask": "assignedGrade,draftGrade"},
        )

        await self.logger.log(
            "grade_passback",
            EventStatus.SUCCESS,
            f"Grade {grade.grade}/{grade.max_score} passed back for user {grade.user_id}",
            {"assignment_id": grade.assignment_id, "course_id": grade.course_id},
        )

    async def _paginate(self, endpoint: str, items_key: str, transform: Callable[[Dict[str, Any]], T]) -> List[T]:
        """Follow ``nextPageToken`` until exhausted, transforming every item."""
        items: List[T] = []
        page_token = None
        while True:
            params: Dict[str, Any] = {"pageSize": PAGE_SIZE}
            if page_token:
                params["pageToken"] = page_token
            response = await self.make_request("GET", endpoint, params)
            items.extend(transform(item) for item in response.get(items_key) or [])
            page_token = response.get("nextPageToken")
            if not page_token:
                return items

    async def get_all_courses(self) -> List[LMSCourse]:
        return await self._paginate("/courses", "courses", self.transform_course)

    async def get_course_students(self, course_id: str) -> List[LMSUser]:
        return await self._paginate(
            f"/courses/{course_id}/students",
            "students",
            lambda item: self.transform_user(item.get("profile") or {}, "student"),
        )

    async def get_course_teachers(self, course_id: str) -> List[LMSUser]:
        return await self._paginate(
            f"/courses/{course_id}/teachers",
            "teachers",
            lambda item: self.transform_user(item.get("profile") or {}, "teacher"),
        )

    async def get_course_assignments(self, course_id: str) -> List[LMSAssignment]:
        return await self._paginate(
            f"/courses/{course_id}/courseWork",
            "courseWork",
            lambda item: self.transform_assignment(item, course_id),
        )

    async def make_request(
        self,
        method: str,
        endpoint: str,
        data: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """Call the Classroom API with retries, rate limiting and a bounded timeout."""
        credentials = await self.get_decrypted_credentials()
        access_token = credentials.get("access_token")
        if not access_token:
            raise IntegrationError("No access token available", "NO_ACCESS_TOKEN")

        method = method.upper()
        query = dict(params or {})
        body = None
        if data is not None:
            if method == "GET":
                query.update({k: v for k, v in data.items() if v is not None})
            else:
                body = data

        headers = {"Authorization": f"Bearer {access_token}", "Content-Type": "application/json"}
        url = f"{self.base_url}{endpoint}"
        limiter_key = f"{PROVIDER}:{self.integration_id}"

        async def _send() -> Dict[str, Any]:
            await self.rate_limiter.wait_for_slot(limiter_key, settings.LMS_RATE_LIMIT, settings.LMS_RATE_WINDOW)
            try:
                async with self.http_client(timeout=settings.LMS_REQUEST_TIMEOUT) as client:
                    response = await client.request(method, url, params=query or None, json=body, headers=headers)
            except httpx.HTTPError as exc:
                raise IntegrationError(f"Request to {endpoint} failed: {exc!r}", "HTTP_ERROR", retryable=True) from exc

            if not response.is_success:
                raise self._http_error(response)
            if not response.content:
                return {}
            return response.json()

        return await self.retry_manager.with_retry(_send, max_attempts=3, initial_delay=1.0, backoff_multiplier=2.0)

    @staticmethod
    def _http_error(response: httpx.Response) -> IntegrationError:
        try:
            payload = response.json()
        except ValueError:
            payload = {}
        detail = None
        code = "HTTP_ERROR"
        if isinstance(payload, dict):
            error = payload.get("error")
            detail = payload.get("message") or (error.get("message") if isinstance(error, dict) else error)
            if isinstance(payload.get("code"), str):
                code = payload["code"]
        message = f"HTTP {response.status_code}: {response.reason_phrase}"
        if detail:
            message = f"{message} - {detail}"
        return IntegrationError(message, code, retryable=response.status_code >= 500, status_code=response.status_code)

    @staticmethod
    def transform_course(course: Dict[str, Any]) -> LMSCourse:
        return LMSCourse(
            id=course["id"],
            name=course.get("name", ""),
            code=course.get("section") or course.get("descriptionHeading") or course.get("name"),
            description=course.get("description"),
            metadata={
                "state": course.get("courseState"),
                "creation_time": course.get("creationTime"),
                "update_time": course.get("updateTime"),
                "room": course.get("room"),
                "owner_id": course.get("ownerId"),
            },
        )

    @staticmethod
    def transform_user(profile: Dict[str, Any], role: str) -> LMSUser:
        return LMSUser(
            id=profile["id"],
            email=profile.get("emailAddress"),
            name=(profile.get("name") or {}).get("fullName") or "",
            role=role,
            metadata={
                "photo_url": profile.get("photoUrl"),
                "verified_teacher": profile.get("verifiedTeacher"),
            },
        )

    @staticmethod
    def transform_assignment(course_work: Dict[str, Any], course_id: str) -> LMSAssignment:
        due = course_work.get("dueDate")
        due_date = None
        if due:
            due_date = datetime(due["year"], due["month"], due["day"], tzinfo=timezone.utc)
        return LMSAssignment(
            id=course_work["id"],
            course_id=course_id,
            title=course_work.get("title", ""),
            description=course_work.get("description"),
            due_date=due_date,
            max_score=course_work.get("maxPoints") or 100,
            published=course_work.get("state") == "PUBLISHED",
            metadata={
                "state": course_work.get("state"),
                "creation_time": course_work.get("creationTime"),
                "update_time": course_work.get("updateTime"),
                "work_type": course_work.get("workType"),
            },
        )

    async def _upsert(self, db, model, lookup: Dict[str, Any], values: Dict[str, Any]):
        result = await db.execute(select(model).filter_by(integration_id=self.integration_id, **lookup))
        record = result.scalar_one_or_none()
        if record is None:
            record = model(integration_id=self.integration_id, **lookup)
            db.add(record)
        for field, value in values.items():
            setattr(record, field, value)
        return record

    async def process_course(self, course: LMSCourse) -> None:
        async with self.session_factory() as db:
            await self._upsert(
                db,
                LMSCourseRecord,
                {"external_id": course.id},
                {
                    "name": course.name,
                    "code": course.code,
                    "description": course.description,
                    "metadata_": course.metadata,
                },
            )
            await db.commit()

    async def process_user(self, user: LMSUser, course_id: str, role: str) -> None:
        async with self.session_factory() as db:
            await self._upsert(
                db,
                LMSUserRecord,
                {"external_id": user.id},
                {"email": user.email, "name": user.name, "role": role, "metadata_": user.metadata},
            )
            await self._upsert(
                db,
                LMSEnrollmentRecord,
                {"course_external_id": course_id, "user_external_id": user.id},
                {"role": role},
            )
            await db.commit()

    async def process_assignment(self, assignment: LMSAssignment, course_id: str) -> None:
        async with self.session_factory() as db:
            await self._upsert(
                db,
                LMSAssignmentRecord,
                {"external_id": assignment.id},
                {
                    "course_external_id": course_id,
                    "title": assignment.title,
                    "description": assignment.description,
                    "due_date": assignment.due_date,
                    "max_score": assignment.max_score,
                    "published": assignment.published,
                    "metadata_": assignment.metadata,
                },
            )
            await db.commit()
