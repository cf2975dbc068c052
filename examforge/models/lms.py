"""Records imported from external LMS providers."""
from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Float,
    ForeignKey,
    String,
    Text,
    UniqueConstraint,
)
import uuid
from examforge.database import Base
from examforge.db.types import JSONBType, GUID
from examforge.utils.time import utcnow


class LMSCourseRecord(Base):
    """Course imported from an LMS."""

    __tablename__ = "lms_courses"
    __table_args__ = (UniqueConstraint("integration_id", "external_id", name="uq_lms_course_external"),)

    id = Column(GUID(), primary_key=True, default=uuid.uuid4, index=True)
    integration_id = Column(
        GUID(), ForeignKey("integrations.id", ondelete="CASCADE"), nullable=False, index=True
    )
    external_id = Column(String(255), nullable=False)
    name = Column(String(512), nullable=False)
    code = Column(String(255), nullable=True)
    description = Column(Text, nullable=True)
    metadata_ = Column("metadata", JSONBType(), nullable=False, default=dict)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)


class LMSUserRecord(Base):
    """User imported from an LMS roster."""

    __tablename__ = "lms_users"
    __table_args__ = (UniqueConstraint("integration_id", "external_id", name="uq_lms_user_external"),)

    id = Column(GUID(), primary_key=True, default=uuid.uuid4, index=True)
    integration_id = Column(
        GUID(), ForeignKey("integrations.id", ondelete="CASCADE"), nullable=False, index=True
    )
    external_id = Column(String(255), nullable=False)
    email = Column(String(320), nullable=True)
    name = Column(String(512), nullable=True)
    role = Column(String(50), nullable=False)
    metadata_ = Column("metadata", JSONBType(), nullable=False, default=dict)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)


class LMSEnrollmentRecord(Base):
    """Membership of an LMS user in an LMS course."""

    __tablename__ = "lms_enrollments"
    __table_args__ = (
        UniqueConstraint("integration_id", "course_external_id", "user_external_id", name="uq_lms_enrollment"),
    )

    id = Column(GUID(), primary_key=True, default=uuid.uuid4, index=True)
    integration_id = Column(
        GUID(), ForeignKey("integrations.id", ondelete="CASCADE"), nullable=False, index=True
    )
    course_external_id = Column(String(255), nullable=False)
    user_external_id = Column(String(255), nullable=False)
    role = Column(String(50), nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)


class LMSAssignmentRecord(Base):
    """Assignment (course work) imported from an LMS."""

    __tablename__ = "lms_assignments"
    __table_args__ = (UniqueConstraint("integration_id", "external_id", name="uq_lms_assignment_external"),)

    id = Column(GUID(), primary_key=True, default=uuid.uuid4, index=True)
    integration_id = Column(
        GUID(), ForeignKey("integrations.id", ondelete="CASCADE"), nullable=False, index=True
    )
    external_id = Column(String(255), nullable=False)
    course_external_id = Column(String(255), nullable=False)
    title = Column(String(512), nullable=False)
    description = Column(Text, nullable=True)
    due_date = Column(DateTime(timezone=True), nullable=True)
    max_score = Column(Float, nullable=False, default=100)
    published = Column(Boolean, nullable=False, default=False)
    metadata_ = Column("metadata", JSONBType(), nullable=False, default=dict)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)
