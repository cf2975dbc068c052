"""Normalized LMS record shapes."""
from typing import Any, Dict, Literal, Optional
from pydantic import BaseModel, Field
from datetime import datetime


class LMSCourse(BaseModel):
    """Course as returned by any LMS provider."""

    id: str
    name: str
    code: Optional[str] = None
    description: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)


class LMSUser(BaseModel):
    """Roster member as returned by any LMS provider."""

    id: str
    email: Optional[str] = None
    name: Optional[str] = None
    role: Literal["student", "teacher", "admin"] = "student"
    metadata: Dict[str, Any] = Field(default_factory=dict)


class LMSAssignment(BaseModel):
    """Assignment as returned by, or published to, an LMS provider."""

    id: Optional[str] = None
    course_id: str
    title: str
    description: Optional[str] = None
    due_date: Optional[datetime] = None
    max_score: float = 100
    published: bool = False
    metadata: Dict[str, Any] = Field(default_factory=dict)


class GradePassback(BaseModel):
    """Score pushed back to an LMS submission."""

    course_id: str
    assignment_id: str
    user_id: str
    grade: float
    max_score: float = 100
    submission_id: Optional[str] = None
