"""
Pydantic models for the School Management System API.

Stored documents live in MongoDB collections named after the resource
(user, class, grade, attendance, assignment, event, conversation); the
models below describe request bodies and the resolved caller identity.
"""

from datetime import date
from enum import Enum
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, EmailStr, Field, model_validator


TIME_PATTERN = r"^([0-1]?[0-9]|2[0-3]):[0-5][0-9]$"


class Role(str, Enum):
    ADMIN = "admin"
    TEACHER = "teacher"
    STUDENT = "student"
    PARENT = "parent"


def ok(data: Any = None, message: str = "OK") -> Dict[str, Any]:
    """The single response envelope shared by every endpoint"""
    body: Dict[str, Any] = {"success": True, "message": message}
    if data is not None:
        body["data"] = data
    return body


# ----------------------- Identity -----------------------
class Identity(BaseModel):
    """The authenticated caller, re-read from the user store on each request"""

    id: str
    first_name: str
    last_name: str
    email: EmailStr
    role: Role
    phone: Optional[str] = None
    subject: Optional[str] = None
    qualifications: Optional[str] = None
    grade: Optional[str] = None
    date_of_birth: Optional[str] = None
    child_name: Optional[str] = None
    child_id: Optional[str] = None

    @classmethod
    def from_doc(cls, doc: Dict[str, Any]) -> "Identity":
        fields = {k: v for k, v in doc.items() if k in cls.model_fields}
        fields["id"] = str(doc["_id"]) if "_id" in doc else doc["id"]
        return cls(**fields)

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"

    def public(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", exclude_none=True)


# ----------------------- Auth / Users -----------------------
class RegisterRequest(BaseModel):
    first_name: str = Field(..., min_length=1)
    last_name: str = Field(..., min_length=1)
    email: EmailStr
    password: str = Field(min_length=6)
    role: Role = Role.STUDENT
    phone: Optional[str] = None
    # teacher
    subject: Optional[str] = None
    qualifications: Optional[str] = None
    # student
    grade: Optional[str] = None
    date_of_birth: Optional[date] = None
    # parent
    child_name: Optional[str] = None
    child_id: Optional[str] = None


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class ProfileUpdate(BaseModel):
    first_name: Optional[str] = Field(None, min_length=2)
    last_name: Optional[str] = Field(None, min_length=2)
    email: Optional[EmailStr] = None
    password: Optional[str] = Field(None, min_length=6)
    phone: Optional[str] = None
    subject: Optional[str] = None
    qualifications: Optional[str] = None


class UserUpdate(ProfileUpdate):
    role: Optional[Role] = None
    grade: Optional[str] = None
    date_of_birth: Optional[date] = None
    child_name: Optional[str] = None
    child_id: Optional[str] = None


# ----------------------- Classes -----------------------
class ScheduleEntry(BaseModel):
    day: Literal["Monday", "Tuesday", "Wednesday", "Thursday", "Friday"]
    start_time: str = Field(..., pattern=TIME_PATTERN)
    end_time: str = Field(..., pattern=TIME_PATTERN)


class ClassCreate(BaseModel):
    name: str = Field(..., min_length=1)
    teacher_id: str
    subject: Optional[str] = None
    description: Optional[str] = None
    room: Optional[str] = None
    capacity: int = Field(30, ge=1)
    academic_year: str = Field(..., min_length=1)
    schedule: List[ScheduleEntry] = []


class ClassUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1)
    teacher_id: Optional[str] = None
    subject: Optional[str] = None
    description: Optional[str] = None
    room: Optional[str] = None
    capacity: Optional[int] = Field(None, ge=1)
    academic_year: Optional[str] = None


class ScheduleUpdate(BaseModel):
    schedule: List[ScheduleEntry]


class AddStudentRequest(BaseModel):
    student_id: str


class AssignmentCreate(BaseModel):
    title: str
    description: str
    subject: str
    due_date: date
    points: int = Field(..., ge=0)


# ----------------------- Grades / Attendance -----------------------
class GradeCreate(BaseModel):
    student_id: str
    class_id: str
    subject: str
    assessment_type: Literal["quiz", "test", "homework", "exam"]
    assessment_name: str
    max_score: float = Field(..., gt=0)
    score: float = Field(..., ge=0)
    feedback: Optional[str] = None

    @model_validator(mode="after")
    def _score_within_max(self):
        if self.score > self.max_score:
            raise ValueError("score cannot exceed max_score")
        return self


class GradeUpdate(BaseModel):
    score: Optional[float] = Field(None, ge=0)
    feedback: Optional[str] = None


class AttendanceMark(BaseModel):
    class_id: str
    student_id: str
    date: date
    status: Literal["present", "absent", "late"] = "present"
    note: Optional[str] = None


# ----------------------- Events / Messaging -----------------------
class EventCreate(BaseModel):
    title: str
    description: Optional[str] = None
    date: date
    time: Optional[str] = None
    location: Optional[str] = None
    type: Optional[str] = None


class ConversationCreate(BaseModel):
    recipient: str
    subject: str = Field(..., min_length=1)
    initial_message: str = Field(..., min_length=1)


class MessageCreate(BaseModel):
    content: str = Field(..., min_length=1)
