from contextlib import asynccontextmanager
from datetime import date, datetime, timezone
from typing import Any, Dict, Iterable, List, Optional

from bson import ObjectId
from fastapi import APIRouter, Depends, FastAPI, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pymongo import DESCENDING, ReturnDocument
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError
from starlette.exceptions import HTTPException as StarletteHTTPException

import access
from auth import STAFF, get_current_user, get_hasher, get_token_service, get_user_store, require
from config import Settings, get_settings
from database import create_client, ensure_indexes, find_or_404, get_db, serialize, serialize_all
from errors import AuthenticationError, AuthorizationError, DuplicateError, SchoolError, ValidationError
from logging_config import logger, setup_logging
from middleware import RequestLoggingMiddleware
from reports import child_attendance, child_progress, grade_summary, student_performance
from schemas import (
    AddStudentRequest,
    AssignmentCreate,
    AttendanceMark,
    ClassCreate,
    ClassUpdate,
    ConversationCreate,
    EventCreate,
    GradeCreate,
    GradeUpdate,
    Identity,
    LoginRequest,
    MessageCreate,
    ProfileUpdate,
    RegisterRequest,
    Role,
    ScheduleUpdate,
    UserUpdate,
    ok,
)
from security import PasswordHasher, TokenService
from store import UserStore

api = APIRouter(prefix="/api")


# ----------------------- Utility Functions -----------------------
def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def brief(user: Dict[str, Any], with_email: bool = True) -> Dict[str, Any]:
    out = {
        "id": str(user["_id"]),
        "first_name": user.get("first_name"),
        "last_name": user.get("last_name"),
        "role": user.get("role"),
    }
    if with_email:
        out["email"] = user.get("email")
    return out


def people(store: UserStore, ids: Iterable[str], with_email: bool = True) -> Dict[str, Dict[str, Any]]:
    """id -> short public profile, for the ids that resolve"""
    oids = [ObjectId(i) for i in set(ids) if ObjectId.is_valid(i)]
    if not oids:
        return {}
    return {str(u["_id"]): brief(u, with_email) for u in store.list({"_id": {"$in": oids}})}


def with_people(store: UserStore, class_doc: Dict[str, Any], viewer: Identity) -> Dict[str, Any]:
    # rosters carry contact details for staff only
    student_ids = class_doc.get("student_ids", [])
    found = people(store, [class_doc.get("teacher_id", ""), *student_ids], viewer.role in STAFF)
    out = serialize(class_doc)
    out["teacher"] = found.get(class_doc.get("teacher_id"))
    out["students"] = [found[s] for s in student_ids if s in found]
    return out


def require_teacher(store: UserStore, teacher_id: str) -> None:
    teacher = store.get(teacher_id)
    if not teacher or teacher.get("role") != Role.TEACHER.value:
        raise ValidationError("Teacher must be an existing teacher")


# ----------------------- Auth Endpoints -----------------------
@api.post("/auth/register", status_code=201)
def register(
    req: RegisterRequest,
    store: UserStore = Depends(get_user_store),
    tokens: TokenService = Depends(get_token_service),
):
    if req.role == Role.ADMIN:
        raise AuthorizationError("Admin accounts cannot be self-registered")
    user = Identity.from_doc(store.create(req.model_dump()))
    logger.log_auth_event("register", True, user_email=user.email, role=user.role.value)
    return ok({"user": user.public(), "token": tokens.issue(user.id)}, "User registered")


@api.post("/auth/login")
def login(
    payload: LoginRequest,
    store: UserStore = Depends(get_user_store),
    hasher: PasswordHasher = Depends(get_hasher),
    tokens: TokenService = Depends(get_token_service),
):
    doc = store.find_by_email(payload.email, include_secret=True)
    if doc is None or not hasher.verify_user(payload.password, doc):
        logger.log_auth_event("login", False, user_email=payload.email, reason="invalid credentials")
        raise AuthenticationError("Invalid credentials")
    user = Identity.from_doc(doc)
    logger.log_auth_event("login", True, user_email=user.email)
    return ok({"user": user.public(), "token": tokens.issue(user.id)}, "Login successful")


@api.get("/auth/me")
def me(current: Identity = Depends(get_current_user)):
    return ok(current.public())


# ----------------------- User Endpoints -----------------------
@api.get("/users")
def list_users(
    role: Optional[Role] = None,
    current: Identity = Depends(require("users.list")),
    store: UserStore = Depends(get_user_store),
):
    query = {"role": role.value} if role else {}
    return ok(serialize_all(store.list(query)))


@api.post("/users", status_code=201)
def create_user(
    req: RegisterRequest,
    current: Identity = Depends(require("users.create")),
    store: UserStore = Depends(get_user_store),
):
    user = store.create(req.model_dump())
    logger.info(f"User {user['email']} created by admin {current.email}")
    return ok(serialize(user), "User created")


@api.get("/users/message-recipients")
def message_recipients(
    current: Identity = Depends(require("users.recipients")),
    store: UserStore = Depends(get_user_store),
):
    recipients = store.list({
        "_id": {"$ne": ObjectId(current.id)},
        "role": {"$in": [Role.TEACHER.value, Role.ADMIN.value, Role.PARENT.value]},
    })
    return ok([brief(u) for u in recipients])


@api.put("/users/me")
def update_profile(
    payload: ProfileUpdate,
    current: Identity = Depends(require("users.update_profile")),
    store: UserStore = Depends(get_user_store),
):
    updated = store.update(current.id, payload.model_dump(exclude_unset=True))
    return ok(serialize(updated), "Profile updated")


@api.get("/users/{user_id}")
def get_user(
    user_id: str,
    current: Identity = Depends(require("users.read")),
    store: UserStore = Depends(get_user_store),
):
    access.ensure_self_or_admin(current, user_id)
    return ok(serialize(store.get_or_404(user_id)))


@api.put("/users/{user_id}")
def update_user(
    user_id: str,
    payload: UserUpdate,
    current: Identity = Depends(require("users.update")),
    store: UserStore = Depends(get_user_store),
):
    updated = store.update(user_id, payload.model_dump(exclude_unset=True))
    logger.info(f"User {user_id} updated by admin {current.email}")
    return ok(serialize(updated), "User updated")


@api.delete("/users/{user_id}")
def delete_user(
    user_id: str,
    current: Identity = Depends(require("users.delete")),
    store: UserStore = Depends(get_user_store),
):
    if user_id == current.id:
        raise ValidationError("You cannot delete your own account")
    store.delete(user_id)
    logger.info(f"User {user_id} deleted by admin {current.email}")
    return ok(message="User deleted")


@api.get("/teachers")
def list_teachers(
    current: Identity = Depends(require("teachers.list")),
    store: UserStore = Depends(get_user_store),
):
    return ok(serialize_all(store.list({"role": Role.TEACHER.value})))


# ----------------------- Class Endpoints -----------------------
@api.get("/classes")
def list_classes(
    current: Identity = Depends(require("classes.read")),
    db: Database = Depends(get_db),
    store: UserStore = Depends(get_user_store),
):
    classes = list(db["class"].find({}).sort("created_at", DESCENDING))
    teachers = people(store, [c.get("teacher_id", "") for c in classes])
    items = []
    for c in classes:
        item = serialize(c)
        item["teacher"] = teachers.get(c.get("teacher_id"))
        items.append(item)
    return ok(items)


@api.post("/classes", status_code=201)
def create_class(
    payload: ClassCreate,
    current: Identity = Depends(require("classes.create")),
    db: Database = Depends(get_db),
    store: UserStore = Depends(get_user_store),
):
    require_teacher(store, payload.teacher_id)
    doc = payload.model_dump()
    doc.update({"student_ids": [], "created_at": utcnow(), "updated_at": utcnow()})
    res = db["class"].insert_one(doc)
    doc["_id"] = res.inserted_id
    logger.info(f"Class {payload.name} created by {current.email}")
    return ok(serialize(doc), "Class created")


@api.get("/classes/{class_id}")
def get_class(
    class_id: str,
    current: Identity = Depends(require("classes.read")),
    db: Database = Depends(get_db),
    store: UserStore = Depends(get_user_store),
):
    return ok(with_people(store, find_or_404(db, "class", class_id, "Class"), current))


@api.put("/classes/{class_id}")
def update_class(
    class_id: str,
    payload: ClassUpdate,
    current: Identity = Depends(require("classes.update")),
    db: Database = Depends(get_db),
    store: UserStore = Depends(get_user_store),
):
    class_doc = find_or_404(db, "class", class_id, "Class")
    access.ensure_class_manager(current, class_doc)
    changes = payload.model_dump(exclude_unset=True, exclude_none=True)
    if "teacher_id" in changes and changes["teacher_id"] != class_doc.get("teacher_id"):
        if current.role != Role.ADMIN:
            raise AuthorizationError("Only admins can reassign a class")
        require_teacher(store, changes["teacher_id"])
    changes["updated_at"] = utcnow()
    updated = db["class"].find_one_and_update(
        {"_id": class_doc["_id"]}, {"$set": changes}, return_document=ReturnDocument.AFTER
    )
    return ok(serialize(updated), "Class updated")


@api.delete("/classes/{class_id}")
def delete_class(
    class_id: str,
    current: Identity = Depends(require("classes.delete")),
    db: Database = Depends(get_db),
):
    class_doc = find_or_404(db, "class", class_id, "Class")
    db["class"].delete_one({"_id": class_doc["_id"]})
    logger.info(f"Class {class_id} deleted by {current.email}")
    return ok(message="Class deleted")


@api.get("/classes/{class_id}/schedule")
def get_schedule(
    class_id: str,
    current: Identity = Depends(require("classes.read")),
    db: Database = Depends(get_db),
):
    return ok(find_or_404(db, "class", class_id, "Class").get("schedule") or [])


@api.put("/classes/{class_id}/schedule")
def update_schedule(
    class_id: str,
    payload: ScheduleUpdate,
    current: Identity = Depends(require("classes.update_schedule")),
    db: Database = Depends(get_db),
):
    class_doc = find_or_404(db, "class", class_id, "Class")
    access.ensure_class_manager(current, class_doc)
    schedule = [entry.model_dump() for entry in payload.schedule]
    db["class"].update_one(
        {"_id": class_doc["_id"]}, {"$set": {"schedule": schedule, "updated_at": utcnow()}}
    )
    return ok(schedule, "Schedule updated")


@api.post("/classes/{class_id}/students")
def add_student(
    class_id: str,
    payload: AddStudentRequest,
    current: Identity = Depends(require("classes.add_student")),
    db: Database = Depends(get_db),
    store: UserStore = Depends(get_user_store),
):
    class_doc = find_or_404(db, "class", class_id, "Class")
    access.ensure_class_manager(current, class_doc)
    student = store.get(payload.student_id)
    if not student or student.get("role") != Role.STUDENT.value:
        raise ValidationError("Invalid student")
    if payload.student_id in class_doc.get("student_ids", []):
        raise ValidationError("Student already in class")
    # capacity is informational; enrolment is not capped
    updated = db["class"].find_one_and_update(
        {"_id": class_doc["_id"]},
        {"$addToSet": {"student_ids": payload.student_id}, "$set": {"updated_at": utcnow()}},
        return_document=ReturnDocument.AFTER,
    )
    return ok(with_people(store, updated, current), "Student added")


@api.delete("/classes/{class_id}/students/{student_id}")
def remove_student(
    class_id: str,
    student_id: str,
    current: Identity = Depends(require("classes.remove_student")),
    db: Database = Depends(get_db),
):
    class_doc = find_or_404(db, "class", class_id, "Class")
    access.ensure_class_manager(current, class_doc)
    if student_id not in class_doc.get("student_ids", []):
        raise ValidationError("Student not found in class")
    updated = db["class"].find_one_and_update(
        {"_id": class_doc["_id"]},
        {"$pull": {"student_ids": student_id}, "$set": {"updated_at": utcnow()}},
        return_document=ReturnDocument.AFTER,
    )
    return ok(serialize(updated), "Student removed")


@api.get("/classes/{class_id}/assignments")
def list_class_assignments(
    class_id: str,
    current: Identity = Depends(require("classes.read")),
    db: Database = Depends(get_db),
):
    class_doc = find_or_404(db, "class", class_id, "Class")
    docs = db["assignment"].find({"class_id": str(class_doc["_id"])}).sort("due_date", 1)
    return ok(serialize_all(docs))


@api.post("/classes/{class_id}/assignments", status_code=201)
def create_assignment(
    class_id: str,
    payload: AssignmentCreate,
    current: Identity = Depends(require("classes.create_assignment")),
    db: Database = Depends(get_db),
):
    class_doc = find_or_404(db, "class", class_id, "Class")
    access.ensure_class_manager(current, class_doc)
    doc = payload.model_dump()
    doc.update({
        "class_id": class_id,
        "due_date": payload.due_date.isoformat(),
        "submissions": [],
        "created_by": current.id,
        "created_at": utcnow(),
    })
    res = db["assignment"].insert_one(doc)
    doc["_id"] = res.inserted_id
    return ok(serialize(doc), "Assignment created")


@api.get("/classes/{class_id}/grades")
def list_class_grades(
    class_id: str,
    current: Identity = Depends(require("classes.grades")),
    db: Database = Depends(get_db),
):
    class_doc = find_or_404(db, "class", class_id, "Class")
    access.ensure_class_manager(current, class_doc)
    docs = db["grade"].find({"class_id": class_id}).sort("created_at", DESCENDING)
    return ok(serialize_all(docs))


@api.get("/classes/{class_id}/performance")
def class_performance(
    class_id: str,
    current: Identity = Depends(require("classes.performance")),
    db: Database = Depends(get_db),
    store: UserStore = Depends(get_user_store),
):
    class_doc = find_or_404(db, "class", class_id, "Class")
    access.ensure_class_manager(current, class_doc)
    student_ids = class_doc.get("student_ids", [])
    oids = [ObjectId(s) for s in student_ids if ObjectId.is_valid(s)]
    data = []
    for student in store.list({"_id": {"$in": oids}}):
        sid = str(student["_id"])
        grades = list(db["grade"].find({"class_id": class_id, "student_id": sid}))
        attendance = list(db["attendance"].find({"class_id": class_id, "student_id": sid}))
        completed = db["assignment"].count_documents(
            {"class_id": class_id, "submissions.student_id": sid}
        )
        data.append(student_performance(student, grades, attendance, completed))
    return ok(data)


# ----------------------- Grades -----------------------
@api.post("/grades", status_code=201)
def create_grade(
    payload: GradeCreate,
    current: Identity = Depends(require("grades.create")),
    db: Database = Depends(get_db),
):
    class_doc = find_or_404(db, "class", payload.class_id, "Class")
    access.ensure_class_manager(current, class_doc)
    access.ensure_student_in_class(class_doc, payload.student_id)

    doc = payload.model_dump()
    doc.update({"graded_by": current.id, "created_at": utcnow(), "updated_at": utcnow()})
    try:
        res = db["grade"].insert_one(doc)
    except DuplicateKeyError:
        raise DuplicateError("Grade already exists for this assessment")
    doc["_id"] = res.inserted_id
    return ok(serialize(doc), "Grade recorded")


@api.get("/grades")
def list_student_grades(
    student_id: str = Query(...),
    class_id: Optional[str] = None,
    subject: Optional[str] = None,
    current: Identity = Depends(require("grades.read")),
    db: Database = Depends(get_db),
    store: UserStore = Depends(get_user_store),
):
    access.ensure_student_viewer(current, student_id, store)
    query: Dict[str, Any] = {"student_id": student_id}
    if class_id:
        query["class_id"] = class_id
    if subject:
        query["subject"] = subject
    docs = db["grade"].find(query).sort("created_at", DESCENDING)
    return ok(serialize_all(docs))


@api.put("/grades/{grade_id}")
def update_grade(
    grade_id: str,
    payload: GradeUpdate,
    current: Identity = Depends(require("grades.update")),
    db: Database = Depends(get_db),
):
    grade = find_or_404(db, "grade", grade_id, "Grade")
    class_doc = find_or_404(db, "class", grade["class_id"], "Class")
    access.ensure_class_manager(current, class_doc)

    changes = payload.model_dump(exclude_unset=True, exclude_none=True)
    if changes.get("score", 0) > grade["max_score"]:
        raise ValidationError("Score cannot exceed max score")
    changes.update({"graded_by": current.id, "updated_at": utcnow()})
    updated = db["grade"].find_one_and_update(
        {"_id": grade["_id"]}, {"$set": changes}, return_document=ReturnDocument.AFTER
    )
    return ok(serialize(updated), "Grade updated")


@api.get("/grades/performance/{class_id}/{subject}")
def subject_performance(
    class_id: str,
    subject: str,
    current: Identity = Depends(require("grades.performance")),
    db: Database = Depends(get_db),
):
    class_doc = find_or_404(db, "class", class_id, "Class")
    access.ensure_class_manager(current, class_doc)
    grades = list(db["grade"].find({"class_id": class_id, "subject": subject}))
    return ok(grade_summary(grades))


# ----------------------- Attendance -----------------------
@api.post("/attendance")
def mark_attendance(
    payload: AttendanceMark,
    current: Identity = Depends(require("attendance.mark")),
    db: Database = Depends(get_db),
):
    class_doc = find_or_404(db, "class", payload.class_id, "Class")
    access.ensure_class_manager(current, class_doc)
    access.ensure_student_in_class(class_doc, payload.student_id)

    # one record per (class, student, date); the latest mark wins
    key = {
        "class_id": payload.class_id,
        "student_id": payload.student_id,
        "date": payload.date.isoformat(),
    }
    try:
        record = db["attendance"].find_one_and_update(
            key,
            {
                "$set": {
                    "status": payload.status,
                    "note": payload.note,
                    "marked_by": current.id,
                    "updated_at": utcnow(),
                },
                "$setOnInsert": {"created_at": utcnow()},
            },
            upsert=True,
            return_document=ReturnDocument.AFTER,
        )
    except DuplicateKeyError:
        raise DuplicateError("Attendance for this student and date is being recorded, try again")
    return ok(serialize(record), "Attendance marked")


@api.get("/attendance/{class_id}/{day}")
def class_attendance(
    class_id: str,
    day: date,
    current: Identity = Depends(require("attendance.read")),
    db: Database = Depends(get_db),
    store: UserStore = Depends(get_user_store),
):
    class_doc = find_or_404(db, "class", class_id, "Class")
    access.ensure_class_manager(current, class_doc)
    records = list(db["attendance"].find({"class_id": class_id, "date": day.isoformat()}))
    students = people(store, [r["student_id"] for r in records])
    items = []
    for r in records:
        item = serialize(r)
        item["student"] = students.get(r["student_id"])
        items.append(item)
    return ok(items)


# ----------------------- Events -----------------------
@api.get("/events")
def list_events(
    current: Identity = Depends(require("events.read")),
    db: Database = Depends(get_db),
):
    return ok(serialize_all(db["event"].find({}).sort("date", 1)))


@api.post("/events", status_code=201)
def create_event(
    payload: EventCreate,
    current: Identity = Depends(require("events.create")),
    db: Database = Depends(get_db),
):
    doc = payload.model_dump()
    doc.update({"date": payload.date.isoformat(), "created_by": current.id, "created_at": utcnow()})
    res = db["event"].insert_one(doc)
    doc["_id"] = res.inserted_id
    return ok(serialize(doc), "Event created")


@api.delete("/events/{event_id}")
def delete_event(
    event_id: str,
    current: Identity = Depends(require("events.delete")),
    db: Database = Depends(get_db),
):
    event = find_or_404(db, "event", event_id, "Event")
    access.ensure_event_owner(current, event)
    db["event"].delete_one({"_id": event["_id"]})
    return ok(message="Event deleted successfully")


# ----------------------- Messaging -----------------------
def new_message(sender_id: str, content: str) -> Dict[str, Any]:
    return {"id": str(ObjectId()), "sender_id": sender_id, "content": content, "created_at": utcnow()}


@api.get("/messages/conversations")
def list_conversations(
    current: Identity = Depends(require("messages.read")),
    db: Database = Depends(get_db),
    store: UserStore = Depends(get_user_store),
):
    conversations = list(
        db["conversation"].find({"participants": current.id}).sort("last_message_at", DESCENDING)
    )
    found = people(store, [p for c in conversations for p in c.get("participants", [])])
    items = []
    for c in conversations:
        item = serialize(c)
        item["participants"] = [found.get(p, {"id": p}) for p in c.get("participants", [])]
        items.append(item)
    return ok(items)


@api.post("/messages/conversations", status_code=201)
def create_conversation(
    payload: ConversationCreate,
    current: Identity = Depends(require("messages.create")),
    db: Database = Depends(get_db),
    store: UserStore = Depends(get_user_store),
):
    if payload.recipient == current.id:
        raise ValidationError("Cannot start a conversation with yourself")
    store.get_or_404(payload.recipient)
    message = new_message(current.id, payload.initial_message)
    doc = {
        "participants": [current.id, payload.recipient],
        "subject": payload.subject,
        "messages": [message],
        "last_message_at": message["created_at"],
        "created_at": utcnow(),
    }
    res = db["conversation"].insert_one(doc)
    doc["_id"] = res.inserted_id
    return ok(serialize(doc), "Conversation created")


@api.post("/messages/conversations/{conversation_id}", status_code=201)
def post_message(
    conversation_id: str,
    payload: MessageCreate,
    current: Identity = Depends(require("messages.post")),
    db: Database = Depends(get_db),
):
    conversation = find_or_404(db, "conversation", conversation_id, "Conversation")
    access.ensure_participant(current, conversation)
    message = new_message(current.id, payload.content)
    db["conversation"].update_one(
        {"_id": conversation["_id"]},
        {"$push": {"messages": message}, "$set": {"last_message_at": message["created_at"]}},
    )
    return ok(message, "Message sent")


# ----------------------- Parents -----------------------
def load_child(parent_id: str, store: UserStore) -> Dict[str, Any]:
    parent = store.get_or_404(parent_id, Role.PARENT)
    return access.resolve_child(store, parent)


@api.get("/parents/{parent_id}/child-progress")
def get_child_progress(
    parent_id: str,
    current: Identity = Depends(require("parents.child")),
    db: Database = Depends(get_db),
    store: UserStore = Depends(get_user_store),
):
    access.ensure_self_or_admin(current, parent_id)
    child = load_child(parent_id, store)
    sid = str(child["_id"])
    grades = list(db["grade"].find({"student_id": sid}).sort("created_at", DESCENDING).limit(10))
    attendance = list(db["attendance"].find({"student_id": sid}).sort("date", DESCENDING).limit(30))
    return ok(child_progress(child, grades, attendance))


@api.get("/parents/{parent_id}/child-attendance")
def get_child_attendance(
    parent_id: str,
    current: Identity = Depends(require("parents.child")),
    db: Database = Depends(get_db),
    store: UserStore = Depends(get_user_store),
):
    access.ensure_self_or_admin(current, parent_id)
    child = load_child(parent_id, store)
    attendance = list(db["attendance"].find({"student_id": str(child["_id"])}).sort("date", DESCENDING))
    return ok(child_attendance(child, attendance))


# ----------------------- Students -----------------------
@api.get("/students/available")
def available_students(
    current: Identity = Depends(require("students.available")),
    db: Database = Depends(get_db),
    store: UserStore = Depends(get_user_store),
):
    assigned = {sid for c in db["class"].find({}, {"student_ids": 1}) for sid in c.get("student_ids", [])}
    students = [s for s in store.list({"role": Role.STUDENT.value}) if str(s["_id"]) not in assigned]
    return ok(serialize_all(students))


@api.get("/students/{student_id}/grades")
def student_grades(
    student_id: str,
    current: Identity = Depends(require("students.read")),
    db: Database = Depends(get_db),
    store: UserStore = Depends(get_user_store),
):
    access.ensure_student_viewer(current, student_id, store)
    return ok(serialize_all(db["grade"].find({"student_id": student_id}).sort("created_at", DESCENDING)))


@api.get("/students/{student_id}/assignments")
def student_assignments(
    student_id: str,
    current: Identity = Depends(require("students.read")),
    db: Database = Depends(get_db),
    store: UserStore = Depends(get_user_store),
):
    access.ensure_student_viewer(current, student_id, store)
    classes = {str(c["_id"]): c.get("name") for c in db["class"].find({"student_ids": student_id})}
    items = []
    for a in db["assignment"].find({"class_id": {"$in": list(classes)}}).sort("due_date", 1):
        item = serialize(a)
        item["class_name"] = classes.get(a["class_id"])
        items.append(item)
    return ok(items)


@api.get("/students/{student_id}/schedule")
def student_schedule(
    student_id: str,
    current: Identity = Depends(require("students.read")),
    db: Database = Depends(get_db),
    store: UserStore = Depends(get_user_store),
):
    access.ensure_student_viewer(current, student_id, store)
    classes = list(db["class"].find({"student_ids": student_id}))
    teachers = people(store, [c.get("teacher_id", "") for c in classes])
    items = []
    for c in classes:
        items.append({
            "class_id": str(c["_id"]),
            "name": c.get("name"),
            "subject": c.get("subject"),
            "room": c.get("room"),
            "schedule": c.get("schedule") or [],
            "teacher": teachers.get(c.get("teacher_id")),
        })
    return ok(items)


# ----------------------- Error Handlers -----------------------
def validation_errors(exc: RequestValidationError) -> List[Dict[str, str]]:
    return [
        {"field": ".".join(str(p) for p in err.get("loc", ()) if p != "body"), "message": err.get("msg", "")}
        for err in exc.errors()
    ]


def register_exception_handlers(app: FastAPI, settings: Settings) -> None:
    @app.exception_handler(SchoolError)
    async def school_error_handler(request: Request, exc: SchoolError):
        if exc.status_code >= 500:
            logger.log_error_with_context(exc, f"{request.method} {request.url.path}")
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException):
        return JSONResponse(
            status_code=exc.status_code,
            content={"success": False, "message": str(exc.detail)},
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        return JSONResponse(
            status_code=400,
            content={"success": False, "message": "Validation failed", "data": {"errors": validation_errors(exc)}},
        )

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.log_error_with_context(exc, f"{request.method} {request.url.path}")
        content: Dict[str, Any] = {"success": False, "message": "Internal server error"}
        if settings.DEBUG:
            content["data"] = {"error": f"{type(exc).__name__}: {exc}"}
        return JSONResponse(status_code=500, content=content)


# ----------------------- Application -----------------------
def create_app(settings: Optional[Settings] = None, db: Optional[Database] = None) -> FastAPI:
    """Build the application.

    The token service is constructed here, so a missing ``JWT_SECRET_KEY``
    aborts startup with ``ConfigurationError``. Pass ``db`` to run against an
    already-open database instead of connecting to ``DATABASE_URL``.
    """
    settings = settings or get_settings()
    token_service = TokenService.from_settings(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        setup_logging(settings)
        client = None
        if db is None:
            client = create_client(settings)
            app.state.db = client[settings.DATABASE_NAME]
        else:
            app.state.db = db
        ensure_indexes(app.state.db)
        logger.info(f"{settings.APP_NAME} started ({settings.ENVIRONMENT})")
        try:
            yield
        finally:
            if client is not None:
                client.close()

    app = FastAPI(title=settings.APP_NAME, lifespan=lifespan)
    app.state.settings = settings
    app.state.token_service = token_service
    app.state.hasher = PasswordHasher(settings.BCRYPT_ROUNDS)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(RequestLoggingMiddleware)
    register_exception_handlers(app, settings)
    app.include_router(api)

    # ----------------------- Health -----------------------
    @app.get("/")
    def read_root():
        return ok(message="School Management System API running")

    @app.get("/health")
    def health():
        return ok({"time": utcnow().isoformat()})

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=get_settings().PORT)
