"""
Instance-level access checks.

The role gate only decides whether a caller may use an operation at all;
these decide whether they may use it on *this* class, grade, conversation,
event or child. Handlers load the resource first and then call the checks
their policy names.
"""

from typing import Any, Dict

from errors import AuthorizationError, NotFoundError, ValidationError
from logging_config import logger
from schemas import Identity, Role
from store import UserStore, split_child_name


def _deny(user: Identity, message: str) -> AuthorizationError:
    logger.log_auth_event("instance_check", False, user_email=user.email, reason=message)
    return AuthorizationError(message)


def ensure_class_manager(user: Identity, class_doc: Dict[str, Any]) -> None:
    """Admins manage every class; teachers only the classes they teach"""
    if user.role == Role.ADMIN:
        return
    if user.role == Role.TEACHER and class_doc.get("teacher_id") == user.id:
        return
    raise _deny(user, "Not authorized to manage this class")


def ensure_student_in_class(class_doc: Dict[str, Any], student_id: str) -> None:
    if student_id not in class_doc.get("student_ids", []):
        raise ValidationError("Student does not belong to this class")


def ensure_participant(user: Identity, conversation: Dict[str, Any]) -> None:
    if user.id not in conversation.get("participants", []):
        raise _deny(user, "Not authorized to message in this conversation")


def ensure_event_owner(user: Identity, event: Dict[str, Any]) -> None:
    if user.role == Role.ADMIN or event.get("created_by") == user.id:
        return
    raise _deny(user, "Not authorized to delete this event")


def ensure_self_or_admin(user: Identity, user_id: str) -> None:
    if user.role == Role.ADMIN or user.id == user_id:
        return
    raise _deny(user, "Not authorized to access this user")


def resolve_child(store: UserStore, parent: Dict[str, Any]) -> Dict[str, Any]:
    """Find the student record behind a parent account.

    Uses the stored ``child_id`` link when there is one. Older accounts only
    carry the free-text ``child_name``; it is split on the first space and
    matched exactly against student first/last names, and must match one
    student only.
    """
    child_id = parent.get("child_id")
    if child_id:
        child = store.get(child_id)
        if child and child.get("role") == Role.STUDENT.value:
            return child
        raise NotFoundError("Child not found")

    names = split_child_name(parent.get("child_name") or "")
    if names is None:
        raise NotFoundError("Child not found")
    matches = store.find_students_by_name(names["first_name"], names["last_name"])
    if len(matches) != 1:
        raise NotFoundError("Child not found")
    return matches[0]


def ensure_student_viewer(user: Identity, student_id: str, store: UserStore) -> None:
    """Staff see every student; students see themselves; parents see their child"""
    if user.role in (Role.ADMIN, Role.TEACHER):
        return
    if user.role == Role.STUDENT and user.id == student_id:
        return
    if user.role == Role.PARENT:
        try:
            child = resolve_child(store, user.model_dump())
        except NotFoundError:
            child = None
        if child is not None and str(child["_id"]) == student_id:
            return
    raise _deny(user, "Not authorized to view this student's records")
