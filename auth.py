"""
Authentication and role authorization dependencies.

Every protected route goes through two gates before its handler runs:

1. ``get_current_user`` resolves the bearer token to a user record that is
   re-read from the store (never trusted from the token) and attaches it to
   ``request.state.user``.
2. ``require(operation)`` looks the operation up in ``POLICIES`` and rejects
   callers whose role is not listed.

Instance-level checks (class ownership, conversation membership, ...) run
inside the handlers, using the functions in ``access``; each policy names the
ones its handler must apply.
"""

from dataclasses import dataclass
from typing import Callable, Dict, FrozenSet, Iterable, Optional, Tuple

from fastapi import Depends, Header, Request
from fastapi.security.utils import get_authorization_scheme_param
from pymongo.database import Database

from database import get_db
from errors import AuthenticationError, AuthorizationError, ValidationError
from logging_config import logger, set_user_id
from schemas import Identity, Role
from security import PasswordHasher, TokenService
from store import UserStore


# ----------------------- Service accessors -----------------------
def get_token_service(request: Request) -> TokenService:
    return request.app.state.token_service


def get_hasher(request: Request) -> PasswordHasher:
    return request.app.state.hasher


def get_user_store(
    db: Database = Depends(get_db),
    hasher: PasswordHasher = Depends(get_hasher),
) -> UserStore:
    return UserStore(db, hasher)


# ----------------------- Identity resolution -----------------------
def get_current_user(
    request: Request,
    authorization: Optional[str] = Header(None),
    store: UserStore = Depends(get_user_store),
    tokens: TokenService = Depends(get_token_service),
) -> Identity:
    scheme, token = get_authorization_scheme_param(authorization)
    if not authorization or scheme.lower() != "bearer":
        logger.log_auth_event("token", False, reason="no token provided")
        raise AuthenticationError("No token provided")
    if not token:
        logger.log_auth_event("token", False, reason="empty bearer token")
        raise AuthenticationError("Not authorized, no token")

    try:
        user_id = tokens.verify(token)
    except AuthenticationError:
        logger.log_auth_event("token", False, reason="invalid token")
        raise

    try:
        doc = store.get(user_id)
    except ValidationError:
        # subject is not an ObjectId; the token was not minted by us
        logger.log_auth_event("token", False, reason="malformed subject")
        raise AuthenticationError("Invalid token")
    if doc is None:
        logger.log_auth_event("token", False, reason="user not found", user_id=user_id)
        raise AuthenticationError("User not found")

    user = Identity.from_doc(doc)
    request.state.user = user
    set_user_id(user.id)
    return user


# ----------------------- Role authorization -----------------------
ALL_ROLES: FrozenSet[Role] = frozenset(Role)
STAFF: FrozenSet[Role] = frozenset({Role.ADMIN, Role.TEACHER})
ADMIN_ONLY: FrozenSet[Role] = frozenset({Role.ADMIN})


@dataclass(frozen=True)
class Policy:
    roles: FrozenSet[Role]
    instance_checks: Tuple[str, ...] = ()


# operation -> allowed roles + instance checks (names of ``access.ensure_*``)
POLICIES: Dict[str, Policy] = {
    # users
    "users.list": Policy(ADMIN_ONLY),
    "users.create": Policy(ADMIN_ONLY),
    "users.read": Policy(ALL_ROLES, ("self_or_admin",)),
    "users.update": Policy(ADMIN_ONLY),
    "users.delete": Policy(ADMIN_ONLY),
    "users.update_profile": Policy(ALL_ROLES),
    "users.recipients": Policy(ALL_ROLES),
    "teachers.list": Policy(ALL_ROLES),
    # classes
    "classes.read": Policy(ALL_ROLES),
    "classes.create": Policy(ADMIN_ONLY),
    "classes.update": Policy(STAFF, ("class_manager",)),
    "classes.delete": Policy(ADMIN_ONLY),
    "classes.update_schedule": Policy(STAFF, ("class_manager",)),
    "classes.add_student": Policy(STAFF, ("class_manager",)),
    "classes.remove_student": Policy(STAFF, ("class_manager",)),
    "classes.create_assignment": Policy(STAFF, ("class_manager",)),
    "classes.grades": Policy(STAFF, ("class_manager",)),
    "classes.performance": Policy(STAFF, ("class_manager",)),
    # grades
    "grades.create": Policy(STAFF, ("class_manager", "student_in_class")),
    "grades.read": Policy(ALL_ROLES, ("student_viewer",)),
    "grades.update": Policy(STAFF, ("class_manager",)),
    "grades.performance": Policy(STAFF, ("class_manager",)),
    # attendance
    "attendance.mark": Policy(STAFF, ("class_manager", "student_in_class")),
    "attendance.read": Policy(STAFF, ("class_manager",)),
    # events
    "events.read": Policy(ALL_ROLES),
    "events.create": Policy(ALL_ROLES),
    "events.delete": Policy(ALL_ROLES, ("event_owner",)),
    # messaging
    "messages.read": Policy(ALL_ROLES),
    "messages.create": Policy(ALL_ROLES),
    "messages.post": Policy(ALL_ROLES, ("participant",)),
    # parents / students
    "parents.child": Policy(frozenset({Role.PARENT, Role.ADMIN}), ("self_or_admin",)),
    "students.read": Policy(ALL_ROLES, ("student_viewer",)),
    "students.available": Policy(STAFF),
}


def authorize(user: Optional[Identity], roles: Iterable[Role], route: str) -> Identity:
    """Pure role gate: pass, or raise Unauthenticated / Forbidden"""
    if user is None:
        raise AuthenticationError("User not authenticated")
    if user.role not in roles:
        logger.log_auth_event(
            "authorize", False, user_email=user.email,
            reason=f"role {user.role.value} not allowed on {route}",
        )
        raise AuthorizationError(
            f"User role {user.role.value} is not authorized to access {route}"
        )
    return user


def require(operation: str) -> Callable[..., Identity]:
    """Dependency factory: authenticate, then apply the operation's role gate"""
    policy = POLICIES[operation]

    def dependency(request: Request, _: Identity = Depends(get_current_user)) -> Identity:
        route = f"{request.method} {request.url.path}"
        return authorize(getattr(request.state, "user", None), policy.roles, route)

    dependency.operation = operation  # type: ignore[attr-defined]
    return dependency
