"""
Credential store: the ``user`` collection.

Passwords are hashed on the way in, and only when the password field is part
of the write. Reads exclude the hash unless the caller asks for it.
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from pymongo import ReturnDocument
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError

from database import to_object_id
from errors import DuplicateError, NotFoundError, ValidationError
from schemas import Role
from security import PasswordHasher


WITHOUT_SECRET = {"password": 0}

ROLE_FIELD_MESSAGES = {
    Role.TEACHER: (("subject", "qualifications"), "Subject and qualifications are required for teachers"),
    Role.STUDENT: (("grade", "date_of_birth"), "Grade and date of birth are required for students"),
    Role.PARENT: (("child_name",), "Child name is required for parents"),
}
ROLE_FIELDS = {field for fields, _ in ROLE_FIELD_MESSAGES.values() for field in fields} | {"child_id"}


def check_role_fields(role: Role, data: Dict[str, Any]) -> None:
    """Role-conditional attributes are required exactly when the role matches"""
    required = ROLE_FIELD_MESSAGES.get(role)
    if required is None:
        return
    fields, message = required
    if any(not data.get(field) for field in fields):
        raise ValidationError(message)


def split_child_name(child_name: str) -> Optional[Dict[str, str]]:
    """'Alex van Thompson' -> first 'Alex', last 'van Thompson'"""
    parts = child_name.strip().split(" ", 1)
    if len(parts) != 2 or not parts[1].strip():
        return None
    return {"first_name": parts[0], "last_name": parts[1].strip()}


class UserStore:
    def __init__(self, db: Database, hasher: PasswordHasher):
        self.collection = db["user"]
        self.hasher = hasher

    # ----------------------- reads -----------------------
    def get(self, user_id: str) -> Optional[Dict[str, Any]]:
        return self.collection.find_one({"_id": to_object_id(user_id, "user")}, WITHOUT_SECRET)

    def get_or_404(self, user_id: str, role: Optional[Role] = None) -> Dict[str, Any]:
        user = self.get(user_id)
        if not user or (role is not None and user.get("role") != role.value):
            label = role.value.capitalize() if role else "User"
            raise NotFoundError(f"{label} not found")
        return user

    def find_by_email(self, email: str, include_secret: bool = False) -> Optional[Dict[str, Any]]:
        projection = None if include_secret else WITHOUT_SECRET
        return self.collection.find_one({"email": email.lower()}, projection)

    def list(self, query: Optional[Dict[str, Any]] = None, sort_field: str = "first_name") -> List[Dict[str, Any]]:
        return list(self.collection.find(query or {}, WITHOUT_SECRET).sort(sort_field, 1))

    def find_students_by_name(self, first_name: str, last_name: str) -> List[Dict[str, Any]]:
        # exact, case-sensitive match
        return list(self.collection.find(
            {"role": Role.STUDENT.value, "first_name": first_name, "last_name": last_name},
            WITHOUT_SECRET,
        ).limit(2))

    # ----------------------- writes -----------------------
    def create(self, data: Dict[str, Any]) -> Dict[str, Any]:
        role = Role(data.get("role", Role.STUDENT))
        check_role_fields(role, data)

        allowed = self._fields_for(role)
        doc = {k: v for k, v in data.items() if v is not None and (k not in ROLE_FIELDS or k in allowed)}
        doc["role"] = role.value
        doc["email"] = doc["email"].lower()
        doc["password"] = self.hasher.hash(data["password"])
        if "date_of_birth" in doc:
            doc["date_of_birth"] = str(doc["date_of_birth"])
        if role == Role.PARENT:
            doc["child_id"] = self._link_child(doc)
        now = datetime.now(timezone.utc)
        doc["created_at"] = now
        doc["updated_at"] = now

        if self.collection.find_one({"email": doc["email"]}, {"_id": 1}):
            raise DuplicateError("User already exists")
        try:
            res = self.collection.insert_one(doc)
        except DuplicateKeyError:
            raise DuplicateError("User already exists")
        doc["_id"] = res.inserted_id
        doc.pop("password")
        return doc

    def update(self, user_id: str, changes: Dict[str, Any]) -> Dict[str, Any]:
        """Apply a partial update; the hash is recomputed only if a new password is given"""
        current = self.get_or_404(user_id)
        role = Role(changes.get("role") or current["role"])
        allowed = self._fields_for(role)
        data = {
            k: v for k, v in changes.items()
            if v is not None and (k not in ROLE_FIELDS or k in allowed)
        }
        # attributes of a previous role do not survive a role change
        stale = {f: "" for f in ROLE_FIELDS - allowed if f in current}
        current = {k: v for k, v in current.items() if k not in stale}
        merged = {**current, **data}
        check_role_fields(role, merged)

        if "password" in data:
            data["password"] = self.hasher.hash(data["password"])
        if "email" in data:
            data["email"] = data["email"].lower()
        if data.get("date_of_birth") is not None:
            data["date_of_birth"] = str(data["date_of_birth"])
        if "role" in data:
            data["role"] = role.value
        if role == Role.PARENT and "child_id" in data:
            data["child_id"] = self._link_child(merged)
        elif role == Role.PARENT and "child_name" in data:
            # renamed child: drop the old link and resolve the new name
            data["child_id"] = self._link_child({**merged, "child_id": None})
        data["updated_at"] = datetime.now(timezone.utc)
        update: Dict[str, Any] = {"$set": data}
        if stale:
            update["$unset"] = stale

        try:
            updated = self.collection.find_one_and_update(
                {"_id": current["_id"]},
                update,
                projection=WITHOUT_SECRET,
                return_document=ReturnDocument.AFTER,
            )
        except DuplicateKeyError:
            raise DuplicateError("Email already in use")
        if updated is None:
            raise NotFoundError("User not found")
        return updated

    def delete(self, user_id: str) -> None:
        res = self.collection.delete_one({"_id": to_object_id(user_id, "user")})
        if res.deleted_count == 0:
            raise NotFoundError("User not found")

    # ----------------------- helpers -----------------------
    @staticmethod
    def _fields_for(role: Role):
        fields = set(ROLE_FIELD_MESSAGES.get(role, ((), ""))[0])
        if role == Role.PARENT:
            fields.add("child_id")
        return fields

    def _link_child(self, parent: Dict[str, Any]) -> Optional[str]:
        """Resolve a parent's child to a student id at write time.

        An explicit ``child_id`` must name a student. Otherwise the free-text
        name is matched, and the link is only recorded when exactly one
        student matches.
        """
        child_id = parent.get("child_id")
        if child_id:
            child = self.get(child_id)
            if not child or child.get("role") != Role.STUDENT.value:
                raise ValidationError("Child must be an existing student")
            return str(child_id)
        names = split_child_name(parent.get("child_name") or "")
        if names is None:
            return None
        matches = self.find_students_by_name(names["first_name"], names["last_name"])
        if len(matches) == 1:
            return str(matches[0]["_id"])
        return None
