"""
MongoDB access for the School Management System.

Collections: user, class, grade, attendance, assignment, event, conversation.
References between documents are stored as string ids; the store does not
enforce them, so handlers validate them before writing.
"""

from typing import Any, Dict, Iterable, List, Optional

from bson import ObjectId
from bson.errors import InvalidId
from fastapi import Request
from pymongo import ASCENDING, MongoClient
from pymongo.database import Database

from config import Settings
from errors import NotFoundError, ValidationError


def create_client(settings: Settings) -> MongoClient:
    return MongoClient(settings.DATABASE_URL, tz_aware=True)


def ensure_indexes(db: Database) -> None:
    """Unique keys the handlers rely on for upserts and duplicate detection"""
    db["user"].create_index([("email", ASCENDING)], unique=True)
    db["attendance"].create_index(
        [("class_id", ASCENDING), ("student_id", ASCENDING), ("date", ASCENDING)],
        unique=True,
    )
    db["grade"].create_index(
        [
            ("student_id", ASCENDING),
            ("class_id", ASCENDING),
            ("subject", ASCENDING),
            ("assessment_type", ASCENDING),
            ("assessment_name", ASCENDING),
        ],
        unique=True,
    )
    db["conversation"].create_index([("participants", ASCENDING)])


def get_db(request: Request) -> Database:
    """FastAPI dependency: the database handle opened at startup"""
    return request.app.state.db


def to_object_id(value: str, label: str = "") -> ObjectId:
    try:
        return ObjectId(value)
    except (InvalidId, TypeError):
        raise ValidationError(f"Invalid {label} id" if label else "Invalid ID")


def serialize(doc: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    """Replace the ObjectId primary key with a string ``id``"""
    if doc is None:
        return None
    doc = dict(doc)
    if "_id" in doc:
        doc["id"] = str(doc.pop("_id"))
    doc.pop("password", None)
    return doc


def serialize_all(docs: Iterable[Dict[str, Any]]) -> List[Dict[str, Any]]:
    return [serialize(d) for d in docs]


def find_or_404(db: Database, collection: str, doc_id: str, label: str) -> Dict[str, Any]:
    """Load a document by id, or raise NotFoundError('<Label> not found')"""
    doc = db[collection].find_one({"_id": to_object_id(doc_id, label.lower())})
    if doc is None:
        raise NotFoundError(f"{label} not found")
    return doc
