"""
Test configuration and fixtures.

The app runs against an in-memory mongomock database; users are created
straight through the credential store and authenticated with tokens minted
by the same token service the app uses.
"""
import os
from typing import Any, Callable, Dict

import mongomock
import pytest
from faker import Faker
from fastapi.testclient import TestClient

os.environ.setdefault('JWT_SECRET_KEY', 'test-jwt-secret-key-for-testing')
os.environ.setdefault('BCRYPT_ROUNDS', '4')

from config import Settings
from main import create_app
from schemas import Role
from security import PasswordHasher, TokenService
from store import UserStore

fake = Faker()

TEST_PASSWORD = 'password123'

ROLE_DEFAULTS: Dict[Role, Dict[str, Any]] = {
    Role.TEACHER: {'subject': 'Mathematics', 'qualifications': 'M.Sc. Mathematics, B.Ed'},
    Role.STUDENT: {'grade': '10', 'date_of_birth': '2010-04-12'},
    Role.PARENT: {'child_name': 'Nobody Inparticular', 'phone': '(555) 123-4567'},
    Role.ADMIN: {},
}


@pytest.fixture
def settings() -> Settings:
    return Settings(
        _env_file=None,
        ENVIRONMENT='testing',
        JWT_SECRET_KEY='test-jwt-secret-key-for-testing',
        BCRYPT_ROUNDS=4,
    )


@pytest.fixture
def db():
    return mongomock.MongoClient(tz_aware=True)['school_test']


@pytest.fixture
def client(settings: Settings, db):
    app = create_app(settings, db=db)
    with TestClient(app) as c:
        yield c


@pytest.fixture
def hasher() -> PasswordHasher:
    return PasswordHasher(rounds=4)


@pytest.fixture
def tokens(settings: Settings) -> TokenService:
    return TokenService.from_settings(settings)


@pytest.fixture
def store(db, hasher: PasswordHasher) -> UserStore:
    return UserStore(db, hasher)


@pytest.fixture
def make_user(store: UserStore) -> Callable[..., Dict[str, Any]]:
    """Create a user of the given role with realistic defaults"""
    def _make(role: Role = Role.STUDENT, **fields) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            'first_name': fake.first_name(),
            'last_name': fake.last_name(),
            'email': fake.unique.email(),
            'password': TEST_PASSWORD,
            'role': role,
            **ROLE_DEFAULTS[role],
        }
        data.update(fields)
        return store.create(data)
    return _make


@pytest.fixture
def headers_for(tokens: TokenService) -> Callable[[Dict[str, Any]], Dict[str, str]]:
    def _headers(user: Dict[str, Any]) -> Dict[str, str]:
        return {'Authorization': f"Bearer {tokens.issue(str(user['_id']))}"}
    return _headers


@pytest.fixture
def admin(make_user):
    return make_user(Role.ADMIN)


@pytest.fixture
def teacher(make_user):
    return make_user(Role.TEACHER)


@pytest.fixture
def other_teacher(make_user):
    return make_user(Role.TEACHER)


@pytest.fixture
def student(make_user):
    return make_user(Role.STUDENT)


@pytest.fixture
def make_class(db):
    """Insert a class document directly"""
    def _make(teacher: Dict[str, Any], students=(), **fields) -> Dict[str, Any]:
        doc = {
            'name': fields.pop('name', 'Algebra I'),
            'teacher_id': str(teacher['_id']),
            'student_ids': [str(s['_id']) for s in students],
            'subject': 'Mathematics',
            'capacity': 30,
            'academic_year': '2024-2025',
            'schedule': [],
            **fields,
        }
        doc['_id'] = db['class'].insert_one(doc).inserted_id
        return doc
    return _make
