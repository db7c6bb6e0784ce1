"""
Create (or promote) the default administrator account.

    python seed.py
"""

from pymongo.database import Database

from config import get_settings
from database import create_client, ensure_indexes
from logging_config import logger, setup_logging
from schemas import Role
from security import PasswordHasher
from store import UserStore

ADMIN_EMAIL = "admin@example.com"
ADMIN_PASSWORD = "admin123"


def seed_admin(db: Database, hasher: PasswordHasher) -> dict:
    store = UserStore(db, hasher)
    existing = store.find_by_email(ADMIN_EMAIL)
    if existing is None:
        admin = store.create({
            "first_name": "Admin",
            "last_name": "User",
            "email": ADMIN_EMAIL,
            "password": ADMIN_PASSWORD,
            "role": Role.ADMIN,
        })
        logger.info(f"Admin user created: {ADMIN_EMAIL}")
        return admin
    if existing.get("role") != Role.ADMIN.value:
        logger.info(f"Promoting existing user {ADMIN_EMAIL} to admin")
        return store.update(str(existing["_id"]), {"role": Role.ADMIN})
    logger.info("Admin user already exists")
    return existing


if __name__ == "__main__":
    settings = get_settings()
    setup_logging(settings)
    client = create_client(settings)
    try:
        db = client[settings.DATABASE_NAME]
        ensure_indexes(db)
        seed_admin(db, PasswordHasher(settings.BCRYPT_ROUNDS))
    finally:
        client.close()
