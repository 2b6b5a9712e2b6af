"""Create or reset the admin account.

    python -m voiceover.seed_admin admin@example.com 's3cret' --name "Shop Admin"
"""
import argparse
import logging

from voiceover.auth import hash_password
from voiceover.database import Base, SessionLocal, engine
from voiceover.repository import OrderRepository

logger = logging.getLogger(__name__)


def seed_admin(email: str, password: str, name: str = None):
    Base.metadata.create_all(bind=engine)
    db = SessionLocal()
    try:
        return OrderRepository(db).save_admin(email, hash_password(password), name=name)
    finally:
        db.close()


def main(argv=None):
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("email")
    parser.add_argument("password")
    parser.add_argument("--name", default=None)
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.INFO)
    if len(args.password) < 8:
        parser.error("password must be at least 8 characters")
    admin = seed_admin(args.email, args.password, args.name)
    logger.info(f"Admin {admin.email} saved (id={admin.id})")


if __name__ == "__main__":
    main()
