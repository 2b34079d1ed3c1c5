"""SQLAlchemy repository for user identities.

The orders core only ever reads a user's public identity (names and e-mail),
so the schema is limited to those columns. Credentials and tokens live in the
edge authentication service, not here.
"""

import os
from contextlib import contextmanager
from typing import Optional

from sqlalchemy import String, create_engine
from sqlalchemy.orm import DeclarativeBase, Session, mapped_column

DB_HOST = os.getenv("DB_HOST", "identity-db")
DB_PORT = os.getenv("DB_PORT", "5432")
DB_NAME = os.getenv("DB_NAME", "identity")
DB_USER = os.getenv("DB_USER", "identity_user")
DB_PASSWORD = os.getenv("DB_PASSWORD", "identity-pass")

DATABASE_URL = os.getenv(
    "DATABASE_URL",
    f"postgresql+psycopg://{DB_USER}:{DB_PASSWORD}@{DB_HOST}:{DB_PORT}/{DB_NAME}",
)
engine = create_engine(DATABASE_URL, pool_pre_ping=True)


class Base(DeclarativeBase): pass


class User(Base):
    __tablename__ = "users"
    id = mapped_column(String(64), primary_key=True)
    first_name = mapped_column(String(128), nullable=False, default="")
    last_name = mapped_column(String(128), nullable=False, default="")
    email = mapped_column(String(256), nullable=False, unique=True)


def init_db() -> None:
    Base.metadata.create_all(engine)


@contextmanager
def get_session():
    with Session(engine) as s:
        yield s


class UsersRepo:
    def get(self, user_id: str) -> Optional[dict]:
        """Return the user's public identity, or None when unknown."""
        with get_session() as s:
            obj = s.get(User, user_id)
            if obj is None:
                return None
            return {
                "id": obj.id,
                "first_name": obj.first_name,
                "last_name": obj.last_name,
                "email": obj.email,
            }
