"""SQLAlchemy repository for catalog products and their current prices.

The schema is a single ``products`` table keyed by product id. Prices are
stored as NUMERIC(12, 2); a product may exist without a price, in which case
the orders core refuses to create lines for it. The connection is configured
through the ``DB_*`` environment variables.
"""

import os
from contextlib import contextmanager
from decimal import Decimal
from typing import Optional

from sqlalchemy import Boolean, Numeric, String, create_engine
from sqlalchemy.orm import DeclarativeBase, Session, mapped_column

DB_HOST = os.getenv("DB_HOST", "catalog-db")
DB_PORT = os.getenv("DB_PORT", "5432")
DB_NAME = os.getenv("DB_NAME", "catalog")
DB_USER = os.getenv("DB_USER", "catalog_user")
DB_PASSWORD = os.getenv("DB_PASSWORD", "catalog-pass")

DATABASE_URL = os.getenv(
    "DATABASE_URL",
    f"postgresql+psycopg://{DB_USER}:{DB_PASSWORD}@{DB_HOST}:{DB_PORT}/{DB_NAME}",
)
engine = create_engine(DATABASE_URL, pool_pre_ping=True)


class Base(DeclarativeBase): pass


class Product(Base):
    """A sellable product.

    Attributes:
        id: Product identifier (primary key).
        name: Display name.
        price: Current unit price, or NULL when the product is not priced.
        available: Whether the product can currently be sold.
    """
    __tablename__ = "products"
    id = mapped_column(String(64), primary_key=True)
    name = mapped_column(String(256), nullable=False, default="")
    price = mapped_column(Numeric(12, 2), nullable=True)
    available = mapped_column(Boolean, nullable=False, default=True)


def init_db() -> None:
    Base.metadata.create_all(engine)


@contextmanager
def get_session():
    with Session(engine) as s:
        yield s


class CatalogRepo:
    def get(self, product_id: str) -> Optional[dict]:
        """Return the product as a plain dict, or None when unknown."""
        with get_session() as s:
            obj = s.get(Product, product_id)
            if obj is None:
                return None
            return {
                "id": obj.id,
                "name": obj.name,
                "price": obj.price,
                "available": obj.available,
            }

    def upsert(self, product_id: str, name: str, price: Optional[Decimal], available: bool = True) -> None:
        with get_session() as s:
            obj = s.get(Product, product_id) or Product(id=product_id)
            obj.name = name
            obj.price = price
            obj.available = available
            s.merge(obj)
            s.commit()
