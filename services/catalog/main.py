"""Catalog service API built with FastAPI.

Serves the current catalog entry (and price) of a product to the orders
core. Persistence is delegated to ``repo.CatalogRepo``.
"""

import logging
import time
import uuid
from decimal import Decimal
from typing import Optional

from fastapi import FastAPI, HTTPException, Request
from pydantic import BaseModel, Field
from pythonjsonlogger import jsonlogger
from sqlalchemy import text
from sqlalchemy.exc import OperationalError

from repo import CatalogRepo, engine, init_db

app = FastAPI(title="Catalog Service")

# logger JSON
logger = logging.getLogger("catalog")
if not logger.handlers:
    h = logging.StreamHandler()
    h.setFormatter(jsonlogger.JsonFormatter("%(asctime)s %(levelname)s %(name)s %(message)s %(request_id)s"))
    logger.addHandler(h)
    logger.setLevel(logging.INFO)


@app.on_event("startup")
def _startup_db():
    # short wait until the database accepts connections
    deadline = time.time() + 30
    while True:
        try:
            with engine.connect() as conn:
                conn.execute(text("select 1"))
            break
        except OperationalError:
            if time.time() > deadline:
                logger.error("database not reachable at startup")
                raise
            time.sleep(1)
    init_db()


class ProductOut(BaseModel):
    id: str
    name: str
    price: Optional[Decimal] = None
    available: bool = True


class ProductIn(BaseModel):
    name: str = Field(min_length=1, max_length=256)
    price: Optional[Decimal] = Field(default=None, ge=0, max_digits=12, decimal_places=2)
    available: bool = True


@app.get("/health")
def health():
    return {"ok": True}


@app.get("/products/{product_id}", response_model=ProductOut)
def get_product(product_id: str):
    """Return a product with its current price.

    Raises:
        HTTPException: 404 when the product is unknown.
    """
    product = CatalogRepo().get(product_id)
    if product is None:
        raise HTTPException(status_code=404, detail="NOT_FOUND")
    return ProductOut(**product)


@app.put("/products/{product_id}", response_model=ProductOut)
def put_product(product_id: str, body: ProductIn):
    """Create or replace a product entry."""
    CatalogRepo().upsert(product_id, body.name, body.price, body.available)
    return ProductOut(id=product_id, **body.model_dump())


@app.middleware("http")
async def add_request_id(request: Request, call_next):
    rid = request.headers.get("X-Request-ID") or str(uuid.uuid4())
    request.state.request_id = rid
    try:
        response = await call_next(request)
    finally:
        logger.info("request handled", extra={"request_id": rid, "path": request.url.path, "method": request.method})
    response.headers["X-Request-ID"] = rid
    return response
