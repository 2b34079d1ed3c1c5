"""Identity service API built with FastAPI.

Resolves user ids to public identities for the orders core. Callers must
forward the end user's ``Authorization`` header; token verification itself
happens at the edge, this service only refuses anonymous lookups.
"""

import logging
import time
import uuid
from typing import Annotated, Optional

from fastapi import FastAPI, Header, HTTPException, Request
from pydantic import BaseModel
from pythonjsonlogger import jsonlogger
from sqlalchemy import text
from sqlalchemy.exc import OperationalError

from repo import UsersRepo, engine, init_db

app = FastAPI(title="Identity Service")

logger = logging.getLogger("identity")
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


class UserOut(BaseModel):
    id: str
    first_name: str
    last_name: str
    email: str


@app.get("/health")
def health():
    return {"ok": True}


@app.get("/users/{user_id}", response_model=UserOut)
def get_user(
    user_id: str,
    authorization: Annotated[Optional[str], Header()] = None,
):
    """Return the public identity of a user.

    Raises:
        HTTPException: 401 without an ``Authorization`` header, 404 when the
            user is unknown.
    """
    if not authorization:
        raise HTTPException(status_code=401, detail="UNAUTHENTICATED")
    user = UsersRepo().get(user_id)
    if user is None:
        raise HTTPException(status_code=404, detail="NOT_FOUND")
    return UserOut(**user)


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
