"""Object-storage service API built with FastAPI.

Stores uploaded files (payment-proof screenshots) and serves them back
by id. Metadata persistence is delegated to the SQLAlchemy-backed
``repo.ObjectRepo``; bytes are written under ``STORAGE_ROOT``.

Endpoints:
- ``POST /objects``: multipart ``file`` plus ``folder`` form field,
  returns ``{id, secure_url, size}`` with 201.
- ``GET /objects/{id}``: the stored bytes with their content type.
- ``GET /health``: liveness check including a database round trip.
"""

import logging
import os
import re
import time
import uuid

from fastapi import FastAPI, File, Form, HTTPException, Request, UploadFile
from fastapi.responses import FileResponse
from pydantic import BaseModel
from pythonjsonlogger import jsonlogger
from sqlalchemy import text
from sqlalchemy.exc import OperationalError

from repo import ObjectRepo, engine, init_db

app = FastAPI(title="Object Storage Service")

MAX_OBJECT_BYTES = int(os.getenv("MAX_OBJECT_BYTES", str(20 * 1024 * 1024)))
ALLOWED_CONTENT_TYPES = {"image/jpeg", "image/jpg", "image/png", "image/gif", "image/webp"}
FOLDER_RE = re.compile(r"^[a-z0-9_-]{1,64}$")

logger = logging.getLogger("storage")
if not logger.handlers:
    h = logging.StreamHandler()
    h.setFormatter(jsonlogger.JsonFormatter("%(asctime)s %(levelname)s %(name)s %(message)s %(request_id)s"))
    logger.addHandler(h)
    logger.setLevel(logging.INFO)


@app.on_event("startup")
def _startup_db():
    # brief wait until the database accepts connections
    deadline = time.time() + int(os.getenv("DB_WAIT_SECS", "30"))
    while True:
        try:
            with engine.connect() as conn:
                conn.execute(text("select 1"))
            break
        except OperationalError:
            if time.time() > deadline:
                raise
            time.sleep(1)
    init_db()


class UploadResponse(BaseModel):
    id: str
    secure_url: str
    size: int


@app.get("/health")
def health():
    with engine.connect() as conn:
        conn.execute(text("select 1"))
    return {"ok": True}


@app.post("/objects", response_model=UploadResponse, status_code=201)
def upload_object(file: UploadFile = File(...), folder: str = Form("uploads")):
    """Persist an uploaded file.

    Raises:
        HTTPException: 422 for an invalid folder name, 415 for a content
            type outside the image allow-list, 413 when the file is larger
            than ``MAX_OBJECT_BYTES``.
    """
    if not FOLDER_RE.match(folder):
        raise HTTPException(status_code=422, detail="INVALID_FOLDER")
    content_type = (file.content_type or "").lower()
    if content_type not in ALLOWED_CONTENT_TYPES:
        raise HTTPException(status_code=415, detail="UNSUPPORTED_MEDIA_TYPE")

    content = file.file.read(MAX_OBJECT_BYTES + 1)
    if len(content) > MAX_OBJECT_BYTES:
        raise HTTPException(status_code=413, detail="OBJECT_TOO_LARGE")

    obj = ObjectRepo().save(content, folder, file.filename or "upload", content_type)
    logger.info("object stored", extra={"object_id": obj.id, "folder": folder, "size": obj.size})
    return UploadResponse(id=obj.id, secure_url=obj.secure_url, size=obj.size)


@app.get("/objects/{object_id}")
def get_object(object_id: str):
    repo = ObjectRepo()
    obj = repo.get(object_id)
    if obj is None:
        raise HTTPException(status_code=404, detail="NOT_FOUND")
    path = repo.path_for(obj)
    if not path.exists():
        logger.error("object file missing", extra={"object_id": object_id})
        raise HTTPException(status_code=404, detail="NOT_FOUND")
    return FileResponse(path, media_type=obj.content_type, filename=obj.filename)


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
