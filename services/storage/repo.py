"""SQLAlchemy repository for stored objects.

Object bytes live on disk under ``STORAGE_ROOT/<folder>/``; the database
keeps one row per object with its metadata. Connection parameters come
from ``STORAGE_DATABASE_URL`` or, when unset, the ``DB_*`` variables of
the PostgreSQL deployment.
"""

import os
import uuid
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path

from sqlalchemy import DateTime, Integer, String, create_engine
from sqlalchemy.orm import DeclarativeBase, Session, mapped_column

DB_HOST = os.getenv("DB_HOST", "storage-db")
DB_PORT = os.getenv("DB_PORT", "5432")
DB_NAME = os.getenv("DB_NAME", "storage")
DB_USER = os.getenv("DB_USER", "storage_user")
DB_PASSWORD = os.getenv("DB_PASSWORD", "storage-pass")

DATABASE_URL = os.getenv("STORAGE_DATABASE_URL") or (
    f"postgresql+psycopg://{DB_USER}:{DB_PASSWORD}@{DB_HOST}:{DB_PORT}/{DB_NAME}"
)
STORAGE_ROOT = Path(os.getenv("STORAGE_ROOT", "/data/objects"))
PUBLIC_BASE_URL = os.getenv("PUBLIC_BASE_URL", "http://localhost:9003").rstrip("/")

_connect_args = {"check_same_thread": False} if DATABASE_URL.startswith("sqlite") else {}
engine = create_engine(DATABASE_URL, pool_pre_ping=True, connect_args=_connect_args)


class Base(DeclarativeBase):
    pass


class StoredObject(Base):
    """Metadata of one uploaded object.

    Attributes:
        id: Hex UUID, also the file name stem on disk.
        folder: Logical folder (``payment_screenshots`` for order proofs).
        filename: Original client file name.
        content_type: MIME type declared by the uploader.
        size: Size in bytes.
    """

    __tablename__ = "objects"
    id = mapped_column(String(32), primary_key=True)
    folder = mapped_column(String(64), nullable=False, index=True)
    filename = mapped_column(String(255), nullable=False)
    content_type = mapped_column(String(64), nullable=False)
    extension = mapped_column(String(8), nullable=False)
    size = mapped_column(Integer, nullable=False)
    created_at = mapped_column(DateTime(timezone=True), nullable=False)

    @property
    def relative_path(self) -> str:
        return f"{self.folder}/{self.id}.{self.extension}"

    @property
    def secure_url(self) -> str:
        return f"{PUBLIC_BASE_URL}/objects/{self.id}"


def init_db():
    Base.metadata.create_all(engine)
    STORAGE_ROOT.mkdir(parents=True, exist_ok=True)


@contextmanager
def get_session():
    with Session(engine, expire_on_commit=False) as s:
        yield s


def _extension(filename: str) -> str:
    ext = filename.rsplit(".", 1)[-1].lower() if "." in filename else "bin"
    return ext[:8] or "bin"


class ObjectRepo:
    """Write-once object store: objects are created and read, never updated."""

    def save(self, content: bytes, folder: str, filename: str, content_type: str) -> StoredObject:
        """Write the bytes to disk, then record the metadata row.

        If the row cannot be committed the file is removed again so the
        disk never holds objects the database does not know about.
        """
        obj = StoredObject(
            id=uuid.uuid4().hex,
            folder=folder,
            filename=filename[:255],
            content_type=content_type,
            extension=_extension(filename),
            size=len(content),
            created_at=datetime.now(timezone.utc),
        )
        path = STORAGE_ROOT / obj.relative_path
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(content)
        try:
            with get_session() as s:
                s.add(obj)
                s.commit()
        except Exception:
            path.unlink(missing_ok=True)
            raise
        return obj

    def get(self, object_id: str) -> StoredObject | None:
        with get_session() as s:
            return s.get(StoredObject, object_id)

    def path_for(self, obj: StoredObject) -> Path:
        return STORAGE_ROOT / obj.relative_path
