"""Record storage backends for generated image metadata.

Route handlers and the persistence adapter depend only on the small
:class:`RecordStore` capability:

- ``append(record)`` — insert a new record (ids are never reused)
- ``list_descending()`` — every record, newest first
- ``get_by_id(record_id)`` — one record, or ``None``

Three implementations are provided:

- :class:`InMemoryRecordStore` — a locked list; for tests and throwaway runs.
- :class:`JsonRecordStore` — the in-memory store persisted to a single
  ``gallery.json`` file after every append.
- :class:`SqlRecordStore` — SQLAlchemy; PostgreSQL in production, SQLite for
  local development.  Concurrency control is left to the database.

There is deliberately no update or delete operation: records are immutable
once written.
"""

from __future__ import annotations

import json
import logging
import os
import threading
import time
from pathlib import Path
from typing import Protocol

from pydantic import ValidationError
from sqlalchemy import Column, DateTime, String, Text, create_engine, func, select
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from degenify.core.errors import PersistenceError
from degenify.core.records import GeneratedImage, InlineImage, RemoteImage, ensure_utc

logger = logging.getLogger(__name__)


class RecordStore(Protocol):
    """Capability every record backend provides."""

    def append(self, record: GeneratedImage) -> None: ...

    def list_descending(self) -> list[GeneratedImage]: ...

    def get_by_id(self, record_id: str) -> GeneratedImage | None: ...

    def close(self) -> None: ...


def _sort_newest_first(records: list[GeneratedImage]) -> list[GeneratedImage]:
    # sorted() is stable: reversing first keeps later inserts ahead on ties.
    return sorted(reversed(records), key=lambda r: r.timestamp, reverse=True)


# ---------------------------------------------------------------------------
# In-process stores.
# ---------------------------------------------------------------------------


class InMemoryRecordStore:
    """Thread-safe list of records held in process memory."""

    def __init__(self, records: list[GeneratedImage] | None = None) -> None:
        self._lock = threading.Lock()
        self._records: list[GeneratedImage] = []
        self._index: dict[str, GeneratedImage] = {}
        for record in records or []:
            self._insert(record)

    def _insert(self, record: GeneratedImage) -> None:
        if record.id in self._index:
            raise PersistenceError(f"Duplicate record id: {record.id}")
        self._records.append(record)
        self._index[record.id] = record

    def append(self, record: GeneratedImage) -> None:
        with self._lock:
            self._insert(record)

    def list_descending(self) -> list[GeneratedImage]:
        with self._lock:
            snapshot = list(self._records)
        return _sort_newest_first(snapshot)

    def get_by_id(self, record_id: str) -> GeneratedImage | None:
        with self._lock:
            return self._index.get(record_id)

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)

    def close(self) -> None:
        pass


class JsonRecordStore(InMemoryRecordStore):
    """In-memory store mirrored to a JSON file.

    The file is read once at construction and rewritten in full after every
    append.  Rewrites go to a sibling ``.tmp`` file that is then renamed over
    the gallery, so a crash mid-write leaves the previous file intact.

    Loading is forgiving: a missing file yields an empty gallery, and
    individual entries that fail validation are skipped with a warning
    rather than aborting startup.  A file that cannot be parsed at all is
    moved aside to ``<name>.corrupt-<timestamp>`` before starting empty, so
    the next append never overwrites it.
    """

    def __init__(self, path: Path | str) -> None:
        self.path = Path(path)
        super().__init__(self._load())
        logger.info(f"Loaded {len(self)} images from gallery file {self.path}")

    def _load(self) -> list[GeneratedImage]:
        if not self.path.exists():
            return []
        try:
            with open(self.path, encoding="utf-8") as handle:
                raw_entries = json.load(handle)
        except (OSError, ValueError) as e:
            logger.error(f"Failed to load gallery file {self.path}: {e}")
            self._quarantine()
            return []

        if not isinstance(raw_entries, list):
            logger.error(f"Gallery file {self.path} does not hold a list")
            self._quarantine()
            return []

        records: list[GeneratedImage] = []
        seen: set[str] = set()
        for entry in raw_entries:
            try:
                record = GeneratedImage.model_validate(entry)
            except ValidationError as e:
                logger.warning(f"Skipping invalid gallery entry: {e}")
                continue
            if record.id in seen:
                continue
            seen.add(record.id)
            records.append(record)
        return records

    def _quarantine(self) -> None:
        target = self.path.with_name(f"{self.path.name}.corrupt-{time.strftime('%Y%m%d-%H%M%S')}")
        try:
            os.replace(self.path, target)
        except OSError as e:
            raise PersistenceError(f"Could not move unreadable gallery file {self.path} aside: {e}") from e
        logger.warning(f"Moved unreadable gallery file to {target}")

    def _save(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        entries = [r.model_dump(mode="json", by_alias=True) for r in self._records]
        tmp_path = self.path.with_name(f"{self.path.name}.tmp")
        try:
            with open(tmp_path, "w", encoding="utf-8") as handle:
                json.dump(entries, handle, indent=2)
                handle.flush()
                os.fsync(handle.fileno())
            os.replace(tmp_path, self.path)
        except Exception:
            tmp_path.unlink(missing_ok=True)
            raise

    def append(self, record: GeneratedImage) -> None:
        with self._lock:
            self._insert(record)
            try:
                self._save()
            except OSError as e:
                # Keep memory and disk in agreement.
                self._records.pop()
                del self._index[record.id]
                raise PersistenceError(f"Failed to save gallery file: {e}") from e


# ---------------------------------------------------------------------------
# SQL store.
# ---------------------------------------------------------------------------

Base = declarative_base()


class ImageRow(Base):
    """Row in the ``images`` table.

    Exactly one of ``image_data`` (inline base64) and the ``cloudinary_*``
    pair is populated.
    """

    __tablename__ = "images"

    id = Column(String(255), primary_key=True)
    prompt = Column(Text, nullable=False)
    image_data = Column(Text, nullable=True)
    cloudinary_url = Column(Text, nullable=True)
    cloudinary_public_id = Column(String(255), nullable=True)
    timestamp = Column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        index=True,
    )

    @classmethod
    def from_record(cls, record: GeneratedImage) -> "ImageRow":
        location = record.image_location
        row = cls(id=record.id, prompt=record.prompt, timestamp=record.timestamp)
        if isinstance(location, RemoteImage):
            row.cloudinary_url = location.url
            row.cloudinary_public_id = location.public_id
        else:
            row.image_data = location.data
        return row

    def to_record(self) -> GeneratedImage:
        if self.cloudinary_url:
            location = RemoteImage(url=self.cloudinary_url, public_id=self.cloudinary_public_id or "")
        else:
            location = InlineImage(data=self.image_data or "")
        return GeneratedImage(
            id=self.id,
            prompt=self.prompt,
            image_location=location,
            timestamp=ensure_utc(self.timestamp),
        )


def create_db_engine(database_url: str) -> Engine:
    """Create an engine suited to ``database_url``.

    SQLite connections are shared across the worker threads that run blocking
    calls, and in-memory SQLite must reuse a single connection or every
    session would see an empty database.
    """
    if database_url.startswith("sqlite"):
        kwargs: dict = {"connect_args": {"check_same_thread": False}}
        if database_url in ("sqlite://", "sqlite:///:memory:"):
            kwargs["poolclass"] = StaticPool
        else:
            db_path = database_url.split("///", 1)[-1]
            if db_path:
                Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        return create_engine(database_url, **kwargs)

    return create_engine(
        database_url,
        pool_pre_ping=True,  # Detect connections dropped by the server
        pool_recycle=3600,
    )


class SqlRecordStore:
    """Record store backed by a relational database via SQLAlchemy."""

    def __init__(self, database_url: str | None = None, *, engine: Engine | None = None) -> None:
        if engine is None:
            if database_url is None:
                raise ValueError("database_url or engine is required")
            engine = create_db_engine(database_url)
        self.engine = engine
        self._session_factory = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
        try:
            Base.metadata.create_all(engine)
        except SQLAlchemyError as e:
            raise PersistenceError(f"Database initialization failed: {e}") from e
        logger.info("Database initialized successfully")

    def append(self, record: GeneratedImage) -> None:
        try:
            with self._session_factory() as session:
                session.add(ImageRow.from_record(record))
                session.commit()
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to insert image record {record.id}: {e}") from e

    def list_descending(self) -> list[GeneratedImage]:
        # Ids start with the creation time in milliseconds, which breaks ties.
        stmt = select(ImageRow).order_by(ImageRow.timestamp.desc(), ImageRow.id.desc())
        try:
            with self._session_factory() as session:
                rows = session.scalars(stmt).all()
                return [row.to_record() for row in rows]
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to list image records: {e}") from e

    def get_by_id(self, record_id: str) -> GeneratedImage | None:
        try:
            with self._session_factory() as session:
                row = session.get(ImageRow, record_id)
                return row.to_record() if row is not None else None
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to load image record {record_id}: {e}") from e

    def close(self) -> None:
        self.engine.dispose()
