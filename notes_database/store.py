"""
Flat collection stores for users and notes.

Every backend exposes the same synchronous contract: `load()` returns both
collections in storage order and `save()` overwrites both in full. Callers that
read, modify and write go through `transaction()`, which holds the store's
writer lock for the whole cycle so concurrent requests cannot lose updates.
"""
import json
import logging
import os
import threading
from contextlib import contextmanager
from pathlib import Path
from tempfile import NamedTemporaryFile
from typing import Iterator, List, Tuple, Type

from pydantic import BaseModel
from pydantic import ValidationError as SchemaError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from notes_database.models import Base, Note, NoteRow, User, UserRow

logger = logging.getLogger(__name__)


class StoreError(Exception):
    """Raised when the backing store cannot be read or written."""


class Snapshot:
    """Mutable view of both collections inside a transaction."""

    def __init__(self, users: List[User], notes: List[Note]):
        self.users = users
        self.notes = notes


# PUBLIC_INTERFACE
class DataStore:
    """Base class for the store backends."""

    def __init__(self):
        self._lock = threading.RLock()

    def load(self) -> Tuple[List[User], List[Note]]:
        raise NotImplementedError

    def save(self, users: List[User], notes: List[Note]) -> None:
        raise NotImplementedError

    @contextmanager
    def transaction(self) -> Iterator[Snapshot]:
        """
        Single-writer read-modify-write cycle.
        Saves on normal exit; an exception leaves the stored state untouched.
        """
        with self._lock:
            users, notes = self.load()
            snapshot = Snapshot(users, notes)
            yield snapshot
            self.save(snapshot.users, snapshot.notes)


# PUBLIC_INTERFACE
class MemoryStore(DataStore):
    """Keeps both collections in process memory."""

    def __init__(self):
        super().__init__()
        self._users: List[User] = []
        self._notes: List[Note] = []

    def load(self):
        return [u.model_copy() for u in self._users], [n.model_copy() for n in self._notes]

    def save(self, users, notes):
        self._users = [u.model_copy() for u in users]
        self._notes = [n.model_copy() for n in notes]


# PUBLIC_INTERFACE
class JsonFileStore(DataStore):
    """
    Stores users and notes as two JSON arrays (`users.json`, `notes.json`)
    under `data_dir`. Missing files are created as empty arrays on first access.
    """

    def __init__(self, data_dir):
        super().__init__()
        self.data_dir = Path(data_dir)
        self.users_path = self.data_dir / "users.json"
        self.notes_path = self.data_dir / "notes.json"

    def _ensure_files(self):
        self.data_dir.mkdir(parents=True, exist_ok=True)
        for path in (self.users_path, self.notes_path):
            if not path.exists():
                logger.info("Creating empty collection at %s", path)
                path.write_text("[]", encoding="utf-8")

    def _read(self, path: Path, model: Type[BaseModel]) -> list:
        try:
            raw = json.loads(path.read_text(encoding="utf-8"))
            return [model.model_validate(item) for item in raw]
        except (OSError, json.JSONDecodeError, TypeError, SchemaError) as exc:
            logger.error("Failed to load %s: %s", path, exc)
            raise StoreError(f"Could not read {path.name}") from exc

    def _write(self, path: Path, records: list) -> None:
        payload = [r.model_dump(mode="json", by_alias=True) for r in records]
        tmp = None
        try:
            tmp = NamedTemporaryFile("w", encoding="utf-8", dir=str(path.parent), suffix=".tmp", delete=False)
            json.dump(payload, tmp, indent=2)
            tmp.flush()
            os.fsync(tmp.fileno())
            tmp.close()
            os.replace(tmp.name, path)
        except OSError as exc:
            logger.error("Failed to write %s: %s", path, exc)
            raise StoreError(f"Could not write {path.name}") from exc
        finally:
            if tmp is not None and os.path.exists(tmp.name):
                os.unlink(tmp.name)

    def load(self):
        self._ensure_files()
        users = self._read(self.users_path, User)
        notes = self._read(self.notes_path, Note)
        logger.debug("Loaded %d users and %d notes from %s", len(users), len(notes), self.data_dir)
        return users, notes

    def save(self, users, notes):
        self._ensure_files()
        self._write(self.users_path, users)
        self._write(self.notes_path, notes)
        logger.debug("Saved %d users and %d notes to %s", len(users), len(notes), self.data_dir)


# PUBLIC_INTERFACE
class SqlStore(DataStore):
    """
    Stores both collections in SQL tables. `save()` replaces the contents of
    both tables inside one database transaction.
    """

    def __init__(self, engine):
        super().__init__()
        self.engine = engine
        self.SessionLocal = sessionmaker(autoflush=False, bind=engine)
        Base.metadata.create_all(bind=engine)

    def load(self):
        with self.SessionLocal() as db:
            try:
                users = [row.to_record() for row in db.query(UserRow).order_by(UserRow.position)]
                notes = [row.to_record() for row in db.query(NoteRow).order_by(NoteRow.position)]
            except SQLAlchemyError as exc:
                logger.error("Failed to load collections: %s", exc)
                raise StoreError("Could not read collections") from exc
        return users, notes

    def save(self, users, notes):
        with self.SessionLocal() as db:
            try:
                db.query(NoteRow).delete()
                db.query(UserRow).delete()
                db.add_all([UserRow.from_record(u, i) for i, u in enumerate(users)])
                db.add_all([NoteRow.from_record(n, i) for i, n in enumerate(notes)])
                db.commit()
            except SQLAlchemyError as exc:
                db.rollback()
                logger.error("Failed to save collections: %s", exc)
                raise StoreError("Could not write collections") from exc
        logger.debug("Saved %d users and %d notes", len(users), len(notes))
