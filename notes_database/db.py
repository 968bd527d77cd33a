import os
from typing import Optional

from dotenv import load_dotenv
from sqlalchemy import create_engine

from notes_database.store import DataStore, JsonFileStore, MemoryStore, SqlStore

load_dotenv()

STORE_BACKEND = os.getenv("NOTES_STORE", "json").strip().lower()
DATA_DIR = os.getenv("NOTES_DATA_DIR", os.path.join(os.getcwd(), "data"))

_store: Optional[DataStore] = None


# PUBLIC_INTERFACE
def get_database_url():
    """
    Retrieves the database URL from the environment variable DATABASE_URL.
    Only the SQL backend needs it.
    """
    db_url = os.getenv("DATABASE_URL")
    if not db_url:
        raise ValueError("DATABASE_URL environment variable not set.")
    return db_url


# PUBLIC_INTERFACE
def create_store(backend: Optional[str] = None) -> DataStore:
    """Builds the store selected by NOTES_STORE (json, sql or memory)."""
    backend = (backend or STORE_BACKEND).lower()
    if backend == "json":
        return JsonFileStore(DATA_DIR)
    if backend == "sql":
        engine = create_engine(get_database_url(), future=True, echo=False)
        return SqlStore(engine)
    if backend == "memory":
        return MemoryStore()
    raise ValueError(f"Unknown NOTES_STORE backend: {backend!r}")


# PUBLIC_INTERFACE
def get_store() -> DataStore:
    """Process-wide store, created on first use."""
    global _store
    if _store is None:
        _store = create_store()
    return _store


# PUBLIC_INTERFACE
def get_db():
    """
    Yields the data store for use in dependency injection.
    Example usage (FastAPI):
        def endpoint(store: DataStore = Depends(get_db)):
            ...
    """
    yield get_store()
