# db.py
import logging
import threading
from contextlib import contextmanager
from typing import Dict, Iterable, Iterator

from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import SQLModel, create_engine, Session

from config import DATABASE_URL
from errors import PersistenceFailure

logger = logging.getLogger(__name__)

if not DATABASE_URL:
  raise RuntimeError("DATABASE_URL is not set in backend .env")

engine = create_engine(DATABASE_URL, echo=False, pool_pre_ping=True)

def init_db(bind=None) -> None:
  SQLModel.metadata.create_all(bind or engine)

def get_session():
  with Session(engine) as session:
    yield session

def commit(session: Session) -> None:
  try:
    session.commit()
  except SQLAlchemyError as exc:
    session.rollback()
    logger.error("Commit rejected: %s", exc)
    raise PersistenceFailure(f"Write rejected by the database: {exc.__class__.__name__}") from exc


_source_locks: Dict[str, threading.Lock] = {}
_registry_lock = threading.Lock()

def _lock_for(source_id: str) -> threading.Lock:
  with _registry_lock:
    lock = _source_locks.get(source_id)
    if lock is None:
      lock = _source_locks[source_id] = threading.Lock()
    return lock

@contextmanager
def locked_sources(source_ids: Iterable[str]) -> Iterator[None]:
  """Hold the writer lock of every given funding source, in id order.

  Callers read balances and commit inside the block; the row itself is
  re-read with FOR UPDATE by the funding registry.
  """
  ordered = sorted({s for s in source_ids if s})
  acquired = []
  try:
    for source_id in ordered:
      lock = _lock_for(source_id)
      lock.acquire()
      acquired.append(lock)
    yield
  finally:
    for lock in reversed(acquired):
      lock.release()
