from pathlib import Path
import os
from sqlalchemy import event
from sqlmodel import SQLModel, Session, create_engine
from contextlib import contextmanager

_ENGINE = None
_ENGINE_URL = None  # track current engine's URL so we can switch when env changes

def _compute_url() -> str:
    env_path = os.getenv("DOMINOTES_DB_PATH")
    if env_path:
        db_path = Path(env_path)
    else:
        db_path = Path.home() / ".dominotes" / "dominotes.db"
    db_path.parent.mkdir(parents=True, exist_ok=True)
    return f"sqlite:///{db_path}"

def _enable_foreign_keys(dbapi_connection, connection_record):
    # sqlite ignores ON DELETE CASCADE unless this is set per connection
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()

def get_engine():
    global _ENGINE, _ENGINE_URL
    url = _compute_url()
    if _ENGINE is None or _ENGINE_URL != url:
        # swap engine if URL changed (common in tests)
        if _ENGINE is not None:
            _ENGINE.dispose()
        _ENGINE = create_engine(
            url, echo=False, connect_args={"check_same_thread": False}
        )
        event.listen(_ENGINE, "connect", _enable_foreign_keys)
        _ENGINE_URL = url
    return _ENGINE

def reset_engine():
    """For tests: drop the cached engine so a new DOMINOTES_DB_PATH is picked up."""
    global _ENGINE, _ENGINE_URL
    if _ENGINE is not None:
        _ENGINE.dispose()
    _ENGINE = None
    _ENGINE_URL = None

def init_db():
    # models must be imported so their tables are registered on the metadata
    from . import models  # noqa: F401

    engine = get_engine()
    SQLModel.metadata.create_all(engine)

def get_session():
    # keep objects alive after commit so returned models retain values
    return Session(get_engine(), expire_on_commit=False)


@contextmanager
def session_scope():
    session = get_session()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
