from sqlalchemy import create_engine
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import sessionmaker

from config import config

_engine_kwargs = {"echo": config.SQL_ECHO, "pool_pre_ping": True}
if config.DATABASE_URL.startswith("sqlite"):
    _engine_kwargs["connect_args"] = {"check_same_thread": False}
else:
    _engine_kwargs.update(pool_size=10, max_overflow=20)

engine = create_engine(config.DATABASE_URL, **_engine_kwargs)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def upsert(model, rows, index_elements, update_columns):
    """
    Build an INSERT ... ON CONFLICT DO UPDATE for the engine's dialect.
    `update_columns` maps column name -> value; use the string "excluded"
    to take the incoming row's value.
    """
    insert = sqlite.insert if engine.dialect.name == "sqlite" else postgresql.insert
    stmt = insert(model).values(rows)
    set_ = {
        name: (getattr(stmt.excluded, name) if value == "excluded" else value)
        for name, value in update_columns.items()
    }
    return stmt.on_conflict_do_update(index_elements=index_elements, set_=set_)
