from sqlalchemy import create_engine, event
from sqlalchemy.engine import make_url
from sqlalchemy.pool import StaticPool
from sqlalchemy.orm import sessionmaker, DeclarativeBase
from .config import settings


class Base(DeclarativeBase):
    """SQLAlchemy Declarative Base."""

    pass


def is_memory_db(url) -> bool:
    """True for in-memory SQLite. Compares the parsed database name since the
    rendered URL string is percent-escaped on newer SQLAlchemy releases."""
    u = make_url(url) if isinstance(url, str) else url
    return u.get_backend_name() == "sqlite" and u.database in (None, "", ":memory:")


def _connect_args(url: str):
    # For SQLite, disable same-thread check
    return {"check_same_thread": False} if url.startswith("sqlite") else {}


def make_engine(url: str):
    kwargs = dict(
        connect_args=_connect_args(url),
        pool_pre_ping=True,
        future=True,
        echo=False,
    )
    # Apply sensible pooling defaults for non-SQLite engines to avoid stale connections
    if not url.startswith("sqlite"):
        kwargs.update(
            dict(
                pool_recycle=1800,  # recycle idle connections (~30m)
                pool_size=5,
                max_overflow=10,
            )
        )
    if is_memory_db(url):
        # Share the same in-memory DB across connections (test client + fixture sessions)
        kwargs["poolclass"] = StaticPool  # type: ignore[assignment]

    eng = create_engine(url, **kwargs)

    if url.startswith("sqlite"):
        file_backed = not is_memory_db(url)

        @event.listens_for(eng, "connect")
        def _sqlite_pragma(dbapi_conn, _):
            cur = dbapi_conn.cursor()
            # transactions.category_id is RESTRICT; SQLite only enforces FKs when asked
            cur.execute("PRAGMA foreign_keys=ON;")
            if file_backed:
                cur.execute("PRAGMA journal_mode=WAL;")
                cur.execute("PRAGMA synchronous=NORMAL;")
                cur.execute("PRAGMA busy_timeout=5000;")
            cur.close()

    return eng


engine = make_engine(settings.DATABASE_URL)

SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
