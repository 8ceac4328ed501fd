from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker

from .config import DATABASE_URL

# Base class for declarative ORM models.
Base = declarative_base()


def make_engine(url: str):
    """Create an engine; SQLite connections may be shared across request threads."""
    connect_args = {"check_same_thread": False} if url.startswith("sqlite") else {}
    return create_engine(url, connect_args=connect_args)


def make_session_factory(engine):
    """Create a configured "Session" class bound to the given engine."""
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


# Create the SQLAlchemy engine.
engine = make_engine(DATABASE_URL)

# Create a configured "Session" class for database interactions.
SessionLocal = make_session_factory(engine)


def init_db(bind=None):
    """Create the storefront tables if they don't exist yet."""
    # Importing registers the row classes on Base.metadata.
    from . import models  # noqa: F401

    Base.metadata.create_all(bind=bind or engine)
