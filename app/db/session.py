import logging

from sqlalchemy import create_engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker, Session
from app.core.config import settings
from fastapi import HTTPException

logger = logging.getLogger(__name__)


def _connect_args(url: str) -> dict:
    if url.startswith("sqlite"):
        return {"check_same_thread": False}
    return {"connect_timeout": 30}


# Create the SQLAlchemy engine
engine = create_engine(settings.DATABASE_URL,
                       connect_args=_connect_args(settings.DATABASE_URL),
                       pool_pre_ping=True,
                       pool_recycle=3600,
)

# Create a configured "Session" class
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# do not change the order of the code below
# Dependency that can be used in routes to get the session
def get_db() -> Session:
    db = SessionLocal()  # generate a new SessionLocal
    try:
        yield db
    except SQLAlchemyError as e:
        logger.error("database error: %s", e)
        db.rollback()
        raise HTTPException(status_code=500, detail={"code": "DATABASE_ERROR", "message": "Query data error"})
    finally:
        db.close()


def init_db() -> None:
    """Create all tables known to the metadata."""
    # models must be imported so their tables register on Base.metadata
    import app.models.account  # noqa: F401
    import app.models.claim  # noqa: F401
    import app.models.session  # noqa: F401
    from app.db.base import Base

    Base.metadata.create_all(bind=engine)
