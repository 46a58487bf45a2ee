import logging

from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker

from libraryms.core.config import settings

logger = logging.getLogger(__name__)

# -----------------------------
# Database setup (SQLAlchemy)
# -----------------------------
engine_args = {}
if settings.database_url.startswith("sqlite"):
    engine_args["connect_args"] = {"check_same_thread": False}

engine = create_engine(settings.database_url, **engine_args)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base = declarative_base()


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db(bind=None) -> None:
    # models must be imported so their tables register with Base.metadata
    from libraryms.models import models  # noqa: F401

    logger.info("Creating database tables (if not present)...")
    Base.metadata.create_all(bind=bind or engine)
