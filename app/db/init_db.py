"""Database initialization utilities."""
import logging

from sqlalchemy.engine import Engine

from app.db.base import Base, import_models
from app.db.seed import seed_default_plans
from app.db.session import SessionLocal, engine as default_engine

logger = logging.getLogger(__name__)


def init_db(engine: Engine = None, seed: bool = True) -> None:
    """
    Create missing tables and seed the system plans.

    Note: This is suitable for development/testing only.
    For production, use migrations and run the seed step once.
    """
    engine = engine or default_engine
    import_models()
    Base.metadata.create_all(bind=engine)
    logger.info("Database tables ensured")

    if seed:
        session = SessionLocal(bind=engine)
        try:
            seed_default_plans(session)
        finally:
            session.close()


def drop_db(engine: Engine = None) -> None:
    """
    Drop all database tables.

    WARNING: This will delete all data! Development/testing only.
    """
    engine = engine or default_engine
    Base.metadata.drop_all(bind=engine)
    logger.warning("All database tables dropped")
