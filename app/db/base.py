"""SQLAlchemy Base class for all models."""
from app.models.base import Base


def import_models():
    """Import all models so they register with ``Base.metadata``."""
    import app.models  # noqa: F401

    return Base


__all__ = ["Base", "import_models"]
