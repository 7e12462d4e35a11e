# app/services/__init__.py
"""
Service layer root package.

Each subpackage implements application use-cases on top of:

- SQLAlchemy models (app.models.*)
- Repositories (app.repositories.*)
- Pydantic schemas (app.schemas.*)
- Common service infrastructure (app.services.base, app.services.common)

Typical pattern for a service:

    class SomeService(BaseService[Model, Repository]):
        def some_use_case(self, ...) -> ServiceResult[...]:
            try:
                ...
                self.db.commit()
                return ServiceResult.success(data)
            except Exception as e:
                self.db.rollback()
                return self._handle_exception(e, "some use case")

Subpackages:

- subscription: plan catalog, lifecycle, entitlements, payment reconciliation
- room: quota-gated room inventory
- notification: live subscription events
"""

from app.services.common import UnitOfWork

__all__ = ["UnitOfWork"]
