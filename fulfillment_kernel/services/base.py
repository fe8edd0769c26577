"""
BaseService -- abstract base for all kernel services.

Responsibility:
    Provides the common constructor, the session-handling contract and the
    compare-and-swap status update shared by every workflow service.  All
    concrete services receive a SQLAlchemy ``Session`` that they use via
    ``session.flush()`` -- never ``session.commit()``.

Architecture position:
    Kernel > Services -- imperative shell infrastructure.

Invariants enforced:
    - Transaction boundaries: services flush within the caller's
      transaction and never commit or rollback themselves.  The caller
      (``FulfillmentEngine`` or a test harness) owns commit/rollback.
    - Status writes are conditional: ``UPDATE ... WHERE id = :id AND
      status = :expected``.  Zero affected rows means a concurrent unit of
      work got there first and raises ConcurrencyConflictError.
"""

from abc import ABC
from typing import Any, Generic, TypeVar
from uuid import UUID

from sqlalchemy import update
from sqlalchemy.orm import Session

from fulfillment_kernel.db.base import Base
from fulfillment_kernel.domain.clock import Clock, SystemClock
from fulfillment_kernel.exceptions import ConcurrencyConflictError, NotFoundError
from fulfillment_kernel.logging_config import get_logger

ModelType = TypeVar("ModelType", bound=Base)

logger = get_logger("services.base")


class BaseService(ABC, Generic[ModelType]):
    """
    Abstract base class for all kernel services.

    Non-goals:
        - Does NOT manage transaction lifecycle (commit/rollback).
        - Does NOT provide query-only (read) methods -- those belong
          in ``fulfillment_kernel/selectors/``.
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        self.session = session
        self.clock = clock or SystemClock()

    def _get_or_raise(self, model: type[Base], entity_id: UUID, entity_type: str) -> Any:
        instance = self.session.get(model, entity_id)
        if instance is None:
            raise NotFoundError(entity_type, str(entity_id))
        return instance

    def _compare_and_set(
        self,
        instance: Base,
        entity_type: str,
        expected: dict[str, Any],
        values: dict[str, Any],
    ) -> None:
        """
        Conditionally update ``instance``'s row.

        ``expected`` maps column names to the values the row must still hold;
        ``values`` are applied only if it does.  Updated attributes are
        expired on the instance so the next access reads the committed row.

        Raises:
            ConcurrencyConflictError: If the row no longer matches ``expected``.
        """
        model = type(instance)
        # Pending ORM changes must reach the database before the raw UPDATE.
        self.session.flush()

        criteria = [model.id == instance.id]
        criteria.extend(getattr(model, col) == val for col, val in expected.items())
        result = self.session.execute(
            update(model)
            .where(*criteria)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            expectation = ", ".join(f"{k}={v}" for k, v in expected.items())
            logger.warning(
                "compare_and_set_conflict",
                extra={
                    "entity_type": entity_type,
                    "entity_id": str(instance.id),
                    "expected": expectation,
                },
            )
            raise ConcurrencyConflictError(entity_type, str(instance.id), expectation)

        self.session.expire(instance, list(values))
