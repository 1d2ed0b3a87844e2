"""
BaseService -- abstract base for all kernel services.

Responsibility:
    Provides the common constructor, clock injection and coop-scoped lookup
    helpers for every write service.  Services receive a SQLAlchemy
    ``Session`` that they use via ``session.flush()`` -- never
    ``session.commit()``.

Architecture position:
    Kernel > Services -- imperative shell infrastructure.

Invariants enforced:
    - Transaction boundaries: services flush within the caller's
      transaction and never commit or rollback themselves.  The caller
      (``UnitOfWork``, a CLI script or a test) owns commit/rollback.
    - Tenant scope: an entity whose ``coop_id`` differs from the coop
      being operated on is reported as not found.
"""

from abc import ABC
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.orm import Session
from sqlalchemy.orm.util import identity_key

from capital_kernel.domain.clock import Clock, SystemClock
from capital_kernel.exceptions import NotFoundError


class BaseService(ABC):
    """
    Abstract base class for all kernel services.

    Guarantees:
        - The service never calls ``session.commit()`` or
          ``session.rollback()``.

    Non-goals:
        - Does NOT provide query-only (read) methods -- those belong
          in ``capital_kernel/selectors/``.
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        self.session = session
        self._clock = clock or SystemClock()

    def _get_scoped(
        self,
        model,
        entity_id: UUID,
        coop_id: UUID | None,
        *,
        for_update: bool = False,
    ):
        """
        Load ``model`` by id, restricted to ``coop_id`` when given.

        ``for_update`` takes a row lock and refreshes the identity-map copy.

        Raises:
            NotFoundError: If the row is missing or belongs to another coop.
        """
        if for_update:
            entity = self.session.execute(
                select(model)
                .where(model.id == entity_id)
                .with_for_update()
                .execution_options(populate_existing=True)
            ).scalar_one_or_none()
        else:
            entity = self.session.get(model, entity_id)

        if entity is None:
            raise NotFoundError(model.__name__, str(entity_id))
        if coop_id is not None and entity.coop_id != coop_id:
            raise NotFoundError(model.__name__, str(entity_id), "belongs to another coop")
        return entity

    def _compare_and_set(self, model, entity_id: UUID, expected: dict, values: dict) -> bool:
        """
        ``UPDATE model SET values WHERE id = entity_id AND <expected>``.

        Returns True if exactly one row changed.  The updated attributes of
        an instance already in the session are expired so the next access
        reads the stored values.
        """
        stmt = update(model).where(model.id == entity_id)
        for column, value in expected.items():
            stmt = stmt.where(getattr(model, column) == value)
        result = self.session.execute(
            stmt.values(**values).execution_options(synchronize_session=False)
        )
        changed = result.rowcount == 1
        if changed:
            instance = self.session.identity_map.get(identity_key(model, entity_id))
            if instance is not None:
                self.session.expire(instance, list(values))
        return changed
