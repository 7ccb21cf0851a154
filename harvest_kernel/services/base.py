"""
BaseService -- abstract base for all kernel services.

Responsibility:
    Provides the common constructor, the injected clock and the batch row
    lock shared by every write-side service.  Services persist through
    ``session.flush()`` -- never ``session.commit()``.

Architecture position:
    Kernel > Services -- imperative shell.

Invariants enforced:
    - Transaction boundaries: services flush within the caller's transaction
      and never commit it.  Each multi-step operation runs in a SAVEPOINT
      (``session.begin_nested()``) so that a typed failure leaves no partial
      state behind even when the caller keeps the outer transaction open.
    - Row locking: a batch is always read through ``_lock_batch()`` before it
      is mutated (SELECT ... FOR UPDATE on PostgreSQL).

Failure modes:
    - BatchNotFoundError from ``_lock_batch()``.
    - If a subclass calls ``session.commit()`` the atomicity of
      set-units / derive / cascade is broken.
"""

from abc import ABC
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from harvest_kernel.domain.clock import Clock, SystemClock
from harvest_kernel.domain.ids import parse_batch_id
from harvest_kernel.domain.product_lines import Stage
from harvest_kernel.exceptions import BatchNotFoundError
from harvest_kernel.models.registry import StageBatch, model_for


class BaseService(ABC):
    """
    Abstract base class for all kernel services.

    Contract:
        Accepts a SQLAlchemy ``Session`` from the caller and uses
        ``session.flush()`` to persist changes within the active
        transaction.

    Non-goals:
        - Does NOT commit.  ``session_scope()`` or the API request scope
          owns commit/rollback.
        - Does NOT provide read-only listings -- those belong in
          ``harvest_kernel/selectors/``.
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        self.session = session
        self.clock = clock or SystemClock()

    def _lock_batch(self, stage: Stage, batch_id: object) -> StageBatch:
        """
        Load a batch row FOR UPDATE.

        ``populate_existing`` refreshes an instance already in the identity
        map so that the status checked is the committed one.

        Raises:
            BatchNotFoundError: if no batch of ``stage`` has that id.
        """
        stage = Stage(stage)
        batch_uuid: UUID = parse_batch_id(stage.value, batch_id)
        model = model_for(stage)
        batch = self.session.execute(
            select(model)
            .where(model.id == batch_uuid)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if batch is None:
            raise BatchNotFoundError(stage.value, str(batch_id))
        return batch
