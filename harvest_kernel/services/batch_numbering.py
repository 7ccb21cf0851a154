"""
BatchNumberingService -- dense, human-facing batch numbers.

Responsibility:
    Issues the next batch number for a (product line, stage) pair: one more
    than the highest numeric number currently in use, zero-padded to the
    configured width ("01", "02", ... "10", ... "100").

Architecture position:
    Kernel > Services.  Called by StageService (new processing batches) and
    PipelineLinker (derived batches) inside the transaction that inserts the
    new row.

Invariants enforced:
    - Serialization: the (line, stage) row of ``batch_number_locks`` is held
      FOR UPDATE while the number is computed, so two concurrent callers for
      the same pair never compute the same value.  The lock is released when
      the caller's transaction ends, after the new batch row is visible.
    - Density: numbers are computed from the batch table, not from a
      counter; deleting the highest-numbered batch makes its number reusable.
    - Numbers that are not purely numeric are ignored by the scan.
    - The UNIQUE(product_line, batch_number) constraint on every stage table
      is the backstop; callers translate its violation into
      DuplicateBatchNumberError.

Failure modes:
    - IntegrityError: concurrent creation of the lock row itself (handled
      via savepoint rollback and re-read).
"""

import re

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from harvest_kernel.domain.product_lines import (
    ProductLine,
    Stage,
    normalize_product_line,
)
from harvest_kernel.logging_config import get_logger
from harvest_kernel.models.batch_number_lock import BatchNumberLock
from harvest_kernel.models.registry import model_for

logger = get_logger("services.batch_numbering")

DEFAULT_BATCH_NUMBER_WIDTH = 2

_NUMERIC = re.compile(r"[0-9]+")


def format_batch_number(value: int, width: int = DEFAULT_BATCH_NUMBER_WIDTH) -> str:
    """Zero-pad ``value`` to ``width``; wider values are never truncated."""
    return str(value).zfill(width)


def highest_number(numbers) -> int:
    """Largest purely numeric batch number in ``numbers``, 0 if none."""
    return max(
        (int(n) for n in numbers if n is not None and _NUMERIC.fullmatch(n)),
        default=0,
    )


class BatchNumberingService:
    """
    Service for issuing dense batch numbers.

    Contract:
        ``next_number()`` must run inside the transaction that inserts the
        batch row carrying the number.  The number is not reserved: if the
        transaction rolls back it is issued again.

    Non-goals:
        - Does NOT insert the batch row.
        - Does NOT call ``session.commit()``.
    """

    def __init__(self, session: Session, width: int = DEFAULT_BATCH_NUMBER_WIDTH):
        if width < 1:
            raise ValueError("batch number width must be at least 1")
        self._session = session
        self._width = width

    def next_number(self, product_line: ProductLine | str, stage: Stage) -> str:
        """
        Compute the next batch number for ``product_line`` in ``stage``.

        Postconditions:
            - The (line, stage) lock row is held until the caller's
              transaction ends.
            - The returned number is not used by any committed batch of the
              same line and stage.
        """
        line = normalize_product_line(product_line)
        stage = Stage(stage)

        lock = self._lock_row(line, stage)

        model = model_for(stage)
        numbers = self._session.execute(
            select(model.batch_number).where(model.product_line == line.value)
        ).scalars()
        number = format_batch_number(highest_number(numbers) + 1, self._width)

        lock.last_number = number
        self._session.flush()

        logger.debug(
            "batch_number_issued",
            extra={
                "product_line": line.value,
                "stage": stage.value,
                "batch_number": number,
            },
        )
        return number

    def _select_lock(self, line: ProductLine, stage: Stage):
        return self._session.execute(
            select(BatchNumberLock)
            .where(
                BatchNumberLock.product_line == line.value,
                BatchNumberLock.stage == stage.value,
            )
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def _lock_row(self, line: ProductLine, stage: Stage) -> BatchNumberLock:
        lock = self._select_lock(line, stage)
        if lock is not None:
            return lock

        # First number for this pair.  Another transaction may be creating
        # the same row; a savepoint keeps the caller's work intact.
        savepoint = self._session.begin_nested()
        try:
            lock = BatchNumberLock(product_line=line.value, stage=stage.value)
            self._session.add(lock)
            self._session.flush()
            savepoint.commit()
        except IntegrityError:
            logger.debug(
                "batch_number_lock_race_retry",
                extra={"product_line": line.value, "stage": stage.value},
            )
            savepoint.rollback()
            lock = self._select_lock(line, stage)
            if lock is None:
                raise
            return lock

        # Re-read with the lock held.
        return self._select_lock(line, stage)
