"""
Typed Exception Hierarchy for the Harvest Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Every failure the engine reports must be actionable by its caller: the UI
needs to know *which* unit ids are already taken, *which* ids do not exist,
and *why* a transition was refused.  Callers therefore catch by type, read a
machine-readable ``code``, and use structured attributes -- never parse
message strings.

    try:
        assignment.set_batch_units(batch_id, unit_codes, actor_id)
    except UnitConflictError as e:
        highlight(e.unit_codes)               # structured data
        return {"error": e.code, ...}         # machine-readable

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    HarvestKernelError (base)
    |
    +-- ValidationError                 malformed/out-of-range input,
    |   +-- UnknownProductLineError     raised before any transaction work
    |   +-- UnitLimitExceededError
    |
    +-- NotFoundError
    |   +-- BatchNotFoundError
    |   +-- UnitsNotFoundError
    |   +-- DraftNotFoundError
    |
    +-- ConflictError
    |   +-- UnitConflictError           unit claimed by another batch
    |   +-- DuplicateBatchNumberError   numbering backstop fired
    |   +-- DuplicateDerivationError    source already has a downstream batch
    |   +-- DuplicateUnitCodeError
    |
    +-- InvalidTransitionError
        +-- BatchNotEditableError       mutation of a completed/cancelled batch
        +-- StageGuardError             submit refused by a stage guard

===============================================================================
HANDLING PATTERNS
===============================================================================

1. Idempotent no-ops (submit of a completed batch, re-claim of units the
   batch already owns) are NOT exceptions -- they return normally.

2. Everything else propagates.  The transaction (or savepoint) that was open
   when the error was raised is rolled back by the raising service or by
   ``session_scope()``; no partial claim, derivation or cascade survives.

3. Unexpected database errors are not wrapped.  The API layer reports them
   as a generic server failure after logging them with ``exc_info``.
"""


class HarvestKernelError(Exception):
    """
    Base exception for all harvest kernel errors.

    All subclasses have a ``code`` class attribute for machine-readable
    error identification.
    """

    code: str = "HARVEST_KERNEL_ERROR"


# =============================================================================
# Validation
# =============================================================================


class ValidationError(HarvestKernelError):
    """Input is malformed or out of range."""

    code: str = "VALIDATION_ERROR"

    def __init__(self, message: str, field: str | None = None):
        self.field = field
        super().__init__(message)


class UnknownProductLineError(ValidationError):
    """Product line key is not one of the supported lines."""

    code: str = "UNKNOWN_PRODUCT_LINE"

    def __init__(self, value: object):
        self.value = value
        super().__init__(f"Unknown product line: {value!r}", field="productType")


class UnitLimitExceededError(ValidationError):
    """Requested unit set exceeds the per-batch cap."""

    code: str = "UNIT_LIMIT_EXCEEDED"

    def __init__(self, requested: int, limit: int):
        self.requested = requested
        self.limit = limit
        super().__init__(
            f"A batch can contain at most {limit} units ({requested} requested)",
            field="unitIds",
        )


# =============================================================================
# Not found
# =============================================================================


class NotFoundError(HarvestKernelError):
    """Referenced entity does not exist."""

    code: str = "NOT_FOUND"


class BatchNotFoundError(NotFoundError):
    """Batch with given id does not exist in the given stage."""

    code: str = "BATCH_NOT_FOUND"

    def __init__(self, stage: str, batch_id: str):
        self.stage = stage
        self.batch_id = batch_id
        super().__init__(f"{stage.capitalize()} batch not found: {batch_id}")


class UnitsNotFoundError(NotFoundError):
    """One or more requested unit codes are not in the ledger."""

    code: str = "UNITS_NOT_FOUND"

    def __init__(self, unit_codes: list[str]):
        self.unit_codes = list(unit_codes)
        super().__init__(f"Units not found: {', '.join(self.unit_codes)}")


class DraftNotFoundError(NotFoundError):
    """Collection draft does not exist."""

    code: str = "DRAFT_NOT_FOUND"

    def __init__(self, draft_id: str):
        self.draft_id = draft_id
        super().__init__(f"Collection draft not found: {draft_id}")


# =============================================================================
# Conflicts
# =============================================================================


class ConflictError(HarvestKernelError):
    """Operation collides with existing state owned by someone else."""

    code: str = "CONFLICT"


class UnitConflictError(ConflictError):
    """
    Units are already claimed by a different batch.

    ``unit_codes`` lists exactly the offending units; nothing was claimed.
    """

    code: str = "UNIT_CONFLICT"

    def __init__(self, unit_codes: list[str], batch_id: str | None = None):
        self.unit_codes = list(unit_codes)
        self.batch_id = batch_id
        super().__init__(
            f"Units already assigned to another batch: {', '.join(self.unit_codes)}"
        )


class DuplicateBatchNumberError(ConflictError):
    """Two batches of one line and stage were given the same number."""

    code: str = "DUPLICATE_BATCH_NUMBER"

    def __init__(self, product_line: str, stage: str, batch_number: str):
        self.product_line = product_line
        self.stage = stage
        self.batch_number = batch_number
        super().__init__(
            f"Batch number {batch_number} already issued for {product_line} {stage}"
        )


class DuplicateDerivationError(ConflictError):
    """The source batch already has a downstream batch."""

    code: str = "DUPLICATE_DERIVATION"

    def __init__(self, stage: str, source_batch_id: str, existing_batch_id: str | None = None):
        self.stage = stage
        self.source_batch_id = source_batch_id
        self.existing_batch_id = existing_batch_id
        super().__init__(
            f"{stage.capitalize()} batch already exists for source batch {source_batch_id}"
        )


class DuplicateUnitCodeError(ConflictError):
    """A raw unit with this code is already recorded."""

    code: str = "DUPLICATE_UNIT_CODE"

    def __init__(self, unit_code: str):
        self.unit_code = unit_code
        super().__init__(f"Unit code already recorded: {unit_code}")


# =============================================================================
# Transitions
# =============================================================================


class InvalidTransitionError(HarvestKernelError):
    """Requested status change is not allowed from the current status."""

    code: str = "INVALID_TRANSITION"

    def __init__(
        self,
        stage: str,
        batch_id: str,
        action: str,
        current_status: str,
        reason: str,
    ):
        self.stage = stage
        self.batch_id = batch_id
        self.action = action
        self.current_status = current_status
        self.reason = reason
        super().__init__(reason)


class BatchNotEditableError(InvalidTransitionError):
    """Batch fields or units cannot change in the current status."""

    code: str = "BATCH_NOT_EDITABLE"

    def __init__(self, stage: str, batch_id: str, current_status: str):
        super().__init__(
            stage,
            batch_id,
            "edit",
            current_status,
            f"Cannot modify a {current_status} {stage} batch",
        )


class StageGuardError(InvalidTransitionError):
    """A stage-specific submit guard is not satisfied."""

    code: str = "STAGE_GUARD_FAILED"

    def __init__(
        self,
        stage: str,
        batch_id: str,
        current_status: str,
        missing_fields: list[str],
    ):
        self.missing_fields = list(missing_fields)
        super().__init__(
            stage,
            batch_id,
            "submit",
            current_status,
            f"Cannot submit {stage} batch before recording: "
            f"{', '.join(self.missing_fields)}",
        )
