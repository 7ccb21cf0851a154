"""
Batch lifecycle -- the stage state machine as pure data and functions.

Responsibility:
    Defines the closed set of batch statuses, the actions that move a batch
    between them, and the per-stage submit guards.  ``evaluate()`` answers
    "may this action run from this status in this stage?" with a frozen
    ``TransitionResult``; it never raises and never touches the database.
    ``StageService`` turns a refusal into ``InvalidTransitionError``.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.

Invariants enforced:
    - ``TRANSITIONS`` is the only source of valid status changes.  An
      (action, status) pair missing from it is refused.
    - ``cancelled`` is terminal: it has no outgoing edge for any action.
    - Submit of a completed batch is an allowed no-op; reopen of anything
      but a completed batch is refused.  Only reopen cascades downstream.
    - Processing batches never enter ``pending`` or ``on-hold``.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum

from harvest_kernel.domain.product_lines import ProductLineProfile, Stage


class BatchStatus(str, Enum):
    """Lifecycle status shared by all stages."""

    PENDING = "pending"  # derived, nothing recorded yet
    IN_PROGRESS = "in-progress"  # editable
    ON_HOLD = "on-hold"  # editable, parked
    COMPLETED = "completed"  # submitted
    CANCELLED = "cancelled"  # terminal


class BatchAction(str, Enum):
    SUBMIT = "submit"
    REOPEN = "reopen"
    CANCEL = "cancel"
    HOLD = "hold"
    RESUME = "resume"


STAGE_STATUSES: dict[Stage, frozenset[BatchStatus]] = {
    Stage.PROCESSING: frozenset({
        BatchStatus.IN_PROGRESS,
        BatchStatus.COMPLETED,
        BatchStatus.CANCELLED,
    }),
    Stage.PACKAGING: frozenset(BatchStatus),
    Stage.LABELING: frozenset(BatchStatus),
}

INITIAL_STATUS: dict[Stage, BatchStatus] = {
    Stage.PROCESSING: BatchStatus.IN_PROGRESS,
    Stage.PACKAGING: BatchStatus.PENDING,
    Stage.LABELING: BatchStatus.PENDING,
}

EDITABLE_STATUSES: frozenset[BatchStatus] = frozenset({
    BatchStatus.PENDING,
    BatchStatus.IN_PROGRESS,
    BatchStatus.ON_HOLD,
})

# action -> {from_status: to_status}
TRANSITIONS: dict[BatchAction, dict[BatchStatus, BatchStatus]] = {
    BatchAction.SUBMIT: {
        BatchStatus.PENDING: BatchStatus.COMPLETED,
        BatchStatus.IN_PROGRESS: BatchStatus.COMPLETED,
        BatchStatus.ON_HOLD: BatchStatus.COMPLETED,
        BatchStatus.COMPLETED: BatchStatus.COMPLETED,
    },
    BatchAction.REOPEN: {
        BatchStatus.COMPLETED: BatchStatus.IN_PROGRESS,
    },
    BatchAction.CANCEL: {
        BatchStatus.PENDING: BatchStatus.CANCELLED,
        BatchStatus.IN_PROGRESS: BatchStatus.CANCELLED,
        BatchStatus.ON_HOLD: BatchStatus.CANCELLED,
    },
    BatchAction.HOLD: {
        BatchStatus.PENDING: BatchStatus.ON_HOLD,
        BatchStatus.IN_PROGRESS: BatchStatus.ON_HOLD,
    },
    BatchAction.RESUME: {
        BatchStatus.PENDING: BatchStatus.IN_PROGRESS,
        BatchStatus.ON_HOLD: BatchStatus.IN_PROGRESS,
    },
}


@dataclass(frozen=True)
class TransitionResult:
    """Outcome of evaluating one action against one status."""

    allowed: bool
    action: BatchAction
    from_status: BatchStatus
    to_status: BatchStatus | None = None
    is_noop: bool = False
    cascades_downstream: bool = False
    reason: str = ""


def _refused(
    action: BatchAction, current: BatchStatus, stage: Stage, reason: str
) -> TransitionResult:
    return TransitionResult(
        allowed=False, action=action, from_status=current, reason=reason
    )


def _refusal_reason(action: BatchAction, current: BatchStatus, stage: Stage) -> str:
    if current is BatchStatus.CANCELLED:
        return f"Cannot {action.value} a cancelled {stage.value} batch"
    if action is BatchAction.REOPEN:
        return f"Only completed {stage.value} batches can be reopened"
    if action is BatchAction.CANCEL and current is BatchStatus.COMPLETED:
        return f"Reopen the completed {stage.value} batch before cancelling it"
    return f"Cannot {action.value} a {current.value} {stage.value} batch"


def evaluate(
    action: BatchAction, current: BatchStatus | str, stage: Stage
) -> TransitionResult:
    """Evaluate ``action`` from ``current`` for a batch of ``stage``."""
    current = BatchStatus(current)
    target = TRANSITIONS[action].get(current)
    if target is None:
        return _refused(action, current, stage, _refusal_reason(action, current, stage))
    if target not in STAGE_STATUSES[stage]:
        return _refused(
            action,
            current,
            stage,
            f"{stage.value.capitalize()} batches do not support {action.value}",
        )
    return TransitionResult(
        allowed=True,
        action=action,
        from_status=current,
        to_status=target,
        is_noop=target is current,
        cascades_downstream=action is BatchAction.REOPEN,
    )


def submit(current: BatchStatus | str, stage: Stage) -> TransitionResult:
    return evaluate(BatchAction.SUBMIT, current, stage)


def reopen(current: BatchStatus | str, stage: Stage) -> TransitionResult:
    return evaluate(BatchAction.REOPEN, current, stage)


def cancel(current: BatchStatus | str, stage: Stage) -> TransitionResult:
    return evaluate(BatchAction.CANCEL, current, stage)


def hold(current: BatchStatus | str, stage: Stage) -> TransitionResult:
    return evaluate(BatchAction.HOLD, current, stage)


def resume(current: BatchStatus | str, stage: Stage) -> TransitionResult:
    return evaluate(BatchAction.RESUME, current, stage)


def action_for_target(
    current: BatchStatus | str, target: BatchStatus | str
) -> BatchAction | None:
    """
    Map a requested target status onto the action that reaches it.

    Used when a client PATCHes ``status`` directly.  Returns None when the
    target equals the current status and no action is needed (except for
    ``completed``, which maps to the idempotent submit).
    """
    current = BatchStatus(current)
    target = BatchStatus(target)
    if target is BatchStatus.COMPLETED:
        return BatchAction.SUBMIT
    if target is current:
        return None
    if target is BatchStatus.CANCELLED:
        return BatchAction.CANCEL
    if target is BatchStatus.ON_HOLD:
        return BatchAction.HOLD
    if target is BatchStatus.IN_PROGRESS:
        if current is BatchStatus.COMPLETED:
            return BatchAction.REOPEN
        return BatchAction.RESUME
    # Nothing moves a batch back to pending.
    return None


def is_editable(status: BatchStatus | str) -> bool:
    return BatchStatus(status) in EDITABLE_STATUSES


def missing_for_submit(
    stage: Stage,
    profile: ProductLineProfile,
    recorded: Mapping[str, object],
) -> tuple[str, ...]:
    """
    Return the fields a batch must still record before it can be submitted.

    ``recorded`` maps field names (``finished_quantity``,
    ``<material>_quantity``) to their current values; None means unrecorded.
    Processing batches have no submit guard.
    """
    required: list[str] = []
    if stage is Stage.PACKAGING:
        required.append("finished_quantity")
    required.extend(f"{m}_quantity" for m in profile.required_materials_for(stage))
    return tuple(name for name in required if recorded.get(name) is None)
