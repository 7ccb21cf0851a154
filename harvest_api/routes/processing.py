"""Processing batch endpoints."""

from typing import Annotated, Optional

from fastapi import APIRouter, Query, Response, status

from harvest_api.dependencies import Context
from harvest_api.schemas import (
    BatchCreateRequest,
    ProcessingBatchListResponse,
    ProcessingBatchResponse,
    ProcessingBatchUpdateRequest,
    SetUnitsRequest,
)
from harvest_kernel.db.engine import session_scope
from harvest_kernel.domain.lifecycle import BatchAction
from harvest_kernel.domain.product_lines import Stage
from harvest_kernel.logging_config import LogContext

router = APIRouter()

STAGE = Stage.PROCESSING


@router.get("", response_model=ProcessingBatchListResponse)
def list_batches(
    ctx: Context,
    product_type: Annotated[Optional[str], Query(alias="productType")] = None,
    status_filter: Annotated[Optional[str], Query(alias="status")] = None,
) -> ProcessingBatchListResponse:
    with session_scope() as session:
        views = ctx.kernel(session).batches.list_processing(product_type, status_filter)
        return ProcessingBatchListResponse(
            batches=[ProcessingBatchResponse.from_view(v) for v in views]
        )


@router.post("", response_model=ProcessingBatchResponse, status_code=status.HTTP_201_CREATED)
def create_batch(ctx: Context, body: BatchCreateRequest) -> ProcessingBatchResponse:
    with session_scope() as session:
        view = ctx.kernel(session).stages.create_processing_batch(
            body.product_type,
            ctx.actor_id,
            scheduled_date=body.scheduled_date,
            notes=body.notes,
        )
        return ProcessingBatchResponse.from_view(view)


@router.get("/{batch_id}", response_model=ProcessingBatchResponse)
def get_batch(ctx: Context, batch_id: str) -> ProcessingBatchResponse:
    with session_scope() as session:
        return ProcessingBatchResponse.from_view(
            ctx.kernel(session).batches.get_processing(batch_id)
        )


@router.patch("/{batch_id}", response_model=ProcessingBatchResponse)
def update_batch(
    ctx: Context, batch_id: str, body: ProcessingBatchUpdateRequest
) -> ProcessingBatchResponse:
    changes = body.model_dump(exclude_unset=True)
    if "product_type" in changes:
        changes["product_line"] = changes.pop("product_type")
    with LogContext.bind(batch_id=batch_id, stage=STAGE.value), session_scope() as session:
        view = ctx.kernel(session).stages.update(STAGE, batch_id, changes, ctx.actor_id)
        return ProcessingBatchResponse.from_view(view)


@router.put("/{batch_id}/units", response_model=ProcessingBatchResponse)
def set_units(ctx: Context, batch_id: str, body: SetUnitsRequest) -> ProcessingBatchResponse:
    with LogContext.bind(batch_id=batch_id, stage=STAGE.value), session_scope() as session:
        view = ctx.kernel(session).assignment.set_batch_units(
            batch_id, body.unit_ids, ctx.actor_id
        )
        return ProcessingBatchResponse.from_view(view)


def _transition(ctx: Context, batch_id: str, action: BatchAction) -> ProcessingBatchResponse:
    with LogContext.bind(batch_id=batch_id, stage=STAGE.value), session_scope() as session:
        view = ctx.kernel(session).stages.apply(STAGE, batch_id, action, ctx.actor_id)
        return ProcessingBatchResponse.from_view(view)


@router.post("/{batch_id}/submit", response_model=ProcessingBatchResponse)
def submit_batch(ctx: Context, batch_id: str) -> ProcessingBatchResponse:
    return _transition(ctx, batch_id, BatchAction.SUBMIT)


@router.post("/{batch_id}/reopen", response_model=ProcessingBatchResponse)
def reopen_batch(ctx: Context, batch_id: str) -> ProcessingBatchResponse:
    return _transition(ctx, batch_id, BatchAction.REOPEN)


@router.post("/{batch_id}/cancel", response_model=ProcessingBatchResponse)
def cancel_batch(ctx: Context, batch_id: str) -> ProcessingBatchResponse:
    return _transition(ctx, batch_id, BatchAction.CANCEL)


@router.delete("/{batch_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_batch(ctx: Context, batch_id: str) -> Response:
    with LogContext.bind(batch_id=batch_id, stage=STAGE.value), session_scope() as session:
        ctx.kernel(session).stages.delete(STAGE, batch_id, ctx.actor_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
