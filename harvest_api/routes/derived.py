"""
Packaging and labeling batch endpoints.

Both stages expose the same surface; ``build_router()`` binds it to a stage
and to the PATCH body listing that stage's fields.
"""

from typing import Annotated, Optional

from fastapi import APIRouter, Query, Response, status
from pydantic import BaseModel

from harvest_api.dependencies import Context
from harvest_api.schemas import (
    DeriveRequest,
    DerivedBatchListResponse,
    DerivedBatchResponse,
    EligibleSourceListResponse,
    EligibleSourceResponse,
    LabelingBatchUpdateRequest,
    PackagingBatchUpdateRequest,
)
from harvest_kernel.db.engine import session_scope
from harvest_kernel.domain.lifecycle import BatchAction
from harvest_kernel.domain.product_lines import Stage
from harvest_kernel.logging_config import LogContext


def build_router(stage: Stage, update_model: type[BaseModel]) -> APIRouter:
    router = APIRouter()
    upstream = stage.upstream

    @router.get("/eligible-sources", response_model=EligibleSourceListResponse)
    def list_eligible_sources(
        ctx: Context,
        product_type: Annotated[Optional[str], Query(alias="productType")] = None,
    ) -> EligibleSourceListResponse:
        with session_scope() as session:
            views = ctx.kernel(session).batches.eligible_sources(stage, product_type)
            return EligibleSourceListResponse(
                batches=[EligibleSourceResponse.from_view(v) for v in views]
            )

    @router.get("", response_model=DerivedBatchListResponse)
    def list_batches(
        ctx: Context,
        product_type: Annotated[Optional[str], Query(alias="productType")] = None,
        status_filter: Annotated[Optional[str], Query(alias="status")] = None,
    ) -> DerivedBatchListResponse:
        with session_scope() as session:
            views = ctx.kernel(session).batches.list_derived(stage, product_type, status_filter)
            return DerivedBatchListResponse(
                batches=[DerivedBatchResponse.from_view(v) for v in views]
            )

    @router.post("", response_model=DerivedBatchResponse, status_code=status.HTTP_201_CREATED)
    def derive_batch(ctx: Context, body: DeriveRequest) -> DerivedBatchResponse:
        with LogContext.bind(stage=stage.value), session_scope() as session:
            view = ctx.kernel(session).linker.derive_next(
                upstream, body.source_batch_id, ctx.actor_id
            )
            return DerivedBatchResponse.from_view(view)

    @router.get("/{batch_id}", response_model=DerivedBatchResponse)
    def get_batch(ctx: Context, batch_id: str) -> DerivedBatchResponse:
        with session_scope() as session:
            return DerivedBatchResponse.from_view(
                ctx.kernel(session).batches.get_derived(stage, batch_id)
            )

    @router.patch("/{batch_id}", response_model=DerivedBatchResponse)
    def update_batch(ctx: Context, batch_id: str, body: update_model) -> DerivedBatchResponse:
        changes = body.model_dump(exclude_unset=True)
        with LogContext.bind(batch_id=batch_id, stage=stage.value), session_scope() as session:
            view = ctx.kernel(session).stages.update(stage, batch_id, changes, ctx.actor_id)
            return DerivedBatchResponse.from_view(view)

    def transition(ctx: Context, batch_id: str, action: BatchAction) -> DerivedBatchResponse:
        with LogContext.bind(batch_id=batch_id, stage=stage.value), session_scope() as session:
            view = ctx.kernel(session).stages.apply(stage, batch_id, action, ctx.actor_id)
            return DerivedBatchResponse.from_view(view)

    @router.post("/{batch_id}/submit", response_model=DerivedBatchResponse)
    def submit_batch(ctx: Context, batch_id: str) -> DerivedBatchResponse:
        return transition(ctx, batch_id, BatchAction.SUBMIT)

    @router.post("/{batch_id}/reopen", response_model=DerivedBatchResponse)
    def reopen_batch(ctx: Context, batch_id: str) -> DerivedBatchResponse:
        return transition(ctx, batch_id, BatchAction.REOPEN)

    @router.post("/{batch_id}/cancel", response_model=DerivedBatchResponse)
    def cancel_batch(ctx: Context, batch_id: str) -> DerivedBatchResponse:
        return transition(ctx, batch_id, BatchAction.CANCEL)

    @router.post("/{batch_id}/hold", response_model=DerivedBatchResponse)
    def hold_batch(ctx: Context, batch_id: str) -> DerivedBatchResponse:
        return transition(ctx, batch_id, BatchAction.HOLD)

    @router.post("/{batch_id}/resume", response_model=DerivedBatchResponse)
    def resume_batch(ctx: Context, batch_id: str) -> DerivedBatchResponse:
        return transition(ctx, batch_id, BatchAction.RESUME)

    @router.delete("/{batch_id}", status_code=status.HTTP_204_NO_CONTENT)
    def delete_batch(ctx: Context, batch_id: str) -> Response:
        with LogContext.bind(batch_id=batch_id, stage=stage.value), session_scope() as session:
            ctx.kernel(session).stages.delete(stage, batch_id, ctx.actor_id)
        return Response(status_code=status.HTTP_204_NO_CONTENT)

    return router


packaging_router = build_router(Stage.PACKAGING, PackagingBatchUpdateRequest)
labeling_router = build_router(Stage.LABELING, LabelingBatchUpdateRequest)
