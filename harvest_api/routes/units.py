"""Raw unit endpoints."""

from datetime import date
from typing import Annotated, Optional

from fastapi import APIRouter, Query

from harvest_api.dependencies import Context
from harvest_api.schemas import UnitListResponse, UnitResponse
from harvest_kernel.db.engine import session_scope
from harvest_kernel.selectors import UnitFilters

router = APIRouter()


@router.get("", response_model=UnitListResponse)
def list_free_units(
    ctx: Context,
    product_type: Annotated[str, Query(alias="productType")],
    active_only: Annotated[bool, Query(alias="activeOnly")] = False,
    for_batch: Annotated[Optional[str], Query(alias="forBatch")] = None,
    collection_center: Annotated[Optional[str], Query(alias="collectionCenter")] = None,
    collected_from: Annotated[Optional[date], Query(alias="collectedFrom")] = None,
    collected_to: Annotated[Optional[date], Query(alias="collectedTo")] = None,
) -> UnitListResponse:
    """
    Units of a product line that no batch has claimed.

    With ``forBatch``, units already in that processing batch are listed too.
    """
    with session_scope() as session:
        kernel = ctx.kernel(session)
        for_batch_id = None
        if for_batch:
            for_batch_id = kernel.batches.get_processing(for_batch).id
        views = kernel.units.list_free(
            product_type,
            UnitFilters(
                active_only=active_only,
                for_batch_id=for_batch_id,
                collection_center=collection_center,
                collected_from=collected_from,
                collected_to=collected_to,
            ),
        )
        return UnitListResponse(units=[UnitResponse.from_view(v) for v in views])
