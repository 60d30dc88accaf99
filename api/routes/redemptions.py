from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, status

from core.context import RequestContext
from redemptions.models import (
    CreateRedemptionRequest,
    FulfillmentResult,
    FulfillRedemptionRequest,
    RedemptionAdminView,
    RedemptionRequest,
)

from ..container import Services
from ..deps import Pagination, get_pagination, get_request_context, get_services, require_admin

router = APIRouter(tags=["Redemptions"])


@router.post("/redemptions", response_model=RedemptionRequest, status_code=status.HTTP_201_CREATED)
def request_redemption(
    request: CreateRedemptionRequest,
    ctx: RequestContext = Depends(get_request_context),
    services: Services = Depends(get_services),
):
    return services.redemptions.request(ctx, request.catalog_item_id)


@router.get("/redemptions", response_model=list[RedemptionRequest])
def list_my_redemptions(ctx: RequestContext = Depends(get_request_context), services: Services = Depends(get_services)):
    return services.redemptions.list_for_user(ctx)


@router.post("/redemptions/{request_id}/cancel", response_model=RedemptionRequest)
def cancel_redemption(
    request_id: UUID,
    ctx: RequestContext = Depends(get_request_context),
    services: Services = Depends(get_services),
):
    return services.redemptions.cancel(ctx, request_id)


@router.get("/admin/redemptions", response_model=list[RedemptionAdminView])
def list_all_redemptions(
    page: Pagination = Depends(get_pagination),
    ctx: RequestContext = Depends(require_admin),
    services: Services = Depends(get_services),
):
    return services.redemptions.list_admin_view(ctx, page.limit, page.offset)


@router.post("/admin/redemptions/{request_id}/fulfill", response_model=FulfillmentResult)
def fulfill_redemption(
    request_id: UUID,
    request: Optional[FulfillRedemptionRequest] = None,
    ctx: RequestContext = Depends(require_admin),
    services: Services = Depends(get_services),
):
    reference = request.fulfillment_reference if request else None
    return services.redemptions.fulfill(ctx, request_id, reference)
