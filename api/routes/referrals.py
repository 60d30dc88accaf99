from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Header, status

from core.context import RequestContext
from referrals.models import (
    DenyReferralRequest,
    IssueRewardRequest,
    IssueResult,
    Job,
    Referral,
    ReferralAdminView,
    SetStatusRequest,
    StatusChange,
    SubmitReferralRequest,
)

from ..container import Services
from ..deps import Pagination, get_pagination, get_request_context, get_services, require_admin

router = APIRouter(tags=["Referrals"])


@router.post("/referrals", response_model=Referral, status_code=status.HTTP_201_CREATED)
def submit_referral(
    request: SubmitReferralRequest,
    ctx: RequestContext = Depends(get_request_context),
    services: Services = Depends(get_services),
):
    return services.referrals.submit(ctx, request)


@router.get("/referrals", response_model=list[Referral])
def list_my_referrals(ctx: RequestContext = Depends(get_request_context), services: Services = Depends(get_services)):
    return services.referrals.list_for_user(ctx)


@router.get("/referrals/{referral_id}", response_model=Referral)
def get_referral(
    referral_id: UUID,
    ctx: RequestContext = Depends(get_request_context),
    services: Services = Depends(get_services),
):
    return services.referrals.get_for_caller(ctx, referral_id)


@router.get("/referrals/{referral_id}/jobs", response_model=list[Job])
def list_referral_jobs(
    referral_id: UUID,
    ctx: RequestContext = Depends(get_request_context),
    services: Services = Depends(get_services),
):
    return services.referrals.list_jobs(ctx, referral_id)


@router.get("/referrals/{referral_id}/history", response_model=list[StatusChange])
def get_referral_history(
    referral_id: UUID,
    ctx: RequestContext = Depends(get_request_context),
    services: Services = Depends(get_services),
):
    return services.referrals.status_history(ctx, referral_id)


@router.get("/admin/referrals", response_model=list[ReferralAdminView])
def list_all_referrals(
    page: Pagination = Depends(get_pagination),
    ctx: RequestContext = Depends(require_admin),
    services: Services = Depends(get_services),
):
    return services.referrals.list_admin_view(ctx, page.limit, page.offset)


@router.post("/admin/referrals/{referral_id}/status", response_model=Referral)
def set_referral_status(
    referral_id: UUID,
    request: SetStatusRequest,
    ctx: RequestContext = Depends(require_admin),
    services: Services = Depends(get_services),
):
    return services.referrals.set_status(
        ctx, referral_id, request.status, override=request.override, reason=request.reason,
    )


@router.post("/admin/referrals/{referral_id}/deny", response_model=Referral)
def deny_referral(
    referral_id: UUID,
    request: Optional[DenyReferralRequest] = None,
    ctx: RequestContext = Depends(require_admin),
    services: Services = Depends(get_services),
):
    return services.referrals.deny(ctx, referral_id, request.reason if request else None)


@router.post("/admin/referrals/{referral_id}/issue", response_model=IssueResult, status_code=status.HTTP_201_CREATED)
def complete_and_issue(
    referral_id: UUID,
    request: IssueRewardRequest,
    idempotency_key: Optional[str] = Header(default=None, alias="Idempotency-Key"),
    ctx: RequestContext = Depends(require_admin),
    services: Services = Depends(get_services),
):
    return services.referrals.complete_and_issue(ctx, referral_id, request, idempotency_key=idempotency_key)
