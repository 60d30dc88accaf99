from uuid import UUID

from fastapi import APIRouter, Depends

from core.context import RequestContext
from referrals.models import PayoutPreferenceRequest, Profile, SetAdminRequest, UpdateProfileRequest

from ..container import Services
from ..deps import get_request_context, get_services, require_admin

router = APIRouter(tags=["Profiles"])


@router.get("/me", response_model=Profile)
def get_me(ctx: RequestContext = Depends(get_request_context), services: Services = Depends(get_services)):
    return services.profiles.get_profile(ctx.user_id)


@router.patch("/me", response_model=Profile)
def update_me(
    request: UpdateProfileRequest,
    ctx: RequestContext = Depends(get_request_context),
    services: Services = Depends(get_services),
):
    return services.profiles.update_profile(ctx, request)


@router.put("/me/payout-preference", response_model=Profile)
def set_payout_preference(
    request: PayoutPreferenceRequest,
    ctx: RequestContext = Depends(get_request_context),
    services: Services = Depends(get_services),
):
    return services.profiles.set_payout_preference(ctx, request.payout_preference)


@router.put("/admin/users/{user_id}/admin", response_model=Profile)
def set_admin_flag(
    user_id: UUID,
    request: SetAdminRequest,
    ctx: RequestContext = Depends(require_admin),
    services: Services = Depends(get_services),
):
    return services.profiles.set_admin(ctx, user_id, request.is_admin)
