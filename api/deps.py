from dataclasses import dataclass
from typing import Optional
from uuid import UUID

from fastapi import Depends, Query, Request

from core.config import Settings
from core.context import RequestContext
from core.exceptions import AuthenticationError

from .container import Services


@dataclass(frozen=True)
class Pagination:
    limit: int
    offset: int


def get_settings_dep(request: Request) -> Settings:
    return request.app.state.settings


def get_services(request: Request) -> Services:
    return request.app.state.services


def get_request_context(
    request: Request,
    services: Services = Depends(get_services),
    settings: Settings = Depends(get_settings_dep),
) -> RequestContext:
    raw_user_id = request.headers.get(settings.IDENTITY_HEADER)
    if not raw_user_id:
        raise AuthenticationError("Not signed in.")
    try:
        user_id = UUID(raw_user_id)
    except ValueError:
        raise AuthenticationError("Invalid user identity") from None

    profile = services.profiles.ensure_profile(user_id)
    return RequestContext(
        user_id=user_id,
        is_admin=profile.is_admin,
        request_id=getattr(request.state, "request_id", None),
    )


def require_admin(ctx: RequestContext = Depends(get_request_context)) -> RequestContext:
    ctx.require_admin()
    return ctx


def get_pagination(
    limit: Optional[int] = Query(default=None, ge=1),
    offset: int = Query(default=0, ge=0),
    settings: Settings = Depends(get_settings_dep),
) -> Pagination:
    size = min(limit or settings.DEFAULT_PAGE_SIZE, settings.MAX_PAGE_SIZE)
    return Pagination(limit=size, offset=offset)
