from uuid import UUID

from fastapi import APIRouter, Depends, status

from core.context import RequestContext
from redemptions.models import CatalogItem, CreateCatalogItemRequest

from ..container import Services
from ..deps import get_request_context, get_services, require_admin

router = APIRouter(tags=["Catalog"])


@router.get("/catalog", response_model=list[CatalogItem])
def list_catalog(_: RequestContext = Depends(get_request_context), services: Services = Depends(get_services)):
    return services.catalog.list_active()


@router.get("/admin/catalog", response_model=list[CatalogItem])
def list_catalog_admin(ctx: RequestContext = Depends(require_admin), services: Services = Depends(get_services)):
    return services.catalog.list_all(ctx)


@router.post("/admin/catalog", response_model=CatalogItem, status_code=status.HTTP_201_CREATED)
def add_catalog_item(
    request: CreateCatalogItemRequest,
    ctx: RequestContext = Depends(require_admin),
    services: Services = Depends(get_services),
):
    return services.catalog.create_item(ctx, request)


@router.post("/admin/catalog/{item_id}/activate", response_model=CatalogItem)
def activate_catalog_item(
    item_id: UUID,
    ctx: RequestContext = Depends(require_admin),
    services: Services = Depends(get_services),
):
    return services.catalog.set_active(ctx, item_id, True)


@router.post("/admin/catalog/{item_id}/deactivate", response_model=CatalogItem)
def deactivate_catalog_item(
    item_id: UUID,
    ctx: RequestContext = Depends(require_admin),
    services: Services = Depends(get_services),
):
    return services.catalog.set_active(ctx, item_id, False)
