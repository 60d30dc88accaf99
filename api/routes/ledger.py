from uuid import UUID

from fastapi import APIRouter, Depends, Query

from core.context import RequestContext
from ledger.models import BalanceSummary, CurrencyType, LedgerHistoryResponse, ReconciliationReport

from ..container import Services
from ..deps import Pagination, get_pagination, get_request_context, get_services, require_admin

router = APIRouter(tags=["Ledger"])


@router.get("/me/balance", response_model=BalanceSummary)
def get_my_balance(ctx: RequestContext = Depends(get_request_context), services: Services = Depends(get_services)):
    return services.ledger.get_balances(ctx.user_id)


@router.get("/me/ledger", response_model=LedgerHistoryResponse)
def get_my_ledger(
    page: Pagination = Depends(get_pagination),
    ctx: RequestContext = Depends(get_request_context),
    services: Services = Depends(get_services),
):
    return services.ledger.get_ledger_history(ctx.user_id, page.limit, page.offset)


@router.get("/admin/users/{user_id}/balance", response_model=BalanceSummary)
def get_user_balance(
    user_id: UUID,
    _: RequestContext = Depends(require_admin),
    services: Services = Depends(get_services),
):
    return services.ledger.get_balances(user_id)


@router.get("/admin/users/{user_id}/reconcile", response_model=ReconciliationReport)
def reconcile_user_balance(
    user_id: UUID,
    currency: CurrencyType = Query(default=CurrencyType.POINTS),
    _: RequestContext = Depends(require_admin),
    services: Services = Depends(get_services),
):
    return services.ledger.reconcile(user_id, currency)
