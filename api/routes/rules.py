from datetime import date
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status

from core.context import RequestContext
from rules.models import CreateRewardRuleRequest, EventType, ProgramType, RewardRule

from ..container import Services
from ..deps import get_request_context, get_services, require_admin

router = APIRouter(tags=["Reward Rules"])


@router.get("/admin/reward-rules", response_model=list[RewardRule])
def list_reward_rules(
    program_type: Optional[ProgramType] = None,
    event_type: Optional[EventType] = None,
    _: RequestContext = Depends(require_admin),
    services: Services = Depends(get_services),
):
    return services.rules.list_rules(program_type, event_type)


@router.post("/admin/reward-rules", response_model=RewardRule, status_code=status.HTTP_201_CREATED)
def create_reward_rule(
    request: CreateRewardRuleRequest,
    _: RequestContext = Depends(require_admin),
    services: Services = Depends(get_services),
):
    return services.rules.create_rule(request)


@router.post("/admin/reward-rules/{rule_id}/deactivate", response_model=RewardRule)
def deactivate_reward_rule(
    rule_id: UUID,
    _: RequestContext = Depends(require_admin),
    services: Services = Depends(get_services),
):
    return services.rules.deactivate_rule(rule_id)


@router.get("/reward-rules/resolve", response_model=RewardRule)
def resolve_reward_rule(
    program_type: ProgramType,
    event_type: EventType,
    as_of: Optional[date] = Query(default=None),
    _: RequestContext = Depends(get_request_context),
    services: Services = Depends(get_services),
):
    return services.rules.resolve(program_type, event_type, as_of)
