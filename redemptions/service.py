from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional
from uuid import UUID, uuid4

from loguru import logger

from core.context import RequestContext
from core.exceptions import (
    CatalogItemNotFoundError,
    InvalidStateTransitionError,
    PermissionDeniedError,
    RedemptionNotFoundError,
    ValidationError,
)
from core.storage import InMemoryStorage
from ledger.models import CurrencyType, EntryType, NewLedgerEntry
from ledger.service import LedgerService
from referrals.profiles import ProfileService
from rules.models import ProgramType

from .models import (
    CatalogItem,
    CreateCatalogItemRequest,
    FulfillmentResult,
    RedemptionAdminView,
    RedemptionRequest,
    RedemptionStatus,
)


class CatalogService:
    def __init__(self, storage: Optional[InMemoryStorage] = None):
        self.storage = storage or InMemoryStorage()

    def create_item(self, ctx: RequestContext, request: CreateCatalogItemRequest) -> CatalogItem:
        ctx.require_admin()
        name = request.name.strip()
        if not name:
            raise ValidationError("Catalog name required.")
        if request.points_cost <= 0:
            raise ValidationError("Points cost must be positive.")
        if request.points_cost != request.points_cost.to_integral_value():
            raise ValidationError("Points cost must be a whole number.")

        item_data = {
            "id": uuid4(),
            "name": name,
            "description": (request.description or "").strip() or None,
            "points_cost": request.points_cost,
            "is_active": True,
            "created_at": datetime.now(timezone.utc),
        }
        self.storage.insert("catalog_items", item_data)
        logger.bind(item_id=str(item_data["id"]), points_cost=str(request.points_cost)).info("Catalog item added")
        return CatalogItem(**item_data)

    def set_active(self, ctx: RequestContext, item_id: UUID, is_active: bool) -> CatalogItem:
        ctx.require_admin()
        with self.storage.transaction():
            self.get_item(item_id)
            row = self.storage.update("catalog_items", item_id, {"is_active": is_active})
        logger.bind(item_id=str(item_id), is_active=is_active).info("Catalog item availability changed")
        return CatalogItem(**row)

    def get_item(self, item_id: UUID) -> CatalogItem:
        row = self.storage.get("catalog_items", item_id)
        if not row:
            raise CatalogItemNotFoundError(f"Catalog item {item_id} not found")
        return CatalogItem(**row)

    def list_active(self) -> list[CatalogItem]:
        rows = self.storage.select("catalog_items", where={"is_active": True}, order_by="points_cost")
        return [CatalogItem(**row) for row in rows]

    def list_all(self, ctx: RequestContext) -> list[CatalogItem]:
        ctx.require_admin()
        rows = self.storage.select("catalog_items", order_by="created_at", descending=True)
        return [CatalogItem(**row) for row in rows]


class RedemptionService:
    """Partner points redemptions.

    Requesting an item places a hold on the partner's points so two open
    requests can never spend the same balance. Fulfilment turns the hold
    into a negative ``Redeemed`` ledger entry; cancelling releases it.
    """

    def __init__(
        self,
        storage: Optional[InMemoryStorage] = None,
        ledger: Optional[LedgerService] = None,
        catalog: Optional[CatalogService] = None,
        profiles: Optional[ProfileService] = None,
    ):
        self.storage = storage or InMemoryStorage()
        self.ledger = ledger or LedgerService(self.storage)
        self.catalog = catalog or CatalogService(self.storage)
        self.profiles = profiles or ProfileService(self.storage)

    def request(self, ctx: RequestContext, catalog_item_id: UUID) -> RedemptionRequest:
        profile = self.profiles.ensure_profile(ctx.user_id)
        if profile.account_type != ProgramType.PARTNER:
            raise PermissionDeniedError("Only partner accounts can redeem points")

        with self.storage.transaction():
            item = self.catalog.get_item(catalog_item_id)
            if not item.is_active:
                raise ValidationError(f"Catalog item '{item.name}' is no longer available")
            self.ledger.hold(ctx.user_id, CurrencyType.POINTS, item.points_cost)
            request_data = {
                "id": uuid4(),
                "user_id": ctx.user_id,
                "catalog_item_id": item.id,
                "catalog_item_name": item.name,
                "points_cost": item.points_cost,
                "status": RedemptionStatus.REQUESTED,
                "fulfillment_reference": None,
                "fulfilled_at": None,
                "cancelled_at": None,
                "created_at": datetime.now(timezone.utc),
            }
            self.storage.insert("redemption_requests", request_data)

        logger.bind(
            redemption_id=str(request_data["id"]),
            user_id=str(ctx.user_id),
            points=str(item.points_cost),
        ).info("Redemption requested")
        return RedemptionRequest(**request_data)

    def fulfill(
        self,
        ctx: RequestContext,
        request_id: UUID,
        fulfillment_reference: Optional[str] = None,
    ) -> FulfillmentResult:
        ctx.require_admin()
        with self.storage.transaction():
            redemption = self.get_request(request_id)
            self._ensure_open(redemption, "fulfill")
            cost = Decimal(redemption.points_cost)

            self.ledger.release(redemption.user_id, CurrencyType.POINTS, cost)
            entry = self.ledger.append(
                NewLedgerEntry(
                    user_id=redemption.user_id,
                    redemption_request_id=redemption.id,
                    entry_type=EntryType.REDEEMED,
                    currency_type=CurrencyType.POINTS,
                    amount=-cost,
                    memo=f"Redeemed points for: {redemption.catalog_item_name}",
                ),
                idempotency_key=f"redemption:{redemption.id}",
                require_sufficient=True,
            )
            row = self.storage.update("redemption_requests", redemption.id, {
                "status": RedemptionStatus.FULFILLED,
                "fulfillment_reference": (fulfillment_reference or "").strip() or None,
                "fulfilled_at": datetime.now(timezone.utc),
            })

        logger.bind(
            redemption_id=str(request_id),
            user_id=str(redemption.user_id),
            points=str(cost),
            actor=str(ctx.user_id),
        ).info("Redemption fulfilled")
        return FulfillmentResult(
            redemption=RedemptionRequest(**row),
            ledger_entry=entry,
            message="Redemption fulfilled and points deducted.",
        )

    def cancel(self, ctx: RequestContext, request_id: UUID) -> RedemptionRequest:
        with self.storage.transaction():
            redemption = self.get_request(request_id)
            ctx.require_self_or_admin(redemption.user_id)
            self._ensure_open(redemption, "cancel")
            self.ledger.release(redemption.user_id, CurrencyType.POINTS, Decimal(redemption.points_cost))
            row = self.storage.update("redemption_requests", redemption.id, {
                "status": RedemptionStatus.CANCELLED,
                "cancelled_at": datetime.now(timezone.utc),
            })
        logger.bind(redemption_id=str(request_id), actor=str(ctx.user_id)).info("Redemption cancelled")
        return RedemptionRequest(**row)

    def get_request(self, request_id: UUID) -> RedemptionRequest:
        row = self.storage.get("redemption_requests", request_id)
        if not row:
            raise RedemptionNotFoundError(f"Redemption request {request_id} not found")
        return RedemptionRequest(**row)

    def list_for_user(self, ctx: RequestContext) -> list[RedemptionRequest]:
        rows = self.storage.select(
            "redemption_requests", where={"user_id": ctx.user_id}, order_by="created_at", descending=True,
        )
        return [RedemptionRequest(**row) for row in rows]

    def list_admin_view(self, ctx: RequestContext, limit: int = 50, offset: int = 0) -> list[RedemptionAdminView]:
        ctx.require_admin()
        names = self.profiles.display_names()
        rows = self.storage.select(
            "redemption_requests", order_by="created_at", descending=True, limit=limit, offset=offset,
        )
        return [RedemptionAdminView(**row, user_display=names.get(row["user_id"], str(row["user_id"]))) for row in rows]

    @staticmethod
    def _ensure_open(redemption: RedemptionRequest, action: str) -> None:
        if redemption.status != RedemptionStatus.REQUESTED:
            raise InvalidStateTransitionError(
                f"Cannot {action} redemption request in {redemption.status.value} state"
            )
