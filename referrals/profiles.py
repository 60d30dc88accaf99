from datetime import datetime, timezone
from typing import Iterable, Optional
from uuid import UUID

from loguru import logger

from core.context import RequestContext
from core.exceptions import ProfileNotFoundError, ValidationError
from core.storage import InMemoryStorage
from rules.models import ProgramType

from .models import PayoutPreference, Profile, UpdateProfileRequest


class ProfileService:
    def __init__(self, storage: Optional[InMemoryStorage] = None, admin_user_ids: Iterable[UUID] = ()):
        self.storage = storage or InMemoryStorage()
        self.admin_user_ids = frozenset(admin_user_ids)

    def ensure_profile(self, user_id: UUID) -> Profile:
        """Return the caller's profile, creating it on first sign-in."""
        row = self.storage.get("profiles", user_id)
        if row:
            return Profile(**row)
        with self.storage.transaction():
            row = self.storage.get("profiles", user_id)
            if row:
                return Profile(**row)
            now = datetime.now(timezone.utc)
            row = {
                "id": user_id,
                "full_name": None,
                "account_type": ProgramType.CUSTOMER,
                "is_admin": user_id in self.admin_user_ids,
                "payout_preference": None,
                "created_at": now,
                "updated_at": now,
            }
            self.storage.insert("profiles", row)
        logger.bind(user_id=str(user_id), is_admin=row["is_admin"]).info("Created profile on first sign-in")
        return Profile(**row)

    def get_profile(self, user_id: UUID) -> Profile:
        row = self.storage.get("profiles", user_id)
        if not row:
            raise ProfileNotFoundError(f"Profile {user_id} not found")
        return Profile(**row)

    def update_profile(self, ctx: RequestContext, request: UpdateProfileRequest) -> Profile:
        changes: dict = {}
        if request.full_name is not None:
            changes["full_name"] = request.full_name.strip() or None
        if request.account_type is not None:
            changes["account_type"] = request.account_type
            if request.account_type == ProgramType.PARTNER:
                changes["payout_preference"] = None
        return self._update(ctx.user_id, changes)

    def set_payout_preference(self, ctx: RequestContext, preference: PayoutPreference) -> Profile:
        profile = self.get_profile(ctx.user_id)
        if profile.account_type != ProgramType.CUSTOMER:
            raise ValidationError("Payout preference applies to customer accounts only")
        return self._update(ctx.user_id, {"payout_preference": preference})

    def set_admin(self, ctx: RequestContext, user_id: UUID, is_admin: bool) -> Profile:
        ctx.require_admin()
        if user_id == ctx.user_id and not is_admin:
            raise ValidationError("Admins cannot revoke their own admin flag")
        profile = self._update(user_id, {"is_admin": is_admin})
        logger.bind(user_id=str(user_id), actor=str(ctx.user_id), is_admin=is_admin).warning("Admin flag changed")
        return profile

    def display_names(self) -> dict[UUID, str]:
        return {row["id"]: Profile(**row).display_name for row in self.storage.select("profiles")}

    def _update(self, user_id: UUID, changes: dict) -> Profile:
        with self.storage.transaction():
            self.get_profile(user_id)
            if not changes:
                return self.get_profile(user_id)
            changes["updated_at"] = datetime.now(timezone.utc)
            row = self.storage.update("profiles", user_id, changes)
        logger.bind(user_id=str(user_id), fields=sorted(changes)).info("Profile updated")
        return Profile(**row)
