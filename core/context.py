from dataclasses import dataclass, field
from typing import Optional
from uuid import UUID

from core.exceptions import PermissionDeniedError


@dataclass(frozen=True)
class RequestContext:
    """Who is calling, resolved once per request and passed to every service call."""

    user_id: UUID
    is_admin: bool = False
    request_id: Optional[str] = field(default=None, compare=False)

    def require_admin(self) -> None:
        if not self.is_admin:
            raise PermissionDeniedError("Admin access required")

    def require_self_or_admin(self, user_id: UUID) -> None:
        if not self.is_admin and user_id != self.user_id:
            raise PermissionDeniedError("Not allowed to act on another user's records")
