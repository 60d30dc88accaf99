"""
Points catalog and partner redemption requests.
"""

from .models import CatalogItem, RedemptionRequest, RedemptionStatus
from .service import CatalogService, RedemptionService

__all__ = [
    "CatalogItem",
    "RedemptionRequest",
    "RedemptionStatus",
    "CatalogService",
    "RedemptionService",
]
