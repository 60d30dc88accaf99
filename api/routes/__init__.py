from fastapi import APIRouter

from api.routes import catalog, ledger, profiles, redemptions, referrals, rules

api_router = APIRouter()
api_router.include_router(profiles.router)
api_router.include_router(ledger.router)
api_router.include_router(referrals.router)
api_router.include_router(rules.router)
api_router.include_router(catalog.router)
api_router.include_router(redemptions.router)
