from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from loguru import logger

from core.config import Settings, get_settings
from core.exceptions import register_exception_handlers
from core.logging import configure_logging
from core.storage import InMemoryStorage
from rules.resolver import seed_sample_rules

from .container import build_services
from .middleware import RequestContextMiddleware
from .routes import api_router
from .routes.health import router as health_router


def create_app(settings: Optional[Settings] = None, storage: Optional[InMemoryStorage] = None) -> FastAPI:
    settings = settings or get_settings()
    configure_logging(level="DEBUG" if settings.DEBUG else settings.LOG_LEVEL, json_logs=settings.LOG_JSON)

    app = FastAPI(
        title=settings.APP_NAME,
        description="Referral submission, reward issuance and points redemption over an append-only ledger",
        version="1.0.0",
        debug=settings.DEBUG,
    )
    app.state.settings = settings
    app.state.services = build_services(settings, storage)

    app.include_router(health_router)
    app.include_router(api_router, prefix=settings.API_V1_PREFIX)
    app.add_middleware(RequestContextMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    register_exception_handlers(app)

    if settings.SEED_DEMO_DATA:
        seeded = seed_sample_rules(app.state.services.rules)
        if seeded:
            logger.bind(count=seeded).info("Seeded sample reward rules")

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
