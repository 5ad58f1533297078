import uvicorn
from fastapi import FastAPI

from app.api.routes.billing_webhook import router as billing_webhook_router
from app.api.routes.health import router as health_router
from app.api.routes.internal_entitlements import router as internal_entitlements_router
from app.api.routes.internal_referrals import router as internal_referrals_router
from app.core.config import get_settings
from app.core.logging import configure_logging


def create_app() -> FastAPI:
    settings = get_settings()
    configure_logging(settings.log_level)

    app = FastAPI(
        title="Park Pick API",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
    )
    app.include_router(health_router)
    app.include_router(billing_webhook_router)
    app.include_router(internal_referrals_router)
    app.include_router(internal_entitlements_router)
    return app


app = create_app()


def run() -> None:
    settings = get_settings()
    uvicorn.run(
        "app.main:app",
        host=settings.app_host,
        port=settings.app_port,
        reload=settings.app_env == "dev",
    )


if __name__ == "__main__":
    run()
