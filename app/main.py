import uvicorn
from fastapi import FastAPI

from app.api.errors import register_error_handlers
from app.api.routes.ai_features import router as ai_features_router
from app.api.routes.billing import router as billing_router
from app.api.routes.downloads import router as downloads_router
from app.api.routes.entitlements import router as entitlements_router
from app.api.routes.health import router as health_router
from app.core.config import get_settings
from app.core.logging import configure_logging


def create_app() -> FastAPI:
    settings = get_settings()
    configure_logging(settings.log_level, app_env=settings.app_env)

    docs_enabled = bool(settings.enable_openapi_docs)
    app = FastAPI(
        title="QuickResume Entitlements API",
        version="0.1.0",
        docs_url="/docs" if docs_enabled else None,
        redoc_url="/redoc" if docs_enabled else None,
        openapi_url="/openapi.json" if docs_enabled else None,
    )
    register_error_handlers(app)
    app.include_router(health_router)
    app.include_router(billing_router)
    app.include_router(downloads_router)
    app.include_router(ai_features_router)
    app.include_router(entitlements_router)
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
