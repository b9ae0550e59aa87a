from uuid import uuid4

import uvicorn
from fastapi import FastAPI, Request

from app.api.routes.ads import router as ads_router
from app.api.routes.billing import router as billing_router
from app.api.routes.coins import router as coins_router
from app.api.routes.health import router as health_router
from app.api.routes.internal_users import router as internal_users_router
from app.api.routes.unlocks import router as unlocks_router
from app.core.config import get_settings
from app.core.logging import bind_request_context, clear_request_context, configure_logging

REQUEST_ID_HEADER = "X-Request-Id"


def create_app() -> FastAPI:
    settings = get_settings()
    configure_logging(settings.log_level)

    app = FastAPI(
        title="Episode Ledger API",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
    )

    @app.middleware("http")
    async def request_context_middleware(request: Request, call_next):
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid4().hex
        bind_request_context(request_id=request_id, user_id=request.headers.get("X-User-Id"))
        try:
            response = await call_next(request)
        finally:
            clear_request_context()
        response.headers[REQUEST_ID_HEADER] = request_id
        return response

    app.include_router(health_router)
    app.include_router(coins_router)
    app.include_router(unlocks_router)
    app.include_router(ads_router)
    app.include_router(billing_router)
    app.include_router(internal_users_router)
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
