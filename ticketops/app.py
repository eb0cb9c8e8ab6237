from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from ticketops.apps.imports.api import register_exception_handlers
from ticketops.apps.imports.api import router as imports_router
from ticketops.apps.imports.api_ops import router as ops_router
from ticketops.core.config import settings
from ticketops.core.observability import init_observability
from ticketops.core.observability.health import router as health_router


def create_app() -> FastAPI:
    init_observability(enable_metrics=settings.enable_metrics)

    app = FastAPI(title="Ticket Import Reconciliation")

    app.add_middleware(
        CORSMiddleware,
        allow_origins=[o.strip() for o in settings.CORS_ALLOW_ORIGINS.split(",") if o.strip()],
        allow_methods=["GET", "POST", "PUT", "OPTIONS"],
        allow_headers=["*"],
    )

    # Routers
    app.include_router(health_router)
    app.include_router(imports_router)
    app.include_router(ops_router)
    register_exception_handlers(app)

    return app


# ASGI app instance
app = create_app()
