import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text

from app.core.config import settings
from app.core.exceptions import register_exception_handlers
from app.core.log_config import RequestLoggingMiddleware, setup_logging
from app.db.session import SessionLocal
from app.messaging.routes import conversations as conversations_routes
from app.notifications.routes import notifications as notifications_routes
from app.realtime import gateway

APP_VERSION = "1.0.0"

setup_logging()
logger = structlog.get_logger(__name__)


app = FastAPI(
    title=settings.PROJECT_NAME,
    debug=settings.DEBUG,
    description="Conversations, messages and notifications for the FindIt lost-and-found platform",
    version=APP_VERSION,
)

register_exception_handlers(app, debug=settings.DEBUG)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(RequestLoggingMiddleware)

app.include_router(conversations_routes.router, prefix="/user", tags=["chat"])
app.include_router(notifications_routes.router, prefix="/user", tags=["notifications"])
app.include_router(gateway.router, tags=["realtime"])


@app.get("/")
async def root() -> dict[str, str]:
    return {"message": settings.PROJECT_NAME, "version": APP_VERSION, "status": "running"}


@app.get("/health")
async def health_check() -> dict[str, str]:
    db_status = "unknown"

    try:
        db = SessionLocal()
        try:
            db.execute(text("SELECT 1"))
            db_status = "healthy"
        finally:
            db.close()
    except Exception:
        logger.warning("health_check_database_failed", exc_info=True)
        db_status = "unhealthy"

    overall = "healthy" if db_status == "healthy" else "degraded"
    return {"status": overall, "database": db_status}
