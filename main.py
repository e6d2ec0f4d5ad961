from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from app.api import waitlist
from app.core.config import settings
from app.core.database import init_db
from app.core.exceptions import PersistenceError, WaitlistError
from app.services.waitlist_sweep import WaitlistSweep
from app.utils.notification_service import NotificationService

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s"
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()

    notification_service = NotificationService()
    app.state.notification_service = notification_service

    sweep = None
    if settings.WAITLIST_SWEEP_ENABLED:
        sweep = WaitlistSweep(notification_service)
        sweep.start()
    app.state.waitlist_sweep = sweep

    try:
        yield
    finally:
        if sweep:
            sweep.shutdown()
        notification_service.shutdown(wait=False)


app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    lifespan=lifespan
)


@app.exception_handler(WaitlistError)
async def waitlist_error_handler(request: Request, exc: WaitlistError):
    if isinstance(exc, PersistenceError):
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "error": exc.message}
    )


app.include_router(waitlist.router)


@app.get("/")
def root():
    return {
        "service": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "docs": "/docs"
    }
