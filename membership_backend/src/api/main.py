import asyncio
import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from loguru import logger

from src.api import config
from src.api.auth import engine, router as auth_router
from src.api.admin import router as admin_router
from src.api.agents import router as agent_router
from src.api.errors import register_error_handlers
from src.api.jobs import payment_cleanup_loop
from src.api.loan_covers import router as loan_cover_router
from src.api.logging_config import configure_logging
from src.api.membership import router as membership_router
from src.api.models import Base
from src.api.openapi_schemas import openapi_tags
from src.api.payments import router as payment_router
from src.api.premiums import router as premium_router
from src.api.qrcodes import router as qrcode_router

configure_logging()


@asynccontextmanager
async def lifespan(app: FastAPI):
    Base.metadata.create_all(bind=engine)
    cleanup_task = None
    if config.PAYMENT_CLEANUP_ENABLED:
        cleanup_task = asyncio.create_task(payment_cleanup_loop(config.PAYMENT_CLEANUP_INTERVAL_SECONDS))
    logger.info("Welin API started ({})", config.APP_ENV)
    yield
    if cleanup_task:
        cleanup_task.cancel()
        try:
            await cleanup_task
        except asyncio.CancelledError:
            pass
    logger.info("Welin API stopped")


app = FastAPI(
    title="Welin Membership Platform Backend",
    description="REST API for member onboarding, loan-cover insurance, payments and role-based access (Superadmin/Admin/Vendor/Agent, Member).",
    version="1.0.0",
    openapi_tags=openapi_tags,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization", "X-Requested-With", "Accept", "Origin"],
)

register_error_handlers(app)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    start = time.perf_counter()
    response = await call_next(request)
    duration_ms = (time.perf_counter() - start) * 1000
    logger.info("{} {} {} {:.1f} ms", request.method, request.url.path, response.status_code, duration_ms)
    return response


# Mount authentication endpoints
app.include_router(auth_router)
# Mount admin and agent management endpoints
app.include_router(admin_router)
app.include_router(agent_router)
# Mount member and product endpoints
app.include_router(membership_router)
app.include_router(loan_cover_router)
# Mount payment endpoints
app.include_router(payment_router)
app.include_router(qrcode_router)
app.include_router(premium_router)


@app.get("/", tags=["Misc"])
def health_check():
    """Health check endpoint for system uptime monitoring."""
    return {"message": "Healthy"}
