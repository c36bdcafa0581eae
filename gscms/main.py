from contextlib import asynccontextmanager

from sqlalchemy import text

from gscms.core.observability import (
    http_exception_handler,
    request_logging_middleware,
    setup_observability,
    unhandled_exception_handler,
    validation_exception_handler,
)
from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware

import gscms.models  # noqa: F401
from gscms.core.config import settings
from gscms.db.base import Base
from gscms.db.session import SessionLocal, engine
from gscms.routers import auth, automation, inquiries
from gscms.services.scheduler import initialize_automation, shutdown_automation


@asynccontextmanager
async def lifespan(_: FastAPI):
    if not settings.is_production:
        # Local bootstrap; production schemas are provisioned out of band.
        Base.metadata.create_all(bind=engine)
    initialize_automation(SessionLocal)
    try:
        yield
    finally:
        shutdown_automation()


app = FastAPI(
    title=settings.app_name,
    version="0.1.0",
    description=(
        "Backend API for GS-CMS inquiry automation.\n\n"
        "Swagger quick test flow:\n"
        "1. Obtain a bearer token from the identity provider.\n"
        "2. Click **Authorize** and paste the token.\n"
        "3. Test protected endpoints (`/automation/rules`, `/inquiries`)."
    ),
    lifespan=lifespan,
    swagger_ui_parameters={
        "persistAuthorization": True,
        "displayRequestDuration": True,
        "defaultModelsExpandDepth": 1,
    },
    openapi_tags=[
        {"name": "health", "description": "Service status and quick links."},
        {"name": "auth", "description": "Caller profile resolved from the bearer token."},
        {"name": "automation", "description": "Rules engine, execution logs, email templates, and deadline checks."},
        {"name": "inquiries", "description": "Inquiry intake, status changes, and item assignment."},
    ],
)

setup_observability()
app.middleware("http")(request_logging_middleware)
app.add_exception_handler(RequestValidationError, validation_exception_handler)
app.add_exception_handler(HTTPException, http_exception_handler)
app.add_exception_handler(Exception, unhandled_exception_handler)

cors_origins = settings.cors_origins or ["http://localhost:3000"]
allow_all_origins = "*" in cors_origins

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"] if allow_all_origins else cors_origins,
    allow_credentials=not allow_all_origins,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(auth.router)
app.include_router(automation.router)
app.include_router(inquiries.router)
app.include_router(inquiries.items_router)


@app.get("/", tags=["health"])
def root():
    return {
        "app": settings.app_name,
        "docs": "/docs",
        "redoc": "/redoc",
        "health": "/health",
        "ready": "/ready",
    }


@app.get("/health", tags=["health"])
def health():
    return {"ok": True}


@app.get("/ready", tags=["health"])
def ready():
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
    except Exception:
        return {"ok": False}
    return {"ok": True}
