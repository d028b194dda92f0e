"""FastAPI application entry point for Saarthi."""

import asyncio
import contextlib
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Annotated

from fastapi import Depends, FastAPI, Form
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import PlainTextResponse
from sqlalchemy.ext.asyncio import AsyncSession

from saarthi.api.deps import get_db, get_store
from saarthi.api.v1.router import router as api_v1_router
from saarthi.api.v1.webhooks import receive_twilio_webhook
from saarthi.config import get_settings
from saarthi.database import engine
from saarthi.services.sessions import SessionStore, get_session_store, run_session_sweeper

settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan - startup and shutdown events."""
    # Startup
    print("Starting Saarthi API...")
    print(f"Environment: {settings.app_env}")
    print(f"Database: {settings.async_database_url.split('@')[-1]}")  # Hide credentials

    # Test database connection
    try:
        async with engine.connect():
            print("✓ Database connection successful")
    except Exception as e:
        print(f"✗ Database connection failed: {e}")

    sweeper = asyncio.create_task(
        run_session_sweeper(
            get_session_store(), settings.session_sweep_interval_minutes * 60
        )
    )

    yield

    # Shutdown
    print("Shutting down Saarthi API...")
    sweeper.cancel()
    with contextlib.suppress(asyncio.CancelledError):
        await sweeper
    await engine.dispose()


# Create FastAPI app
app = FastAPI(
    title="Saarthi API",
    description="WhatsApp health assistant for elderly users and their caregivers",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"] if settings.is_development else [settings.app_base_url],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(api_v1_router, prefix="/api/v1")


@app.get("/")
async def root() -> dict[str, str]:
    """Root endpoint."""
    return {
        "name": "Saarthi API",
        "version": "0.1.0",
        "description": "WhatsApp health assistant",
    }


@app.get("/health")
async def health() -> dict[str, str]:
    """Global health check."""
    return {"status": "ok"}


@app.post("/webhook")
async def twilio_webhook_short(
    db: Annotated[AsyncSession, Depends(get_db)],
    store: Annotated[SessionStore, Depends(get_store)],
    From: Annotated[str, Form()],
    Body: Annotated[str, Form()] = "",
    ProfileName: Annotated[str | None, Form()] = None,
    MessageSid: Annotated[str | None, Form()] = None,
    To: Annotated[str | None, Form()] = None,
    NumMedia: Annotated[str | None, Form()] = None,
) -> PlainTextResponse:
    """Short webhook endpoint for Twilio WhatsApp."""
    return await receive_twilio_webhook(
        db=db,
        store=store,
        From=From,
        Body=Body,
        ProfileName=ProfileName,
        MessageSid=MessageSid,
        To=To,
        NumMedia=NumMedia,
    )
