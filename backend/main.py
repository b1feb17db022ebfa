"""FastAPI application entry point."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from api import consents, webhooks
from api.webhooks import get_signature_verifier
from config import settings
from integrations.provider_registry import get_aa_client
from logging_config import setup_logging

setup_logging()
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Resolve the AA provider and webhook verifier before serving.

    A real provider without credentials, or the mock provider or disabled
    signature checks in production, stops startup instead of failing on the
    first request.
    """
    client = get_aa_client()
    verifier = get_signature_verifier()
    logger.info(
        "Startup: environment=%s provider=%s webhook verification=%s",
        settings.ENVIRONMENT,
        client.provider_name,
        "DISABLED" if verifier.bypassed else "enabled",
    )
    yield


app = FastAPI(
    title="Account Aggregator Pipeline",
    description="AA consent management, webhook verification and FI data ingestion",
    version="0.1.0",
    lifespan=lifespan,
)

# Include API routers
app.include_router(consents.router)
app.include_router(webhooks.router)


@app.get("/health")
def health_check():
    """Health check endpoint."""
    return {"status": "ok"}
