"""Inbound Account Aggregator webhooks.

Both endpoints read the raw request bytes before anything else and hand
them to the signature verifier; the body is only acted on once the
detached JWS in ``x-jws-signature`` checks out.
"""

import json
import logging
from functools import lru_cache

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from database import get_db
from services.signature_verifier import WebhookSignatureVerifier
from services.webhook_service import MissingIdentifierError, WebhookService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["webhooks"])

SIGNATURE_HEADER = "x-jws-signature"

_UNPARSEABLE = object()


@lru_cache
def get_signature_verifier() -> WebhookSignatureVerifier:
    """Dependency for the process-wide verifier (overridable in tests)."""
    return WebhookSignatureVerifier()


def get_webhook_service() -> WebhookService:
    """Dependency for injecting the webhook service (overridable in tests)."""
    return WebhookService()


async def get_raw_body(request: Request) -> bytes:
    """The request body exactly as received, before any JSON parsing."""
    return await request.body()


def _verified_body(request: Request, raw_body: bytes, verifier: WebhookSignatureVerifier) -> dict:
    """Authenticate the request and return its JSON object body.

    Raises:
        HTTPException: 401 if the signature does not verify, 400 if the
            authenticated body is not a JSON object.
    """
    try:
        parsed = json.loads(raw_body) if raw_body else _UNPARSEABLE
    except ValueError:
        parsed = _UNPARSEABLE

    verified = verifier.verify(request.headers.get(SIGNATURE_HEADER), raw_body, parsed)
    if verified is None:
        raise HTTPException(status_code=401, detail="Invalid or missing webhook signature")
    if verified is _UNPARSEABLE or not isinstance(verified, dict):
        logger.warning("Webhook %s body is not a JSON object", request.url.path)
        raise HTTPException(status_code=400, detail="Request body must be a JSON object")
    return verified


@router.post("/consent-notification")
def consent_notification(
    request: Request,
    raw_body: bytes = Depends(get_raw_body),
    db: Session = Depends(get_db),
    verifier: WebhookSignatureVerifier = Depends(get_signature_verifier),
    service: WebhookService = Depends(get_webhook_service),
):
    """Consent status change from the AA.

    An unknown consent is acknowledged with 404 and ``success: false`` so the
    provider can tell it apart from a failure worth retrying.
    """
    payload = _verified_body(request, raw_body, verifier)
    try:
        result = service.handle_consent_notification(db, payload)
    except MissingIdentifierError as e:
        raise HTTPException(status_code=400, detail=str(e))

    if not result.found:
        return JSONResponse(
            status_code=404,
            content={
                "success": False,
                "error": "CONSENT_NOT_FOUND",
                "message": f"No consent found for {result.identifier}",
            },
        )
    return {
        "success": True,
        "consent_handle": result.consent.consent_handle,
        "status": result.consent.status,
        "event_type": result.event_type,
        "changed": result.changed,
    }


@router.post("/fi-data-notification")
def fi_data_notification(
    request: Request,
    raw_body: bytes = Depends(get_raw_body),
    db: Session = Depends(get_db),
    verifier: WebhookSignatureVerifier = Depends(get_signature_verifier),
    service: WebhookService = Depends(get_webhook_service),
):
    """Data-ready notification: record the batch and ingest it when the data is inline."""
    payload = _verified_body(request, raw_body, verifier)
    try:
        result = service.handle_fi_data_notification(db, payload)
    except MissingIdentifierError as e:
        raise HTTPException(status_code=400, detail=str(e))

    return {
        "success": True,
        "batch_id": result.batch.id,
        "session_id": result.batch.session_id,
        "status": result.batch.status,
        "delivery_count": result.batch.delivery_count,
        "consent_found": result.consent is not None,
        "ingestion": result.ingestion.to_dict() if result.ingestion else None,
    }
