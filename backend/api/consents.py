"""Account Aggregator consent and batch endpoints.

Consents are created here and then approved by the user at the AA's own
portal; status changes normally arrive by webhook (see ``api/webhooks.py``),
with ``/refresh`` as the fallback when a notification is missed.
"""

import logging
from datetime import datetime, timedelta, timezone

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from api.helpers import error_detail, get_current_user_id
from database import get_db
from integrations.aa_protocol import ConsentRequest
from integrations.exceptions import (
    InvalidConsentRequestError,
    InvalidCustomerError,
    ProviderAPIError,
    ProviderAuthError,
    ProviderError,
    ProviderProtocolError,
    ProviderUnavailableError,
)
from models import FIBatch
from schemas import (
    BatchIngestResponse,
    BatchResponse,
    ConsentCreate,
    ConsentCreateResponse,
    ConsentDetailResponse,
    ConsentEventResponse,
    ConsentResponse,
    FIRequestCreate,
    IngestionResultResponse,
)
from services.consent_service import ConsentNotFoundError, ConsentService
from services.fi_store import FIStore
from services.ingestion_service import BatchNotFoundError, IngestionService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/aa", tags=["account-aggregator"])

# Days per month when turning a month count into a data range
_DAYS_PER_MONTH = 30


def get_consent_service() -> ConsentService:
    """Dependency for injecting the consent service (overridable in tests)."""
    return ConsentService()


def get_ingestion_service() -> IngestionService:
    """Dependency for injecting the ingestion service (overridable in tests)."""
    return IngestionService()


def _provider_http_error(e: ProviderError) -> HTTPException:
    """Map a typed provider error to a status code and stable error code.

    Provider-supplied text is logged, never returned.
    """
    if isinstance(e, InvalidCustomerError):
        return HTTPException(status_code=400, detail=error_detail("INVALID_CUSTOMER_ID", str(e)))
    if isinstance(e, ProviderAuthError):
        logger.error("AA provider authentication failed (%s): %s", e.provider_name, e)
        return HTTPException(
            status_code=503,
            detail=error_detail("AA_AUTH_FAILED", "Account Aggregator authentication failed."),
        )
    if isinstance(e, ProviderUnavailableError) or (isinstance(e, ProviderAPIError) and e.retriable):
        logger.warning("AA provider unavailable (%s): %s", e.provider_name, e)
        return HTTPException(
            status_code=503,
            detail=error_detail(
                "AA_SERVICE_UNAVAILABLE", "Account Aggregator is unavailable. Please try again."
            ),
        )
    if isinstance(e, ProviderProtocolError):
        logger.error("AA provider returned an unusable response (%s): %s", e.provider_name, e)
        return HTTPException(
            status_code=502,
            detail=error_detail("AA_PROTOCOL_ERROR", "Account Aggregator returned an invalid response."),
        )
    logger.warning("AA provider error (%s): %s", e.provider_name, e)
    return HTTPException(
        status_code=502,
        detail=error_detail("AA_PROVIDER_ERROR", "The Account Aggregator rejected the request."),
    )


def _not_found(key: str) -> HTTPException:
    return HTTPException(status_code=404, detail=error_detail("CONSENT_NOT_FOUND", f"Consent not found: {key}"))


def _get_owned_batch(db: Session, user_id: str, session_id: str) -> FIBatch:
    """Return the caller's batch, resolving ownership through its consent if needed."""
    batch = FIStore.get_batch(db, session_id)
    owner = batch.user_id if batch is not None else None
    if batch is not None and owner is None:
        consent = ConsentService.find(db, batch.consent_handle, (batch.raw_payload or {}).get("consentId"))
        owner = consent.user_id if consent is not None else None
    if batch is None or owner != user_id:
        raise HTTPException(
            status_code=404, detail=error_detail("BATCH_NOT_FOUND", f"Batch not found: {session_id}")
        )
    return batch


@router.post("/consents", response_model=ConsentCreateResponse)
def create_consent(
    body: ConsentCreate,
    db: Session = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
    service: ConsentService = Depends(get_consent_service),
):
    """Create a consent at the AA and return the URL the user must visit to approve it.

    Raises:
        HTTPException:
            - 400 INVALID_REQUEST / INVALID_CUSTOMER_ID
            - 502 AA_PROTOCOL_ERROR / AA_PROVIDER_ERROR
            - 503 AA_AUTH_FAILED / AA_SERVICE_UNAVAILABLE
    """
    now = datetime.now(timezone.utc)
    request = ConsentRequest(
        customer_id=body.mobile,
        purpose=body.purpose,
        fi_types=[t.strip().upper() for t in body.fi_types if t.strip()],
        data_range_from=now - timedelta(days=_DAYS_PER_MONTH * body.data_range_months),
        data_range_to=now,
        frequency_unit=body.frequency_unit.upper(),
        frequency_value=body.frequency_value,
        data_life_unit="MONTH",
        data_life_value=body.validity_months,
    )

    try:
        consent, result = service.initiate(db, user_id, request)
    except InvalidConsentRequestError as e:
        raise HTTPException(status_code=400, detail=error_detail("INVALID_REQUEST", str(e)))
    except ProviderError as e:
        raise _provider_http_error(e)
    except Exception:
        # Safety catch for truly unexpected errors, never expose str(e)
        logger.error("Unexpected error creating consent", exc_info=True)
        raise HTTPException(
            status_code=500,
            detail=error_detail("INTERNAL_ERROR", "An unexpected error occurred creating the consent."),
        )

    db.commit()
    db.refresh(consent)
    response = ConsentCreateResponse.model_validate(consent)
    response.redirect_url = result.approval_url
    return response


@router.get("/consents", response_model=list[ConsentResponse])
def list_consents(
    db: Session = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
):
    """List the caller's consents, newest first."""
    return ConsentService.list_for_user(db, user_id)


@router.get("/consents/{key}", response_model=ConsentDetailResponse)
def get_consent(
    key: str,
    db: Session = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
):
    """Get one consent (by id, provider consent id or handle) with its events."""
    try:
        consent = ConsentService.get_owned(db, user_id, key)
    except ConsentNotFoundError:
        raise _not_found(key)

    events = ConsentService.list_events(db, consent.consent_handle)
    return ConsentDetailResponse(
        **ConsentResponse.model_validate(consent).model_dump(),
        events=[ConsentEventResponse.model_validate(e) for e in events],
    )


@router.post("/consents/{key}/refresh", response_model=ConsentResponse)
def refresh_consent(
    key: str,
    db: Session = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
    service: ConsentService = Depends(get_consent_service),
):
    """Poll the AA for the consent's current status."""
    try:
        consent = service.refresh_status(db, user_id, key)
    except ConsentNotFoundError:
        raise _not_found(key)
    except ProviderError as e:
        raise _provider_http_error(e)

    db.commit()
    db.refresh(consent)
    return consent


@router.delete("/consents/{key}", response_model=ConsentResponse)
def revoke_consent(
    key: str,
    db: Session = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
    service: ConsentService = Depends(get_consent_service),
):
    """Revoke a consent. Revoking an already-revoked consent succeeds."""
    try:
        consent = service.revoke(db, user_id, key)
    except ConsentNotFoundError:
        raise _not_found(key)
    except ProviderError as e:
        raise _provider_http_error(e)

    db.commit()
    db.refresh(consent)
    return consent


@router.post("/consents/{key}/fi-requests", response_model=BatchResponse)
def request_fi_data(
    key: str,
    body: FIRequestCreate | None = None,
    db: Session = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
    service: ConsentService = Depends(get_consent_service),
):
    """Start an FI data session; the data-ready webhook completes it."""
    body = body or FIRequestCreate()
    try:
        batch = service.request_fi_data(db, user_id, key, body.data_range_from, body.data_range_to)
    except ConsentNotFoundError:
        raise _not_found(key)
    except InvalidConsentRequestError as e:
        raise HTTPException(status_code=400, detail=error_detail("INVALID_REQUEST", str(e)))
    except ProviderError as e:
        raise _provider_http_error(e)

    db.commit()
    db.refresh(batch)
    return batch


@router.get("/batches/{session_id}", response_model=BatchResponse)
def get_batch(
    session_id: str,
    db: Session = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
):
    """Get a batch's ingestion status."""
    return _get_owned_batch(db, user_id, session_id)


@router.post("/batches/{session_id}/ingest", response_model=BatchIngestResponse)
def ingest_batch(
    session_id: str,
    db: Session = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
    service: IngestionService = Depends(get_ingestion_service),
):
    """(Re)ingest a stored batch. Records already stored are counted as duplicates."""
    _get_owned_batch(db, user_id, session_id)
    try:
        result = service.ingest_batch(db, session_id)
    except BatchNotFoundError:
        raise HTTPException(
            status_code=404, detail=error_detail("BATCH_NOT_FOUND", f"Batch not found: {session_id}")
        )
    except ProviderError as e:
        raise _provider_http_error(e)

    db.commit()
    batch = FIStore.get_batch(db, session_id)
    return BatchIngestResponse(
        batch=BatchResponse.model_validate(batch),
        result=IngestionResultResponse(**result.to_dict()),
    )
