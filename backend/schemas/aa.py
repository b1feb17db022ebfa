"""Pydantic schemas for the Account Aggregator API."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator


class ConsentCreate(BaseModel):
    """Request body for starting a consent."""

    mobile: str
    purpose: str = "Wealth management service"
    fi_types: list[str] = Field(min_length=1)
    data_range_months: int = Field(default=12, ge=1, le=120)
    validity_months: int = Field(default=12, ge=1, le=120)
    frequency_unit: str = "MONTH"
    frequency_value: int = Field(default=1, ge=1)


class ConsentResponse(BaseModel):
    """Schema for Consent API response."""

    id: str
    consent_handle: str
    consent_id: Optional[str] = None
    provider_name: str
    status: str
    fi_types: list[str]
    purpose: Optional[str] = None
    consent_start: Optional[datetime] = None
    consent_expiry: Optional[datetime] = None
    data_range_from: Optional[datetime] = None
    data_range_to: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class ConsentCreateResponse(ConsentResponse):
    """A new consent plus the URL where the user approves it."""

    redirect_url: Optional[str] = None


class ConsentEventResponse(BaseModel):
    id: str
    consent_handle: str
    event_type: str
    event_source: str
    previous_status: Optional[str] = None
    new_status: Optional[str] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class ConsentDetailResponse(ConsentResponse):
    """A consent with its audit trail, oldest event first."""

    events: list[ConsentEventResponse] = []


class FIRequestCreate(BaseModel):
    """Optional override of the consent's data range for one FI request."""

    data_range_from: Optional[datetime] = None
    data_range_to: Optional[datetime] = None

    @model_validator(mode="after")
    def check_range(self):
        if self.data_range_from and self.data_range_to and self.data_range_from >= self.data_range_to:
            raise ValueError("data_range_from must be before data_range_to")
        return self


class BatchResponse(BaseModel):
    """Schema for FIBatch API response."""

    id: str
    session_id: str
    consent_handle: Optional[str] = None
    status: str
    fi_type: Optional[str] = None
    delivery_count: int
    records_fetched: int
    records_processed: int
    error_details: Optional[list[str]] = None
    fetch_started_at: Optional[datetime] = None
    fetch_completed_at: Optional[datetime] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class IngestionResultResponse(BaseModel):
    session_id: str
    batch_id: Optional[str] = None
    success: bool
    accounts_attempted: int
    accounts_processed: int
    holdings_attempted: int
    holdings_processed: int
    holdings_inserted: int
    holdings_duplicate: int
    transactions_attempted: int
    transactions_processed: int
    transactions_inserted: int
    transactions_duplicate: int
    errors: list[str] = []


class BatchIngestResponse(BaseModel):
    batch: BatchResponse
    result: IngestionResultResponse
