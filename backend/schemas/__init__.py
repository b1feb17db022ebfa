"""Pydantic request/response schemas."""

from .aa import (
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

__all__ = [
    "BatchIngestResponse",
    "BatchResponse",
    "ConsentCreate",
    "ConsentCreateResponse",
    "ConsentDetailResponse",
    "ConsentEventResponse",
    "ConsentResponse",
    "FIRequestCreate",
    "IngestionResultResponse",
]
