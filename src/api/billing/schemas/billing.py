from datetime import date, datetime
from enum import Enum
from typing import List, Optional
from pydantic import BaseModel, Field


class ProcessingStatus(str, Enum):
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"
    SKIPPED = "SKIPPED"


class ContractProcessingResult(BaseModel):
    contract_id: int
    status: ProcessingStatus
    message: Optional[str] = None
    invoice_ids: List[int] = []


class ProcessContractsRequest(BaseModel):
    today: Optional[date] = Field(default=None, description="Business date to process; defaults to today")


class ProcessContractsResponse(BaseModel):
    results: List[ContractProcessingResult]
    total_processed: int
    successful: int
    failed: int
    skipped: int


class RecalculateRequest(BaseModel):
    moment: datetime = Field(..., description="Moment whose invoice should be recomputed")
