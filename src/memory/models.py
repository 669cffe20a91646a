"""Data models for the submission history store"""

from typing import Dict, Any, Optional, List
from datetime import datetime
from uuid import uuid4
from pydantic import BaseModel, Field


class SubmissionRecord(BaseModel):
    """One quote request as persisted (PII already masked)"""
    id: str = Field(default_factory=lambda: uuid4().hex)
    correlation_id: str = "N/A"
    success: bool
    message: str = ""
    current_stage: str = ""
    stage: Optional[str] = None
    step: Optional[str] = None
    error_kind: Optional[str] = None
    errors: List[str] = Field(default_factory=list)
    quotes_found: int = 0
    quotes: List[Dict[str, Any]] = Field(default_factory=list)
    vehicle_count: int = 0
    driver_count: int = 0
    request: Dict[str, Any] = Field(default_factory=dict)
    metrics: Dict[str, Any] = Field(default_factory=dict)
    processing_time_ms: int = 0
    submitted_at: str = Field(default_factory=lambda: datetime.now().isoformat())
