"""
Triage Application DTOs
========================

Pydantic models for request/response validation.
"""

from typing import List, Optional

from pydantic import Field

from src.config import TicketCategory, TicketPriority
from src.shared.api.schemas import ApiModel


class AnalyzeRequest(ApiModel):
    """Request model for a triage preview."""
    description: Optional[str] = Field(None, max_length=2000, description="Issue description")
    image_urls: List[str] = Field(default_factory=list, max_length=10, description="Photo URLs")


class AnalysisResponse(ApiModel):
    """Response model for a triage decision."""
    category: TicketCategory
    priority: TicketPriority
    confidence: float = Field(..., ge=0.0, le=1.0)
    reasoning: str
    source: str
    model_used: Optional[str] = None
    images_analyzed: int = 0
