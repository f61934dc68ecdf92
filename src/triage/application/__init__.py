"""
Triage Application Layer
=========================

Application layer for the maintenance triage module.

Contains:
- Services: TriageService classification cascade
- DTOs: Data transfer objects for API serialization
- Ports: ILLMClient, IImageFetcher
"""

from src.triage.application.dto import AnalyzeRequest, AnalysisResponse
from src.triage.application.services import (
    TriageService,
    ILLMClient,
    IImageFetcher,
)

__all__ = [
    "AnalyzeRequest",
    "AnalysisResponse",
    "TriageService",
    "ILLMClient",
    "IImageFetcher",
]
