"""
Triage Infrastructure Layer
============================

Infrastructure implementations for the triage module.

Contains:
- External: LLM and image host adapters
"""

from src.triage.infrastructure.external import LLMClientAdapter, HttpImageFetcher

__all__ = [
    "LLMClientAdapter",
    "HttpImageFetcher",
]
