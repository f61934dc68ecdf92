"""
Triage Domain Layer
===================

Domain layer for the maintenance triage module.

Contains:
- Entities: MaintenanceAnalysis, KeywordAnalysis, ImagePart
- Rules: keyword tables, KeywordClassifier, output normalizers
- VisionPromptBuilder

This layer is framework-agnostic and contains pure business logic.
"""

from src.triage.domain.entities import (
    AnalysisSource,
    KeywordAnalysis,
    ImagePart,
    MaintenanceAnalysis,
    VisionPromptBuilder,
)
from src.triage.domain.rules import (
    CATEGORY_KEYWORDS,
    EMERGENCY_KEYWORDS,
    HIGH_PRIORITY_KEYWORDS,
    KeywordClassifier,
    normalize_category,
    normalize_priority,
    parse_json_loose,
)

__all__ = [
    "AnalysisSource",
    "KeywordAnalysis",
    "ImagePart",
    "MaintenanceAnalysis",
    "VisionPromptBuilder",
    "CATEGORY_KEYWORDS",
    "EMERGENCY_KEYWORDS",
    "HIGH_PRIORITY_KEYWORDS",
    "KeywordClassifier",
    "normalize_category",
    "normalize_priority",
    "parse_json_loose",
]
