"""
Triage Domain Entities
======================

Domain entities for the maintenance triage module.

Contains pure Python business objects describing how an inbound
description and photos were classified.
"""

import base64
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import List, Optional

from src.config import TicketCategory, TicketPriority


class AnalysisSource:
    """Which stage of the cascade produced an analysis."""
    KEYWORD = "keyword"
    VISION = "vision"
    DEFAULT = "default"


@dataclass(frozen=True)
class KeywordAnalysis:
    """Result of the text keyword heuristic."""
    category: TicketCategory
    priority: TicketPriority
    confidence: float
    hits: int = 0


@dataclass(frozen=True)
class ImagePart:
    """An image fetched for the vision model."""
    data: bytes
    mime_type: str

    def to_data_url(self) -> str:
        encoded = base64.b64encode(self.data).decode("ascii")
        return f"data:{self.mime_type};base64,{encoded}"


@dataclass
class MaintenanceAnalysis:
    """
    Final triage decision for a maintenance request.

    reasoning carries the model's short reason when vision ran, otherwise
    the tenant's own description.
    """
    category: TicketCategory
    priority: TicketPriority
    confidence: float  # 0.0 to 1.0
    reasoning: str
    source: str = AnalysisSource.KEYWORD
    model_used: Optional[str] = None
    images_analyzed: int = 0
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def __post_init__(self):
        if not 0.0 <= self.confidence <= 1.0:
            raise ValueError("Confidence must be between 0 and 1")

    @classmethod
    def default(cls, description: str = "") -> "MaintenanceAnalysis":
        """Analysis used when triage could not run at all."""
        return cls(
            category=TicketCategory.UNKNOWN,
            priority=TicketPriority.MEDIUM,
            confidence=0.0,
            reasoning=description,
            source=AnalysisSource.DEFAULT,
        )


class VisionPromptBuilder:
    """
    Builds the vision triage prompt.

    All prompt wording lives here.
    """

    @classmethod
    def instruction(cls) -> str:
        categories = ", ".join(c.value for c in TicketCategory)
        return "\n".join([
            "You are a maintenance triage assistant.",
            "Look at the attached image(s) and decide:",
            f"- category: one of {categories}",
            "- priority: one of EMERGENCY, HIGH, MEDIUM, LOW",
            "- short_reason: 3-12 words explaining why.",
            "",
            "Return ONLY minified JSON like:",
            '{"category":"HVAC","priority":"HIGH","short_reason":"Condensate line leaking"}',
        ])

    @classmethod
    def build_messages(cls, images: List[ImagePart]) -> List[dict]:
        content: List[dict] = [{"type": "text", "text": cls.instruction()}]
        for image in images:
            content.append({
                "type": "image_url",
                "image_url": {"url": image.to_data_url()},
            })
        return [{"role": "user", "content": content}]
