"""
Triage Application Services
============================

Classification cascade for maintenance requests: a keyword heuristic over
the tenant's text, upgraded by a vision model when photos are attached.

Orchestrates domain rules and external adapters.
"""

from abc import ABC, abstractmethod
from typing import List, Optional, Sequence

from src.config import settings
from src.triage.domain import (
    AnalysisSource,
    ImagePart,
    KeywordAnalysis,
    KeywordClassifier,
    MaintenanceAnalysis,
    VisionPromptBuilder,
    normalize_category,
    normalize_priority,
    parse_json_loose,
)
from src.shared.infrastructure.logging import get_logger, log_latency

logger = get_logger(__name__)

VISION_BASE_CONFIDENCE = 0.85
VISION_AGREEMENT_BONUS = 0.05
VISION_MAX_CONFIDENCE = 0.95


# ========== Port Interfaces ==========

class ILLMClient(ABC):
    """Interface for LLM operations."""

    @property
    @abstractmethod
    def model(self) -> str:
        """Model identifier used for completions."""

    @abstractmethod
    async def chat_completion(
        self,
        messages: List[dict],
        temperature: float = 0.0,
        max_tokens: int = 128,
        json_mode: bool = False
    ):
        """Generate chat completion."""


class IImageFetcher(ABC):
    """Interface for loading photos referenced by a ticket."""

    @abstractmethod
    async def fetch(self, url: str) -> Optional[ImagePart]:
        """Return the image, or None when it is missing or not an image."""


# ========== Application Services ==========

class TriageService:
    """
    Service for ticket triage.

    The keyword result is always computed first and is the fallback for any
    failure on the vision path.
    """

    def __init__(
        self,
        classifier: Optional[KeywordClassifier] = None,
        llm_client: Optional[ILLMClient] = None,
        image_fetcher: Optional[IImageFetcher] = None,
        max_images: Optional[int] = None
    ):
        self._classifier = classifier or KeywordClassifier()
        self._llm = llm_client
        self._fetcher = image_fetcher
        self._max_images = max_images or settings.triage_max_images

    @property
    def vision_enabled(self) -> bool:
        return self._llm is not None and self._fetcher is not None

    def classify_text(self, description: Optional[str]) -> KeywordAnalysis:
        return self._classifier.classify(description)

    async def analyze(
        self,
        description: Optional[str],
        image_urls: Sequence[str] = ()
    ) -> MaintenanceAnalysis:
        """
        Classify a maintenance request.

        Args:
            description: Tenant's message text (may be empty for photo-only MMS)
            image_urls: Photo URLs; only the first max_images are considered

        Returns:
            MaintenanceAnalysis from the vision model when it produced an
            answer, otherwise from the keyword heuristic
        """
        text = description or ""
        keyword = self._classifier.classify(text)

        if image_urls and self.vision_enabled:
            try:
                analysis = await self._analyze_images(text, list(image_urls), keyword)
                if analysis is not None:
                    return analysis
            except Exception as e:
                logger.warning(
                    "Vision triage failed, using keyword result",
                    extra={"error": str(e), "error_type": type(e).__name__}
                )

        return MaintenanceAnalysis(
            category=keyword.category,
            priority=keyword.priority,
            confidence=keyword.confidence,
            reasoning=text,
            source=AnalysisSource.KEYWORD,
        )

    async def _analyze_images(
        self,
        description: str,
        image_urls: List[str],
        keyword: KeywordAnalysis
    ) -> Optional[MaintenanceAnalysis]:
        images: List[ImagePart] = []
        for url in image_urls[: self._max_images]:
            try:
                image = await self._fetcher.fetch(url)
            except Exception as e:
                logger.info("Skipping unreadable image", extra={"error": str(e)})
                continue
            if image is not None:
                images.append(image)

        if not images:
            return None

        with log_latency(logger, "vision_triage", images=len(images)):
            response = await self._llm.chat_completion(
                messages=VisionPromptBuilder.build_messages(images),
                temperature=0.0,
                max_tokens=128,
                json_mode=True
            )

        parsed = parse_json_loose(response.content) or {}

        category = normalize_category(parsed.get("category")) or keyword.category
        priority = normalize_priority(parsed.get("priority")) or keyword.priority

        reason = parsed.get("short_reason")
        if not isinstance(reason, str) or not reason.strip():
            reason = description
        else:
            reason = reason.strip()

        confidence = VISION_BASE_CONFIDENCE
        if category == keyword.category:
            confidence += VISION_AGREEMENT_BONUS
        if priority == keyword.priority:
            confidence += VISION_AGREEMENT_BONUS

        return MaintenanceAnalysis(
            category=category,
            priority=priority,
            confidence=round(min(confidence, VISION_MAX_CONFIDENCE), 2),
            reasoning=reason,
            source=AnalysisSource.VISION,
            model_used=getattr(response, "model", None),
            images_analyzed=len(images),
        )
