"""
Triage Controllers (API Routes)
================================

FastAPI routes for previewing how a maintenance request would be triaged.

Controllers delegate to application services.
"""

import time

from fastapi import APIRouter, Depends

from src.shared.api.auth import OrgContext, require_session_org_role
from src.shared.api.dependencies import get_triage_service
from src.shared.infrastructure.logging import get_logger
from src.triage.application import AnalysisResponse, AnalyzeRequest, TriageService

logger = get_logger(__name__)
router = APIRouter(prefix="/api/triage", tags=["Triage"])


# ========== Example payloads for Swagger ==========

ANALYZE_REQUEST_EXAMPLE = {
    "description": "Water is leaking from under the kitchen sink",
    "imageUrls": []
}

ANALYZE_RESPONSE_EXAMPLE = {
    "category": "PLUMBING",
    "priority": "HIGH",
    "confidence": 0.8,
    "reasoning": "Water is leaking from under the kitchen sink",
    "source": "keyword",
    "modelUsed": None,
    "imagesAnalyzed": 0
}


# ========== Route Handlers ==========

@router.post(
    "/analyze",
    response_model=AnalysisResponse,
    summary="Preview ticket triage",
    description="""
    Classify a description and optional photos the same way inbound SMS
    are classified.

    **Cascade**:
    1. Keyword heuristic over the description (always)
    2. Vision model over up to 4 photos, when configured

    Vision failures fall back to the keyword result.

    **Example Request**:
    ```json
    {
        "description": "Water is leaking from under the kitchen sink",
        "imageUrls": []
    }
    ```
    """,
    responses={
        200: {
            "description": "Triage decision",
            "content": {"application/json": {"example": ANALYZE_RESPONSE_EXAMPLE}}
        }
    }
)
async def analyze(
    request: AnalyzeRequest,
    ctx: OrgContext = Depends(require_session_org_role()),
    service: TriageService = Depends(get_triage_service)
):
    start_time = time.perf_counter()

    analysis = await service.analyze(request.description, request.image_urls)

    logger.info(
        "Triage preview",
        extra={
            "org_id": str(ctx.org_id),
            "category": analysis.category.value,
            "priority": analysis.priority.value,
            "source": analysis.source,
            "processing_time_ms": int((time.perf_counter() - start_time) * 1000)
        }
    )

    return AnalysisResponse(
        category=analysis.category,
        priority=analysis.priority,
        confidence=analysis.confidence,
        reasoning=analysis.reasoning or "",
        source=analysis.source,
        model_used=analysis.model_used,
        images_analyzed=analysis.images_analyzed
    )


triage_router = router
