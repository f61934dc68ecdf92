"""
Intake Controllers (API Routes)
================================

FastAPI routes for the Twilio inbound webhook and the authenticated
media proxy.

Controllers are thin - they delegate to application services.
"""

from typing import Any, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Query, Request, Response
from fastapi.responses import JSONResponse, PlainTextResponse
from sqlalchemy.ext.asyncio import AsyncSession

from src.config import STAFF_ROLES
from src.core import ApplicationException, ConfigurationException, ValidationException
from src.infrastructure.database import get_session
from src.intake.application import InboundMessageService, SmsNotifier
from src.intake.domain import InboundMessage, parse_form_body
from src.infrastructure.telephony import twilio_media_url_pattern
from src.maintenance.infrastructure import (
    SQLAlchemyConversationRepository,
    SQLAlchemyPropertyRepository,
    SQLAlchemyTenantRepository,
    SQLAlchemyTicketRepository,
)
from src.organisations.infrastructure import SQLAlchemyOrgNumberRepository
from src.shared.api.auth import OrgContext, require_session_org_role
from src.shared.api.dependencies import (
    get_media_store,
    get_rate_limiter,
    get_signature_verifier,
    get_telephony,
    get_triage_service,
)
from src.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)
router = APIRouter(prefix="/api", tags=["SMS Intake"])

MEDIA_CACHE_CONTROL = "private, max-age=86400"


# ========== Dependencies ==========

def get_sms_notifier(
    telephony: Optional[Any] = Depends(get_telephony),
    session: AsyncSession = Depends(get_session)
) -> SmsNotifier:
    """Tenant notifier sending from the organisation's own numbers."""
    return SmsNotifier(telephony, SQLAlchemyOrgNumberRepository(session))


def get_inbound_service(
    session: AsyncSession = Depends(get_session),
    telephony: Optional[Any] = Depends(get_telephony),
    triage=Depends(get_triage_service),
    media_store=Depends(get_media_store),
    rate_limiter=Depends(get_rate_limiter),
    notifier: SmsNotifier = Depends(get_sms_notifier)
) -> InboundMessageService:
    is_media_url = telephony.is_media_url if telephony else twilio_media_url_pattern().match
    return InboundMessageService(
        properties=SQLAlchemyPropertyRepository(session),
        numbers=SQLAlchemyOrgNumberRepository(session),
        tenants=SQLAlchemyTenantRepository(session),
        conversations=SQLAlchemyConversationRepository(session),
        tickets=SQLAlchemyTicketRepository(session),
        triage=triage,
        media_store=media_store,
        rate_limiter=rate_limiter,
        notifier=notifier,
        is_media_url=lambda url: bool(is_media_url(url))
    )


# ========== Route Handlers ==========

@router.get(
    "/webhooks/twilio",
    response_class=PlainTextResponse,
    summary="Webhook reachability check"
)
async def twilio_webhook_ping():
    return "ok"


@router.post(
    "/webhooks/twilio",
    summary="Receive an inbound SMS/MMS",
    description="""
    Twilio messaging webhook. Verifies the request signature, routes the
    message by destination number and opens a ticket.

    Redeliveries of an already processed MessageSid return
    `{"ok": true, "duplicate": true}` without side effects.
    """
)
async def twilio_webhook(
    request: Request,
    background_tasks: BackgroundTasks,
    session: AsyncSession = Depends(get_session),
    verifier=Depends(get_signature_verifier),
    service: InboundMessageService = Depends(get_inbound_service),
    notifier: SmsNotifier = Depends(get_sms_notifier)
):
    raw_body = await request.body()
    params = parse_form_body(raw_body)
    verifier.verify(verifier.expected_url(request), request.headers, raw_body, params)

    try:
        result = await service.process(InboundMessage.from_params(params))
    except ApplicationException:
        raise
    except Exception:
        logger.exception("Inbound message processing failed")
        await session.rollback()
        return JSONResponse(status_code=500, content={"error": "Internal server error"})

    if result.duplicate:
        return {"ok": True, "duplicate": True}

    if result.confirmation is not None:
        background_tasks.add_task(notifier.dispatch, result.confirmation)

    return {"success": True, "ticketId": result.ticket_id}


@router.get(
    "/twilio/media",
    summary="Proxy MMS media for staff",
    responses={200: {"content": {"image/*": {}}}}
)
async def twilio_media(
    u: str = Query(..., description="Twilio media URL"),
    ct: Optional[str] = Query(None, description="Content type to serve"),
    ctx: OrgContext = Depends(require_session_org_role(*STAFF_ROLES)),
    telephony: Optional[Any] = Depends(get_telephony)
):
    if telephony is None:
        raise ConfigurationException("Twilio is not configured")
    if not telephony.is_media_url(u):
        raise ValidationException("Invalid media URL")

    media = await telephony.fetch_media(u)

    return Response(
        content=media.data,
        media_type=ct or media.content_type,
        headers={
            "Cache-Control": MEDIA_CACHE_CONTROL,
            "X-Content-Type-Options": "nosniff",
        }
    )


intake_router = router
