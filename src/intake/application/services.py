"""
Intake Application Services
============================

Turns an inbound tenant SMS/MMS into a maintenance ticket.

Pipeline (after the webhook signature has been verified):
1. Normalize sender and destination numbers
2. Drop redeliveries of a message that already produced a ticket
3. Rate limit per sender
4. Route by destination number to an organisation and property
5. Find or create the tenant, then record the conversation
6. Collect media, triage, create the ticket
7. Hand back the confirmation SMS, sent from the number the tenant texted
"""

from typing import Any, Callable, List, Optional, Tuple
from uuid import UUID

from src.config import ConversationState, TicketCategory, TicketPriority, TicketStatus
from src.core import (
    ApplicationException,
    ConflictException,
    RateLimitExceededException,
    UnroutableDestinationException,
    ValidationException,
)
from src.intake.domain import InboundMessage, IntakeResult
from src.maintenance.application import (
    IConversationRepository,
    IPropertyRepository,
    ITenantRepository,
    ITicketRepository,
)
from src.maintenance.domain import is_unassigned_inbox
from src.shared.domain import alt_forms_for_lookup, mask_phone, messages, normalize_us_phone
from src.shared.infrastructure.logging import get_logger, log_latency
from src.shared.infrastructure.media import IMediaStore
from src.shared.infrastructure.ratelimit import IRateLimiter
from src.triage.application import TriageService
from src.triage.domain import MaintenanceAnalysis

logger = get_logger(__name__)


class InboundMessageService:
    """
    Processes one inbound message.

    Every collaborator is injected so the webhook controller only deals with
    transport concerns.
    """

    def __init__(
        self,
        properties: IPropertyRepository,
        numbers: Any,
        tenants: ITenantRepository,
        conversations: IConversationRepository,
        tickets: ITicketRepository,
        triage: TriageService,
        media_store: IMediaStore,
        rate_limiter: IRateLimiter,
        notifier: Any,
        is_media_url: Callable[[str], bool]
    ):
        self._properties = properties
        self._numbers = numbers
        self._tenants = tenants
        self._conversations = conversations
        self._tickets = tickets
        self._triage = triage
        self._media_store = media_store
        self._rate_limiter = rate_limiter
        self._notifier = notifier
        self._is_media_url = is_media_url

    async def process(self, message: InboundMessage) -> IntakeResult:
        """
        Raises:
            ValidationException: If From or To is missing
            RateLimitExceededException: If the sender is over the limit
            UnroutableDestinationException: If the destination number is unknown
        """
        if not message.from_number or not message.to_number:
            raise ValidationException("Missing To or From")

        from_e164 = normalize_us_phone(message.from_number) or message.from_number
        to_e164 = normalize_us_phone(message.to_number) or message.to_number

        if message.message_sid and await self._tickets.get_by_message_sid(message.message_sid):
            logger.info("Duplicate delivery ignored", extra={"message_sid": message.message_sid})
            return IntakeResult(duplicate=True)

        key = f"twilio:{from_e164}"
        verdict = await self._rate_limiter.limit(key)
        if not verdict.success:
            raise RateLimitExceededException(key, verdict.retry_after)

        org_id, routed_property = await self._route(to_e164)

        tenant, tenant_property, created = await self._resolve_tenant(
            org_id, routed_property, from_e164
        )
        in_inbox = is_unassigned_inbox(tenant_property)

        await self._conversations.upsert(
            org_id,
            from_e164,
            ConversationState.ASK_PROPERTY if in_inbox else ConversationState.IDLE,
            tenant.property_id,
            tenant.id
        )

        if created and in_inbox:
            await self._notifier.deliver(
                from_e164,
                messages.address_prompt(),
                org_id,
                routed_property.id if routed_property else None,
                from_=to_e164
            )

        image_urls, triage_urls = await self._collect_media(message)
        category, priority, confidence, source = await self._triage_message(message.body, triage_urls)

        try:
            ticket = await self._tickets.create(
                org_id=org_id,
                property_id=tenant.property_id,
                tenant_id=tenant.id,
                description=message.body,
                category=category,
                priority=priority,
                status=TicketStatus.OPEN.value,
                image_urls=image_urls,
                external_message_sid=message.message_sid,
                triage_confidence=confidence,
                triage_source=source
            )
        except ConflictException:
            # Concurrent redelivery won the insert
            logger.info("Duplicate delivery raced", extra={"message_sid": message.message_sid})
            return IntakeResult(duplicate=True)

        logger.info(
            "Ticket created from SMS",
            extra={
                "org_id": str(org_id),
                "ticket_id": str(ticket.id),
                "from": mask_phone(from_e164),
                "category": category,
                "priority": priority,
                "media_count": len(image_urls)
            }
        )

        confirmation = None
        try:
            confirmation = await self._notifier.resolve(
                from_e164,
                messages.confirmation(ticket.id, priority),
                org_id,
                tenant.property_id,
                from_=to_e164
            )
        except ApplicationException as e:
            logger.error(
                "Confirmation SMS not sent",
                extra={"ticket_id": str(ticket.id), "error": e.message}
            )

        return IntakeResult(
            ticket_id=str(ticket.id),
            tenant_created=created,
            confirmation=confirmation
        )

    async def _route(self, to_e164: str) -> Tuple[UUID, Optional[Any]]:
        """Destination number to (org_id, property or None)."""
        prop = await self._properties.get_by_phone(to_e164)
        if prop is not None:
            return prop.org_id, prop

        number = await self._numbers.get_active_by_e164(to_e164)
        if number is None:
            logger.warning("Unrouted destination", extra={"to": mask_phone(to_e164)})
            raise UnroutableDestinationException(mask_phone(to_e164))

        prop = None
        if number.property_id is not None:
            prop = await self._properties.get(number.org_id, number.property_id)
        return number.org_id, prop

    async def _resolve_tenant(
        self,
        org_id: UUID,
        routed_property: Optional[Any],
        from_e164: str
    ) -> Tuple[Any, Any, bool]:
        """Returns (tenant, tenant's property, created)."""
        tenant = await self._tenants.find_in_org_by_phones(org_id, alt_forms_for_lookup(from_e164))

        if tenant is None:
            target = routed_property or await self._properties.get_or_create_unassigned(org_id)
            tenant = await self._tenants.create(
                org_id=org_id,
                property_id=target.id,
                phone_number=from_e164
            )
            logger.info(
                "Tenant created from SMS",
                extra={"org_id": str(org_id), "tenant_id": str(tenant.id), "from": mask_phone(from_e164)}
            )
            return tenant, target, True

        if tenant.phone_number != from_e164 and from_e164.startswith("+"):
            clash = await self._tenants.get_by_phone_and_property(from_e164, tenant.property_id)
            if clash is None:
                tenant.phone_number = from_e164
                await self._tenants.save(tenant)

        if routed_property is not None and routed_property.id == tenant.property_id:
            return tenant, routed_property, False
        return tenant, await self._properties.get(org_id, tenant.property_id), False

    async def _collect_media(self, message: InboundMessage) -> Tuple[List[str], List[str]]:
        """Returns (stored URLs for the ticket, source image URLs for triage)."""
        stored: List[str] = []
        triage_urls: List[str] = []

        for item in message.media:
            if not self._is_media_url(item.url):
                logger.warning("Ignoring non-Twilio media URL", extra={"message_sid": message.message_sid})
                continue
            try:
                stored.append(await self._media_store.persist(item.url, item.content_type))
            except Exception as e:
                logger.warning(
                    "Media persist failed",
                    extra={"message_sid": message.message_sid, "error": str(e)}
                )
                continue
            if item.is_image:
                triage_urls.append(item.url)

        return stored, triage_urls

    async def _triage_message(
        self,
        body: str,
        image_urls: List[str]
    ) -> Tuple[str, str, float, str]:
        """Returns (category, priority, confidence, source)."""
        try:
            with log_latency(logger, "triage", images=len(image_urls)):
                analysis = await self._triage.analyze(body, image_urls)
        except Exception as e:
            logger.error("Triage failed, using defaults", extra={"error": str(e)})
            analysis = MaintenanceAnalysis.default(body)

        return (
            TicketCategory(analysis.category).value,
            TicketPriority(analysis.priority).value,
            analysis.confidence,
            analysis.source,
        )
