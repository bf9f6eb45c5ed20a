"""Deal event notifications published over Redis pub/sub.

Each successful deal mutation produces notifications for the other party.
They are published on ``user:{recipient_id}`` for whatever push/WebSocket
service fans them out to devices. Publishing never fails the request.
"""

import json
import logging
from dataclasses import dataclass, asdict, field
from typing import Any, Optional
from uuid import UUID

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from ..config import get_settings
from ..models.deals import Deal
from .deal_state_machine import Actor, agreed_amount

logger = logging.getLogger(__name__)


@dataclass
class DealNotification:
    recipient_id: str
    title: str
    message: str
    data: dict[str, Any] = field(default_factory=dict)

    @property
    def channel(self) -> str:
        return f"user:{self.recipient_id}"

    def to_json(self) -> str:
        payload = asdict(self)
        payload["type"] = "deal_notification"
        return json.dumps(payload, default=str)


def _data(deal: Deal, event_type: str, side: str, tab: str, **extra: Any) -> dict[str, Any]:
    data = {
        "url": f"/{side}/deals?tab={tab}&id={deal.id}",
        "type": event_type,
        "deal_name": deal.deal_name,
        "deal_id": str(deal.id),
    }
    data.update(extra)
    return data


def _to_influencers(deal: Deal, title: str, message: str, data: dict[str, Any]) -> list[DealNotification]:
    return [
        DealNotification(str(influencer.id), title, message, data)
        for influencer in deal.influencers
    ]


def _to_brand(deal: Deal, title: str, message: str, data: dict[str, Any]) -> list[DealNotification]:
    return [DealNotification(str(deal.brand_id), title, message, data)]


def build_deal_notifications(
    action: str,
    deal: Deal,
    actor: Actor,
    actor_name: str,
    *,
    content_id: Optional[UUID] = None,
) -> list[DealNotification]:
    """Notifications for ``action`` (performed by ``actor``) having produced ``deal``."""
    name = actor_name or ("A brand" if actor == Actor.BRAND else "An influencer")

    if action == "create":
        return _to_influencers(
            deal,
            "New Connect Request",
            f"{name} has sent you a collaboration request",
            _data(deal, "connect_request", "influencer", "requested", brand_name=deal.brand_name),
        )

    if action == "accept":
        if actor == Actor.BRAND:
            return _to_influencers(
                deal,
                "Counter Offer Accepted",
                f"{name} has accepted your counter offer for deal {deal.deal_name}",
                _data(deal, "counter_offer_accepted", "influencer", "pending"),
            )
        return _to_brand(
            deal,
            "Deal Accepted",
            f"{name} has accepted your deal {deal.deal_name}",
            _data(deal, "deal_accepted", "brand", "pending"),
        )

    if action == "reject":
        if actor == Actor.BRAND:
            return _to_influencers(
                deal,
                "Counter Offer Declined",
                f"{name} has declined your counter offer for deal {deal.deal_name}",
                _data(deal, "deal_cancelled", "influencer", "history"),
            )
        return _to_brand(
            deal,
            "Deal Rejected",
            f"{name} has rejected your deal {deal.deal_name}",
            _data(deal, "deal_rejected", "brand", "history"),
        )

    if action == "counter-offer":
        counter = deal.influencers[0].counter_offer if deal.influencers else None
        return _to_brand(
            deal,
            "Counter Offer Received",
            f"{name} has made a counter offer of {counter} for deal {deal.deal_name}",
            _data(deal, "counter_offer", "brand", "requested", counter_offer=str(counter)),
        )

    if action == "cancel":
        return _to_influencers(
            deal,
            "Deal Cancelled",
            f"{name} has cancelled the deal {deal.deal_name}",
            _data(deal, "deal_cancelled", "influencer", "history"),
        )

    if action == "pay":
        return _to_influencers(
            deal,
            "Payment Received",
            f"{name} has paid for deal {deal.deal_name}. You can start creating content",
            _data(deal, "payment_received", "influencer", "ongoing"),
        )

    if action == "submit":
        latest = deal.submitted_content[-1] if deal.submitted_content else None
        return _to_brand(
            deal,
            "Content Submitted",
            f"{name} has submitted content for deal {deal.deal_name}",
            _data(deal, "content_submitted", "brand", "ongoing",
                  content_type=latest.type if latest else None),
        )

    if action in ("approve-content", "reject-content"):
        submission = next((s for s in deal.submitted_content if s.id == content_id), None)
        if submission is None:
            return []
        if action == "approve-content":
            return [DealNotification(
                str(submission.submitted_by),
                "Content Approved",
                f"Your content for deal {deal.deal_name} has been approved",
                _data(deal, "content_approved", "influencer", "ongoing"),
            )]
        return [DealNotification(
            str(submission.submitted_by),
            "Content Rejected",
            f"Your content for deal {deal.deal_name} has been rejected",
            _data(deal, "content_rejected", "influencer", "ongoing", comment=submission.comment),
        )]

    if action == "release-payment":
        amount = agreed_amount(deal)
        return _to_influencers(
            deal,
            "Payment Released",
            f"Payment of {amount} has been released for deal {deal.deal_name}",
            _data(deal, "payment_released", "influencer", "history", amount=str(amount)),
        )

    return []


async def send_deal_notifications(notifications: list[DealNotification]) -> None:
    """Publish notifications to Redis. Runs as a background task after the response."""
    if not notifications:
        return

    settings = get_settings()
    if not settings.redis_url:
        logger.debug("[DealNotifications] REDIS_URL not set; skipping %d notifications", len(notifications))
        return

    client = aioredis.from_url(settings.redis_url)
    try:
        for notification in notifications:
            await client.publish(notification.channel, notification.to_json())
            logger.info(
                "[DealNotifications] Sent %s to %s",
                notification.data.get("type"), notification.recipient_id,
            )
    except RedisError as e:
        logger.warning("[DealNotifications] Failed to publish deal notification: %s", e)
    finally:
        await client.aclose()
