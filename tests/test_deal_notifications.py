import asyncio
import json
from datetime import datetime, timezone
from decimal import Decimal
from types import SimpleNamespace
from uuid import uuid4

from redis.exceptions import ConnectionError as RedisConnectionError

from pickcreator.models.deals import ContentRequirements, ContentSubmission, Deal, DealInfluencer
from pickcreator.services import deal_notifications
from pickcreator.services.deal_notifications import DealNotification, build_deal_notifications
from pickcreator.services.deal_state_machine import Actor


def _deal(**overrides) -> Deal:
    data = {
        "id": uuid4(),
        "brand_id": uuid4(),
        "brand_name": "Acme",
        "deal_name": "Summer launch",
        "influencers": [DealInfluencer(id=uuid4(), name="Riya", offered_price=Decimal("900"))],
        "content_requirements": ContentRequirements(reels=1),
        "pricing_mode": "fixed",
        "total_amount": Decimal("900"),
    }
    data.update(overrides)
    return Deal(**data)


class _FakeRedis:
    def __init__(self, fail=False):
        self.fail = fail
        self.published: list[tuple[str, str]] = []
        self.closed = False

    async def publish(self, channel, message):
        if self.fail:
            raise RedisConnectionError("connection refused")
        self.published.append((channel, message))
        return 1

    async def aclose(self):
        self.closed = True


def test_connect_request_notifies_influencer():
    deal = _deal()
    [notification] = build_deal_notifications("create", deal, Actor.BRAND, "Acme")

    assert notification.recipient_id == str(deal.influencers[0].id)
    assert notification.channel == f"user:{deal.influencers[0].id}"
    assert notification.title == "New Connect Request"
    assert notification.data["type"] == "connect_request"
    assert notification.data["deal_id"] == str(deal.id)
    assert notification.data["url"] == f"/influencer/deals?tab=requested&id={deal.id}"


def test_accept_notifies_the_other_party():
    deal = _deal(status="accepted")

    [to_brand] = build_deal_notifications("accept", deal, Actor.INFLUENCER, "Riya")
    assert to_brand.recipient_id == str(deal.brand_id)
    assert to_brand.data["type"] == "deal_accepted"

    [to_influencer] = build_deal_notifications("accept", deal, Actor.BRAND, "Acme")
    assert to_influencer.recipient_id == str(deal.influencers[0].id)
    assert to_influencer.data["type"] == "counter_offer_accepted"


def test_counter_offer_carries_amount():
    deal = _deal(status="counter-offered")
    deal.influencers[0].counter_offer = Decimal("1500")

    [notification] = build_deal_notifications("counter-offer", deal, Actor.INFLUENCER, "Riya")

    assert notification.recipient_id == str(deal.brand_id)
    assert notification.data["counter_offer"] == "1500"
    assert "1500" in notification.message


def test_content_review_goes_to_submitter():
    author = uuid4()
    submission = ContentSubmission(
        id=uuid4(),
        type="reel",
        url="https://instagram.com/reel/1",
        submitted_by=author,
        submitted_at=datetime(2026, 3, 1, tzinfo=timezone.utc),
        status="rejected",
        comment="Add the discount code",
    )
    deal = _deal(status="ongoing", submitted_content=[submission])

    [notification] = build_deal_notifications(
        "reject-content", deal, Actor.BRAND, "Acme", content_id=submission.id
    )
    assert notification.recipient_id == str(author)
    assert notification.data["type"] == "content_rejected"
    assert notification.data["comment"] == "Add the discount code"

    assert build_deal_notifications("approve-content", deal, Actor.BRAND, "Acme", content_id=uuid4()) == []


def test_unknown_action_builds_nothing():
    assert build_deal_notifications("archive", _deal(), Actor.BRAND, "Acme") == []


def test_notification_json_is_tagged():
    payload = json.loads(DealNotification("u1", "Title", "Body", {"type": "deal_cancelled"}).to_json())
    assert payload["type"] == "deal_notification"
    assert payload["data"]["type"] == "deal_cancelled"
    assert payload["recipient_id"] == "u1"


def test_send_publishes_on_user_channels(monkeypatch):
    fake = _FakeRedis()
    monkeypatch.setattr(deal_notifications, "get_settings", lambda: SimpleNamespace(redis_url="redis://x"))
    monkeypatch.setattr(deal_notifications.aioredis, "from_url", lambda url: fake)

    deal = _deal()
    notifications = build_deal_notifications("pay", deal, Actor.BRAND, "Acme")
    asyncio.run(deal_notifications.send_deal_notifications(notifications))

    assert [channel for channel, _ in fake.published] == [f"user:{deal.influencers[0].id}"]
    assert json.loads(fake.published[0][1])["data"]["type"] == "payment_received"
    assert fake.closed is True


def test_send_swallows_redis_failures(monkeypatch):
    fake = _FakeRedis(fail=True)
    monkeypatch.setattr(deal_notifications, "get_settings", lambda: SimpleNamespace(redis_url="redis://x"))
    monkeypatch.setattr(deal_notifications.aioredis, "from_url", lambda url: fake)

    notifications = build_deal_notifications("cancel", _deal(status="cancelled"), Actor.BRAND, "Acme")
    asyncio.run(deal_notifications.send_deal_notifications(notifications))

    assert fake.published == []
    assert fake.closed is True


def test_send_skips_without_redis_url(monkeypatch):
    monkeypatch.setattr(deal_notifications, "get_settings", lambda: SimpleNamespace(redis_url=None))

    def _unexpected(url):
        raise AssertionError("Redis should not be contacted")

    monkeypatch.setattr(deal_notifications.aioredis, "from_url", _unexpected)
    asyncio.run(deal_notifications.send_deal_notifications([DealNotification("u1", "t", "m")]))


def test_payment_released_reports_agreed_amount():
    deal = _deal(status="completed", payment_status="paid", payment_released=True)
    deal.influencers[0].counter_offer = Decimal("1250")

    [notification] = build_deal_notifications("release-payment", deal, Actor.BRAND, "Acme")

    assert notification.recipient_id == str(deal.influencers[0].id)
    assert notification.data["type"] == "payment_released"
    assert notification.data["amount"] == "1250"
    assert "1250" in notification.message
