from datetime import datetime, timezone
from decimal import Decimal
from uuid import uuid4

import pytest

from pickcreator.models.deals import ConnectRequest, ContentRequirements, ContentSubmission, Deal, DealInfluencer
from pickcreator.services import deal_state_machine as fsm
from pickcreator.services.deal_pricing import price_connect_request
from pickcreator.services.deal_state_machine import (
    Actor,
    ContentNotFoundError,
    DealPermissionError,
    DealTransitionError,
    DealValidationError,
)


def _deal(**overrides) -> Deal:
    influencer_id = overrides.pop("influencer_id", uuid4())
    data = {
        "id": uuid4(),
        "brand_id": uuid4(),
        "brand_name": "Acme",
        "deal_name": "Summer launch",
        "influencers": [
            DealInfluencer(id=influencer_id, name="Riya", offered_price=Decimal("1500"))
        ],
        "content_requirements": ContentRequirements(reels=1, posts=2),
        "pricing_mode": "fixed",
        "total_amount": Decimal("1500"),
    }
    data.update(overrides)
    return Deal(**data)


def _submission(status="pending", **overrides) -> ContentSubmission:
    data = {
        "id": uuid4(),
        "type": "reel",
        "url": "https://instagram.com/reel/abc",
        "submitted_by": uuid4(),
        "submitted_at": datetime(2026, 3, 1, tzinfo=timezone.utc),
        "status": status,
    }
    data.update(overrides)
    return ContentSubmission(**data)


def test_state_list_contains_lifecycle_states():
    states = fsm.all_states()
    assert states == [
        "requested",
        "counter-offered",
        "accepted",
        "ongoing",
        "content_approved",
        "completed",
        "cancelled",
    ]


def test_state_machine_map_has_no_exits_from_terminal_states():
    mapping = fsm.state_machine_map()
    assert mapping["completed"] == {}
    assert mapping["cancelled"] == {}
    assert mapping["requested"]["accept"] == "accepted"
    assert mapping["content_approved"]["release-payment"] == "completed"


def test_allowed_actions_depend_on_party():
    assert fsm.allowed_actions("requested", "influencer") == ["accept", "reject", "counter-offer"]
    assert fsm.allowed_actions("requested", "brand") == ["cancel"]
    assert fsm.allowed_actions("counter-offered", "brand") == ["accept", "reject", "cancel"]
    assert fsm.allowed_actions("counter-offered", "influencer") == []
    assert fsm.allowed_actions("accepted", "brand") == ["pay", "cancel"]
    assert fsm.allowed_actions("ongoing", "influencer") == ["submit"]
    assert fsm.allowed_actions("completed", "brand") == []


def test_validate_transition_rejects_invalid_path():
    with pytest.raises(DealTransitionError, match="Cannot pay a deal that is 'requested'"):
        fsm.validate_transition("requested", "pay", "brand")

    assert fsm.can_transition("requested", "pay", "brand") is False
    assert fsm.can_transition("accepted", "pay", "brand") is True


def test_validate_transition_rejects_wrong_party():
    with pytest.raises(DealPermissionError, match="Only the influencer can accept"):
        fsm.validate_transition("requested", "accept", "brand")


def test_validate_transition_rejects_unknown_values():
    with pytest.raises(DealTransitionError, match="Unknown deal status"):
        fsm.validate_transition("archived", "accept", "influencer")
    with pytest.raises(DealTransitionError, match="Unknown deal action"):
        fsm.validate_transition("requested", "ship", "influencer")


def test_influencer_accept_marks_participant_and_keeps_input_untouched():
    deal = _deal()

    accepted = fsm.accept(deal, Actor.INFLUENCER)

    assert accepted.status == "accepted"
    assert accepted.influencers[0].status == "accepted"
    assert accepted.total_amount == deal.total_amount
    assert accepted.payment_status == "unpaid"
    assert deal.status == "requested"
    assert deal.influencers[0].status == "pending"


def test_influencer_reject_cancels_deal():
    rejected = fsm.reject(_deal(), Actor.INFLUENCER)
    assert rejected.status == "cancelled"
    assert rejected.influencers[0].status == "rejected"


def test_counter_offer_then_brand_accepts_keeps_both_amounts():
    countered = fsm.counter_offer(_deal(), Decimal("2500"))
    assert countered.status == "counter-offered"
    assert countered.influencers[0].counter_offer == Decimal("2500")

    accepted = fsm.accept(countered, Actor.BRAND)
    assert accepted.status == "accepted"
    assert accepted.total_amount == Decimal("1500")
    assert accepted.influencers[0].counter_offer == Decimal("2500")


def test_brand_rejects_counter_offer():
    countered = fsm.counter_offer(_deal(), 2000)
    rejected = fsm.reject(countered, Actor.BRAND)
    assert rejected.status == "cancelled"
    assert rejected.influencers[0].status == "pending"


@pytest.mark.parametrize("amount", [0, 100000, -5, "abc", None])
def test_counter_offer_rejects_out_of_range_amounts(amount):
    deal = _deal()
    with pytest.raises(DealValidationError):
        fsm.counter_offer(deal, amount)
    assert deal.status == "requested"
    assert deal.influencers[0].counter_offer is None


@pytest.mark.parametrize("amount", [1, 99999])
def test_counter_offer_accepts_boundary_amounts(amount):
    countered = fsm.counter_offer(_deal(), amount)
    assert countered.influencers[0].counter_offer == Decimal(amount)


def test_cancel_allowed_before_payment_only():
    assert fsm.cancel(_deal()).status == "cancelled"
    assert fsm.cancel(_deal(status="accepted")).status == "cancelled"
    with pytest.raises(DealTransitionError):
        fsm.cancel(_deal(status="ongoing", payment_status="paid"))


def test_pay_moves_accepted_deal_to_ongoing():
    paid = fsm.pay(_deal(status="accepted"))
    assert paid.status == "ongoing"
    assert paid.payment_status == "paid"

    with pytest.raises(DealTransitionError):
        fsm.pay(_deal())


def test_submit_content_appends_pending_submission():
    deal = _deal(status="ongoing", payment_status="paid")
    author = deal.influencers[0].id
    now = datetime(2026, 3, 2, tzinfo=timezone.utc)

    updated = fsm.submit_content(deal, "reel", "  https://instagram.com/reel/1  ", author, now=now)

    assert updated.status == "ongoing"
    assert len(updated.submitted_content) == 1
    submission = updated.submitted_content[0]
    assert submission.status == "pending"
    assert submission.url == "https://instagram.com/reel/1"
    assert submission.submitted_by == author
    assert submission.submitted_at == now
    assert deal.submitted_content == []


def test_submit_content_validates_input():
    deal = _deal(status="ongoing", payment_status="paid")
    with pytest.raises(DealValidationError, match="Content URL is required"):
        fsm.submit_content(deal, "reel", "   ", uuid4())
    with pytest.raises(DealValidationError, match="Invalid content type"):
        fsm.submit_content(deal, "tweet", "https://x.com/1", uuid4())
    with pytest.raises(DealTransitionError):
        fsm.submit_content(_deal(status="accepted"), "reel", "https://x.com/1", uuid4())


def test_approve_content_publishes_and_advances():
    submission = _submission()
    deal = _deal(status="ongoing", payment_status="paid", submitted_content=[submission])

    approved = fsm.review_content(deal, submission.id, approve=True)

    assert approved.status == "content_approved"
    assert approved.content_published is True
    assert approved.submitted_content[0].status == "approved"
    assert approved.submitted_content[0].reviewed_at is not None
    assert deal.content_published is False


def test_reject_content_requires_comment_and_keeps_deal_ongoing():
    submission = _submission()
    deal = _deal(status="ongoing", payment_status="paid", submitted_content=[submission])

    with pytest.raises(DealValidationError, match="Rejection comment is required"):
        fsm.review_content(deal, submission.id, approve=False, comment="  ")

    rejected = fsm.review_content(deal, submission.id, approve=False, comment="Wrong hashtag")
    assert rejected.status == "ongoing"
    assert rejected.content_published is False
    assert rejected.submitted_content[0].status == "rejected"
    assert rejected.submitted_content[0].comment == "Wrong hashtag"


def test_review_rejects_unknown_or_already_reviewed_content():
    reviewed = _submission(status="rejected")
    deal = _deal(status="ongoing", payment_status="paid", submitted_content=[reviewed])

    with pytest.raises(ContentNotFoundError, match="Content not found"):
        fsm.review_content(deal, uuid4(), approve=True)
    with pytest.raises(DealTransitionError, match="already been rejected"):
        fsm.review_content(deal, reviewed.id, approve=True)


def test_release_payment_completes_deal():
    deal = _deal(status="content_approved", payment_status="paid", content_published=True)

    released = fsm.release_payment(deal)

    assert released.status == "completed"
    assert released.payment_released is True
    with pytest.raises(DealTransitionError):
        fsm.release_payment(released)


def test_release_payment_requires_unreleased_paid_deal():
    with pytest.raises(DealTransitionError, match="Payment must be made"):
        fsm.release_payment(_deal(status="content_approved"))
    with pytest.raises(DealTransitionError, match="already been released"):
        fsm.release_payment(
            _deal(status="content_approved", payment_status="paid", payment_released=True)
        )


def test_full_lifecycle_reaches_completed():
    deal = _deal()
    influencer_id = deal.influencers[0].id

    deal = fsm.accept(deal, Actor.INFLUENCER)
    deal = fsm.pay(deal)
    deal = fsm.submit_content(deal, "post", "https://instagram.com/p/1", influencer_id)
    deal = fsm.review_content(deal, deal.submitted_content[0].id, approve=True)
    deal = fsm.release_payment(deal)

    assert deal.status == "completed"
    assert deal.payment_status == "paid"
    assert deal.content_published is True
    assert deal.payment_released is True


def test_tab_filtering_and_counts():
    deals = [
        _deal(),
        _deal(status="counter-offered"),
        _deal(status="accepted"),
        _deal(status="ongoing"),
        _deal(status="content_approved"),
        _deal(status="completed"),
        _deal(status="cancelled"),
    ]

    assert [d.status for d in fsm.filter_deals_by_tab(deals, "requested")] == [
        "requested",
        "counter-offered",
    ]
    assert [d.status for d in fsm.filter_deals_by_tab(deals, "ongoing")] == [
        "ongoing",
        "content_approved",
    ]
    assert len(fsm.filter_deals_by_tab(deals, None)) == 7
    assert fsm.tab_counts(deals) == {"requested": 2, "pending": 1, "ongoing": 2, "history": 2}


def _deal_in(status) -> Deal:
    extra = {}
    if status in ("ongoing", "content_approved"):
        extra["payment_status"] = "paid"
    if status == "ongoing":
        extra["submitted_content"] = [_submission()]
    if status == "content_approved":
        extra["submitted_content"] = [_submission(status="approved")]
        extra["content_published"] = True
    if status == "counter-offered":
        extra["influencers"] = [
            DealInfluencer(id=uuid4(), name="Riya", offered_price=Decimal("1500"), counter_offer=Decimal("2000"))
        ]
    return _deal(status=status, **extra)


def _changed_fields(before: Deal, after: Deal) -> set[str]:
    old, new = before.model_dump(), after.model_dump()
    return {field for field in old if old[field] != new[field]}


TRANSITION_CASES = [
    ("requested", "accept", lambda d: fsm.accept(d, Actor.INFLUENCER), {"status", "influencers"}),
    ("requested", "reject", lambda d: fsm.reject(d, Actor.INFLUENCER), {"status", "influencers"}),
    ("requested", "counter-offer", lambda d: fsm.counter_offer(d, 1500), {"status", "influencers"}),
    ("requested", "cancel", fsm.cancel, {"status"}),
    ("counter-offered", "accept", lambda d: fsm.accept(d, Actor.BRAND), {"status", "influencers"}),
    ("counter-offered", "reject", lambda d: fsm.reject(d, Actor.BRAND), {"status"}),
    ("counter-offered", "cancel", fsm.cancel, {"status"}),
    ("accepted", "pay", fsm.pay, {"status", "payment_status"}),
    ("accepted", "cancel", fsm.cancel, {"status"}),
    (
        "ongoing",
        "submit",
        lambda d: fsm.submit_content(d, "story", "https://instagram.com/s/1", d.influencers[0].id),
        {"submitted_content"},
    ),
    (
        "ongoing",
        "approve-content",
        lambda d: fsm.review_content(d, d.submitted_content[0].id, approve=True),
        {"status", "submitted_content", "content_published"},
    ),
    (
        "ongoing",
        "reject-content",
        lambda d: fsm.review_content(d, d.submitted_content[0].id, approve=False, comment="Blurry"),
        {"submitted_content"},
    ),
    ("content_approved", "release-payment", fsm.release_payment, {"status", "payment_released"}),
]


def test_transition_cases_cover_the_whole_table():
    table = {
        (status, action)
        for status, actions in fsm.state_machine_map().items()
        for action in actions
    }
    assert {(status, action) for status, action, _, _ in TRANSITION_CASES} == table


@pytest.mark.parametrize(
    "status,action,transition,changed",
    TRANSITION_CASES,
    ids=[f"{status}:{action}" for status, action, _, _ in TRANSITION_CASES],
)
def test_transition_changes_only_its_own_fields(status, action, transition, changed):
    before = _deal_in(status)
    snapshot = before.model_dump()

    after = transition(before)

    assert after.status == fsm.state_machine_map()[status][action]
    assert _changed_fields(before, after) == changed
    assert before.model_dump() == snapshot


_ACTIONS = {
    "accept": lambda d: fsm.accept(d, Actor.BRAND),
    "reject": lambda d: fsm.reject(d, Actor.BRAND),
    "counter-offer": lambda d: fsm.counter_offer(d, 1500),
    "cancel": fsm.cancel,
    "pay": fsm.pay,
    "submit": lambda d: fsm.submit_content(d, "reel", "https://instagram.com/reel/9", uuid4()),
    "approve-content": lambda d: fsm.review_content(d, uuid4(), approve=True),
    "reject-content": lambda d: fsm.review_content(d, uuid4(), approve=False, comment="No"),
    "release-payment": fsm.release_payment,
}

INVALID_CASES = [
    (status, action)
    for status, allowed in fsm.state_machine_map().items()
    for action in _ACTIONS
    if action not in allowed
]


@pytest.mark.parametrize("status,action", INVALID_CASES, ids=[f"{s}:{a}" for s, a in INVALID_CASES])
def test_invalid_transition_fails_and_leaves_deal_unchanged(status, action):
    deal = _deal_in(status)
    snapshot = deal.model_dump()

    with pytest.raises(DealTransitionError):
        _ACTIONS[action](deal)

    assert deal.model_dump() == snapshot


def test_fixed_price_counter_offer_scenario_end_to_end():
    influencer_id = uuid4()
    request = ConnectRequest.model_validate(
        {
            "deal_name": "Reel campaign",
            "influencer": {"id": str(influencer_id), "name": "Riya"},
            "content_requirements": {"reels": 2, "posts": 0, "stories": 0, "lives": 0},
            "fixed_pricing": {"reel_price": 1000},
        }
    )
    mode, total = price_connect_request(request)
    deal = _deal(
        influencer_id=influencer_id,
        content_requirements=request.content_requirements,
        pricing_mode=mode.value,
        total_amount=total,
    )
    assert deal.total_amount == Decimal("2000")
    assert deal.status == "requested"

    deal = fsm.counter_offer(deal, 1500)
    assert deal.status == "counter-offered"
    assert deal.influencers[0].counter_offer == Decimal("1500")

    deal = fsm.accept(deal, Actor.BRAND)
    assert deal.status == "accepted"
    assert fsm.agreed_amount(deal) == Decimal("1500")

    deal = fsm.pay(deal)
    assert (deal.status, deal.payment_status) == ("ongoing", "paid")

    deal = fsm.submit_content(deal, "reel", "https://instagram.com/reel/42", influencer_id)
    assert deal.submitted_content[-1].status == "pending"

    deal = fsm.review_content(deal, deal.submitted_content[-1].id, approve=True)
    assert deal.status == "content_approved"
    assert deal.content_published is True

    deal = fsm.release_payment(deal)
    assert deal.status == "completed"
    assert deal.payment_released is True


def test_agreed_amount_prefers_counter_offer():
    deal = _deal()
    assert fsm.agreed_amount(deal) == Decimal("1500")
    assert fsm.agreed_amount(fsm.counter_offer(deal, 999)) == Decimal("999")
