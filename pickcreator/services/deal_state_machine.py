"""Deal lifecycle state machine.

Every transition is checked against a single ``(status, action)`` table that
also names which party may perform it. Transition functions are pure: they
take a ``Deal`` and return an updated copy, leaving the input untouched, so a
rejected transition can never leave a half-applied deal behind. Persistence
(and the optimistic-concurrency check) lives in ``deal_store``.
"""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Iterable, Optional
from uuid import UUID, uuid4

from ..models.deals import ContentSubmission, Deal, DealInfluencer


class DealState(str, Enum):
    REQUESTED = "requested"
    COUNTER_OFFERED = "counter-offered"
    ACCEPTED = "accepted"
    ONGOING = "ongoing"
    CONTENT_APPROVED = "content_approved"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class DealAction(str, Enum):
    ACCEPT = "accept"
    REJECT = "reject"
    COUNTER_OFFER = "counter-offer"
    CANCEL = "cancel"
    PAY = "pay"
    SUBMIT_CONTENT = "submit"
    APPROVE_CONTENT = "approve-content"
    REJECT_CONTENT = "reject-content"
    RELEASE_PAYMENT = "release-payment"


class Actor(str, Enum):
    BRAND = "brand"
    INFLUENCER = "influencer"


class DealTransitionError(ValueError):
    """Raised when an action is not permitted from the deal's current status."""


class DealPermissionError(DealTransitionError):
    """Raised when the action exists for this status but belongs to the other party."""


class DealValidationError(ValueError):
    """Raised when transition input is invalid."""


class ContentNotFoundError(DealValidationError):
    """Raised when a review names a submission the deal does not have."""


MIN_OFFER_AMOUNT = Decimal("1")
MAX_OFFER_AMOUNT = Decimal("99999")

CONTENT_TYPES: tuple[str, ...] = ("reel", "post", "story", "live")

TERMINAL_STATES: frozenset[DealState] = frozenset({DealState.COMPLETED, DealState.CANCELLED})

_BRAND = frozenset({Actor.BRAND})
_INFLUENCER = frozenset({Actor.INFLUENCER})

# (current status, action) -> (next status, parties allowed to act)
_TRANSITIONS: dict[tuple[DealState, DealAction], tuple[DealState, frozenset[Actor]]] = {
    (DealState.REQUESTED, DealAction.ACCEPT): (DealState.ACCEPTED, _INFLUENCER),
    (DealState.REQUESTED, DealAction.REJECT): (DealState.CANCELLED, _INFLUENCER),
    (DealState.REQUESTED, DealAction.COUNTER_OFFER): (DealState.COUNTER_OFFERED, _INFLUENCER),
    (DealState.REQUESTED, DealAction.CANCEL): (DealState.CANCELLED, _BRAND),
    (DealState.COUNTER_OFFERED, DealAction.ACCEPT): (DealState.ACCEPTED, _BRAND),
    (DealState.COUNTER_OFFERED, DealAction.REJECT): (DealState.CANCELLED, _BRAND),
    (DealState.COUNTER_OFFERED, DealAction.CANCEL): (DealState.CANCELLED, _BRAND),
    (DealState.ACCEPTED, DealAction.PAY): (DealState.ONGOING, _BRAND),
    (DealState.ACCEPTED, DealAction.CANCEL): (DealState.CANCELLED, _BRAND),
    (DealState.ONGOING, DealAction.SUBMIT_CONTENT): (DealState.ONGOING, _INFLUENCER),
    # Only reachable while no submission is approved yet, i.e. on the first approval.
    (DealState.ONGOING, DealAction.APPROVE_CONTENT): (DealState.CONTENT_APPROVED, _BRAND),
    (DealState.ONGOING, DealAction.REJECT_CONTENT): (DealState.ONGOING, _BRAND),
    (DealState.CONTENT_APPROVED, DealAction.RELEASE_PAYMENT): (DealState.COMPLETED, _BRAND),
}

# Deal list tabs shown to both parties
TAB_STATUSES: dict[str, tuple[DealState, ...]] = {
    "requested": (DealState.REQUESTED, DealState.COUNTER_OFFERED),
    "pending": (DealState.ACCEPTED,),
    "ongoing": (DealState.ONGOING, DealState.CONTENT_APPROVED),
    "history": (DealState.COMPLETED, DealState.CANCELLED),
}


def _coerce_state(value: str | DealState) -> DealState:
    if isinstance(value, DealState):
        return value
    try:
        return DealState(value)
    except ValueError as exc:
        raise DealTransitionError(f"Unknown deal status '{value}'") from exc


def _coerce_action(value: str | DealAction) -> DealAction:
    if isinstance(value, DealAction):
        return value
    try:
        return DealAction(value)
    except ValueError as exc:
        raise DealTransitionError(f"Unknown deal action '{value}'") from exc


def _coerce_actor(value: str | Actor) -> Actor:
    if isinstance(value, Actor):
        return value
    try:
        return Actor(value)
    except ValueError as exc:
        raise DealPermissionError(f"Unknown deal party '{value}'") from exc


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def all_states() -> list[str]:
    return [state.value for state in DealState]


def state_machine_map() -> dict[str, dict[str, str]]:
    mapping: dict[str, dict[str, str]] = {state.value: {} for state in DealState}
    for (source, action), (target, _) in _TRANSITIONS.items():
        mapping[source.value][action.value] = target.value
    return mapping


def allowed_actions(status: str | DealState, actor: str | Actor) -> list[str]:
    source = _coerce_state(status)
    party = _coerce_actor(actor)
    return [
        action.value
        for (state, action), (_, actors) in _TRANSITIONS.items()
        if state == source and party in actors
    ]


def can_transition(
    status: str | DealState,
    action: str | DealAction,
    actor: str | Actor,
) -> bool:
    try:
        validate_transition(status, action, actor)
    except DealTransitionError:
        return False
    return True


def validate_transition(
    status: str | DealState,
    action: str | DealAction,
    actor: str | Actor,
) -> DealState:
    """Return the status ``action`` leads to, or raise if it is not allowed."""
    source = _coerce_state(status)
    verb = _coerce_action(action)
    party = _coerce_actor(actor)

    rule = _TRANSITIONS.get((source, verb))
    if rule is None:
        allowed_str = ", ".join(allowed_actions(source, party)) or "none"
        raise DealTransitionError(
            f"Cannot {verb.value} a deal that is '{source.value}'. "
            f"Allowed actions for the {party.value}: {allowed_str}."
        )

    target, actors = rule
    if party not in actors:
        owners = " or ".join(sorted(a.value for a in actors))
        raise DealPermissionError(
            f"Only the {owners} can {verb.value} a deal that is '{source.value}'"
        )
    return target


def validate_offer_amount(value: Any, label: str = "Offer amount") -> Decimal:
    """Parse a brand/influencer price and check it lies in [1, 99999]."""
    if value is None or isinstance(value, bool):
        raise DealValidationError(f"{label} is required")
    try:
        amount = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError) as exc:
        raise DealValidationError(f"{label} must be a number") from exc
    if not amount.is_finite():
        raise DealValidationError(f"{label} must be a number")
    if amount < MIN_OFFER_AMOUNT or amount > MAX_OFFER_AMOUNT:
        raise DealValidationError(
            f"{label} must be between {MIN_OFFER_AMOUNT} and {MAX_OFFER_AMOUNT}"
        )
    return amount


def is_content_published(submissions: Iterable[ContentSubmission]) -> bool:
    return any(submission.status == "approved" for submission in submissions)


def agreed_amount(deal: Deal) -> Decimal:
    """Price both parties settled on: the counter offer once one was made, else the requested total.

    A counter offer can only leave ``counter-offered`` by being accepted or by
    ending the deal, so a deal that is still live with a counter value agreed to it.
    """
    if deal.influencers and deal.influencers[0].counter_offer is not None:
        return deal.influencers[0].counter_offer
    return deal.total_amount


def _primary_influencer(deal: Deal) -> DealInfluencer:
    if not deal.influencers:
        raise DealValidationError("Deal has no influencer")
    return deal.influencers[0]


def _with_primary_influencer(deal: Deal, **changes: Any) -> list[DealInfluencer]:
    primary = _primary_influencer(deal).model_copy(update=changes)
    return [primary] + [inf.model_copy() for inf in deal.influencers[1:]]


# =============================================================================
# Transitions
# =============================================================================

def accept(deal: Deal, actor: str | Actor) -> Deal:
    """Influencer accepts a request, or brand accepts a counter-offer.

    ``total_amount`` is left as requested; an accepted counter value stays on
    ``influencers[0].counter_offer``.
    """
    target = validate_transition(deal.status, DealAction.ACCEPT, actor)
    return deal.model_copy(
        update={
            "status": target.value,
            "influencers": _with_primary_influencer(deal, status="accepted"),
        },
        deep=True,
    )


def reject(deal: Deal, actor: str | Actor) -> Deal:
    """Influencer declines a request, or brand declines a counter-offer."""
    party = _coerce_actor(actor)
    target = validate_transition(deal.status, DealAction.REJECT, party)
    update: dict[str, Any] = {"status": target.value}
    if party == Actor.INFLUENCER:
        update["influencers"] = _with_primary_influencer(deal, status="rejected")
    return deal.model_copy(update=update, deep=True)


def counter_offer(deal: Deal, amount: Any) -> Deal:
    target = validate_transition(deal.status, DealAction.COUNTER_OFFER, Actor.INFLUENCER)
    value = validate_offer_amount(amount, label="Counter offer")
    return deal.model_copy(
        update={
            "status": target.value,
            "influencers": _with_primary_influencer(deal, counter_offer=value),
        },
        deep=True,
    )


def cancel(deal: Deal) -> Deal:
    """Brand withdraws a deal before any payment has been made."""
    target = validate_transition(deal.status, DealAction.CANCEL, Actor.BRAND)
    return deal.model_copy(update={"status": target.value}, deep=True)


def pay(deal: Deal) -> Deal:
    target = validate_transition(deal.status, DealAction.PAY, Actor.BRAND)
    return deal.model_copy(
        update={"status": target.value, "payment_status": "paid"},
        deep=True,
    )


def submit_content(
    deal: Deal,
    content_type: str,
    url: str,
    submitted_by: UUID,
    *,
    now: Optional[datetime] = None,
    submission_id: Optional[UUID] = None,
) -> Deal:
    target = validate_transition(deal.status, DealAction.SUBMIT_CONTENT, Actor.INFLUENCER)

    if content_type not in CONTENT_TYPES:
        raise DealValidationError(
            f"Invalid content type. Must be one of: {', '.join(CONTENT_TYPES)}"
        )
    cleaned_url = (url or "").strip()
    if not cleaned_url:
        raise DealValidationError("Content URL is required")

    submission = ContentSubmission(
        id=submission_id or uuid4(),
        type=content_type,
        url=cleaned_url,
        submitted_by=submitted_by,
        submitted_at=now or _utcnow(),
        status="pending",
    )
    return deal.model_copy(
        update={
            "status": target.value,
            "submitted_content": [s.model_copy() for s in deal.submitted_content] + [submission],
        },
        deep=True,
    )


def review_content(
    deal: Deal,
    content_id: UUID,
    approve: bool,
    comment: Optional[str] = None,
    *,
    now: Optional[datetime] = None,
) -> Deal:
    """Approve or reject one pending submission.

    Approval publishes the content and moves the deal to ``content_approved``;
    rejection needs a comment and keeps the deal ``ongoing`` so the influencer
    can resubmit.
    """
    action = DealAction.APPROVE_CONTENT if approve else DealAction.REJECT_CONTENT
    target = validate_transition(deal.status, action, Actor.BRAND)

    submission = next((s for s in deal.submitted_content if s.id == content_id), None)
    if submission is None:
        raise ContentNotFoundError("Content not found")
    if submission.status != "pending":
        raise DealTransitionError(f"Content has already been {submission.status}")

    reviewed_at = now or _utcnow()
    if approve:
        changes: dict[str, Any] = {"status": "approved", "reviewed_at": reviewed_at}
    else:
        reason = (comment or "").strip()
        if not reason:
            raise DealValidationError("Rejection comment is required")
        changes = {"status": "rejected", "reviewed_at": reviewed_at, "comment": reason}

    submissions = [
        s.model_copy(update=changes) if s.id == content_id else s.model_copy()
        for s in deal.submitted_content
    ]
    update: dict[str, Any] = {"status": target.value, "submitted_content": submissions}
    if approve:
        update["content_published"] = is_content_published(submissions)
    return deal.model_copy(update=update, deep=True)


def release_payment(deal: Deal) -> Deal:
    target = validate_transition(deal.status, DealAction.RELEASE_PAYMENT, Actor.BRAND)
    if deal.payment_status != "paid":
        raise DealTransitionError("Payment must be made before it can be released")
    if deal.payment_released:
        raise DealTransitionError("Payment has already been released for this deal")
    return deal.model_copy(
        update={"status": target.value, "payment_released": True},
        deep=True,
    )


# =============================================================================
# Deal list tabs
# =============================================================================

def filter_deals_by_tab(deals: Iterable[Deal], tab: Optional[str]) -> list[Deal]:
    statuses = TAB_STATUSES.get(tab or "")
    if statuses is None:
        return list(deals)
    wanted = {state.value for state in statuses}
    return [deal for deal in deals if deal.status in wanted]


def tab_counts(deals: Iterable[Deal]) -> dict[str, int]:
    counts = {tab: 0 for tab in TAB_STATUSES}
    for deal in deals:
        for tab, statuses in TAB_STATUSES.items():
            if deal.status in {state.value for state in statuses}:
                counts[tab] += 1
    return counts
