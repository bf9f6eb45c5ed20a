"""
Deal routes for the brand/influencer collaboration flow.
Connect requests, influencer responses, payment, content review and payout.
"""
import logging
from decimal import Decimal
from typing import Callable, Optional
from uuid import UUID, uuid4

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query, status

from ..config import get_settings
from ..database import get_connection
from ..dependencies import get_current_user, require_brand, require_influencer
from ..models.auth import CurrentUser
from ..models.deals import (
    ConnectRequest,
    ContentReviewRequest,
    ContentSubmitRequest,
    CounterOfferRequest,
    Deal,
    DealActionsEnvelope,
    DealEnvelope,
    DealInfluencer,
    DealListEnvelope,
    DealPaymentEnvelope,
    DealTab,
    PaymentRequest,
)
from ..services import deal_state_machine as fsm
from ..services.deal_notifications import build_deal_notifications, send_deal_notifications
from ..services.deal_pricing import PricingMode, price_connect_request
from ..services.deal_state_machine import Actor, DealAction
from ..services.deal_store import (
    DealConflictError,
    commit_transition,
    credit_influencer_earnings,
    fetch_deal,
    insert_deal,
    list_all_deals,
    list_brand_deals,
    list_influencer_deals,
    record_payment,
)

logger = logging.getLogger(__name__)

router = APIRouter()

Transition = Callable[[Deal, Actor], Deal]

_SUCCESS_MESSAGES = {
    DealAction.ACCEPT: "Deal accepted successfully",
    DealAction.REJECT: "Deal rejected successfully",
    DealAction.COUNTER_OFFER: "Counter offer sent successfully",
    DealAction.CANCEL: "Deal cancelled successfully",
    DealAction.PAY: "Payment successful",
    DealAction.SUBMIT_CONTENT: "Content submitted successfully",
    DealAction.APPROVE_CONTENT: "Content approved successfully",
    DealAction.REJECT_CONTENT: "Content rejected successfully",
    DealAction.RELEASE_PAYMENT: "Payment released successfully and deal completed",
}


# =============================================================================
# Helpers
# =============================================================================

def _actor_for(deal: Deal, current_user: CurrentUser) -> Optional[Actor]:
    if current_user.role == "brand" and deal.brand_id == current_user.id:
        return Actor.BRAND
    if current_user.role == "influencer" and any(i.id == current_user.id for i in deal.influencers):
        return Actor.INFLUENCER
    return None


def _require_participant(deal: Deal, current_user: CurrentUser) -> Actor:
    actor = _actor_for(deal, current_user)
    if actor is None:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="You are not part of this deal")
    return actor


async def _load_deal(conn, deal_id: UUID) -> Deal:
    deal = await fetch_deal(conn, deal_id)
    if deal is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Deal not found")
    return deal


def _apply(deal: Deal, action: DealAction, actor: Actor, transition: Transition) -> Deal:
    """Check ``action`` for this party, then run the transition."""
    try:
        fsm.validate_transition(deal.status, action, actor)
        return transition(deal, actor)
    except fsm.ContentNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except fsm.DealValidationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except fsm.DealPermissionError as e:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(e))
    except fsm.DealTransitionError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))


async def _commit(conn, before: Deal, after: Deal) -> Deal:
    try:
        return await commit_transition(conn, before, after)
    except DealConflictError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))


def _display_name(current_user: CurrentUser, actor: Actor) -> str:
    if actor == Actor.BRAND:
        return current_user.company_name or current_user.name
    return current_user.name


def _notify(
    background_tasks: BackgroundTasks,
    action: str,
    deal: Deal,
    actor: Actor,
    current_user: CurrentUser,
    content_id: Optional[UUID] = None,
) -> None:
    notifications = build_deal_notifications(
        action, deal, actor, _display_name(current_user, actor), content_id=content_id
    )
    if notifications:
        background_tasks.add_task(send_deal_notifications, notifications)


async def _perform(
    deal_id: UUID,
    action: DealAction,
    transition: Transition,
    current_user: CurrentUser,
    background_tasks: BackgroundTasks,
    content_id: Optional[UUID] = None,
) -> DealEnvelope:
    async with get_connection() as conn:
        deal = await _load_deal(conn, deal_id)
        actor = _require_participant(deal, current_user)
        updated = _apply(deal, action, actor, transition)
        saved = await _commit(conn, deal, updated)

    logger.info("[Deals] %s %s performed %s on deal %s", actor.value, current_user.id, action.value, deal_id)
    _notify(background_tasks, action.value, saved, actor, current_user, content_id)
    return DealEnvelope(message=_SUCCESS_MESSAGES[action], deal=saved)


def _build_deal(request: ConnectRequest, current_user: CurrentUser, influencer_row) -> Deal:
    try:
        mode, total = price_connect_request(request)
    except fsm.DealValidationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    # Only the selected pricing mode's fields are stored
    return Deal(
        id=uuid4(),
        brand_id=current_user.id,
        brand_name=current_user.name or "Unknown Brand",
        brand_profile_pic=current_user.profile_picture_url or "",
        company_name=current_user.company_name or "",
        location=current_user.location or "",
        deal_name=request.deal_name.strip(),
        description=request.description.strip(),
        influencers=[
            DealInfluencer(
                id=request.influencer.id,
                name=request.influencer.name or influencer_row["name"],
                profile_picture_url=(
                    request.influencer.profile_picture_url
                    or influencer_row["profile_picture_url"]
                    or ""
                ),
                offered_price=total,
            )
        ],
        content_requirements=request.content_requirements,
        pricing_mode=mode.value,
        fixed_pricing=request.fixed_pricing if mode == PricingMode.FIXED else None,
        use_package_deals=mode == PricingMode.PACKAGE,
        selected_package=request.selected_package if mode == PricingMode.PACKAGE else None,
        visit_required=request.visit_required,
        is_negotiating=mode == PricingMode.NEGOTIATION,
        offer_amount=request.offer_amount if mode == PricingMode.NEGOTIATION else Decimal("0"),
        is_product_exchange=mode == PricingMode.BARTER,
        product_name=(request.product_name or "").strip() if mode == PricingMode.BARTER else "",
        product_price=request.product_price if mode == PricingMode.BARTER else Decimal("0"),
        total_amount=total,
    )


# =============================================================================
# Create / read
# =============================================================================

@router.post("", response_model=DealEnvelope, status_code=status.HTTP_201_CREATED)
async def create_deal(
    request: ConnectRequest,
    background_tasks: BackgroundTasks,
    current_user: CurrentUser = Depends(require_brand),
):
    """Send a connect request to an influencer."""
    if not request.deal_name.strip():
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Deal name is required")

    async with get_connection() as conn:
        influencer_row = await conn.fetchrow(
            """SELECT id, name, profile_picture_url FROM users
               WHERE id = $1 AND role = 'influencer' AND is_active = true""",
            request.influencer.id,
        )
        if not influencer_row:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Influencer not found")

        deal = _build_deal(request, current_user, influencer_row)
        created = await insert_deal(conn, deal)

    _notify(background_tasks, "create", created, Actor.BRAND, current_user)
    return DealEnvelope(message="Deal created successfully", deal=created)


@router.get("", response_model=DealListEnvelope)
async def list_deals(
    tab: Optional[DealTab] = Query(None, description="requested, pending, ongoing or history"),
    current_user: CurrentUser = Depends(get_current_user),
):
    """List the caller's deals, optionally narrowed to one tab."""
    async with get_connection() as conn:
        if current_user.role == "brand":
            deals = await list_brand_deals(conn, current_user.id)
        elif current_user.role == "influencer":
            deals = await list_influencer_deals(conn, current_user.id)
        else:
            deals = await list_all_deals(conn)

    return DealListEnvelope(
        deals=fsm.filter_deals_by_tab(deals, tab),
        counts=fsm.tab_counts(deals),
    )


@router.get("/{deal_id}", response_model=DealEnvelope)
async def get_deal(deal_id: UUID, current_user: CurrentUser = Depends(get_current_user)):
    async with get_connection() as conn:
        deal = await _load_deal(conn, deal_id)
    if current_user.role != "admin":
        _require_participant(deal, current_user)
    return DealEnvelope(deal=deal)


@router.get("/{deal_id}/actions", response_model=DealActionsEnvelope)
async def get_deal_actions(deal_id: UUID, current_user: CurrentUser = Depends(get_current_user)):
    """Actions the caller may take on this deal right now."""
    async with get_connection() as conn:
        deal = await _load_deal(conn, deal_id)
    actor = _require_participant(deal, current_user)
    return DealActionsEnvelope(
        role=actor.value,
        status=deal.status,
        actions=fsm.allowed_actions(deal.status, actor),
    )


# =============================================================================
# Influencer response / brand decision
# =============================================================================

@router.post("/{deal_id}/accept", response_model=DealEnvelope)
async def accept_deal(
    deal_id: UUID,
    background_tasks: BackgroundTasks,
    current_user: CurrentUser = Depends(get_current_user),
):
    """Influencer accepts a request, or brand accepts a counter offer."""
    return await _perform(deal_id, DealAction.ACCEPT, fsm.accept, current_user, background_tasks)


@router.post("/{deal_id}/reject", response_model=DealEnvelope)
async def reject_deal(
    deal_id: UUID,
    background_tasks: BackgroundTasks,
    current_user: CurrentUser = Depends(get_current_user),
):
    return await _perform(deal_id, DealAction.REJECT, fsm.reject, current_user, background_tasks)


@router.post("/{deal_id}/counter-offer", response_model=DealEnvelope)
async def counter_offer_deal(
    deal_id: UUID,
    request: CounterOfferRequest,
    background_tasks: BackgroundTasks,
    current_user: CurrentUser = Depends(require_influencer),
):
    return await _perform(
        deal_id,
        DealAction.COUNTER_OFFER,
        lambda deal, actor: fsm.counter_offer(deal, request.counter_offer),
        current_user,
        background_tasks,
    )


@router.post("/{deal_id}/cancel", response_model=DealEnvelope)
async def cancel_deal(
    deal_id: UUID,
    background_tasks: BackgroundTasks,
    current_user: CurrentUser = Depends(require_brand),
):
    return await _perform(
        deal_id,
        DealAction.CANCEL,
        lambda deal, actor: fsm.cancel(deal),
        current_user,
        background_tasks,
    )


# =============================================================================
# Payment
# =============================================================================

@router.post("/{deal_id}/pay", response_model=DealPaymentEnvelope)
async def pay_deal(
    deal_id: UUID,
    background_tasks: BackgroundTasks,
    request: Optional[PaymentRequest] = None,
    current_user: CurrentUser = Depends(require_brand),
):
    """Record the brand's payment and start the deal.

    The brand pays the agreed price: the accepted counter offer if there was
    one, otherwise the requested total. ``amount`` may be omitted; when given it
    must match that price.
    """
    request = request or PaymentRequest()

    async with get_connection() as conn:
        async with conn.transaction():
            deal = await _load_deal(conn, deal_id)
            actor = _require_participant(deal, current_user)
            updated = _apply(deal, DealAction.PAY, actor, lambda d, a: fsm.pay(d))

            amount = fsm.agreed_amount(deal)
            if request.amount is not None and request.amount != amount:
                raise HTTPException(
                    status_code=status.HTTP_400_BAD_REQUEST,
                    detail=f"Payment amount must equal the agreed price of {amount}",
                )
            if amount <= 0:
                raise HTTPException(
                    status_code=status.HTTP_400_BAD_REQUEST,
                    detail="Payment amount must be greater than zero",
                )
            currency = (request.currency or get_settings().currency).upper()

            saved = await _commit(conn, deal, updated)
            payment = await record_payment(
                conn,
                saved,
                amount,
                currency,
                payment_method=request.payment_method,
                transaction_reference=request.transaction_reference,
            )

    logger.info("[Deals] Brand %s paid %s %s for deal %s", current_user.id, amount, currency, deal_id)
    _notify(background_tasks, DealAction.PAY.value, saved, actor, current_user)
    return DealPaymentEnvelope(message=_SUCCESS_MESSAGES[DealAction.PAY], deal=saved, payment=payment)


@router.post("/{deal_id}/release-payment", response_model=DealEnvelope)
async def release_deal_payment(
    deal_id: UUID,
    background_tasks: BackgroundTasks,
    current_user: CurrentUser = Depends(require_brand),
):
    """Complete the deal and credit the agreed price to the influencer's earnings."""
    async with get_connection() as conn:
        async with conn.transaction():
            deal = await _load_deal(conn, deal_id)
            actor = _require_participant(deal, current_user)
            updated = _apply(
                deal, DealAction.RELEASE_PAYMENT, actor, lambda d, a: fsm.release_payment(d)
            )
            saved = await _commit(conn, deal, updated)
            await credit_influencer_earnings(conn, saved, fsm.agreed_amount(saved))

    logger.info("[Deals] Brand %s released payment for deal %s", current_user.id, deal_id)
    _notify(background_tasks, DealAction.RELEASE_PAYMENT.value, saved, actor, current_user)
    return DealEnvelope(message=_SUCCESS_MESSAGES[DealAction.RELEASE_PAYMENT], deal=saved)


# =============================================================================
# Content
# =============================================================================

@router.post("/{deal_id}/submit", response_model=DealEnvelope)
async def submit_deal_content(
    deal_id: UUID,
    request: ContentSubmitRequest,
    background_tasks: BackgroundTasks,
    current_user: CurrentUser = Depends(require_influencer),
):
    return await _perform(
        deal_id,
        DealAction.SUBMIT_CONTENT,
        lambda deal, actor: fsm.submit_content(
            deal, request.content_type, request.content_url, current_user.id
        ),
        current_user,
        background_tasks,
    )


@router.post("/{deal_id}/approve-content", response_model=DealEnvelope)
async def approve_deal_content(
    deal_id: UUID,
    request: ContentReviewRequest,
    background_tasks: BackgroundTasks,
    current_user: CurrentUser = Depends(require_brand),
):
    return await _perform(
        deal_id,
        DealAction.APPROVE_CONTENT,
        lambda deal, actor: fsm.review_content(deal, request.content_id, approve=True),
        current_user,
        background_tasks,
        content_id=request.content_id,
    )


@router.post("/{deal_id}/reject-content", response_model=DealEnvelope)
async def reject_deal_content(
    deal_id: UUID,
    request: ContentReviewRequest,
    background_tasks: BackgroundTasks,
    current_user: CurrentUser = Depends(require_brand),
):
    return await _perform(
        deal_id,
        DealAction.REJECT_CONTENT,
        lambda deal, actor: fsm.review_content(
            deal, request.content_id, approve=False, comment=request.comment
        ),
        current_user,
        background_tasks,
        content_id=request.content_id,
    )
