"""Amount calculation for brand connect requests."""

from __future__ import annotations

from decimal import Decimal
from enum import Enum
from typing import Optional

from ..models.deals import ConnectRequest, ContentRequirements, FixedPricing
from .deal_state_machine import DealValidationError, validate_offer_amount


class PricingMode(str, Enum):
    NEGOTIATION = "negotiation"
    PACKAGE = "package"
    BARTER = "barter"
    FIXED = "fixed"


class DealPricingError(DealValidationError):
    """Raised when a connect request does not carry a usable pricing selection."""


# (content_requirements field, fixed_pricing field)
_FIXED_PRICE_LINES: tuple[tuple[str, str], ...] = (
    ("reels", "reel_price"),
    ("posts", "post_price"),
    ("stories", "story_price"),
    ("lives", "live_price"),
)


def resolve_pricing_mode(request: ConnectRequest) -> PricingMode:
    """Pick the one pricing mode a request uses: negotiation > package > barter > fixed."""
    if request.is_negotiating:
        return PricingMode.NEGOTIATION
    if request.use_package_deals:
        return PricingMode.PACKAGE
    if request.is_product_exchange:
        return PricingMode.BARTER
    return PricingMode.FIXED


def fixed_total(
    requirements: ContentRequirements,
    pricing: Optional[FixedPricing],
) -> Decimal:
    total = Decimal("0")
    if pricing is None:
        return total
    for count_field, price_field in _FIXED_PRICE_LINES:
        count = getattr(requirements, count_field)
        price = getattr(pricing, price_field)
        if count and price is not None:
            total += price * count
    return total


def calculate_total_amount(request: ConnectRequest) -> Decimal:
    mode = resolve_pricing_mode(request)
    if mode == PricingMode.NEGOTIATION:
        return Decimal(request.offer_amount or 0)
    if mode == PricingMode.PACKAGE:
        return request.selected_package.total_price if request.selected_package else Decimal("0")
    if mode == PricingMode.BARTER:
        return Decimal(request.product_price or 0)
    return fixed_total(request.content_requirements, request.fixed_pricing)


def validate_connect_request(request: ConnectRequest) -> PricingMode:
    """Check the selection for the active pricing mode and return that mode."""
    mode = resolve_pricing_mode(request)
    try:
        if mode == PricingMode.NEGOTIATION:
            validate_offer_amount(request.offer_amount, label="Offer amount")
        elif mode == PricingMode.PACKAGE:
            if request.selected_package is None:
                raise DealPricingError("Please select a package")
        elif mode == PricingMode.BARTER:
            if not (request.product_name or "").strip():
                raise DealPricingError("Product name is required for product exchange deals")
            validate_offer_amount(request.product_price, label="Product price")
        elif request.content_requirements.total() == 0:
            raise DealPricingError("Please select at least one content type")
    except DealPricingError:
        raise
    except DealValidationError as exc:
        raise DealPricingError(str(exc)) from exc
    return mode


def price_connect_request(request: ConnectRequest) -> tuple[PricingMode, Decimal]:
    mode = validate_connect_request(request)
    return mode, calculate_total_amount(request)
