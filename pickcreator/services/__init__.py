from .deal_pricing import PricingMode, price_connect_request
from .deal_state_machine import Actor, DealAction, DealState

__all__ = [
    "PricingMode",
    "price_connect_request",
    "Actor",
    "DealAction",
    "DealState",
]
