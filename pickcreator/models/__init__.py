from .auth import CurrentUser, TokenPayload, UserRole
from .deals import (
    ConnectRequest,
    ContentRequirements,
    ContentSubmission,
    Deal,
    DealInfluencer,
    DealPackage,
    FixedPricing,
)

__all__ = [
    "CurrentUser",
    "TokenPayload",
    "UserRole",
    "ConnectRequest",
    "ContentRequirements",
    "ContentSubmission",
    "Deal",
    "DealInfluencer",
    "DealPackage",
    "FixedPricing",
]
