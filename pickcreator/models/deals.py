from datetime import datetime
from decimal import Decimal
from typing import Optional, Literal
from uuid import UUID
from pydantic import BaseModel, Field


# Deal types
DealStatus = Literal[
    "requested", "counter-offered", "accepted", "ongoing", "content_approved", "completed", "cancelled"
]
PaymentStatus = Literal["unpaid", "paid"]
PricingMode = Literal["negotiation", "package", "barter", "fixed"]
ParticipantStatus = Literal["pending", "accepted", "rejected"]
ContentType = Literal["reel", "post", "story", "live"]
SubmissionStatus = Literal["pending", "approved", "rejected"]
DealTab = Literal["requested", "pending", "ongoing", "history"]
DealRole = Literal["brand", "influencer"]


# Pricing inputs
class ContentRequirements(BaseModel):
    reels: int = Field(default=0, ge=0, le=9)
    posts: int = Field(default=0, ge=0, le=9)
    stories: int = Field(default=0, ge=0, le=9)
    lives: int = Field(default=0, ge=0, le=9)

    def total(self) -> int:
        return self.reels + self.posts + self.stories + self.lives


class FixedPricing(BaseModel):
    """Per-content prices taken from the influencer's profile."""
    reel_price: Optional[Decimal] = Field(default=None, ge=0)
    post_price: Optional[Decimal] = Field(default=None, ge=0)
    story_price: Optional[Decimal] = Field(default=None, ge=0)
    live_price: Optional[Decimal] = Field(default=None, ge=0)


class DealPackage(BaseModel):
    name: str
    included_services: str = ""
    total_price: Decimal = Field(gt=0)


# Embedded documents
class DealInfluencer(BaseModel):
    id: UUID
    name: str
    profile_picture_url: str = ""
    offered_price: Decimal
    status: ParticipantStatus = "pending"
    counter_offer: Optional[Decimal] = None


class ContentSubmission(BaseModel):
    id: UUID
    type: ContentType
    url: str
    submitted_by: UUID
    submitted_at: datetime
    status: SubmissionStatus = "pending"
    comment: Optional[str] = None
    reviewed_at: Optional[datetime] = None


class Deal(BaseModel):
    id: UUID
    brand_id: UUID
    brand_name: str
    brand_profile_pic: str = ""
    company_name: str = ""
    location: str = ""
    deal_name: str
    description: str = ""
    influencers: list[DealInfluencer]
    content_requirements: ContentRequirements
    pricing_mode: PricingMode
    fixed_pricing: Optional[FixedPricing] = None
    use_package_deals: bool = False
    selected_package: Optional[DealPackage] = None
    visit_required: bool = False
    is_negotiating: bool = False
    offer_amount: Decimal = Decimal("0")
    is_product_exchange: bool = False
    product_name: str = ""
    product_price: Decimal = Decimal("0")
    total_amount: Decimal
    status: DealStatus = "requested"
    payment_status: PaymentStatus = "unpaid"
    submitted_content: list[ContentSubmission] = Field(default_factory=list)
    content_published: bool = False
    payment_released: bool = False
    version: int = 1
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


# Request models
class InfluencerRef(BaseModel):
    id: UUID
    name: str
    profile_picture_url: str = ""


class ConnectRequest(BaseModel):
    """Brand connect request that creates a deal."""
    deal_name: str = Field(min_length=1)
    description: str = ""
    influencer: InfluencerRef
    content_requirements: ContentRequirements = Field(default_factory=ContentRequirements)
    fixed_pricing: Optional[FixedPricing] = None
    use_package_deals: bool = False
    selected_package: Optional[DealPackage] = None
    is_negotiating: bool = False
    offer_amount: Optional[Decimal] = None
    is_product_exchange: bool = False
    product_name: Optional[str] = None
    product_price: Optional[Decimal] = None
    visit_required: bool = False


class CounterOfferRequest(BaseModel):
    counter_offer: Decimal


class PaymentRequest(BaseModel):
    amount: Optional[Decimal] = None
    currency: Optional[str] = Field(default=None, min_length=3, max_length=3)
    payment_method: Optional[str] = None
    transaction_reference: Optional[str] = None


class ContentSubmitRequest(BaseModel):
    content_type: ContentType
    content_url: str


class ContentReviewRequest(BaseModel):
    content_id: UUID
    comment: Optional[str] = None


# Response envelopes
class DealEnvelope(BaseModel):
    success: bool = True
    message: Optional[str] = None
    deal: Deal


class DealListEnvelope(BaseModel):
    success: bool = True
    deals: list[Deal]
    counts: dict[str, int]


class DealActionsEnvelope(BaseModel):
    success: bool = True
    role: DealRole
    status: DealStatus
    actions: list[str]


class DealPaymentResponse(BaseModel):
    id: UUID
    deal_id: UUID
    brand_id: UUID
    amount: Decimal
    currency: str
    payment_method: Optional[str]
    transaction_reference: Optional[str]
    created_at: datetime


class DealPaymentEnvelope(DealEnvelope):
    payment: DealPaymentResponse
