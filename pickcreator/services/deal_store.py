"""Deal persistence on asyncpg.

Nested participant and submission records are stored as JSONB documents on
the ``deals`` row. Mutations go through ``commit_transition``, which only
writes when the row still carries the version that was read.
"""

import json
import logging
from decimal import Decimal
from typing import Any, Optional
from uuid import UUID

from ..models.deals import Deal, DealPaymentResponse

logger = logging.getLogger(__name__)


class DealConflictError(RuntimeError):
    """Raised when a deal changed between read and conditional write."""


INSERT_COLUMNS: tuple[str, ...] = (
    "id",
    "brand_id",
    "brand_name",
    "brand_profile_pic",
    "company_name",
    "location",
    "deal_name",
    "description",
    "influencers",
    "content_requirements",
    "pricing_mode",
    "fixed_pricing",
    "use_package_deals",
    "selected_package",
    "visit_required",
    "is_negotiating",
    "offer_amount",
    "is_product_exchange",
    "product_name",
    "product_price",
    "total_amount",
)

# Columns rewritten by a state transition, after (id, version)
TRANSITION_COLUMNS: tuple[str, ...] = (
    "status",
    "payment_status",
    "influencers",
    "submitted_content",
    "content_published",
    "payment_released",
)

_JSON_COLUMNS = frozenset({
    "influencers",
    "content_requirements",
    "fixed_pricing",
    "selected_package",
    "submitted_content",
})


def parse_jsonb(value):
    """Parse JSONB value from database."""
    if isinstance(value, str):
        return json.loads(value)
    return value


def _dump_jsonb(value: Any) -> Optional[str]:
    if value is None:
        return None
    return json.dumps(value)


def row_to_deal(row) -> Deal:
    data = dict(row)
    for column in _JSON_COLUMNS:
        if column in data:
            data[column] = parse_jsonb(data[column])
    return Deal.model_validate(data)


def _deal_value(deal: Deal, column: str) -> Any:
    value = getattr(deal, column)
    if column in _JSON_COLUMNS:
        if isinstance(value, list):
            return _dump_jsonb([item.model_dump(mode="json") for item in value])
        return _dump_jsonb(value.model_dump(mode="json") if value is not None else None)
    return value


async def insert_deal(conn, deal: Deal) -> Deal:
    """Insert a new deal; status, payment flags, version and timestamps take their defaults."""
    placeholders = ", ".join(f"${i}" for i in range(1, len(INSERT_COLUMNS) + 1))
    row = await conn.fetchrow(
        f"""INSERT INTO deals ({", ".join(INSERT_COLUMNS)})
            VALUES ({placeholders})
            RETURNING *""",
        *(_deal_value(deal, column) for column in INSERT_COLUMNS),
    )
    created = row_to_deal(row)
    logger.info("[Deals] Created deal %s for brand %s (%s)", created.id, created.brand_id, created.total_amount)
    return created


async def fetch_deal(conn, deal_id: UUID) -> Optional[Deal]:
    row = await conn.fetchrow("SELECT * FROM deals WHERE id = $1", deal_id)
    return row_to_deal(row) if row else None


async def list_brand_deals(conn, brand_id: UUID) -> list[Deal]:
    rows = await conn.fetch(
        "SELECT * FROM deals WHERE brand_id = $1 ORDER BY created_at DESC",
        brand_id,
    )
    return [row_to_deal(row) for row in rows]


async def list_influencer_deals(conn, influencer_id: UUID) -> list[Deal]:
    rows = await conn.fetch(
        "SELECT * FROM deals WHERE influencers @> $1::jsonb ORDER BY created_at DESC",
        json.dumps([{"id": str(influencer_id)}]),
    )
    return [row_to_deal(row) for row in rows]


async def list_all_deals(conn) -> list[Deal]:
    rows = await conn.fetch("SELECT * FROM deals ORDER BY created_at DESC")
    return [row_to_deal(row) for row in rows]


async def commit_transition(conn, before: Deal, after: Deal) -> Deal:
    """Persist ``after`` only if the row is still at ``before.version``.

    ``payment_released`` is OR-ed with the stored value so a write can never
    clear it.
    """
    row = await conn.fetchrow(
        """UPDATE deals
           SET status = $3,
               payment_status = $4,
               influencers = $5,
               submitted_content = $6,
               content_published = $7,
               payment_released = payment_released OR $8,
               version = version + 1,
               updated_at = NOW()
           WHERE id = $1 AND version = $2
           RETURNING *""",
        before.id,
        before.version,
        *(_deal_value(after, column) for column in TRANSITION_COLUMNS),
    )
    if row is None:
        logger.warning(
            "[Deals] Conflicting update on deal %s (expected version %s, %s -> %s)",
            before.id, before.version, before.status, after.status,
        )
        raise DealConflictError("Deal was modified by another request; reload and try again")

    saved = row_to_deal(row)
    if before.status != saved.status:
        logger.info("[Deals] Deal %s moved %s -> %s", saved.id, before.status, saved.status)
    return saved


async def record_payment(
    conn,
    deal: Deal,
    amount: Decimal,
    currency: str,
    payment_method: Optional[str] = None,
    transaction_reference: Optional[str] = None,
) -> DealPaymentResponse:
    row = await conn.fetchrow(
        """INSERT INTO deal_payments
           (deal_id, brand_id, amount, currency, payment_method, transaction_reference)
           VALUES ($1, $2, $3, $4, $5, $6)
           RETURNING *""",
        deal.id,
        deal.brand_id,
        amount,
        currency,
        payment_method,
        transaction_reference,
    )
    return DealPaymentResponse(**dict(row))


async def credit_influencer_earnings(conn, deal: Deal, amount: Decimal) -> None:
    """Add a released deal's payout to each participating influencer's earnings."""
    for influencer in deal.influencers:
        result = await conn.execute(
            """UPDATE users
               SET earnings = earnings + $2, updated_at = NOW()
               WHERE id = $1 AND role = 'influencer'""",
            influencer.id,
            amount,
        )
        if result == "UPDATE 0":
            logger.warning("[Deals] Influencer %s for deal %s no longer exists; earnings not credited", influencer.id, deal.id)
        else:
            logger.info("[Deals] Credited %s to influencer %s for deal %s", amount, influencer.id, deal.id)
