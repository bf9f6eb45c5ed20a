"""Admin views over all deals."""
from typing import Optional

from fastapi import APIRouter, Depends, Query

from ..database import get_connection
from ..dependencies import require_admin
from ..models.auth import CurrentUser
from ..models.deals import DealListEnvelope, DealStatus
from ..services import deal_state_machine as fsm
from ..services.deal_store import list_all_deals

router = APIRouter()


@router.get("/deals", response_model=DealListEnvelope)
async def list_all_platform_deals(
    status: Optional[DealStatus] = Query(None),
    current_user: CurrentUser = Depends(require_admin),
):
    """Every deal on the platform, newest first."""
    async with get_connection() as conn:
        deals = await list_all_deals(conn)

    counts = fsm.tab_counts(deals)
    if status:
        deals = [deal for deal in deals if deal.status == status]
    return DealListEnvelope(deals=deals, counts=counts)
