"""Account router (API endpoints)."""

from fastapi import APIRouter, Depends

from authcore.features.auth.dependencies import get_current_account

from .models import Account
from .schemas import AccountResponse

router = APIRouter(prefix="/accounts", tags=["Accounts"])


@router.get("/me", response_model=AccountResponse)
async def get_current_account_info(current_account: Account = Depends(get_current_account)):
    """Get the authenticated account."""
    return AccountResponse.model_validate(current_account)
