from fastapi import APIRouter, Depends

from streamwatch.deps import get_user_id, get_identity
from streamwatch.services.identity import IdentityResolver

router = APIRouter(prefix="/api/session", tags=["session"])


@router.post("/sign-out", status_code=204)
async def sign_out(
    user_id: str = Depends(get_user_id),
    identity: IdentityResolver = Depends(get_identity),
):
    """Drop everything cached for the user; listeners registered at startup do the rest."""
    await identity.sign_out(user_id)
