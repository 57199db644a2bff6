"""
User controller — the caller's own account.

Profile changes and deletion both require the current password.
Changing the password or deleting the account signs out every device.
"""

from fastapi import APIRouter, Depends, Response

from app.core.cookies import clear_refresh_cookie
from app.core.database import get_store
from app.rbac.dependencies import AuthContext, get_auth_context
from app.schemas import AccountOut, AccountResponse, DeleteMeRequest, MessageResponse, UpdateMeRequest
from app.services import account_service
from app.stores.base import Store

router = APIRouter(prefix="/api/users", tags=["Users"])


@router.get("/me", response_model=AccountResponse)
async def me(
    auth: AuthContext = Depends(get_auth_context),
    store: Store = Depends(get_store),
):
    account = await account_service.get_account(store, auth.account_id)
    return AccountResponse(user=AccountOut(**account.safe_view()))


@router.patch("/me", response_model=AccountResponse)
async def update_me(
    body: UpdateMeRequest,
    auth: AuthContext = Depends(get_auth_context),
    store: Store = Depends(get_store),
):
    account = await account_service.update_account(
        store,
        auth.account_id,
        current_password=body.current_password,
        first_name=body.first_name,
        last_name=body.last_name,
        phone=body.phone,
        date_of_birth=body.date_of_birth,
        avatar_url=body.avatar_url,
        new_password=body.new_password,
    )
    return AccountResponse(message="Profile updated", user=AccountOut(**account.safe_view()))


@router.delete("/me", response_model=MessageResponse)
async def delete_me(
    body: DeleteMeRequest,
    response: Response,
    auth: AuthContext = Depends(get_auth_context),
    store: Store = Depends(get_store),
):
    await account_service.delete_account(store, auth.account_id, body.current_password)
    # clear refresh cookie so this device can't refresh anymore
    clear_refresh_cookie(response)
    return MessageResponse(message="Account deleted")
