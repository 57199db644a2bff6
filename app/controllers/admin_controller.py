"""
Admin controller — account deactivation & forced sign-out.

Every route uses `Depends(require_role("admin"))` for enforcement.
Controllers are THIN: they delegate to services and return schemas.
"""

import uuid

from fastapi import APIRouter, Depends

from app.core.database import get_store
from app.models.account import AccountRole
from app.rbac.dependencies import AuthContext, require_role
from app.schemas import MessageResponse
from app.services import account_service, session_service
from app.stores.base import Store

router = APIRouter(prefix="/api/admin", tags=["Admin"])

require_admin = require_role(AccountRole.ADMIN.value)


@router.post("/accounts/{account_id}/deactivate", response_model=MessageResponse)
async def deactivate_account(
    account_id: uuid.UUID,
    admin: AuthContext = Depends(require_admin),
    store: Store = Depends(get_store),
):
    await account_service.deactivate_account(store, account_id)
    return MessageResponse(message="Account deactivated")


@router.post("/accounts/{account_id}/sessions/revoke", response_model=MessageResponse)
async def revoke_account_sessions(
    account_id: uuid.UUID,
    admin: AuthContext = Depends(require_admin),
    store: Store = Depends(get_store),
):
    count = await session_service.revoke_all_sessions(store, account_id)
    return MessageResponse(message=f"Revoked {count} session(s)")
