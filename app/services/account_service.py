"""
Account service — profile reads & updates, deletion, deactivation.

Every operation that invalidates existing credentials (password change,
deletion, admin deactivation) calls
`session_service.revoke_all_sessions` explicitly.
"""

import logging
import uuid
from datetime import date

from app.core.errors import AccountNotFound, Conflict, WrongPassword
from app.core.security import hash_password, verify_password
from app.models.account import Account
from app.services import session_service
from app.services.auth_service import normalize_phone
from app.stores.base import Store
from app.stores.errors import DuplicateKey

logger = logging.getLogger(__name__)


async def get_account(store: Store, account_id: uuid.UUID) -> Account:
    account = await store.accounts.get_by_id(account_id)
    if account is None:
        raise AccountNotFound()
    return account


async def _confirm_password(store: Store, account_id: uuid.UUID, current_password: str) -> Account:
    account = await get_account(store, account_id)
    if not verify_password(current_password, account.password_hash):
        raise WrongPassword()
    return account


async def update_account(
    store: Store,
    account_id: uuid.UUID,
    *,
    current_password: str,
    first_name: str | None = None,
    last_name: str | None = None,
    phone: str | None = None,
    date_of_birth: date | None = None,
    avatar_url: str | None = None,
    new_password: str | None = None,
) -> Account:
    """
    Update the caller's own profile.

    Requires the current password.  Only the allow-listed fields below
    are editable; a new password revokes every session of the account.
    """
    await _confirm_password(store, account_id, current_password)

    values: dict = {}
    if first_name is not None:
        values["first_name"] = first_name.strip()
    if last_name is not None:
        values["last_name"] = last_name.strip()
    if phone is not None:
        values["phone"] = normalize_phone(phone)
        taken = await store.accounts.find_conflicts(None, values["phone"], exclude_id=account_id)
        if taken:
            raise Conflict(taken)
    if date_of_birth is not None:
        values["date_of_birth"] = date_of_birth
    if avatar_url is not None:
        values["avatar_url"] = avatar_url
    if new_password:
        values["password_hash"] = hash_password(new_password)

    try:
        account = await store.accounts.update(account_id, values)
    except DuplicateKey as err:
        raise Conflict(err.fields)
    if account is None:
        raise AccountNotFound()

    if new_password:
        await session_service.revoke_all_sessions(store, account_id)
        logger.info("Password changed for account %s", account_id)
    return account


async def delete_account(store: Store, account_id: uuid.UUID, current_password: str) -> None:
    """Revoke every session, then hard-delete the account."""
    await _confirm_password(store, account_id, current_password)
    await session_service.revoke_all_sessions(store, account_id)
    await store.accounts.delete(account_id)
    logger.info("Account %s deleted", account_id)


async def deactivate_account(store: Store, account_id: uuid.UUID) -> Account:
    """Admin action: disable an account and invalidate all its sessions."""
    account = await store.accounts.update(account_id, {"is_active": False})
    if account is None:
        raise AccountNotFound()
    # Immediately invalidate every active session for this account
    await session_service.revoke_all_sessions(store, account_id)
    logger.info("Account %s deactivated", account_id)
    return account
