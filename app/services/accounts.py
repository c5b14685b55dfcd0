import logging
from typing import Optional, Tuple

from cryptography.fernet import InvalidToken
from sqlalchemy.orm import Session

from app.db import crud_accounts, token_crypto
from app.db.models import Account, ScheduledPost
from app.errors import AccountNotFound, NoAccountConnected
from app.services.instagram_api import Credential, InstagramClient

logger = logging.getLogger(__name__)


def _in_scope(acct: Account, post: ScheduledPost) -> bool:
    if post.organization_id:
        return acct.organization_id == post.organization_id
    return acct.user_id == post.user_id and acct.organization_id is None


class AccountResolver:
    """Finds the credential a post should be published with."""

    def resolve(self, db: Session, post: ScheduledPost) -> Credential:
        if post.account_id:
            acct = crud_accounts.get_account(db, post.account_id)
            if not acct or not acct.is_active or not _in_scope(acct, post):
                raise AccountNotFound(f"Account {post.account_id} not found or inactive for this post")
        else:
            acct = crud_accounts.find_active_for_scope(db, post.user_id, post.organization_id)
            if not acct:
                scope = f"organization {post.organization_id}" if post.organization_id else f"user {post.user_id}"
                raise NoAccountConnected(f"No Instagram account connected for {scope}")

        try:
            access_token = token_crypto.decrypt_token(acct.access_token_encrypted)
        except (TypeError, InvalidToken):
            raise AccountNotFound(f"Stored credential for account {acct.id} cannot be decrypted; reconnect it")

        credential = Credential(
            account_id=acct.id,
            platform_user_id=acct.platform_user_id,
            access_token=access_token,
            username=acct.platform_username,
        )

        # best-effort bookkeeping, not part of the publish
        try:
            crud_accounts.touch_last_used(db, acct.id)
        except Exception as e:
            db.rollback()
            logger.warning("Could not update last_used_at for account %s: %s", acct.id, e)

        return credential


def connect_account(
    db: Session,
    user_id: str,
    organization_id: Optional[str],
    access_token: str,
    client: Optional[InstagramClient] = None,
) -> Tuple[Account, bool]:
    """Validate the token against the platform, then create or re-activate the account."""
    client = client or InstagramClient()
    platform_user_id, username = client.get_user_info(access_token)
    acct, created = crud_accounts.upsert_account(
        db,
        user_id=user_id,
        organization_id=organization_id,
        platform_user_id=platform_user_id,
        platform_username=username,
        access_token=access_token,
    )
    logger.info("Account %s (@%s) %s for user=%s org=%s", acct.id, username,
                "connected" if created else "reconnected", user_id, organization_id)
    return acct, created


def disconnect_account(db: Session, account_id: str) -> bool:
    return crud_accounts.deactivate_account(db, account_id)
