# app/db/crud_accounts.py
from datetime import datetime, timezone
from typing import Optional, List, Tuple

from sqlalchemy.orm import Session
from app.db.models import Account
from app.db import token_crypto


def _scope_filter(q, user_id: str, organization_id: Optional[str]):
    # org accounts are shared by every member; personal ones only by their owner
    if organization_id:
        return q.filter(Account.organization_id == organization_id)
    return q.filter(Account.user_id == user_id, Account.organization_id.is_(None))


def get_account(db: Session, account_id: str) -> Optional[Account]:
    return db.query(Account).filter(Account.id == account_id).first()


def list_active_accounts(db: Session, user_id: str, organization_id: Optional[str] = None) -> List[Account]:
    q = _scope_filter(db.query(Account), user_id, organization_id)
    return (
        q.filter(Account.is_active.is_(True))
        .order_by(Account.connected_at.desc())
        .all()
    )


def find_active_for_scope(db: Session, user_id: str, organization_id: Optional[str] = None) -> Optional[Account]:
    """Most recently used active account of the scope (never-used accounts last)."""
    q = _scope_filter(db.query(Account), user_id, organization_id)
    return (
        q.filter(Account.is_active.is_(True))
        .order_by(
            Account.last_used_at.is_(None),
            Account.last_used_at.desc(),
            Account.connected_at.desc(),
        )
        .first()
    )


def upsert_account(
    db: Session,
    user_id: str,
    organization_id: Optional[str],
    platform_user_id: str,
    platform_username: Optional[str],
    access_token: str,
) -> Tuple[Account, bool]:
    """Create or re-activate the account. Returns (account, created)."""
    existing = (
        _scope_filter(db.query(Account), user_id, organization_id)
        .filter(Account.platform_user_id == platform_user_id)
        .first()
    )
    enc = token_crypto.encrypt_token(access_token)
    now = datetime.now(timezone.utc)
    if existing:
        existing.access_token_encrypted = enc
        existing.platform_username = platform_username
        existing.is_active = True
        existing.connected_at = now
        db.add(existing)
        db.commit()
        db.refresh(existing)
        return existing, False

    row = Account(
        user_id=user_id,
        organization_id=organization_id,
        platform_user_id=platform_user_id,
        platform_username=platform_username,
        access_token_encrypted=enc,
        is_active=True,
        connected_at=now,
    )
    db.add(row)
    db.commit()
    db.refresh(row)
    return row, True


def deactivate_account(db: Session, account_id: str) -> bool:
    acct = get_account(db, account_id)
    if not acct:
        return False
    acct.is_active = False
    db.add(acct)
    db.commit()
    return True


def touch_last_used(db: Session, account_id: str) -> None:
    acct = get_account(db, account_id)
    if not acct:
        return
    acct.last_used_at = datetime.now(timezone.utc)
    db.add(acct)
    db.commit()
