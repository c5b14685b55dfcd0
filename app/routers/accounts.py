# app/routers/accounts.py
from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from typing import Optional, List, Dict, Any
from sqlalchemy.orm import Session

from app.deps import get_db
from app.db import crud_accounts
from app.db.models import Account
from app.errors import PlatformError
from app.services import accounts as account_service
from app.services import activity

router = APIRouter(prefix="/accounts", tags=["accounts"])


class ConnectIn(BaseModel):
    user_id: str
    organization_id: Optional[str] = None
    access_token: str


def _public(a: Account) -> Dict[str, Any]:
    # never return the token
    return {
        "id": a.id,
        "user_id": a.user_id,
        "organization_id": a.organization_id,
        "platform_user_id": a.platform_user_id,
        "platform_username": a.platform_username,
        "is_active": a.is_active,
        "connected_at": str(a.connected_at) if a.connected_at else None,
        "last_used_at": str(a.last_used_at) if a.last_used_at else None,
    }


@router.post("")
def connect(body: ConnectIn, db: Session = Depends(get_db)):
    try:
        acct, created = account_service.connect_account(
            db, body.user_id, body.organization_id, body.access_token,
        )
    except PlatformError as e:
        raise HTTPException(400, f"Invalid token or Instagram account not reachable: {e}")
    activity.log_activity(
        "settings", activity.ACCOUNT_CONNECT,
        user_id=body.user_id, organization_id=body.organization_id,
        entity_type="account", entity_id=acct.id,
        details={"username": acct.platform_username, "created": created},
    )
    return JSONResponse(
        status_code=201 if created else 200,
        content={"status": "connected" if created else "reconnected", "account": _public(acct)},
    )


@router.get("")
def list_accounts(user_id: str, organization_id: Optional[str] = None, db: Session = Depends(get_db)) -> List[Dict[str, Any]]:
    return [_public(a) for a in crud_accounts.list_active_accounts(db, user_id, organization_id)]


@router.delete("/{account_id}")
def disconnect(account_id: str, db: Session = Depends(get_db)) -> Dict[str, Any]:
    if not account_service.disconnect_account(db, account_id):
        raise HTTPException(404, "Account not found")
    activity.log_activity(
        "settings", activity.ACCOUNT_DISCONNECT,
        entity_type="account", entity_id=account_id,
    )
    return {"status": "disconnected", "id": account_id}
