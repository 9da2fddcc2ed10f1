"""
Repositories for login API tokens.

Implements create/get/revoke and last-used updates.
"""
from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Optional, Tuple

from sqlalchemy.orm import Session

from mbee.db import models
from mbee.utils import token_crypto


def _now() -> datetime:
    return datetime.now(timezone.utc)


def create_token(
    db: Session,
    *,
    user_id: str,
    ttl_minutes: Optional[int] = None,
    name: str = "login",
) -> Tuple[models.ApiToken, str]:
    token_id, secret, full_token = token_crypto.generate_token()
    now = _now()
    token = models.ApiToken(
        user_id=user_id,
        token_id=token_id,
        token_hash=token_crypto.hash_secret(secret),
        name=name,
        status="active",
        created_at=now,
        expires_at=now + timedelta(minutes=ttl_minutes) if ttl_minutes else None,
    )
    db.add(token)
    db.commit()
    db.refresh(token)
    return token, full_token


def get_by_token_id(db: Session, *, token_id: str) -> Optional[models.ApiToken]:
    return (
        db.query(models.ApiToken)
        .filter(models.ApiToken.token_id == token_id)
        .first()
    )


def is_expired(token: models.ApiToken) -> bool:
    if token.expires_at is None:
        return False
    expires = token.expires_at
    # sqlite hands back naive datetimes
    if expires.tzinfo is None:
        expires = expires.replace(tzinfo=timezone.utc)
    return _now() > expires


def revoke_token(db: Session, token: models.ApiToken) -> models.ApiToken:
    if token.status == "revoked":
        return token
    token.status = "revoked"
    token.revoked_at = _now()
    db.commit()
    db.refresh(token)
    return token


def mark_used_now(db: Session, token: models.ApiToken) -> None:
    token.last_used_at = _now()
    db.commit()
