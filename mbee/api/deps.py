"""
API dependency helpers.

Provides the authenticated user context and common list options for routes.
"""
from typing import Any, Dict, Optional, Tuple

from fastapi import Depends, HTTPException, Query, Request, status
from sqlalchemy.orm import Session

from mbee.api.auth import build_user_context, get_strategy
from mbee.db import models
from mbee.db.database import get_db
from mbee.db.repositories.common import FindOptions

# Contract:
# Returns (sqlalchemy User model, current_user_context_dict)
# Raises 401 if identity cannot be resolved.


def get_current_user_context(
    request: Request,
    db: Session = Depends(get_db),
) -> Tuple[models.User, Dict[str, Any]]:
    user = get_strategy().authenticate(db, request.headers)
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication required",
            headers={"WWW-Authenticate": "Basic"},
        )
    return user, build_user_context(db, user)


def require_system_admin(user_context=Depends(get_current_user_context)) -> Tuple[models.User, Dict[str, Any]]:
    _user, current_user = user_context
    if not current_user.get("is_admin"):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="System admin access required")
    return user_context


def get_find_options(
    include_archived: bool = Query(default=False),
    archived: Optional[bool] = Query(default=None),
    skip: int = Query(default=0, ge=0),
    limit: Optional[int] = Query(default=None, ge=1, le=10000),
) -> FindOptions:
    return FindOptions(include_archived=include_archived, archived=archived, skip=skip, limit=limit)


def split_ids(ids: Optional[str]) -> Optional[list]:
    """Parse a comma separated ``ids`` query parameter."""
    if ids is None:
        return None
    return [i.strip() for i in ids.split(",") if i.strip()]


def as_list(payload) -> list:
    """Bulk endpoints accept one object or a list of them."""
    return list(payload) if isinstance(payload, list) else [payload]


def ensure_unique(values, kind: str) -> None:
    seen = set()
    for value in values:
        if value in seen:
            raise HTTPException(status_code=400, detail=f"Duplicate {kind} id [{value}] in request")
        seen.add(value)
