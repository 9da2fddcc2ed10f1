"""
User repository functions.

New users always join the default organization; removing a user removes
its memberships and API tokens.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy.orm import Session

from mbee.db import models
from mbee.db.repositories import organizations as org_repo
from mbee.db.repositories.common import FindOptions, apply_find_options
from mbee.utils import token_crypto
from mbee.utils.merge import deep_merge
from mbee.utils.role_permissions import ROLE_WRITE

logger = logging.getLogger(__name__)

PROFILE_FIELDS = ("email", "fname", "lname", "preferred_name")


def get_user(db: Session, username: str) -> Optional[models.User]:
    return db.query(models.User).filter(models.User.username == username).first()


def list_users(
    db: Session,
    *,
    usernames: Optional[Iterable[str]] = None,
    options: Optional[FindOptions] = None,
) -> List[models.User]:
    query = db.query(models.User)
    if usernames is not None:
        query = query.filter(models.User.username.in_(list(usernames)))
    query = query.order_by(models.User.username)
    return apply_find_options(query, models.User, options).all()


def create_user(
    db: Session,
    *,
    username: str,
    password: Optional[str] = None,
    email: Optional[str] = None,
    fname: Optional[str] = None,
    lname: Optional[str] = None,
    preferred_name: Optional[str] = None,
    is_admin: bool = False,
    provider: str = "local",
    custom: Optional[Dict[str, Any]] = None,
    created_by: Optional[str] = None,
) -> models.User:
    user = models.User(
        username=username,
        email=email,
        fname=fname,
        lname=lname,
        preferred_name=preferred_name,
        is_admin=is_admin,
        provider=provider,
        custom=custom or {},
        password_hash=token_crypto.hash_secret(password) if password else None,
        created_by=created_by,
        last_modified_by=created_by,
    )
    db.add(user)
    db.flush()

    default_org = org_repo.ensure_default_org(db)
    org_repo.set_member_role(db, default_org.id, username, ROLE_WRITE)
    logger.info("user_created: username=%s provider=%s", username, provider)
    return user


def update_user(db: Session, user: models.User, changes: Dict[str, Any], *, actor: str) -> models.User:
    for field in PROFILE_FIELDS:
        if field in changes:
            setattr(user, field, changes[field])
    if "is_admin" in changes and changes["is_admin"] is not None:
        user.is_admin = bool(changes["is_admin"])
    if changes.get("custom") is not None:
        user.custom = deep_merge(user.custom, changes["custom"])
    if changes.get("archived") is not None:
        user.mark_archived(bool(changes["archived"]), actor)
    user.last_modified_by = actor
    db.flush()
    return user


def set_password(db: Session, user: models.User, password: str) -> None:
    user.password_hash = token_crypto.hash_secret(password)
    db.flush()


def delete_user(db: Session, user: models.User) -> None:
    username = user.username
    db.query(models.OrganizationMembership).filter(
        models.OrganizationMembership.user_id == username
    ).delete(synchronize_session=False)
    db.query(models.ProjectMembership).filter(
        models.ProjectMembership.user_id == username
    ).delete(synchronize_session=False)
    db.query(models.ApiToken).filter(models.ApiToken.user_id == username).delete(synchronize_session=False)
    db.delete(user)
    db.flush()
    logger.info("user_deleted: username=%s", username)


def ensure_admin_user(db: Session, username: str, password: Optional[str]) -> models.User:
    """Create or promote the bootstrap admin account."""
    user = get_user(db, username)
    if user is None:
        user = create_user(db, username=username, password=password, is_admin=True, provider="local")
    elif not user.is_admin:
        user.is_admin = True
        db.flush()
    db.commit()
    return user
