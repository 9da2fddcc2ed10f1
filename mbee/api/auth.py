"""
Authentication strategies and identity resolution.

The active strategy is chosen by ``MBEE_AUTH_STRATEGY``:

- ``local``: HTTP Basic credentials checked against stored password hashes.
- ``proxy``: identity taken from the headers of a trusted authenticating
  proxy (oauth2-proxy style); unknown users are provisioned on first sight.

Both strategies accept ``Authorization: Bearer`` API tokens issued by
``POST /login``.
"""
import base64
import binascii
import logging
from typing import Any, Dict, List, Mapping, Optional, Tuple

from fastapi import HTTPException, status
from sqlalchemy.orm import Session

from mbee.config import get_config
from mbee.db import models
from mbee.db.repositories import tokens as token_repo
from mbee.db.repositories import users as user_repo
from mbee.utils.ids import is_valid_username
from mbee.utils.token_crypto import parse_token, verify_secret

logger = logging.getLogger(__name__)


def _unauthorized(detail: str = "Authentication required") -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Basic"},
    )


def parse_basic_auth(authorization: Optional[str]) -> Optional[Tuple[str, str]]:
    """Return (username, password) from a Basic Authorization header."""
    if not authorization or not authorization.lower().startswith("basic "):
        return None
    try:
        decoded = base64.b64decode(authorization[6:].strip()).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError):
        raise _unauthorized("Malformed basic credentials")
    username, sep, password = decoded.partition(":")
    if not sep:
        raise _unauthorized("Malformed basic credentials")
    return username, password


def parse_bearer_token(authorization: Optional[str]) -> Optional[str]:
    if authorization and authorization.lower().startswith("bearer "):
        return authorization[7:].strip()
    return None


def resolve_identity_from_headers(headers: Mapping[str, str]) -> Tuple[Optional[str], Optional[str]]:
    user = headers.get("x-auth-request-user") or headers.get("x-forwarded-user")
    email = headers.get("x-auth-request-email") or headers.get("x-forwarded-email")
    return (user.strip().lower() if user else None), (email.strip().lower() if email else None)


def _ensure_active(user: Optional[models.User]) -> models.User:
    if user is None:
        raise _unauthorized("Invalid username or password")
    if user.archived:
        raise _unauthorized("User account is archived")
    return user


class BaseStrategy:
    """Common interface of the authentication strategies."""

    name = "base"

    def authenticate(self, db: Session, headers: Mapping[str, str]) -> Optional[models.User]:
        """Return the authenticated user, None when no credentials were sent.

        Raises 401 when credentials are present but invalid.
        """
        token = parse_bearer_token(headers.get("authorization"))
        if token:
            return self.authenticate_token(db, token)
        return self.authenticate_credentials(db, headers)

    def authenticate_credentials(self, db: Session, headers: Mapping[str, str]) -> Optional[models.User]:
        raise NotImplementedError

    def authenticate_token(self, db: Session, raw_token: str) -> models.User:
        parsed = parse_token(raw_token)
        if not parsed:
            raise _unauthorized("Invalid token format")
        api_token = token_repo.get_by_token_id(db, token_id=parsed.token_id)
        if not api_token or not verify_secret(parsed.secret, api_token.token_hash):
            raise _unauthorized("Invalid token")
        if api_token.status != "active":
            raise _unauthorized("Token not active")
        if token_repo.is_expired(api_token):
            raise _unauthorized("Token expired")
        user = _ensure_active(user_repo.get_user(db, api_token.user_id))
        token_repo.mark_used_now(db, api_token)
        return user

    def handle_token_login(self, db: Session, user: models.User) -> Tuple[models.ApiToken, str]:
        return token_repo.create_token(db, user_id=user.username, ttl_minutes=get_config().token_ttl_minutes)


class LocalStrategy(BaseStrategy):
    name = "local"

    def authenticate_credentials(self, db: Session, headers: Mapping[str, str]) -> Optional[models.User]:
        creds = parse_basic_auth(headers.get("authorization"))
        if creds is None:
            return None
        username, password = creds
        user = user_repo.get_user(db, username.strip().lower())
        if user is None or user.provider != "local" or not verify_secret(password, user.password_hash):
            logger.info("login_failed: username=%s", username)
            raise _unauthorized("Invalid username or password")
        return _ensure_active(user)


class ProxyHeaderStrategy(BaseStrategy):
    name = "proxy"

    def authenticate_credentials(self, db: Session, headers: Mapping[str, str]) -> Optional[models.User]:
        username, email = resolve_identity_from_headers(headers)
        if not username and email:
            username = email.split("@")[0]
        if not username:
            return None
        if not is_valid_username(username):
            raise _unauthorized("Proxy supplied an invalid username")
        return _ensure_active(get_or_create_user(db, username, email=email))


_STRATEGIES = {
    LocalStrategy.name: LocalStrategy,
    ProxyHeaderStrategy.name: ProxyHeaderStrategy,
}


def get_strategy() -> BaseStrategy:
    return _STRATEGIES[get_config().auth_strategy]()


def get_or_create_user(db: Session, username: str, email: Optional[str] = None) -> models.User:
    user = user_repo.get_user(db, username)
    admins = get_config().admin_usernames
    if user is None:
        user = user_repo.create_user(
            db,
            username=username,
            email=email,
            is_admin=username in admins,
            provider="proxy",
        )
        db.commit()
        db.refresh(user)
        return user
    # Existing users might predate a new MBEE_ADMIN_USERNAMES value
    if username in admins and not user.is_admin:
        user.is_admin = True
        db.commit()
        db.refresh(user)
    return user


def get_user_memberships(db: Session, username: str) -> Tuple[List[Dict[str, Any]], List[Dict[str, Any]]]:
    """Return (org memberships, project memberships) as plain dicts."""
    org_rows = (
        db.query(models.OrganizationMembership)
        .filter(models.OrganizationMembership.user_id == username)
        .all()
    )
    project_rows = (
        db.query(models.ProjectMembership)
        .filter(models.ProjectMembership.user_id == username)
        .all()
    )
    orgs = [{"organization_id": m.organization_id, "role": m.role} for m in org_rows]
    projects = [{"project_id": m.project_id, "role": m.role} for m in project_rows]
    return orgs, projects


def build_user_context(db: Session, user: models.User) -> Dict[str, Any]:
    org_memberships, project_memberships = get_user_memberships(db, user.username)
    return {
        "username": user.username,
        "email": user.email,
        "is_admin": bool(user.is_admin),
        "memberships": org_memberships,
        "memberships_by_org": {m["organization_id"]: m for m in org_memberships},
        "memberships_by_project": {m["project_id"]: m for m in project_memberships},
    }


def bootstrap_admin(db: Session) -> Optional[models.User]:
    """Create the configured bootstrap admin, if any."""
    cfg = get_config()
    if not cfg.admin_username:
        return None
    if not is_valid_username(cfg.admin_username):
        logger.error("bootstrap_admin_skipped: invalid username %r", cfg.admin_username)
        return None
    user = user_repo.ensure_admin_user(db, cfg.admin_username, cfg.admin_password)
    logger.info("bootstrap_admin_ready: username=%s", user.username)
    return user
