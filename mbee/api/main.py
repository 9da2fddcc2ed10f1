"""
FastAPI app assembly: middleware and router wiring.
Includes the session endpoints (login/logout) and service metadata.
"""
import logging
import os
import time
from contextlib import asynccontextmanager

from fastapi import APIRouter, Depends, FastAPI, HTTPException, Request, status
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from starlette.responses import JSONResponse

from mbee import __version__

# Configure logging
LOG_LEVEL_NAME = os.getenv("LOG_LEVEL", "INFO").upper()
LOG_LEVEL = getattr(logging, LOG_LEVEL_NAME, logging.INFO)
logging.basicConfig(level=LOG_LEVEL)
logger = logging.getLogger(__name__)
logger.setLevel(LOG_LEVEL)
logger.info("app_startup: log_level=%s", LOG_LEVEL_NAME)

from mbee.api.artifacts import router as artifacts_router
from mbee.api.audits import router as audits_router
from mbee.api.auth import bootstrap_admin, get_strategy, parse_bearer_token
from mbee.api.branches import router as branches_router
from mbee.api.deps import get_current_user_context
from mbee.api.elements import router as elements_router
from mbee.api.orgs import router as orgs_router
from mbee.api.projects import router as projects_router
from mbee.api.public_data import user_public
from mbee.api.users import router as users_router
from mbee.api.webhooks import router as webhooks_router
from mbee.audit import AuditAction, AuditStatus, log
from mbee.config import get_config
from mbee.db import schemas
from mbee.db.database import SessionLocal, ensure_sqlite_schema, get_db
from mbee.db.repositories import organizations as org_repo
from mbee.db.repositories import tokens as token_repo
from mbee.services import register_webhook_listener
from mbee.utils.token_crypto import parse_token

# Paths that accept writes without user credentials; they authenticate on their own
GUEST_WRITE_PREFIXES = ("/webhooks/trigger/",)


def initialize_server() -> None:
    """Prepare the database and the default records the server relies on."""
    ensure_sqlite_schema()
    db = SessionLocal()
    try:
        org_repo.ensure_default_org(db)
        db.commit()
        bootstrap_admin(db)
    finally:
        db.close()
    register_webhook_listener()


@asynccontextmanager
async def lifespan(_app: FastAPI):
    initialize_server()
    yield


app = FastAPI(
    title="MBEE Model Service",
    description="API for organizations, projects, branches and model elements with permission cascades and webhooks.",
    version=__version__,
    lifespan=lifespan,
)

# Avoid implicit trailing-slash redirects for predictable URLs
app.router.redirect_slashes = False

app.add_middleware(
    CORSMiddleware,
    allow_origins=get_config().cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Middleware: enforce read-only for unauthenticated requests
@app.middleware("http")
async def enforce_readonly_for_guests(request: Request, call_next):
    if request.method in ("POST", "PUT", "PATCH", "DELETE") and not get_config().allow_guest_writes:
        path = request.url.path or ""
        if path.startswith(GUEST_WRITE_PREFIXES):
            return await call_next(request)
        h = request.headers
        user_present = (
            h.get("x-auth-request-user")
            or h.get("x-auth-request-email")
            or h.get("x-forwarded-user")
            or h.get("x-forwarded-email")
        )
        if not user_present and not h.get("authorization"):
            return JSONResponse(
                {"detail": "Guest mode is read-only. Sign in to perform changes."},
                status_code=status.HTTP_401_UNAUTHORIZED,
            )
    return await call_next(request)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    started = time.perf_counter()
    response = await call_next(request)
    logger.info(
        "request: method=%s path=%s status=%s duration_ms=%.1f",
        request.method, request.url.path, response.status_code, (time.perf_counter() - started) * 1000,
    )
    return response


@app.exception_handler(IntegrityError)
async def integrity_error_handler(request: Request, exc: IntegrityError):
    logger.warning("integrity_error: path=%s error=%s", request.url.path, exc.orig)
    return JSONResponse({"detail": "The request conflicts with existing data"}, status_code=status.HTTP_409_CONFLICT)


router = APIRouter()


@router.post("/login", response_model=schemas.LoginResponse)
def login(request: Request, db: Session = Depends(get_db)):
    """Exchange credentials (Basic auth or proxy headers) for a bearer token."""
    strategy = get_strategy()
    user = strategy.authenticate_credentials(db, request.headers)
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication required",
            headers={"WWW-Authenticate": "Basic"},
        )
    token, full_token = strategy.handle_token_login(db, user)
    log(db, action=AuditAction.TOKEN_CREATE, status=AuditStatus.SUCCESS, target_type="token",
        target_id=str(token.id), actor_user_id=user.username)
    return schemas.LoginResponse(
        token=full_token,
        expires_at=token.expires_at.isoformat() if token.expires_at else None,
        user=user_public(user),
    )


@router.post("/logout")
def logout(
    request: Request,
    db: Session = Depends(get_db),
    user_context = Depends(get_current_user_context),
):
    """Revoke the bearer token used for this request."""
    user, _ctx = user_context
    raw = parse_bearer_token(request.headers.get("authorization"))
    parsed = parse_token(raw) if raw else None
    if parsed is None:
        raise HTTPException(status_code=400, detail="Logout requires a bearer token")
    token = token_repo.get_by_token_id(db, token_id=parsed.token_id)
    token_repo.revoke_token(db, token)
    log(db, action=AuditAction.TOKEN_REVOKE, status=AuditStatus.SUCCESS, target_type="token",
        target_id=str(token.id), actor_user_id=user.username)
    return {"message": "Logged out"}


@router.get("/version")
def get_version():
    """Return version and build information for the running service."""
    return {
        "version": __version__,
        "build_sha": os.getenv("BUILD_SHA") or None,
        "build_timestamp": os.getenv("BUILD_TIMESTAMP") or None,
        "service_name": "mbee",
    }


app.include_router(router)
app.include_router(users_router)
app.include_router(orgs_router)
app.include_router(projects_router)
app.include_router(branches_router)
app.include_router(elements_router)
app.include_router(artifacts_router)
app.include_router(webhooks_router)
app.include_router(audits_router)


@app.get("/health")
def health_check():
    return {"status": "ok", "service": "mbee"}
