import logging
import uuid

from fastapi import APIRouter, Depends, HTTPException, Request, Response, status
from redis.asyncio import Redis
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.auth_middleware import ACCESS_TOKEN_COOKIE
from app.core.config import get_settings
from app.core.errors import AppError, EmailDeliveryError, RateLimitError, ValidationError
from app.db.models import MagicLinkIntent, User
from app.db.postgres import get_db_session
from app.db.redis import get_redis
from app.modules.auth.mailer import Mailer, get_mailer
from app.modules.auth.repository import MagicLinkRepository, UserRepository
from app.modules.auth.schemas import (
    SendLinkRequest,
    SendLinkResponse,
    StatusResponse,
    UserMeResponse,
    VerifyRequest,
    VerifyResponse,
)
from app.modules.auth.service import (
    MagicLinkService,
    check_rate_limit,
    complete_sign_in,
    create_access_token,
    ensure_account_available,
    normalize_email,
)


router = APIRouter(prefix="/auth", tags=["auth"])
logger = logging.getLogger("app.auth")
settings = get_settings()

INVALID_LINK_MESSAGE = "This link is invalid or has expired."
VERIFY_FAILURE_MESSAGE = "We couldn't sign you in. Please try again."

ISSUE_FAILURE_MESSAGES = {
    MagicLinkIntent.LOGIN: "We couldn't send your sign-in link. Please try again.",
    MagicLinkIntent.REGISTER: "We couldn't start your registration. Please try again.",
}


def get_magic_link_store(session: AsyncSession = Depends(get_db_session)) -> MagicLinkRepository:
    return MagicLinkRepository(session)


def get_user_store(session: AsyncSession = Depends(get_db_session)) -> UserRepository:
    return UserRepository(session)


def get_magic_link_service(
    store: MagicLinkRepository = Depends(get_magic_link_store),
) -> MagicLinkService:
    return MagicLinkService(store)


def _get_user_id_from_request(request: Request) -> uuid.UUID:
    user_id = getattr(request.state, "user_id", None)
    try:
        return uuid.UUID(user_id)
    except (TypeError, ValueError):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="unauthorized")


def _to_profile(user: User) -> UserMeResponse:
    return UserMeResponse(
        id=str(user.id),
        email=user.email,
        name=user.name,
        email_verified_at=user.email_verified_at,
        created_at=user.created_at,
    )


@router.post("/send-link", response_model=SendLinkResponse)
async def send_link(
    payload: SendLinkRequest,
    request: Request,
    session: AsyncSession = Depends(get_db_session),
    redis_client: Redis = Depends(get_redis),
    users: UserRepository = Depends(get_user_store),
    service: MagicLinkService = Depends(get_magic_link_service),
    mailer: Mailer = Depends(get_mailer),
):
    email = normalize_email(payload.email)
    intent = MagicLinkIntent(payload.mode)
    name = payload.name.strip() if payload.name else None

    if intent is MagicLinkIntent.REGISTER and not name:
        raise ValidationError("Name is required for registration", code="name_required")

    # Counted before the account lookup; 409 answers use up quota as well.
    client_ip = request.client.host if request.client else None
    allowed = await check_rate_limit(redis_client, email=email, ip=client_ip)
    if not allowed:
        logger.warning("Rate limit hit for email=%s ip=%s", email, client_ip)
        raise RateLimitError(
            "Too many requests. Please wait a few minutes and try again.",
            code="rate_limited",
        )

    try:
        if intent is MagicLinkIntent.REGISTER:
            await ensure_account_available(users, email)
        issued = await service.issue(email, intent, name)
        await session.commit()
    except SQLAlchemyError as exc:
        logger.exception("Failed to issue magic link for %s", email)
        raise AppError(ISSUE_FAILURE_MESSAGES[intent], code="server_error") from exc

    try:
        await mailer.send_verification_email(email, issued.token, intent, name)
    except EmailDeliveryError:
        logger.error("Verification email to %s was not delivered", email)
        raise

    return SendLinkResponse()


@router.post("/verify", response_model=VerifyResponse)
async def verify(
    payload: VerifyRequest,
    response: Response,
    session: AsyncSession = Depends(get_db_session),
    users: UserRepository = Depends(get_user_store),
    service: MagicLinkService = Depends(get_magic_link_service),
):
    try:
        magic_link = await service.redeem(payload.token)
        if magic_link is None:
            raise ValidationError(INVALID_LINK_MESSAGE, code="invalid_or_expired_token")

        user = await complete_sign_in(users, magic_link, service.clock())
        await session.commit()
    except SQLAlchemyError as exc:
        logger.exception("Failed to redeem magic link")
        raise AppError(VERIFY_FAILURE_MESSAGE, code="server_error") from exc

    response.set_cookie(
        ACCESS_TOKEN_COOKIE,
        create_access_token(str(user.id)),
        httponly=True,
        secure=settings.cookie_secure,
        samesite=settings.cookie_samesite,
        domain=settings.cookie_domain,
        max_age=settings.access_token_ttl_minutes * 60,
    )

    return VerifyResponse(user=_to_profile(user))


@router.get("/me", response_model=UserMeResponse)
async def me(
    request: Request,
    users: UserRepository = Depends(get_user_store),
):
    user_id = _get_user_id_from_request(request)
    user = await users.get_by_id(user_id)
    if not user:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="unauthorized")

    return _to_profile(user)


@router.post("/logout", response_model=StatusResponse)
async def logout(response: Response):
    response.delete_cookie(ACCESS_TOKEN_COOKIE, domain=settings.cookie_domain)
    return StatusResponse()
