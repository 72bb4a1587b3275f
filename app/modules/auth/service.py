import hashlib
import logging
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Protocol

import jwt

from app.core.config import get_settings
from app.core.errors import ConflictError, ValidationError
from app.db.models import MagicLink, MagicLinkIntent, User


logger = logging.getLogger("app.auth")

settings = get_settings()


class MagicLinkStore(Protocol):
    async def find_active_by_email(self, email: str, now: datetime) -> MagicLink | None: ...

    async def invalidate_all_for_email(self, email: str, now: datetime) -> int: ...

    async def insert(self, magic_link: MagicLink) -> MagicLink: ...

    async def find_and_consume_by_token(self, token_hash: str, now: datetime) -> MagicLink | None: ...


class UserStore(Protocol):
    async def get_by_email(self, email: str) -> User | None: ...

    async def create(self, email: str, name: str | None, verified_at: datetime | None) -> User: ...


@dataclass(frozen=True)
class IssuedMagicLink:
    """A freshly issued link: the bearer token goes in the email, the record stays in storage."""

    token: str
    record: MagicLink


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def normalize_email(email: str) -> str:
    return email.strip().lower()


def _hash_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def _generate_token() -> str:
    # 32 random bytes -> 64 hex chars, 256 bits of entropy.
    return secrets.token_hex(32)


def create_access_token(user_id: str) -> str:
    now = utcnow()
    payload = {
        "sub": user_id,
        "iat": int(now.timestamp()),
        "exp": int((now + timedelta(minutes=settings.access_token_ttl_minutes)).timestamp()),
    }
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


async def check_rate_limit(redis_client, email: str, ip: str | None) -> bool:
    if not ip:
        ip = "unknown"

    key_email = f"rl:magic:email:{email}"
    key_ip = f"rl:magic:ip:{ip}"

    pipe = redis_client.pipeline()
    pipe.incr(key_email)
    pipe.expire(key_email, settings.rate_limit_window_seconds)
    pipe.incr(key_ip)
    pipe.expire(key_ip, settings.rate_limit_window_seconds)
    results = await pipe.execute()

    email_count = results[0]
    ip_count = results[2]

    if email_count > settings.rate_limit_max or ip_count > settings.rate_limit_max:
        return False

    return True


class MagicLinkService:
    """Issues and redeems single-use, time-boxed sign-in tokens.

    Holds no state of its own; every record lives in ``store``.
    """

    def __init__(
        self,
        store: MagicLinkStore,
        ttl: timedelta | None = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.store = store
        self.ttl = ttl if ttl is not None else timedelta(minutes=settings.magic_link_ttl_minutes)
        self.clock = clock

    async def issue(
        self,
        subject_email: str,
        intent: MagicLinkIntent,
        display_name: str | None = None,
    ) -> IssuedMagicLink:
        """Invalidate outstanding links for the email and persist a new one.

        Raises:
            ValidationError: if the email is blank.
        """
        email = normalize_email(subject_email or "")
        if not email:
            raise ValidationError("Email is required", code="email_required")

        now = self.clock()
        invalidated = await self.store.invalidate_all_for_email(email, now)

        token = _generate_token()
        record = MagicLink(
            email=email,
            token_hash=_hash_token(token),
            intent=intent,
            display_name=(display_name or "").strip() or None,
            expires_at=now + self.ttl,
            consumed=False,
            created_at=now,
        )
        record = await self.store.insert(record)

        logger.info(
            "Magic link issued for %s intent=%s invalidated=%d", email, intent.value, invalidated
        )
        return IssuedMagicLink(token=token, record=record)

    async def redeem(self, token: str) -> MagicLink | None:
        """Consume a token, returning its record or None.

        None covers unknown, expired and already-used tokens alike.
        """
        if not token:
            return None

        record = await self.store.find_and_consume_by_token(_hash_token(token), self.clock())
        if record is None:
            logger.info("Magic link redemption missed")
            return None

        logger.info("Magic link redeemed for %s intent=%s", record.email, record.intent.value)
        return record


async def ensure_account_available(users: UserStore, email: str) -> None:
    """Reject a registration for an email that already has an account."""
    if await users.get_by_email(normalize_email(email)) is not None:
        raise ConflictError(
            "Email already in use. Please sign in instead.",
            code="email_in_use",
        )


async def complete_sign_in(users: UserStore, magic_link: MagicLink, now: datetime) -> User:
    """Resolve the account behind a redeemed link, provisioning it on first use."""
    user = await users.get_by_email(magic_link.email)
    if user is None:
        user = await users.create(
            email=magic_link.email,
            name=magic_link.display_name,
            verified_at=now,
        )
        logger.info("Account created for %s via %s link", user.email, magic_link.intent.value)
        return user

    if not user.name and magic_link.display_name:
        user.name = magic_link.display_name
    if user.email_verified_at is None:
        user.email_verified_at = now
    return user
