import logging

import jwt
from fastapi import Request

from app.core.config import get_settings


logger = logging.getLogger("app.auth")
settings = get_settings()

ACCESS_TOKEN_COOKIE = "access_token"


def decode_access_token(token: str) -> str | None:
    try:
        payload = jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
    except jwt.ExpiredSignatureError:
        return None
    except jwt.PyJWTError:
        logger.warning("Rejected malformed access token")
        return None
    return payload.get("sub")


async def jwt_auth_middleware(request: Request, call_next):
    token = request.cookies.get(ACCESS_TOKEN_COOKIE)
    request.state.user_id = decode_access_token(token) if token else None
    return await call_next(request)
