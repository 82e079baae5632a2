from __future__ import annotations

from datetime import timedelta
from typing import Any

from jose import JWTError, jwt

from rolevault.configs.settings import Settings
from rolevault.errors import InvalidCredentialError
from rolevault.configs.logging_config import get_logger
from rolevault.utils.time_utils import now_ms, utc_now

log = get_logger(__name__)

SESSION = "session"
PENDING_SECOND_FACTOR = "2fa_pending"


def _encode(claims: dict[str, Any], settings: Settings, ttl: timedelta) -> str:
    now = utc_now()
    payload = dict(claims)
    payload["iat"] = now
    payload["exp"] = now + ttl
    if settings.jwt_issuer:
        payload["iss"] = settings.jwt_issuer
    if settings.jwt_audience:
        payload["aud"] = settings.jwt_audience
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_alg)


def create_session_token(user_id: str, role: str, settings: Settings) -> str:
    log.info("jwt.encode typ=%s sub=%s role=%s", SESSION, user_id, role)
    return _encode(
        {"sub": user_id, "role": role, "typ": SESSION},
        settings,
        timedelta(minutes=settings.jwt_expire_minutes),
    )


def create_pending_token(user_id: str, settings: Settings) -> str:
    log.info("jwt.encode typ=%s sub=%s", PENDING_SECOND_FACTOR, user_id)
    return _encode(
        {
            "sub": user_id,
            "typ": PENDING_SECOND_FACTOR,
            "pending_second_factor": True,
            # finer than iat, so a spent token can be told apart from a fresh one
            "iat_ms": now_ms(),
        },
        settings,
        timedelta(minutes=settings.jwt_pending_expire_minutes),
    )


def decode_token(token: str, settings: Settings) -> dict[str, Any]:
    """
    Decode and validate a JWT (signature, expiry, optional issuer/audience).

    Token type is not checked here; callers gate on ``typ``.
    """
    try:
        options = {"verify_aud": settings.jwt_audience is not None}
        claims = jwt.decode(
            token,
            settings.jwt_secret,
            algorithms=[settings.jwt_alg],
            audience=settings.jwt_audience,
            issuer=settings.jwt_issuer,
            options=options,
        )
        log.debug("jwt.decode ok sub=%s typ=%s", claims.get("sub"), claims.get("typ"))
        return claims
    except JWTError as e:
        log.info("jwt.decode failed: %s", str(e))
        raise InvalidCredentialError() from e
