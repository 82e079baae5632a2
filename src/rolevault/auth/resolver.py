from __future__ import annotations

from typing import Any, Optional

from rolevault.auth.jwt import PENDING_SECOND_FACTOR, SESSION, decode_token
from rolevault.auth.models import Principal, SecondFactorChallenge
from rolevault.configs.settings import Settings
from rolevault.errors import AuthError, InvalidCredentialError
from rolevault.repositories.user_repository import UserRepository
from rolevault.configs.logging_config import get_logger

log = get_logger(__name__)


def principal_from_account(doc: dict[str, Any]) -> Principal:
    return Principal(
        user_id=str(doc["_id"]),
        role=str(doc.get("role") or ""),
        permissions=frozenset(str(p) for p in doc.get("permissions") or ()),
        is_active=bool(doc.get("is_active", False)),
    )


class PrincipalResolver:
    """
    Bearer credential -> Principal.

    Bad signatures, expired tokens, unknown accounts and deactivated accounts
    all raise the same InvalidCredentialError so callers cannot tell which
    accounts exist.
    """

    def __init__(self, users: UserRepository, settings: Settings):
        self._users = users
        self._settings = settings

    async def resolve(self, token: Optional[str]) -> Principal:
        if not token:
            log.info("auth.missing_bearer_token")
            raise AuthError()

        claims = decode_token(token, self._settings)
        typ = claims.get("typ")
        if typ != SESSION or claims.get("pending_second_factor"):
            log.info("auth.wrong_token_type typ=%s sub=%s", typ, claims.get("sub"))
            raise InvalidCredentialError()

        user_id = claims.get("sub")
        if not user_id:
            log.info("auth.token_missing_sub")
            raise InvalidCredentialError()

        doc = await self._users.get_by_id(str(user_id))
        if not doc or not doc.get("is_active", False):
            log.info("auth.account_unavailable user_id=%s found=%s", user_id, bool(doc))
            raise InvalidCredentialError()

        principal = principal_from_account(doc)
        log.info("auth.principal user_id=%s role=%s", principal.user_id, principal.role)
        return principal

    async def resolve_pending(self, token: Optional[str]) -> SecondFactorChallenge:
        """Only for completing a second-factor challenge."""
        if not token:
            raise AuthError()

        claims = decode_token(token, self._settings)
        if claims.get("typ") != PENDING_SECOND_FACTOR or claims.get("pending_second_factor") is not True:
            log.info("auth.pending.wrong_token_type typ=%s", claims.get("typ"))
            raise InvalidCredentialError()

        user_id = claims.get("sub")
        doc = await self._users.get_by_id(str(user_id)) if user_id else None
        if not doc or not doc.get("is_active", False):
            log.info("auth.pending.account_unavailable user_id=%s", user_id)
            raise InvalidCredentialError()
        issued_at_ms = claims.get("iat_ms")
        if not isinstance(issued_at_ms, int):
            log.info("auth.pending.missing_iat_ms user_id=%s", user_id)
            raise InvalidCredentialError()
        return SecondFactorChallenge(user_id=str(doc["_id"]), issued_at_ms=issued_at_ms)
