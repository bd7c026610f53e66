"""FastAPI dependencies."""
import logging
from datetime import datetime, timedelta, UTC
from uuid import UUID

import jwt
from fastapi import Depends, Header, HTTPException, Request
from jwt import ExpiredSignatureError, InvalidTokenError
from sqlalchemy.ext.asyncio import AsyncSession

from quizduel.config import get_settings
from quizduel.database import get_db
from quizduel.models.player import Player
from quizduel.utils import rate_limiter

logger = logging.getLogger(__name__)
audit_logger = logging.getLogger("quizduel.audit")

settings = get_settings()

RATE_LIMIT_ERROR_MESSAGE = "rate_limit_exceeded"


def _mask_identifier(identifier: str) -> str:
    """Mask a sensitive identifier for logging (e.g., player_id, token)."""
    if not identifier:
        return "<missing>"
    if len(identifier) <= 8:
        return f"{identifier[:2]}...{identifier[-2:]}"
    return f"{identifier[:4]}...{identifier[-4:]}"


def create_access_token(player_id: UUID, expires_minutes: int | None = None) -> str:
    """Issue a signed bearer token for a player."""
    expire = datetime.now(UTC) + timedelta(minutes=expires_minutes or settings.access_token_exp_minutes)
    payload = {
        "sub": str(player_id),
        "exp": int(expire.timestamp()),
    }
    return jwt.encode(payload, settings.secret_key, algorithm=settings.jwt_algorithm)


def decode_access_token(token: str) -> UUID:
    """Return the player id carried by a valid token.

    Raises:
        HTTPException: 401 with ``token_expired`` or ``invalid_token``
    """
    try:
        payload = jwt.decode(token, settings.secret_key, algorithms=[settings.jwt_algorithm])
        return UUID(str(payload["sub"]))
    except ExpiredSignatureError as exc:
        raise HTTPException(status_code=401, detail="token_expired") from exc
    except (InvalidTokenError, KeyError, ValueError) as exc:
        raise HTTPException(status_code=401, detail="invalid_token") from exc


async def get_current_player(
        authorization: str | None = Header(default=None, alias="Authorization"),
        db: AsyncSession = Depends(get_db),
) -> Player:
    """Resolve the current authenticated player from the bearer token."""
    if not authorization:
        raise HTTPException(status_code=401, detail="missing_credentials")

    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token:
        raise HTTPException(status_code=401, detail="invalid_authorization_header")

    player_id = decode_access_token(token)
    player = await db.get(Player, player_id)
    if player is None:
        raise HTTPException(status_code=401, detail="invalid_token")

    logger.debug(f"Authenticated player via JWT: {_mask_identifier(str(player.player_id))}")
    return player


async def get_admin_player(player: Player = Depends(get_current_player)) -> Player:
    """Verify that the current authenticated player is an admin."""
    if not player.is_admin:
        logger.warning(f"Non-admin player {_mask_identifier(str(player.player_id))} attempted admin access")
        raise HTTPException(status_code=403, detail="admin_required")
    return player


async def enforce_challenge_rate_limit(player: Player = Depends(get_current_player)) -> Player:
    """Apply the per-player challenge rate limit and return the authenticated player."""
    key = f"challenge:{player.player_id}"
    allowed, retry_after = await rate_limiter.check(
        key, settings.challenge_rate_limit, settings.challenge_rate_limit_window_seconds
    )
    if allowed:
        return player

    headers = {"Retry-After": str(retry_after)} if retry_after is not None else None
    logger.warning(f"Challenge rate limit exceeded for {_mask_identifier(str(player.player_id))}")
    raise HTTPException(status_code=429, detail=RATE_LIMIT_ERROR_MESSAGE, headers=headers)


def parse_challenge_id(challenge_id: str) -> UUID:
    """Path dependency turning a challenge id into a UUID (400 when malformed)."""
    try:
        return UUID(challenge_id)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail="invalid_challenge_id") from exc


def client_ip(request: Request) -> str | None:
    """Client IP, honouring the first X-Forwarded-For hop."""
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else None


async def audit_challenge_access(
    request: Request,
    challenge_id: UUID = Depends(parse_challenge_id),
    player: Player = Depends(enforce_challenge_rate_limit),
) -> Player:
    """Write an audit record for a challenge-scoped request."""
    audit_logger.info(
        "CHALLENGE_AUDIT player=%s challenge=%s action=%s ip=%s user_agent=%s",
        player.player_id,
        challenge_id,
        f"{request.method} {request.url.path}",
        client_ip(request),
        request.headers.get("User-Agent"),
    )
    return player
