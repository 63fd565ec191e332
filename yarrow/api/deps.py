"""
FastAPI Dependencies

Provides dependency injection for database sessions, bearer-token actors and
the long-lived reasoning/escalation clients.

SECURITY NOTES:
- JWT payloads are never logged
- Tokens are minted by the identity service; this API only verifies them
"""

from typing import Annotated
from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.ext.asyncio import AsyncSession
from jose import JWTError, jwt
from pydantic import ValidationError as PydanticValidationError
from datetime import datetime, timedelta, timezone
import logging

from yarrow.database import get_db
from yarrow.config import settings
from yarrow.schemas.auth import Actor, TokenData
from yarrow.services.ai_gateway import AIGateway
from yarrow.services.conversation_service import ConversationService, TurnLocks
from yarrow.services.escalation_webhook import EscalationWebhookService

logger = logging.getLogger(__name__)


# HTTP Bearer for JWT
security = HTTPBearer(auto_error=False)


def create_access_token(data: dict, expires_delta: timedelta | None = None) -> str:
    """Create a JWT access token. Used by tests and local tooling."""
    to_encode = data.copy()
    if expires_delta:
        expire = datetime.now(timezone.utc) + expires_delta
    else:
        expire = datetime.now(timezone.utc) + timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    to_encode.update({"exp": expire})
    encoded_jwt = jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)
    return encoded_jwt


async def get_current_actor(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security)] = None,
) -> Actor:
    """
    Resolve the calling actor from the bearer token.

    SECURITY:
    - JWT payloads are NOT logged to prevent credential leakage
    """
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    if not credentials:
        raise credentials_exception

    try:
        payload = jwt.decode(credentials.credentials, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
        sub = payload.get("sub")
        if not sub:
            raise credentials_exception
        token_data = TokenData(
            actor_id=str(sub),
            role=payload.get("role"),
            agency_id=payload.get("agency_id"),
        )
    except JWTError:
        # SECURITY: Don't log token decode errors with details
        logger.warning("JWT validation failed")
        raise credentials_exception
    except PydanticValidationError:
        logger.warning("Token claims rejected")
        raise credentials_exception

    logger.debug("Actor authenticated", extra={"actor_id": token_data.actor_id})
    return Actor(id=token_data.actor_id, role=token_data.role, agency_id=token_data.agency_id)


def get_ai_gateway(request: Request) -> AIGateway:
    """The process-wide gateway built at startup."""
    gateway = getattr(request.app.state, "ai_gateway", None)
    if gateway is None:
        gateway = AIGateway()
        request.app.state.ai_gateway = gateway
    return gateway


def get_escalation_notifier(request: Request) -> EscalationWebhookService:
    notifier = getattr(request.app.state, "escalation_notifier", None)
    if notifier is None:
        notifier = EscalationWebhookService()
        request.app.state.escalation_notifier = notifier
    return notifier


def get_turn_locks(request: Request) -> TurnLocks:
    """Per-ticket turn locks shared by every request in this process."""
    locks = getattr(request.app.state, "turn_locks", None)
    if locks is None:
        locks = TurnLocks()
        request.app.state.turn_locks = locks
    return locks


async def get_conversation_service(
    db: Annotated[AsyncSession, Depends(get_db)],
    gateway: Annotated[AIGateway, Depends(get_ai_gateway)],
    notifier: Annotated[EscalationWebhookService, Depends(get_escalation_notifier)],
    locks: Annotated[TurnLocks, Depends(get_turn_locks)],
) -> ConversationService:
    return ConversationService(db, gateway, notifier=notifier, locks=locks)


# Type aliases for dependency injection
DbSession = Annotated[AsyncSession, Depends(get_db)]
CurrentActor = Annotated[Actor, Depends(get_current_actor)]
Conversations = Annotated[ConversationService, Depends(get_conversation_service)]
