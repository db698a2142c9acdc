import uuid
from collections.abc import AsyncGenerator
from datetime import datetime, timedelta, timezone
from typing import Annotated, Any, Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from sqlalchemy.ext.asyncio import AsyncSession

from housematch.core.config import get_settings
from housematch.core.database import async_session_factory
from housematch.core.exceptions import NotAuthenticatedError
from housematch.services.collaborators import ProfileStore, PropertyStore
from housematch.services.events import EventPublisher
from housematch.services.match import MatchService
from housematch.services.preferences import PreferenceService

settings = get_settings()

security = HTTPBearer(auto_error=False)


async def get_db() -> AsyncGenerator[AsyncSession, None]:

    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()

DBSession = Annotated[AsyncSession, Depends(get_db)]


def create_access_token(
    data: dict[str, Any],
    expires_delta: timedelta | None = None,
) -> str:
    """
    Create a JWT access token.

    Args:
        data: Claims to encode; ``sub`` carries the user id
        expires_delta: Optional custom expiration time

    Returns:
        Encoded JWT token string
    """
    to_encode = data.copy()

    if expires_delta:
        expire = datetime.now(timezone.utc) + expires_delta
    else:
        expire = datetime.now(timezone.utc) + timedelta(
            minutes=settings.jwt_access_token_expire_minutes
        )

    to_encode.update({"exp": expire})

    return jwt.encode(
        to_encode,
        settings.jwt_secret_key,
        algorithm=settings.jwt_algorithm,
    )


def decode_token(token: str) -> dict[str, Any] | None:

    try:
        return jwt.decode(
            token,
            settings.jwt_secret_key,
            algorithms=[settings.jwt_algorithm],
        )
    except JWTError:
        return None


async def get_current_user_id(
    credentials: Annotated[
        HTTPAuthorizationCredentials | None,
        Depends(security)
    ] = None,
) -> uuid.UUID:
    """
    Resolve the acting user from the bearer token.

    Raises:
        NotAuthenticatedError: If the token is missing, invalid or has no
            usable subject
    """
    if credentials is None:
        raise NotAuthenticatedError("Could not validate credentials")

    payload = decode_token(credentials.credentials)
    if payload is None or payload.get("type") == "refresh":
        raise NotAuthenticatedError("Could not validate credentials")

    subject = payload.get("sub")
    try:
        return uuid.UUID(str(subject))
    except ValueError:
        raise NotAuthenticatedError("Could not validate credentials")

CurrentUserId = Annotated[uuid.UUID, Depends(get_current_user_id)]


def get_profile_store(request: Request) -> ProfileStore:
    return request.app.state.profile_store


def get_property_store(request: Request) -> PropertyStore:
    return request.app.state.property_store


def get_event_publisher(request: Request) -> Optional[EventPublisher]:
    return getattr(request.app.state, "event_publisher", None)


def get_match_service(
    db: DBSession,
    profile_store: Annotated[ProfileStore, Depends(get_profile_store)],
    property_store: Annotated[PropertyStore, Depends(get_property_store)],
    publisher: Annotated[Optional[EventPublisher], Depends(get_event_publisher)],
) -> MatchService:
    return MatchService(db, profile_store, property_store, publisher=publisher)


def get_preference_service(db: DBSession) -> PreferenceService:
    return PreferenceService(db)

MatchServiceDep = Annotated[MatchService, Depends(get_match_service)]
PreferenceServiceDep = Annotated[PreferenceService, Depends(get_preference_service)]
