"""
FastAPI dependencies.

Authentication (bearer tokens issued by the external auth service) and the
composition root for the matching engine: the matching and pricing
configs, the orchestrator and the background task dispatcher are all built
here.
"""

from typing import Optional
from fastapi import BackgroundTasks, Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.ext.asyncio import AsyncSession
from parcelmatch.app.core.config import settings
from parcelmatch.app.core.exceptions import AuthenticationError
from parcelmatch.app.core.jwt import decode_access_token
from parcelmatch.app.core.matching_config import MatchingConfig
from parcelmatch.app.core.pricing_config import PricingConfig
from parcelmatch.app.db.session import get_db, get_session_factory
from parcelmatch.app.services.matching_orchestrator import MatchingOrchestrator
from parcelmatch.app.services.matching_tasks import MatchingTaskDispatcher

# HTTP Bearer security scheme
security = HTTPBearer(auto_error=False)


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> dict:
    """
    FastAPI dependency for JWT authentication.

    Validates the token signature and expiry and checks that the payload
    carries a user id and a role.

    Returns:
        Decoded token payload containing user information

    Raises:
        AuthenticationError: 401 if authentication fails for any reason
    """
    if credentials is None:
        raise AuthenticationError("Not authenticated")

    payload = decode_access_token(credentials.credentials)
    if payload is None:
        raise AuthenticationError("Could not validate credentials")

    if not payload.get("user_id") or not payload.get("role"):
        raise AuthenticationError("Invalid token payload")

    return payload


def get_matching_config() -> MatchingConfig:
    """Matching config built from deployment settings."""
    return MatchingConfig.from_settings(settings)


def get_pricing_config() -> PricingConfig:
    """Delivery rate cards built from deployment settings."""
    return PricingConfig.from_settings(settings)


async def get_orchestrator(
    db: AsyncSession = Depends(get_db),
    config: MatchingConfig = Depends(get_matching_config),
    pricing: PricingConfig = Depends(get_pricing_config),
) -> MatchingOrchestrator:
    """Orchestrator bound to the request's session."""
    return MatchingOrchestrator(
        db,
        config,
        read_attempts=settings.store_read_retries,
        read_retry_delay=settings.store_read_retry_delay_seconds,
        pricing=pricing,
    )


async def get_task_dispatcher(
    background_tasks: BackgroundTasks,
    session_factory=Depends(get_session_factory),
    config: MatchingConfig = Depends(get_matching_config),
) -> MatchingTaskDispatcher:
    """Dispatcher that runs matching after the response has been sent."""
    return MatchingTaskDispatcher(background_tasks, session_factory, config)
