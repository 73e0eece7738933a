"""Bearer token verification: forward to the auth service + cache the learner.

Requests carry the learner's access token. We verify it by calling the auth
service's ``/auth/v1/user`` endpoint and cache the resolved identity for
``auth_cache_ttl`` seconds, keyed by a hash of the token.
"""

from __future__ import annotations

import hashlib
import logging
import time

import httpx
from fastapi import Request

from config.settings import get_settings
from errors.exceptions import UnauthorizedError
from models.learner import Learner

logger = logging.getLogger(__name__)

# In-memory cache: sha256(token)[:16] → (learner, expire_at)
_verified_cache: dict[str, tuple[Learner, float]] = {}


def clear_auth_cache() -> None:
    _verified_cache.clear()


def _bearer_token(request: Request) -> str:
    header = request.headers.get("Authorization", "")
    if not header:
        raise UnauthorizedError("Missing authorization header")
    token = header.removeprefix("Bearer ").strip()
    if not token:
        raise UnauthorizedError("Unauthorized", "empty bearer token")
    return token


async def get_current_learner(request: Request) -> Learner:
    """Resolve the learner from the request's bearer token.

    1. Read Authorization header
    2. Check local cache (TTL keyed by token hash)
    3. On cache miss → call GET {auth_base_url}/auth/v1/user
    4. Return the verified learner (never trust request body)

    Any failure to resolve the token is a 401; no record is touched before
    this dependency succeeds.
    """
    token = _bearer_token(request)

    cache_key = hashlib.sha256(token.encode()).hexdigest()[:16]
    cached = _verified_cache.get(cache_key)
    if cached is not None:
        learner, expire_at = cached
        if time.time() < expire_at:
            return learner
        _verified_cache.pop(cache_key, None)

    settings = get_settings()
    try:
        async with httpx.AsyncClient(timeout=10) as client:
            resp = await client.get(
                f"{settings.auth_base_url.rstrip('/')}/auth/v1/user",
                headers={
                    "Authorization": f"Bearer {token}",
                    "apikey": settings.auth_api_key,
                },
            )
    except httpx.TransportError as exc:
        logger.error("Failed to verify token with auth service: %s", exc)
        raise UnauthorizedError("Unauthorized", "auth service unavailable") from exc

    if resp.status_code != 200:
        raise UnauthorizedError("Unauthorized")

    try:
        data = resp.json()
    except ValueError as exc:
        raise UnauthorizedError("Unauthorized", "unreadable auth response") from exc
    if not isinstance(data, dict):
        raise UnauthorizedError("Unauthorized", "unreadable auth response")
    learner_id = str(data.get("id") or "")
    if not learner_id:
        raise UnauthorizedError("Unauthorized", "token has no user id")

    learner = Learner(id=learner_id, email=data.get("email"))
    _verified_cache[cache_key] = (learner, time.time() + settings.auth_cache_ttl)
    logger.info("Verified learner_id=%s via auth service", learner_id)
    return learner
