"""
Identity Service - Verify caller bearer tokens against the hosted auth API
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

import aiohttp

from .errors import TransportFailure, Unauthenticated

logger = logging.getLogger(__name__)


def extract_bearer(authorization: str | None) -> str:
    """Return the token from an ``Authorization: Bearer <token>`` header"""
    if not authorization:
        raise Unauthenticated("No authorization header")
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise Unauthenticated("Malformed authorization header")
    return token.strip()


class IdentityService:
    """Resolve a bearer token to the signed-in user"""

    def __init__(self, config: dict[str, Any]):
        cfg = config.get("identity", {})
        self.base_url = (cfg.get("baseUrl") or "").rstrip("/")
        self.service_key = cfg.get("serviceKey") or ""

    async def get_user(self, token: str, timeout_seconds: int = 10) -> dict[str, Any]:
        """Return the user record for ``token``.

        Raises ``Unauthenticated`` if the token is rejected and ``TransportFailure``
        if the identity service cannot be reached.
        """
        if not self.base_url:
            raise ValueError("Identity service not configured")

        url = f"{self.base_url}/auth/v1/user"
        headers = {"Authorization": f"Bearer {token}"}
        if self.service_key:
            headers["apikey"] = self.service_key

        timeout = aiohttp.ClientTimeout(total=timeout_seconds)
        try:
            async with aiohttp.ClientSession(timeout=timeout) as session:
                async with session.get(url, headers=headers) as response:
                    if response.status != 200:
                        logger.info("Token rejected by identity service (HTTP %s)", response.status)
                        raise Unauthenticated()
                    user = await response.json()
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.warning("Identity service unreachable: %s", e)
            raise TransportFailure("Identity service unreachable")

        if not isinstance(user, dict) or not user.get("id"):
            raise Unauthenticated("Not authenticated - no user found")
        return user
