"""Resolve a caller's bearer credential into a user id via the hosted identity service."""
import logging

import httpx

from .config import SUPABASE_URL, SUPABASE_ANON_KEY

logger = logging.getLogger(__name__)


class Unauthorized(Exception):
    """No valid caller identity."""


class IdentityClient:
    """Asks the identity service who owns a bearer token."""

    def __init__(self, client: httpx.AsyncClient, base_url: str = SUPABASE_URL, anon_key: str = SUPABASE_ANON_KEY):
        self.client = client
        self.base_url = base_url.rstrip("/")
        self.anon_key = anon_key

    async def resolve_user_id(self, authorization: str | None) -> str:
        """
        Return the user id behind an `Authorization: Bearer ...` header.

        Raises:
            Unauthorized: header missing or malformed, token rejected, or the
                identity service could not be reached.
        """
        if not authorization or not authorization.lower().startswith("bearer "):
            raise Unauthorized("missing bearer credential")
        if not authorization[7:].strip():
            raise Unauthorized("empty bearer credential")

        try:
            resp = await self.client.get(
                f"{self.base_url}/auth/v1/user",
                headers={"apikey": self.anon_key, "Authorization": authorization},
            )
        except httpx.HTTPError as exc:
            logger.warning(f"Identity service unreachable: {type(exc).__name__}: {exc}")
            raise Unauthorized("identity service unavailable") from exc

        if resp.status_code != 200:
            logger.debug(f"Identity service rejected token (HTTP {resp.status_code})")
            raise Unauthorized(f"token rejected with HTTP {resp.status_code}")

        try:
            body = resp.json()
        except ValueError as exc:
            raise Unauthorized("identity service returned invalid JSON") from exc

        user_id = body.get("id") if isinstance(body, dict) else None
        if not user_id:
            raise Unauthorized("identity response has no user id")
        return str(user_id)
