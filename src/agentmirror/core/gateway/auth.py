"""
Access token provider.

Exchanges a customer's API key for a bearer token and caches it in the
customer's state directory. Concurrent callers share one exchange through an
asyncio.Lock.
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Optional

import httpx
from pydantic import ValidationError

from agentmirror.core.gateway.errors import AuthenticationError
from agentmirror.core.gateway.models import StoredTokens
from agentmirror.utils.fileio import write_json_atomic

logger = logging.getLogger(__name__)

TOKEN_ENDPOINT = "/api/v1/auth/api-key/token"


class TokenProvider:
    """
    Bearer tokens for one customer.

    Example:
        >>> provider = TokenProvider(client, api_key, layout.tokens_path)
        >>> token = await provider.get_token()
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        api_key: str,
        cache_path: Optional[Path] = None,
    ) -> None:
        self._client = client
        self._api_key = api_key
        self._cache_path = cache_path
        self._tokens: Optional[StoredTokens] = None
        self._lock = asyncio.Lock()

    async def get_token(self) -> str:
        """Return a valid access token, exchanging the API key if needed."""
        async with self._lock:
            if self._tokens is None:
                self._tokens = self._load_cache()
            if self._tokens is None or self._tokens.is_expired():
                self._tokens = await self._exchange()
            return self._tokens.access_token

    async def reauthenticate(self, stale_token: str) -> str:
        """
        Force a fresh exchange after a 401.

        If another request already replaced stale_token, that newer token is
        returned without a second exchange.
        """
        async with self._lock:
            if self._tokens is not None and self._tokens.access_token != stale_token:
                return self._tokens.access_token
            self._tokens = await self._exchange()
            return self._tokens.access_token

    async def _exchange(self) -> StoredTokens:
        if not self._api_key:
            raise AuthenticationError("No API key configured for this customer")

        logger.debug("Exchanging API key for access token")
        try:
            response = await self._client.post(
                TOKEN_ENDPOINT, headers={"x-api-key": self._api_key, "accept": "application/json"}
            )
        except httpx.HTTPError as e:
            raise AuthenticationError(f"Token exchange failed: {e}") from e

        if response.status_code >= 400:
            raise AuthenticationError.from_response(response, "Token exchange")

        try:
            tokens = StoredTokens.from_token_response(response.json())
        except ValueError as e:
            raise AuthenticationError(str(e), status_code=response.status_code) from e

        self._save_cache(tokens)
        return tokens

    def _load_cache(self) -> Optional[StoredTokens]:
        if self._cache_path is None or not self._cache_path.is_file():
            return None
        try:
            return StoredTokens.model_validate_json(self._cache_path.read_text(encoding="utf-8"))
        except (OSError, ValidationError) as e:
            logger.warning("Ignoring unreadable token cache %s: %s", self._cache_path, e)
            return None

    def _save_cache(self, tokens: StoredTokens) -> None:
        if self._cache_path is None:
            return
        write_json_atomic(self._cache_path, tokens.model_dump(mode="json"))
