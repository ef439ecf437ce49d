"""Cached access to the Supabase JSON Web Key Set."""

import asyncio
import time
from typing import Dict, List, Optional

import aiohttp
from pydantic import BaseModel

from licencias.core.exceptions import AuthenticationError
from licencias.utils.logging import get_logger

LOGGER = get_logger(__name__)


class JWKKey(BaseModel):
    """One public key. RSA keys carry ``n``/``e``, EC keys ``crv``/``x``/``y``."""

    kid: str
    kty: str
    alg: Optional[str] = None
    use: Optional[str] = None
    n: Optional[str] = None
    e: Optional[str] = None
    crv: Optional[str] = None
    x: Optional[str] = None
    y: Optional[str] = None


class JWKSResponse(BaseModel):
    keys: List[JWKKey]


class JWKSService:
    """Fetches the project's signing keys and keeps them for ``cache_ttl`` seconds."""

    def __init__(self, supabase_url: str, cache_ttl: int = 3600, timeout: float = 10.0):
        self.supabase_url = supabase_url.rstrip("/")
        self.jwks_url = f"{self.supabase_url}/auth/v1/.well-known/jwks.json"
        self.cache_ttl = cache_ttl
        self.timeout = timeout

        self._keys_cache: Optional[Dict[str, JWKKey]] = None
        self._cache_timestamp: Optional[float] = None
        self._lock = asyncio.Lock()

    async def get_key(self, kid: str) -> Optional[JWKKey]:
        """Key with the given id, refetching once if it is not cached.

        A key id missing from a valid cache usually means the project rotated
        its keys since the last fetch.
        """
        keys = await self.get_keys()
        if kid in keys:
            return keys[kid]

        LOGGER.info(f"Key {kid} not in cached JWKS, refreshing")
        keys = await self.get_keys(force_refresh=True)
        return keys.get(kid)

    async def get_keys(self, force_refresh: bool = False) -> Dict[str, JWKKey]:
        async with self._lock:
            if not force_refresh and self._is_cache_valid():
                return dict(self._keys_cache)

            keys = await self._fetch_keys()
            self._keys_cache = dict(keys)
            self._cache_timestamp = time.monotonic()
            return keys

    def _is_cache_valid(self) -> bool:
        if self._keys_cache is None or self._cache_timestamp is None:
            return False
        return time.monotonic() - self._cache_timestamp < self.cache_ttl

    async def _fetch_keys(self) -> Dict[str, JWKKey]:
        """Download the key set.

        Raises:
            AuthenticationError: If the key set cannot be fetched or parsed
        """
        try:
            async with aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=self.timeout)) as session:
                async with session.get(self.jwks_url) as response:
                    if response.status != 200:
                        body = await response.text()
                        raise AuthenticationError(f"JWKS endpoint returned {response.status}: {body}")
                    data = await response.json()
        except aiohttp.ClientError as e:
            LOGGER.error(f"Network error fetching JWKS: {e}")
            raise AuthenticationError("Unable to fetch signing keys", original_error=e) from e

        try:
            jwks = JWKSResponse(**data)
        except (TypeError, ValueError) as e:
            LOGGER.error(f"Invalid JWKS response: {e}")
            raise AuthenticationError("Invalid signing key set", original_error=e) from e

        keys = {key.kid: key for key in jwks.keys}
        LOGGER.info(f"Fetched {len(keys)} JWKS keys")
        return keys
