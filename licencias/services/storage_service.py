"""Client for the Supabase Storage REST API."""

from typing import Any, Dict, List
from urllib.parse import quote

import httpx

from licencias.core.exceptions import StorageError, StorageUnavailableError
from licencias.utils.logging import get_logger

LOGGER = get_logger(__name__)

# Status codes worth retrying: throttling and server-side failures
_TRANSIENT_STATUS = {408, 425, 429}


class SupabaseStorageClient:
    """Object store addressed by ``{bucket, key}``.

    The ``httpx.AsyncClient`` is owned by the caller, normally the
    application lifespan, so connections are pooled across requests.
    """

    def __init__(self, http_client: httpx.AsyncClient, supabase_url: str, service_role_key: str, timeout: float = 30):
        self.http = http_client
        self.url = supabase_url.rstrip("/")
        self.base_api_url = f"{self.url}/storage/v1"
        self.timeout = timeout
        self.headers = {
            "Authorization": f"Bearer {service_role_key}",
            "apikey": service_role_key,
        }

    async def upload(
        self,
        bucket: str,
        key: str,
        content: bytes,
        content_type: str = "application/octet-stream",
        upsert: bool = True,
    ) -> Dict[str, Any]:
        """Upload bytes under ``key``. With ``upsert`` an existing object is overwritten.

        Raises:
            StorageUnavailableError: On transport failure, 5xx or throttling
            StorageError: If the store rejects the upload
        """
        response = await self._request(
            "POST",
            self._object_url(bucket, key),
            headers={
                "Content-Type": content_type,
                "x-upsert": "true" if upsert else "false",
                "cache-control": "3600",
            },
            content=content,
            description=f"upload {bucket}/{key}",
        )
        self._raise_for_status(response, f"upload {bucket}/{key}")
        LOGGER.info(
            "Uploaded object",
            extra={"bucket": bucket, "key": key, "size": len(content), "content_type": content_type},
        )
        return response.json()

    async def delete(self, bucket: str, keys: List[str]) -> List[str]:
        """Delete objects by key.

        Absent keys are not an error. Returns the keys the store reports as
        removed.
        """
        if not keys:
            return []
        response = await self._request(
            "DELETE",
            f"{self.base_api_url}/object/{bucket}",
            json={"prefixes": keys},
            description=f"delete {len(keys)} objects from {bucket}",
        )
        if response.status_code == 404:
            return []
        self._raise_for_status(response, f"delete from {bucket}")

        removed = [item.get("name") for item in (response.json() or []) if isinstance(item, dict)]
        LOGGER.info("Deleted objects", extra={"bucket": bucket, "requested": len(keys), "removed": len(removed)})
        return removed

    async def list_objects(self, bucket: str, prefix: str, limit: int = 1000) -> List[str]:
        """List every object key under ``prefix``, descending into folders."""
        keys: List[str] = []
        pending = [prefix.strip("/")]
        while pending:
            folder = pending.pop()
            offset = 0
            while True:
                response = await self._request(
                    "POST",
                    f"{self.base_api_url}/object/list/{bucket}",
                    json={
                        "prefix": folder,
                        "limit": limit,
                        "offset": offset,
                        "sortBy": {"column": "name", "order": "asc"},
                    },
                    description=f"list {bucket}/{folder}",
                )
                self._raise_for_status(response, f"list {bucket}/{folder}")
                entries = response.json() or []
                for entry in entries:
                    path = f"{folder}/{entry['name']}" if folder else entry["name"]
                    # Folders come back without an id
                    if entry.get("id") is None:
                        pending.append(path)
                    else:
                        keys.append(path)
                if len(entries) < limit:
                    break
                offset += limit
        return sorted(keys)

    def public_url(self, bucket: str, key: str) -> str:
        return f"{self.base_api_url}/object/public/{bucket}/{quote(key)}"

    async def create_signed_url(self, bucket: str, key: str, expires_in: int = 3600) -> str:
        """Generate a time-limited URL for a private object."""
        response = await self._request(
            "POST",
            f"{self.base_api_url}/object/sign/{bucket}/{quote(key)}",
            json={"expiresIn": expires_in},
            description=f"sign {bucket}/{key}",
        )
        self._raise_for_status(response, f"sign {bucket}/{key}")

        signed_path = (response.json() or {}).get("signedURL")
        if not signed_path:
            raise StorageError("Storage response did not contain signedURL")

        if signed_path.startswith("http"):
            return signed_path
        # Relative paths may or may not include the API root
        if signed_path.startswith("/storage/v1"):
            return f"{self.url}{signed_path}"
        return f"{self.base_api_url}{signed_path}"

    def _object_url(self, bucket: str, key: str) -> str:
        return f"{self.base_api_url}/object/{bucket}/{quote(key)}"

    async def _request(self, method: str, url: str, description: str, headers=None, **kwargs) -> httpx.Response:
        try:
            return await self.http.request(
                method,
                url,
                headers={**self.headers, **(headers or {})},
                timeout=self.timeout,
                **kwargs,
            )
        except httpx.TransportError as e:
            LOGGER.warning(f"Storage transport error during {description}: {str(e)}")
            raise StorageUnavailableError(f"Storage unavailable during {description}", original_error=e) from e

    @staticmethod
    def _raise_for_status(response: httpx.Response, description: str) -> None:
        if response.is_success:
            return
        status = response.status_code
        LOGGER.error(
            f"Storage request failed during {description}: {response.text}",
            extra={"status_code": status},
        )
        if status >= 500 or status in _TRANSIENT_STATUS:
            raise StorageUnavailableError(
                f"Storage unavailable during {description}",
                details={"status_code": status},
            )
        raise StorageError(f"Storage rejected {description}", details={"status_code": status})
