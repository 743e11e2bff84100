import hashlib
import hmac
import time
import uuid
from typing import Any
from urllib.parse import quote

import httpx

from app.core.exceptions import BadRequestError
from app.storage.base import AssetStore

API_BASE = "https://api.imagekit.io/v1"
UPLOAD_TOKEN_TTL_SECONDS = 30 * 60


class ImageKitStore(AssetStore):
    def __init__(
        self,
        public_key: str,
        private_key: str,
        url_endpoint: str,
        timeout: float = 20.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        if not private_key or not url_endpoint:
            raise BadRequestError("ImageKit not configured")
        self.public_key = public_key
        self.private_key = private_key
        self.url_endpoint = url_endpoint.rstrip("/")
        self._client = client or httpx.AsyncClient(timeout=timeout)

    def upload_auth(self, now: float | None = None) -> dict[str, Any]:
        token = str(uuid.uuid4())
        expire = int(now if now is not None else time.time()) + UPLOAD_TOKEN_TTL_SECONDS
        signature = hmac.new(
            self.private_key.encode("utf-8"),
            f"{token}{expire}".encode("utf-8"),
            hashlib.sha1,
        ).hexdigest()
        return {
            "token": token,
            "expire": expire,
            "signature": signature,
            "public_key": self.public_key,
            "url_endpoint": self.url_endpoint,
        }

    def url_for(self, file_path: str, transformation: str = "") -> str:
        url = f"{self.url_endpoint}/{file_path.lstrip('/')}"
        if transformation:
            url = f"{url}?tr={quote(transformation, safe=',:')}"
        return url

    async def render(self, file_path: str, transformation: str) -> str:
        url = self.url_for(file_path, transformation)
        resp = await self._client.get(url)
        resp.raise_for_status()
        return url

    async def delete(self, asset_id: str) -> None:
        resp = await self._client.delete(f"{API_BASE}/files/{asset_id}", auth=(self.private_key, ""))
        resp.raise_for_status()

    async def aclose(self) -> None:
        await self._client.aclose()
