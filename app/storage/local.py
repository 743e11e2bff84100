import hashlib
import hmac
import time
import uuid
from pathlib import Path
from typing import Any
from urllib.parse import quote

from app.storage.base import AssetStore


class LocalStore(AssetStore):
    """Filesystem-backed store for development; renders are the untransformed file."""

    def __init__(self, root: str, base_url: str, secret: str) -> None:
        self.root = Path(root)
        self.root.mkdir(parents=True, exist_ok=True)
        self.base_url = base_url.rstrip("/")
        self._secret = secret

    def upload_auth(self) -> dict[str, Any]:
        token = str(uuid.uuid4())
        expire = int(time.time()) + 30 * 60
        signature = hmac.new(self._secret.encode(), f"{token}{expire}".encode(), hashlib.sha1).hexdigest()
        return {
            "token": token,
            "expire": expire,
            "signature": signature,
            "public_key": "local",
            "url_endpoint": self.base_url,
        }

    def url_for(self, file_path: str, transformation: str = "") -> str:
        url = f"{self.base_url}/{file_path.lstrip('/')}"
        if transformation:
            url = f"{url}?tr={quote(transformation, safe=',:')}"
        return url

    async def render(self, file_path: str, transformation: str) -> str:
        return self.url_for(file_path, transformation)

    async def delete(self, asset_id: str) -> None:
        path = (self.root / asset_id).resolve()
        if self.root.resolve() not in path.parents:
            raise ValueError(f"Asset id escapes storage root: {asset_id}")
        if path.exists():
            path.unlink()
