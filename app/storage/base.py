from abc import ABC, abstractmethod
from typing import Any

from app.core.config import Settings, get_settings


class AssetStore(ABC):
    """Remote image assets: direct-upload credentials, deletion and transformed renders."""

    @abstractmethod
    def upload_auth(self) -> dict[str, Any]:
        """Short-lived credentials the browser uses to upload straight to the store."""
        ...

    @abstractmethod
    def url_for(self, file_path: str, transformation: str = "") -> str:
        """Delivery URL for file_path with an optional transformation chain."""
        ...

    @abstractmethod
    async def render(self, file_path: str, transformation: str) -> str:
        """Request the transformed rendition; return its URL. Raises on failure."""
        ...

    @abstractmethod
    async def delete(self, asset_id: str) -> None:
        """Delete asset by id. Raises on failure."""
        ...

    async def aclose(self) -> None:
        return None


def build_asset_store(settings: Settings | None = None) -> AssetStore:
    settings = settings or get_settings()
    if settings.asset_backend == "imagekit":
        from app.storage.imagekit import ImageKitStore
        return ImageKitStore(
            public_key=settings.imagekit_public_key,
            private_key=settings.imagekit_private_key,
            url_endpoint=settings.imagekit_url_endpoint,
            timeout=settings.render_timeout_seconds,
        )
    from app.storage.local import LocalStore
    return LocalStore(root=settings.asset_local_path, base_url=settings.asset_local_url, secret=settings.secret_key)
