from datetime import datetime
from typing import Any

import pymongo
from beanie import Document, PydanticObjectId
from pydantic import Field


class Project(Document):
    """One uploaded image plus the transformations applied to it."""
    user_id: PydanticObjectId
    name: str = "Untitled Project"
    image_url: str
    image_kit_id: str  # asset id in the CDN
    file_path: str
    # Serialized transformation descriptors in apply order, e.g. {"kind": "object_crop", "label": "cat"}
    transformations: list[dict[str, Any]] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    class Settings:
        name = "projects"
        indexes = [[("user_id", pymongo.ASCENDING), ("created_at", pymongo.DESCENDING)]]
