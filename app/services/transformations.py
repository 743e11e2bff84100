"""
Image transformations: descriptors, CDN parameters and the debit-then-apply flow.

Paid kinds are charged before they are added to the project; a kind can be active
at most once, so re-applying it is rejected before any credit moves.
"""

import re
from dataclasses import dataclass
from datetime import datetime
from typing import Annotated, Any, Literal, Union

from beanie import UpdateResponse
from beanie.operators import Pull, Push, Set
from pydantic import BaseModel, Field, TypeAdapter

from app.core.config import get_settings
from app.core.exceptions import (
    EmptyInputError,
    InvalidLabelError,
    NotFoundError,
    TransformationAlreadyAppliedError,
)
from app.core.logging import get_logger
from app.models.project import Project
from app.models.user import User
from app.services import credits as credits_service
from app.services.projects import get_project
from app.storage.base import AssetStore

log = get_logger(__name__)

# Object names only; anything else could smuggle extra steps into the CDN chain
LABEL_RE = re.compile(r"[a-z0-9][a-z0-9 _-]*")


class RemoveBackground(BaseModel):
    kind: Literal["remove_background"] = "remove_background"

    def to_param(self) -> str:
        return "e-bgremove"

    def cost(self) -> int:
        return get_settings().credits_per_background_removal


class Upscale(BaseModel):
    kind: Literal["upscale"] = "upscale"

    def to_param(self) -> str:
        return "e-upscale"

    def cost(self) -> int:
        return get_settings().credits_per_upscale


class ObjectCrop(BaseModel):
    """Square crop focused on the named object."""
    kind: Literal["object_crop"] = "object_crop"
    label: str = ""

    def to_param(self) -> str:
        return f"fo-{self.label},ar-1-1"

    def cost(self) -> int:
        return 0


Transformation = Annotated[Union[RemoveBackground, Upscale, ObjectCrop], Field(discriminator="kind")]

_adapter = TypeAdapter(Transformation)


def parse_transformation(data: dict[str, Any]) -> Transformation:
    return _adapter.validate_python(data)


def transformations_of(project: Project) -> list[Transformation]:
    return [parse_transformation(t) for t in project.transformations]


def transformation_chain(transformations: list[Transformation]) -> str:
    """CDN transformation string; steps apply left to right."""
    return ":".join(t.to_param() for t in transformations)


def preview_url(project: Project, store: AssetStore) -> str:
    return store.url_for(project.file_path, transformation_chain(transformations_of(project)))


@dataclass
class ApplyResult:
    project: Project
    url: str
    rendered: bool
    remaining_credits: int | None = None


def _normalize(transformation: Transformation) -> Transformation:
    if isinstance(transformation, ObjectCrop):
        label = transformation.label.strip().lower()
        if not label:
            raise EmptyInputError("label")
        if not LABEL_RE.fullmatch(label):
            raise InvalidLabelError(label)
        return ObjectCrop(label=label)
    return transformation


async def _push_transformation(project: Project, transformation: Transformation) -> Project | None:
    """Append transformation unless its kind is already on the project; None if it was."""
    return await Project.find_one(
        Project.id == project.id,
        {"transformations.kind": {"$ne": transformation.kind}},
    ).update(
        Push({Project.transformations: transformation.model_dump()}),
        Set({Project.updated_at: datetime.utcnow()}),
        response_type=UpdateResponse.NEW_DOCUMENT,
    )


async def _refund(user: User, project: Project, kind: str, cost: int) -> None:
    refund = await credits_service.credit(
        user.id, cost, "refund", reference_type="project", reference_id=str(project.id)
    )
    log.info("transformation_refunded", project_id=str(project.id), kind=kind, balance=refund.balance)


async def apply_transformation(
    user: User,
    project_id: str,
    transformation: Transformation,
    store: AssetStore,
) -> ApplyResult:
    project = await get_project(user, project_id)
    transformation = _normalize(transformation)
    kind = transformation.kind
    if any(t.get("kind") == kind for t in project.transformations):
        raise TransformationAlreadyAppliedError(kind)

    remaining = None
    cost = transformation.cost()
    if cost > 0:
        result = await credits_service.debit(
            user.id, cost, kind, reference_type="project", reference_id=str(project.id)
        )
        remaining = result.balance

    try:
        updated = await _push_transformation(project, transformation)
    except Exception:
        log.exception("transformation_push_failed", project_id=str(project.id), kind=kind)
        if cost > 0:
            await _refund(user, project, kind, cost)
        raise
    if updated is None:
        # A concurrent apply of the same kind got there first
        if cost > 0:
            await _refund(user, project, kind, cost)
        raise TransformationAlreadyAppliedError(kind)

    chain = transformation_chain(transformations_of(updated))
    try:
        url = await store.render(updated.file_path, chain)
        rendered = True
    except Exception as e:
        # Credits stay spent; the descriptor remains so the client can re-request the render.
        log.warning("render_failed", project_id=str(project.id), kind=kind, error=str(e))
        url = store.url_for(updated.file_path, chain)
        rendered = False

    log.info("transformation_applied", project_id=str(project.id), kind=kind, cost=cost)
    return ApplyResult(project=updated, url=url, rendered=rendered, remaining_credits=remaining)


async def remove_transformation(user: User, project_id: str, kind: str) -> Project:
    """Drop one kind from the list. Credits already spent are not returned."""
    project = await get_project(user, project_id)
    if not any(t.get("kind") == kind for t in project.transformations):
        raise NotFoundError(f"Transformation not applied: {kind}")
    updated = await Project.find_one(Project.id == project.id).update(
        Pull({Project.transformations: {"kind": kind}}),
        Set({Project.updated_at: datetime.utcnow()}),
        response_type=UpdateResponse.NEW_DOCUMENT,
    )
    log.info("transformation_removed", project_id=str(project.id), kind=kind)
    return updated


async def clear_transformations(user: User, project_id: str) -> Project:
    project = await get_project(user, project_id)
    updated = await Project.find_one(Project.id == project.id).update(
        Set({Project.transformations: [], Project.updated_at: datetime.utcnow()}),
        response_type=UpdateResponse.NEW_DOCUMENT,
    )
    log.info("transformations_cleared", project_id=str(project.id))
    return updated
