"""Project CRUD, always scoped to the owning user."""

from beanie import PydanticObjectId
from bson.errors import InvalidId

from app.core.audit import log_event
from app.core.exceptions import EmptyInputError, NotFoundOrForbiddenError
from app.core.logging import get_logger
from app.models.project import Project
from app.models.user import User
from app.storage.base import AssetStore

log = get_logger(__name__)

DEFAULT_PROJECT_NAME = "Untitled Project"


def parse_project_id(project_id: str | PydanticObjectId) -> PydanticObjectId:
    if isinstance(project_id, PydanticObjectId):
        return project_id
    try:
        return PydanticObjectId(project_id)
    except (InvalidId, TypeError) as e:
        raise NotFoundOrForbiddenError() from e


async def create_project(
    user: User,
    image_url: str,
    image_kit_id: str,
    file_path: str,
    name: str | None = None,
) -> Project:
    for field, value in (("image_url", image_url), ("image_kit_id", image_kit_id), ("file_path", file_path)):
        if not value or not value.strip():
            raise EmptyInputError(field)
    project = Project(
        user_id=user.id,
        name=(name or "").strip() or DEFAULT_PROJECT_NAME,
        image_url=image_url,
        image_kit_id=image_kit_id,
        file_path=file_path,
    )
    await project.insert()
    await log_event(user.id, "project_created", "project", project.id, {"image_kit_id": image_kit_id})
    return project


async def list_projects(user: User) -> list[Project]:
    return (
        await Project.find(Project.user_id == user.id)
        .sort(-Project.created_at, -Project.id)
        .to_list()
    )


async def get_project(user: User, project_id: str | PydanticObjectId) -> Project:
    """Owner-checked load; a project of another user is indistinguishable from a missing one."""
    project = await Project.get(parse_project_id(project_id))
    if not project or project.user_id != user.id:
        raise NotFoundOrForbiddenError()
    return project


async def delete_project(user: User, project_id: str | PydanticObjectId, store: AssetStore) -> None:
    """Delete the record; remote asset removal is best-effort and never blocks it."""
    project = await get_project(user, project_id)
    if project.image_kit_id:
        try:
            await store.delete(project.image_kit_id)
        except Exception as e:
            log.warning(
                "asset_delete_failed",
                project_id=str(project.id),
                image_kit_id=project.image_kit_id,
                error=str(e),
            )
    await project.delete()
    await log_event(user.id, "project_deleted", "project", project.id, {"image_kit_id": project.image_kit_id})
