from typing import Literal

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from app.deps import get_asset_store, get_current_user
from app.models.project import Project
from app.models.user import User
from app.services import projects as project_service
from app.services import transformations as transformation_service
from app.storage.base import AssetStore

router = APIRouter()


class CreateProjectRequest(BaseModel):
    image_url: str
    image_kit_id: str
    file_path: str
    name: str | None = None


class ApplyTransformationRequest(BaseModel):
    kind: Literal["remove_background", "upscale", "object_crop"]
    label: str = ""  # object_crop only


def _project_out(project: Project, store: AssetStore) -> dict:
    return {
        "id": str(project.id),
        "name": project.name,
        "image_url": project.image_url,
        "image_kit_id": project.image_kit_id,
        "file_path": project.file_path,
        "transformations": project.transformations,
        "preview_url": transformation_service.preview_url(project, store),
        "created_at": project.created_at.isoformat(),
        "updated_at": project.updated_at.isoformat(),
    }


@router.get("/upload-auth")
async def upload_auth(
    user: User = Depends(get_current_user),
    store: AssetStore = Depends(get_asset_store),
):
    """Signed parameters for uploading an image straight to the asset store."""
    return {"success": True, **store.upload_auth()}


@router.post("")
async def create_project(
    body: CreateProjectRequest,
    user: User = Depends(get_current_user),
    store: AssetStore = Depends(get_asset_store),
):
    """Register a completed upload as a project."""
    project = await project_service.create_project(
        user, body.image_url, body.image_kit_id, body.file_path, body.name
    )
    return {"success": True, "project": _project_out(project, store)}


@router.get("")
async def list_projects(
    user: User = Depends(get_current_user),
    store: AssetStore = Depends(get_asset_store),
):
    projects = await project_service.list_projects(user)
    return {"success": True, "projects": [_project_out(p, store) for p in projects]}


@router.get("/{project_id}")
async def get_project(
    project_id: str,
    user: User = Depends(get_current_user),
    store: AssetStore = Depends(get_asset_store),
):
    project = await project_service.get_project(user, project_id)
    return {"success": True, "project": _project_out(project, store)}


@router.delete("/{project_id}")
async def delete_project(
    project_id: str,
    user: User = Depends(get_current_user),
    store: AssetStore = Depends(get_asset_store),
):
    """Delete project and (best-effort) its remote asset."""
    await project_service.delete_project(user, project_id, store)
    return {"success": True}


@router.post("/{project_id}/transformations")
async def apply_transformation(
    project_id: str,
    body: ApplyTransformationRequest,
    user: User = Depends(get_current_user),
    store: AssetStore = Depends(get_asset_store),
):
    """Apply one transformation; paid kinds are debited first."""
    transformation = transformation_service.parse_transformation(body.model_dump())
    result = await transformation_service.apply_transformation(user, project_id, transformation, store)
    return {
        "success": True,
        "project": _project_out(result.project, store),
        "url": result.url,
        "rendered": result.rendered,
        "remaining_credits": result.remaining_credits,
    }


@router.delete("/{project_id}/transformations")
async def clear_transformations(
    project_id: str,
    user: User = Depends(get_current_user),
    store: AssetStore = Depends(get_asset_store),
):
    project = await transformation_service.clear_transformations(user, project_id)
    return {"success": True, "project": _project_out(project, store)}


@router.delete("/{project_id}/transformations/{kind}")
async def remove_transformation(
    project_id: str,
    kind: Literal["remove_background", "upscale", "object_crop"],
    user: User = Depends(get_current_user),
    store: AssetStore = Depends(get_asset_store),
):
    project = await transformation_service.remove_transformation(user, project_id, kind)
    return {"success": True, "project": _project_out(project, store)}
