from typing import Optional

from fastapi import APIRouter, Depends, Query, Response

from modeler import projects as service
from modeler.api.deps import RequestContext, get_context
from modeler.api.serializers import serialize
from modeler.export.exporters import export_model
from modeler.export.sql import SqlOptions
from modeler.graph.snapshot import load_snapshot
from modeler.schemas import (
    DataModelCreate,
    DataModelUpdate,
    MemberCreate,
    MemberUpdate,
    ProjectCreate,
    ProjectUpdate,
)

router = APIRouter(prefix="/api/projects", tags=["projects"])


# ============================
# Projects
# ============================

@router.get("")
def list_projects(ctx: RequestContext = Depends(get_context)):
    user = ctx.require_user()
    return {"projects": serialize(service.list_projects(ctx.db, user))}


@router.post("", status_code=201)
def create_project(body: ProjectCreate, ctx: RequestContext = Depends(get_context)):
    user = ctx.require_user()
    project = service.create_project(ctx.db, user, body.name, body.description)
    return {"project": serialize(project)}


@router.get("/{project_id}")
def get_project(project_id: str, ctx: RequestContext = Depends(get_context)):
    project = ctx.require_project(project_id)
    return {
        "project": serialize(project),
        "role": ctx.role_in(project),
        "dataModels": serialize(service.list_data_models(ctx.db, project.id)),
    }


@router.put("/{project_id}")
def update_project(project_id: str, body: ProjectUpdate, ctx: RequestContext = Depends(get_context)):
    ctx.require_manager(project_id)
    return {"project": serialize(service.update_project(ctx.db, project_id, body.values()))}


@router.delete("/{project_id}")
def delete_project(project_id: str, ctx: RequestContext = Depends(get_context)):
    ctx.require_manager(project_id)
    service.delete_project(ctx.db, project_id)
    return {"success": True}


# ============================
# Members
# ============================

@router.get("/{project_id}/members")
def list_members(project_id: str, ctx: RequestContext = Depends(get_context)):
    ctx.require_project(project_id)
    return {"members": service.list_members(ctx.db, project_id)}


@router.post("/{project_id}/members", status_code=201)
def add_member(project_id: str, body: MemberCreate, ctx: RequestContext = Depends(get_context)):
    ctx.require_manager(project_id)
    member = service.add_member(ctx.db, project_id, body.email, body.role)
    return {"member": serialize(member)}


@router.patch("/{project_id}/members/{user_id}")
def update_member(project_id: str, user_id: str, body: MemberUpdate, ctx: RequestContext = Depends(get_context)):
    ctx.require_manager(project_id)
    member = service.update_member_role(ctx.db, project_id, user_id, body.role)
    return {"member": serialize(member)}


@router.delete("/{project_id}/members/{user_id}")
def remove_member(project_id: str, user_id: str, ctx: RequestContext = Depends(get_context)):
    ctx.require_manager(project_id)
    service.remove_member(ctx.db, project_id, user_id)
    return {"success": True}


# ============================
# Data models
# ============================

@router.get("/{project_id}/models")
def list_models(project_id: str, ctx: RequestContext = Depends(get_context)):
    ctx.require_project(project_id)
    return {"dataModels": serialize(service.list_data_models(ctx.db, project_id))}


@router.post("/{project_id}/models", status_code=201)
def create_model(project_id: str, body: DataModelCreate, ctx: RequestContext = Depends(get_context)):
    ctx.require_project(project_id)
    data_model = service.create_data_model(ctx.db, project_id, body.values(), ctx.user.id)
    return {"dataModel": serialize(data_model)}


@router.get("/{project_id}/models/{model_id}")
def get_model(project_id: str, model_id: str, ctx: RequestContext = Depends(get_context)):
    ctx.require_project(project_id)
    return {"dataModel": serialize(service.get_project_data_model(ctx.db, project_id, model_id))}


@router.put("/{project_id}/models/{model_id}")
def update_model(project_id: str, model_id: str, body: DataModelUpdate, ctx: RequestContext = Depends(get_context)):
    ctx.require_project(project_id)
    data_model = service.update_data_model(ctx.db, project_id, model_id, body.values())
    return {"dataModel": serialize(data_model)}


@router.delete("/{project_id}/models/{model_id}")
def delete_model(project_id: str, model_id: str, ctx: RequestContext = Depends(get_context)):
    ctx.require_project(project_id)
    service.delete_data_model(ctx.db, project_id, model_id)
    return {"success": True}


@router.get("/{project_id}/models/{model_id}/export")
def export(
    project_id: str,
    model_id: str,
    fmt: str = Query("json", alias="format"),
    schema_name: str = Query("public", alias="schemaName"),
    include_comments: bool = Query(True, alias="includeComments"),
    include_foreign_keys: bool = Query(True, alias="includeForeignKeys"),
    generate_indexes: bool = Query(False, alias="generateIndexes"),
    ctx: RequestContext = Depends(get_context),
):
    ctx.require_project(project_id)
    data_model = service.get_project_data_model(ctx.db, project_id, model_id)
    options = SqlOptions(
        schema_name=schema_name or "public",
        include_comments=include_comments,
        include_foreign_keys=include_foreign_keys,
        generate_indexes=generate_indexes,
    )
    result = export_model(load_snapshot(ctx.db, data_model.id), fmt, options)
    return Response(
        content=result.content,
        media_type=result.media_type,
        headers={"Content-Disposition": result.content_disposition},
    )
