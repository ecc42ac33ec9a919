from typing import Optional

from fastapi import APIRouter, Depends, File, Form, UploadFile

from modeler.api.deps import RequestContext, get_context
from modeler.errors import InvalidRequestError
from modeler.graph.importer import import_data_model
from modeler.graph.snapshot import load_all_data

router = APIRouter(prefix="/api", tags=["models"])


@router.get("/models/{model_id}/all-data")
def all_data(model_id: str, ctx: RequestContext = Depends(get_context)):
    ctx.require_data_model(model_id)
    return load_all_data(ctx.db, model_id)


@router.post("/data-models/import", status_code=201)
def import_model(
    project_id: Optional[str] = Form(None, alias="projectId"),
    model_name: Optional[str] = Form(None, alias="modelName"),
    file: Optional[UploadFile] = File(None),
    ctx: RequestContext = Depends(get_context),
):
    if not project_id:
        raise InvalidRequestError("Project ID is required")
    if file is None:
        raise InvalidRequestError("No file provided")
    ctx.require_project(project_id)

    content = file.file.read()
    return import_data_model(
        ctx.db,
        project_id,
        model_name or "Imported Model",
        content,
        created_by=ctx.user.id,
    )
