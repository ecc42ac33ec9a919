from typing import Optional

from fastapi import APIRouter, Depends, Query

from modeler import comments
from modeler.api.deps import RequestContext, get_context
from modeler.api.serializers import serialize
from modeler.auth.permissions import can_manage
from modeler.db.models import Project
from modeler.errors import InvalidRequestError
from modeler.schemas import CommentCreate, CommentUpdate

router = APIRouter(prefix="/api/comments", tags=["comments"])


@router.get("")
def list_comments(
    data_model_id: Optional[str] = Query(None, alias="dataModelId"),
    entity_id: Optional[str] = Query(None, alias="entityId"),
    ctx: RequestContext = Depends(get_context),
):
    if data_model_id:
        ctx.require_data_model(data_model_id)
    elif entity_id:
        ctx.require_entity(entity_id)
    else:
        raise InvalidRequestError("Data model ID or entity ID is required")
    return {"comments": serialize(comments.list_comments(ctx.db, data_model_id, entity_id))}


@router.post("", status_code=201)
def create_comment(body: CommentCreate, ctx: RequestContext = Depends(get_context)):
    ctx.require_data_model(body.data_model_id)
    comment = comments.create_comment(ctx.db, ctx.user, body.data_model_id, body.values())
    return {"comment": serialize(comment)}


@router.put("/{comment_id}")
def update_comment(comment_id: str, body: CommentUpdate, ctx: RequestContext = Depends(get_context)):
    comment = comments.get_comment(ctx.db, comment_id)
    ctx.require_data_model(comment.data_model_id)
    comment = comments.update_comment(ctx.db, ctx.user, comment_id, body.values())
    return {"comment": serialize(comment)}


@router.delete("/{comment_id}")
def delete_comment(comment_id: str, ctx: RequestContext = Depends(get_context)):
    comment = comments.get_comment(ctx.db, comment_id)
    # Authors may remove their own comments without the DELETE role
    data_model = ctx.require_data_model(comment.data_model_id, "GET")
    project_role = ctx.role_in(ctx.db.get(Project, data_model.project_id))
    comments.delete_comment(ctx.db, ctx.user, comment_id, can_moderate=can_manage(project_role))
    return {"success": True}
