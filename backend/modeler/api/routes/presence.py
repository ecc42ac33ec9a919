from typing import Optional

from fastapi import APIRouter, Depends, Query

from modeler import presence
from modeler.api.deps import RequestContext, get_context
from modeler.schemas import OfflineRequest, PresenceRequest

router = APIRouter(prefix="/api/user-presence", tags=["presence"])


@router.post("")
def heartbeat(body: PresenceRequest, ctx: RequestContext = Depends(get_context)):
    # Read access is enough to be seen in a project
    ctx.require_project(body.project_id, "GET")
    presence.heartbeat(ctx.db, ctx.user.id, body.project_id)
    return {"success": True}


@router.get("")
def online(
    project_id: Optional[str] = Query(None, alias="projectId"),
    ctx: RequestContext = Depends(get_context),
):
    ctx.require_project(project_id)
    return {"users": presence.online_users(ctx.db, project_id)}


@router.patch("/offline")
def offline(body: OfflineRequest, ctx: RequestContext = Depends(get_context)):
    user = ctx.require_user()
    updated = presence.mark_offline(ctx.db, user.id, body.project_id)
    return {"success": True, "updated": updated}
