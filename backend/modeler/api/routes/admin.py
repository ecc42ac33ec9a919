from fastapi import APIRouter, Depends

from modeler.admin import collect_metrics, set_superuser
from modeler.api.deps import RequestContext, get_context
from modeler.schemas import SuperuserRequest

router = APIRouter(prefix="/api/admin", tags=["admin"])


@router.get("/metrics")
def metrics(ctx: RequestContext = Depends(get_context)):
    ctx.require_superuser()
    return collect_metrics(ctx.db)


@router.post("/users/{user_id}/superuser")
def toggle_superuser(user_id: str, body: SuperuserRequest, ctx: RequestContext = Depends(get_context)):
    ctx.require_superuser()
    user = set_superuser(ctx.db, user_id, body.is_superuser)
    return {"success": True, "user": user.to_dict()}
