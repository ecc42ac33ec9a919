from typing import Optional

from fastapi import APIRouter, Depends, Query

from modeler.api.deps import RequestContext, get_context
from modeler.api.serializers import serialize
from modeler.graph import referentials
from modeler.schemas import ReferentialCreate, ReferentialUpdate

router = APIRouter(prefix="/api/referentials", tags=["referentials"])


def _authorized(ctx: RequestContext, referential_id: str):
    referential = referentials.get_referential(ctx.db, referential_id)
    ctx.require_data_model(referential.data_model_id)
    return referential


def _view(ctx: RequestContext, referential) -> dict:
    data = referential.to_dict()
    data["entity_ids"] = [e.id for e in referentials.member_entities(ctx.db, referential.id)]
    return data


@router.get("")
def list_referentials(
    data_model_id: Optional[str] = Query(None, alias="dataModelId"),
    ctx: RequestContext = Depends(get_context),
):
    ctx.require_data_model(data_model_id)
    rows = referentials.list_referentials(ctx.db, data_model_id)
    return {"referentials": [_view(ctx, r) for r in rows]}


@router.post("", status_code=201)
def create_referential(body: ReferentialCreate, ctx: RequestContext = Depends(get_context)):
    ctx.require_data_model(body.data_model_id)
    values = body.values()
    entity_ids = values.pop("entity_ids", None)
    values.pop("data_model_id", None)
    referential = referentials.create_referential(ctx.db, body.data_model_id, values, entity_ids)
    return {"referential": _view(ctx, referential)}


@router.get("/{referential_id}")
def get_referential(referential_id: str, ctx: RequestContext = Depends(get_context)):
    return {"referential": _view(ctx, _authorized(ctx, referential_id))}


@router.put("/{referential_id}")
def update_referential(referential_id: str, body: ReferentialUpdate, ctx: RequestContext = Depends(get_context)):
    _authorized(ctx, referential_id)
    values = body.values()
    entity_ids = values.pop("entity_ids", None)
    referential = referentials.update_referential(ctx.db, referential_id, values, entity_ids)
    return {"referential": _view(ctx, referential)}


@router.delete("/{referential_id}")
def delete_referential(referential_id: str, ctx: RequestContext = Depends(get_context)):
    _authorized(ctx, referential_id)
    detached = referentials.delete_referential(ctx.db, referential_id)
    return {"success": True, "detachedEntities": detached}
