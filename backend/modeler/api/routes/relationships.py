from typing import Optional

from fastapi import APIRouter, Depends, Query

from modeler.api.deps import RequestContext, get_context
from modeler.api.serializers import serialize
from modeler.graph import relationships
from modeler.schemas import RelationshipCreate, RelationshipFields

router = APIRouter(prefix="/api/relationships", tags=["relationships"])


def _authorized(ctx: RequestContext, relationship_id: str):
    relationship = relationships.get_relationship(ctx.db, relationship_id)
    ctx.require_data_model(relationship.data_model_id)
    return relationship


@router.get("")
def list_relationships(
    data_model_id: Optional[str] = Query(None, alias="dataModelId"),
    count: bool = Query(False),
    ctx: RequestContext = Depends(get_context),
):
    ctx.require_data_model(data_model_id)
    rows = relationships.list_relationships(ctx.db, data_model_id)
    if count:
        return {"count": len(rows)}
    return {"relationships": serialize(rows)}


@router.post("", status_code=201)
def create_relationship(body: RelationshipCreate, ctx: RequestContext = Depends(get_context)):
    ctx.require_data_model(body.data_model_id)
    values = body.values()
    values.pop("data_model_id", None)
    relationship = relationships.create_relationship(ctx.db, body.data_model_id, values)
    return {"relationship": serialize(relationship)}


@router.get("/{relationship_id}")
def get_relationship(relationship_id: str, ctx: RequestContext = Depends(get_context)):
    return {"relationship": serialize(_authorized(ctx, relationship_id))}


@router.put("/{relationship_id}")
def update_relationship(relationship_id: str, body: RelationshipFields, ctx: RequestContext = Depends(get_context)):
    _authorized(ctx, relationship_id)
    relationship = relationships.update_relationship(ctx.db, relationship_id, body.values())
    return {"relationship": serialize(relationship)}


@router.delete("/{relationship_id}")
def delete_relationship(relationship_id: str, ctx: RequestContext = Depends(get_context)):
    _authorized(ctx, relationship_id)
    relationships.delete_relationship(ctx.db, relationship_id)
    return {"success": True}
