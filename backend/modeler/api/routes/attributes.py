from typing import Optional

from fastapi import APIRouter, Depends, Query

from modeler.api.deps import RequestContext, get_context
from modeler.api.serializers import serialize
from modeler.graph import attributes
from modeler.schemas import AttributeCreate, AttributeFields

router = APIRouter(prefix="/api/attributes", tags=["attributes"])


@router.get("")
def list_attributes(
    entity_id: Optional[str] = Query(None, alias="entityId"),
    count: bool = Query(False),
    ctx: RequestContext = Depends(get_context),
):
    ctx.require_entity(entity_id)
    rows = attributes.list_attributes(ctx.db, entity_id)
    if count:
        return {"count": len(rows)}
    return {"attributes": serialize(rows)}


@router.post("", status_code=201)
def create_attribute(body: AttributeCreate, ctx: RequestContext = Depends(get_context)):
    ctx.require_entity(body.entity_id)
    values = body.values()
    values.pop("entity_id", None)
    attribute, relationship, skipped = attributes.create_attribute(ctx.db, body.entity_id, values)
    return {
        "attribute": serialize(attribute),
        "relationship": serialize(relationship),
        "skipped": serialize(skipped),
    }


@router.get("/{attribute_id}")
def get_attribute(attribute_id: str, ctx: RequestContext = Depends(get_context)):
    return {"attribute": serialize(ctx.require_attribute(attribute_id))}


@router.put("/{attribute_id}")
def update_attribute(attribute_id: str, body: AttributeFields, ctx: RequestContext = Depends(get_context)):
    ctx.require_attribute(attribute_id)
    return {"attribute": serialize(attributes.update_attribute(ctx.db, attribute_id, body.values()))}


@router.delete("/{attribute_id}")
def delete_attribute(attribute_id: str, ctx: RequestContext = Depends(get_context)):
    ctx.require_attribute(attribute_id)
    removed = attributes.delete_attribute(ctx.db, attribute_id)
    return {"success": True, "removedRelationshipId": removed}
