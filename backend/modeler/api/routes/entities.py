from typing import Optional

from fastapi import APIRouter, Depends, Query
from pydantic import ValidationError

from modeler.api.deps import RequestContext, get_context
from modeler.api.serializers import serialize
from modeler.errors import InvalidRequestError
from modeler.graph import attributes, entities
from modeler.schemas import AttributeItem, BulkAttributesRequest, EntityCreate, EntityUpdate

router = APIRouter(prefix="/api/entities", tags=["entities"])


@router.get("")
def list_entities(
    data_model_id: Optional[str] = Query(None, alias="dataModelId"),
    ctx: RequestContext = Depends(get_context),
):
    ctx.require_data_model(data_model_id)
    return {"entities": serialize(entities.list_entities(ctx.db, data_model_id))}


@router.post("", status_code=201)
def create_entity(body: EntityCreate, ctx: RequestContext = Depends(get_context)):
    ctx.require_data_model(body.data_model_id)
    created = entities.create_entity(
        ctx.db,
        body.data_model_id,
        body.name,
        description=body.description,
        entity_type=body.entity_type,
        join_entities=body.join_entities,
        referential_id=body.referential_id,
        position_x=body.position_x,
        position_y=body.position_y,
        primary_key_type=body.primary_key_type,
        primary_key_name=body.primary_key_name,
        reference_entity_id=body.reference_entity_id,
        reference_entity_name=body.reference_entity_name,
    )
    return {"entity": serialize(created)}


@router.get("/{entity_id}")
def get_entity(entity_id: str, ctx: RequestContext = Depends(get_context)):
    entity = ctx.require_entity(entity_id)
    return {
        "entity": serialize(entity),
        "attributes": serialize(attributes.list_attributes(ctx.db, entity.id)),
    }


@router.put("/{entity_id}")
def update_entity(entity_id: str, body: EntityUpdate, ctx: RequestContext = Depends(get_context)):
    ctx.require_entity(entity_id)
    return {"entity": serialize(entities.update_entity(ctx.db, entity_id, body.values()))}


@router.delete("/{entity_id}")
def delete_entity(entity_id: str, ctx: RequestContext = Depends(get_context)):
    ctx.require_entity(entity_id)
    removed = entities.delete_entity(ctx.db, entity_id)
    return {"success": True, "removed": removed}


@router.put("/{entity_id}/attributes")
def replace_attributes(entity_id: str, body: BulkAttributesRequest, ctx: RequestContext = Depends(get_context)):
    ctx.require_entity(entity_id)
    items = body.attributes
    if isinstance(items, list):
        try:
            items = [
                AttributeItem.model_validate(item).values() if isinstance(item, dict) else item
                for item in items
            ]
        except ValidationError as exc:
            raise InvalidRequestError("Invalid attribute in list", details=exc.errors(include_url=False, include_context=False))
    return {"attributes": serialize(attributes.replace_attributes(ctx.db, entity_id, items))}
