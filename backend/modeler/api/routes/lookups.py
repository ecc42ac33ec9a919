from typing import Optional

from fastapi import APIRouter, Depends, Query

from modeler.api.deps import RequestContext, get_context
from modeler.db.models import DataModel, Entity, Project
from modeler.graph.lookups import attribute_reference_counts, entity_names

router = APIRouter(prefix="/api", tags=["lookups"])


@router.get("/entity-names")
def names(ids: str = Query(""), ctx: RequestContext = Depends(get_context)):
    ctx.require_user()
    wanted = [i.strip() for i in ids.split(",") if i.strip()]
    found = entity_names(ctx.db, wanted)
    # Names from projects the caller is not part of are left out
    visible = {}
    for entity_id, name in found.items():
        data_model = ctx.db.get(DataModel, ctx.db.get(Entity, entity_id).data_model_id)
        if ctx.role_in(ctx.db.get(Project, data_model.project_id)):
            visible[entity_id] = name
    return {"entityNames": visible}


@router.get("/attribute-references")
def references(
    entity_id: Optional[str] = Query(None, alias="entityId"),
    attribute_id: Optional[str] = Query(None, alias="attributeId"),
    ctx: RequestContext = Depends(get_context),
):
    if attribute_id:
        ctx.require_attribute(attribute_id)
        counts = attribute_reference_counts(ctx.db, attribute_id=attribute_id)
        return {"referenceCount": counts.get(attribute_id, 0)}
    if entity_id:
        ctx.require_entity(entity_id)
    counts = attribute_reference_counts(ctx.db, entity_id=entity_id)
    return {"referenceCounts": counts}
