from typing import Optional

from fastapi import APIRouter, Depends, Query

from modeler.api.deps import RequestContext, get_context
from modeler.errors import InvalidRequestError
from modeler.graph import rules
from modeler.schemas import RuleCreate, RuleFields

router = APIRouter(prefix="/api/rules", tags=["rules"])


def _authorized(ctx: RequestContext, rule_id: str):
    rule = rules.get_rule(ctx.db, rule_id)
    ctx.require_data_model(rule.data_model_id)
    return rule


def _view(ctx: RequestContext, rule) -> dict:
    model_rules = rules.list_rules(ctx.db, rule.data_model_id)
    return rules.with_dependency_views([rule], model_rules)[0]


@router.get("")
def list_rules(
    data_model_id: Optional[str] = Query(None, alias="dataModelId"),
    entity_id: Optional[str] = Query(None, alias="entityId"),
    attribute_id: Optional[str] = Query(None, alias="attributeId"),
    rule_type: Optional[str] = Query(None, alias="ruleType"),
    count: bool = Query(False),
    ctx: RequestContext = Depends(get_context),
):
    if data_model_id:
        model_id = ctx.require_data_model(data_model_id).id
    elif entity_id:
        model_id = ctx.require_entity(entity_id).data_model_id
    elif attribute_id:
        attribute = ctx.require_attribute(attribute_id)
        model_id = ctx.require_entity(attribute.entity_id).data_model_id
    else:
        raise InvalidRequestError("Data model ID is required")

    rows = rules.list_rules(ctx.db, model_id, entity_id, attribute_id, rule_type)
    if count:
        return {"count": len(rows)}
    return {"rules": rules.with_dependency_views(rows, rules.list_rules(ctx.db, model_id))}


@router.post("", status_code=201)
def create_rule(body: RuleCreate, ctx: RequestContext = Depends(get_context)):
    ctx.require_data_model(body.data_model_id)
    values = body.values()
    values.pop("data_model_id", None)
    rule = rules.create_rule(ctx.db, body.data_model_id, values, created_by=ctx.user.id)
    return {"rule": _view(ctx, rule)}


@router.get("/{rule_id}")
def get_rule(rule_id: str, ctx: RequestContext = Depends(get_context)):
    return {"rule": _view(ctx, _authorized(ctx, rule_id))}


@router.put("/{rule_id}")
def update_rule(rule_id: str, body: RuleFields, ctx: RequestContext = Depends(get_context)):
    _authorized(ctx, rule_id)
    rule = rules.update_rule(ctx.db, rule_id, body.values())
    return {"rule": _view(ctx, rule)}


@router.delete("/{rule_id}")
def delete_rule(rule_id: str, ctx: RequestContext = Depends(get_context)):
    _authorized(ctx, rule_id)
    rules.delete_rule(ctx.db, rule_id)
    return {"success": True}
