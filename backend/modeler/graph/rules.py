"""
Rule service.

Rules are scoped to an entity, to an attribute, or to the whole model
(neither). Dependencies are ids of other rules in the same model and must
form a DAG, so the forward/reverse dependency views stay well defined.
"""

from typing import Dict, Iterable, List, Optional

from sqlalchemy.orm import Session

from modeler.db.models import Attribute, Entity, Rule
from modeler.errors import InvalidRequestError, NotFoundError
from modeler.graph.common import apply_fields, get_data_model, get_or_404
from modeler.graph.policy import Operation, OperationPolicy

RULE_TYPES = ("validation", "business", "automation")
SEVERITIES = ("error", "warning", "info")

RULE_FIELDS = (
    "name",
    "description",
    "rule_type",
    "entity_id",
    "attribute_id",
    "condition_expression",
    "action_expression",
    "severity",
    "is_enabled",
    "dependencies",
)

CREATE_RULE = OperationPolicy("create_rule")
UPDATE_RULE = OperationPolicy("update_rule")
DELETE_RULE = OperationPolicy("delete_rule")


def find_cycle(graph: Dict[str, List[str]]) -> Optional[List[str]]:
    """Return one dependency cycle as a list of ids, or None for a DAG."""
    WHITE, GREY, BLACK = 0, 1, 2
    color = {node: WHITE for node in graph}
    stack: List[str] = []

    def visit(node: str) -> Optional[List[str]]:
        color[node] = GREY
        stack.append(node)
        for nxt in graph.get(node, []):
            state = color.get(nxt, WHITE)
            if state == GREY:
                return stack[stack.index(nxt):] + [nxt]
            if state == WHITE and nxt in graph:
                found = visit(nxt)
                if found:
                    return found
        stack.pop()
        color[node] = BLACK
        return None

    for node in list(graph):
        if color[node] == WHITE:
            found = visit(node)
            if found:
                return found
    return None


def _validate(db: Session, rule: Rule) -> None:
    if not rule.name:
        raise InvalidRequestError("Rule name is required")
    if rule.rule_type not in RULE_TYPES:
        raise InvalidRequestError(
            f"Invalid rule type: {rule.rule_type}", details={"allowed": list(RULE_TYPES)}
        )
    if rule.severity not in SEVERITIES:
        raise InvalidRequestError(
            f"Invalid severity: {rule.severity}", details={"allowed": list(SEVERITIES)}
        )
    if rule.rule_type == "validation" and not rule.condition_expression:
        raise InvalidRequestError("Condition expression is required for validation rules")
    if not rule.action_expression:
        raise InvalidRequestError("Action expression is required")

    if rule.entity_id and rule.attribute_id:
        raise InvalidRequestError("A rule is scoped to an entity or an attribute, not both")
    if rule.entity_id:
        entity = db.get(Entity, rule.entity_id)
        if entity is None:
            raise NotFoundError("Entity not found")
        if entity.data_model_id != rule.data_model_id:
            raise InvalidRequestError("Rule entity belongs to a different data model")
    if rule.attribute_id:
        attribute = db.get(Attribute, rule.attribute_id)
        if attribute is None:
            raise NotFoundError("Attribute not found")
        owner = db.get(Entity, attribute.entity_id)
        if owner.data_model_id != rule.data_model_id:
            raise InvalidRequestError("Rule attribute belongs to a different data model")

    dependencies = list(rule.dependencies or [])
    if len(set(dependencies)) != len(dependencies):
        raise InvalidRequestError("Rule dependencies contain duplicates")
    if rule.id and rule.id in dependencies:
        raise InvalidRequestError("A rule cannot depend on itself")

    others = {
        r.id: list(r.dependencies or [])
        for r in db.query(Rule).filter(Rule.data_model_id == rule.data_model_id)
        if r.id != rule.id
    }
    unknown = [d for d in dependencies if d not in others]
    if unknown:
        raise InvalidRequestError("Unknown rule dependencies", details={"ids": unknown})

    graph = dict(others)
    graph[rule.id or "__new__"] = dependencies
    cycle = find_cycle(graph)
    if cycle:
        raise InvalidRequestError("Rule dependencies contain a cycle", details={"cycle": cycle})


def create_rule(db: Session, data_model_id: str, values: dict, created_by: Optional[str] = None) -> Rule:
    get_data_model(db, data_model_id)
    rule = Rule(data_model_id=data_model_id, severity="error", is_enabled=True, dependencies=[], created_by=created_by)
    apply_fields(rule, values, RULE_FIELDS)
    rule.entity_id = rule.entity_id or None
    rule.attribute_id = rule.attribute_id or None
    rule.dependencies = list(rule.dependencies or [])
    if rule.severity is None:
        rule.severity = "error"
    if rule.is_enabled is None:
        rule.is_enabled = True
    _validate(db, rule)

    with Operation(db, CREATE_RULE):
        db.add(rule)
        db.flush()
    return rule


def get_rule(db: Session, rule_id: str) -> Rule:
    return get_or_404(db, Rule, rule_id, "Rule")


def update_rule(db: Session, rule_id: str, values: dict) -> Rule:
    rule = get_rule(db, rule_id)
    with Operation(db, UPDATE_RULE):
        apply_fields(rule, values, RULE_FIELDS)
        rule.entity_id = rule.entity_id or None
        rule.attribute_id = rule.attribute_id or None
        rule.dependencies = list(rule.dependencies or [])
        with db.no_autoflush:
            _validate(db, rule)
        db.flush()
    return rule


def prune_dependencies(db: Session, data_model_id: str, removed_ids: Iterable[str]) -> None:
    removed = set(removed_ids)
    if not removed:
        return
    for rule in db.query(Rule).filter(Rule.data_model_id == data_model_id):
        dependencies = list(rule.dependencies or [])
        kept = [d for d in dependencies if d not in removed]
        if kept != dependencies:
            rule.dependencies = kept
    db.flush()


def delete_rule(db: Session, rule_id: str) -> None:
    rule = get_rule(db, rule_id)
    with Operation(db, DELETE_RULE):
        data_model_id = rule.data_model_id
        db.delete(rule)
        db.flush()
        prune_dependencies(db, data_model_id, [rule_id])


def list_rules(
    db: Session,
    data_model_id: Optional[str] = None,
    entity_id: Optional[str] = None,
    attribute_id: Optional[str] = None,
    rule_type: Optional[str] = None,
) -> List[Rule]:
    query = db.query(Rule)
    if data_model_id:
        query = query.filter(Rule.data_model_id == data_model_id)
    if entity_id:
        query = query.filter(Rule.entity_id == entity_id)
    if attribute_id:
        query = query.filter(Rule.attribute_id == attribute_id)
    if rule_type:
        query = query.filter(Rule.rule_type == rule_type)
    return query.order_by(Rule.created_at.desc()).all()


def with_dependency_views(rules: List[Rule], model_rules: Optional[List[Rule]] = None) -> List[dict]:
    """Serialize rules with ``depends_on`` and ``required_by`` name lists."""
    universe = model_rules if model_rules is not None else rules
    names = {r.id: r.name for r in universe}
    required_by: Dict[str, List[str]] = {r.id: [] for r in universe}
    for r in universe:
        for dependency in r.dependencies or []:
            if dependency in required_by:
                required_by[dependency].append(r.name)

    views = []
    for rule in rules:
        data = rule.to_dict()
        data["depends_on"] = [names[d] for d in rule.dependencies or [] if d in names]
        data["required_by"] = required_by.get(rule.id, [])
        views.append(data)
    return views
