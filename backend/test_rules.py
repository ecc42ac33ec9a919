"""Rule scoping and the dependency DAG."""

import pytest

from modeler.db.models import Rule
from modeler.graph.rules import find_cycle


def _create(client, data_model_id, name, **fields):
    body = {
        "dataModelId": data_model_id,
        "name": name,
        "ruleType": "business",
        "actionExpression": "notify()",
    }
    body.update(fields)
    return client.post("/api/rules", json=body)


def _rule(client, data_model_id, name, **fields):
    response = _create(client, data_model_id, name, **fields)
    assert response.status_code == 201, response.text
    return response.json()["rule"]


def test_find_cycle():
    assert find_cycle({"a": ["b"], "b": ["c"], "c": []}) is None
    assert find_cycle({"a": ["b"], "b": ["a"]}) == ["a", "b", "a"]
    assert find_cycle({"a": ["a"]}) == ["a", "a"]


def test_defaults(owner, data_model):
    rule = _rule(owner, data_model["id"], "Notify sales")
    assert rule["severity"] == "error"
    assert rule["is_enabled"] is True
    assert rule["dependencies"] == []
    assert rule["created_by"] == owner.user["id"]


def test_validation_rule_needs_condition(owner, data_model):
    response = _create(owner, data_model["id"], "Positive total", ruleType="validation")
    assert response.status_code == 400


@pytest.mark.parametrize("field,value", [("ruleType", "magic"), ("severity", "fatal")])
def test_enumerations_are_checked(owner, data_model, field, value):
    assert _create(owner, data_model["id"], "Bad", **{field: value}).status_code == 400


def test_entity_and_attribute_scope_are_exclusive(owner, data_model, make_entity):
    order = make_entity("Order")
    response = _create(
        owner, data_model["id"], "Both",
        entityId=order["id"], attributeId=order["attributes"][0]["id"],
    )
    assert response.status_code == 400


def test_dependency_cycle_rejected(owner, data_model, db):
    first = _rule(owner, data_model["id"], "First")
    second = _rule(owner, data_model["id"], "Second", dependencies=[first["id"]])

    response = owner.put(f"/api/rules/{first['id']}", json={"dependencies": [second["id"]]})
    assert response.status_code == 400
    assert response.json()["error"] == "Rule dependencies contain a cycle"
    assert db.get(Rule, first["id"]).dependencies == []


def test_unknown_or_self_dependency_rejected(owner, data_model):
    rule = _rule(owner, data_model["id"], "Solo")
    assert _create(owner, data_model["id"], "Dangling", dependencies=["nope"]).status_code == 400
    assert owner.put(f"/api/rules/{rule['id']}", json={"dependencies": [rule["id"]]}).status_code == 400


def test_dependency_views(owner, data_model):
    base = _rule(owner, data_model["id"], "Base")
    derived = _rule(owner, data_model["id"], "Derived", dependencies=[base["id"]])

    assert derived["depends_on"] == ["Base"]
    fetched = owner.get(f"/api/rules/{base['id']}").json()["rule"]
    assert fetched["required_by"] == ["Derived"]


def test_delete_prunes_dependencies(owner, data_model, db):
    base = _rule(owner, data_model["id"], "Base")
    derived = _rule(owner, data_model["id"], "Derived", dependencies=[base["id"]])

    assert owner.delete(f"/api/rules/{base['id']}").status_code == 200
    db.expire_all()
    assert db.get(Rule, derived["id"]).dependencies == []


def test_list_filters_and_count(owner, data_model, make_entity):
    order = make_entity("Order")
    _rule(owner, data_model["id"], "Model wide")
    _rule(owner, data_model["id"], "Order only", entityId=order["id"])

    everything = owner.get("/api/rules", params={"dataModelId": data_model["id"]}).json()["rules"]
    assert sorted(r["name"] for r in everything) == ["Model wide", "Order only"]

    scoped = owner.get("/api/rules", params={"entityId": order["id"]}).json()["rules"]
    assert [r["name"] for r in scoped] == ["Order only"]

    counted = owner.get("/api/rules", params={"dataModelId": data_model["id"], "count": "true"})
    assert counted.json() == {"count": 2}


def test_list_requires_a_scope(owner):
    assert owner.get("/api/rules").status_code == 400
