"""Entity lifecycle through the HTTP API."""

import pytest

from modeler.db.models import Attribute, Comment, Entity, Relationship, Rule


@pytest.mark.parametrize(
    "pk_type,data_type",
    [("uuid", "uuid"), ("auto_increment", "integer"), ("custom", "varchar"), ("composite", "composite")],
)
def test_create_entity_synthesizes_one_primary_key(owner, make_entity, pk_type, data_type):
    """Every new entity gets exactly one required, unique primary key."""
    entity = make_entity("Customer", primaryKeyType=pk_type, primaryKeyName="customer_id")

    response = owner.get("/api/attributes", params={"entityId": entity["id"]})
    attributes = response.json()["attributes"]
    keys = [a for a in attributes if a["is_primary_key"]]
    assert len(keys) == 1
    assert keys[0]["name"] == "customer_id"
    assert keys[0]["data_type"] == data_type
    assert keys[0]["is_required"] is True
    assert keys[0]["is_unique"] is True


def test_create_entity_requires_name(owner, data_model):
    response = owner.post("/api/entities", json={"dataModelId": data_model["id"]})
    assert response.status_code == 400
    assert response.json()["error"] == "Entity name is required"


def test_create_entity_requires_data_model(owner):
    response = owner.post("/api/entities", json={"name": "Orphan"})
    assert response.status_code == 400


def test_create_entity_rejects_unknown_primary_key_type(owner, data_model):
    response = owner.post(
        "/api/entities",
        json={"name": "Bad", "dataModelId": data_model["id"], "primaryKeyType": "serial"},
    )
    assert response.status_code == 400


def test_position_hint_places_entity_next_to_reference(make_entity):
    customer = make_entity("Customer", position_x=100, position_y=40)
    order = make_entity("Order", reference_entity_name="'customer'")
    assert order["position_x"] == customer["position_x"] + 250
    assert order["position_y"] == 40


def test_explicit_position_wins_over_hint(make_entity):
    make_entity("Customer", position_x=100, position_y=40)
    order = make_entity("Order", position_x=7, position_y=9, reference_entity_name="Customer")
    assert (order["position_x"], order["position_y"]) == (7, 9)


def test_join_entity_links_both_sides(owner, make_entity):
    """A join entity gets one FK and one relationship per joined entity."""
    student = make_entity("Student", position_x=0, position_y=0)
    course = make_entity("Course Unit", position_x=200, position_y=100)

    join = make_entity("Enrollment", entity_type="join", join_entities=[student["id"], course["id"]])

    assert join["entity_type"] == "join"
    assert (join["position_x"], join["position_y"]) == (100, 50)

    foreign_keys = [a for a in join["attributes"] if a["is_foreign_key"]]
    assert sorted(a["name"] for a in foreign_keys) == ["idCourseUnit", "idStudent"]
    assert all(a["data_type"] == "uuid" for a in foreign_keys)
    assert {a["referenced_entity_id"] for a in foreign_keys} == {student["id"], course["id"]}

    names = sorted(r["name"] for r in join["relationships"])
    assert names == ["Enrollment to Course Unit", "Enrollment to Student"]
    for relationship in join["relationships"]:
        assert relationship["source_entity_id"] == join["id"]
        assert relationship["relationship_type"] == "one-to-many"
        assert relationship["source_cardinality"] == "0..n"
        assert relationship["target_cardinality"] == "0..1"


def test_join_entity_with_foreign_model_entity_is_rejected(owner, project, make_entity, db):
    other = owner.post(f"/api/projects/{project['id']}/models", json={"name": "Other"}).json()["dataModel"]
    stranger = owner.post("/api/entities", json={"name": "Stranger", "dataModelId": other["id"]}).json()["entity"]
    local = make_entity("Local")

    response = owner.post(
        "/api/entities",
        json={
            "name": "Bridge",
            "dataModelId": local["data_model_id"],
            "entity_type": "join",
            "join_entities": [local["id"], stranger["id"]],
        },
    )
    assert response.status_code == 400
    assert db.query(Entity).filter(Entity.name == "Bridge").count() == 0


def test_update_entity_partial(owner, make_entity):
    entity = make_entity("Customer")
    response = owner.put(f"/api/entities/{entity['id']}", json={"description": "People who buy"})
    assert response.status_code == 200
    updated = response.json()["entity"]
    assert updated["description"] == "People who buy"
    assert updated["name"] == "Customer"


def test_delete_entity_cascades(owner, data_model, make_entity, db):
    """Deleting an entity clears every reference to it."""
    customer = make_entity("Customer")
    order = make_entity("Order")
    fk = owner.post(
        "/api/attributes",
        json={
            "entityId": order["id"],
            "name": "customer_id",
            "dataType": "uuid",
            "isForeignKey": True,
            "referencedEntityId": customer["id"],
        },
    ).json()["attribute"]
    rule = owner.post(
        "/api/rules",
        json={
            "dataModelId": data_model["id"],
            "name": "Customers need a name",
            "rule_type": "validation",
            "entity_id": customer["id"],
            "condition_expression": "name != ''",
            "action_expression": "reject",
        },
    ).json()["rule"]
    owner.post(
        "/api/comments",
        json={"dataModelId": data_model["id"], "entityId": customer["id"], "content": "Check this"},
    )

    response = owner.delete(f"/api/entities/{customer['id']}")
    assert response.status_code == 200
    removed = response.json()["removed"]
    assert removed["relationships"] == 1
    assert removed["foreignKeysCleared"] == 1

    assert db.get(Entity, customer["id"]) is None
    assert db.query(Relationship).count() == 0
    assert db.get(Rule, rule["id"]) is None
    assert db.query(Comment).count() == 0
    assert db.query(Attribute).filter(Attribute.entity_id == customer["id"]).count() == 0

    orphan = db.get(Attribute, fk["id"])
    assert orphan.referenced_entity_id is None
    assert orphan.is_foreign_key is False


def test_list_entities_sorted_by_name(owner, data_model, make_entity):
    make_entity("Zebra")
    make_entity("Apple")
    response = owner.get("/api/entities", params={"dataModelId": data_model["id"]})
    assert [e["name"] for e in response.json()["entities"]] == ["Apple", "Zebra"]
