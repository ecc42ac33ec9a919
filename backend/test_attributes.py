"""Attribute create/update/delete and bulk replace."""

from modeler.db.models import Attribute, Relationship
from modeler.graph.attributes import find_fk_relationship


def _add_attribute(client, entity_id, **fields):
    body = {"entityId": entity_id, "name": "field", "dataType": "varchar"}
    body.update(fields)
    response = client.post("/api/attributes", json=body)
    assert response.status_code == 201, response.text
    return response.json()


def _relationship_count(db):
    # End the read snapshot so rows committed by later requests are visible
    db.rollback()
    return db.query(Relationship).count()


def test_foreign_key_creates_relationship(owner, make_entity):
    customer = make_entity("Customer")
    order = make_entity("Order")
    customer_pk = customer["attributes"][0]

    created = _add_attribute(
        owner, order["id"], name="customer_id", dataType="uuid",
        isForeignKey=True, referencedEntityId=customer["id"],
    )

    relationship = created["relationship"]
    assert relationship["source_entity_id"] == order["id"]
    assert relationship["target_entity_id"] == customer["id"]
    assert relationship["source_attribute_id"] == created["attribute"]["id"]
    assert relationship["target_attribute_id"] == customer_pk["id"]
    assert relationship["relationship_type"] == "one-to-many"
    assert relationship["name"] == "customer_id"
    assert created["skipped"] == []


def test_foreign_key_to_other_model_keeps_attribute(owner, project, make_entity, db):
    """A failing relationship side effect is skipped; the attribute stays."""
    other = owner.post(f"/api/projects/{project['id']}/models", json={"name": "Other"}).json()["dataModel"]
    remote = owner.post("/api/entities", json={"name": "Remote", "dataModelId": other["id"]}).json()["entity"]
    order = make_entity("Order")

    created = _add_attribute(
        owner, order["id"], name="remote_id", isForeignKey=True, referencedEntityId=remote["id"],
    )

    assert created["relationship"] is None
    assert created["skipped"][0]["step"] == "fk_relationship"
    attribute = db.get(Attribute, created["attribute"]["id"])
    assert attribute.is_foreign_key is True
    assert _relationship_count(db) == 0


def test_create_attribute_requires_data_type(owner, make_entity):
    order = make_entity("Order")
    response = owner.post("/api/attributes", json={"entityId": order["id"], "name": "total"})
    assert response.status_code == 400


def test_unknown_referenced_entity_is_404(owner, make_entity):
    order = make_entity("Order")
    response = owner.post(
        "/api/attributes",
        json={"entityId": order["id"], "name": "x_id", "dataType": "uuid",
              "isForeignKey": True, "referencedEntityId": "missing"},
    )
    assert response.status_code == 404


def _outsider_entity(client_factory):
    outsider = client_factory("outsider@example.com")
    project = outsider.post("/api/projects", json={"name": "Elsewhere"}).json()["project"]
    model = outsider.post(f"/api/projects/{project['id']}/models", json={"name": "Theirs"}).json()["dataModel"]
    return outsider.post("/api/entities", json={"name": "Secret", "dataModelId": model["id"]}).json()["entity"]


def test_foreign_key_into_another_project_is_rejected(owner, make_entity, client_factory, db):
    order = make_entity("Order")
    secret = _outsider_entity(client_factory)

    response = owner.post(
        "/api/attributes",
        json={"entityId": order["id"], "name": "secret_id", "dataType": "uuid",
              "isForeignKey": True, "referencedEntityId": secret["id"]},
    )

    assert response.status_code == 400
    db.rollback()
    assert db.query(Attribute).filter(Attribute.referenced_entity_id == secret["id"]).count() == 0
    assert _relationship_count(db) == 0


def test_update_cannot_point_foreign_key_into_another_project(owner, make_entity, client_factory, db):
    order = make_entity("Order")
    note = _add_attribute(owner, order["id"], name="note")["attribute"]
    secret = _outsider_entity(client_factory)

    response = owner.put(
        f"/api/attributes/{note['id']}",
        json={"isForeignKey": True, "referencedEntityId": secret["id"]},
    )

    assert response.status_code == 400
    db.rollback()
    assert db.get(Attribute, note["id"]).referenced_entity_id is None


def test_delete_foreign_key_removes_exactly_one_relationship(owner, make_entity, db):
    customer = make_entity("Customer")
    order = make_entity("Order")
    fk = _add_attribute(
        owner, order["id"], name="customer_id", isForeignKey=True, referencedEntityId=customer["id"],
    )["attribute"]
    # A second, unrelated pairing between the same entities
    _add_attribute(
        owner, order["id"], name="billing_customer_id", isForeignKey=True, referencedEntityId=customer["id"],
    )
    assert _relationship_count(db) == 2

    response = owner.delete(f"/api/attributes/{fk['id']}")
    assert response.status_code == 200
    assert response.json()["removedRelationshipId"] is not None
    assert _relationship_count(db) == 1
    remaining = db.query(Relationship).one()
    assert remaining.name == "billing_customer_id"


def test_delete_plain_attribute_removes_no_relationship(owner, make_entity, db):
    customer = make_entity("Customer")
    order = make_entity("Order")
    _add_attribute(owner, order["id"], name="customer_id", isForeignKey=True, referencedEntityId=customer["id"])
    note = _add_attribute(owner, order["id"], name="note")["attribute"]

    response = owner.delete(f"/api/attributes/{note['id']}")
    assert response.status_code == 200
    assert response.json()["removedRelationshipId"] is None
    assert _relationship_count(db) == 1


def test_find_fk_relationship_falls_back_to_entity_pair(owner, make_entity, db):
    customer = make_entity("Customer")
    order = make_entity("Order")
    fk = _add_attribute(owner, order["id"], name="customer_id", isForeignKey=True)["attribute"]
    relationship = owner.post(
        "/api/relationships",
        json={
            "dataModelId": order["data_model_id"],
            "sourceEntityId": customer["id"],
            "targetEntityId": order["id"],
            "relationshipType": "one-to-many",
        },
    ).json()["relationship"]
    owner.put(f"/api/attributes/{fk['id']}", json={"referencedEntityId": customer["id"]})

    attribute = db.get(Attribute, fk["id"])
    assert find_fk_relationship(db, attribute).id == relationship["id"]


def test_demoting_primary_key_detaches_pairings(owner, make_entity, db):
    customer = make_entity("Customer")
    order = make_entity("Order")
    created = _add_attribute(
        owner, order["id"], name="customer_id", isForeignKey=True, referencedEntityId=customer["id"],
    )
    customer_pk = customer["attributes"][0]

    response = owner.put(f"/api/attributes/{customer_pk['id']}", json={"isPrimaryKey": False})
    assert response.status_code == 200

    relationship = db.get(Relationship, created["relationship"]["id"])
    assert relationship.target_attribute_id is None
    assert relationship.source_attribute_id == created["attribute"]["id"]


def test_bulk_replace_reconciles(owner, make_entity, db):
    """Listed ids are updated, new items inserted and the rest deleted."""
    entity = make_entity("Product")
    first = _add_attribute(owner, entity["id"], name="sku")["attribute"]
    second = _add_attribute(owner, entity["id"], name="legacy_code")["attribute"]
    pk = entity["attributes"][0]

    response = owner.put(
        f"/api/entities/{entity['id']}/attributes",
        json={"attributes": [
            {"id": pk["id"], "name": pk["name"], "dataType": "uuid", "isPrimaryKey": True},
            {"id": first["id"], "name": "renamed"},
            {"name": "new"},
        ]},
    )
    assert response.status_code == 200, response.text

    attributes = response.json()["attributes"]
    assert [a["name"] for a in attributes] == ["id", "renamed", "new"]
    renamed = next(a for a in attributes if a["id"] == first["id"])
    assert renamed["data_type"] == "varchar"
    assert db.get(Attribute, second["id"]) is None


def test_bulk_replace_rejects_non_list(owner, make_entity):
    entity = make_entity("Product")
    response = owner.put(f"/api/entities/{entity['id']}/attributes", json={"attributes": {"name": "x"}})
    assert response.status_code == 400
    assert response.json()["error"] == "Attributes must be an array"


def test_bulk_replace_rejects_foreign_ids(owner, make_entity, db):
    product = make_entity("Product")
    other = make_entity("Other")
    foreign = other["attributes"][0]

    response = owner.put(
        f"/api/entities/{product['id']}/attributes",
        json={"attributes": [{"id": foreign["id"], "name": "stolen"}]},
    )
    assert response.status_code == 400
    assert db.get(Attribute, foreign["id"]).entity_id == other["id"]
    assert db.query(Attribute).filter(Attribute.entity_id == product["id"]).count() == 1
