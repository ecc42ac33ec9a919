"""Relationship validation and CRUD."""

import pytest

from modeler.db.models import Relationship


@pytest.fixture
def pair(make_entity):
    return make_entity("Customer"), make_entity("Order")


def _create(client, data_model_id, **fields):
    body = {"dataModelId": data_model_id, "relationshipType": "one-to-many"}
    body.update(fields)
    return client.post("/api/relationships", json=body)


def test_create_and_list(owner, data_model, pair):
    customer, order = pair
    response = _create(
        owner, data_model["id"],
        sourceEntityId=customer["id"], targetEntityId=order["id"], name="places",
    )
    assert response.status_code == 201, response.text

    listed = owner.get("/api/relationships", params={"dataModelId": data_model["id"]}).json()
    assert [r["name"] for r in listed["relationships"]] == ["places"]
    counted = owner.get("/api/relationships", params={"dataModelId": data_model["id"], "count": "true"})
    assert counted.json() == {"count": 1}


def test_cross_model_endpoints_rejected(owner, project, data_model, pair, db):
    customer, _ = pair
    other = owner.post(f"/api/projects/{project['id']}/models", json={"name": "Other"}).json()["dataModel"]
    remote = owner.post("/api/entities", json={"name": "Remote", "dataModelId": other["id"]}).json()["entity"]

    response = _create(owner, data_model["id"], sourceEntityId=customer["id"], targetEntityId=remote["id"])
    assert response.status_code == 400
    assert db.query(Relationship).count() == 0


def test_pairing_without_primary_key_rejected(owner, data_model, pair):
    customer, order = pair
    name = owner.post(
        "/api/attributes", json={"entityId": customer["id"], "name": "name", "dataType": "varchar"},
    ).json()["attribute"]
    note = owner.post(
        "/api/attributes", json={"entityId": order["id"], "name": "note", "dataType": "varchar"},
    ).json()["attribute"]

    response = _create(
        owner, data_model["id"],
        sourceEntityId=customer["id"], targetEntityId=order["id"],
        sourceAttributeId=name["id"], targetAttributeId=note["id"],
    )
    assert response.status_code == 400
    assert response.json()["error"] == "A relationship must reference a primary key attribute"


def test_attribute_must_belong_to_its_endpoint(owner, data_model, pair):
    customer, order = pair
    response = _create(
        owner, data_model["id"],
        sourceEntityId=customer["id"], targetEntityId=order["id"],
        sourceAttributeId=order["attributes"][0]["id"],
    )
    assert response.status_code == 400


def test_invalid_type_rejected(owner, data_model, pair):
    customer, order = pair
    response = _create(
        owner, data_model["id"], relationshipType="some-to-few",
        sourceEntityId=customer["id"], targetEntityId=order["id"],
    )
    assert response.status_code == 400


def test_update_revalidates(owner, data_model, pair):
    customer, order = pair
    relationship = _create(
        owner, data_model["id"], sourceEntityId=customer["id"], targetEntityId=order["id"],
    ).json()["relationship"]

    ok = owner.put(f"/api/relationships/{relationship['id']}", json={"relationshipType": "one-to-one"})
    assert ok.status_code == 200
    assert ok.json()["relationship"]["relationship_type"] == "one-to-one"

    bad = owner.put(f"/api/relationships/{relationship['id']}", json={"targetEntityId": "missing"})
    assert bad.status_code == 404
    fetched = owner.get(f"/api/relationships/{relationship['id']}").json()["relationship"]
    assert fetched["target_entity_id"] == order["id"]


def test_delete(owner, data_model, pair, db):
    customer, order = pair
    relationship = _create(
        owner, data_model["id"], sourceEntityId=customer["id"], targetEntityId=order["id"],
    ).json()["relationship"]

    assert owner.delete(f"/api/relationships/{relationship['id']}").status_code == 200
    assert db.query(Relationship).count() == 0
    assert owner.get(f"/api/relationships/{relationship['id']}").status_code == 404
