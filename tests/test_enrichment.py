import copy

import pytest

from apps.transformer.enrichment import (
    CONTACT_CUSTOM_FIELDS,
    CONTACT_RELATIONS,
    DEAL_CUSTOM_FIELDS,
    DEAL_RELATIONS,
    enrich,
)
from utils.lookup import build_reference_map


@pytest.fixture
def deal_references() -> dict:
    return {
        "users": build_reference_map(
            [
                {"id": 7, "username": "x", "firstName": "Ada", "lastName": "L", "email": "ada@example.com",
                 "password": "hunter2"},
            ],
            name="users",
        ),
        "pipelines": build_reference_map(
            [{"id": "1", "title": "Sales", "currency": "usd", "autoassign": "0"}],
            name="pipelines",
        ),
        "stages": build_reference_map(
            [{"id": "3", "title": "Qualified", "order": "2", "dealOrder": "next-action DESC", "group": "1",
              "color": "32B0FC"}],
            name="stages",
        ),
        "dealCustomFieldMeta": build_reference_map(
            [{"id": "11", "fieldLabel": "Budget", "fieldType": "currency"}],
            name="dealCustomFieldMeta",
        ),
    }


def test_owner_in_reference_map_is_attached_with_fixed_projection(deal_references) -> None:
    [deal] = enrich([{"id": "100", "owner": 7}], deal_references, DEAL_RELATIONS)

    assert deal["ownerData"] == {
        "id": 7,
        "username": "x",
        "firstName": "Ada",
        "lastName": "L",
        "email": "ada@example.com",
    }
    assert "password" not in deal["ownerData"]


def test_unknown_owner_adds_no_key(deal_references) -> None:
    [deal] = enrich([{"id": "101", "owner": 999}], deal_references, DEAL_RELATIONS)

    assert "ownerData" not in deal


def test_missing_foreign_key_adds_no_key(deal_references) -> None:
    [deal] = enrich([{"id": "102", "owner": None, "stage": ""}], deal_references, DEAL_RELATIONS)

    assert "ownerData" not in deal
    assert "stageData" not in deal


def test_string_and_integer_ids_match(deal_references) -> None:
    [deal] = enrich([{"id": "103", "owner": "7", "group": 1, "stage": "3"}], deal_references, DEAL_RELATIONS)

    assert deal["ownerData"]["username"] == "x"
    assert deal["pipelineData"] == {"id": "1", "title": "Sales", "currency": "usd"}
    assert deal["stageData"] == {
        "id": "3",
        "title": "Qualified",
        "order": "2",
        "dealOrder": "next-action DESC",
        "group": "1",
    }


def test_deal_custom_fields_keyed_by_label(deal_references) -> None:
    raw = {
        "id": "104",
        "dealCustomFieldData": [
            {"customFieldId": "11", "fieldValue": "5000"},
            {"customFieldId": "12", "fieldValue": "orphan"},
        ],
    }

    [deal] = enrich([raw], deal_references, DEAL_RELATIONS, DEAL_CUSTOM_FIELDS)

    assert deal["customFields"] == {
        "Budget": {"value": "5000", "fieldId": "11", "fieldLabel": "Budget", "fieldType": "currency"},
    }


def test_contact_custom_fields_fall_back_to_synthetic_key() -> None:
    fields = build_reference_map(
        [
            {"id": "1", "title": "Favourite colour", "type": "text", "perstag": "FAVCOLOR"},
            {"id": "2", "title": "Shoe size", "type": "number", "perstag": ""},
        ],
        name="fields",
    )
    contact = {
        "id": "1",
        "email": "a@example.com",
        "fieldValues": [
            {"field": "1", "value": "teal"},
            {"field": "2", "value": "42"},
            {"field": "99", "value": "dropped"},
        ],
    }

    [enriched] = enrich([contact], {"fields": fields}, CONTACT_RELATIONS, CONTACT_CUSTOM_FIELDS)

    assert enriched["customFields"] == {
        "FAVCOLOR": {"value": "teal", "fieldId": "1", "fieldTitle": "Favourite colour", "fieldType": "text"},
        "field_2": {"value": "42", "fieldId": "2", "fieldTitle": "Shoe size", "fieldType": "number"},
    }
    assert enriched["email"] == "a@example.com"


def test_records_without_field_values_get_no_custom_fields() -> None:
    [enriched] = enrich([{"id": "2"}], {"fields": build_reference_map([])}, (), CONTACT_CUSTOM_FIELDS)

    assert "customFields" not in enriched


def test_input_records_are_not_mutated(deal_references) -> None:
    records = [
        {"id": "105", "owner": 7, "dealCustomFieldData": [{"customFieldId": "11", "fieldValue": "1"}]},
    ]
    snapshot = copy.deepcopy(records)

    enriched = enrich(records, deal_references, DEAL_RELATIONS, DEAL_CUSTOM_FIELDS)

    assert records == snapshot
    assert enriched[0] is not records[0]
    assert enriched[0]["dealCustomFieldData"] == records[0]["dealCustomFieldData"]


def test_reference_map_is_read_only_and_skips_entities_without_id() -> None:
    table = build_reference_map([{"id": 1, "title": "a"}, {"title": "no id"}, {"id": "", "title": "blank"}])

    assert dict(table) == {"1": {"id": 1, "title": "a"}}
    with pytest.raises(TypeError):
        table["2"] = {"id": 2}
