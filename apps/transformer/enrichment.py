"""
Enrichment Stage - Reference Data Joins

Pure, in-memory transform that joins primary records (contacts, deals)
against reference maps built once per sync run. Each relation attaches a
fixed projection of the referenced entity; custom field value lists are
turned into a mapping keyed by the field's tag.

Input records are never mutated; every output record is a new dict holding
the original fields plus the added keys.

Usage:
    from apps.transformer.enrichment import DEAL_RELATIONS, DEAL_CUSTOM_FIELDS, enrich

    enriched = enrich(deals, reference_maps, DEAL_RELATIONS, DEAL_CUSTOM_FIELDS)
"""

from dataclasses import dataclass
from typing import Any, Iterable, Mapping, Optional, Sequence

from utils.lookup import ReferenceMap, reference_key

CUSTOM_FIELDS_KEY = "customFields"


@dataclass(frozen=True)
class RelationSpec:
    """Foreign key on the record → projected sub-object from a reference map."""

    source_key: str
    reference: str
    target_key: str
    fields: tuple[str, ...]


@dataclass(frozen=True)
class CustomFieldSpec:
    """How to read a record's custom field value list and its metadata."""

    source_key: str
    reference: str
    id_key: str
    value_key: str
    tag_key: str
    title_key: str
    title_label: str
    type_key: str


CONTACT_RELATIONS: tuple[RelationSpec, ...] = ()

CONTACT_CUSTOM_FIELDS = CustomFieldSpec(
    source_key="fieldValues",
    reference="fields",
    id_key="field",
    value_key="value",
    tag_key="perstag",
    title_key="title",
    title_label="fieldTitle",
    type_key="type",
)

DEAL_RELATIONS: tuple[RelationSpec, ...] = (
    RelationSpec("group", "pipelines", "pipelineData", ("id", "title", "currency")),
    RelationSpec("stage", "stages", "stageData", ("id", "title", "order", "dealOrder", "group")),
    RelationSpec("owner", "users", "ownerData", ("id", "username", "firstName", "lastName", "email")),
)

DEAL_CUSTOM_FIELDS = CustomFieldSpec(
    source_key="dealCustomFieldData",
    reference="dealCustomFieldMeta",
    id_key="customFieldId",
    value_key="fieldValue",
    tag_key="fieldLabel",
    title_key="fieldLabel",
    title_label="fieldLabel",
    type_key="fieldType",
)


def project(entity: Mapping[str, Any], fields: Iterable[str]) -> dict[str, Any]:
    """Copy only the listed fields (missing ones become None)."""
    return {field: entity.get(field) for field in fields}


def map_custom_fields(
    values: Sequence[Mapping[str, Any]],
    metadata: ReferenceMap,
    spec: CustomFieldSpec,
) -> dict[str, dict[str, Any]]:
    """
    Turn a raw field value list into {tag: {value, fieldId, title, fieldType}}.

    Entries whose field id has no metadata are dropped.
    """
    mapped: dict[str, dict[str, Any]] = {}

    for entry in values:
        if not isinstance(entry, Mapping):
            continue

        field_id = entry.get(spec.id_key)
        meta = metadata.get(reference_key(field_id) or "")
        if meta is None:
            continue

        field_key = meta.get(spec.tag_key) or f"field_{field_id}"
        mapped[field_key] = {
            "value": entry.get(spec.value_key),
            "fieldId": field_id,
            spec.title_label: meta.get(spec.title_key),
            "fieldType": meta.get(spec.type_key),
        }

    return mapped


def enrich_record(
    record: Mapping[str, Any],
    reference_maps: Mapping[str, ReferenceMap],
    relations: Sequence[RelationSpec] = (),
    custom_fields: Optional[CustomFieldSpec] = None,
) -> dict[str, Any]:
    enriched = dict(record)

    for relation in relations:
        foreign_key = record.get(relation.source_key)
        if not foreign_key:
            continue

        entity = reference_maps.get(relation.reference, {}).get(reference_key(foreign_key) or "")
        if entity is not None:
            enriched[relation.target_key] = project(entity, relation.fields)

    if custom_fields is not None:
        values = record.get(custom_fields.source_key)
        if isinstance(values, list):
            enriched[CUSTOM_FIELDS_KEY] = map_custom_fields(
                values,
                reference_maps.get(custom_fields.reference, {}),
                custom_fields,
            )

    return enriched


def enrich(
    records: Iterable[Mapping[str, Any]],
    reference_maps: Mapping[str, ReferenceMap],
    relations: Sequence[RelationSpec] = (),
    custom_fields: Optional[CustomFieldSpec] = None,
) -> list[dict[str, Any]]:
    """
    Enrich every record with relation sub-objects and custom field mappings.

    Args:
        records: Raw primary records
        reference_maps: Reference maps by name (e.g. "users")
        relations: Relations to resolve
        custom_fields: Custom field list description, if the dataset has one

    Returns:
        New enriched records, in input order
    """
    return [
        enrich_record(record, reference_maps, relations, custom_fields)
        for record in records
    ]
