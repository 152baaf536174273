"""
Reference Lookup Utilities

Builds immutable lookup tables from small, non-paginated reference datasets
(users, pipelines, stages, custom field definitions) fetched once per sync.
"""

import logging
from types import MappingProxyType
from typing import Any, Iterable, Mapping

logger = logging.getLogger(__name__)

ReferenceMap = Mapping[str, dict[str, Any]]


def reference_key(value: Any) -> str | None:
    """
    Normalise an identifier for lookups.

    The API returns ids as strings ("7") while foreign keys may arrive as
    strings or integers, so both sides are compared as strings.
    """
    if value is None or value == "":
        return None
    return str(value)


def build_reference_map(
    entities: Iterable[dict[str, Any]],
    key_field: str = "id",
    name: str = "reference",
) -> ReferenceMap:
    """
    Build an id → entity lookup table.

    Args:
        entities: Reference records as returned by the API
        key_field: Field holding the identifier
        name: Dataset name used in log lines

    Returns:
        Read-only mapping from normalised id to entity. Entities without an
        id are skipped; on duplicate ids the last entity wins.
    """
    table: dict[str, dict[str, Any]] = {}
    skipped = 0

    for entity in entities:
        key = reference_key(entity.get(key_field)) if isinstance(entity, dict) else None
        if key is None:
            skipped += 1
            continue
        table[key] = entity

    if skipped:
        logger.warning(
            "Skipping reference entities without id",
            extra={"reference": name, "skipped": skipped, "key_field": key_field},
        )

    return MappingProxyType(table)
