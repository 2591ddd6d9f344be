"""
Canonical schemas for the three entity kinds and header mapping helpers.

Uploaded spreadsheets rarely agree on column names ("Client ID", "client_id",
"ClientID"). Every header is normalized and looked up in the alias table of the
chosen entity; headers that match nothing are kept as-is.
"""

from __future__ import annotations

import re
from typing import Any

SCHEMAS: dict[str, dict[str, tuple[str, ...]]] = {
    "client": {
        "clientid": ("clientid", "client_id", "id"),
        "clientname": ("clientname", "client_name", "name"),
        "prioritylevel": ("prioritylevel", "priority_level", "priority"),
        "requestedtaskids": ("requestedtaskids", "requested_task_ids", "requestedtasks"),
        "grouptag": ("grouptag", "group_tag", "group"),
        "attributesjson": ("attributesjson", "attributes_json", "attributes"),
    },
    "worker": {
        "workerid": ("workerid", "worker_id", "id"),
        "workername": ("workername", "worker_name", "name"),
        "skills": ("skills",),
        "availableslots": ("availableslots", "available_slots", "slots"),
        "maxloadperphase": ("maxloadperphase", "max_load_per_phase", "maxload"),
        "workergroup": ("workergroup", "worker_group", "group"),
        "qualificationlevel": ("qualificationlevel", "qualification_level", "qualification"),
    },
    "task": {
        "taskid": ("taskid", "task_id", "id"),
        "taskname": ("taskname", "task_name", "name"),
        "category": ("category",),
        "duration": ("duration",),
        "requiredskills": ("requiredskills", "required_skills", "skills"),
        "preferredphases": ("preferredphases", "preferred_phases", "phases"),
        "maxconcurrent": ("maxconcurrent", "max_concurrent", "concurrent"),
    },
}

WHITESPACE_RE = re.compile(r"\s+")


def normalize_header(text: Any) -> str:
    return WHITESPACE_RE.sub("", str(text).lower())


def canonical_fields(entity: str) -> list[str]:
    if entity not in SCHEMAS:
        raise ValueError(f"Unknown entity type '{entity}'. Expected one of: {', '.join(SCHEMAS)}")
    return list(SCHEMAS[entity])


def map_headers(headers: list[str], entity: str) -> dict[str, str]:
    """Map each uploaded header to its canonical field name; unmatched headers map to themselves."""
    canonical_fields(entity)
    schema = SCHEMAS[entity]
    header_map: dict[str, str] = {}
    for header in headers:
        normalized = normalize_header(header)
        header_map[header] = header
        for canonical, aliases in schema.items():
            if any(normalize_header(alias) == normalized for alias in aliases):
                header_map[header] = canonical
                break
    return header_map


def original_headers(header_map: dict[str, str]) -> dict[str, str]:
    """Invert a header map so canonical keys can be written back under the uploaded names."""
    renamed: dict[str, str] = {}
    for header, canonical in header_map.items():
        renamed.setdefault(canonical, header)
    return renamed


def remap_rows(rows: list[dict[str, Any]], header_map: dict[str, str]) -> list[dict[str, Any]]:
    remapped = []
    for row in rows:
        new_row: dict[str, Any] = {}
        for key, value in row.items():
            new_row[header_map.get(key) or key] = value
        remapped.append(new_row)
    return remapped


def entity_scores(headers: list[str]) -> dict[str, int]:
    lowered = [str(header).lower() for header in headers]
    scores: dict[str, int] = {}
    for entity, schema in SCHEMAS.items():
        scores[entity] = sum(
            1
            for aliases in schema.values()
            if any(alias.lower() in header for alias in aliases for header in lowered)
        )
    return scores


def detect_entity(headers: list[str]) -> str | None:
    """
    Guess which entity kind a header row describes.

    Returns None when no schema matches at all or when the two best schemas
    tie; the caller has to ask the user in that case.
    """
    ranked = sorted(entity_scores(headers).items(), key=lambda item: item[1], reverse=True)
    best_entity, best_score = ranked[0]
    if best_score == 0:
        return None
    if len(ranked) > 1 and ranked[1][1] == best_score:
        return None
    return best_entity


def normalize_rows(rows: list[dict[str, Any]], entity: str) -> tuple[list[dict[str, Any]], dict[str, str]]:
    headers = list(rows[0].keys()) if rows else []
    header_map = map_headers(headers, entity)
    return remap_rows(rows, header_map), header_map
