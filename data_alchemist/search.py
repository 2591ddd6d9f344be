"""
Plain-English row filter.

A query such as "tasks with duration more than 3 in phase 2" is turned into a
conjunction of column conditions by a fixed sequence of regular expressions.
Rows match only when every extracted condition holds.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from typing import Any

from data_alchemist.shared import is_number, parse_int

DURATION_MORE_RE = re.compile(r"duration\s+(?:of\s+)?(?:more\s+than|greater\s+than|>)\s*(\d+)")
DURATION_LESS_RE = re.compile(r"duration\s+(?:of\s+)?(?:less\s+than|<)\s*(\d+)")
PRIORITY_MORE_RE = re.compile(r"priority\s+(?:level\s+)?(?:greater\s+than|more\s+than|>\s*)\s*(\d+)")
PRIORITY_LESS_RE = re.compile(r"priority\s+(?:level\s+)?(?:less\s+than|<\s*)\s*(\d+)")
PRIORITY_EXACT_RE = re.compile(r"priority\s+(?:level\s+)?(\d+)")
PHASE_RE = re.compile(r"phase\s+(\d+)")
SKILL_RE = re.compile(r"skills?\s+(?:of\s+)?([a-zA-Z\s,]+)")
ROLE_RE = re.compile(r"role\s+(?:of\s+)?([a-zA-Z\s]+)")
GROUP_RE = re.compile(r"group\s+(?:of\s+)?([a-zA-Z\s]+)")
CATEGORY_RE = re.compile(r"category\s+(?:of\s+)?([a-zA-Z\s]+)")
TOKEN_SPLIT_RE = re.compile(r"[,\s]+")

GROUP_KEYWORDS = ("enterprise", "startup", "small")

OPERATORS = (">", "<", "=", "includes")


@dataclass(frozen=True)
class Condition:
    column: str
    operator: str
    value: Any

    def to_dict(self) -> dict[str, Any]:
        return {"column": self.column, "operator": self.operator, "value": self.value}


@dataclass
class SearchResult:
    query: str
    rows: list[dict[str, Any]]
    row_indices: list[int]
    explanation: str
    conditions: list[Condition] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "query": self.query,
            "rows": [dict(row) for row in self.rows],
            "row_indices": list(self.row_indices),
            "explanation": self.explanation,
            "conditions": [condition.to_dict() for condition in self.conditions],
        }


def parse_query(query: str) -> list[Condition]:
    text = query.lower()
    conditions: list[Condition] = []

    match = DURATION_MORE_RE.search(text)
    if match:
        conditions.append(Condition("duration", ">", int(match.group(1))))
    match = DURATION_LESS_RE.search(text)
    if match:
        conditions.append(Condition("duration", "<", int(match.group(1))))

    priority_more = PRIORITY_MORE_RE.search(text)
    if priority_more:
        conditions.append(Condition("prioritylevel", ">", int(priority_more.group(1))))
    priority_less = PRIORITY_LESS_RE.search(text)
    if priority_less:
        conditions.append(Condition("prioritylevel", "<", int(priority_less.group(1))))
    if not priority_more and not priority_less:
        match = PRIORITY_EXACT_RE.search(text)
        if match:
            conditions.append(Condition("prioritylevel", "=", int(match.group(1))))

    match = PHASE_RE.search(text)
    if match:
        conditions.append(Condition("preferredphases", "includes", int(match.group(1))))

    match = SKILL_RE.search(text)
    if match:
        for skill in TOKEN_SPLIT_RE.split(match.group(1)):
            if skill:
                conditions.append(Condition("requiredskills", "includes", skill.strip()))

    match = ROLE_RE.search(text)
    if match:
        conditions.append(Condition("workergroup", "=", match.group(1).strip()))
    match = GROUP_RE.search(text)
    if match:
        conditions.append(Condition("grouptag", "=", match.group(1).strip()))
    for keyword in GROUP_KEYWORDS:
        if keyword in text:
            conditions.append(Condition("grouptag", "=", keyword))

    match = CATEGORY_RE.search(text)
    if match:
        conditions.append(Condition("category", "=", match.group(1).strip()))
    return conditions


def _as_number(value: Any) -> int | float | None:
    if isinstance(value, str):
        return parse_int(value)
    if is_number(value):
        return value
    return None


def _list_contains(items: list[Any], needle: Any) -> bool:
    return any(item == needle and type(item) is not bool for item in items)


def matches_condition(value: Any, condition: Condition) -> bool:
    if condition.operator == ">":
        number = _as_number(value)
        return number is not None and number > condition.value
    if condition.operator == "<":
        number = _as_number(value)
        return number is not None and number < condition.value
    if condition.operator == "=":
        return type(value) is type(condition.value) and value == condition.value
    if condition.operator == "includes":
        if isinstance(value, (list, tuple)):
            return _list_contains(list(value), condition.value)
        if isinstance(value, str):
            try:
                parsed = json.loads(value)
            except ValueError:
                return str(condition.value).lower() in value.lower()
            return isinstance(parsed, list) and _list_contains(parsed, condition.value)
        return False
    return False


def search(rows: list[dict[str, Any]], query: str) -> SearchResult:
    conditions = parse_query(query)
    matched = [
        index
        for index, row in enumerate(rows)
        if all(matches_condition(row.get(condition.column), condition) for condition in conditions)
    ]
    return SearchResult(
        query=query,
        rows=[rows[index] for index in matched],
        row_indices=matched,
        explanation=f"Found {len(matched)} rows matching: {query}",
        conditions=conditions,
    )
