from __future__ import annotations

import json
import math
import re
from typing import Any

LEADING_INT_RE = re.compile(r"^\s*([+-]?\d+)")

ENTITY_TYPES = ("client", "worker", "task")


def is_blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, float) and math.isnan(value):
        return True
    return isinstance(value, str) and value == ""


def is_number(value: Any) -> bool:
    if isinstance(value, bool):
        return False
    if isinstance(value, float):
        return not math.isnan(value)
    return isinstance(value, int)


def parse_int(value: Any) -> int | float | None:
    """
    Coerce a cell to a number the way spreadsheet exports are usually read.

    Numbers pass through unchanged. Strings yield their leading integer
    ("10", " 7 days", "3.9" -> 3); anything else yields None.
    """
    if is_number(value):
        return value
    if isinstance(value, str):
        match = LEADING_INT_RE.match(value)
        if match:
            return int(match.group(1))
    return None


def parse_comma_separated(value: Any) -> list[str]:
    if is_blank(value):
        return []
    if isinstance(value, (list, tuple)):
        return [str(item).strip() for item in value if str(item).strip()]
    if isinstance(value, str):
        return [part.strip() for part in value.split(",") if part.strip()]
    return []


def parse_json(value: Any) -> Any:
    if is_blank(value):
        return None
    if isinstance(value, (dict, list)):
        return value
    if isinstance(value, str):
        try:
            return json.loads(value)
        except ValueError:
            return None
    return None


def parse_phase_range(value: Any) -> list[int]:
    """
    Expand phase text into a list of phase numbers.

    Accepted forms: "1-3" (inclusive), "2,4", "1-2,5", a JSON array "[1,3]",
    or an already-parsed list. Unparseable pieces are dropped, so "abc" -> [].
    """
    if is_blank(value):
        return []
    if isinstance(value, (list, tuple)):
        return [int(item) for item in value if is_number(item)]
    if is_number(value):
        return [int(value)]
    if not isinstance(value, str):
        return []

    text = value.strip()
    if text.startswith("["):
        parsed = parse_json(text)
        if isinstance(parsed, list):
            return [int(item) for item in parsed if is_number(item)]

    phases: list[int] = []
    for part in text.split(","):
        part = part.strip()
        if "-" in part:
            bounds = part.split("-")
            start = parse_int(bounds[0].strip())
            end = parse_int(bounds[1].strip())
            if start is not None and end is not None and start <= end:
                phases.extend(range(int(start), int(end) + 1))
        else:
            number = parse_int(part)
            if number is not None:
                phases.append(int(number))
    return phases


def row_headers(rows: list[dict[str, Any]]) -> list[str]:
    if not rows:
        return []
    return list(rows[0].keys())


def find_column(rows: list[dict[str, Any]], patterns: list[str] | tuple[str, ...]) -> str | None:
    """Return the first header containing a pattern, trying patterns in order."""
    headers = row_headers(rows)
    for pattern in patterns:
        needle = pattern.lower()
        for header in headers:
            if needle in str(header).lower():
                return header
    return None


def distinct_values(rows: list[dict[str, Any]], column: str | None) -> list[Any]:
    if not column:
        return []
    seen: list[Any] = []
    for row in rows:
        value = row.get(column)
        if is_blank(value) or value in seen:
            continue
        seen.append(value)
    return seen
