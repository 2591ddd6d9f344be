"""
Field-level validation rules per entity kind, plus the aggregator that merges
field and cross-entity findings into one result.

Findings are data: every rule returns a list of ValidationIssue values and
never raises on malformed cells.
"""

from __future__ import annotations

from collections import Counter
from typing import Any, Callable

from data_alchemist.config import DEFAULT_SETTINGS, Settings
from data_alchemist.cross_entity import CROSS_ENTITY_RULES, CrossEntityData
from data_alchemist.findings import ValidationIssue, ValidationResult, summarize
from data_alchemist.schemas import SCHEMAS
from data_alchemist.shared import (
    find_column,
    is_blank,
    is_number,
    parse_comma_separated,
    parse_int,
    parse_json,
    parse_phase_range,
    row_headers,
)

REQUIRED_COLUMNS = {
    "client": ("clientid", "clientname", "prioritylevel"),
    "worker": ("workerid", "workername", "skills", "availableslots", "maxloadperphase"),
    "task": ("taskid", "taskname", "duration", "requiredskills", "preferredphases", "maxconcurrent"),
}

ID_PATTERNS = {
    "client": (("clientid", "client_id", "id"), "ClientID"),
    "worker": (("workerid", "worker_id", "id"), "WorkerID"),
    "task": (("taskid", "task_id", "id"), "TaskID"),
}

Rows = list[dict[str, Any]]
FieldRule = Callable[[Rows], list[ValidationIssue]]


# ══════════════════════════════════════════════════════════════════════════
# RULE BUILDERS
# ══════════════════════════════════════════════════════════════════════════

def required_columns_rule(required: tuple[str, ...]) -> FieldRule:
    def check(rows: Rows) -> list[ValidationIssue]:
        if not rows:
            return []
        headers = [str(header).lower() for header in row_headers(rows)]
        missing = [name for name in required if not any(name in header for header in headers)]
        if not missing:
            return []
        return [
            ValidationIssue(
                kind="error",
                message=f"Missing required columns: {', '.join(missing)}",
                severity="high",
                rule="required_columns",
            )
        ]

    return check


def _id_key(value: Any) -> Any:
    if isinstance(value, (str, int, float)):
        return value
    return repr(value)


def duplicate_ids_rule(patterns: tuple[str, ...], label: str) -> FieldRule:
    def check(rows: Rows) -> list[ValidationIssue]:
        column = find_column(rows, patterns)
        if not column:
            return []
        counts = Counter(_id_key(row.get(column)) for row in rows if not is_blank(row.get(column)))
        issues = []
        for index, row in enumerate(rows):
            value = row.get(column)
            if is_blank(value) or counts[_id_key(value)] < 2:
                continue
            issues.append(
                ValidationIssue(
                    kind="error",
                    message=f"Duplicate {label}: {value}",
                    severity="high",
                    row_index=index,
                    column=column,
                    value=value,
                    rule="duplicate_ids",
                )
            )
        return issues

    return check


def numeric_range_rule(
    rule_id: str,
    patterns: tuple[str, ...],
    message: str,
    *,
    minimum: int,
    maximum: int | None = None,
) -> FieldRule:
    def check(rows: Rows) -> list[ValidationIssue]:
        column = find_column(rows, patterns)
        if not column:
            return []
        issues = []
        for index, row in enumerate(rows):
            value = row.get(column)
            if is_blank(value):
                continue
            number = parse_int(value)
            out_of_range = number is None or number < minimum or (maximum is not None and number > maximum)
            if out_of_range:
                issues.append(
                    ValidationIssue(
                        kind="error",
                        message=message,
                        severity="medium",
                        row_index=index,
                        column=column,
                        value=value,
                        rule=rule_id,
                    )
                )
        return issues

    return check


def parsed_list_rule(
    rule_id: str,
    patterns: tuple[str, ...],
    message: str,
    parser: Callable[[Any], list[Any]],
) -> FieldRule:
    def check(rows: Rows) -> list[ValidationIssue]:
        column = find_column(rows, patterns)
        if not column:
            return []
        issues = []
        for index, row in enumerate(rows):
            value = row.get(column)
            if is_blank(value):
                continue
            if not parser(value):
                issues.append(
                    ValidationIssue(
                        kind="warning",
                        message=message,
                        severity="medium",
                        row_index=index,
                        column=column,
                        value=value,
                        rule=rule_id,
                    )
                )
        return issues

    return check


def text_label_rule(rule_id: str, patterns: tuple[str, ...], message: str) -> FieldRule:
    def check(rows: Rows) -> list[ValidationIssue]:
        column = find_column(rows, patterns)
        if not column:
            return []
        issues = []
        for index, row in enumerate(rows):
            value = row.get(column)
            if is_blank(value):
                continue
            if not isinstance(value, str) or not value.strip():
                issues.append(
                    ValidationIssue(
                        kind="warning",
                        message=message,
                        severity="low",
                        row_index=index,
                        column=column,
                        value=value,
                        rule=rule_id,
                    )
                )
        return issues

    return check


# ══════════════════════════════════════════════════════════════════════════
# JSON-SHAPED FIELDS
# ══════════════════════════════════════════════════════════════════════════

def check_attributes_json(rows: Rows) -> list[ValidationIssue]:
    column = find_column(rows, ("attributesjson", "attributes_json", "attributes"))
    if not column:
        return []
    issues = []
    for index, row in enumerate(rows):
        value = row.get(column)
        if is_blank(value):
            continue
        if parse_json(value) is None:
            issues.append(
                ValidationIssue(
                    kind="error",
                    message="AttributesJSON must be valid JSON",
                    severity="medium",
                    row_index=index,
                    column=column,
                    value=value,
                    rule="attributes_json",
                )
            )
    return issues


def check_available_slots(rows: Rows) -> list[ValidationIssue]:
    column = find_column(rows, ("availableslots", "available_slots", "slots"))
    if not column:
        return []
    issues = []
    for index, row in enumerate(rows):
        value = row.get(column)
        if is_blank(value):
            continue
        if isinstance(value, str):
            parsed = parse_json(value)
            if parsed is None and value.strip() != "null":
                message = "AvailableSlots must be a valid JSON array of numbers"
                issues.append(_slot_issue(index, column, value, message))
                continue
        else:
            parsed = value
        if not isinstance(parsed, list) or not all(is_number(slot) and slot > 0 for slot in parsed):
            issues.append(_slot_issue(index, column, value, "AvailableSlots must be an array of positive numbers"))
    return issues


def _slot_issue(index: int, column: str, value: Any, message: str) -> ValidationIssue:
    return ValidationIssue(
        kind="error",
        message=message,
        severity="medium",
        row_index=index,
        column=column,
        value=value,
        rule="available_slots_format",
    )


# ══════════════════════════════════════════════════════════════════════════
# RULE TABLES
# ══════════════════════════════════════════════════════════════════════════

def _id_rule(entity: str) -> FieldRule:
    patterns, label = ID_PATTERNS[entity]
    return duplicate_ids_rule(patterns, label)


FIELD_RULES: dict[str, list[FieldRule]] = {
    "client": [
        required_columns_rule(REQUIRED_COLUMNS["client"]),
        _id_rule("client"),
        numeric_range_rule(
            "priority_range",
            ("prioritylevel", "priority_level", "priority"),
            "PriorityLevel must be between 1 and 5",
            minimum=1,
            maximum=5,
        ),
        parsed_list_rule(
            "requested_tasks_format",
            ("requestedtaskids", "requested_task_ids", "requestedtasks"),
            "RequestedTaskIDs should contain valid task IDs",
            parse_comma_separated,
        ),
        check_attributes_json,
    ],
    "worker": [
        required_columns_rule(REQUIRED_COLUMNS["worker"]),
        _id_rule("worker"),
        parsed_list_rule(
            "skills_format",
            ("skills",),
            "Skills should contain valid skill tags",
            parse_comma_separated,
        ),
        check_available_slots,
        numeric_range_rule(
            "max_load_range",
            ("maxloadperphase", "max_load_per_phase", "maxload"),
            "MaxLoadPerPhase must be >= 1",
            minimum=1,
        ),
        text_label_rule(
            "qualification_level",
            ("qualificationlevel", "qualification_level", "qualification"),
            "QualificationLevel should be a valid string",
        ),
    ],
    "task": [
        required_columns_rule(REQUIRED_COLUMNS["task"]),
        _id_rule("task"),
        numeric_range_rule("duration_range", ("duration",), "Duration must be >= 1", minimum=1),
        parsed_list_rule(
            "required_skills_format",
            ("requiredskills", "required_skills", "skills"),
            "RequiredSkills should contain valid skill tags",
            parse_comma_separated,
        ),
        parsed_list_rule(
            "preferred_phases_format",
            ("preferredphases", "preferred_phases", "phases"),
            "PreferredPhases should contain valid phase numbers or ranges",
            parse_phase_range,
        ),
        numeric_range_rule(
            "max_concurrent_range",
            ("maxconcurrent", "max_concurrent", "concurrent"),
            "MaxConcurrent must be >= 1",
            minimum=1,
        ),
        text_label_rule("category_format", ("category",), "Category should be a valid string"),
    ],
}


# ══════════════════════════════════════════════════════════════════════════
# AGGREGATION
# ══════════════════════════════════════════════════════════════════════════

def validate_data(
    rows: Rows,
    entity: str,
    cross: CrossEntityData | None = None,
    settings: Settings | None = None,
) -> ValidationResult:
    """Run every field rule for the entity, then every cross-entity rule, and summarize."""
    settings = settings or DEFAULT_SETTINGS
    issues: list[ValidationIssue] = []
    for rule in FIELD_RULES.get(entity, []):
        issues.extend(rule(rows))
    for rule in CROSS_ENTITY_RULES:
        issues.extend(rule(rows, entity, cross, settings))
    return ValidationResult(issues=issues, summary=summarize(issues))


def row_issues(result: ValidationResult, row_index: int) -> list[ValidationIssue]:
    return [issue for issue in result.issues if issue.row_index == row_index]


def cell_issues(result: ValidationResult, row_index: int, column: str) -> list[ValidationIssue]:
    return [issue for issue in result.issues if issue.row_index == row_index and issue.column == column]


def required_cell_errors(row: dict[str, Any], entity: str) -> dict[str, str]:
    """Flag canonical fields that are missing or blank in a single (already remapped) row."""
    errors: dict[str, str] = {}
    for canonical in SCHEMAS.get(entity, {}):
        value = row.get(canonical)
        if is_blank(value) or not str(value).strip():
            errors[canonical] = "Required"
    return errors
