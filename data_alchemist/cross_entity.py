"""
Validation rules that span entity collections.

Each rule only runs for the entity kind it checks and only when the companion
collection it needs was supplied; otherwise it quietly returns no findings.
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from typing import Any, Callable

from data_alchemist.config import Settings
from data_alchemist.findings import ValidationIssue
from data_alchemist.shared import (
    find_column,
    is_blank,
    is_number,
    parse_comma_separated,
    parse_int,
    parse_json,
    parse_phase_range,
)

TASK_ID_PATTERNS = ("taskid", "task_id", "id")
REQUESTED_TASKS_PATTERNS = ("requestedtaskids", "requested_task_ids", "requestedtasks")
REQUIRED_SKILLS_PATTERNS = ("requiredskills", "required_skills", "skills")
PHASE_PATTERNS = ("preferredphases", "preferred_phases", "phases")
SLOT_PATTERNS = ("availableslots", "available_slots", "slots")
CONCURRENCY_PATTERNS = ("maxconcurrent", "max_concurrent", "concurrent")


@dataclass
class CrossEntityData:
    clients: list[dict[str, Any]] | None = None
    workers: list[dict[str, Any]] | None = None
    tasks: list[dict[str, Any]] | None = None


Rows = list[dict[str, Any]]
CrossRule = Callable[[Rows, str, "CrossEntityData | None", Settings], list[ValidationIssue]]


def worker_skill_sets(workers: Rows) -> list[set[str]]:
    column = find_column(workers, ("skills",))
    if not column:
        return []
    return [{skill.lower() for skill in parse_comma_separated(worker.get(column))} for worker in workers]


def worker_phase_slots(workers: Rows) -> dict[int, int]:
    """Count, per phase, how many workers list that phase in their available slots."""
    column = find_column(workers, SLOT_PATTERNS)
    slots_per_phase: dict[int, int] = defaultdict(int)
    if not column:
        return slots_per_phase
    for worker in workers:
        value = worker.get(column)
        slots = value if isinstance(value, list) else parse_json(value)
        if not isinstance(slots, list):
            continue
        for phase in slots:
            if is_number(phase) and phase > 0:
                slots_per_phase[phase] += 1
    return slots_per_phase


def check_client_task_references(
    rows: Rows, entity: str, cross: CrossEntityData | None, settings: Settings
) -> list[ValidationIssue]:
    if entity != "client" or cross is None or cross.tasks is None:
        return []
    column = find_column(rows, REQUESTED_TASKS_PATTERNS)
    if not column:
        return []
    id_column = find_column(cross.tasks, TASK_ID_PATTERNS)
    known_ids = set()
    if id_column:
        known_ids = {str(task.get(id_column)) for task in cross.tasks if not is_blank(task.get(id_column))}

    issues = []
    for index, row in enumerate(rows):
        missing = [task_id for task_id in parse_comma_separated(row.get(column)) if task_id not in known_ids]
        if missing:
            issues.append(
                ValidationIssue(
                    kind="error",
                    message=f"RequestedTaskIDs reference non-existent tasks: {', '.join(missing)}",
                    severity="high",
                    row_index=index,
                    column=column,
                    value=missing,
                    rule="client_task_references",
                )
            )
    return issues


def check_task_skill_coverage(
    rows: Rows, entity: str, cross: CrossEntityData | None, settings: Settings
) -> list[ValidationIssue]:
    if entity != "task" or cross is None or cross.workers is None:
        return []
    column = find_column(rows, REQUIRED_SKILLS_PATTERNS)
    if not column:
        return []
    covered: set[str] = set()
    for skills in worker_skill_sets(cross.workers):
        covered |= skills

    issues = []
    for index, row in enumerate(rows):
        missing = [skill for skill in parse_comma_separated(row.get(column)) if skill.lower() not in covered]
        if missing:
            issues.append(
                ValidationIssue(
                    kind="error",
                    message=f"RequiredSkills not covered by any worker: {', '.join(missing)}",
                    severity="high",
                    row_index=index,
                    column=column,
                    value=missing,
                    rule="task_worker_skill_coverage",
                )
            )
    return issues


def check_phase_slot_saturation(
    rows: Rows, entity: str, cross: CrossEntityData | None, settings: Settings
) -> list[ValidationIssue]:
    if entity != "task" or cross is None or cross.workers is None:
        return []
    duration_column = find_column(rows, ("duration",))
    phases_column = find_column(rows, PHASE_PATTERNS)
    if not duration_column or not phases_column:
        return []

    slots_per_phase = worker_phase_slots(cross.workers)
    workload: dict[int, float] = defaultdict(int)
    for row in rows:
        duration = parse_int(row.get(duration_column))
        if not duration:
            continue
        for phase in parse_phase_range(row.get(phases_column)):
            workload[phase] += duration

    issues = []
    for phase in sorted(workload):
        available = slots_per_phase.get(phase, 0)
        if workload[phase] > available * settings.saturation_factor:
            issues.append(
                ValidationIssue(
                    kind="warning",
                    message=(
                        f"Phase {phase} may be overloaded: {workload[phase]} workload "
                        f"vs {available} available slots"
                    ),
                    severity="medium",
                    rule="phase_slot_saturation",
                )
            )
    return issues


def check_concurrency_feasibility(
    rows: Rows, entity: str, cross: CrossEntityData | None, settings: Settings
) -> list[ValidationIssue]:
    if entity != "task" or cross is None or cross.workers is None:
        return []
    concurrency_column = find_column(rows, CONCURRENCY_PATTERNS)
    skills_column = find_column(rows, REQUIRED_SKILLS_PATTERNS)
    if not concurrency_column or not skills_column:
        return []

    skill_sets = worker_skill_sets(cross.workers)
    issues = []
    for index, row in enumerate(rows):
        max_concurrent = parse_int(row.get(concurrency_column))
        required = parse_comma_separated(row.get(skills_column))
        if not max_concurrent or not required:
            continue
        needed = {skill.lower() for skill in required}
        qualified = sum(1 for skills in skill_sets if needed <= skills)
        if max_concurrent > qualified:
            issues.append(
                ValidationIssue(
                    kind="warning",
                    message=f"MaxConcurrent ({max_concurrent}) exceeds qualified workers ({qualified})",
                    severity="medium",
                    row_index=index,
                    column=concurrency_column,
                    value={"max_concurrent": max_concurrent, "qualified_workers": qualified},
                    rule="max_concurrency_feasibility",
                )
            )
    return issues


CROSS_ENTITY_RULES: list[CrossRule] = [
    check_client_task_references,
    check_task_skill_coverage,
    check_phase_slot_saturation,
    check_concurrency_feasibility,
]
