"""
Catalogue of validation rule ids.

Every ValidationIssue carries the id of the rule that produced it; this table
backs `data-alchemist explain` and the web UI's rule reference.
"""

from __future__ import annotations

from typing import Any

RULE_CATALOGUE: dict[str, dict[str, Any]] = {
    "required_columns": {
        "title": "Required columns present",
        "scope": "field",
        "entities": ["client", "worker", "task"],
        "kind": "error",
        "severity": "high",
        "meaning": "One or more canonical columns required for this entity kind have no matching header.",
        "fix": "Rename or add the missing headers. Aliases such as client_id or task_name are accepted.",
    },
    "duplicate_ids": {
        "title": "Unique identifiers",
        "scope": "field",
        "entities": ["client", "worker", "task"],
        "kind": "error",
        "severity": "high",
        "meaning": "Several rows share the same ClientID, WorkerID or TaskID. Each occurrence is reported.",
        "fix": "Give every row its own id, or merge the duplicated rows.",
    },
    "priority_range": {
        "title": "Priority level range",
        "scope": "field",
        "entities": ["client"],
        "kind": "error",
        "severity": "medium",
        "meaning": "PriorityLevel is not a number between 1 and 5.",
        "fix": "Use an integer from 1 (lowest) to 5 (highest).",
    },
    "requested_tasks_format": {
        "title": "Requested task list",
        "scope": "field",
        "entities": ["client"],
        "kind": "warning",
        "severity": "medium",
        "meaning": "RequestedTaskIDs did not yield any task id after splitting on commas.",
        "fix": "List task ids separated by commas, for example T1,T3.",
    },
    "attributes_json": {
        "title": "Client attributes JSON",
        "scope": "field",
        "entities": ["client"],
        "kind": "error",
        "severity": "medium",
        "meaning": "AttributesJSON is not valid JSON.",
        "fix": "Store a JSON object such as {\"location\": \"NY\"}, with double-quoted keys.",
    },
    "skills_format": {
        "title": "Worker skills list",
        "scope": "field",
        "entities": ["worker"],
        "kind": "warning",
        "severity": "medium",
        "meaning": "Skills did not yield any skill tag after splitting on commas.",
        "fix": "List skills separated by commas.",
    },
    "available_slots_format": {
        "title": "Available slots array",
        "scope": "field",
        "entities": ["worker"],
        "kind": "error",
        "severity": "medium",
        "meaning": "AvailableSlots is not a JSON array of positive phase numbers.",
        "fix": "Use a JSON array such as [1,2,3].",
    },
    "max_load_range": {
        "title": "Max load per phase",
        "scope": "field",
        "entities": ["worker"],
        "kind": "error",
        "severity": "medium",
        "meaning": "MaxLoadPerPhase is missing a number or is below 1.",
        "fix": "Use a whole number of at least 1.",
    },
    "qualification_level": {
        "title": "Qualification level label",
        "scope": "field",
        "entities": ["worker"],
        "kind": "warning",
        "severity": "low",
        "meaning": "QualificationLevel is present but empty after trimming.",
        "fix": "Enter a short label or leave the cell blank.",
    },
    "duration_range": {
        "title": "Task duration",
        "scope": "field",
        "entities": ["task"],
        "kind": "error",
        "severity": "medium",
        "meaning": "Duration is not a number of at least 1 phase.",
        "fix": "Use a whole number of phases, at least 1.",
    },
    "required_skills_format": {
        "title": "Task required skills",
        "scope": "field",
        "entities": ["task"],
        "kind": "warning",
        "severity": "medium",
        "meaning": "RequiredSkills did not yield any skill tag after splitting on commas.",
        "fix": "List skills separated by commas.",
    },
    "preferred_phases_format": {
        "title": "Preferred phases",
        "scope": "field",
        "entities": ["task"],
        "kind": "warning",
        "severity": "medium",
        "meaning": "PreferredPhases could not be read as a range, list or JSON array of phases.",
        "fix": "Write 1-3, 2,4 or [1,2,3].",
    },
    "max_concurrent_range": {
        "title": "Max concurrent workers",
        "scope": "field",
        "entities": ["task"],
        "kind": "error",
        "severity": "medium",
        "meaning": "MaxConcurrent is not a number of at least 1.",
        "fix": "Use a whole number of at least 1.",
    },
    "category_format": {
        "title": "Task category label",
        "scope": "field",
        "entities": ["task"],
        "kind": "warning",
        "severity": "low",
        "meaning": "Category is present but empty after trimming.",
        "fix": "Enter a short label or leave the cell blank.",
    },
    "client_task_references": {
        "title": "Requested tasks exist",
        "scope": "cross-entity",
        "entities": ["client"],
        "needs": "tasks",
        "kind": "error",
        "severity": "high",
        "meaning": "A client requests task ids that are not present in the task file.",
        "fix": "Correct the ids, or add the missing tasks to the task file.",
    },
    "task_worker_skill_coverage": {
        "title": "Skills covered by workers",
        "scope": "cross-entity",
        "entities": ["task"],
        "needs": "workers",
        "kind": "error",
        "severity": "high",
        "meaning": "A task requires a skill no worker lists (compared case-insensitively).",
        "fix": "Add the skill to a qualified worker, or fix the spelling on the task.",
    },
    "phase_slot_saturation": {
        "title": "Phase capacity",
        "scope": "cross-entity",
        "entities": ["task"],
        "needs": "workers",
        "kind": "warning",
        "severity": "medium",
        "meaning": "Total duration of tasks preferring a phase exceeds the saturation factor times the worker slots in that phase.",
        "fix": "Spread tasks across more phases or give workers more slots in the busy phase.",
    },
    "max_concurrency_feasibility": {
        "title": "Concurrency feasibility",
        "scope": "cross-entity",
        "entities": ["task"],
        "needs": "workers",
        "kind": "warning",
        "severity": "medium",
        "meaning": "MaxConcurrent is higher than the number of workers holding every required skill.",
        "fix": "Lower MaxConcurrent or train more workers in the required skills.",
    },
}


def rule_ids() -> list[str]:
    return list(RULE_CATALOGUE)


def explain_rule(rule_id: str) -> dict[str, Any] | None:
    entry = RULE_CATALOGUE.get(rule_id.strip().lower())
    if entry is None:
        return None
    return {"rule": rule_id.strip().lower(), **entry}
