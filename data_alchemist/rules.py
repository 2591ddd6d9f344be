"""
Business rules: the six rule variants, their factories and checks, the rules
config export, and rule recommendations derived from loaded data.

A rule's variant is carried by the type of its parameter object, so a rule can
never claim one type while holding another variant's parameters.
"""

from __future__ import annotations

import math
import re
import time
import uuid
from dataclasses import dataclass, field, replace
from typing import Any, Callable

from data_alchemist.contracts import utc_now_iso
from data_alchemist.cross_entity import CrossEntityData
from data_alchemist.shared import (
    distinct_values,
    find_column,
    is_blank,
    is_number,
    parse_comma_separated,
    parse_int,
    parse_json,
)

RULES_CONFIG_VERSION = "1.0"
MIN_PRIORITY = 1
MAX_PRIORITY = 5

TASK_ID_PATTERNS = ("taskid", "task_id", "id")
CLIENT_ID_PATTERNS = ("clientid", "client_id", "id")
CLIENT_GROUP_PATTERNS = ("grouptag", "group_tag", "group")
WORKER_GROUP_PATTERNS = ("workergroup", "worker_group", "group")

RULE_TEMPLATES: dict[str, dict[str, Any]] = {
    "skill-requirement": {
        "name": "Skill Requirement",
        "description": "Tasks requiring specific skills must be assigned to qualified workers",
        "parameters": {
            "requiredSkill": {"type": "string", "required": True},
            "minWorkers": {"type": "number", "required": True, "default": 1},
        },
    },
    "priority-allocation": {
        "name": "Priority Allocation",
        "description": "High priority clients get resource allocation preference",
        "parameters": {
            "minPriority": {"type": "number", "required": True, "default": 4},
            "allocationBoost": {"type": "number", "required": True, "default": 1.5},
        },
    },
    "phase-constraint": {
        "name": "Phase Constraint",
        "description": "Tasks must be completed within specific phase windows",
        "parameters": {
            "phaseRange": {"type": "string", "required": True},
            "strictEnforcement": {"type": "boolean", "required": False, "default": True},
        },
    },
    "capacity-limit": {
        "name": "Capacity Limit",
        "description": "Workers cannot exceed their maximum capacity per phase",
        "parameters": {
            "maxLoadMultiplier": {"type": "number", "required": True, "default": 1.0},
            "allowOvertime": {"type": "boolean", "required": False, "default": False},
        },
    },
}


# ══════════════════════════════════════════════════════════════════════════
# RULE VARIANTS
# ══════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class CoRunParams:
    tasks: tuple[str, ...]

    def describe(self) -> str:
        return f"Tasks {', '.join(self.tasks)} must run together"

    def to_dict(self) -> dict[str, Any]:
        return {"tasks": list(self.tasks), "description": self.describe()}


@dataclass(frozen=True)
class SlotRestrictionParams:
    group_type: str
    group_name: str
    min_common_slots: int

    def describe(self) -> str:
        return f"{self.group_type} group {self.group_name} requires minimum {self.min_common_slots} common slots"

    def to_dict(self) -> dict[str, Any]:
        return {
            "groupType": self.group_type,
            "groupName": self.group_name,
            "minCommonSlots": self.min_common_slots,
            "description": self.describe(),
        }


@dataclass(frozen=True)
class LoadLimitParams:
    worker_group: str
    max_slots_per_phase: int

    def describe(self) -> str:
        return f"Worker group {self.worker_group} limited to {self.max_slots_per_phase} slots per phase"

    def to_dict(self) -> dict[str, Any]:
        return {
            "workerGroup": self.worker_group,
            "maxSlotsPerPhase": self.max_slots_per_phase,
            "description": self.describe(),
        }


@dataclass(frozen=True)
class PhaseWindowParams:
    task_id: str
    allowed_phases: tuple[int, ...]

    def describe(self) -> str:
        return f"Task {self.task_id} restricted to phases {', '.join(str(p) for p in self.allowed_phases)}"

    def to_dict(self) -> dict[str, Any]:
        return {
            "taskId": self.task_id,
            "allowedPhases": list(self.allowed_phases),
            "description": self.describe(),
        }


@dataclass(frozen=True)
class PatternMatchParams:
    regex: str
    rule_template: str
    template_parameters: dict[str, Any] = field(default_factory=dict)

    def describe(self) -> str:
        return f"Pattern match rule using {self.rule_template} template"

    def to_dict(self) -> dict[str, Any]:
        return {
            "regex": self.regex,
            "ruleTemplate": self.rule_template,
            "parameters": dict(self.template_parameters),
            "description": self.describe(),
        }


@dataclass(frozen=True)
class PrecedenceOverrideParams:
    global_rules: tuple[str, ...] = ()
    specific_rules: tuple[str, ...] = ()
    priority_order: tuple[str, ...] = ()

    def describe(self) -> str:
        return "Precedence override rule for global and specific rules"

    def to_dict(self) -> dict[str, Any]:
        return {
            "globalRules": list(self.global_rules),
            "specificRules": list(self.specific_rules),
            "priorityOrder": list(self.priority_order),
            "description": self.describe(),
        }


RuleParams = (
    CoRunParams
    | SlotRestrictionParams
    | LoadLimitParams
    | PhaseWindowParams
    | PatternMatchParams
    | PrecedenceOverrideParams
)

RULE_TYPE_NAMES: dict[type, str] = {
    CoRunParams: "coRun",
    SlotRestrictionParams: "slotRestriction",
    LoadLimitParams: "loadLimit",
    PhaseWindowParams: "phaseWindow",
    PatternMatchParams: "patternMatch",
    PrecedenceOverrideParams: "precedenceOverride",
}
RULE_TYPES = tuple(RULE_TYPE_NAMES.values())


def rule_type_of(parameters: Any) -> str:
    try:
        return RULE_TYPE_NAMES[type(parameters)]
    except KeyError:
        raise TypeError(f"Unsupported rule parameters: {type(parameters).__name__}") from None


@dataclass(frozen=True)
class BusinessRule:
    id: str
    name: str
    description: str
    parameters: RuleParams
    priority: int = 1
    enabled: bool = True
    created_at: str = ""
    updated_at: str = ""

    @property
    def type(self) -> str:
        return rule_type_of(self.parameters)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type,
            "name": self.name,
            "description": self.description,
            "priority": self.priority,
            "parameters": self.parameters.to_dict(),
        }


@dataclass
class RuleCheck:
    is_valid: bool
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {"is_valid": self.is_valid, "errors": list(self.errors), "warnings": list(self.warnings)}


@dataclass
class RuleRecommendation:
    id: str
    type: str
    confidence: float
    reason: str
    suggested_rule: BusinessRule
    evidence: dict[str, Any]

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type,
            "confidence": self.confidence,
            "reason": self.reason,
            "suggested_rule": self.suggested_rule.to_dict(),
            "evidence": dict(self.evidence),
        }


# ══════════════════════════════════════════════════════════════════════════
# FACTORIES
# ══════════════════════════════════════════════════════════════════════════

def _epoch_ms() -> int:
    return int(time.time() * 1000)


def generate_rule_id(prefix: str = "rule") -> str:
    return f"{prefix}_{_epoch_ms()}_{uuid.uuid4().hex[:9]}"


def _new_rule(parameters: RuleParams, name: str | None, default_name: str) -> BusinessRule:
    now = utc_now_iso()
    return BusinessRule(
        id=generate_rule_id(),
        name=name or f"{default_name} {_epoch_ms()}",
        description=parameters.describe(),
        parameters=parameters,
        created_at=now,
        updated_at=now,
    )


def create_co_run_rule(tasks: list[str], name: str | None = None) -> BusinessRule:
    return _new_rule(CoRunParams(tuple(tasks)), name, "Co-run Rule")


def create_slot_restriction_rule(
    group_type: str,
    group_name: str,
    min_common_slots: int,
    name: str | None = None,
) -> BusinessRule:
    if group_type not in ("client", "worker"):
        raise ValueError("group_type must be 'client' or 'worker'")
    return _new_rule(SlotRestrictionParams(group_type, group_name, min_common_slots), name, "Slot Restriction")


def create_load_limit_rule(worker_group: str, max_slots_per_phase: int, name: str | None = None) -> BusinessRule:
    return _new_rule(LoadLimitParams(worker_group, max_slots_per_phase), name, "Load Limit")


def create_phase_window_rule(task_id: str, allowed_phases: list[int], name: str | None = None) -> BusinessRule:
    return _new_rule(PhaseWindowParams(task_id, tuple(allowed_phases)), name, "Phase Window")


def create_pattern_match_rule(
    regex: str,
    rule_template: str,
    template_parameters: dict[str, Any] | None = None,
    name: str | None = None,
) -> BusinessRule:
    return _new_rule(PatternMatchParams(regex, rule_template, dict(template_parameters or {})), name, "Pattern Match")


def create_precedence_override_rule(
    global_rules: list[str],
    specific_rules: list[str],
    priority_order: list[str],
    name: str | None = None,
) -> BusinessRule:
    parameters = PrecedenceOverrideParams(tuple(global_rules), tuple(specific_rules), tuple(priority_order))
    return _new_rule(parameters, name, "Precedence Override")


def with_enabled(rule: BusinessRule, enabled: bool) -> BusinessRule:
    return replace(rule, enabled=enabled, updated_at=utc_now_iso())


def with_priority(rule: BusinessRule, priority: int) -> BusinessRule:
    if not MIN_PRIORITY <= priority <= MAX_PRIORITY:
        raise ValueError(f"Rule priority must be between {MIN_PRIORITY} and {MAX_PRIORITY}")
    return replace(rule, priority=priority, updated_at=utc_now_iso())


# ══════════════════════════════════════════════════════════════════════════
# RULE CHECKS
# ══════════════════════════════════════════════════════════════════════════

def known_values(rows: list[dict[str, Any]] | None, patterns: tuple[str, ...]) -> list[str]:
    rows = rows or []
    return [str(value) for value in distinct_values(rows, find_column(rows, patterns))]


def _check_co_run(params: CoRunParams, data: CrossEntityData) -> RuleCheck:
    errors: list[str] = []
    if len(params.tasks) < 2:
        errors.append("Co-run rule must specify at least 2 tasks")
    if params.tasks:
        known = known_values(data.tasks, TASK_ID_PATTERNS)
        missing = [task for task in params.tasks if task not in known]
        if missing:
            errors.append(f"Tasks not found: {', '.join(missing)}")
        duplicates = [task for index, task in enumerate(params.tasks) if params.tasks.index(task) != index]
        if duplicates:
            errors.append(f"Duplicate tasks in co-run rule: {', '.join(duplicates)}")
    return RuleCheck(is_valid=not errors, errors=errors)


def _check_slot_restriction(params: SlotRestrictionParams, data: CrossEntityData) -> RuleCheck:
    errors: list[str] = []
    warnings: list[str] = []
    if not params.group_name:
        errors.append("Group name is required")
    if params.min_common_slots < 1:
        errors.append("Minimum common slots must be at least 1")
    if params.group_type == "client":
        if params.group_name not in known_values(data.clients, CLIENT_GROUP_PATTERNS):
            warnings.append(f'Client group "{params.group_name}" not found in data')
    elif params.group_type == "worker":
        if params.group_name not in known_values(data.workers, WORKER_GROUP_PATTERNS):
            warnings.append(f'Worker group "{params.group_name}" not found in data')
    return RuleCheck(is_valid=not errors, errors=errors, warnings=warnings)


def _check_load_limit(params: LoadLimitParams, data: CrossEntityData) -> RuleCheck:
    errors: list[str] = []
    warnings: list[str] = []
    if not params.worker_group:
        errors.append("Worker group is required")
    if params.max_slots_per_phase < 1:
        errors.append("Maximum slots per phase must be at least 1")
    if params.worker_group not in known_values(data.workers, WORKER_GROUP_PATTERNS):
        warnings.append(f'Worker group "{params.worker_group}" not found in data')
    return RuleCheck(is_valid=not errors, errors=errors, warnings=warnings)


def _check_phase_window(params: PhaseWindowParams, data: CrossEntityData) -> RuleCheck:
    errors: list[str] = []
    if not params.task_id:
        errors.append("Task ID is required")
    if not params.allowed_phases:
        errors.append("At least one allowed phase must be specified")
    if params.task_id and params.task_id not in known_values(data.tasks, TASK_ID_PATTERNS):
        errors.append(f'Task "{params.task_id}" not found')
    if any(not is_number(phase) or phase < 1 for phase in params.allowed_phases):
        errors.append("All phases must be positive numbers")
    return RuleCheck(is_valid=not errors, errors=errors)


def _check_pattern_match(params: PatternMatchParams, data: CrossEntityData) -> RuleCheck:
    errors: list[str] = []
    if not params.regex:
        errors.append("Regular expression is required")
    if not params.rule_template:
        errors.append("Rule template is required")
    if params.regex:
        try:
            re.compile(params.regex)
        except re.error:
            errors.append("Invalid regular expression")
    if params.rule_template and params.rule_template not in RULE_TEMPLATES:
        errors.append("Invalid rule template")
    return RuleCheck(is_valid=not errors, errors=errors)


def _check_precedence_override(params: PrecedenceOverrideParams, data: CrossEntityData) -> RuleCheck:
    errors: list[str] = []
    if not params.priority_order:
        errors.append("Priority order must be specified")
    return RuleCheck(is_valid=not errors, errors=errors)


RULE_CHECKS: dict[type, Callable[[Any, CrossEntityData], RuleCheck]] = {
    CoRunParams: _check_co_run,
    SlotRestrictionParams: _check_slot_restriction,
    LoadLimitParams: _check_load_limit,
    PhaseWindowParams: _check_phase_window,
    PatternMatchParams: _check_pattern_match,
    PrecedenceOverrideParams: _check_precedence_override,
}


def validate_rule(rule: BusinessRule, data: CrossEntityData | None = None) -> RuleCheck:
    check = RULE_CHECKS.get(type(rule.parameters))
    if check is None:
        raise TypeError(f"Unsupported rule parameters: {type(rule.parameters).__name__}")
    return check(rule.parameters, data or CrossEntityData())


# ══════════════════════════════════════════════════════════════════════════
# RULES CONFIG
# ══════════════════════════════════════════════════════════════════════════

def generate_rules_config(rules: list[BusinessRule], generated_at: str | None = None) -> dict[str, Any]:
    """Enabled rules only, highest priority first; ties keep their original order."""
    active = sorted((rule for rule in rules if rule.enabled), key=lambda rule: rule.priority, reverse=True)
    return {
        "version": RULES_CONFIG_VERSION,
        "generatedAt": generated_at or utc_now_iso(),
        "rules": [rule.to_dict() for rule in active],
    }


def params_from_dict(rule_type: str, payload: dict[str, Any]) -> RuleParams:
    if rule_type == "coRun":
        return CoRunParams(tuple(str(task) for task in payload.get("tasks", [])))
    if rule_type == "slotRestriction":
        return SlotRestrictionParams(
            str(payload.get("groupType", "client")),
            str(payload.get("groupName", "")),
            int(payload.get("minCommonSlots", 0)),
        )
    if rule_type == "loadLimit":
        return LoadLimitParams(str(payload.get("workerGroup", "")), int(payload.get("maxSlotsPerPhase", 0)))
    if rule_type == "phaseWindow":
        return PhaseWindowParams(
            str(payload.get("taskId", "")),
            tuple(payload.get("allowedPhases", [])),
        )
    if rule_type == "patternMatch":
        return PatternMatchParams(
            str(payload.get("regex", "")),
            str(payload.get("ruleTemplate", "")),
            dict(payload.get("parameters") or {}),
        )
    if rule_type == "precedenceOverride":
        return PrecedenceOverrideParams(
            tuple(payload.get("globalRules", [])),
            tuple(payload.get("specificRules", [])),
            tuple(payload.get("priorityOrder", [])),
        )
    raise ValueError(f"Unknown rule type '{rule_type}'. Expected one of: {', '.join(RULE_TYPES)}")


def rules_from_config(payload: dict[str, Any]) -> list[BusinessRule]:
    """Rebuild rules from a previously exported rules config."""
    if not isinstance(payload, dict) or not isinstance(payload.get("rules"), list):
        raise ValueError("Rules config must be a JSON object with a 'rules' list.")
    generated_at = str(payload.get("generatedAt") or "")
    rules = []
    for item in payload["rules"]:
        parameters = params_from_dict(str(item.get("type")), item.get("parameters") or {})
        rules.append(
            BusinessRule(
                id=str(item.get("id") or generate_rule_id()),
                name=str(item.get("name") or ""),
                description=str(item.get("description") or parameters.describe()),
                parameters=parameters,
                priority=int(item.get("priority", 1)),
                created_at=generated_at,
                updated_at=generated_at,
            )
        )
    return rules


# ══════════════════════════════════════════════════════════════════════════
# RECOMMENDATIONS
# ══════════════════════════════════════════════════════════════════════════

def _recommend_co_runs(data: CrossEntityData) -> list[RuleRecommendation]:
    clients = data.clients or []
    requested_column = find_column(clients, ("requestedtaskids", "requested_task_ids", "requestedtasks"))
    id_column = find_column(clients, CLIENT_ID_PATTERNS)
    if not requested_column:
        return []

    combinations: dict[tuple[str, ...], list[str]] = {}
    for client in clients:
        value = client.get(requested_column)
        if is_blank(value) or not isinstance(value, str):
            continue
        key = tuple(sorted(part.strip() for part in value.split(",")))
        client_id = client.get(id_column) if id_column else None
        combinations.setdefault(key, []).append("" if client_id is None else str(client_id))

    recommendations = []
    for tasks, client_ids in combinations.items():
        if len(client_ids) < 2 or len(tasks) < 2:
            continue
        task_list = list(tasks)
        recommendations.append(
            RuleRecommendation(
                id=generate_rule_id("co_run"),
                type="coRun",
                confidence=0.8,
                reason=(
                    f"Multiple clients ({', '.join(client_ids)}) request the same task "
                    f"combination ({', '.join(task_list)})"
                ),
                suggested_rule=create_co_run_rule(task_list, f"Auto-generated Co-run for {', '.join(task_list)}"),
                evidence={"clients": client_ids, "tasks": task_list, "frequency": len(client_ids)},
            )
        )
    return recommendations


def _slot_count(value: Any) -> int:
    if isinstance(value, list):
        return len(value)
    parsed = parse_json(value if not is_blank(value) else "[]")
    return len(parsed) if isinstance(parsed, list) else 0


def _recommend_load_limits(data: CrossEntityData) -> list[RuleRecommendation]:
    workers = data.workers or []
    group_column = find_column(workers, WORKER_GROUP_PATTERNS)
    load_column = find_column(workers, ("maxloadperphase", "max_load_per_phase", "maxload"))
    slots_column = find_column(workers, ("availableslots", "available_slots", "slots"))

    groups: dict[str, list[dict[str, Any]]] = {}
    for worker in workers:
        group = worker.get(group_column) if group_column else None
        groups.setdefault("Unknown" if is_blank(group) or group == "" else str(group), []).append(worker)

    recommendations = []
    for group, members in groups.items():
        total_load = sum((parse_int(member.get(load_column)) or 0) if load_column else 0 for member in members)
        average_load = total_load / len(members)
        total_slots = sum(_slot_count(member.get(slots_column)) if slots_column else 0 for member in members)
        if average_load <= total_slots * 0.8:
            continue
        limit = max(1, math.floor(total_slots * 0.8))
        recommendations.append(
            RuleRecommendation(
                id=generate_rule_id("load_limit"),
                type="loadLimit",
                confidence=0.7,
                reason=(
                    f'Worker group "{group}" appears to be overloaded '
                    f"(avg max load: {average_load:.1f}, total slots: {total_slots})"
                ),
                suggested_rule=create_load_limit_rule(group, limit, f"Load limit for {group}"),
                evidence={
                    "group": group,
                    "avg_max_load": average_load,
                    "total_slots": total_slots,
                    "worker_count": len(members),
                },
            )
        )
    return recommendations


def _recommend_skill_requirements(data: CrossEntityData) -> list[RuleRecommendation]:
    tasks = data.tasks or []
    workers = data.workers or []
    required_column = find_column(tasks, ("requiredskills", "required_skills", "skills"))
    skills_column = find_column(workers, ("skills",))

    required: list[str] = []
    for task in tasks:
        for skill in parse_comma_separated(task.get(required_column) if required_column else None):
            if skill not in required:
                required.append(skill)
    available: set[str] = set()
    for worker in workers:
        available.update(parse_comma_separated(worker.get(skills_column) if skills_column else None))

    missing = [skill for skill in required if skill not in available]
    if not missing:
        return []
    pattern = f".*({'|'.join(re.escape(skill) for skill in missing)}).*"
    return [
        RuleRecommendation(
            id=generate_rule_id("skill_gap"),
            type="patternMatch",
            confidence=0.9,
            reason=f"Skills required by tasks but not available in workers: {', '.join(missing)}",
            suggested_rule=create_pattern_match_rule(
                pattern,
                "skill-requirement",
                {"requiredSkill": missing[0], "minWorkers": 1},
                f"Skill requirement for {', '.join(missing)}",
            ),
            evidence={
                "missing_skills": missing,
                "required_skills_count": len(required),
                "available_skills_count": len(available),
            },
        )
    ]


def recommend_rules(data: CrossEntityData) -> list[RuleRecommendation]:
    recommendations: list[RuleRecommendation] = []
    if data.clients is not None and data.tasks is not None:
        recommendations.extend(_recommend_co_runs(data))
    if data.workers is not None and data.tasks is not None:
        recommendations.extend(_recommend_load_limits(data))
        recommendations.extend(_recommend_skill_requirements(data))
    return recommendations
