"""
Free-text business rule parsing.

Every sentence is run against all six rule families. Each family owns a small
ordered list of patterns; every match is turned into a candidate and the
single most confident candidate survives (earlier candidates win ties). The
survivor is then re-checked against the loaded data, which can only lower
``can_apply``.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field, replace
from typing import Any, Callable, Iterator

from data_alchemist.cross_entity import CrossEntityData
from data_alchemist.rules import (
    CLIENT_GROUP_PATTERNS,
    TASK_ID_PATTERNS,
    WORKER_GROUP_PATTERNS,
    BusinessRule,
    CoRunParams,
    LoadLimitParams,
    PatternMatchParams,
    PhaseWindowParams,
    SlotRestrictionParams,
    create_co_run_rule,
    create_load_limit_rule,
    create_pattern_match_rule,
    create_phase_window_rule,
    create_precedence_override_rule,
    create_slot_restriction_rule,
    known_values,
)
from data_alchemist.shared import find_column, is_blank, parse_comma_separated

RULE_PATTERNS: dict[str, tuple[re.Pattern[str], ...]] = {
    "coRun": (
        re.compile(r"(?:tasks?|work)\s+(?P<tasks>.+?)\s+(?:must|should|need to)\s+(?:run|execute|work)\s+together"),
        re.compile(r"(?:co-run|co run|concurrent)\s+(?:tasks?|work)\s+(?P<tasks>.+)"),
        re.compile(r"(?:tasks?|work)\s+(?P<tasks>.+?)\s+(?:are|is)\s+(?:always|usually)\s+(?:run|executed)\s+together"),
        re.compile(r"(?:group|bundle)\s+(?:tasks?|work)\s+(?P<tasks>.+)"),
    ),
    "slotRestriction": (
        re.compile(
            r"(?:client|worker)\s+(?:group\s+)?(?P<group>.+?)\s+(?:must|should|need to)\s+have\s+"
            r"(?:at least\s+)?(?P<count>\d+)\s+(?:common\s+)?slots?"
        ),
        re.compile(r"(?:minimum|min)\s+(?P<count>\d+)\s+(?:common\s+)?slots?\s+for\s+(?:client|worker)\s+(?:group\s+)?(?P<group>.+)"),
        re.compile(r"(?:slot\s+)?restriction\s+for\s+(?:client|worker)\s+(?:group\s+)?(?P<group>.+?)\s*:\s*(?P<count>\d+)"),
    ),
    "loadLimit": (
        re.compile(r"(?:worker\s+)?group\s+(?P<group>.+?)\s+(?:limited to|max|maximum)\s+(?P<count>\d+)\s+(?:slots?|load)\s+per\s+phase"),
        re.compile(r"(?:load\s+)?limit\s+for\s+(?:worker\s+)?group\s+(?P<group>.+?)\s*:\s*(?P<count>\d+)"),
        re.compile(r"(?:worker\s+)?group\s+(?P<group>.+?)\s+cannot\s+exceed\s+(?P<count>\d+)\s+(?:slots?|load)"),
    ),
    "phaseWindow": (
        re.compile(
            r"(?:task|work)\s+(?P<tasks>.+?)\s+(?:must|should|can only)\s+(?:run|execute|work)\s+"
            r"(?:in|during|on)\s+(?:phases?|phase)\s+(?P<phases>.+)"
        ),
        re.compile(r"(?:phase\s+)?window\s+for\s+(?:task|work)\s+(?P<tasks>.+?)\s*:\s*(?P<phases>.+)"),
        re.compile(r"(?:task|work)\s+(?P<tasks>.+?)\s+(?:restricted to|limited to)\s+(?:phases?|phase)\s+(?P<phases>.+)"),
    ),
    "patternMatch": (
        re.compile(r"(?:pattern|regex)\s+(?P<pattern>.+?)\s+(?:for|matching)\s+(?P<action>.+)"),
        re.compile(r"(?:rule|condition)\s+(?:when|if)\s+(?P<pattern>.+?)\s+(?:then|apply)\s+(?P<action>.+)"),
        re.compile(r"(?:custom|user-defined)\s+(?:rule|condition)\s+(?P<pattern>.+)"),
    ),
    "precedenceOverride": (
        re.compile(r"(?:precedence|priority)\s+(?:order|override)\s+(?P<order>.+)"),
        re.compile(r"(?:global|specific)\s+(?:rules?|rule)\s+(?:vs|versus)\s+(?P<order>.+)"),
        re.compile(r"(?:rule\s+)?priority\s+(?P<order>.+)"),
    ),
}

PHASE_SPAN_RE = re.compile(r"(?:phases?\s+)?(\d+)\s*(?:to|-)\s*(\d+)")
PHASE_LIST_RE = re.compile(r"(?:phases?\s+)?(\d+(?:\s*,\s*\d+)*)")
NUMBER_RE = re.compile(r"(\d+)")
NON_WORD_RE = re.compile(r"[^\w]")
NON_WORD_OR_SPACE_RE = re.compile(r"[^\w\s]")
# Tokens shaped like an identifier ("t2", "w10") count as task ids even when unknown.
ID_TOKEN_RE = re.compile(r"^[a-z]{1,3}\d+$")

CLIENT_WORDS = ("client", "customer")
WORKER_WORDS = ("worker", "employee")

ENTITY_KEYWORDS = {
    "client": ("client", "customer", "organization", "company", "enterprise", "startup", "smb"),
    "worker": ("worker", "employee", "staff", "developer", "designer", "manager", "analyst"),
    "task": ("task", "work", "job", "project", "assignment", "activity"),
}


@dataclass
class ParsedRule:
    rule_type: str
    confidence: float
    parameters: dict[str, Any]
    explanation: str
    suggested_name: str
    suggested_description: str
    can_apply: bool
    reason: str
    suggestions: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        parameters = dict(self.parameters)
        for key, value in parameters.items():
            if isinstance(value, tuple):
                parameters[key] = list(value)
        return {
            "rule_type": self.rule_type,
            "confidence": self.confidence,
            "parameters": parameters,
            "explanation": self.explanation,
            "suggested_name": self.suggested_name,
            "suggested_description": self.suggested_description,
            "can_apply": self.can_apply,
            "reason": self.reason,
            "suggestions": list(self.suggestions),
        }


# ══════════════════════════════════════════════════════════════════════════
# EXTRACTION HELPERS
# ══════════════════════════════════════════════════════════════════════════

def extract_phases(text: str) -> list[int]:
    span = PHASE_SPAN_RE.search(text)
    if span:
        return list(range(int(span.group(1)), int(span.group(2)) + 1))
    listed = PHASE_LIST_RE.search(text)
    if listed:
        return [int(part) for part in listed.group(1).split(",") if part.strip().isdigit()]
    return []


def extract_number(text: str) -> int | None:
    match = NUMBER_RE.search(text)
    return int(match.group(1)) if match else None


def extract_task_ids(text: str, data: CrossEntityData) -> list[str]:
    """Resolve tokens to task ids by id, by single-word task name, or by id shape."""
    tasks = data.tasks or []
    id_column = find_column(tasks, TASK_ID_PATTERNS)
    name_column = find_column(tasks, ("taskname", "task_name", "name"))
    by_id: dict[str, str] = {}
    by_name: dict[str, str] = {}
    for task in tasks:
        task_id = task.get(id_column) if id_column else None
        if is_blank(task_id):
            continue
        by_id[str(task_id).lower()] = str(task_id)
        name = task.get(name_column) if name_column else None
        if not is_blank(name):
            by_name.setdefault(str(name).lower(), str(task_id))

    found: list[str] = []
    for word in text.split():
        token = NON_WORD_RE.sub("", word).lower()
        if not token:
            continue
        if token in by_id:
            task_id = by_id[token]
        elif token in by_name:
            task_id = by_name[token]
        elif ID_TOKEN_RE.match(token):
            task_id = token.upper()
        else:
            continue
        if task_id not in found:
            found.append(task_id)
    return found


def extract_group_name(text: str, data: CrossEntityData, group_type: str) -> str | None:
    if group_type == "client":
        groups = known_values(data.clients, CLIENT_GROUP_PATTERNS)
    else:
        groups = known_values(data.workers, WORKER_GROUP_PATTERNS)
    lowered = {group.lower(): group for group in groups}
    for word in text.lower().split():
        token = NON_WORD_RE.sub("", word)
        if token in lowered:
            return lowered[token]
    for group in groups:
        if group and group.lower() in text.lower():
            return group
    return None


def _group_type(text: str) -> str:
    if any(word in text for word in CLIENT_WORDS):
        return "client"
    if any(word in text for word in WORKER_WORDS):
        return "worker"
    return "client"


def _pattern_regex(pattern_text: str) -> str:
    if any(word in pattern_text for word in ("skill", "javascript", "python")):
        return ".*(skill|javascript|python).*"
    if "priority" in pattern_text or "high" in pattern_text:
        return ".*(priority|high).*"
    return ".*" + NON_WORD_OR_SPACE_RE.sub(".*", pattern_text) + ".*"


# ══════════════════════════════════════════════════════════════════════════
# RULE FAMILIES
# ══════════════════════════════════════════════════════════════════════════

def _co_run(match: re.Match[str], text: str, data: CrossEntityData) -> ParsedRule | None:
    tasks = extract_task_ids(match.group("tasks"), data)
    if len(tasks) < 2:
        return None
    description = CoRunParams(tuple(tasks)).describe()
    return ParsedRule(
        rule_type="coRun",
        confidence=min(0.9, 0.5 + len(tasks) * 0.1),
        parameters={"tasks": tasks},
        explanation=f"Found {len(tasks)} tasks that must run together",
        suggested_name=f"Co-run {', '.join(tasks)}",
        suggested_description=description,
        can_apply=True,
        reason="Valid co-run rule",
    )


def _slot_restriction(match: re.Match[str], text: str, data: CrossEntityData) -> ParsedRule | None:
    count = extract_number(match.group("count"))
    if not count:
        return None
    group_type = _group_type(text)
    group = extract_group_name(match.group("group"), data, group_type)
    if not group:
        return None
    return ParsedRule(
        rule_type="slotRestriction",
        confidence=0.8,
        parameters={"group_type": group_type, "group_name": group, "min_common_slots": count},
        explanation=f"{group_type.capitalize()} group {group} needs at least {count} common slots",
        suggested_name=f"Slot restriction for {group}",
        suggested_description=SlotRestrictionParams(group_type, group, count).describe(),
        can_apply=True,
        reason="Valid slot restriction rule",
    )


def _load_limit(match: re.Match[str], text: str, data: CrossEntityData) -> ParsedRule | None:
    count = extract_number(match.group("count"))
    if not count:
        return None
    group = extract_group_name(match.group("group"), data, "worker")
    if not group:
        return None
    return ParsedRule(
        rule_type="loadLimit",
        confidence=0.8,
        parameters={"worker_group": group, "max_slots_per_phase": count},
        explanation=f"Worker group {group} capped at {count} slots per phase",
        suggested_name=f"Load limit for {group}",
        suggested_description=LoadLimitParams(group, count).describe(),
        can_apply=True,
        reason="Valid load limit rule",
    )


def _phase_window(match: re.Match[str], text: str, data: CrossEntityData) -> ParsedRule | None:
    tasks = extract_task_ids(match.group("tasks"), data)
    phases = extract_phases(match.group("phases"))
    if not tasks or not phases:
        return None
    return ParsedRule(
        rule_type="phaseWindow",
        confidence=0.7,
        parameters={"task_id": tasks[0], "allowed_phases": phases},
        explanation=f"Task {tasks[0]} may only run in phases {', '.join(str(p) for p in phases)}",
        suggested_name=f"Phase window for {tasks[0]}",
        suggested_description=PhaseWindowParams(tasks[0], tuple(phases)).describe(),
        can_apply=True,
        reason="Valid phase window rule",
    )


def _pattern_match(match: re.Match[str], text: str, data: CrossEntityData) -> ParsedRule | None:
    pattern_text = match.group("pattern")
    regex = _pattern_regex(pattern_text)
    template_parameters = {"requiredSkill": "skill", "minWorkers": 1}
    return ParsedRule(
        rule_type="patternMatch",
        confidence=0.6,
        parameters={"regex": regex, "rule_template": "skill-requirement", "template_parameters": template_parameters},
        explanation=f"Pattern match rule: {pattern_text}",
        suggested_name="Pattern match rule",
        suggested_description=PatternMatchParams(regex, "skill-requirement", template_parameters).describe(),
        can_apply=True,
        reason="Valid pattern match rule",
        suggestions=["Consider refining the regex pattern for better accuracy"],
    )


def _precedence_override(match: re.Match[str], text: str, data: CrossEntityData) -> ParsedRule | None:
    return ParsedRule(
        rule_type="precedenceOverride",
        confidence=0.5,
        parameters={"global_rules": [], "specific_rules": [], "priority_order": []},
        explanation=f"Precedence override: {match.group('order')}",
        suggested_name="Precedence override",
        suggested_description="Precedence override rule for global and specific rules",
        can_apply=False,
        reason="Precedence override rules require manual configuration",
        suggestions=["Please specify the exact rule priority order manually"],
    )


FamilyParser = Callable[[re.Match, str, CrossEntityData], "ParsedRule | None"]

RULE_FAMILIES: list[tuple[str, FamilyParser]] = [
    ("coRun", _co_run),
    ("slotRestriction", _slot_restriction),
    ("loadLimit", _load_limit),
    ("phaseWindow", _phase_window),
    ("patternMatch", _pattern_match),
    ("precedenceOverride", _precedence_override),
]


def _candidates(text: str, data: CrossEntityData) -> Iterator[ParsedRule]:
    for rule_type, parser in RULE_FAMILIES:
        for pattern in RULE_PATTERNS[rule_type]:
            for match in pattern.finditer(text):
                candidate = parser(match, text, data)
                if candidate is not None:
                    yield candidate


def parse_rule(text: str, data: CrossEntityData | None = None) -> ParsedRule | None:
    """Return the most confident parse of ``text`` re-checked against ``data``, or None."""
    data = data or CrossEntityData()
    lowered = text.lower()
    best: ParsedRule | None = None
    for candidate in _candidates(lowered, data):
        if best is None or candidate.confidence > best.confidence:
            best = candidate
    if best is None:
        return None
    return validate_against_data(best, data)


def validate_against_data(parsed: ParsedRule, data: CrossEntityData) -> ParsedRule:
    params = parsed.parameters
    reason = None
    if parsed.rule_type == "coRun":
        existing = known_values(data.tasks, TASK_ID_PATTERNS)
        missing = [task for task in params.get("tasks", []) if task not in existing]
        if missing:
            reason = f"Tasks not found: {', '.join(missing)}"
    elif parsed.rule_type == "slotRestriction":
        if params["group_type"] == "client":
            if params["group_name"] not in known_values(data.clients, CLIENT_GROUP_PATTERNS):
                reason = f'Client group "{params["group_name"]}" not found'
        elif params["group_name"] not in known_values(data.workers, WORKER_GROUP_PATTERNS):
            reason = f'Worker group "{params["group_name"]}" not found'
    elif parsed.rule_type == "loadLimit":
        if params["worker_group"] not in known_values(data.workers, WORKER_GROUP_PATTERNS):
            reason = f'Worker group "{params["worker_group"]}" not found'
    elif parsed.rule_type == "phaseWindow":
        if params["task_id"] not in known_values(data.tasks, TASK_ID_PATTERNS):
            reason = f'Task "{params["task_id"]}" not found'
    if reason is None:
        return parsed
    return replace(parsed, can_apply=False, reason=reason)


def detect_entity_mentions(text: str) -> list[str]:
    lowered = text.lower()
    return [entity for entity, words in ENTITY_KEYWORDS.items() if any(word in lowered for word in words)]


def contextual_suggestions(text: str, data: CrossEntityData | None = None) -> list[str]:
    """Hints listing the ids, groups and skills a sentence could refer to."""
    data = data or CrossEntityData()
    lowered = text.lower()
    suggestions: list[str] = []

    if "task" in lowered and data.tasks:
        name_column = find_column(data.tasks, ("taskname", "task_name", "name"))
        names = [str(task.get(name_column)) for task in data.tasks[:3] if name_column and not is_blank(task.get(name_column))]
        if names:
            suggestions.append(f"Available tasks: {', '.join(names)}")

    if any(word in lowered for word in ("group", "client", "worker")):
        client_groups = [group for group in known_values(data.clients, CLIENT_GROUP_PATTERNS) if group]
        if client_groups:
            suggestions.append(f"Client groups: {', '.join(client_groups)}")
        worker_groups = [group for group in known_values(data.workers, WORKER_GROUP_PATTERNS) if group]
        if worker_groups:
            suggestions.append(f"Worker groups: {', '.join(worker_groups)}")

    if "skill" in lowered and data.workers:
        skills_column = find_column(data.workers, ("skills",))
        skills: list[str] = []
        for worker in data.workers:
            for skill in parse_comma_separated(worker.get(skills_column) if skills_column else None):
                if skill not in skills:
                    skills.append(skill)
        if skills:
            suggestions.append(f"Available skills: {', '.join(skills[:5])}")
    return suggestions


RULE_FACTORIES: dict[str, Callable[..., BusinessRule]] = {
    "coRun": create_co_run_rule,
    "slotRestriction": create_slot_restriction_rule,
    "loadLimit": create_load_limit_rule,
    "phaseWindow": create_phase_window_rule,
    "patternMatch": create_pattern_match_rule,
    "precedenceOverride": create_precedence_override_rule,
}


def to_business_rule(parsed: ParsedRule) -> BusinessRule:
    if not parsed.can_apply:
        raise ValueError(f"Parsed rule cannot be applied: {parsed.reason}")
    factory = RULE_FACTORIES[parsed.rule_type]
    return factory(name=parsed.suggested_name, **parsed.parameters)
