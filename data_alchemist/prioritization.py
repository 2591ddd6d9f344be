"""
Allocation criteria weighting.

Weights come from one of four places: the default criteria, a preset profile,
a rank order, or an AHP pairwise comparison matrix. The AHP path uses the
row-sum approximation of the principal eigenvector and reports Saaty's
consistency ratio alongside the weights.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field, replace
from typing import Any, Callable, Sequence

from data_alchemist.config import DEFAULT_SETTINGS, Settings
from data_alchemist.contracts import utc_now_iso
from data_alchemist.cross_entity import CrossEntityData
from data_alchemist.shared import is_blank, parse_comma_separated, parse_int, parse_json, parse_phase_range

PRIORITIZATION_VERSION = "1.0"

CRITERION_CATEGORIES = ("client", "worker", "task", "constraint")

# Saaty random index by matrix size; sizes above 10 use the n=10 value.
RANDOM_INDEX = {1: 0.0, 2: 0.0, 3: 0.58, 4: 0.9, 5: 1.12, 6: 1.24, 7: 1.32, 8: 1.41, 9: 1.45, 10: 1.49}

PAIRWISE_SCALE = {
    1: "Equal Importance",
    2: "Slightly More Important",
    3: "Moderately More Important",
    4: "More Important",
    5: "Much More Important",
    6: "Very Much More Important",
    7: "Very Strongly More Important",
    8: "Absolutely More Important",
    9: "Extremely More Important",
}

SCORE_FIELDS = {
    "client": "CalculatedPriority",
    "worker": "CalculatedCapacity",
    "task": "CalculatedComplexity",
}


@dataclass
class Criterion:
    id: str
    name: str
    description: str
    category: str
    weight: float
    min_weight: float = 0.0
    max_weight: float = 1.0
    unit: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "category": self.category,
            "weight": self.weight,
            "min_weight": self.min_weight,
            "max_weight": self.max_weight,
            "unit": self.unit,
        }


@dataclass(frozen=True)
class PairwiseComparison:
    criterion1: str
    criterion2: str
    value: float

    def to_dict(self) -> dict[str, Any]:
        return {"criterion1": self.criterion1, "criterion2": self.criterion2, "value": self.value}


@dataclass
class PrioritizationProfile:
    id: str
    name: str
    description: str
    criteria: list[Criterion]
    is_preset: bool = True

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "criteria": [criterion.to_dict() for criterion in self.criteria],
            "is_preset": self.is_preset,
        }


@dataclass
class AhpResult:
    criteria_ids: list[str]
    matrix: list[list[float]]
    weights: list[float]
    consistency_ratio: float
    is_consistent: bool

    def weight_map(self) -> dict[str, float]:
        return dict(zip(self.criteria_ids, self.weights))

    def to_dict(self) -> dict[str, Any]:
        return {
            "criteria": list(self.criteria_ids),
            "matrix": [list(row) for row in self.matrix],
            "weights": self.weight_map(),
            "consistency_ratio": self.consistency_ratio,
            "is_consistent": self.is_consistent,
        }


@dataclass
class PrioritizationCheck:
    is_valid: bool
    errors: list[str] = field(default_factory=list)
    total_weight: float = 0.0
    consistency_ratio: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "is_valid": self.is_valid,
            "errors": list(self.errors),
            "total_weight": self.total_weight,
            "consistency_ratio": self.consistency_ratio,
        }


# ══════════════════════════════════════════════════════════════════════════
# CRITERIA AND PROFILES
# ══════════════════════════════════════════════════════════════════════════

DEFAULT_CRITERIA = (
    Criterion("client_priority", "Client Priority Level", "Importance of client priority levels (1-5)", "client", 0.3, unit="weight"),
    Criterion("task_fulfillment", "Task Request Fulfillment", "Percentage of requested tasks that get allocated", "client", 0.25, unit="percentage"),
    Criterion("worker_fairness", "Worker Fairness", "Equal distribution of workload across workers", "worker", 0.2, unit="fairness_score"),
    Criterion("skill_match", "Skill Matching", "Quality of skill alignment between tasks and workers", "task", 0.15, unit="match_score"),
    Criterion("phase_efficiency", "Phase Efficiency", "Optimal utilization of available phases", "constraint", 0.1, unit="efficiency_score"),
    Criterion("cost_minimization", "Cost Minimization", "Minimize overall allocation cost", "constraint", 0.1, unit="cost_units"),
    Criterion("deadline_adherence", "Deadline Adherence", "Meeting task completion deadlines", "constraint", 0.15, unit="timeliness_score"),
    Criterion("resource_utilization", "Resource Utilization", "Maximize use of available resources", "constraint", 0.1, unit="utilization_rate"),
)

# Raw weights in DEFAULT_CRITERIA order; preset_profiles normalizes them.
PRESET_WEIGHTS: dict[str, tuple[str, str, tuple[float, ...]]] = {
    "maximize_fulfillment": (
        "Maximize Fulfillment",
        "Prioritize completing as many requested tasks as possible",
        (0.2, 0.4, 0.15, 0.15, 0.05, 0.05, 0.1, 0.05),
    ),
    "fair_distribution": (
        "Fair Distribution",
        "Ensure equal workload distribution among workers",
        (0.15, 0.2, 0.35, 0.15, 0.05, 0.05, 0.1, 0.05),
    ),
    "minimize_workload": (
        "Minimize Workload",
        "Reduce overall workload and resource usage",
        (0.1, 0.15, 0.2, 0.1, 0.15, 0.2, 0.1, 0.2),
    ),
    "quality_focused": (
        "Quality Focused",
        "Prioritize high-quality matches and skill alignment",
        (0.15, 0.2, 0.15, 0.3, 0.1, 0.05, 0.15, 0.1),
    ),
    "balanced": (
        "Balanced Approach",
        "Equal consideration of all factors",
        tuple(1 / len(DEFAULT_CRITERIA) for _ in DEFAULT_CRITERIA),
    ),
}


def default_criteria() -> list[Criterion]:
    return [replace(criterion) for criterion in DEFAULT_CRITERIA]


def preset_profiles() -> list[PrioritizationProfile]:
    profiles = []
    for profile_id, (name, description, weights) in PRESET_WEIGHTS.items():
        criteria = [replace(criterion, weight=weight) for criterion, weight in zip(DEFAULT_CRITERIA, normalize_weights(weights))]
        profiles.append(PrioritizationProfile(profile_id, name, description, criteria))
    return profiles


def get_profile(profile_id: str) -> PrioritizationProfile:
    for profile in preset_profiles():
        if profile.id == profile_id:
            return profile
    raise ValueError(f"Unknown profile '{profile_id}'. Expected one of: {', '.join(PRESET_WEIGHTS)}")


def create_custom_profile(name: str, description: str, criteria: list[Criterion]) -> PrioritizationProfile:
    return PrioritizationProfile(
        id=f"custom_{int(time.time() * 1000)}",
        name=name,
        description=description,
        criteria=[replace(criterion) for criterion in criteria],
        is_preset=False,
    )


def with_weights(criteria: list[Criterion], weights: dict[str, float]) -> list[Criterion]:
    """Copy criteria, replacing the weight of every criterion named in ``weights``."""
    return [replace(criterion, weight=weights.get(criterion.id, criterion.weight)) for criterion in criteria]


# ══════════════════════════════════════════════════════════════════════════
# WEIGHTING
# ══════════════════════════════════════════════════════════════════════════

def normalize_weights(weights: Sequence[float]) -> list[float]:
    """Scale weights to sum to 1. An all-zero vector becomes uniform."""
    if not weights:
        return []
    total = sum(weights)
    if total == 0:
        return [1 / len(weights) for _ in weights]
    return [weight / total for weight in weights]


def weights_from_ranking(order: Sequence[str]) -> dict[str, float]:
    """Rank i (0-based) of n gets raw weight (n - i) / n before normalization."""
    count = len(order)
    raw = [(count - index) / count for index in range(count)]
    return dict(zip(order, normalize_weights(raw)))


def generate_pairwise_comparisons(criteria: Sequence[Criterion | str]) -> list[PairwiseComparison]:
    ids = _criterion_ids(criteria)
    return [
        PairwiseComparison(ids[i], ids[j], 1)
        for i in range(len(ids))
        for j in range(i + 1, len(ids))
    ]


def _criterion_ids(criteria: Sequence[Criterion | str]) -> list[str]:
    return [item if isinstance(item, str) else item.id for item in criteria]


def build_pairwise_matrix(
    criteria: Sequence[Criterion | str],
    comparisons: Sequence[PairwiseComparison],
) -> list[list[float]]:
    """
    Reciprocal comparison matrix. Unspecified pairs stay at 1; comparisons that
    name an unknown criterion are ignored.
    """
    ids = _criterion_ids(criteria)
    position = {criterion_id: index for index, criterion_id in enumerate(ids)}
    matrix = [[1.0] * len(ids) for _ in ids]
    for comparison in comparisons:
        if comparison.value <= 0:
            raise ValueError(
                f"Comparison {comparison.criterion1} vs {comparison.criterion2} must be positive, got {comparison.value}"
            )
        i = position.get(comparison.criterion1)
        j = position.get(comparison.criterion2)
        if i is None or j is None or i == j:
            continue
        matrix[i][j] = comparison.value
        matrix[j][i] = 1 / comparison.value
    return matrix


def weights_from_pairwise(matrix: list[list[float]]) -> list[float]:
    row_sums = [sum(row) for row in matrix]
    total = sum(row_sums)
    if total == 0:
        return []
    return [row_sum / total for row_sum in row_sums]


def random_index(size: int) -> float:
    return RANDOM_INDEX[min(max(size, 1), 10)]


def consistency_ratio(matrix: list[list[float]], weights: list[float] | None = None) -> float:
    size = len(matrix)
    ri = random_index(size)
    if size <= 2 or ri == 0:
        return 0.0
    weights = weights if weights is not None else weights_from_pairwise(matrix)
    weighted_sums = [sum(value * weights[j] for j, value in enumerate(row)) for row in matrix]
    lambda_max = sum(weighted_sums[i] / weights[i] for i in range(size)) / size
    consistency_index = (lambda_max - size) / (size - 1)
    # Floating noise around a perfectly consistent matrix.
    return max(0.0, consistency_index / ri) if abs(consistency_index) > 1e-12 else 0.0


def analyze_pairwise(
    criteria: Sequence[Criterion | str],
    comparisons: Sequence[PairwiseComparison],
    settings: Settings | None = None,
) -> AhpResult:
    settings = settings or DEFAULT_SETTINGS
    matrix = build_pairwise_matrix(criteria, comparisons)
    weights = weights_from_pairwise(matrix)
    ratio = consistency_ratio(matrix, weights)
    return AhpResult(
        criteria_ids=_criterion_ids(criteria),
        matrix=matrix,
        weights=weights,
        consistency_ratio=ratio,
        is_consistent=ratio < settings.consistency_threshold,
    )


def comparisons_from_payload(payload: Any) -> list[PairwiseComparison]:
    """Read comparisons from ``[{"criterion1", "criterion2", "value"}, ...]`` or ``{"comparisons": [...]}``."""
    items = payload.get("comparisons") if isinstance(payload, dict) else payload
    if not isinstance(items, list):
        raise ValueError("Pairwise comparisons must be a JSON list or an object with a 'comparisons' list.")
    comparisons = []
    for item in items:
        if not isinstance(item, dict) or not {"criterion1", "criterion2", "value"} <= set(item):
            raise ValueError("Each comparison needs criterion1, criterion2 and value.")
        value = item["value"]
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ValueError(f"Comparison value must be a number, got {value!r}")
        comparisons.append(PairwiseComparison(str(item["criterion1"]), str(item["criterion2"]), value))
    return comparisons


def validate_prioritization(
    criteria: Sequence[Criterion],
    comparisons: Sequence[PairwiseComparison] | None = None,
    settings: Settings | None = None,
) -> PrioritizationCheck:
    settings = settings or DEFAULT_SETTINGS
    errors = []
    total = sum(criterion.weight for criterion in criteria)
    if abs(total - 1) > settings.weight_tolerance:
        errors.append(f"Weights must sum to 1.0 (current sum: {total:.3f})")
    if any(criterion.weight < 0 for criterion in criteria):
        errors.append("All weights must be non-negative")
    ratio = 0.0
    if comparisons:
        ratio = analyze_pairwise(criteria, comparisons, settings).consistency_ratio
        if ratio >= settings.consistency_threshold:
            errors.append(f"Consistency ratio ({ratio:.3f}) is too high. Consider revising pairwise comparisons.")
    return PrioritizationCheck(is_valid=not errors, errors=errors, total_weight=total, consistency_ratio=ratio)


# ══════════════════════════════════════════════════════════════════════════
# ENTITY SCORES
# ══════════════════════════════════════════════════════════════════════════

def _weight(criteria: Sequence[Criterion], criterion_id: str) -> float:
    for criterion in criteria:
        if criterion.id == criterion_id:
            return criterion.weight
    return 0.0


def client_priority_score(client: dict[str, Any], criteria: Sequence[Criterion]) -> float:
    score = 0.0
    priority = parse_int(client.get("prioritylevel"))
    if priority is not None and 1 <= priority <= 5:
        score += _weight(criteria, "client_priority") * (priority / 5)
    requested = parse_comma_separated(client.get("requestedtaskids"))
    if requested:
        score += _weight(criteria, "task_fulfillment") * min(len(requested) / 5, 1)
    return score


def worker_capacity_score(worker: dict[str, Any], criteria: Sequence[Criterion]) -> float:
    score = 0.0
    slots = worker.get("availableslots")
    slots = slots if isinstance(slots, list) else parse_json(slots)
    max_load = parse_int(worker.get("maxloadperphase"))
    if isinstance(slots, list) and max_load is not None:
        score += _weight(criteria, "worker_fairness") * min(len(slots) / max(max_load, 1), 1)
    skills = parse_comma_separated(worker.get("skills"))
    if skills:
        score += _weight(criteria, "resource_utilization") * min(len(skills) / 5, 1)
    return score


def task_complexity_score(task: dict[str, Any], criteria: Sequence[Criterion]) -> float:
    score = 0.0
    skills = parse_comma_separated(task.get("requiredskills"))
    if skills:
        score += _weight(criteria, "skill_match") * min(len(skills) / 3, 1)
    phases = parse_phase_range(task.get("preferredphases"))
    if phases:
        score += _weight(criteria, "phase_efficiency") * min(len(phases) / 5, 1)
    duration = parse_int(task.get("duration"))
    if duration is not None:
        score += _weight(criteria, "deadline_adherence") * min(duration / 10, 1)
    return score


SCORERS: dict[str, Callable[[dict[str, Any], Sequence[Criterion]], float]] = {
    "client": client_priority_score,
    "worker": worker_capacity_score,
    "task": task_complexity_score,
}


def score_rows(rows: list[dict[str, Any]], entity: str, criteria: Sequence[Criterion]) -> list[dict[str, Any]]:
    """Copy rows with the entity's calculated score column appended."""
    scorer = SCORERS[entity]
    column = SCORE_FIELDS[entity]
    return [{**row, column: scorer(row, criteria)} for row in rows]


# ══════════════════════════════════════════════════════════════════════════
# EXPORT SHAPES
# ══════════════════════════════════════════════════════════════════════════

def build_prioritization_export(
    profile: PrioritizationProfile,
    data: CrossEntityData,
    comparisons: Sequence[PairwiseComparison] | None = None,
    rules: list[dict[str, Any]] | None = None,
) -> dict[str, Any]:
    criteria = profile.criteria
    ratio = consistency_ratio(build_pairwise_matrix(criteria, comparisons)) if comparisons else 0.0
    return {
        "clients": score_rows(data.clients or [], "client", criteria),
        "workers": score_rows(data.workers or [], "worker", criteria),
        "tasks": score_rows(data.tasks or [], "task", criteria),
        "rules": list(rules or []),
        "prioritization": {
            "profile": profile.to_dict(),
            "pairwiseComparisons": [comparison.to_dict() for comparison in comparisons or []],
            "consistencyRatio": ratio,
            "criteria": [criterion.to_dict() for criterion in criteria],
            "metadata": {
                "generatedAt": utc_now_iso(),
                "version": PRIORITIZATION_VERSION,
                "totalWeight": sum(criterion.weight for criterion in criteria),
            },
        },
    }


EXCEL_COLUMNS = {
    "client": [
        ("ClientID", "clientid"),
        ("ClientName", "clientname"),
        ("PriorityLevel", "prioritylevel"),
        ("RequestedTaskIDs", "requestedtaskids"),
        ("GroupTag", "grouptag"),
        ("CalculatedPriority", "CalculatedPriority"),
        ("AttributesJSON", "attributesjson"),
    ],
    "worker": [
        ("WorkerID", "workerid"),
        ("WorkerName", "workername"),
        ("Skills", "skills"),
        ("AvailableSlots", "availableslots"),
        ("MaxLoadPerPhase", "maxloadperphase"),
        ("WorkerGroup", "workergroup"),
        ("QualificationLevel", "qualificationlevel"),
        ("CalculatedCapacity", "CalculatedCapacity"),
    ],
    "task": [
        ("TaskID", "taskid"),
        ("TaskName", "taskname"),
        ("Category", "category"),
        ("Duration", "duration"),
        ("RequiredSkills", "requiredskills"),
        ("PreferredPhases", "preferredphases"),
        ("MaxConcurrent", "maxconcurrent"),
        ("CalculatedComplexity", "CalculatedComplexity"),
    ],
}


def _excel_value(key: str, value: Any) -> Any:
    if key in SCORE_FIELDS.values():
        return f"{value or 0:.3f}"
    if is_blank(value):
        return None
    return value


def excel_rows(export: dict[str, Any]) -> dict[str, Any]:
    """Flatten an export into spreadsheet-ready rows with display column names."""
    sheets = {}
    for entity, collection in (("client", "clients"), ("worker", "workers"), ("task", "tasks")):
        sheets[collection] = [
            {label: _excel_value(key, row.get(key)) for label, key in EXCEL_COLUMNS[entity]}
            for row in export.get(collection, [])
        ]
    prioritization = export["prioritization"]
    sheets["prioritization"] = {
        "Profile": prioritization["profile"]["name"],
        "Description": prioritization["profile"]["description"],
        "Criteria": [
            {
                "Criterion": criterion["name"],
                "Weight": f"{criterion['weight']:.3f}",
                "Category": criterion["category"],
                "Description": criterion["description"],
            }
            for criterion in prioritization["criteria"]
        ],
        "ConsistencyRatio": f"{prioritization['consistencyRatio']:.3f}",
        "GeneratedAt": prioritization["metadata"]["generatedAt"],
    }
    return sheets
