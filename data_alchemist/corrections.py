"""
Deterministic correction suggestions.

Each suggestion rule scans the rows for one fixable pattern and proposes a
single-cell edit with a confidence score. Nothing here edits data; the caller
decides what to merge through apply_suggestions().
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Callable

from data_alchemist.shared import find_column, is_blank, parse_int

EMAIL_SHAPE_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
NON_DIGIT_RE = re.compile(r"\D")

EMAIL_DOMAIN_FIXES = {
    "gmial.com": "gmail.com",
    "gmal.com": "gmail.com",
    "gmai.com": "gmail.com",
    "hotmai.com": "hotmail.com",
    "hotmal.com": "hotmail.com",
    "yaho.com": "yahoo.com",
    "outlok.com": "outlook.com",
}

ROLE_SKILLS = {
    "developer": ["javascript", "python", "java", "react", "node.js", "sql"],
    "designer": ["figma", "sketch", "adobe", "ui/ux", "prototyping", "wireframing"],
    "manager": ["leadership", "project management", "communication", "agile", "scrum"],
    "analyst": ["data analysis", "sql", "excel", "python", "statistics", "reporting"],
    "engineer": ["java", "python", "c++", "system design", "algorithms", "databases"],
}

# Checked in order; the first keyword group found in the title decides.
DURATION_KEYWORDS = [
    (("review", "test"), 2),
    (("design", "plan"), 7),
    (("implement", "develop"), 10),
    (("research", "analysis"), 5),
]
DEFAULT_DURATION = 5
HIGH_PRIORITY_LEVEL = 4
HIGH_PRIORITY_REDUCTION = 2

DEFAULT_APPLY_THRESHOLD = 0.8


@dataclass
class CorrectionSuggestion:
    category: str
    row_index: int
    column: str
    current_value: Any
    suggested_value: Any
    confidence: float
    reason: str
    auto_apply: bool

    def to_dict(self) -> dict[str, Any]:
        return {
            "category": self.category,
            "row_index": self.row_index,
            "column": self.column,
            "current_value": self.current_value,
            "suggested_value": self.suggested_value,
            "confidence": self.confidence,
            "reason": self.reason,
            "auto_apply": self.auto_apply,
        }


Rows = list[dict[str, Any]]


def is_valid_email(value: str) -> bool:
    return bool(EMAIL_SHAPE_RE.match(value))


def correct_email(email: str) -> str:
    corrected = email.strip().lower()
    local, at, domain = corrected.partition("@")
    if at and domain in EMAIL_DOMAIN_FIXES:
        corrected = f"{local}@{EMAIL_DOMAIN_FIXES[domain]}"
    if "@" not in corrected and "." in corrected:
        head, _, rest = corrected.partition(".")
        corrected = f"{head}@{rest}"
    return corrected


def format_phone(phone: str) -> str | None:
    digits = NON_DIGIT_RE.sub("", phone)
    if len(digits) != 10:
        return None
    return f"({digits[:3]}) {digits[3:6]}-{digits[6:]}"


def estimate_duration(title: str, priority: Any = None) -> int:
    lowered = title.lower()
    estimate = DEFAULT_DURATION
    for keywords, days in DURATION_KEYWORDS:
        if any(keyword in lowered for keyword in keywords):
            estimate = days
            break
    if priority:
        level = parse_int(priority)
        if level is not None and level >= HIGH_PRIORITY_LEVEL:
            estimate = max(1, estimate - HIGH_PRIORITY_REDUCTION)
    return estimate


# ══════════════════════════════════════════════════════════════════════════
# SUGGESTION RULES
# ══════════════════════════════════════════════════════════════════════════

def suggest_email_fixes(rows: Rows) -> list[CorrectionSuggestion]:
    column = find_column(rows, ("email",))
    if not column:
        return []
    suggestions = []
    for index, row in enumerate(rows):
        email = row.get(column)
        if not email or not isinstance(email, str):
            continue
        corrected = correct_email(email)
        if corrected != email and is_valid_email(corrected):
            suggestions.append(
                CorrectionSuggestion(
                    category="format_error",
                    row_index=index,
                    column=column,
                    current_value=email,
                    suggested_value=corrected,
                    confidence=0.9,
                    reason="Fixed common email format issues",
                    auto_apply=True,
                )
            )
    return suggestions


def suggest_phone_formats(rows: Rows) -> list[CorrectionSuggestion]:
    column = find_column(rows, ("phone", "phone_number", "contact"))
    if not column:
        return []
    suggestions = []
    for index, row in enumerate(rows):
        phone = row.get(column)
        if not phone or not isinstance(phone, str):
            continue
        formatted = format_phone(phone)
        if formatted and formatted != phone:
            suggestions.append(
                CorrectionSuggestion(
                    category="format_error",
                    row_index=index,
                    column=column,
                    current_value=phone,
                    suggested_value=formatted,
                    confidence=0.95,
                    reason="Standardized phone number format",
                    auto_apply=True,
                )
            )
    return suggestions


def suggest_role_skills(rows: Rows) -> list[CorrectionSuggestion]:
    skills_column = find_column(rows, ("skills", "requiredskills", "required_skills"))
    role_column = find_column(rows, ("role", "position", "job"))
    if not skills_column or not role_column:
        return []
    suggestions = []
    for index, row in enumerate(rows):
        role = row.get(role_column)
        if is_blank(role) or not is_blank(row.get(skills_column)):
            continue
        skills = ROLE_SKILLS.get(str(role).strip().lower())
        if not skills:
            continue
        suggestions.append(
            CorrectionSuggestion(
                category="missing_value",
                row_index=index,
                column=skills_column,
                current_value=None,
                suggested_value=", ".join(skills),
                confidence=0.8,
                reason=f"Suggested skills based on role: {role}",
                auto_apply=False,
            )
        )
    return suggestions


def suggest_durations(rows: Rows) -> list[CorrectionSuggestion]:
    duration_column = find_column(rows, ("duration",))
    title_column = find_column(rows, ("title", "name"))
    priority_column = find_column(rows, ("prioritylevel", "priority_level", "priority"))
    if not duration_column or not title_column:
        return []
    suggestions = []
    for index, row in enumerate(rows):
        duration = row.get(duration_column)
        title = row.get(title_column)
        if (not is_blank(duration) and duration != 0) or is_blank(title):
            continue
        priority = row.get(priority_column) if priority_column else None
        suggestions.append(
            CorrectionSuggestion(
                category="missing_value",
                row_index=index,
                column=duration_column,
                current_value=None,
                suggested_value=estimate_duration(str(title), priority),
                confidence=0.7,
                reason=f'Estimated duration based on task title: "{title}"',
                auto_apply=False,
            )
        )
    return suggestions


SUGGESTION_RULES: list[Callable[[Rows], list[CorrectionSuggestion]]] = [
    suggest_email_fixes,
    suggest_phone_formats,
    suggest_role_skills,
    suggest_durations,
]


def generate_suggestions(rows: Rows) -> list[CorrectionSuggestion]:
    suggestions: list[CorrectionSuggestion] = []
    for rule in SUGGESTION_RULES:
        suggestions.extend(rule(rows))
    return suggestions


def should_apply(suggestion: CorrectionSuggestion, threshold: float = DEFAULT_APPLY_THRESHOLD) -> bool:
    return suggestion.auto_apply or suggestion.confidence > threshold


def apply_suggestions(
    rows: Rows,
    suggestions: list[CorrectionSuggestion],
    threshold: float = DEFAULT_APPLY_THRESHOLD,
) -> Rows:
    """
    Return a copy of rows with accepted suggestions merged in.

    Only the targeted cell changes. Suggestions are applied in order, so when
    two of them target the same cell the later one wins.
    """
    updated = [dict(row) for row in rows]
    for suggestion in suggestions:
        if not should_apply(suggestion, threshold):
            continue
        if not 0 <= suggestion.row_index < len(updated):
            continue
        updated[suggestion.row_index][suggestion.column] = suggestion.suggested_value
    return updated
