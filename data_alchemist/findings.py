"""Validation finding records shared by field and cross-entity rules."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

ISSUE_KINDS = ("error", "warning", "info")
SEVERITIES = ("high", "medium", "low")


@dataclass
class ValidationIssue:
    kind: str
    message: str
    severity: str
    row_index: int | None = None
    column: str | None = None
    value: Any = None
    rule: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind,
            "message": self.message,
            "severity": self.severity,
            "row_index": self.row_index,
            "column": self.column,
            "value": self.value,
            "rule": self.rule,
        }


@dataclass
class ValidationSummary:
    total_errors: int = 0
    total_warnings: int = 0
    error_types: dict[str, int] = field(default_factory=dict)
    affected_rows: list[int] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_errors": self.total_errors,
            "total_warnings": self.total_warnings,
            "error_types": dict(self.error_types),
            "affected_rows": list(self.affected_rows),
        }


@dataclass
class ValidationResult:
    issues: list[ValidationIssue]
    summary: ValidationSummary

    @property
    def has_errors(self) -> bool:
        return self.summary.total_errors > 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "issues": [issue.to_dict() for issue in self.issues],
            "summary": self.summary.to_dict(),
        }


def summarize(issues: list[ValidationIssue]) -> ValidationSummary:
    error_types: dict[str, int] = {}
    affected: set[int] = set()
    for issue in issues:
        error_types[issue.message] = error_types.get(issue.message, 0) + 1
        if issue.row_index is not None:
            affected.add(issue.row_index)
    return ValidationSummary(
        total_errors=sum(1 for issue in issues if issue.kind == "error"),
        total_warnings=sum(1 for issue in issues if issue.kind == "warning"),
        error_types=error_types,
        affected_rows=sorted(affected),
    )
