from __future__ import annotations

import argparse
import json
import os
import sys
from dataclasses import replace
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from data_alchemist import __version__ as TOOL_VERSION
from data_alchemist.config import Settings, load_settings, starter_config
from data_alchemist.contracts import build_payload, build_run_summary
from data_alchemist.corrections import apply_suggestions, generate_suggestions, should_apply
from data_alchemist.cross_entity import CrossEntityData
from data_alchemist.export import (
    clean_csv_name,
    json_dumps,
    write_clean_csv,
    write_json,
    write_prioritization_bundle,
    write_rules_config,
    write_text,
)
from data_alchemist.loader import load_file
from data_alchemist.prioritization import (
    DEFAULT_CRITERIA,
    PRESET_WEIGHTS,
    Criterion,
    PrioritizationProfile,
    analyze_pairwise,
    build_prioritization_export,
    comparisons_from_payload,
    create_custom_profile,
    get_profile,
    validate_prioritization,
    weights_from_ranking,
    with_weights,
)
from data_alchemist.remote import is_remote_source, load_remote
from data_alchemist.rule_parser import contextual_suggestions, detect_entity_mentions, parse_rule, to_business_rule
from data_alchemist.rules import BusinessRule, generate_rules_config, recommend_rules, rules_from_config, validate_rule
from data_alchemist.schemas import detect_entity, entity_scores, map_headers, normalize_rows, original_headers
from data_alchemist.search import search
from data_alchemist.shared import ENTITY_TYPES
from data_alchemist.taxonomy import explain_rule, rule_ids
from data_alchemist.validation import validate_data

EXIT_SUCCESS = 0
EXIT_COMMAND_ERROR = 1
EXIT_PARSE_FAILED = 2
EXIT_FINDINGS = 3
EXIT_VALIDATE_FAILED = 5
EXIT_PARTIAL = 6

ENTITY_COLLECTIONS = {"client": "clients", "worker": "workers", "task": "tasks"}


class CliError(Exception):
    def __init__(self, message: str, code: int = EXIT_COMMAND_ERROR) -> None:
        super().__init__(message)
        self.code = code


class DataAlchemistArgumentParser(argparse.ArgumentParser):
    def error(self, message: str) -> None:
        raise CliError(message, EXIT_COMMAND_ERROR)


def eprint(message: str) -> None:
    print(message, file=sys.stderr)


def emit_human(message: str, *, quiet: bool = False) -> None:
    if not quiet:
        eprint(message)


def maybe_emit_json_stdout(payload: Any, enabled: bool) -> None:
    if enabled:
        print(json_dumps(payload))


def timestamp_token() -> str:
    override = os.environ.get("DATA_ALCHEMIST_OUTPUT_STAMP")
    if override:
        return override
    return datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%SZ")


def default_output_dir(stem: str, settings: Settings) -> Path:
    return Path.cwd() / settings.output_dir / f"{stem}-{timestamp_token()}"


def determine_output_dir(args: argparse.Namespace, stem: str, settings: Settings) -> Path:
    if getattr(args, "out_dir", None):
        return Path(args.out_dir)
    return default_output_dir(stem, settings)


def safe_output_path(path: Path) -> Path:
    if path.exists():
        raise CliError(f"Refusing to overwrite existing output: {path}", EXIT_COMMAND_ERROR)
    return path


def classify_exception(exc: Exception) -> int:
    if isinstance(exc, CliError):
        return exc.code
    if isinstance(exc, (ImportError, UnicodeDecodeError)):
        return EXIT_PARSE_FAILED
    if isinstance(exc, FileNotFoundError):
        return EXIT_COMMAND_ERROR
    if isinstance(exc, ValueError):
        return EXIT_PARSE_FAILED
    return EXIT_COMMAND_ERROR


# ══════════════════════════════════════════════════════════════════════════
# INPUTS
# ══════════════════════════════════════════════════════════════════════════

def source_stem(source: str) -> str:
    return Path(source.split("?", 1)[0]).stem or "input"


def load_source(source: str, sheet_name: str | None = None) -> dict[str, Any]:
    if is_remote_source(source):
        return load_remote(source, sheet_name)
    return load_file(source, sheet_name=sheet_name)


def load_entity_rows(
    source: str,
    entity: str | None = None,
    sheet_name: str | None = None,
) -> tuple[list[dict[str, Any]], str, dict[str, str], dict[str, Any]]:
    """Load a file and remap its headers onto the entity's canonical fields."""
    loaded = load_source(source, sheet_name)
    if entity is None:
        entity = detect_entity(loaded["headers"])
        if entity is None:
            raise CliError(
                f"Could not tell whether {source} holds clients, workers or tasks. Pass --entity.",
                EXIT_COMMAND_ERROR,
            )
    rows, header_map = normalize_rows(loaded["records"], entity)
    return rows, entity, header_map, loaded


def load_companions(args: argparse.Namespace) -> CrossEntityData:
    data = CrossEntityData()
    for entity, collection in ENTITY_COLLECTIONS.items():
        source = getattr(args, collection, None)
        if source:
            rows, _, _, _ = load_entity_rows(source, entity)
            setattr(data, collection, rows)
    return data


def settings_for(args: argparse.Namespace) -> Settings:
    return load_settings(getattr(args, "config", None))


# ══════════════════════════════════════════════════════════════════════════
# HUMAN OUTPUT
# ══════════════════════════════════════════════════════════════════════════

def render_validate_text(payload: dict[str, Any]) -> str:
    summary = payload["summary"]
    lines = [
        "data-alchemist validate",
        f"Input: {payload['input']}",
        f"Entity: {payload['entity']}",
        f"Rows: {payload['row_count']}",
        f"Errors: {summary['total_errors']}",
        f"Warnings: {summary['total_warnings']}",
    ]
    if summary["affected_rows"]:
        lines.append("Affected rows: " + ", ".join(str(index) for index in summary["affected_rows"]))
    for issue in payload["issues"][:50]:
        where = f"row {issue['row_index']}" if issue["row_index"] is not None else "dataset"
        lines.append(f"- [{issue['kind']}/{issue['severity']}] {where}: {issue['message']} ({issue['rule']})")
    if len(payload["issues"]) > 50:
        lines.append(f"... {len(payload['issues']) - 50} more")
    return "\n".join(lines) + "\n"


def render_parsed_rule_text(parsed: dict[str, Any]) -> str:
    lines = [
        "data-alchemist parse-rule",
        f"Rule type: {parsed['rule_type']}",
        f"Confidence: {parsed['confidence']:.2f}",
        f"Can apply: {'yes' if parsed['can_apply'] else 'no'}",
        f"Reason: {parsed['reason']}",
        f"Suggested name: {parsed['suggested_name']}",
        f"Description: {parsed['suggested_description']}",
        "Parameters: " + json.dumps(parsed["parameters"], ensure_ascii=False, sort_keys=True),
    ]
    for hint in parsed["suggestions"]:
        lines.append(f"Hint: {hint}")
    return "\n".join(lines) + "\n"


def render_weights_text(payload: dict[str, Any]) -> str:
    lines = [
        "data-alchemist weights",
        f"Source: {payload['source']}",
        f"Consistency ratio: {payload['consistency_ratio']:.3f}",
        f"Valid: {payload['valid']}",
    ]
    for criterion in payload["criteria"]:
        lines.append(f"- {criterion['id']}: {criterion['weight']:.3f}")
    for error in payload["errors"]:
        lines.append(f"! {error}")
    return "\n".join(lines) + "\n"


# ══════════════════════════════════════════════════════════════════════════
# PARSER
# ══════════════════════════════════════════════════════════════════════════

def _add_companion_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--clients", help="Clients file or public URL")
    parser.add_argument("--workers", help="Workers file or public URL")
    parser.add_argument("--tasks", help="Tasks file or public URL")


def _add_common_args(parser: argparse.ArgumentParser, *, json_flag: bool = True) -> None:
    if json_flag:
        parser.add_argument("--json", action="store_true", help="Write machine JSON to stdout")
    parser.add_argument("--config", help="Settings file (.json)")
    parser.add_argument("-q", "--quiet", action="store_true", help="Minimal human logs")


def _add_weight_source_args(parser: argparse.ArgumentParser) -> None:
    source = parser.add_mutually_exclusive_group()
    source.add_argument("--profile", choices=sorted(PRESET_WEIGHTS), help="Preset prioritization profile")
    source.add_argument("--ranking", help="Comma-separated criterion ids, most important first")
    source.add_argument("--pairwise", help="JSON file of pairwise comparisons")


def build_parser() -> argparse.ArgumentParser:
    parser = DataAlchemistArgumentParser(
        prog="data-alchemist",
        description="Validate, correct and prioritize client, worker and task spreadsheets.",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    detect = subparsers.add_parser("detect", help="Detect whether a file holds clients, workers or tasks.")
    detect.add_argument("input", help="Input file path or public URL")
    detect.add_argument("--sheet", dest="sheet_name", help="Workbook sheet name")
    _add_common_args(detect)

    validate = subparsers.add_parser("validate", help="Validate one entity file, optionally against companions.")
    validate.add_argument("input", help="Input file path or public URL")
    validate.add_argument("--entity", choices=ENTITY_TYPES, help="Entity kind; detected from headers when omitted")
    validate.add_argument("--sheet", dest="sheet_name", help="Workbook sheet name")
    validate.add_argument("-o", "--out", dest="out_dir", help="Output directory for validation.json")
    validate.add_argument("--output", help="Explicit validation output path")
    _add_companion_args(validate)
    _add_common_args(validate)

    correct = subparsers.add_parser("correct", help="Suggest (and optionally apply) heuristic corrections.")
    correct.add_argument("input", help="Input file path or public URL")
    correct.add_argument("--entity", choices=ENTITY_TYPES, help="Entity kind; detected from headers when omitted")
    correct.add_argument("--sheet", dest="sheet_name", help="Workbook sheet name")
    correct.add_argument("--apply", action="store_true", help="Write a corrected CSV")
    correct.add_argument("-o", "--out", dest="out_dir", help="Output directory")
    correct.add_argument("--output", help="Explicit corrected CSV path")
    _add_common_args(correct)

    search_cmd = subparsers.add_parser("search", help="Filter rows with a plain-English query.")
    search_cmd.add_argument("input", help="Input file path or public URL")
    search_cmd.add_argument("query", help='Query, e.g. "tasks with duration more than 3"')
    search_cmd.add_argument("--entity", choices=ENTITY_TYPES, help="Entity kind; detected from headers when omitted")
    search_cmd.add_argument("--sheet", dest="sheet_name", help="Workbook sheet name")
    _add_common_args(search_cmd)

    parse_rule_cmd = subparsers.add_parser("parse-rule", help="Turn a sentence into a business rule.")
    parse_rule_cmd.add_argument("text", help='Rule text, e.g. "Tasks T1 and T2 must run together"')
    _add_companion_args(parse_rule_cmd)
    _add_common_args(parse_rule_cmd)

    recommend = subparsers.add_parser("recommend", help="Recommend business rules from the loaded data.")
    _add_companion_args(recommend)
    _add_common_args(recommend)

    weights = subparsers.add_parser("weights", help="Compute criterion weights and the AHP consistency ratio.")
    _add_weight_source_args(weights)
    _add_common_args(weights)

    export = subparsers.add_parser("export", help="Write clean CSVs, rules config and prioritization outputs.")
    export.add_argument("inputs", nargs="*", help="Entity files; kinds are detected from headers")
    _add_companion_args(export)
    export.add_argument("--rules", dest="rules_file", help="Existing rules-config.json to include")
    export.add_argument("--rule", dest="rule_texts", action="append", default=[], help="Rule sentence to parse and include (repeatable)")
    export.add_argument("--recommended", action="store_true", help="Include recommended rules")
    export.add_argument("--apply-corrections", action="store_true", help="Merge accepted correction suggestions first")
    _add_weight_source_args(export)
    export.add_argument("-o", "--out", dest="out_dir", help="Output directory")
    _add_common_args(export)

    config = subparsers.add_parser("config", help="Generate configuration.")
    config_subparsers = config.add_subparsers(dest="config_command", required=True)
    config_init = config_subparsers.add_parser("init", help="Write a starter config file.")
    config_init.add_argument("--path", default="data-alchemist.json", help="Config output path")
    config_init.add_argument("-q", "--quiet", action="store_true", help="Minimal human logs")

    explain = subparsers.add_parser("explain", help="Explain a validation rule id.")
    explain.add_argument("rule_id", help="Rule identifier")
    explain.add_argument("--json", action="store_true", help="Write machine JSON to stdout")

    subparsers.add_parser("version", help="Print version")
    return parser


# ══════════════════════════════════════════════════════════════════════════
# COMMANDS
# ══════════════════════════════════════════════════════════════════════════

def run_detect(args: argparse.Namespace) -> int:
    try:
        loaded = load_source(args.input, args.sheet_name)
        headers = loaded["headers"]
        entity = detect_entity(headers)
        header_map = map_headers(headers, entity) if entity else {}
        body = {
            "input": args.input,
            "entity": entity,
            "scores": entity_scores(headers),
            "headers": headers,
            "header_map": header_map,
            "detected_format": loaded["detected_format"],
            "sheet_name": loaded.get("sheet_name"),
        }
        status = "ok" if entity else "undetected"
        payload = build_payload(
            "data_alchemist.detect",
            body,
            build_run_summary(command="detect", input_path=Path(args.input), status=status, warnings=loaded["warnings"]),
        )
        if args.json:
            maybe_emit_json_stdout(payload, True)
        else:
            emit_human(f"Entity: {entity or 'undetected'}", quiet=args.quiet)
            for header, canonical in header_map.items():
                emit_human(f"  {header} -> {canonical}", quiet=args.quiet)
        return EXIT_SUCCESS if entity else EXIT_COMMAND_ERROR
    except Exception as exc:
        eprint(str(exc))
        return classify_exception(exc)


def run_validate(args: argparse.Namespace) -> int:
    try:
        settings = settings_for(args)
        rows, entity, header_map, loaded = load_entity_rows(args.input, args.entity, args.sheet_name)
        cross = load_companions(args)
        result = validate_data(rows, entity, cross, settings)
        body = {
            "input": args.input,
            "entity": entity,
            "row_count": len(rows),
            "header_map": header_map,
            **result.to_dict(),
        }
        outputs: dict[str, str] = {}
        if args.output or args.out_dir:
            output_path = Path(args.output) if args.output else determine_output_dir(args, source_stem(args.input), settings) / "validation.json"
            outputs["validation"] = str(output_path)
        payload = build_payload(
            "data_alchemist.validate",
            body,
            build_run_summary(
                command="validate",
                input_path=Path(args.input),
                status="failed" if result.has_errors else "ok",
                outputs=outputs,
                metrics={"rows": len(rows), "errors": result.summary.total_errors, "warnings": result.summary.total_warnings},
                warnings=loaded["warnings"],
            ),
        )
        if outputs:
            write_json(Path(outputs["validation"]), payload)
            emit_human(f"Validation report: {outputs['validation']}", quiet=args.quiet)
        if args.json:
            maybe_emit_json_stdout(payload, True)
        else:
            emit_human(render_validate_text(body).rstrip(), quiet=args.quiet)
        if result.has_errors:
            return EXIT_VALIDATE_FAILED
        if result.summary.total_warnings:
            return EXIT_FINDINGS
        return EXIT_SUCCESS
    except Exception as exc:
        eprint(str(exc))
        return classify_exception(exc)


def run_correct(args: argparse.Namespace) -> int:
    try:
        settings = settings_for(args)
        rows, entity, header_map, loaded = load_entity_rows(args.input, args.entity, args.sheet_name)
        suggestions = generate_suggestions(rows)
        threshold = settings.apply_confidence_threshold
        outputs: dict[str, str] = {}
        if args.apply:
            corrected = apply_suggestions(rows, suggestions, threshold)
            default_path = determine_output_dir(args, source_stem(args.input), settings) / clean_csv_name(entity)
            output_path = safe_output_path(Path(args.output) if args.output else default_path)
            write_clean_csv(corrected, output_path, original_headers(header_map))
            outputs["clean_csv"] = str(output_path)
            emit_human(f"Corrected CSV: {output_path}", quiet=args.quiet)

        accepted = sum(1 for suggestion in suggestions if should_apply(suggestion, threshold))
        body = {
            "input": args.input,
            "entity": entity,
            "suggestions": [
                {**suggestion.to_dict(), "accepted": should_apply(suggestion, threshold)} for suggestion in suggestions
            ],
        }
        payload = build_payload(
            "data_alchemist.correct",
            body,
            build_run_summary(
                command="correct",
                input_path=Path(args.input),
                outputs=outputs,
                metrics={"suggestions": len(suggestions), "accepted": accepted, "applied": bool(args.apply)},
                warnings=loaded["warnings"],
            ),
        )
        if args.json:
            maybe_emit_json_stdout(payload, True)
        else:
            emit_human(f"Suggestions: {len(suggestions)} ({accepted} would be applied)", quiet=args.quiet)
            for suggestion in suggestions:
                emit_human(
                    f"- row {suggestion.row_index} {suggestion.column}: {suggestion.current_value!r} -> "
                    f"{suggestion.suggested_value!r} ({suggestion.confidence:.2f}, {suggestion.reason})",
                    quiet=args.quiet,
                )
        return EXIT_SUCCESS
    except Exception as exc:
        eprint(str(exc))
        return classify_exception(exc)


def run_search(args: argparse.Namespace) -> int:
    try:
        rows, entity, _, loaded = load_entity_rows(args.input, args.entity, args.sheet_name)
        result = search(rows, args.query)
        payload = build_payload(
            "data_alchemist.search",
            {"input": args.input, "entity": entity, **result.to_dict()},
            build_run_summary(
                command="search",
                input_path=Path(args.input),
                metrics={"rows": len(rows), "matches": len(result.row_indices)},
                warnings=loaded["warnings"],
            ),
        )
        if args.json:
            maybe_emit_json_stdout(payload, True)
        else:
            emit_human(result.explanation, quiet=args.quiet)
            for condition in result.conditions:
                emit_human(f"  where {condition.column} {condition.operator} {condition.value!r}", quiet=args.quiet)
            for index in result.row_indices:
                emit_human(f"- row {index}", quiet=args.quiet)
        return EXIT_SUCCESS
    except Exception as exc:
        eprint(str(exc))
        return classify_exception(exc)


def run_parse_rule(args: argparse.Namespace) -> int:
    try:
        data = load_companions(args)
        parsed = parse_rule(args.text, data)
        hints = contextual_suggestions(args.text, data)
        body = {
            "text": args.text,
            "parsed": parsed.to_dict() if parsed else None,
            "mentions": detect_entity_mentions(args.text),
            "hints": hints,
        }
        status = "unparsed" if parsed is None else ("ok" if parsed.can_apply else "not_applicable")
        payload = build_payload("data_alchemist.parse_rule", body, build_run_summary(command="parse-rule", status=status))
        if args.json:
            maybe_emit_json_stdout(payload, True)
        elif parsed is None:
            emit_human("No rule pattern matched.", quiet=args.quiet)
            for hint in hints:
                emit_human(f"Hint: {hint}", quiet=args.quiet)
        else:
            emit_human(render_parsed_rule_text(body["parsed"]).rstrip(), quiet=args.quiet)
        if parsed is None:
            return EXIT_FINDINGS
        return EXIT_SUCCESS if parsed.can_apply else EXIT_PARTIAL
    except Exception as exc:
        eprint(str(exc))
        return classify_exception(exc)


def run_recommend(args: argparse.Namespace) -> int:
    try:
        data = load_companions(args)
        if data.clients is None and data.workers is None and data.tasks is None:
            raise CliError("Pass at least one of --clients, --workers or --tasks.", EXIT_COMMAND_ERROR)
        recommendations = recommend_rules(data)
        payload = build_payload(
            "data_alchemist.recommend",
            {"recommendations": [recommendation.to_dict() for recommendation in recommendations]},
            build_run_summary(command="recommend", metrics={"recommendations": len(recommendations)}),
        )
        if args.json:
            maybe_emit_json_stdout(payload, True)
        else:
            emit_human(f"Recommendations: {len(recommendations)}", quiet=args.quiet)
            for recommendation in recommendations:
                emit_human(
                    f"- {recommendation.type} ({recommendation.confidence:.0%}): {recommendation.reason}",
                    quiet=args.quiet,
                )
        return EXIT_SUCCESS
    except Exception as exc:
        eprint(str(exc))
        return classify_exception(exc)


def _criterion_for(criterion_id: str) -> Criterion:
    for criterion in DEFAULT_CRITERIA:
        if criterion.id == criterion_id:
            return replace(criterion)
    return Criterion(criterion_id, criterion_id, "", "constraint", 0.0)


def resolve_weights(args: argparse.Namespace, settings: Settings) -> tuple[PrioritizationProfile, list, str]:
    """Return the profile, the comparisons used (if any) and a label for the weight source."""
    if args.ranking:
        order = [item.strip() for item in args.ranking.split(",") if item.strip()]
        if not order:
            raise CliError("--ranking needs at least one criterion id.", EXIT_COMMAND_ERROR)
        if len(set(order)) != len(order):
            raise CliError("--ranking lists a criterion more than once.", EXIT_COMMAND_ERROR)
        criteria = with_weights([_criterion_for(item) for item in order], weights_from_ranking(order))
        return create_custom_profile("Ranked", "Weights from rank order", criteria), [], "ranking"

    if args.pairwise:
        path = Path(args.pairwise)
        if not path.exists():
            raise FileNotFoundError(f"Pairwise file not found: {path}")
        try:
            payload = json.loads(path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as exc:
            raise ValueError(f"Could not read pairwise file: {exc}") from exc
        comparisons = comparisons_from_payload(payload)
        ids = payload.get("criteria") if isinstance(payload, dict) else None
        if not ids:
            ids = []
            for comparison in comparisons:
                for criterion_id in (comparison.criterion1, comparison.criterion2):
                    if criterion_id not in ids:
                        ids.append(criterion_id)
        criteria = [_criterion_for(criterion_id) for criterion_id in ids]
        ahp = analyze_pairwise(criteria, comparisons, settings)
        criteria = with_weights(criteria, ahp.weight_map())
        return create_custom_profile("Pairwise", "Weights from AHP pairwise comparisons", criteria), comparisons, "pairwise"

    profile = get_profile(args.profile or "balanced")
    return profile, [], f"profile:{profile.id}"


def run_weights(args: argparse.Namespace) -> int:
    try:
        settings = settings_for(args)
        profile, comparisons, source = resolve_weights(args, settings)
        check = validate_prioritization(profile.criteria, comparisons, settings)
        body = {
            "source": source,
            "profile": profile.to_dict(),
            "criteria": [criterion.to_dict() for criterion in profile.criteria],
            "consistency_ratio": check.consistency_ratio,
            "valid": check.is_valid,
            "errors": check.errors,
            "total_weight": check.total_weight,
        }
        payload = build_payload(
            "data_alchemist.weights",
            body,
            build_run_summary(command="weights", status="ok" if check.is_valid else "invalid", warnings=check.errors),
        )
        if args.json:
            maybe_emit_json_stdout(payload, True)
        else:
            emit_human(render_weights_text(body).rstrip(), quiet=args.quiet)
        return EXIT_SUCCESS if check.is_valid else EXIT_VALIDATE_FAILED
    except Exception as exc:
        eprint(str(exc))
        return classify_exception(exc)


def _collect_export_data(
    args: argparse.Namespace,
    settings: Settings,
    warnings: list[str],
) -> tuple[dict[str, list[dict[str, Any]]], dict[str, dict[str, str]]]:
    """Rows per entity plus, per entity, the canonical key -> uploaded header names."""
    collections: dict[str, list[dict[str, Any]]] = {}
    headers: dict[str, dict[str, str]] = {}
    sources = [(path, None) for path in args.inputs]
    sources += [(getattr(args, collection), entity) for entity, collection in ENTITY_COLLECTIONS.items() if getattr(args, collection)]
    for source, entity in sources:
        rows, entity, header_map, loaded = load_entity_rows(source, entity)
        warnings.extend(loaded["warnings"])
        if entity in collections:
            raise CliError(f"More than one {entity} file given.", EXIT_COMMAND_ERROR)
        if args.apply_corrections:
            rows = apply_suggestions(rows, generate_suggestions(rows), settings.apply_confidence_threshold)
        collections[entity] = rows
        headers[entity] = original_headers(header_map)
    if not collections:
        raise CliError("Nothing to export: pass entity files or --clients/--workers/--tasks.", EXIT_COMMAND_ERROR)
    return collections, headers


def _collect_rules(args: argparse.Namespace, data: CrossEntityData, warnings: list[str]) -> list[BusinessRule]:
    rules: list[BusinessRule] = []
    if args.rules_file:
        path = Path(args.rules_file)
        if not path.exists():
            raise FileNotFoundError(f"Rules file not found: {path}")
        try:
            rules.extend(rules_from_config(json.loads(path.read_text(encoding="utf-8"))))
        except json.JSONDecodeError as exc:
            raise ValueError(f"Could not read rules file: {exc}") from exc
    for text in args.rule_texts:
        parsed = parse_rule(text, data)
        if parsed is None:
            warnings.append(f"Rule not understood: {text}")
        elif not parsed.can_apply:
            warnings.append(f"Rule skipped ({parsed.reason}): {text}")
        else:
            rules.append(to_business_rule(parsed))
    if args.recommended:
        rules.extend(recommendation.suggested_rule for recommendation in recommend_rules(data))
    for rule in rules:
        check = validate_rule(rule, data)
        warnings.extend(f"{rule.name}: {error}" for error in check.errors)
        warnings.extend(f"{rule.name}: {warning}" for warning in check.warnings)
    return rules


def run_export(args: argparse.Namespace) -> int:
    try:
        settings = settings_for(args)
        warnings: list[str] = []
        collections, headers = _collect_export_data(args, settings, warnings)
        data = CrossEntityData(
            clients=collections.get("client"),
            workers=collections.get("worker"),
            tasks=collections.get("task"),
        )
        out_dir = determine_output_dir(args, "export", settings)

        outputs: dict[str, str] = {}
        for entity, rows in collections.items():
            path = safe_output_path(out_dir / clean_csv_name(entity))
            outputs[f"{entity}_clean_csv"] = str(write_clean_csv(rows, path, headers[entity]))

        rules = _collect_rules(args, data, warnings)
        rules_config = generate_rules_config(rules)
        outputs["rules_config"] = str(write_rules_config(rules_config, out_dir))

        profile, comparisons, _ = resolve_weights(args, settings)
        check = validate_prioritization(profile.criteria, comparisons, settings)
        warnings.extend(check.errors)
        export = build_prioritization_export(profile, data, comparisons, rules_config["rules"])
        outputs.update(write_prioritization_bundle(export, out_dir))

        summary = build_run_summary(
            command="export",
            status="partial" if warnings else "ok",
            outputs=outputs,
            metrics={
                "rules": len(rules_config["rules"]),
                **{f"{entity}_rows": len(rows) for entity, rows in collections.items()},
            },
            warnings=warnings,
        )
        payload = build_payload("data_alchemist.export", {"out_dir": str(out_dir)}, summary)
        write_text(out_dir / "run-summary.json", json_dumps(payload) + "\n")
        if args.json:
            maybe_emit_json_stdout(payload, True)
        else:
            emit_human(f"Export written to {out_dir}", quiet=args.quiet)
            for name, path in sorted(outputs.items()):
                emit_human(f"  {name}: {path}", quiet=args.quiet)
            for warning in warnings:
                emit_human(f"  warning: {warning}", quiet=args.quiet)
        return EXIT_SUCCESS
    except Exception as exc:
        eprint(str(exc))
        return classify_exception(exc)


def run_config_init(args: argparse.Namespace) -> int:
    config_path = Path(args.path)
    if config_path.exists():
        eprint(f"Refusing to overwrite existing config: {config_path}")
        return EXIT_COMMAND_ERROR
    write_json(config_path, starter_config())
    emit_human(f"Config written: {config_path}", quiet=args.quiet)
    return EXIT_SUCCESS


def run_explain(args: argparse.Namespace) -> int:
    entry = explain_rule(args.rule_id)
    if entry is None:
        eprint(f"Unknown rule id: {args.rule_id}. Known ids: {', '.join(rule_ids())}")
        return EXIT_COMMAND_ERROR
    if args.json:
        maybe_emit_json_stdout(entry, True)
    else:
        lines = [
            f"Rule: {entry['rule']}",
            f"Title: {entry['title']}",
            f"Applies to: {', '.join(entry['entities'])} ({entry['scope']})",
            f"Finding: {entry['kind']} / {entry['severity']}",
            f"What triggers it: {entry['meaning']}",
            f"How to fix it: {entry['fix']}",
        ]
        if entry.get("needs"):
            lines.append(f"Needs companion file: --{entry['needs']}")
        print("\n".join(lines))
    return EXIT_SUCCESS


def run_version() -> int:
    print(TOOL_VERSION)
    return EXIT_SUCCESS


def main(argv: list[str] | None = None) -> int:
    try:
        parser = build_parser()
        args = parser.parse_args(argv)
        if args.command == "detect":
            return run_detect(args)
        if args.command == "validate":
            return run_validate(args)
        if args.command == "correct":
            return run_correct(args)
        if args.command == "search":
            return run_search(args)
        if args.command == "parse-rule":
            return run_parse_rule(args)
        if args.command == "recommend":
            return run_recommend(args)
        if args.command == "weights":
            return run_weights(args)
        if args.command == "export":
            return run_export(args)
        if args.command == "config":
            if args.config_command == "init":
                return run_config_init(args)
        if args.command == "explain":
            return run_explain(args)
        if args.command == "version":
            return run_version()
        raise CliError(f"Unknown command: {args.command}", EXIT_COMMAND_ERROR)
    except CliError as exc:
        eprint(str(exc))
        return exc.code


if __name__ == "__main__":
    raise SystemExit(main())
