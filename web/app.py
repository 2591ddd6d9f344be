#!/usr/bin/env python3
from __future__ import annotations

import json
import sys
import tempfile
from pathlib import Path
from typing import Any, Optional

import pandas as pd
import streamlit as st

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from data_alchemist.config import DEFAULT_SETTINGS
from data_alchemist.corrections import apply_suggestions, generate_suggestions, should_apply
from data_alchemist.cross_entity import CrossEntityData
from data_alchemist.export import (
    PRIORITIZATION_CONFIG_NAME,
    RULES_CONFIG_NAME,
    clean_csv_name,
    json_dumps,
    rows_to_csv,
    write_prioritization_workbook,
)
from data_alchemist.loader import ALL_FORMATS, load_bytes, records_from_dataframe
from data_alchemist.prioritization import (
    DEFAULT_CRITERIA,
    PAIRWISE_SCALE,
    PRESET_WEIGHTS,
    PairwiseComparison,
    analyze_pairwise,
    build_prioritization_export,
    create_custom_profile,
    default_criteria,
    excel_rows,
    generate_pairwise_comparisons,
    get_profile,
    normalize_weights,
    validate_prioritization,
    weights_from_ranking,
    with_weights,
)
from data_alchemist.remote import MAX_REMOTE_FILE_MB, load_remote
from data_alchemist.rule_parser import contextual_suggestions, parse_rule, to_business_rule
from data_alchemist.rules import (
    BusinessRule,
    create_co_run_rule,
    create_load_limit_rule,
    create_phase_window_rule,
    create_slot_restriction_rule,
    generate_rules_config,
    recommend_rules,
    validate_rule,
    with_enabled,
)
from data_alchemist.schemas import detect_entity, normalize_rows, original_headers
from data_alchemist.search import search
from data_alchemist.shared import ENTITY_TYPES
from data_alchemist.taxonomy import explain_rule
from data_alchemist.validation import validate_data

ENTITY_LABELS = {"client": "Clients", "worker": "Workers", "task": "Tasks"}
WEIGHT_MODES = ["Preset profile", "Sliders", "Rank order", "Pairwise (AHP)"]


def ensure_state() -> None:
    for entity in ENTITY_TYPES:
        st.session_state.setdefault(f"rows_{entity}", None)
        st.session_state.setdefault(f"source_{entity}", None)
        st.session_state.setdefault(f"headers_{entity}", {})
    st.session_state.setdefault("rules", [])
    st.session_state.setdefault("load_messages", [])
    st.session_state.setdefault("public_url_input", "")
    st.session_state.setdefault("rule_text_input", "")


def entity_rows(entity: str) -> Optional[list[dict[str, Any]]]:
    return st.session_state.get(f"rows_{entity}")


def cross_data() -> CrossEntityData:
    return CrossEntityData(
        clients=entity_rows("client"),
        workers=entity_rows("worker"),
        tasks=entity_rows("task"),
    )


def loaded_entities() -> list[str]:
    return [entity for entity in ENTITY_TYPES if entity_rows(entity) is not None]


def store_loaded(loaded: dict, label: str, entity_override: Optional[str]) -> str:
    entity = entity_override or detect_entity(loaded["headers"])
    if entity is None:
        raise ValueError(f"Could not tell whether {label} holds clients, workers or tasks. Pick the kind and retry.")
    rows, header_map = normalize_rows(loaded["records"], entity)
    st.session_state[f"rows_{entity}"] = rows
    st.session_state[f"headers_{entity}"] = original_headers(header_map)
    st.session_state[f"source_{entity}"] = label
    return entity


def ingest_sources(uploads, raw_url: str, entity_override: Optional[str]) -> None:
    messages: list[tuple[str, str]] = []
    for upload in uploads or []:
        try:
            loaded = load_bytes(upload.getvalue(), upload.name)
            entity = store_loaded(loaded, upload.name, entity_override)
            messages.append(("success", f"{upload.name}: loaded as {ENTITY_LABELS[entity].lower()} ({len(loaded['records'])} rows)"))
            messages.extend(("warning", f"{upload.name}: {warning}") for warning in loaded["warnings"])
        except (ValueError, UnicodeDecodeError) as exc:
            messages.append(("error", f"{upload.name}: {exc}"))
    for url in [line.strip() for line in raw_url.splitlines() if line.strip()]:
        try:
            loaded = load_remote(url)
            entity = store_loaded(loaded, url, entity_override)
            messages.append(("success", f"{url}: loaded as {ENTITY_LABELS[entity].lower()} ({len(loaded['records'])} rows)"))
        except Exception as exc:
            messages.append(("error", f"{url}: {exc}"))
    st.session_state["load_messages"] = messages


# ══════════════════════════════════════════════════════════════════════════
# SECTIONS
# ══════════════════════════════════════════════════════════════════════════

def render_load_messages() -> None:
    for level, message in st.session_state.get("load_messages") or []:
        getattr(st, level)(message)


def render_data_grids() -> None:
    entities = loaded_entities()
    if not entities:
        st.info("Upload a clients, workers or tasks file to begin. Kinds are detected from the headers.")
        return

    tabs = st.tabs([ENTITY_LABELS[entity] for entity in entities])
    for tab, entity in zip(tabs, entities):
        with tab:
            rows = entity_rows(entity) or []
            st.caption(f"Source: {st.session_state.get(f'source_{entity}')}")
            edited = st.data_editor(
                pd.DataFrame(rows),
                width="stretch",
                num_rows="dynamic",
                key=f"grid_{entity}",
            )
            if st.button("Save edits", key=f"save_{entity}"):
                st.session_state[f"rows_{entity}"] = records_from_dataframe(edited.astype(object))
                st.rerun()


def render_issue_table(issues: list[dict]) -> None:
    frame = pd.DataFrame(issues)[["kind", "severity", "row_index", "column", "message", "rule"]]
    st.dataframe(frame, width="stretch", hide_index=True)


def render_validation() -> None:
    st.subheader("Validation")
    data = cross_data()
    for entity in loaded_entities():
        result = validate_data(entity_rows(entity) or [], entity, data, DEFAULT_SETTINGS)
        summary = result.summary
        with st.expander(
            f"{ENTITY_LABELS[entity]}  •  {summary.total_errors} errors, {summary.total_warnings} warnings",
            expanded=result.has_errors,
        ):
            cols = st.columns(3)
            cols[0].metric("Errors", summary.total_errors)
            cols[1].metric("Warnings", summary.total_warnings)
            cols[2].metric("Affected rows", len(summary.affected_rows))
            if not result.issues:
                st.success("No issues found.")
                continue
            render_issue_table([issue.to_dict() for issue in result.issues])
            rule_id = st.selectbox(
                "Explain a rule",
                sorted({issue.rule for issue in result.issues}),
                key=f"explain_{entity}",
            )
            entry = explain_rule(rule_id)
            if entry:
                st.markdown(f"**{entry['title']}**  \n{entry['meaning']}  \n*Fix:* {entry['fix']}")


def render_corrections() -> None:
    st.subheader("Suggested corrections")
    threshold = DEFAULT_SETTINGS.apply_confidence_threshold
    for entity in loaded_entities():
        rows = entity_rows(entity) or []
        suggestions = generate_suggestions(rows)
        with st.expander(f"{ENTITY_LABELS[entity]}  •  {len(suggestions)} suggestions"):
            if not suggestions:
                st.info("Nothing to suggest.")
                continue
            frame = pd.DataFrame(
                [{**suggestion.to_dict(), "accepted": should_apply(suggestion, threshold)} for suggestion in suggestions]
            )
            st.dataframe(frame, width="stretch", hide_index=True)
            st.caption(f"Suggestions with confidence above {threshold:.2f} are applied.")
            if st.button("Apply accepted suggestions", key=f"apply_{entity}"):
                st.session_state[f"rows_{entity}"] = apply_suggestions(rows, suggestions, threshold)
                st.rerun()


def render_search() -> None:
    st.subheader("Search")
    entities = loaded_entities()
    entity = st.selectbox("Dataset", entities, format_func=lambda item: ENTITY_LABELS[item], key="search_entity")
    query = st.text_input("Query", placeholder="tasks with duration more than 3 and phase 2", key="search_query")
    if not query:
        return
    result = search(entity_rows(entity) or [], query)
    st.caption(result.explanation)
    if result.rows:
        st.dataframe(pd.DataFrame(result.rows), width="stretch", hide_index=True)


def _add_rule(rule: BusinessRule) -> None:
    st.session_state["rules"] = [*st.session_state["rules"], rule]


def render_rule_builder(data: CrossEntityData) -> None:
    rule_type = st.selectbox("Rule type", ["coRun", "slotRestriction", "loadLimit", "phaseWindow"], key="builder_type")
    task_ids = [str(row.get("taskid")) for row in data.tasks or [] if row.get("taskid") is not None]
    try:
        if rule_type == "coRun":
            tasks = st.multiselect("Tasks", task_ids, key="builder_tasks")
            if st.button("Add co-run rule", disabled=len(tasks) < 2):
                _add_rule(create_co_run_rule(tasks))
        elif rule_type == "slotRestriction":
            group_type = st.radio("Group type", ["client", "worker"], horizontal=True, key="builder_group_type")
            group_name = st.text_input("Group name", key="builder_group_name")
            min_slots = st.number_input("Minimum common slots", min_value=1, value=1, step=1, key="builder_min_slots")
            if st.button("Add slot restriction", disabled=not group_name):
                _add_rule(create_slot_restriction_rule(group_type, group_name, int(min_slots)))
        elif rule_type == "loadLimit":
            group_name = st.text_input("Worker group", key="builder_worker_group")
            max_slots = st.number_input("Max slots per phase", min_value=1, value=1, step=1, key="builder_max_slots")
            if st.button("Add load limit", disabled=not group_name):
                _add_rule(create_load_limit_rule(group_name, int(max_slots)))
        else:
            task_id = st.selectbox("Task", task_ids, key="builder_task") if task_ids else st.text_input("Task ID", key="builder_task_text")
            phases = st.multiselect("Allowed phases", list(range(1, 11)), key="builder_phases")
            if st.button("Add phase window", disabled=not (task_id and phases)):
                _add_rule(create_phase_window_rule(task_id, phases))
    except ValueError as exc:
        st.error(str(exc))


def render_rules() -> None:
    st.subheader("Business rules")
    data = cross_data()

    text = st.text_input("Describe a rule", key="rule_text_input", placeholder="Tasks T1 and T2 must run together")
    if text:
        parsed = parse_rule(text, data)
        if parsed is None:
            st.warning("No rule pattern matched.")
            for hint in contextual_suggestions(text, data):
                st.caption(hint)
        else:
            st.markdown(
                f"**{parsed.suggested_name}** (`{parsed.rule_type}`, confidence {parsed.confidence:.0%})  \n"
                f"{parsed.suggested_description}"
            )
            if parsed.can_apply:
                if st.button("Add parsed rule"):
                    _add_rule(to_business_rule(parsed))
                    st.rerun()
            else:
                st.warning(parsed.reason)
                for hint in parsed.suggestions:
                    st.caption(hint)

    with st.expander("Build a rule by hand"):
        render_rule_builder(data)

    recommendations = recommend_rules(data)
    if recommendations:
        with st.expander(f"Recommendations  •  {len(recommendations)}"):
            for index, recommendation in enumerate(recommendations):
                cols = st.columns([5, 1])
                cols[0].markdown(f"`{recommendation.type}` {recommendation.confidence:.0%}: {recommendation.reason}")
                if cols[1].button("Add", key=f"recommend_{index}"):
                    _add_rule(recommendation.suggested_rule)
                    st.rerun()

    rules: list[BusinessRule] = st.session_state["rules"]
    if not rules:
        st.info("No rules yet.")
        return
    updated: list[BusinessRule] = []
    for rule in rules:
        check = validate_rule(rule, data)
        cols = st.columns([1, 6, 1])
        enabled = cols[0].checkbox("On", value=rule.enabled, key=f"enabled_{rule.id}")
        cols[1].markdown(f"**{rule.name}** `{rule.type}`  \n{rule.description}")
        for error in check.errors:
            cols[1].error(error)
        for warning in check.warnings:
            cols[1].warning(warning)
        if cols[2].button("Remove", key=f"remove_{rule.id}"):
            continue
        updated.append(with_enabled(rule, enabled))
    st.session_state["rules"] = updated


def _weights_from_sliders() -> list:
    raw = {
        criterion.id: st.slider(criterion.name, 0.0, 1.0, float(criterion.weight), 0.05, key=f"slider_{criterion.id}")
        for criterion in DEFAULT_CRITERIA
    }
    normalized = normalize_weights(list(raw.values()))
    return with_weights(default_criteria(), dict(zip(raw, normalized)))


def _weights_from_pairwise() -> tuple[list, list[PairwiseComparison]]:
    criteria = default_criteria()
    options = [1 / value for value in sorted(PAIRWISE_SCALE, reverse=True) if value != 1] + sorted(PAIRWISE_SCALE)
    names = {criterion.id: criterion.name for criterion in criteria}
    comparisons = []
    for pair in generate_pairwise_comparisons(criteria):
        value = st.select_slider(
            f"{names[pair.criterion1]} vs {names[pair.criterion2]}",
            options=options,
            value=1,
            format_func=lambda item: PAIRWISE_SCALE.get(item) or f"1/{round(1 / item)}",
            key=f"pair_{pair.criterion1}_{pair.criterion2}",
        )
        comparisons.append(PairwiseComparison(pair.criterion1, pair.criterion2, float(value)))
    ahp = analyze_pairwise(criteria, comparisons, DEFAULT_SETTINGS)
    return with_weights(criteria, ahp.weight_map()), comparisons


def render_prioritization():
    st.subheader("Prioritization")
    mode = st.radio("Weighting", WEIGHT_MODES, horizontal=True, key="weight_mode")
    comparisons: list[PairwiseComparison] = []
    if mode == "Preset profile":
        profile_id = st.selectbox("Profile", list(PRESET_WEIGHTS), key="profile_id")
        profile = get_profile(profile_id)
        st.caption(profile.description)
    elif mode == "Sliders":
        profile = create_custom_profile("Custom", "Weights set by hand", _weights_from_sliders())
    elif mode == "Rank order":
        order = st.multiselect(
            "Criteria, most important first",
            [criterion.id for criterion in DEFAULT_CRITERIA],
            default=[criterion.id for criterion in DEFAULT_CRITERIA],
            key="rank_order",
        )
        ranked = weights_from_ranking(order)
        criteria = with_weights([criterion for criterion in default_criteria() if criterion.id in ranked], ranked)
        criteria.sort(key=lambda criterion: order.index(criterion.id))
        profile = create_custom_profile("Ranked", "Weights from rank order", criteria)
    else:
        criteria, comparisons = _weights_from_pairwise()
        profile = create_custom_profile("Pairwise", "Weights from AHP pairwise comparisons", criteria)

    check = validate_prioritization(profile.criteria, comparisons, DEFAULT_SETTINGS)
    cols = st.columns(3)
    cols[0].metric("Total weight", f"{check.total_weight:.3f}")
    cols[1].metric("Consistency ratio", f"{check.consistency_ratio:.3f}")
    cols[2].metric("Valid", "Yes" if check.is_valid else "No")
    for error in check.errors:
        st.warning(error)
    st.bar_chart(pd.DataFrame({"weight": {criterion.name: criterion.weight for criterion in profile.criteria}}))
    return profile, comparisons


def workbook_bytes(sheets: dict) -> bytes:
    with tempfile.TemporaryDirectory() as tmp:
        path = write_prioritization_workbook(sheets, Path(tmp) / "prioritization.xlsx")
        return path.read_bytes()


def render_export(profile, comparisons: list[PairwiseComparison]) -> None:
    st.subheader("Export")
    data = cross_data()
    rules_config = generate_rules_config(st.session_state["rules"])
    export = build_prioritization_export(profile, data, comparisons, rules_config["rules"])
    sheets = excel_rows(export)

    cols = st.columns(3)
    for index, entity in enumerate(loaded_entities()):
        cols[index % 3].download_button(
            f"{ENTITY_LABELS[entity]} CSV",
            data=rows_to_csv(entity_rows(entity) or [], st.session_state[f"headers_{entity}"]).encode("utf-8"),
            file_name=clean_csv_name(entity),
            mime="text/csv",
            width="stretch",
            key=f"download_{entity}",
        )
    cols = st.columns(3)
    cols[0].download_button(
        "Rules config",
        data=json_dumps(rules_config).encode("utf-8"),
        file_name=RULES_CONFIG_NAME,
        mime="application/json",
        width="stretch",
    )
    cols[1].download_button(
        "Prioritization config",
        data=json_dumps(export).encode("utf-8"),
        file_name=PRIORITIZATION_CONFIG_NAME,
        mime="application/json",
        width="stretch",
    )
    cols[2].download_button(
        "Prioritization workbook",
        data=workbook_bytes(sheets),
        file_name="prioritization.xlsx",
        mime="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        width="stretch",
    )
    with st.expander("Rules config preview"):
        st.code(json.dumps(rules_config, indent=2), language="json")


def set_visuals() -> None:
    st.set_page_config(page_title="data-alchemist", page_icon="⚗️", layout="wide", initial_sidebar_state="collapsed")
    st.markdown(
        """
        <style>
        :root {
            --da-bg: #ffffff;
            --da-bg-secondary: #f7f9fc;
            --da-surface: rgba(255, 255, 255, 0.96);
            --da-text: #22262e;
            --da-text-muted: #7a8194;
            --da-border: #e3e7ef;
            --da-primary: #1565c0;
            --da-primary-strong: #0d47a1;
        }
        @media (prefers-color-scheme: dark) {
            :root {
                --da-bg: #16181d;
                --da-bg-secondary: #1f232b;
                --da-surface: rgba(34, 38, 46, 0.96);
                --da-text: #f1f3f7;
                --da-text-muted: #a9b0c0;
                --da-border: rgba(70, 76, 90, 0.8);
                --da-primary: #64a0f0;
                --da-primary-strong: #1e88e5;
            }
        }
        .stApp {
            background: linear-gradient(180deg, var(--da-bg) 0%, var(--da-bg-secondary) 100%);
            color: var(--da-text);
        }
        .block-container {
            padding-top: 2rem;
            max-width: 1200px;
        }
        [data-testid="stDecoration"], [data-testid="stStatusWidget"] {
            display: none !important;
        }
        .stButton > button, .stDownloadButton > button {
            border-radius: 999px !important;
            background: linear-gradient(135deg, var(--da-primary) 0%, var(--da-primary-strong) 100%) !important;
            color: #ffffff !important;
            font-weight: 600 !important;
        }
        [data-testid="stMetric"] {
            background: var(--da-surface);
            border: 1px solid var(--da-border);
            border-radius: 18px;
            padding: 0.85rem 1rem;
        }
        .stExpander, .stAlert, .stDataFrame {
            border-radius: 18px;
            border: 1px solid var(--da-border) !important;
            overflow: hidden;
        }
        </style>
        """,
        unsafe_allow_html=True,
    )


def main() -> None:
    set_visuals()
    ensure_state()

    st.title("data-alchemist")
    st.caption("Load client, worker and task sheets, fix what is broken, write business rules and set priorities.")

    with st.container():
        uploads = st.file_uploader(
            "Upload files",
            type=[ext.lstrip(".") for ext in sorted(ALL_FORMATS)],
            accept_multiple_files=True,
            key="uploads_input",
        )
        st.text_area(
            "Public file URLs",
            key="public_url_input",
            height=80,
            placeholder="One public file URL per line. GitHub, Dropbox, Google Drive and Sheets, OneDrive and Box share links work.",
        )
        st.caption(f"Public URLs are downloaded over the network; files above {MAX_REMOTE_FILE_MB} MB are rejected.")
        override = st.selectbox("Entity kind", ["auto", *ENTITY_TYPES], key="entity_override")
        if st.button("Load", type="primary", width="stretch"):
            ingest_sources(uploads, st.session_state["public_url_input"], None if override == "auto" else override)

    render_load_messages()
    render_data_grids()
    if not loaded_entities():
        return

    render_validation()
    render_corrections()
    render_search()
    render_rules()
    profile, comparisons = render_prioritization()
    render_export(profile, comparisons)


if __name__ == "__main__":
    main()
