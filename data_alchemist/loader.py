"""
loader.py: file loader for data-alchemist

Supports: .csv .tsv .txt .xlsx .xlsm

Public API:
    result  = load_file("path/to/clients.csv")
    records = result["records"]

Result dict keys:
    records:           list of row dicts; blank cells are None
    headers:           column names in file order
    dataframe:         pandas DataFrame (all values as str)
    detected_format:   "csv", "xlsx", ...
    detected_encoding: encoding name for text files; None for workbooks
    encoding_info:     detected, confidence, is_utf8, suspicious_chars
    delimiter:         delimiter char for text files; None otherwise
    sheet_name:        active sheet for workbooks; None otherwise
    sheet_names:       all sheets for workbooks; None otherwise
    warnings:          list of warning strings
"""

from __future__ import annotations

import csv
import io
import zipfile
from collections import Counter
from pathlib import Path
from typing import Any

import chardet
import pandas as pd

TEXT_FORMATS = {".csv", ".tsv", ".txt"}
EXCEL_FORMATS = {".xlsx", ".xlsm"}
ALL_FORMATS = TEXT_FORMATS | EXCEL_FORMATS


# ══════════════════════════════════════════════════════════════════════════════
# ENCODING DETECTION
# ══════════════════════════════════════════════════════════════════════════════

def _detect_encoding_info(raw: bytes) -> dict[str, Any]:
    result = chardet.detect(raw)
    detected = result.get("encoding") or "unknown"
    confidence = round(result.get("confidence") or 0.0, 2)
    is_utf8 = detected.upper().replace("-", "") in ("UTF8", "ASCII")

    suspicious: list[str] = []
    if not is_utf8:
        for row_idx, line in enumerate(raw.split(b"\n")[:100], start=1):
            try:
                line.decode("utf-8")
            except UnicodeDecodeError as exc:
                suspicious.append(f"row {row_idx}: byte {line[exc.start:exc.end]!r} at position {exc.start}")

    return {
        "detected": detected,
        "confidence": confidence,
        "is_utf8": is_utf8,
        "suspicious_chars": suspicious[:10],
    }


def _read_text_safely(raw: bytes, preferred_encoding: str) -> str:
    """
    Decode raw bytes line by line: UTF-8, then the detected encoding, then
    latin-1, then CP1252 with replacement. Null bytes are dropped.
    """
    if raw.startswith(b"\xef\xbb\xbf"):
        raw = raw[3:]
    decoded_lines: list[str] = []
    for raw_line in raw.split(b"\n"):
        decoded: str | None = None
        for enc in ("utf-8", preferred_encoding, "latin-1"):
            if not enc or enc == "unknown":
                continue
            try:
                decoded = raw_line.decode(enc)
                break
            except (LookupError, UnicodeDecodeError):
                continue
        if decoded is None:
            decoded = raw_line.decode("cp1252", errors="replace")
        decoded_lines.append(decoded.replace("\x00", ""))
    return "\n".join(decoded_lines)


# ══════════════════════════════════════════════════════════════════════════════
# DELIMITER DETECTION
# ══════════════════════════════════════════════════════════════════════════════

def _detect_delimiter(text: str) -> str:
    """
    Infer the delimiter. csv.Sniffer first; otherwise score each candidate by
    column-count consistency and width.
    """
    sample_lines = [line for line in text.splitlines() if line.strip()][:50]
    sample = "\n".join(sample_lines[:25])

    if sample:
        try:
            return csv.Sniffer().sniff(sample, delimiters=",;\t|").delimiter
        except csv.Error:
            pass

    best_delim = ","
    best_score = float("-inf")
    for delim in (",", ";", "\t", "|"):
        rows = [
            row
            for row in csv.reader(io.StringIO("\n".join(sample_lines)), delimiter=delim)
            if any(cell.strip() for cell in row)
        ]
        if len(rows) < 2:
            continue
        widths = Counter(len(row) for row in rows)
        mode_width, mode_count = widths.most_common(1)[0]
        score = mode_width * 2.0 + (mode_count / len(rows)) * mode_width
        if len(rows[0]) == mode_width:
            score += 1.0
        if mode_width == 1:
            score -= 10.0
        if score > best_score:
            best_score = score
            best_delim = delim
    return best_delim


# ══════════════════════════════════════════════════════════════════════════════
# FORMAT LOADERS
# ══════════════════════════════════════════════════════════════════════════════

def records_from_dataframe(df: pd.DataFrame) -> list[dict[str, Any]]:
    """Row dicts with NaN and empty strings turned into None."""
    cleaned = df.astype(object).where(pd.notna(df), None)
    records = cleaned.to_dict(orient="records")
    for record in records:
        for key, value in record.items():
            if isinstance(value, str) and not value.strip():
                record[key] = None
    return records


def _result(df: pd.DataFrame, detected_format: str, **extra: Any) -> dict[str, Any]:
    df.columns = [str(column).strip() for column in df.columns]
    result = {
        "records": records_from_dataframe(df),
        "headers": list(df.columns),
        "dataframe": df,
        "detected_format": detected_format,
        "detected_encoding": None,
        "encoding_info": None,
        "delimiter": None,
        "sheet_name": None,
        "sheet_names": None,
        "warnings": [],
    }
    result.update(extra)
    return result


def load_text(raw: bytes, suffix: str) -> dict[str, Any]:
    """Load delimited text already read into memory."""
    enc_info = _detect_encoding_info(raw)
    enc = enc_info["detected"] if enc_info["detected"] != "unknown" else "utf-8"
    text = _read_text_safely(raw, enc)
    if not text.strip():
        raise ValueError(f"{suffix} file is empty")

    delimiter = "\t" if suffix == ".tsv" else _detect_delimiter(text)
    sep = r"\|" if delimiter == "|" else delimiter
    try:
        df = pd.read_csv(
            io.StringIO(text),
            dtype=str,
            on_bad_lines="skip",
            sep=sep,
            engine="python",
            skip_blank_lines=True,
        )
    except (pd.errors.ParserError, pd.errors.EmptyDataError) as exc:
        raise ValueError(f"Could not parse {suffix} file: {exc}") from exc

    return _result(
        df,
        suffix.lstrip("."),
        detected_encoding=enc,
        encoding_info=enc_info,
        delimiter=delimiter,
    )


def load_workbook(source: Path | io.BytesIO, suffix: str, sheet_name: str | None = None) -> dict[str, Any]:
    """Load one sheet of a workbook; without sheet_name the first sheet is used."""
    warnings: list[str] = []
    try:
        with pd.ExcelFile(source, engine="openpyxl") as xf:
            all_sheets = list(xf.sheet_names)
            if sheet_name is not None and sheet_name not in all_sheets:
                raise ValueError(f"Sheet '{sheet_name}' not found. Available: {all_sheets}")
            chosen = sheet_name if sheet_name is not None else all_sheets[0]
            df = pd.read_excel(xf, sheet_name=chosen, dtype=str)
    except (OSError, KeyError, IndexError, zipfile.BadZipFile) as exc:
        raise ValueError(f"Could not open workbook: {exc}") from exc

    if len(all_sheets) > 1 and sheet_name is None:
        others = [name for name in all_sheets if name != chosen]
        warnings.append(f"Multiple sheets found ({len(all_sheets)} total); used '{chosen}'. Ignored: {others}")

    return _result(
        df,
        suffix.lstrip("."),
        sheet_name=chosen,
        sheet_names=all_sheets,
        warnings=warnings,
    )


# ══════════════════════════════════════════════════════════════════════════════
# PUBLIC API
# ══════════════════════════════════════════════════════════════════════════════

def _check_suffix(suffix: str) -> None:
    if suffix not in ALL_FORMATS:
        supported = ", ".join(sorted(ALL_FORMATS))
        raise ValueError(f"Unsupported format '{suffix}'. Supported: {supported}")


def load_bytes(raw: bytes, filename: str, sheet_name: str | None = None) -> dict[str, Any]:
    """Load an upload or download held in memory; the filename decides the format."""
    suffix = Path(filename).suffix.lower()
    _check_suffix(suffix)
    if suffix in TEXT_FORMATS:
        return load_text(raw, suffix)
    return load_workbook(io.BytesIO(raw), suffix, sheet_name)


def load_file(path: str | Path, sheet_name: str | None = None) -> dict[str, Any]:
    """
    Load a supported file.

    Raises:
        FileNotFoundError  if the file does not exist.
        ValueError         if the format is unsupported or unreadable.
    """
    path = Path(path)
    suffix = path.suffix.lower()
    if not path.exists():
        raise FileNotFoundError(f"File not found: {path}")
    _check_suffix(suffix)
    if suffix in TEXT_FORMATS:
        return load_text(path.read_bytes(), suffix)
    return load_workbook(path, suffix, sheet_name)
