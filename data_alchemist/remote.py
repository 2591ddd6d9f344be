"""Public URL downloads for the CLI and the web UI."""

from __future__ import annotations

import io
import re
import zipfile
from pathlib import Path
from typing import Any
from urllib.parse import parse_qs, urlencode, urlparse, urlunparse

import requests

from data_alchemist.loader import ALL_FORMATS, load_bytes

MAX_REMOTE_FILE_MB = 100
MAX_REMOTE_FILE_BYTES = MAX_REMOTE_FILE_MB * 1024 * 1024
REQUEST_TIMEOUT_SECONDS = 60

CONTENT_TYPE_EXTENSIONS = {
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet": ".xlsx",
    "application/vnd.ms-excel.sheet.macroenabled.12": ".xlsm",
    "text/csv": ".csv",
    "text/tab-separated-values": ".tsv",
}

FILENAME_RE = re.compile(r"filename\*=UTF-8''([^;]+)|filename=\"([^\"]+)\"|filename=([^;]+)", re.I)


def is_remote_source(value: str) -> bool:
    return urlparse(value).scheme in ("http", "https")


def normalize_public_url(raw_url: str) -> str:
    """Rewrite share links from common hosts into direct-download links."""
    parsed = urlparse(raw_url.strip())
    if not parsed.scheme:
        raise ValueError("URL must start with http:// or https://")

    host = parsed.netloc.lower()
    path = parsed.path
    query = parse_qs(parsed.query, keep_blank_values=True)

    if host == "github.com" and "/blob/" in path:
        owner_repo, blob_path = path.lstrip("/").split("/blob/", 1)
        owner, repo = owner_repo.split("/", 1)
        branch, file_path = blob_path.split("/", 1)
        return f"https://raw.githubusercontent.com/{owner}/{repo}/{branch}/{file_path}"

    if "dropbox.com" in host:
        query["dl"] = ["1"]
        return urlunparse(parsed._replace(query=urlencode(query, doseq=True)))

    if "box.com" in host:
        query["download"] = ["1"]
        return urlunparse(parsed._replace(query=urlencode(query, doseq=True)))

    if host in {"drive.google.com", "docs.google.com"}:
        sheet_match = re.search(r"/spreadsheets/d/([^/]+)", path)
        if sheet_match:
            gid = query.get("gid", ["0"])[0]
            return f"https://docs.google.com/spreadsheets/d/{sheet_match.group(1)}/export?format=csv&gid={gid}"
        match = re.search(r"/file/d/([^/]+)", path)
        if match:
            return f"https://drive.google.com/uc?export=download&id={match.group(1)}"
        if "id" in query:
            return f"https://drive.google.com/uc?export=download&id={query['id'][0]}"

    if host.endswith("1drv.ms") or "onedrive.live.com" in host:
        query["download"] = ["1"]
        return urlunparse(parsed._replace(query=urlencode(query, doseq=True)))

    return raw_url.strip()


def remote_filename(raw_url: str, response: requests.Response) -> str:
    match = FILENAME_RE.search(response.headers.get("content-disposition", ""))
    if match:
        for group in match.groups():
            if group:
                return Path(group.strip().strip('"')).name
    redirected = response.url or raw_url
    return Path(urlparse(redirected).path).name or Path(urlparse(raw_url).path).name or "downloaded_file"


def infer_extension(raw_url: str, response: requests.Response, filename: str, content: bytes) -> str:
    ext = Path(filename).suffix.lower()
    if ext in ALL_FORMATS:
        return ext

    content_type = response.headers.get("content-type", "").split(";")[0].strip().lower()
    if content_type in CONTENT_TYPE_EXTENSIONS:
        return CONTENT_TYPE_EXTENSIONS[content_type]

    parsed = urlparse(raw_url)
    if "docs.google.com" in parsed.netloc.lower() and "/spreadsheets/" in parsed.path:
        return ".csv"

    if content.startswith(b"PK"):
        try:
            with zipfile.ZipFile(io.BytesIO(content)) as zf:
                names = set(zf.namelist())
        except zipfile.BadZipFile:
            names = set()
        if "xl/vbaProject.bin" in names:
            return ".xlsm"
        if "xl/workbook.xml" in names:
            return ".xlsx"

    lines = [line.strip() for line in content[:8192].decode("utf-8", errors="replace").splitlines() if line.strip()]
    if not lines:
        return ext
    head = "\n".join(lines[:5])
    if "\t" in head:
        return ".tsv"
    if any(delim in head for delim in (",", ";", "|")):
        return ".csv"
    return ext


def _download(url: str) -> tuple[requests.Response, bytes]:
    response = requests.get(url, timeout=REQUEST_TIMEOUT_SECONDS, allow_redirects=True, stream=True)
    try:
        response.raise_for_status()
        content_length = response.headers.get("Content-Length")
        if content_length and content_length.isdigit() and int(content_length) > MAX_REMOTE_FILE_BYTES:
            raise ValueError(f"Remote file is larger than {MAX_REMOTE_FILE_MB} MB.")

        chunks: list[bytes] = []
        downloaded = 0
        for chunk in response.iter_content(chunk_size=1024 * 1024):
            if not chunk:
                continue
            downloaded += len(chunk)
            if downloaded > MAX_REMOTE_FILE_BYTES:
                raise ValueError(f"Remote file is larger than {MAX_REMOTE_FILE_MB} MB.")
            chunks.append(chunk)
    finally:
        response.close()
    return response, b"".join(chunks)


def fetch_remote_source(raw_url: str) -> dict[str, Any]:
    """Download a public file. Returns name, ext, bytes and the resolved url."""
    url = normalize_public_url(raw_url)
    response, content = _download(url)

    filename = remote_filename(url, response)
    ext = infer_extension(url, response, filename, content)
    if ext not in ALL_FORMATS:
        raise ValueError(f"Unsupported remote file type: {ext or '[missing extension]'}")
    if Path(filename).suffix.lower() != ext:
        filename = f"{Path(filename).stem or 'downloaded_file'}{ext}"

    return {"name": filename, "ext": ext, "bytes": content, "url": url}


def load_remote(raw_url: str, sheet_name: str | None = None) -> dict[str, Any]:
    source = fetch_remote_source(raw_url)
    result = load_bytes(source["bytes"], source["name"], sheet_name)
    result["source_url"] = source["url"]
    return result
