"""Download public spreadsheet links so the loader can read them locally."""

from __future__ import annotations

import io
import logging
import re
import zipfile
from pathlib import Path
from urllib.parse import parse_qs, urlencode, urlparse, urlunparse

import requests

logger = logging.getLogger(__name__)

TEXT_EXTS = {".csv", ".tsv", ".txt"}
WORKBOOK_EXTS = {".xlsx", ".xlsm", ".xls", ".ods"}
SUPPORTED_EXTS = TEXT_EXTS | WORKBOOK_EXTS
MAX_REMOTE_FILE_MB = 100
MAX_REMOTE_FILE_BYTES = MAX_REMOTE_FILE_MB * 1024 * 1024
REQUEST_TIMEOUT = 60

CONTENT_TYPE_EXTS = {
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet": ".xlsx",
    "application/vnd.ms-excel.sheet.macroenabled.12": ".xlsm",
    "application/vnd.ms-excel": ".xls",
    "application/vnd.oasis.opendocument.spreadsheet": ".ods",
    "text/csv": ".csv",
    "text/tab-separated-values": ".tsv",
}


def is_remote(source: str | Path) -> bool:
    return isinstance(source, str) and source.strip().lower().startswith(("http://", "https://"))


def normalize_public_url(raw_url: str) -> str:
    """Rewrite share links into direct-download links.

    Google Sheets links keep their ``gid`` so the exported workbook opens on
    the shared tab.
    """
    parsed = urlparse(raw_url.strip())
    if parsed.scheme not in {"http", "https"}:
        raise ValueError("URL must start with http:// or https://")

    host = parsed.netloc.lower()
    path = parsed.path
    query = parse_qs(parsed.query, keep_blank_values=True)

    if host in {"drive.google.com", "docs.google.com"}:
        sheet_match = re.search(r"/spreadsheets/d/([^/]+)", path)
        if sheet_match:
            gid = query.get("gid", [""])[0]
            if not gid and parsed.fragment.startswith("gid="):
                gid = parsed.fragment.split("=", 1)[1]
            return (
                f"https://docs.google.com/spreadsheets/d/{sheet_match.group(1)}/export"
                f"?format=xlsx&gid={gid or '0'}"
            )
        file_match = re.search(r"/file/d/([^/]+)", path)
        if file_match:
            return f"https://drive.google.com/uc?export=download&id={file_match.group(1)}"
        if "id" in query:
            return f"https://drive.google.com/uc?export=download&id={query['id'][0]}"

    if host == "github.com" and "/blob/" in path:
        owner_repo, blob_path = path.lstrip("/").split("/blob/", 1)
        return f"https://raw.githubusercontent.com/{owner_repo}/{blob_path}"

    if "dropbox.com" in host:
        query["dl"] = ["1"]
        return urlunparse(parsed._replace(query=urlencode(query, doseq=True)))

    return raw_url.strip()


def remote_filename(raw_url: str, response: requests.Response) -> str:
    disposition = response.headers.get("content-disposition", "")
    match = re.search(r"filename\*=UTF-8''([^;]+)|filename=\"([^\"]+)\"|filename=([^;]+)", disposition, re.I)
    if match:
        for group in match.groups():
            if group:
                return Path(group.strip().strip('"')).name
    redirected = response.url or raw_url
    return Path(urlparse(redirected).path).name or "downloaded_file"


def infer_extension(raw_url: str, response: requests.Response, filename: str, content: bytes) -> str:
    ext = Path(filename).suffix.lower()
    if ext in SUPPORTED_EXTS:
        return ext

    content_type = response.headers.get("content-type", "").split(";")[0].strip().lower()
    if content_type in CONTENT_TYPE_EXTS:
        return CONTENT_TYPE_EXTS[content_type]

    parsed = urlparse(raw_url)
    if "docs.google.com" in parsed.netloc.lower() and "/spreadsheets/" in parsed.path:
        return ".xlsx"

    if content.startswith(b"PK"):
        try:
            with zipfile.ZipFile(io.BytesIO(content)) as archive:
                names = set(archive.namelist())
        except zipfile.BadZipFile:
            names = set()
        if "mimetype" in names:
            return ".ods"
        if "xl/vbaProject.bin" in names:
            return ".xlsm"
        if "xl/workbook.xml" in names:
            return ".xlsx"

    if content[:8] == b"\xd0\xcf\x11\xe0\xa1\xb1\x1a\xe1":
        return ".xls"

    sample = content[:8192].decode("utf-8", errors="replace")
    if "\t" in sample:
        return ".tsv"
    return ".csv"


def fetch_remote_source(raw_url: str, folder: Path) -> Path:
    """Download `raw_url` into `folder` and return the local path."""
    url = normalize_public_url(raw_url)
    logger.debug("Fetching %s", url)
    response = requests.get(url, timeout=REQUEST_TIMEOUT, allow_redirects=True, stream=True)
    try:
        response.raise_for_status()
        declared = response.headers.get("Content-Length")
        if declared and declared.isdigit() and int(declared) > MAX_REMOTE_FILE_BYTES:
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
        content = b"".join(chunks)
    finally:
        response.close()

    filename = remote_filename(raw_url, response)
    ext = infer_extension(raw_url, response, filename, content)
    if not Path(filename).suffix:
        filename = f"{filename}{ext}"
    elif Path(filename).suffix.lower() != ext:
        filename = f"{Path(filename).stem}{ext}"

    target = Path(folder) / filename
    target.write_bytes(content)
    logger.info("Downloaded %s (%d bytes) to %s", url, len(content), target)
    return target
