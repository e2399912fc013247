"""URL helpers: prod/migrated pairs, artifact file names and redirect paths."""

from __future__ import annotations

import json
import re
from pathlib import Path
from urllib.parse import urlparse

from screenshot_comparator.errors import InputError
from screenshot_comparator.models.comparison import UrlPair

_ILLEGAL_CHARS = re.compile(r'[<>:"/\\|?*\x00]')


def encode_url_to_filename(text: str) -> str:
    """Percent-encode characters that are illegal in file names (lowercase hex, unpadded)."""
    return _ILLEGAL_CHARS.sub(lambda m: f"%{ord(m.group(0)):x}", text)


def get_file_name(url: str, prod_base_url: str, migrated_base_url: str) -> str:
    """Derive the artifact folder name shared by both sides of a URL pair."""
    url = url.replace(migrated_base_url, "", 1)
    url = url.replace(prod_base_url, "", 1)
    if url.startswith("/"):
        url = url[1:]
    return encode_url_to_filename(url) or "index"


def resolved_path(url: str) -> str:
    """Path, query and fragment of a URL; the origin is ignored."""
    parsed = urlparse(url)
    path = parsed.path or "/"
    if parsed.query:
        path += "?" + parsed.query
    if parsed.fragment:
        path += "#" + parsed.fragment
    return path


def build_url_pairs(entries: list, prod_base_url: str, migrated_base_url: str) -> list[UrlPair]:
    """Turn relative paths or absolute prod URLs into prod/migrated URL pairs."""
    prod_base_url = prod_base_url.rstrip("/")
    migrated_base_url = migrated_base_url.rstrip("/")
    pairs = []
    seen = set()
    for entry in entries:
        if not isinstance(entry, str) or not entry.strip():
            raise InputError(f"Invalid URL entry: {entry!r}")
        entry = entry.strip()

        if entry.startswith(prod_base_url):
            relative = entry[len(prod_base_url):]
        elif entry.startswith(migrated_base_url):
            relative = entry[len(migrated_base_url):]
        elif urlparse(entry).scheme:
            raise InputError(f"URL does not belong to the production origin: {entry}")
        else:
            relative = entry

        if not relative.startswith("/"):
            relative = "/" + relative
        if relative in seen:
            continue
        seen.add(relative)
        pairs.append(UrlPair(
            relative_url=relative,
            prod_url=prod_base_url + relative,
            migrated_url=migrated_base_url + relative,
        ))
    return pairs


def load_url_list(path: str | Path) -> list[str]:
    """Read the JSON array of URLs to compare."""
    path = Path(path)
    if not path.exists():
        raise InputError(f"URL list not found: {path}")
    try:
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        raise InputError(f"URL list is not valid JSON: {path}: {e}") from e
    if not isinstance(data, list):
        raise InputError("URL list must contain a JSON array of URL values.")
    return data
