from __future__ import annotations

from pathlib import Path
from urllib.parse import urljoin, urlparse

_URL_SCHEMES = {"http", "https"}


def is_url(ref: str) -> bool:
    return urlparse(ref).scheme in _URL_SCHEMES


def resolve_ref(ref: str, base: str | None = None) -> str:
    """Resolve ``ref`` against the document that referenced it.

    ``base`` is the referencing document's own reference (file path or URL).
    Absolute paths and URLs are returned unchanged.
    """
    if is_url(ref):
        return ref
    if base is not None and is_url(base):
        return urljoin(base, ref)
    path = Path(ref).expanduser()
    if not path.is_absolute() and base is not None:
        path = Path(base).parent / path
    return str(path.resolve())


def resolve_file_path(file: str, source_url: str | None) -> str:
    return resolve_ref(file, source_url)
