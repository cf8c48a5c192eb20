from __future__ import annotations

import logging
import urllib.error
import urllib.request
from pathlib import Path

from scaffolder.util.errors import ConfigurationNotFoundError
from scaffolder.util.refs import is_url

logger = logging.getLogger(__name__)

FETCH_TIMEOUT_SEC = 30.0


def fetch_url(url: str, timeout_sec: float = FETCH_TIMEOUT_SEC) -> str:
    request = urllib.request.Request(url, headers={"Accept": "application/json, text/plain, */*"})
    logger.debug("fetching %s", url)
    try:
        with urllib.request.urlopen(request, timeout=timeout_sec) as response:
            status = getattr(response, "status", 200)
            if not 200 <= status < 300:
                raise ConfigurationNotFoundError(url, f"HTTP {status}")
            return response.read().decode("utf-8")
    except urllib.error.HTTPError as exc:
        raise ConfigurationNotFoundError(url, f"HTTP {exc.code}") from exc
    except urllib.error.URLError as exc:
        raise ConfigurationNotFoundError(url, str(exc.reason)) from exc
    except (OSError, UnicodeError) as exc:
        raise ConfigurationNotFoundError(url, str(exc)) from exc


def read_file(path: str) -> str:
    try:
        return Path(path).read_text(encoding="utf-8")
    except FileNotFoundError as exc:
        raise ConfigurationNotFoundError(path) from exc
    except UnicodeError as exc:
        raise ConfigurationNotFoundError(path, "failed to decode as utf-8") from exc
    except OSError as exc:
        raise ConfigurationNotFoundError(path, exc.strerror or str(exc)) from exc


def fetch_text(ref: str) -> str:
    """Return the UTF-8 text behind a local path or http(s) URL."""
    if is_url(ref):
        return fetch_url(ref)
    return read_file(ref)
