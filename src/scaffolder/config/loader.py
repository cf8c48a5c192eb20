from __future__ import annotations

import json
import logging
from pathlib import PurePosixPath
from urllib.parse import urlparse

import yaml

from scaffolder.config.fetch import fetch_text
from scaffolder.config.merge import merge_documents
from scaffolder.config.parse import parse_document
from scaffolder.config.schema import ConfigDocument
from scaffolder.util.errors import CircularDependencyError, ConfigurationParseError
from scaffolder.util.refs import is_url, resolve_ref

logger = logging.getLogger(__name__)

_YAML_SUFFIXES = {".yaml", ".yml"}


def _suffix(ref: str) -> str:
    path = urlparse(ref).path if is_url(ref) else ref
    return PurePosixPath(path).suffix.lower()


def parse_text(text: str, ref: str) -> object:
    if _suffix(ref) in _YAML_SUFFIXES:
        try:
            return yaml.safe_load(text)
        except yaml.YAMLError as exc:
            raise ConfigurationParseError(ref, str(exc)) from exc
    try:
        return json.loads(text)
    except json.JSONDecodeError as exc:
        raise ConfigurationParseError(ref, str(exc)) from exc


def load_document(ref: str, *, base: str | None = None) -> ConfigDocument:
    resolved = resolve_ref(ref, base)
    text = fetch_text(resolved)
    document = parse_document(parse_text(text, resolved), source=resolved)
    logger.debug(
        "loaded %s (%d tasks, %d variables, %d prompts)",
        resolved,
        len(document.tasks),
        len(document.variables),
        len(document.prompts),
    )
    return document


def resolve_chain(ref: str) -> list[ConfigDocument]:
    """Load ``ref`` and everything it extends, bases first.

    Each document is loaded once even when several documents extend it.
    """
    ordered: list[ConfigDocument] = []
    visited: set[str] = set()
    stack: list[str] = []

    def _visit(current: str, base: str | None) -> None:
        resolved = resolve_ref(current, base)
        if resolved in stack:
            cycle = stack[stack.index(resolved) :] + [resolved]
            raise CircularDependencyError(cycle)
        if resolved in visited:
            return
        stack.append(resolved)
        document = load_document(resolved)
        for parent in document.extends:
            _visit(parent, resolved)
        stack.pop()
        visited.add(resolved)
        ordered.append(document)

    _visit(ref, None)
    return ordered


def load_configuration(ref: str) -> ConfigDocument:
    return merge_documents(resolve_chain(ref))
