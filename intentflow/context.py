"""Placeholder resolution against the accumulated execution context."""

from __future__ import annotations

import json
import logging
import re
from typing import Any, List, Mapping, Tuple

logger = logging.getLogger(__name__)

PLACEHOLDER_RE = re.compile(r"\{\{\s*([^{}]+?)\s*\}\}")
SEGMENT_RE = re.compile(r"""\[\s*(?:'([^']*)'|"([^"]*)"|([^\]]*?))\s*\]|([^.\[\]]+)""")

_MISSING = object()


def split_path(path: str) -> List[str]:
    """Split ``step_3.result.items[0]['name']`` into path segments."""
    segments: List[str] = []
    for match in SEGMENT_RE.finditer(path.strip()):
        segment = next(g for g in match.groups() if g is not None)
        segments.append(segment.strip())
    return segments


def find_unresolved(value: Any) -> List[str]:
    """Return every placeholder still present in ``value``."""
    if isinstance(value, str):
        return [m.group(0) for m in PLACEHOLDER_RE.finditer(value)]
    if isinstance(value, Mapping):
        found: List[str] = []
        for item in value.values():
            found.extend(find_unresolved(item))
        return found
    if isinstance(value, (list, tuple)):
        found = []
        for item in value:
            found.extend(find_unresolved(item))
        return found
    return []


def has_unresolved(value: Any) -> bool:
    return bool(find_unresolved(value))


def to_text(value: Any) -> str:
    """String form of a value embedded inside a larger string."""
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return str(value)
    return json.dumps(value, ensure_ascii=False, default=str)


class ContextResolver:
    """Substitute ``{{path}}`` placeholders with values from a context.

    A placeholder whose path cannot be walked is left untouched, so callers
    can detect it with ``find_unresolved`` rather than receive an empty
    value. ``{{a|b|"literal"}}`` tries each candidate in turn and keeps the
    first one that resolves to a non-empty value.
    """

    def resolve(self, value: Any, context: Mapping[str, Any]) -> Any:
        if isinstance(value, str):
            return self._resolve_string(value, context)
        if isinstance(value, Mapping):
            return {key: self.resolve(item, context) for key, item in value.items()}
        if isinstance(value, list):
            return [self.resolve(item, context) for item in value]
        if isinstance(value, tuple):
            return tuple(self.resolve(item, context) for item in value)
        return value

    def lookup(self, path: str, context: Mapping[str, Any]) -> Tuple[bool, Any]:
        """Resolve a placeholder expression, returning ``(found, value)``."""
        candidates = [c.strip() for c in path.split("|")]
        for candidate in candidates:
            if _is_literal(candidate):
                return True, candidate[1:-1]
            value = self._walk(split_path(candidate), context)
            if value is _MISSING:
                continue
            if len(candidates) > 1 and value in ("", [], {}):
                continue
            return True, value
        return False, None

    def _resolve_string(self, text: str, context: Mapping[str, Any]) -> Any:
        whole = PLACEHOLDER_RE.fullmatch(text.strip())
        if whole:
            found, value = self.lookup(whole.group(1), context)
            if found:
                return value
            logger.debug(f"Unresolved placeholder {whole.group(0)}")
            return text

        def substitute(match: re.Match) -> str:
            found, value = self.lookup(match.group(1), context)
            if not found:
                logger.debug(f"Unresolved placeholder {match.group(0)}")
                return match.group(0)
            return to_text(value)

        return PLACEHOLDER_RE.sub(substitute, text)

    @staticmethod
    def _walk(segments: List[str], context: Mapping[str, Any]) -> Any:
        if not segments:
            return _MISSING
        current: Any = context
        for segment in segments:
            if isinstance(current, Mapping):
                if segment not in current:
                    return _MISSING
                current = current[segment]
            elif isinstance(current, (list, tuple)):
                try:
                    current = current[int(segment)]
                except (ValueError, IndexError):
                    return _MISSING
            else:
                return _MISSING
            if current is None:
                return _MISSING
        return current


def _is_literal(candidate: str) -> bool:
    return len(candidate) >= 2 and candidate[0] == candidate[-1] and candidate[0] in "'\""
