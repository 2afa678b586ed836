"""Extraction of structured JSON from free-text provider responses.

Providers do not reliably return strict JSON. Extraction tries, in order:

1. the contents of a fenced code block (```json ... ``` or bare ```),
2. the first balanced ``{...}`` object in the text,

keeping only objects that carry ``required_key`` when one is given. Both
candidates are cleaned of ``//`` and ``/* */`` comments and trailing commas
before decoding. When nothing decodes a ``StructuredResponseError`` is
raised.
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any, Callable, Dict, Iterable, Iterator, List, Optional

from .exceptions import StructuredResponseError

logger = logging.getLogger(__name__)

FENCED_BLOCK_RE = re.compile(r"```[a-zA-Z]*\s*(.*?)```", re.DOTALL)


def clean_json(text: str) -> str:
    """Strip comments and trailing commas outside of string literals."""
    out: List[str] = []
    i = 0
    n = len(text)
    in_string = False
    while i < n:
        ch = text[i]
        if in_string:
            out.append(ch)
            if ch == "\\" and i + 1 < n:
                out.append(text[i + 1])
                i += 2
                continue
            if ch == '"':
                in_string = False
            i += 1
            continue
        if ch == '"':
            in_string = True
            out.append(ch)
            i += 1
        elif text.startswith("//", i):
            end = text.find("\n", i)
            i = n if end == -1 else end
        elif text.startswith("/*", i):
            end = text.find("*/", i + 2)
            i = n if end == -1 else end + 2
        else:
            out.append(ch)
            i += 1
    return _strip_trailing_commas("".join(out))


def _strip_trailing_commas(text: str) -> str:
    out: List[str] = []
    in_string = False
    i = 0
    n = len(text)
    while i < n:
        ch = text[i]
        if in_string:
            out.append(ch)
            if ch == "\\" and i + 1 < n:
                out.append(text[i + 1])
                i += 2
                continue
            if ch == '"':
                in_string = False
        elif ch == '"':
            in_string = True
            out.append(ch)
        elif ch == ",":
            j = i + 1
            while j < n and text[j].isspace():
                j += 1
            if j >= n or text[j] not in "}]":
                out.append(ch)
        else:
            out.append(ch)
        i += 1
    return "".join(out)


def iter_balanced_objects(text: str) -> Iterator[str]:
    """Yield every balanced ``{...}`` substring, outermost first."""
    for start, ch in enumerate(text):
        if ch != "{":
            continue
        end = _match_brace(text, start)
        if end is not None:
            yield text[start : end + 1]


def _match_brace(text: str, start: int) -> Optional[int]:
    depth = 0
    in_string = False
    escaped = False
    for i in range(start, len(text)):
        ch = text[i]
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = True
        elif ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                return i
    return None


def _decode(candidate: str) -> Optional[Any]:
    try:
        return json.loads(clean_json(candidate))
    except json.JSONDecodeError:
        return None


def _from_fenced_block(content: str, accept: Callable[[Any], bool]) -> Optional[Dict]:
    for match in FENCED_BLOCK_RE.finditer(content):
        block = match.group(1).strip()
        data = _decode(block)
        if accept(data):
            return data
        for candidate in iter_balanced_objects(block):
            data = _decode(candidate)
            if accept(data):
                return data
    return None


def _from_balanced_object(content: str, accept: Callable[[Any], bool]) -> Optional[Dict]:
    for candidate in iter_balanced_objects(content):
        data = _decode(candidate)
        if accept(data):
            return data
    return None


EXTRACTION_STRATEGIES = (
    ("fenced_block", _from_fenced_block),
    ("balanced_object", _from_balanced_object),
)


def parse_structured_response(
    content: str, required_key: Optional[str] = None
) -> Dict[str, Any]:
    """Return the first JSON object found in ``content``.

    Raises:
        StructuredResponseError: If no strategy yields a JSON object
            (containing ``required_key`` when given).
    """

    def accept(data: Any) -> bool:
        return isinstance(data, dict) and (required_key is None or required_key in data)

    for name, strategy in EXTRACTION_STRATEGIES:
        data = strategy(content or "", accept)
        if data is not None:
            logger.debug(f"Structured response extracted via {name}")
            return data

    wanted = f" containing '{required_key}'" if required_key else ""
    raise StructuredResponseError(f"No JSON object{wanted} found in response")


def _label_patterns(field: str) -> List[re.Pattern]:
    names = {re.escape(field), re.escape(field.replace("_", " "))}
    label = "(?:" + "|".join(sorted(names)) + ")"
    return [
        re.compile(rf'"{label}"\s*:\s*"((?:[^"\\]|\\.)*)"', re.IGNORECASE),
        re.compile(rf"\*\*{label}:?\*\*:?\s*(.+)$", re.IGNORECASE | re.MULTILINE),
        re.compile(
            rf"^\s*(?:[-*]\s*)?{label}\s*[:=]\s*(.+)$", re.IGNORECASE | re.MULTILINE
        ),
    ]


def extract_labeled_fields(content: str, fields: Iterable[str]) -> Dict[str, str]:
    """Scrape ``field: value`` style lines for each requested field."""
    found: Dict[str, str] = {}
    for field in fields:
        for pattern in _label_patterns(field):
            match = pattern.search(content or "")
            if not match:
                continue
            value = match.group(1).strip().strip(",").strip().strip('"').strip()
            if value:
                found[field] = value
                break
    return found


def extract_structured_fields(content: str, fields: Iterable[str]) -> Dict[str, Any]:
    """Extract ``fields`` from a response, preferring JSON over scraped labels.

    A decoded JSON object missing some of ``fields`` is patched from labeled
    lines. Returns an empty dict when nothing could be extracted.
    """
    fields = list(fields)
    try:
        data = parse_structured_response(content)
    except StructuredResponseError:
        logger.warning("No JSON in structured response, scraping labeled fields")
        data = {}

    missing = [f for f in fields if f not in data]
    if missing:
        data.update(extract_labeled_fields(content, missing))
    return data
