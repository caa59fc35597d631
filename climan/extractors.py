"""climan extractors - pull named values out of JSON responses."""

from __future__ import annotations

import functools
import json
from typing import Any

from jsonpath_ng.ext import parse

from climan.errors import ExtractionError, ResponseParseError

# ---------------------------------------------------------------------------
# Expression evaluation
# ---------------------------------------------------------------------------


@functools.lru_cache(maxsize=256)
def compile_expression(expression: str):
    """Parse a JSONPath expression. Raises on syntax errors."""
    return parse(expression)


def evaluate(expression: str, document: Any) -> tuple[bool, Any]:
    """Evaluate *expression* against a parsed JSON document.

    Returns (found, value). Only the first match is used; a JSON null
    match counts as found.
    """
    matches = compile_expression(expression).find(document)
    if not matches:
        return False, None
    return True, matches[0].value


def stringify(value: Any) -> str:
    """Turn a JSON value into a variable string.

    Strings are kept verbatim. Everything else is compact JSON, so numbers
    read ``42`` / ``1.5`` and booleans ``true`` / ``false``.
    """
    if isinstance(value, str):
        return value
    return json.dumps(value, separators=(",", ":"), ensure_ascii=False)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def parse_body(body: bytes | str | None) -> Any:
    """Parse a response body as JSON, raising ResponseParseError."""
    if isinstance(body, bytes):
        try:
            body = body.decode("utf-8")
        except UnicodeDecodeError as e:
            raise ResponseParseError(str(e)) from e
    if not body or not body.strip():
        raise ResponseParseError("empty body")
    try:
        return json.loads(body)
    except json.JSONDecodeError as e:
        raise ResponseParseError(str(e)) from e


def extract(rules: dict[str, str] | None, result) -> dict[str, str]:
    """Evaluate every extraction rule against a RequestResult body.

    Rules are independent of each other. The first rule without a match
    fails the request with ExtractionError.
    """
    if not rules:
        return {}

    document = parse_body(result.body)

    extracted: dict[str, str] = {}
    for name, expression in rules.items():
        found, value = evaluate(expression, document)
        if not found:
            raise ExtractionError(name, expression)
        extracted[name] = stringify(value)
    return extracted
