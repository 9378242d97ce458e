"""Best-effort recovery of JSON objects from model output."""

import ast
import json
import re
from typing import Any

from pydantic import ValidationError

from quorra.errors import ReasoningParseError
from quorra.processes.models import ReasoningResult

_TRAILING_COMMA = re.compile(r",\s*([}\]])")
_JSON_LITERALS = {"true": "True", "false": "False", "null": "None"}
# quoted spans are matched first so words inside strings are left alone
_STRING_OR_LITERAL = re.compile(r"""('(?:\\.|[^'\\])*'|"(?:\\.|[^"\\])*")|\b(true|false|null)\b""")


def _candidates(payload: str) -> list[str]:
    """Substrings worth trying, most specific first."""
    candidates = [payload]

    if "```" in payload:
        for block in payload.split("```")[1::2]:
            block = block.strip()
            if block.startswith("json"):
                block = block[4:].strip()
            candidates.append(block)

    start = payload.find("{")
    end = payload.rfind("}")
    if start >= 0 and end > start:
        candidates.append(payload[start : end + 1])
    if start >= 0:
        # truncated output: everything from the first brace
        candidates.append(payload[start:])

    seen = set()
    unique = []
    for candidate in candidates:
        if candidate and candidate not in seen:
            seen.add(candidate)
            unique.append(candidate)
    return unique


def _close_open_brackets(text: str) -> str:
    """Append missing closing quotes and brackets."""
    stack = []
    in_string = False
    escaped = False
    for char in text:
        if in_string:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
        elif char == '"':
            in_string = True
        elif char in "{[":
            stack.append("}" if char == "{" else "]")
        elif char in "}]" and stack and stack[-1] == char:
            stack.pop()

    if in_string:
        text += '"'
    return text + "".join(reversed(stack))


def _fix(text: str) -> str:
    text = text.replace("“", '"').replace("”", '"')
    text = _close_open_brackets(text)
    return _TRAILING_COMMA.sub(r"\1", text)


def _try_json(text: str) -> tuple[bool, Any]:
    try:
        # strict=False accepts raw newlines inside strings
        return True, json.loads(text, strict=False)
    except json.JSONDecodeError:
        return False, None


def _try_python_literal(text: str) -> tuple[bool, Any]:
    converted = _STRING_OR_LITERAL.sub(lambda m: m.group(1) or _JSON_LITERALS[m.group(2)], text)
    try:
        return True, ast.literal_eval(converted)
    except (ValueError, SyntaxError, MemoryError, RecursionError):
        return False, None


def repair_json(text: str) -> Any:
    """
    Parse possibly malformed JSON produced by a model.

    Tries, per candidate substring: plain parsing, then parsing after
    closing unbalanced brackets and dropping trailing commas, then a
    Python-literal read for single-quoted output.

    Raises:
        ValueError: If nothing parses
    """
    payload = (text or "").strip()
    if not payload:
        raise ValueError("Empty response")

    for candidate in _candidates(payload):
        for attempt in (candidate, _fix(candidate)):
            ok, value = _try_json(attempt)
            if ok:
                return value
        ok, value = _try_python_literal(_fix(candidate))
        if ok:
            return value

    raise ValueError("No JSON value could be recovered")


def parse_reasoning(raw: str) -> ReasoningResult:
    """
    Repair and validate a Reasoning Step reply.

    Raises:
        ReasoningParseError: If the reply does not yield a valid result
    """
    try:
        value = repair_json(raw)
    except ValueError as e:
        raise ReasoningParseError(f"Reasoning output is not JSON: {e}", raw=raw) from e

    if not isinstance(value, dict):
        raise ReasoningParseError(f"Reasoning output is {type(value).__name__}, expected an object", raw=raw)

    try:
        return ReasoningResult.model_validate(value)
    except ValidationError as e:
        raise ReasoningParseError(f"Reasoning output failed validation: {e}", raw=raw) from e
