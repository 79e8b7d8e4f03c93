"""Token endpoint response parsing.

Providers answer either with a JSON object or with a query-string encoded
body (``access_token=...&token_type=...``). Parsing happens in two explicit
stages: JSON decoding first, then query-string parsing, which is only used
when the body is not JSON. A key missing from a valid JSON body never
triggers the query-string fallback.
"""

from __future__ import annotations

import json
from typing import Any
from urllib.parse import parse_qs

from passgrant.auth.models.errors import MalformedResponseError

_NOT_JSON = object()


def _decode_json(content: str) -> Any:
    """Decode content as JSON, returning the _NOT_JSON sentinel on failure."""
    try:
        return json.loads(content)
    except (TypeError, ValueError):
        return _NOT_JSON


def _stringify(value: Any) -> str | None:
    if value is None:
        return None
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (dict, list)):
        return json.dumps(value)
    return str(value)


def _json_values(document: Any, key: str) -> list[str]:
    if not isinstance(document, dict):
        return []

    values: list[str] = []
    for name, raw in document.items():
        if name.lower() != key.lower():
            continue

        # Nested arrays and objects contribute each of their values
        if isinstance(raw, list):
            items = raw
        elif isinstance(raw, dict):
            items = list(raw.values())
        else:
            items = [raw]

        for item in items:
            text = _stringify(item)
            if text is not None:
                values.append(text)
    return values


def _query_values(query: dict[str, list[str]], key: str) -> list[str]:
    values: list[str] = []
    for name, items in query.items():
        if name.lower() == key.lower():
            values.extend(items)
    return values


def parse_response_content(content: str, *keys: str) -> dict[str, list[str]]:
    """Extract the values of the requested keys from a response body.

    Args:
        content: Raw response body
        keys: Keys to look up, matched case-insensitively

    Returns:
        Mapping of each requested key to its values (possibly empty)
    """
    document = _decode_json(content)

    if document is not _NOT_JSON:
        return {key: _json_values(document, key) for key in keys}

    query = parse_qs(content.strip(), keep_blank_values=True)
    return {key: _query_values(query, key) for key in keys}


def parse_optional_string(content: str, key: str) -> str | None:
    """Return the first non-empty value for key, or None."""
    values = parse_response_content(content, key)[key]
    for value in values:
        if value:
            return value
    return None


def parse_string_response(content: str, key: str) -> str:
    """Return the first value for key.

    Raises:
        MalformedResponseError: If the key is absent from the response
    """
    values = parse_response_content(content, key)[key]
    if not values:
        raise MalformedResponseError(key)
    return values[0]


def extract_error(content: str) -> str | None:
    """Return the provider error message carried in a response body, if any.

    Multiple error values are joined by newlines. The error_description is
    appended when the provider sends one.
    """
    parsed = parse_response_content(content, "error", "error_description")

    errors = [value for value in parsed["error"] if value]
    if not errors:
        return None

    message = "\n".join(errors)
    descriptions = [value for value in parsed["error_description"] if value]
    if descriptions:
        message = f"{message} - {' '.join(descriptions)}"
    return message
