"""Tagged-variant parsers for the "sources" payloads returned by search tools.

Reduction happens in two ordered stages; within each stage the first parser
whose predicate matches wins:

  unwrap   array | {sources: [...]} | {result: {data}} |
           {result: {result: {data}}} | {data}
  records  JSON text | delimited text | integer-keyed object | array

Each parser is a pure predicate + transform so every dialect can be tested
on its own.
"""

from __future__ import annotations

import json
import re
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from citeline.errors import MalformedSourcePayload

_MAX_JSON_DEPTH = 1

# Entries in the delimited dialect are separated by two blank lines.
_ENTRY_SPLIT_RE = re.compile(r"\n[ \t]*\n[ \t]*\n")
_FIELD_PREFIXES: tuple[tuple[str, str], ...] = (
    ("URL: ", "url"),
    ("Title: ", "title"),
    ("Description: ", "description"),
)


@dataclass(frozen=True)
class PayloadParser:
    """One payload dialect: a predicate and a pure transform."""

    name: str
    matches: Callable[[Any], bool]
    transform: Callable[[Any], Any]


def _get_path(payload: Any, *keys: str) -> Any:
    for key in keys:
        if not isinstance(payload, dict):
            return None
        payload = payload.get(key)
    return payload


def _is_container(value: Any) -> bool:
    return isinstance(value, (list, str)) or (isinstance(value, dict) and bool(value))


def _has_container_at(*keys: str) -> Callable[[Any], bool]:
    def _matches(payload: Any) -> bool:
        return isinstance(payload, dict) and _is_container(_get_path(payload, *keys))

    return _matches


UNWRAPPERS: tuple[PayloadParser, ...] = (
    PayloadParser("array", lambda p: isinstance(p, list), lambda p: p),
    PayloadParser(
        "sources",
        lambda p: isinstance(p, dict) and isinstance(p.get("sources"), list),
        lambda p: p["sources"],
    ),
    PayloadParser(
        "result.data", _has_container_at("result", "data"), lambda p: p["result"]["data"]
    ),
    PayloadParser(
        "result.result.data",
        _has_container_at("result", "result", "data"),
        lambda p: p["result"]["result"]["data"],
    ),
    PayloadParser("data", _has_container_at("data"), lambda p: p["data"]),
)


# ---------------------------------------------------------------------------
# Record-stage transforms
# ---------------------------------------------------------------------------


def _looks_like_json(payload: Any) -> bool:
    return isinstance(payload, str) and payload.strip()[:1] in ("[", "{")


def _decode_json(payload: str) -> Any:
    try:
        return json.loads(payload)
    except json.JSONDecodeError as exc:
        raise MalformedSourcePayload(f"sources text is not valid JSON: {exc}") from exc
    except RecursionError as exc:
        raise MalformedSourcePayload("sources JSON is nested too deeply") from exc


def parse_delimited_text(text: str) -> list[dict[str, str]]:
    """Parse ``URL: / Title: / Description:`` entries separated by blank-line pairs.

    An entry with neither a URL nor a Title is discarded.
    """
    records: list[dict[str, str]] = []
    for entry in _ENTRY_SPLIT_RE.split(text.replace("\r\n", "\n")):
        if not entry.strip():
            continue
        record: dict[str, str] = {}
        for line in entry.split("\n"):
            line = line.strip()
            for prefix, key in _FIELD_PREFIXES:
                if line.startswith(prefix):
                    record[key] = line[len(prefix):].strip()
                    break
        if record.get("url") or record.get("title"):
            records.append(record)
    return records


def _is_integer_keyed(payload: Any) -> bool:
    if not isinstance(payload, dict) or not payload:
        return False
    return all(
        (isinstance(k, int) and not isinstance(k, bool) and k >= 0)
        or (isinstance(k, str) and k.strip().isdigit())
        for k in payload
    )


def densify(payload: dict) -> list[Any]:
    """Re-index an integer-keyed object into a list, dropping falsy values."""
    ordered = sorted(payload.items(), key=lambda kv: int(kv[0]))
    return [value for _, value in ordered if value]


RECORD_PARSERS: tuple[PayloadParser, ...] = (
    PayloadParser("json-text", _looks_like_json, _decode_json),
    PayloadParser("delimited-text", lambda p: isinstance(p, str), parse_delimited_text),
    PayloadParser("integer-keyed", _is_integer_keyed, densify),
    PayloadParser("array", lambda p: isinstance(p, list), lambda p: p),
)


def first_match(parsers: tuple[PayloadParser, ...], payload: Any) -> PayloadParser | None:
    for parser in parsers:
        if parser.matches(payload):
            return parser
    return None


def extract_records(payload: Any, _depth: int = 0) -> list[Any]:
    """Reduce *payload* to a flat list of raw records (unvalidated).

    Raises:
        MalformedSourcePayload: If no dialect reduces the payload to a list.
    """
    unwrapper = first_match(UNWRAPPERS, payload)
    value = unwrapper.transform(payload) if unwrapper else payload

    parser = first_match(RECORD_PARSERS, value)
    if parser is None:
        raise MalformedSourcePayload(
            f"unrecognised sources payload of type {type(payload).__name__}"
        )

    if parser.name == "json-text":
        if _depth >= _MAX_JSON_DEPTH:
            raise MalformedSourcePayload("JSON-encoded sources nested too deeply")
        return extract_records(parser.transform(value), _depth + 1)

    records = parser.transform(value)
    if not isinstance(records, list):
        raise MalformedSourcePayload(f"{parser.name} parser did not yield a list")
    return records
