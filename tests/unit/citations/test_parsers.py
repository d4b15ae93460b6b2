"""Tests for the per-dialect payload parsers."""

from __future__ import annotations

import json

import pytest

from citeline.citations.parsers import (
    RECORD_PARSERS,
    UNWRAPPERS,
    densify,
    extract_records,
    first_match,
    parse_delimited_text,
)
from citeline.errors import MalformedSourcePayload

RECORD = {"url": "https://x.com", "title": "X"}


@pytest.mark.parametrize("payload,expected", [
    ([RECORD], "array"),
    ({"sources": [RECORD]}, "sources"),
    ({"result": {"data": [RECORD]}}, "result.data"),
    ({"result": {"result": {"data": [RECORD]}}}, "result.result.data"),
    ({"data": [RECORD]}, "data"),
    ({"data": "URL: https://x.com"}, "data"),
])
def test_unwrapper_selection(payload, expected):
    assert first_match(UNWRAPPERS, payload).name == expected


def test_sources_must_be_a_list():
    assert first_match(UNWRAPPERS, {"sources": "text"}) is None


def test_empty_result_data_does_not_match():
    assert first_match(UNWRAPPERS, {"result": {"data": {}}}) is None


@pytest.mark.parametrize("payload,expected", [
    ('[{"url": "https://x.com"}]', "json-text"),
    ("  {\"sources\": []}", "json-text"),
    ("URL: https://x.com", "delimited-text"),
    ({0: RECORD}, "integer-keyed"),
    ({"1": RECORD}, "integer-keyed"),
    ([RECORD], "array"),
])
def test_record_parser_selection(payload, expected):
    assert first_match(RECORD_PARSERS, payload).name == expected


def test_record_parsers_reject_plain_dict():
    assert first_match(RECORD_PARSERS, {"unrelated": True}) is None


def test_parse_delimited_text_reads_prefixed_fields():
    text = "URL: https://d.com\nTitle: D\nDescription: desc\n\n\nURL: https://e.com\nTitle: E"
    assert parse_delimited_text(text) == [
        {"url": "https://d.com", "title": "D", "description": "desc"},
        {"url": "https://e.com", "title": "E"},
    ]


def test_parse_delimited_text_drops_entries_without_url_or_title():
    text = "Description: orphan\n\n\nTitle: Only title"
    assert parse_delimited_text(text) == [{"title": "Only title"}]


def test_parse_delimited_text_handles_crlf_and_indented_blank_lines():
    text = "URL: https://a.com\r\n  \r\n\t\r\nURL: https://b.com"
    assert [r["url"] for r in parse_delimited_text(text)] == ["https://a.com", "https://b.com"]


def test_parse_delimited_text_single_blank_line_does_not_split():
    text = "URL: https://a.com\n\nTitle: A"
    assert parse_delimited_text(text) == [{"url": "https://a.com", "title": "A"}]


def test_densify_orders_by_key_and_drops_falsy():
    assert densify({"2": "c", 0: "a", 1: None, "10": "d"}) == ["a", "c", "d"]


def test_extract_records_decodes_json_text_once():
    payload = json.dumps({"sources": [RECORD]})
    assert extract_records(payload) == [RECORD]


def test_extract_records_unwrapped_delimited_text():
    assert extract_records({"data": "URL: https://x.com\nTitle: X"}) == [RECORD]


def test_extract_records_json_text_inside_json_text_rejected():
    payload = json.dumps({"data": json.dumps([RECORD])})
    with pytest.raises(MalformedSourcePayload):
        extract_records(payload)


def test_extract_records_bad_json_raises():
    with pytest.raises(MalformedSourcePayload):
        extract_records("[{not json")


@pytest.mark.parametrize("payload", [{"unrelated": True}, 42, True])
def test_extract_records_unrecognised_raises(payload):
    with pytest.raises(MalformedSourcePayload):
        extract_records(payload)


def test_extract_records_deeply_nested_json_text_raises_malformed():
    with pytest.raises(MalformedSourcePayload, match="nested too deeply"):
        extract_records("[" * 100_000 + "]" * 100_000)
