"""Tests for citation normalization across payload dialects."""

from __future__ import annotations

import json
from datetime import datetime, timezone

import pytest

from citeline.citations import extract_domain, favicon_url, normalize
from citeline.citations.normalizer import dedupe_by_domain, to_source
from citeline.config import DEFAULT_FAVICON_TEMPLATE


def _domains(sources):
    return [s.domain for s in sources]


# ------------------------------------------------------------------
# Literal payloads
# ------------------------------------------------------------------


def test_duplicate_domain_with_www_is_dropped():
    raw = [{"url": "https://a.com/x", "title": "A"}, {"url": "https://www.a.com/y", "title": "A2"}]
    sources = normalize(raw)
    assert len(sources) == 1
    assert sources[0].domain == "a.com"
    assert sources[0].title == "A"


def test_sources_wrapper():
    assert _domains(normalize({"sources": [{"url": "https://b.com", "title": "B"}]})) == ["b.com"]


def test_result_data_wrapper():
    assert _domains(normalize({"result": {"data": [{"url": "https://c.com", "title": "C"}]}})) == ["c.com"]


def test_delimited_text():
    raw = "URL: https://d.com\nTitle: D\nDescription: desc\n\n\nURL: https://e.com\nTitle: E"
    sources = normalize(raw)
    assert _domains(sources) == ["d.com", "e.com"]
    assert sources[0].description == "desc"


def test_integer_keyed_with_null_entry():
    assert _domains(normalize({0: {"url": "https://f.com", "title": "F"}, 1: None})) == ["f.com"]


@pytest.mark.parametrize("raw", [{"unrelated": True}, "garbage", None, 17, "[{broken", ""])
def test_unrecognised_payload_gives_empty_list(raw):
    assert normalize(raw) == []


def test_deeply_nested_json_text_gives_empty_list():
    assert normalize("[" * 100_000 + "]" * 100_000) == []


def test_entry_without_url_is_dropped():
    assert normalize([{"title": "no url"}]) == []


# ------------------------------------------------------------------
# Further dialects
# ------------------------------------------------------------------


def test_result_result_data_wrapper():
    raw = {"result": {"result": {"data": [{"url": "https://g.com"}]}}}
    assert _domains(normalize(raw)) == ["g.com"]


def test_data_wrapper():
    assert _domains(normalize({"data": [{"url": "https://h.com"}]})) == ["h.com"]


def test_json_text_payload():
    raw = json.dumps({"sources": [{"url": "https://i.com", "title": "I"}]})
    assert _domains(normalize(raw)) == ["i.com"]


def test_string_integer_keys_keep_order():
    raw = {"1": {"url": "https://second.com"}, "0": {"url": "https://first.com"}}
    assert _domains(normalize(raw)) == ["first.com", "second.com"]


def test_non_dict_entries_are_skipped():
    raw = ["https://j.com", 3, None, {"url": "https://k.com"}]
    assert _domains(normalize(raw)) == ["k.com"]


def test_max_sources_truncates_after_dedupe():
    raw = [{"url": f"https://s{i}.com"} for i in range(10)]
    raw.insert(1, {"url": "https://www.s0.com/dup"})
    assert _domains(normalize(raw, max_sources=3)) == ["s0.com", "s1.com", "s2.com"]


def test_max_sources_zero():
    assert normalize([{"url": "https://a.com"}], max_sources=0) == []


# ------------------------------------------------------------------
# Field mapping
# ------------------------------------------------------------------


def test_title_falls_back_to_domain():
    assert normalize([{"url": "https://www.l.com/page"}])[0].title == "l.com"


def test_snippet_used_when_description_missing():
    assert normalize([{"url": "https://m.com", "snippet": "short"}])[0].description == "short"


def test_favicon_is_derived_from_domain():
    source = normalize([{"url": "https://n.com/a"}])[0]
    assert source.favicon == DEFAULT_FAVICON_TEMPLATE.format(domain="n.com")


def test_existing_favicon_is_kept():
    source = normalize([{"url": "https://n.com", "favicon": "https://cdn/n.ico"}])[0]
    assert source.favicon == "https://cdn/n.ico"


def test_custom_favicon_template():
    source = normalize([{"url": "https://o.com"}], favicon_template="https://icons/{domain}.png")[0]
    assert source.favicon == "https://icons/o.com.png"


@pytest.mark.parametrize("key", ["published_at", "publishedAt", "published", "date"])
def test_published_date_keys(key):
    source = normalize([{"url": "https://p.com", key: "2024-03-01T12:00:00Z"}])[0]
    assert source.published_at == datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)


def test_unparseable_published_date_is_none():
    assert normalize([{"url": "https://p.com", "date": "last week"}])[0].published_at is None


# ------------------------------------------------------------------
# Helpers
# ------------------------------------------------------------------


@pytest.mark.parametrize("url,expected", [
    ("https://www.example.com/path?q=1", "example.com"),
    ("http://Sub.Example.org:8080/", "sub.example.org"),
    ("not a url", "not a url"),
    ("https://[::1", "https://[::1"),
])
def test_extract_domain(url, expected):
    assert extract_domain(url) == expected


def test_favicon_url_quotes_domain():
    assert favicon_url("a b.com", "x?d={domain}") == "x?d=a%20b.com"


def test_to_source_requires_url():
    assert to_source({"url": "   "}) is None
    assert to_source("https://a.com") is None


def test_dedupe_keeps_first_seen():
    first = to_source({"url": "https://a.com/1", "title": "first"})
    second = to_source({"url": "https://a.com/2", "title": "second"})
    assert dedupe_by_domain([first, second]) == [first]
