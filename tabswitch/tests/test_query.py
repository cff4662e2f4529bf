"""Tests for query parsing, structured filtering and fuzzy ranking."""

import pytest

from tabswitch.models import TabSnapshot
from tabswitch.popup.query import (
    evaluate,
    fuzzy_search,
    highlight_runs,
    hostname,
    parse,
    resolve_field,
)


TABS = [
    TabSnapshot(id=1, title="GitHub", url="https://github.com/org/repo", pinned=True),
    TabSnapshot(id=2, title="Docs", url="https://docs.example.com/start"),
    TabSnapshot(id=3, title="Settings", url="chrome://settings"),
    TabSnapshot(id=4, title="Random docs page", url="https://blog.example.org/post", pinned=True),
    TabSnapshot(id=5, title="Local file", url=""),
]


def ids(results):
    return [r.tab.id for r in results]


def test_hostname():
    assert hostname("https://Docs.Example.com:8443/a?b=c") == "docs.example.com"
    assert hostname("chrome://settings") == "settings"
    assert hostname("") == ""
    assert hostname("not a url") == ""


def test_parse_resolves_names_and_aliases():
    assert parse("pinned:true") == {"pinned": "true"}
    assert parse("domain:github.com") == {"hostname": "github.com"}
    assert parse("SYS:FALSE hostname:example") == {"sys": "FALSE", "hostname": "example"}
    assert resolve_field("Domain").name == "hostname"


def test_parse_drops_unresolvable_tokens():
    assert parse("") == {}
    assert parse("github docs") == {}
    assert parse("color:blue") == {}
    assert parse("pinned:maybe") == {}
    assert parse("pinned") == {}
    assert parse("hostname:") == {}
    assert parse(":true") == {}
    assert parse("pinned:yes sys:true") == {"sys": "true"}


def test_parse_last_duplicate_wins():
    assert parse("pinned:true pinned:false") == {"pinned": "false"}


def test_empty_query_returns_everything_in_order():
    results = evaluate(TABS, "")

    assert ids(results) == [1, 2, 3, 4, 5]
    assert [r.rank for r in results] == [0, 1, 2, 3, 4]
    assert all(r.match_spans == () for r in results)
    assert ids(evaluate(TABS, "   ")) == [1, 2, 3, 4, 5]


def test_pinned_filter():
    results = evaluate(TABS, "pinned:true")

    assert ids(results) == [1, 4]
    assert all(r.match_spans == () for r in results)
    assert ids(evaluate(TABS, "pinned:false")) == [2, 3, 5]


def test_hostname_filter():
    assert ids(evaluate(TABS, "hostname:example.com")) == [2]
    assert ids(evaluate(TABS, "domain:example")) == [2, 4]
    assert ids(evaluate(TABS, "hostname:EXAMPLE.ORG")) == [4]


def test_sys_filter():
    assert ids(evaluate(TABS, "sys:true")) == [3, 5]
    assert ids(evaluate(TABS, "sys:false")) == [1, 2, 4]


def test_structured_fields_combine_with_and():
    assert ids(evaluate(TABS, "pinned:true domain:example")) == [4]
    assert ids(evaluate(TABS, "pinned:true sys:true")) == []


def test_structured_ranks_follow_output_order():
    assert [r.rank for r in evaluate(TABS, "pinned:true")] == [0, 1]


def test_unresolved_structured_tokens_fall_through_to_fuzzy():
    results = evaluate(TABS, "pinned:maybe")
    # No title or hostname contains that subsequence
    assert results == []
    assert ids(evaluate(TABS, "colour:git")) == []


def test_fuzzy_matches_title_with_spans():
    results = evaluate(TABS, "git")

    assert ids(results) == [1]
    assert results[0].ranges_for("title") == ((0, 3),)
    assert results[0].ranges_for("hostname") == ()
    assert results[0].score > 0


def test_fuzzy_is_case_insensitive_and_subsequence():
    results = evaluate(TABS, "GTHB")

    assert ids(results) == [1]
    assert results[0].ranges_for("title") == ((0, 1), (2, 4), (5, 6))


def test_fuzzy_prefers_tight_early_matches():
    results = evaluate(TABS, "docs")

    assert ids(results) == [2, 4]
    assert results[0].score > results[1].score
    assert [r.rank for r in results] == [0, 1]
    assert results[1].ranges_for("title") == ((7, 11),)


def test_fuzzy_matches_hostname():
    results = evaluate(TABS, "blog")

    assert ids(results) == [4]
    assert results[0].ranges_for("hostname") == ((0, 4),)


def test_fuzzy_requires_every_term():
    assert ids(evaluate(TABS, "random page")) == [4]
    assert evaluate(TABS, "random github") == []


def test_fuzzy_ties_keep_input_order():
    tabs = [TabSnapshot(id=i, title="same title", url="https://a.test") for i in (5, 3, 9)]
    assert ids(fuzzy_search(tabs, "same")) == [5, 3, 9]


def test_fuzzy_min_score_discards_loose_matches():
    tabs = [
        TabSnapshot(id=1, title="abc", url=""),
        TabSnapshot(id=2, title="a-----b-----c", url=""),
    ]
    assert ids(fuzzy_search(tabs, "abc")) == [1, 2]
    assert ids(fuzzy_search(tabs, "abc", min_score=0.9)) == [1]


def test_spans_are_sorted_disjoint_and_in_bounds():
    tabs = [TabSnapshot(id=1, title="ababab abab", url="https://abab.test")]
    for query in ("ab", "ab ba", "bab abab", "a b a"):
        for result in evaluate(tabs, query):
            for span in result.match_spans:
                text = result.tab.title if span.field == "title" else hostname(result.tab.url)
                previous_end = -1
                for start, end in span.ranges:
                    assert 0 <= start < end <= len(text)
                    assert start > previous_end
                    previous_end = end


@pytest.mark.parametrize("query", ["git", "docs", "xmpl", "set", "rnd pg", "GitHub"])
def test_highlight_runs_rebuild_field(query):
    for result in evaluate(TABS, query):
        for field, text in (("title", result.tab.title), ("hostname", hostname(result.tab.url))):
            runs = highlight_runs(text, result.ranges_for(field))
            assert "".join(segment for segment, _ in runs) == text
            assert any(matched for _, matched in runs) == bool(result.ranges_for(field))


def test_highlight_runs_alternate():
    assert highlight_runs("GitHub", ((0, 3),)) == [("Git", True), ("Hub", False)]
    assert highlight_runs("Docs", ()) == [("Docs", False)]
    assert highlight_runs("abc", ((1, 2), (2, 9))) == [("a", False), ("b", True), ("c", True)]
    assert highlight_runs("", ()) == []


def test_offsets_survive_length_changing_case_folds():
    tab = TabSnapshot(id=1, title="İstanbul guide", url="")
    results = evaluate([tab], "guide")

    assert results[0].ranges_for("title") == ((9, 14),)
    assert tab.title[9:14] == "guide"
