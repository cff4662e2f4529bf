"""Tests for the tab directory and most-recently-used ordering."""

import pytest

from tabswitch.daemon.directory import TabDirectory
from tabswitch.daemon.ordering import OrderingService, order_tabs
from tabswitch.daemon.providers import InMemoryTabProvider
from tabswitch.daemon.recency import RecencyLog
from tabswitch.models import TabSnapshot


GITHUB = TabSnapshot(id=1, title="GitHub", url="https://github.com", window_id=1)
DOCS = TabSnapshot(id=2, title="Docs", url="https://docs.example.com", window_id=1)
NEWS = TabSnapshot(id=3, title="News", url="https://news.example.org", window_id=2)


def ids(tabs):
    return [t.id for t in tabs]


def test_current_tab_is_skipped_and_recency_wins():
    # Tab 1 is active, tab 2 was used before it
    assert ids(order_tabs([1, 2], [GITHUB, DOCS])) == [2, 1]


def test_duplicate_recency_entries_match_compacted_log():
    raw = [2, 1, 2]
    log = RecencyLog()
    for tab_id in reversed(raw):
        log.record_activation(tab_id)
    log.compact()

    assert log.snapshot() == [2, 1]
    assert ids(order_tabs(raw, [GITHUB, DOCS])) == ids(order_tabs(log.snapshot(), [GITHUB, DOCS]))
    assert ids(order_tabs(raw, [GITHUB, DOCS])) == [1, 2]


def test_unplaced_tabs_follow_in_directory_order():
    assert ids(order_tabs([2, 3], [GITHUB, DOCS, NEWS])) == [3, 1, 2]


def test_dead_ids_are_dropped():
    assert ids(order_tabs([1, 42, 3, 99, 2], [GITHUB, DOCS, NEWS])) == [3, 2, 1]


def test_empty_inputs():
    assert order_tabs([], []) == []
    assert ids(order_tabs([], [GITHUB, DOCS])) == [1, 2]
    assert order_tabs([1, 2, 3], []) == []


@pytest.mark.parametrize("recency", [
    [],
    [3],
    [3, 3, 3],
    [1, 2, 3, 1, 2, 3],
    [7, 8, 2, 7, 1],
    [2, 2, 1, 1, 3, 3, 9],
])
def test_every_live_tab_appears_exactly_once(recency):
    live = [GITHUB, DOCS, NEWS]
    ordered = order_tabs(recency, live)
    assert sorted(ids(ordered)) == [1, 2, 3]


@pytest.mark.asyncio
async def test_directory_filters_uninitialised_tabs():
    provider = InMemoryTabProvider([
        GITHUB,
        TabSnapshot(id=9, title="", url=""),
        TabSnapshot(id=10, title="", url="about:blank"),
        TabSnapshot(id=11, title="Loading", url=""),
    ])

    tabs = await TabDirectory(provider).refresh()

    assert ids(tabs) == [1, 10, 11]


@pytest.mark.asyncio
async def test_directory_requeries_every_refresh():
    provider = InMemoryTabProvider([GITHUB])
    directory = TabDirectory(provider)

    assert ids(await directory.refresh()) == [1]
    provider.add_tab(DOCS)
    assert ids(await directory.refresh()) == [1, 2]
    await provider.close_tab(1)
    assert ids(await directory.refresh()) == [2]


@pytest.mark.asyncio
async def test_ordering_service_combines_log_and_directory():
    log = RecencyLog()
    for tab_id in (3, 1, 2):
        log.record_activation(tab_id)
    service = OrderingService(log, TabDirectory(InMemoryTabProvider([GITHUB, DOCS, NEWS])))

    assert ids(await service.ordered_tabs()) == [1, 3, 2]


def test_wire_format_round_trip():
    tab = TabSnapshot(id=5, title="T", url="https://x.test", window_id=3, pinned=True, favicon="f.ico")
    wire = tab.to_wire()

    assert wire == {
        "id": 5, "title": "T", "url": "https://x.test",
        "windowId": 3, "pinned": True, "favicon": "f.ico",
    }
    assert TabSnapshot.from_wire(wire) == tab
    assert "favicon" not in GITHUB.to_wire()
