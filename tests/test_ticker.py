from __future__ import annotations

import threading

from torchpairsum.common import ticker as ticker_module
from torchpairsum.common.ticker import MINOR_TICK_LIMIT, EventTicker


def test_new_ticker_is_older_than_clicked():
    t0 = EventTicker()
    t1 = EventTicker()
    t1.click()
    assert t0 < t1
    assert t1 > t0
    assert t0.tick == (0, 0)


def test_click_orders_tickers():
    a = EventTicker()
    b = EventTicker()
    a.click()
    b.click()
    assert a < b
    assert a <= b
    a.click()
    assert a > b
    assert a >= b
    assert a != b


def test_update_from_takes_newer():
    a = EventTicker()
    b = EventTicker()
    a.click()
    b.click()
    a.update_from(b)
    assert a == b
    older = EventTicker()
    a.update_from(older)
    assert a == b


def test_copy_is_independent():
    a = EventTicker()
    a.click()
    b = a.copy()
    assert a == b
    b.click()
    assert b > a


def test_minor_tick_carries_into_major(monkeypatch):
    monkeypatch.setattr(ticker_module, "_global_tick", (0, MINOR_TICK_LIMIT - 2))
    before = EventTicker()
    before.click()
    after = EventTicker()
    after.click()
    assert before.tick == (0, MINOR_TICK_LIMIT - 1)
    assert after.tick == (1, 0)
    assert before < after


def test_concurrent_clicks_are_unique():
    ticks = [[] for _ in range(4)]

    def run(out):
        t = EventTicker()
        for _ in range(500):
            t.click()
            out.append(t.tick)

    threads = [threading.Thread(target=run, args=(out,)) for out in ticks]
    for th in threads:
        th.start()
    for th in threads:
        th.join()
    alltics = [tk for out in ticks for tk in out]
    assert len(set(alltics)) == 2000
    for out in ticks:
        assert out == sorted(out)
