import threading
from concurrent.futures import ThreadPoolExecutor

import pytest

from app.core.metrics import CounterSet, CounterStore, InvalidUpdateKind, StatKind


def test_new_store_starts_at_zero(counters):
    assert counters.snapshot() == CounterSet()


def test_each_kind_touches_its_counter(counters):
    counters.update(StatKind.BAD_CONNECTION)
    counters.update(StatKind.REFUSE)
    counters.update(StatKind.REFUSE)
    counters.update(StatKind.DENIED)
    snapshot = counters.snapshot()
    assert snapshot.bad_connections == 1
    assert snapshot.refused_connections == 2
    assert snapshot.denied_connections == 1
    assert snapshot.requests == 0
    assert snapshot.open_connections == 0


@pytest.mark.parametrize(
    "events",
    [
        "ooocc",
        "ocococ",
        "oooooccccc",
        "o",
        "oocoocoo",
    ],
)
def test_open_and_close_arithmetic(counters, events):
    for event in events:
        counters.update(StatKind.OPEN if event == "o" else StatKind.CLOSE)
    snapshot = counters.snapshot()
    assert snapshot.open_connections == events.count("o") - events.count("c")
    assert snapshot.requests == events.count("o")


@pytest.mark.parametrize("kind", ["open", 1, None, object()])
def test_unknown_kind_leaves_counters_unchanged(counters, kind):
    counters.update(StatKind.OPEN)
    counters.update(StatKind.DENIED)
    before = counters.snapshot()
    with pytest.raises(InvalidUpdateKind):
        counters.update(kind)
    assert counters.snapshot() == before


def test_snapshot_is_immutable(counters):
    snapshot = counters.snapshot()
    with pytest.raises(AttributeError):
        snapshot.requests = 10  # type: ignore[misc]
    counters.update(StatKind.OPEN)
    assert snapshot.requests == 0


def test_concurrent_updates_are_not_lost():
    store = CounterStore()
    per_worker = 500

    def worker(_):
        for _ in range(per_worker):
            store.update(StatKind.OPEN)
            store.update(StatKind.BAD_CONNECTION)
            store.update(StatKind.CLOSE)
        store.update(StatKind.REFUSE)
        store.update(StatKind.DENIED)

    with ThreadPoolExecutor(max_workers=8) as pool:
        list(pool.map(worker, range(16)))

    assert store.snapshot() == CounterSet(
        requests=16 * per_worker,
        bad_connections=16 * per_worker,
        open_connections=0,
        refused_connections=16,
        denied_connections=16,
    )


def test_snapshot_never_sees_half_applied_open():
    store = CounterStore()
    stop = threading.Event()
    torn = []

    def reader():
        while not stop.is_set():
            snapshot = store.snapshot()
            if snapshot.requests != snapshot.open_connections:
                torn.append(snapshot)

    def writer():
        for _ in range(2000):
            store.update(StatKind.OPEN)

    readers = [threading.Thread(target=reader) for _ in range(2)]
    writers = [threading.Thread(target=writer) for _ in range(4)]
    for thread in readers + writers:
        thread.start()
    for thread in writers:
        thread.join()
    stop.set()
    for thread in readers:
        thread.join()

    assert torn == []
    assert store.snapshot().requests == 8000
