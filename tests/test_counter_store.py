from __future__ import annotations

import threading
from typing import List

import fakeredis
import pytest

from dining_votes.counter_store import CounterStore, connect
from dining_votes.errors import FetchError, StoreError


def test_initialize_sets_missing_keys_to_zero(store: CounterStore) -> None:
    assert store.initialize([0, 1, 2]) == {0: 0, 1: 0, 2: 0}
    assert store.all_counts() == {"0": 0, "1": 0, "2": 0}


def test_initialize_does_not_clobber_existing_counts(store: CounterStore) -> None:
    store.client.hset(store.hash_key, "pizza", 5)
    assert store.initialize(["pizza", "salad"]) == {"pizza": 5, "salad": 0}
    assert store.get_counts(["pizza"]) == {"pizza": 5}


def test_initialize_with_no_keys_is_a_no_op(store: CounterStore) -> None:
    assert store.initialize([]) == {}
    assert store.all_counts() == {}


def test_apply_deltas_increments_and_decrements(store: CounterStore) -> None:
    store.initialize([0, 1])
    assert store.apply_deltas([(0, 1), (0, 1), (1, 1), (0, -1)]) == 4
    assert store.get_counts([0, 1]) == {0: 1, 1: 1}


def test_counts_never_go_negative(store: CounterStore) -> None:
    store.client.hset(store.hash_key, "7", 1)
    applied = store.apply_deltas([(7, -1), (7, -1), (7, -1), (8, -1)])
    assert applied == 1
    assert store.get_counts([7, 8]) == {7: 0, 8: 0}

    for batch in ([(7, -1)], [(7, 1), (7, -1), (7, -1)], [(8, 1)]):
        store.apply_deltas(batch)
        assert all(value >= 0 for value in store.all_counts().values())


def test_apply_deltas_empty_batch_is_a_no_op(store: CounterStore) -> None:
    assert store.apply_deltas([]) == 0
    assert store.all_counts() == {}


def test_apply_deltas_rejects_bad_directions_before_touching_the_store(store: CounterStore) -> None:
    with pytest.raises(ValueError):
        store.apply_deltas([(0, 1), (1, 2)])
    assert store.all_counts() == {}


def test_store_errors_are_wrapped(redis_server: fakeredis.FakeServer, store: CounterStore) -> None:
    redis_server.connected = False
    with pytest.raises(StoreError):
        store.apply_deltas([(0, 1)])
    with pytest.raises(StoreError):
        store.initialize([0])
    with pytest.raises(StoreError):
        store.all_counts()


def test_connect_fails_fast_when_unreachable() -> None:
    with pytest.raises(FetchError):
        connect("redis://127.0.0.1:1/0", timeout=0.05)


def test_concurrent_batches_on_the_same_counter(redis_server: fakeredis.FakeServer) -> None:
    threads = 8
    batches = 25
    start = threading.Barrier(threads)
    observed: List[int] = []
    applied: List[int] = []
    errors: List[BaseException] = []
    lock = threading.Lock()

    def worker() -> None:
        store = CounterStore(fakeredis.FakeRedis(server=redis_server))
        try:
            start.wait()
            for _ in range(batches):
                store.initialize([0])
                done = store.apply_deltas([(0, 1), (0, -1), (0, 1)])
                count = store.get_counts([0])[0]
                with lock:
                    applied.append(done)
                    observed.append(count)
        except BaseException as exc:  # surfaced by the assertion below
            with lock:
                errors.append(exc)

    pool = [threading.Thread(target=worker) for _ in range(threads)]
    for thread in pool:
        thread.start()
    for thread in pool:
        thread.join()

    assert errors == []
    assert applied == [3] * (threads * batches)
    assert min(observed) >= 0
    final = CounterStore(fakeredis.FakeRedis(server=redis_server)).get_counts([0])[0]
    assert final == threads * batches
